"""
🔥 THINK ULTRA! Estimate Funnel Router
見積書（Excel明細）の列検出・寸法抽出・明細集計 API エンドポイント
"""

import asyncio
import json
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status

from estimate_funnel.services.column_detection import EstimateColumnDetector, build_tables
from estimate_funnel.services.hybrid_resolution import HybridResolutionMerger
from estimate_funnel.services.line_items import LineItemSummarizer
from estimate_funnel.services.thresholds import DetectionThresholds
from estimate_shared.config.settings import get_settings
from estimate_shared.exceptions import SheetParseError
from estimate_shared.models.estimate_columns import (
    ColumnDetectionRequest,
    ColumnDetectionResponse,
    LineItemSummary,
    LineItemSummaryRequest,
)
from estimate_shared.models.sheet_grid import MergeRange, SheetGrid, SheetListResponse
from estimate_shared.models.sizes import SizeExtractionRequest, SizeExtractionResponse
from estimate_shared.services.sheet_grid_parser import SheetGridParseOptions, SheetGridParser
from estimate_shared.utils.app_logger import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/estimate", tags=["estimate"])


def get_hybrid_merger() -> HybridResolutionMerger:
    """AI フォールバック合成の依存性"""
    return HybridResolutionMerger()


def _thresholds(options: Optional[Dict[str, Any]]) -> DetectionThresholds:
    try:
        return DetectionThresholds.from_options(options)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


def _parse_options_json(options_json: Optional[str]) -> Dict[str, Any]:
    try:
        opts = json.loads(options_json) if options_json else {}
        if not isinstance(opts, dict):
            raise ValueError("options_json must be an object")
    except Exception as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid options_json: {e}")
    return opts


def _sheet_from_values(
    grid: List[List[Any]],
    merged_cells: Optional[List[MergeRange]],
    column_count: Optional[int] = None,
) -> SheetGrid:
    """JSON grids go through the same padding, trimming and merge clipping as workbooks."""
    opts = get_settings().services
    return SheetGridParser.from_values(
        grid,
        merged_cells=merged_cells,
        column_count=column_count,
        options=SheetGridParseOptions(max_rows=opts.max_grid_rows, max_cols=opts.max_grid_cols),
    )


def _with_sheet_context(detection: ColumnDetectionResponse, sheet_grid: SheetGrid) -> ColumnDetectionResponse:
    metadata: Dict[str, Any] = {**(detection.metadata or {}), "source": sheet_grid.source}
    if sheet_grid.sheet_name is not None:
        metadata["sheet_name"] = sheet_grid.sheet_name
    metadata.update(sheet_grid.metadata or {})
    return detection.model_copy(
        update={
            "metadata": metadata,
            "warnings": [*(detection.warnings or []), *(sheet_grid.warnings or [])],
        }
    )


async def _read_excel_upload(file: UploadFile) -> bytes:
    filename = file.filename or ""
    if not filename.lower().endswith((".xlsx", ".xlsm")):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Only .xlsx/.xlsm files are supported",
        )

    content = await file.read()
    if not content:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Empty file")

    limit = get_settings().services.max_upload_bytes
    if len(content) > limit:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"File too large ({len(content)} bytes > {limit})",
        )
    return content


@router.post("/columns/detect", response_model=ColumnDetectionResponse)
async def detect_columns(
    request: ColumnDetectionRequest,
    merger: HybridResolutionMerger = Depends(get_hybrid_merger),
) -> ColumnDetectionResponse:
    """
    明細表の grid から 品名/摘要/数量/単位/サイズ/金額 の列を検出します。

    - ヘッダー行の探索（分割ラベル「数」「量」対応）
    - 統計ヒューリスティック（ヘッダーが無い場合）
    - 金額列は生データ（結合セル未展開）で検証、不明なら null
    - use_ai=true のとき、既定値に落ちた役割だけを AI で補完
    """
    thresholds = _thresholds(request.options)
    detector = EstimateColumnDetector(thresholds)
    sheet_grid = _sheet_from_values(request.grid, request.merged_cells, request.column_count)

    try:
        logger.info(f"Detecting columns: rows={len(sheet_grid.grid)} use_ai={request.use_ai}")
        if request.use_ai:
            detection = await detector.detect_with_ai(
                sheet_grid.grid,
                merged_cells=sheet_grid.merged_cells,
                column_count=sheet_grid.column_count,
                merger=merger,
            )
        else:
            detection = await asyncio.to_thread(
                detector.detect,
                sheet_grid.grid,
                merged_cells=sheet_grid.merged_cells,
                column_count=sheet_grid.column_count,
            )
    except Exception as e:
        logger.error(f"Column detection failed: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Column detection failed: {str(e)}",
        )

    return _with_sheet_context(detection, sheet_grid)


@router.post("/columns/detect/excel", response_model=ColumnDetectionResponse)
async def detect_columns_excel(
    file: UploadFile = File(...),
    sheet_name: Optional[str] = None,
    use_ai: bool = False,
    max_rows: Optional[int] = None,
    max_cols: Optional[int] = None,
    options_json: Optional[str] = None,
    merger: HybridResolutionMerger = Depends(get_hybrid_merger),
) -> ColumnDetectionResponse:
    """
    Excel(.xlsx/.xlsm) をアップロードし、grid + merged_cells に変換してから列検出を行います。
    """
    content = await _read_excel_upload(file)
    thresholds = _thresholds(_parse_options_json(options_json))

    try:
        sheet_grid = await asyncio.to_thread(
            SheetGridParser.from_excel_bytes,
            content,
            sheet_name=sheet_name,
            options=SheetGridParseOptions(max_rows=max_rows, max_cols=max_cols),
        )
    except SheetParseError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.to_dict())
    except Exception as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Failed to parse Excel: {e}")

    detector = EstimateColumnDetector(thresholds)
    try:
        if use_ai:
            detection = await detector.detect_with_ai(
                sheet_grid.grid,
                merged_cells=sheet_grid.merged_cells,
                column_count=sheet_grid.column_count,
                merger=merger,
            )
        else:
            raw, filled = build_tables(sheet_grid.grid, sheet_grid.merged_cells, sheet_grid.column_count)
            detection = await asyncio.to_thread(detector.detect_tables, raw, filled)
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Column detection failed: {str(e)}",
        )

    return _with_sheet_context(detection, sheet_grid)


@router.post("/sizes/extract", response_model=SizeExtractionResponse)
async def extract_sizes(
    request: SizeExtractionRequest,
    merger: HybridResolutionMerger = Depends(get_hybrid_merger),
) -> SizeExtractionResponse:
    """
    摘要テキストから W/H/L/重ね (mm) を抽出します。

    ルールが先、AI は主要寸法が取れなかった行だけ（use_ai=true のとき）。
    AI の失敗・タイムアウトはルール結果をそのまま返します。
    """
    thresholds = _thresholds(request.options)
    try:
        resolution = await merger.resolve_sizes(request.rows, use_ai=request.use_ai, thresholds=thresholds)
    except Exception as e:
        logger.error(f"Size extraction failed: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Size extraction failed: {str(e)}",
        )

    return SizeExtractionResponse(
        **resolution.model_dump(),
        formatted={index: size.format() for index, size in resolution.sizes.items()},
    )


@router.post("/line-items/summary", response_model=LineItemSummary)
async def summarize_line_items(request: LineItemSummaryRequest) -> LineItemSummary:
    """
    キーワード（空白区切り・全一致）で明細行を絞り込み、単位別の数量合計と ㎡ 換算を返します。
    """
    summarizer = LineItemSummarizer(_thresholds(request.options))
    sheet_grid = _sheet_from_values(request.grid, request.merged_cells)
    request = request.model_copy(update={"grid": sheet_grid.grid, "merged_cells": sheet_grid.merged_cells})
    try:
        return await asyncio.to_thread(summarizer.summarize, request)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except Exception as e:
        logger.error(f"Line-item summary failed: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Line-item summary failed: {str(e)}",
        )


@router.post("/sheets/excel", response_model=SheetListResponse)
async def list_excel_sheets(file: UploadFile = File(...)) -> SheetListResponse:
    """アップロードされたブックのシート名一覧"""
    content = await _read_excel_upload(file)
    try:
        return await asyncio.to_thread(SheetGridParser.list_sheet_names, content)
    except SheetParseError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.to_dict())
