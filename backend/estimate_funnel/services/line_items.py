"""
Keyword line-item summary over a detected (or user-given) column set.

Rows below the header are kept when every query token appears in the row
(whitespace-insensitive) and the quantity is a nonzero number. Quantities are
summed per normalized unit; rows measured in metres are also converted to
square metres from the size column: (height + overlap) when a height is
known, otherwise the width.

Numbers are read from the raw table; display text comes from the merge-filled
table.
"""

from __future__ import annotations

from typing import Dict, List, Optional, Tuple

from estimate_funnel.services.column_detection import EstimateColumnDetector, build_tables
from estimate_funnel.services.dimension_extractor import DimensionExtractor
from estimate_funnel.services.line_classifier import is_subtotal_text
from estimate_funnel.services.tables import FilledTable, RawTable
from estimate_funnel.services.thresholds import DetectionThresholds
from estimate_shared.models.estimate_columns import (
    DetectedColumnSet,
    LineItem,
    LineItemSummary,
    LineItemSummaryRequest,
    ManualColumnOverride,
)
from estimate_shared.models.sizes import SizeResult
from estimate_shared.utils.app_logger import get_logger
from estimate_shared.utils.text_normalization import normalize_for_search, normalize_unit, parse_number

logger = get_logger(__name__)

METRE_UNIT = "m"


def query_tokens(query: str) -> List[str]:
    return [normalize_for_search(tok) for tok in (query or "").split() if normalize_for_search(tok)]


def matches_all_tokens(row_text: str, tokens: List[str]) -> bool:
    haystack = normalize_for_search(row_text)
    return all(tok in haystack for tok in tokens)


def area_for_metre_row(qty: float, size: SizeResult) -> Optional[float]:
    if size.height_mm is not None:
        return qty * (size.height_mm + (size.overlap_mm or 0)) / 1000
    if size.wide_mm is not None:
        return qty * size.wide_mm / 1000
    return None


def clamp_override(override: ManualColumnOverride, width: int) -> DetectedColumnSet:
    """1-based override clamped into [1, width]."""
    top = max(1, width)

    def clamp(col: int) -> int:
        return min(max(col, 1), top)

    return DetectedColumnSet(
        item=clamp(override.item),
        desc=clamp(override.desc),
        qty=clamp(override.qty),
        unit=clamp(override.unit),
        size=clamp(override.size),
        amount=None if override.amount is None else clamp(override.amount),
        header_row_index=override.header_row_index,
    )


class LineItemSummarizer:
    def __init__(
        self,
        thresholds: Optional[DetectionThresholds] = None,
        extractor: Optional[DimensionExtractor] = None,
    ) -> None:
        self.thresholds = thresholds or DetectionThresholds.from_settings()
        self.extractor = extractor or DimensionExtractor(self.thresholds)

    def _columns(
        self, request: LineItemSummaryRequest, raw: RawTable, filled: FilledTable
    ) -> Tuple[DetectedColumnSet, str, List[str]]:
        if request.columns is not None:
            return clamp_override(request.columns, raw.column_count), "manual", []
        detected = EstimateColumnDetector(self.thresholds).detect_tables(raw, filled)
        return detected.columns, "detected", list(detected.warnings)

    def summarize(self, request: LineItemSummaryRequest) -> LineItemSummary:
        raw, filled = build_tables(request.grid, request.merged_cells)
        columns, column_source, warnings = self._columns(request, raw, filled)

        if request.hide_zero_amount and columns.amount is None:
            raise ValueError("hide_zero_amount requires an amount column")

        tokens = query_tokens(request.query)
        start_row = 0 if columns.header_row_index is None else columns.header_row_index + 1
        item_c, desc_c, qty_c, unit_c, size_c = (
            columns.item - 1,
            columns.desc - 1,
            columns.qty - 1,
            columns.unit - 1,
            columns.size - 1,
        )
        amount_c = None if columns.amount is None else columns.amount - 1
        limit = None if request.show_all else request.preview_limit

        sums_by_unit: Dict[str, float] = {}
        sum_m2 = 0.0
        matched = 0
        preview: List[LineItem] = []

        for i in range(start_row, len(raw)):
            display = filled.rows[i]
            if tokens and not matches_all_tokens(" ".join(display), tokens):
                continue
            if is_subtotal_text(filled.cell(i, item_c)) or is_subtotal_text(filled.cell(i, desc_c)):
                continue

            qty = parse_number(raw.cell(i, qty_c))
            if qty is None or qty == 0:
                continue
            amount = parse_number(raw.cell(i, amount_c)) if amount_c is not None else None
            if request.hide_zero_amount and not amount:
                continue

            matched += 1
            unit = normalize_unit(filled.cell(i, unit_c))
            if unit:
                sums_by_unit[unit] = sums_by_unit.get(unit, 0.0) + qty

            size_text = filled.cell(i, size_c)
            size = self.extractor.extract(size_text)
            calc_m2 = area_for_metre_row(qty, size) if unit == METRE_UNIT else None
            if calc_m2 is not None:
                sum_m2 += calc_m2

            if limit is None or len(preview) < limit:
                preview.append(
                    LineItem(
                        row_index=i,
                        item=filled.cell(i, item_c),
                        desc=filled.cell(i, desc_c),
                        qty=qty,
                        unit=unit,
                        amount=amount,
                        size=size,
                        size_text=size_text,
                        calc_m2=calc_m2,
                    )
                )

        logger.info(
            f"Line-item summary: tokens={len(tokens)} matched={matched} units={sorted(sums_by_unit)} "
            f"sum_m2={sum_m2:.3f} columns={column_source}"
        )
        return LineItemSummary(
            columns=columns,
            column_source=column_source,
            matched_count=matched,
            sums_by_unit=sums_by_unit,
            sum_m2=sum_m2,
            preview=preview,
            warnings=warnings,
        )
