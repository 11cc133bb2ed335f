"""
Sheet grid parser/extractor.

Converts an uploaded workbook (or a JSON values matrix) into SheetGrid:
- grid: rectangular 2D array of display strings, anchored at A1 (0,0)
- merged_cells: list of MergeRange (0-based, inclusive)

Merged cells are NOT filled here. openpyxl reports only the top-left value of
a merge; the other cells stay blank, which is exactly the raw variant the
amount verification needs.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import Decimal
from io import BytesIO
from typing import Any, Dict, List, Optional, Sequence, Tuple
from zipfile import BadZipFile

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from estimate_shared.exceptions import SheetParseError
from estimate_shared.models.sheet_grid import MergeRange, SheetGrid, SheetListResponse
from estimate_shared.utils.app_logger import get_logger
from estimate_shared.utils.text_normalization import normalize_header_key

logger = get_logger(__name__)


@dataclass(frozen=True)
class SheetGridParseOptions:
    """Options shared across parsers."""

    trim_trailing_empty: bool = True
    max_rows: Optional[int] = None
    max_cols: Optional[int] = None

    # Excel-specific
    excel_data_only: bool = True


def resolve_sheet_name(requested: Optional[str], available: Sequence[str]) -> str:
    """
    Pick a sheet by name.

    Exact match first, then a match on the normalized key (width, whitespace
    and dash insensitive). No name means the first sheet.
    """
    names = list(available)
    if not names:
        raise SheetParseError("Workbook has no sheets", code="NO_SHEETS")
    if requested is None or not requested.strip():
        return names[0]
    if requested in names:
        return requested

    key = normalize_header_key(requested)
    matches = [n for n in names if normalize_header_key(n) == key]
    if len(matches) == 1:
        return matches[0]
    if len(matches) > 1:
        raise SheetParseError.ambiguous_sheet(requested, matches)

    partial = [n for n in names if key and key in normalize_header_key(n)]
    if len(partial) == 1:
        return partial[0]
    if len(partial) > 1:
        raise SheetParseError.ambiguous_sheet(requested, partial)
    raise SheetParseError.sheet_not_found(requested, names)


class SheetGridParser:
    """Parsers for Excel uploads and JSON grids into SheetGrid."""

    @classmethod
    def from_values(
        cls,
        values: List[List[Any]],
        *,
        merged_cells: Optional[Sequence[MergeRange]] = None,
        column_count: Optional[int] = None,
        sheet_name: Optional[str] = None,
        options: Optional[SheetGridParseOptions] = None,
    ) -> SheetGrid:
        """
        Build SheetGrid from a ragged values matrix (A1-anchored).

        Rows are padded to a rectangle; column_count may declare a sheet wider
        than any row.
        """
        opts = options or SheetGridParseOptions()
        grid = cls._normalize_grid(values or [], max_rows=opts.max_rows, max_cols=opts.max_cols)
        warnings: List[str] = []

        if opts.trim_trailing_empty:
            min_rows, min_cols = cls._merge_extent(list(merged_cells or []))
            grid, trim_meta = cls._trim_trailing_empty(grid, min_rows=min_rows, min_cols=min_cols)
            if trim_meta.get("trimmed"):
                warnings.append("Trailing empty rows/cols trimmed")

        rows = len(grid)
        cols = max((len(r) for r in grid), default=0)
        merges = cls._clip_merge_ranges(list(merged_cells or []), rows=rows, cols=cols)

        return SheetGrid(
            source="json",
            sheet_name=sheet_name,
            grid=grid,
            merged_cells=merges,
            column_count=max(cols, int(column_count or 0)),
            metadata={"rows": rows, "cols": cols},
            warnings=warnings,
        )

    @classmethod
    def list_sheet_names(cls, xlsx_bytes: bytes) -> SheetListResponse:
        wb = cls._load_workbook(xlsx_bytes, data_only=True, read_only=True)
        try:
            names = [str(n) for n in wb.sheetnames]
        finally:
            wb.close()
        return SheetListResponse(sheet_names=names, default_sheet=names[0] if names else None)

    @classmethod
    def from_excel_bytes(
        cls,
        xlsx_bytes: bytes,
        *,
        sheet_name: Optional[str] = None,
        options: Optional[SheetGridParseOptions] = None,
    ) -> SheetGrid:
        """Parse an .xlsx/.xlsm file into SheetGrid."""
        opts = options or SheetGridParseOptions()
        warnings: List[str] = []

        wb = cls._load_workbook(xlsx_bytes, data_only=opts.excel_data_only, read_only=False)
        resolved = resolve_sheet_name(sheet_name, [str(n) for n in wb.sheetnames])
        if sheet_name and resolved != sheet_name:
            warnings.append(f"Sheet '{sheet_name}' resolved to '{resolved}'")
        ws = wb[resolved]

        max_row = int(ws.max_row or 0)
        max_col = int(ws.max_column or 0)
        if opts.max_rows is not None:
            max_row = min(max_row, int(opts.max_rows))
        if opts.max_cols is not None:
            max_col = min(max_col, int(opts.max_cols))

        # Merged ranges (1-based in openpyxl)
        merges: List[MergeRange] = [
            MergeRange(
                top=int(cr.min_row) - 1,
                left=int(cr.min_col) - 1,
                bottom=int(cr.max_row) - 1,
                right=int(cr.max_col) - 1,
            )
            for cr in ws.merged_cells.ranges
        ]

        if max_row <= 0 or max_col <= 0:
            return SheetGrid(
                source="excel",
                sheet_name=str(ws.title),
                metadata={"rows": 0, "cols": 0, "sheet_names": list(wb.sheetnames)},
                warnings=warnings,
            )

        grid: List[List[str]] = []
        for row in ws.iter_rows(min_row=1, max_row=max_row, min_col=1, max_col=max_col):
            grid.append([cls._excel_cell_to_display_value(cell) for cell in row])

        if opts.trim_trailing_empty:
            # Keep trailing blank rows/cols that belong to merged ranges (e.g. A3:A4 where A4 is blank)
            clipped = cls._clip_merge_ranges(merges, rows=max_row, cols=max_col)
            min_rows, min_cols = cls._merge_extent(clipped)
            grid, trim_meta = cls._trim_trailing_empty(grid, min_rows=min_rows, min_cols=min_cols)
            if trim_meta.get("trimmed"):
                warnings.append("Trailing empty rows/cols trimmed")

        rows = len(grid)
        cols = max((len(r) for r in grid), default=0)
        merges = cls._clip_merge_ranges(merges, rows=rows, cols=cols)
        logger.info(f"Parsed sheet '{ws.title}': {rows} rows x {cols} cols, {len(merges)} merges")

        return SheetGrid(
            source="excel",
            sheet_name=str(ws.title),
            grid=grid,
            merged_cells=merges,
            column_count=cols,
            metadata={"rows": rows, "cols": cols, "sheet_names": list(wb.sheetnames)},
            warnings=warnings,
        )

    # -------------------------
    # Normalization helpers
    # -------------------------

    @staticmethod
    def _load_workbook(xlsx_bytes: bytes, *, data_only: bool, read_only: bool) -> Any:
        try:
            return load_workbook(filename=BytesIO(xlsx_bytes), data_only=data_only, read_only=read_only)
        except (BadZipFile, InvalidFileException, KeyError, OSError, ValueError) as e:
            raise SheetParseError(f"Failed to read workbook: {e}", code="INVALID_WORKBOOK") from e

    @classmethod
    def _normalize_grid(
        cls, grid: List[List[Any]], *, max_rows: Optional[int], max_cols: Optional[int]
    ) -> List[List[str]]:
        if not grid:
            return []

        rows = grid[:max_rows] if max_rows is not None else grid
        width = max((len(r) for r in rows), default=0)
        if max_cols is not None:
            width = min(width, int(max_cols))

        out: List[List[str]] = []
        for row in rows:
            sliced = [cls._text_cell(v) for v in list(row or [])[:width]]
            if len(sliced) < width:
                sliced += [""] * (width - len(sliced))
            out.append(sliced)
        return out

    @staticmethod
    def _text_cell(value: Any) -> str:
        if value is None:
            return ""
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, float) and value.is_integer():
            return str(int(value))
        if isinstance(value, Decimal):
            return format(value, "f")
        if isinstance(value, datetime):
            return value.isoformat(sep=" ")
        if isinstance(value, (date, time)):
            return value.isoformat()
        return str(value)

    @staticmethod
    def _merge_extent(merges: List[MergeRange]) -> Tuple[int, int]:
        if not merges:
            return 0, 0
        return max(m.bottom for m in merges) + 1, max(m.right for m in merges) + 1

    @classmethod
    def _trim_trailing_empty(
        cls,
        grid: List[List[str]],
        *,
        min_rows: int = 0,
        min_cols: int = 0,
    ) -> Tuple[List[List[str]], Dict[str, Any]]:
        if not grid:
            return grid, {"trimmed": False}

        rows = len(grid)
        cols = max((len(r) for r in grid), default=0)

        def is_blank(v: str) -> bool:
            return str(v).strip() == ""

        bottom = rows - 1
        while bottom >= 0 and all(is_blank(v) for v in grid[bottom]):
            bottom -= 1
        bottom = min(rows - 1, max(bottom, int(min_rows) - 1))

        right = cols - 1
        while right >= 0 and all(is_blank(grid[r][right]) for r in range(0, bottom + 1)):
            right -= 1
        right = min(cols - 1, max(right, int(min_cols) - 1))

        trimmed = (bottom != rows - 1) or (right != cols - 1)
        new_grid = [row[: right + 1] for row in grid[: bottom + 1]]
        return new_grid, {"trimmed": trimmed, "rows": bottom + 1, "cols": right + 1}

    @classmethod
    def _clip_merge_ranges(cls, merges: List[MergeRange], *, rows: int, cols: int) -> List[MergeRange]:
        if not merges or rows <= 0 or cols <= 0:
            return []
        out: List[MergeRange] = []
        for m in merges:
            if m.top >= rows or m.left >= cols:
                continue
            bottom = min(rows - 1, m.bottom)
            right = min(cols - 1, m.right)
            # Ignore "merges" that are effectively single cells
            if m.top == bottom and m.left == right:
                continue
            out.append(MergeRange(top=m.top, left=m.left, bottom=bottom, right=right))
        return out

    # -------------------------
    # Excel display formatting
    # -------------------------

    @classmethod
    def _excel_cell_to_display_value(cls, cell: Any) -> str:
        """
        Convert an openpyxl cell into display text.

        Numbers keep full precision without thousands separators so the
        numeric parser downstream sees a plain decimal.
        """
        value = getattr(cell, "value", None)
        if value is None:
            return ""

        if isinstance(value, bool):
            return "true" if value else "false"

        if isinstance(value, datetime):
            # Excel often stores date as datetime midnight
            if value.hour == 0 and value.minute == 0 and value.second == 0 and value.microsecond == 0:
                return value.date().isoformat()
            return value.isoformat(sep=" ")

        if isinstance(value, (int, float, Decimal)):
            return cls._format_excel_number(value)

        return cls._text_cell(value)

    @staticmethod
    def _format_excel_number(value: Any) -> str:
        num = float(value)
        if abs(num - round(num)) < 1e-9:
            return str(int(round(num)))
        return f"{num:.6f}".rstrip("0").rstrip(".")
