"""
Raw and merge-filled table variants.

Both wrap the same shape (row-major tuples of normalized cell text plus the
sheet width) but are distinct types: the filled variant feeds statistics and
AI sampling, the raw variant is the only one accepted by amount verification.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Optional, Sequence, Tuple

from estimate_shared.utils.text_normalization import cell_to_text

Row = Tuple[str, ...]


def _rectangularize(rows: Sequence[Sequence[Any]], column_count: Optional[int]) -> Tuple[Tuple[Row, ...], int]:
    width = max((len(r) for r in rows), default=0)
    width = max(width, int(column_count or 0))
    out = []
    for r in rows:
        cells = [cell_to_text(v) for v in list(r or [])]
        if len(cells) < width:
            cells.extend([""] * (width - len(cells)))
        out.append(tuple(cells))
    return tuple(out), width


@dataclass(frozen=True)
class _TableBase:
    rows: Tuple[Row, ...]
    column_count: int

    def __len__(self) -> int:
        return len(self.rows)

    def cell(self, row: int, col: int) -> str:
        if row < 0 or row >= len(self.rows) or col < 0 or col >= self.column_count:
            return ""
        return self.rows[row][col]

    def is_empty(self) -> bool:
        return not self.rows or self.column_count <= 0


@dataclass(frozen=True)
class RawTable(_TableBase):
    """Cells exactly as read; merged ranges hold a value only at their top-left."""

    @classmethod
    def from_grid(cls, grid: Sequence[Sequence[Any]], column_count: Optional[int] = None) -> "RawTable":
        rows, width = _rectangularize(grid or [], column_count)
        return cls(rows=rows, column_count=width)


@dataclass(frozen=True)
class FilledTable(_TableBase):
    """Display copy with merged ranges filled from their top-left value."""

    def to_lists(self) -> List[List[str]]:
        return [list(r) for r in self.rows]


def require_raw(table: object) -> RawTable:
    """Runtime guard for code paths that must never see a filled table."""
    if not isinstance(table, RawTable):
        raise TypeError(f"expected RawTable, got {type(table).__name__}")
    return table
