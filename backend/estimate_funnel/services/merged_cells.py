"""
Merged cell filling.

The display/statistics copy of a sheet gets every merged range filled from
its top-left value. Cells that already hold a value are never overwritten, and
the raw table passed in is left untouched.
"""

from __future__ import annotations

from typing import List, Optional, Sequence

from estimate_shared.models.sheet_grid import MergeRange

from estimate_funnel.services.tables import FilledTable, RawTable


class MergedCellFiller:
    @classmethod
    def fill(cls, raw: RawTable, merges: Optional[Sequence[MergeRange]] = None) -> FilledTable:
        grid: List[List[str]] = [list(r) for r in raw.rows]
        rows = len(grid)
        cols = raw.column_count

        for m in merges or []:
            if m.top >= rows or m.left >= cols:
                continue
            value = grid[m.top][m.left]
            if not value:
                continue
            for r in range(m.top, min(m.bottom, rows - 1) + 1):
                for c in range(m.left, min(m.right, cols - 1) + 1):
                    if not grid[r][c]:
                        grid[r][c] = value

        return FilledTable(rows=tuple(tuple(r) for r in grid), column_count=cols)
