"""
Per-column statistics over a bounded sample of rows.

Sampling prefers likely body rows (see line_classifier); when a sheet has
none, the first rows are used as they are.
"""

from __future__ import annotations

import statistics
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from estimate_funnel.services.line_classifier import is_likely_body_row, looks_like_unit
from estimate_funnel.services.tables import FilledTable, Row
from estimate_shared.utils.text_normalization import parse_number


@dataclass(frozen=True)
class ColumnStatistics:
    col: int
    non_empty: int
    numeric_count: int
    text_count: int
    unit_like_count: int
    avg_text_len: float
    unique_text_count: int
    median_numeric: Optional[float]
    right_bias: float

    @property
    def numeric_ratio(self) -> float:
        return self.numeric_count / max(1, self.non_empty)

    @property
    def text_ratio(self) -> float:
        return self.text_count / max(1, self.non_empty)

    @property
    def unit_like_ratio(self) -> float:
        return self.unit_like_count / max(1, self.non_empty)

    def as_trace(self) -> dict:
        return {
            "col": self.col + 1,
            "non_empty": self.non_empty,
            "numeric_ratio": round(self.numeric_ratio, 3),
            "text_ratio": round(self.text_ratio, 3),
            "unit_like_ratio": round(self.unit_like_ratio, 3),
            "avg_text_len": round(self.avg_text_len, 2),
            "unique_text_count": self.unique_text_count,
            "median_numeric": self.median_numeric,
            "right_bias": round(self.right_bias, 3),
        }


def select_sample_rows(rows: Sequence[Row], limit: int) -> List[Row]:
    body = [r for r in rows if is_likely_body_row(r)]
    if body:
        return body[:limit]
    return [r for r in rows if any(r)][:limit]


def compute_column_statistics(sample: Sequence[Row], column_count: int) -> List[ColumnStatistics]:
    out: List[ColumnStatistics] = []
    for c in range(column_count):
        non_empty = 0
        unit_like = 0
        text_len_sum = 0
        nums: List[float] = []
        texts: List[str] = []

        for row in sample:
            value = row[c] if c < len(row) else ""
            if not value:
                continue
            non_empty += 1
            n = parse_number(value)
            if n is not None:
                nums.append(n)
                continue
            texts.append(value)
            text_len_sum += len(value)
            if looks_like_unit(value):
                unit_like += 1

        out.append(
            ColumnStatistics(
                col=c,
                non_empty=non_empty,
                numeric_count=len(nums),
                text_count=len(texts),
                unit_like_count=unit_like,
                avg_text_len=(text_len_sum / len(texts)) if texts else 0.0,
                unique_text_count=len(set(texts)),
                median_numeric=statistics.median(nums) if nums else None,
                right_bias=(c / (column_count - 1)) if column_count > 1 else 0.0,
            )
        )
    return out


class ColumnStatisticsBuilder:
    @classmethod
    def build(
        cls,
        table: FilledTable,
        *,
        start_row: int = 0,
        sample_limit: int = 300,
    ) -> Tuple[List[ColumnStatistics], int]:
        """Statistics for rows from start_row on; returns (stats, sample size)."""
        sample = select_sample_rows(table.rows[start_row:], sample_limit)
        return compute_column_statistics(sample, table.column_count), len(sample)
