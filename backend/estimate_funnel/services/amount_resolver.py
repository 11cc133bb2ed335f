"""
🔥 THINK ULTRA! Amount column resolution

A wrong amount column corrupts every downstream total, so this resolver
prefers "unknown" (None) over a guess.

Resolution order:
1. header amount label -> that column
2. header unit-price label (and no amount label) -> the column right of it
3. no header signal -> numeric heuristic over detail rows, excluding the
   quantity and unit columns:
       score = max integer digits * 10
             + 2 if the column sits in the right part of the sheet
             + 3 if it lies right of both quantity and unit
             + 1 if at least two rows are nonzero
   columns whose values are all zero are discarded; ties go to the rightmost
4. verification: the candidate (from 1-3 or from an external source) is kept
   only if some detail row of the RAW table has a nonzero value in it.
   A failed verification yields None; there is no retry with the next step.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from estimate_funnel.services.header_locator import HeaderMapping
from estimate_funnel.services.line_classifier import is_detail_row
from estimate_funnel.services.tables import RawTable, require_raw
from estimate_funnel.services.thresholds import DetectionThresholds
from estimate_shared.utils.text_normalization import parse_number


@dataclass(frozen=True)
class AmountColumnStats:
    col: int
    non_zero_count: int
    max_integer_digits: int
    max_abs_value: float


@dataclass
class AmountResolution:
    column: Optional[int] = None
    candidate: Optional[int] = None
    step: str = "none"
    verified: bool = False
    rejected: List[Dict[str, Any]] = field(default_factory=list)
    notes: List[str] = field(default_factory=list)


def integer_digits(value: float) -> int:
    magnitude = abs(value)
    if not math.isfinite(magnitude):
        return 0
    if magnitude < 1:
        return 1
    return int(math.floor(math.log10(magnitude))) + 1


class AmountColumnResolver:
    @classmethod
    def column_stats(
        cls, raw: RawTable, col: int, *, qty_col: int, unit_col: int, start_row: int = 0
    ) -> AmountColumnStats:
        raw = require_raw(raw)
        non_zero = 0
        max_digits = 0
        max_abs = 0.0
        for row in raw.rows[start_row:]:
            if not is_detail_row(row, qty_col, unit_col):
                continue
            n = parse_number(row[col]) if col < len(row) else None
            if n is None or n == 0:
                continue
            non_zero += 1
            max_abs = max(max_abs, abs(n))
            max_digits = max(max_digits, integer_digits(n))
        return AmountColumnStats(col=col, non_zero_count=non_zero, max_integer_digits=max_digits, max_abs_value=max_abs)

    @classmethod
    def verify(cls, raw: RawTable, col: int, *, qty_col: int, unit_col: int, start_row: int = 0) -> bool:
        """True iff some detail row of the raw table holds a nonzero number in `col`."""
        raw = require_raw(raw)
        if col < 0 or col >= raw.column_count:
            return False
        return cls.column_stats(raw, col, qty_col=qty_col, unit_col=unit_col, start_row=start_row).non_zero_count > 0

    @classmethod
    def heuristic_candidate(
        cls,
        raw: RawTable,
        *,
        qty_col: int,
        unit_col: int,
        start_row: int,
        thresholds: DetectionThresholds,
        rejected: List[Dict[str, Any]],
    ) -> Optional[int]:
        width = raw.column_count
        best_col: Optional[int] = None
        best_score: Optional[float] = None
        for c in range(width):
            if c in (qty_col, unit_col):
                continue
            st = cls.column_stats(raw, c, qty_col=qty_col, unit_col=unit_col, start_row=start_row)
            if st.max_abs_value == 0:
                continue
            score = float(st.max_integer_digits * 10)
            if width > 1 and c / (width - 1) >= thresholds.amount_right_percentile:
                score += 2
            if c > max(qty_col, unit_col):
                score += 3
            if st.non_zero_count >= 2:
                score += 1
            # ">=" so the rightmost column wins ties
            if best_score is None or score >= best_score:
                if best_col is not None:
                    rejected.append({"col": best_col + 1, "score": best_score, "reason": "outscored"})
                best_col, best_score = c, score
            else:
                rejected.append({"col": c + 1, "score": score, "reason": "outscored"})
        return best_col

    @classmethod
    def resolve(
        cls,
        raw: RawTable,
        *,
        qty_col: int,
        unit_col: int,
        thresholds: DetectionThresholds,
        header: Optional[HeaderMapping] = None,
        start_row: int = 0,
        external_candidate: Optional[int] = None,
    ) -> AmountResolution:
        raw = require_raw(raw)
        out = AmountResolution()
        width = raw.column_count

        if external_candidate is not None:
            out.candidate, out.step = external_candidate, "ai"
        elif header is not None and header.amount is not None:
            out.candidate, out.step = header.amount, "header"
        elif header is not None and header.unit_price is not None:
            adjacent = header.unit_price + 1
            if adjacent < width:
                out.candidate, out.step = adjacent, "unit_price_adjacent"
            else:
                out.step = "unit_price_adjacent"
                out.notes.append("unit price is the last column; no amount column to its right")
        else:
            out.candidate = cls.heuristic_candidate(
                raw,
                qty_col=qty_col,
                unit_col=unit_col,
                start_row=start_row,
                thresholds=thresholds,
                rejected=out.rejected,
            )
            out.step = "heuristic" if out.candidate is not None else "none"

        if out.candidate is None:
            return out

        out.verified = cls.verify(raw, out.candidate, qty_col=qty_col, unit_col=unit_col, start_row=start_row)
        if out.verified:
            out.column = out.candidate
        else:
            out.rejected.append({"col": out.candidate + 1, "reason": "no nonzero detail row in raw table"})
            out.notes.append(f"amount candidate col{out.candidate + 1} ({out.step}) failed verification -> None")
        return out
