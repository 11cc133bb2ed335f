"""
Column role scoring.

Each role has a pure scoring function over ColumnStatistics. A column below
the eligibility floor (or failing a role's ratio requirement) is ineligible;
the role goes to the argmax of the eligible scores if that maximum is > 0,
otherwise to a fixed positional default. Every function returns the selection
together with a per-column score trace; logging is done by the caller.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from estimate_funnel.services.column_statistics import ColumnStatistics
from estimate_funnel.services.header_locator import HeaderMapping
from estimate_funnel.services.tables import Row
from estimate_funnel.services.thresholds import DetectionThresholds

CORE_ROLES = ("item", "desc", "qty", "unit")

ScoreFn = Callable[[ColumnStatistics, DetectionThresholds], Optional[float]]

_SIZE_CELL_RE = re.compile(
    r"(?:(?<![A-Za-z])[HWL][-=:]?\d{2,6}(?!\d)"
    r"|[□×]\d{2,5}"
    r"|\d{2,4}[xX*]\d{2,4}"
    r"|巾木|立上り|立上|溝|重ね)"
)


@dataclass(frozen=True)
class RoleSelection:
    role: str
    col: int
    source: str
    score: Optional[float] = None


@dataclass
class RoleAssignment:
    selections: Dict[str, RoleSelection] = field(default_factory=dict)
    traces: Dict[str, List[Dict[str, Any]]] = field(default_factory=dict)

    def col(self, role: str) -> int:
        return self.selections[role].col

    def source(self, role: str) -> str:
        return self.selections[role].source


# -------------------------
# Scoring functions
# -------------------------


def score_unit(s: ColumnStatistics, t: DetectionThresholds) -> Optional[float]:
    if s.non_empty < t.min_non_empty:
        return None
    short_text = 2.0 if 0 < s.avg_text_len <= t.unit_short_text_len else 0.0
    return s.unit_like_ratio * 10 + short_text + s.right_bias * 0.5


def _smallness_bonus(median: Optional[float]) -> float:
    med = median or 0.0
    if med <= 0:
        return 0.0
    if med <= 500:
        return 2.0
    if med <= 2000:
        return 0.5
    return -1.0


def _largeness_bonus(median: Optional[float]) -> float:
    med = median or 0.0
    if med >= 5000:
        return 2.0
    if med >= 1000:
        return 1.0
    return -1.0


def score_qty(s: ColumnStatistics, t: DetectionThresholds) -> Optional[float]:
    if s.non_empty < t.min_non_empty or s.numeric_ratio < t.numeric_ratio_floor:
        return None
    return s.numeric_ratio * 5 + _smallness_bonus(s.median_numeric) + s.right_bias * 0.3


def score_amount_hint(s: ColumnStatistics, t: DetectionThresholds) -> Optional[float]:
    if s.non_empty < t.min_non_empty or s.numeric_ratio < t.numeric_ratio_floor:
        return None
    return s.numeric_ratio * 3 + _largeness_bonus(s.median_numeric) + s.right_bias * 1.5


def _is_text_column(s: ColumnStatistics, t: DetectionThresholds) -> bool:
    return s.text_ratio >= t.text_ratio_floor


def score_item(s: ColumnStatistics, t: DetectionThresholds) -> Optional[float]:
    if s.non_empty < t.min_non_empty or not _is_text_column(s, t):
        return None
    length = 2.0 if 0 < s.avg_text_len <= t.item_max_avg_len else 0.5
    unique = 1.0 if s.unique_text_count >= t.item_min_unique else 0.0
    return length + unique + s.right_bias * 0.2


def score_desc(s: ColumnStatistics, t: DetectionThresholds) -> Optional[float]:
    if s.non_empty < t.min_non_empty or not _is_text_column(s, t):
        return None
    length = 2.0 if s.avg_text_len >= t.desc_min_avg_len else 0.2
    return length + s.right_bias * 0.2


ROLE_SCORERS: Dict[str, ScoreFn] = {
    "item": score_item,
    "desc": score_desc,
    "qty": score_qty,
    "unit": score_unit,
}


def fallback_column(role: str, width: int) -> int:
    last = max(0, width - 1)
    return {"item": 0, "desc": min(1, last), "qty": min(2, last), "unit": min(3, last)}[role]


def pick_best(
    stats: Sequence[ColumnStatistics], score_fn: ScoreFn, thresholds: DetectionThresholds
) -> Tuple[Optional[int], Optional[float], List[Dict[str, Any]]]:
    """Argmax over eligible columns; ties keep the leftmost. None unless best > 0."""
    best_col: Optional[int] = None
    best_score: Optional[float] = None
    trace: List[Dict[str, Any]] = []
    for s in stats:
        score = score_fn(s, thresholds)
        trace.append({"col": s.col + 1, "score": None if score is None else round(score, 3)})
        if score is None:
            continue
        if best_score is None or score > best_score:
            best_col, best_score = s.col, score
    if best_score is None or best_score <= 0:
        return None, best_score, trace
    return best_col, best_score, trace


class RoleScorer:
    @classmethod
    def assign(
        cls,
        stats: Sequence[ColumnStatistics],
        thresholds: DetectionThresholds,
        *,
        width: int,
        header: Optional[HeaderMapping] = None,
    ) -> RoleAssignment:
        """
        Resolve item/desc/qty/unit.

        A header label wins over the heuristic for its role. When the header
        maps all four core roles the heuristic is not consulted at all.
        """
        result = RoleAssignment()
        full_header = header is not None and header.has_core_roles()

        for role in CORE_ROLES:
            header_col = header.get(role) if header is not None else None
            if header_col is not None and header_col < width:
                result.selections[role] = RoleSelection(role, header_col, "header")
                continue
            if full_header:
                continue
            col, score, trace = pick_best(stats, ROLE_SCORERS[role], thresholds)
            result.traces[role] = trace
            if col is not None:
                result.selections[role] = RoleSelection(role, col, "heuristic", score)
            else:
                result.selections[role] = RoleSelection(role, fallback_column(role, width), "fallback")
        return result

    @classmethod
    def amount_hint(
        cls, stats: Sequence[ColumnStatistics], thresholds: DetectionThresholds
    ) -> Tuple[Optional[int], List[Dict[str, Any]]]:
        """Statistics-only amount guess; recorded for observability, never trusted alone."""
        col, _, trace = pick_best(stats, score_amount_hint, thresholds)
        return col, trace


def score_size_column(sample: Sequence[Row], col: int) -> float:
    hits = 0
    non_empty = 0
    for row in sample:
        value = row[col].replace(" ", "") if col < len(row) else ""
        if not value:
            continue
        non_empty += 1
        if _SIZE_CELL_RE.search(value):
            hits += 1
    if non_empty == 0:
        return 0.0
    return hits / non_empty * 100 + hits


def choose_size_column(
    sample: Sequence[Row],
    stats: Sequence[ColumnStatistics],
    desc_col: int,
    thresholds: DetectionThresholds,
) -> Tuple[int, str, List[Dict[str, Any]]]:
    """Text column with the most size notation; the description column when the signal is weak."""
    best_col = desc_col
    best_score = -1.0
    trace: List[Dict[str, Any]] = []
    for s in stats:
        if s.non_empty == 0 or not _is_text_column(s, thresholds):
            continue
        score = score_size_column(sample, s.col)
        trace.append({"col": s.col + 1, "score": round(score, 3)})
        if score > best_score:
            best_col, best_score = s.col, score
    if best_score >= thresholds.size_column_min_score:
        return best_col, "heuristic", trace
    return desc_col, "desc", trace
