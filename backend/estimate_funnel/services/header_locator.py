"""
Header row discovery and header -> role mapping.

A header row is short, label-dense and digit-sparse. Within the first rows of
the sheet, every row with enough filled cells is scored as

    score = cells matching the label vocabulary - (penalty if digits >= threshold)

and the earliest row with the best score wins when that score reaches the
minimum.

Labels split over adjacent cells ("名" | "称", "摘" | "要") are recognized by
joining up to three cells, but only when the first cell is itself a fragment
of the label.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple, Union

from estimate_funnel.services.tables import FilledTable, RawTable, Row
from estimate_funnel.services.thresholds import DetectionThresholds
from estimate_shared.utils.text_normalization import count_digits, normalize_for_search

# Roles in assignment priority: a column takes the first role it matches.
ROLE_KEYWORDS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("unit_price", ("単価", "unitprice")),
    ("amount", ("金額", "価格", "見積額", "amount", "total", "price")),
    ("qty", ("数量", "qty", "quantity")),
    ("unit", ("単位", "unit")),
    ("item", ("品名", "名称", "工種", "項目", "品目", "item", "name")),
    ("desc", ("摘要", "仕様", "規格", "内容", "description", "spec")),
)

# Exact single-cell labels
ROLE_EXACT: Dict[str, Tuple[str, ...]] = {
    "unit_price": ("@",),
    "qty": ("数",),
    "amount": ("金",),
}

# Labels that mark a header cell without mapping to a role
EXTRA_VOCABULARY = ("備考", "摘", "要", "名", "称", "量", "額", "番号", "no", "no.")


@dataclass(frozen=True)
class HeaderMatch:
    row_index: int
    score: int
    matched_cells: int
    cells: Row


@dataclass
class HeaderMapping:
    """0-based columns found in the header row; None when a label is absent."""

    item: Optional[int] = None
    desc: Optional[int] = None
    qty: Optional[int] = None
    unit: Optional[int] = None
    amount: Optional[int] = None
    unit_price: Optional[int] = None
    matched_labels: Dict[str, str] = field(default_factory=dict)

    def has_core_roles(self) -> bool:
        return None not in (self.item, self.desc, self.qty, self.unit)

    def get(self, role: str) -> Optional[int]:
        return getattr(self, role)


def _key(cell: str) -> str:
    return normalize_for_search(cell)


def _cell_matches_keyword(row: Sequence[str], col: int, keyword: str) -> bool:
    t1 = _key(row[col])
    if not t1:
        return False
    if keyword in t1:
        return True
    # Split label: "名" + "称", "摘" + "要", "金" + "" + "額"
    if len(t1) > 2 or t1 == keyword or not keyword.startswith(t1):
        return False
    joined = t1
    for nxt in range(col + 1, min(col + 3, len(row))):
        joined += _key(row[nxt])
        if joined.startswith(keyword):
            return True
        if not keyword.startswith(joined):
            return False
    return False


def _role_of_cell(row: Sequence[str], col: int) -> Optional[str]:
    t1 = _key(row[col])
    if not t1:
        return None
    for role, keywords in ROLE_KEYWORDS:
        if t1 in ROLE_EXACT.get(role, ()):
            return role
        if any(_cell_matches_keyword(row, col, k) for k in keywords):
            return role
    return None


def is_header_label(text: str) -> bool:
    t = _key(text)
    if not t:
        return False
    for role, keywords in ROLE_KEYWORDS:
        if t in ROLE_EXACT.get(role, ()):
            return True
        if any(k in t for k in keywords):
            return True
    return t in EXTRA_VOCABULARY


class HeaderRowLocator:
    @classmethod
    def score_row(cls, row: Sequence[str], thresholds: DetectionThresholds) -> Optional[Tuple[int, int]]:
        """(score, matched cells), or None when the row has too few filled cells."""
        filled = [c for c in row if c]
        if len(filled) < thresholds.header_min_cells:
            return None
        matched = sum(1 for c in filled if is_header_label(c))
        digits = sum(count_digits(c) for c in filled)
        penalty = thresholds.header_digit_penalty if digits >= thresholds.header_digit_threshold else 0
        return matched - penalty, matched

    @classmethod
    def locate(
        cls, table: Union[RawTable, FilledTable], thresholds: DetectionThresholds
    ) -> Optional[HeaderMatch]:
        best: Optional[HeaderMatch] = None
        for i, row in enumerate(table.rows[: thresholds.header_scan_rows]):
            scored = cls.score_row(row, thresholds)
            if scored is None:
                continue
            score, matched = scored
            # Strict ">" keeps the earliest row on ties
            if best is None or score > best.score:
                best = HeaderMatch(row_index=i, score=score, matched_cells=matched, cells=row)
        if best is None or best.score < thresholds.header_min_score:
            return None
        return best

    @classmethod
    def map_roles(cls, row: Sequence[str]) -> HeaderMapping:
        mapping = HeaderMapping()
        cell_roles: List[Optional[str]] = [_role_of_cell(row, c) for c in range(len(row))]
        for role, _ in ROLE_KEYWORDS:
            for col, cell_role in enumerate(cell_roles):
                if cell_role == role:
                    setattr(mapping, role, col)
                    mapping.matched_labels[role] = row[col]
                    break
        return mapping
