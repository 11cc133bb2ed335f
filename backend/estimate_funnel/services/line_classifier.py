"""
Row classification for estimate sheets.

- body row: a plausible line of the estimate (has a number, a unit token or
  size notation, and more than one filled cell); title and blank rows are not
- detail row: quantity parses to a nonzero number AND the unit cell is a
  recognized short unit; section headings and subtotals fail this
"""

from __future__ import annotations

import re
from typing import Optional, Sequence

from estimate_shared.utils.text_normalization import normalize_text, normalize_unit, parse_number

UNIT_VOCABULARY = frozenset(
    {
        "m",
        "㎡",
        "m3",
        "式",
        "個",
        "本",
        "枚",
        "袋",
        "缶",
        "kg",
        "L",
        "箇所",
        "台",
        "人",
        "人工",
        "日",
        "セット",
        "組",
        "巻",
    }
)

SIZE_NOTATION_RE = re.compile(
    r"(?:(?<![A-Za-z])[HWL]\s*[-=:]?\s*\d{2,6}(?!\d)"
    r"|[□×]\s*\d{2,5}"
    r"|(?<!\d)\d{2,4}\s*[×xX*]\s*\d{2,4}(?!\d))"
)

_SUBTOTAL_RE = re.compile(r"(小計|合計|総計|合\s*計|^\s*計\s*$)")


def looks_like_unit(text: str) -> bool:
    return normalize_unit(text) in UNIT_VOCABULARY


def has_size_notation(text: str) -> bool:
    return bool(SIZE_NOTATION_RE.search(normalize_text(text)))


def is_subtotal_text(text: str) -> bool:
    return bool(_SUBTOTAL_RE.search(normalize_text(text)))


def is_likely_body_row(row: Sequence[str]) -> bool:
    cells = [c for c in row if c and c.strip()]
    if len(cells) <= 1:
        return False
    for cell in cells:
        if any(ch.isdigit() for ch in cell):
            return True
        if looks_like_unit(cell):
            return True
    return has_size_notation(" ".join(cells))


def is_detail_row(row: Sequence[str], qty_col: Optional[int], unit_col: Optional[int]) -> bool:
    """qty/unit are 0-based column indexes; out-of-range columns never qualify."""
    if qty_col is None or unit_col is None:
        return False
    if qty_col < 0 or unit_col < 0 or qty_col >= len(row) or unit_col >= len(row):
        return False
    qty = parse_number(row[qty_col])
    if qty is None or qty == 0:
        return False
    return looks_like_unit(row[unit_col])
