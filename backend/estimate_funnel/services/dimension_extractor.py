"""
🔥 THINK ULTRA! Dimension extraction from free-text cells

Parses height / width / length / overlap (mm) out of estimate notation:

    300×300            -> wide=300, height=300 (pair; skips the W/H search)
    W-1200 H=50 重ね=100 -> wide=1200, height=50, overlap=100
    L=1.2m / L-1200    -> length=1200
    L=2m               -> length=2000
    立上り H=300 ㎡      -> height=300 (the area unit is not a metres suffix)
    幅150 / 高さ 50 / 立上り200 / ヨコ:300

Numbers are converted with the "smart mm" rule: an explicit "m" multiplies
by 1000, "mm" is literal, a unitless decimal up to the meters ceiling is read
as metres, anything else is literal millimetres. Values outside (0, bound)
are rejected, never clamped.

When no height is written but the text names a category with a standard
height (溝, 巾木), that height is filled in. Width and length never get defaults.
"""

from __future__ import annotations

import math
import re
from typing import Dict, Iterable, Match, Optional, Pattern, Tuple

from estimate_funnel.services.thresholds import DetectionThresholds
from estimate_shared.models.sizes import SizeResult
from estimate_shared.utils.text_normalization import normalize_text

_SEP = r"\s*[-=:]?\s*"
# "m2" (from ㎡) and "m^2" are area units, not a metres suffix
_UNIT = r"(?P<gap>\s*)(?P<unit>mm|m(?![\d²^]))?(?:(?=m[\d²^])|(?![A-Za-z]))"

PAIR_RE = re.compile(r"(?<!\d)(?P<a>\d{2,4})\s*[×xX*]\s*(?P<b>\d{2,4})(?!\d)")

WIDTH_RE = re.compile(
    r"(?:(?<![A-Za-z])[Ww]|幅|巾(?!木)|横|ヨコ)" + _SEP + r"(?P<num>\d{1,2}\.\d+|\d{2,4})(?![\d.])" + _UNIT
)
HEIGHT_RE = re.compile(
    r"(?:(?<![A-Za-z])[Hh]|高さ|立上り|立上|縦|タテ)" + _SEP + r"(?P<num>\d{1,2}\.\d+|\d{2,4})(?![\d.])" + _UNIT
)
LENGTH_RE = re.compile(
    r"(?:(?<![A-Za-z])[Ll]|長さ)"
    + _SEP
    # a one or two digit whole number only with an explicit metres suffix ("L=2m")
    + r"(?P<num>\d{1,2}\.\d+|\d{2,5}|\d{1,2}(?=\s*m(?![m\d²^])))(?![\d.])"
    + _UNIT
)
OVERLAP_RE = re.compile(
    r"(?:重ね|ラップ|(?<![A-Za-z])overlap)" + _SEP + r"(?P<num>\d{2,4})(?![\d.])" + _UNIT,
    re.IGNORECASE,
)

# Checked in order; the first keyword present wins.
CATEGORY_DEFAULT_HEIGHTS: Tuple[Tuple[str, int], ...] = (
    ("溝", 300),
    ("巾木", 200),
)


def to_mm_smart(
    number: str,
    unit: Optional[str],
    *,
    upper_bound_mm: int = 20000,
    meters_ceiling: float = 20.0,
) -> Optional[int]:
    try:
        value = float(number)
    except (TypeError, ValueError):
        return None
    if unit == "m":
        mm = value * 1000
    elif unit == "mm":
        mm = value
    elif "." in number and value <= meters_ceiling:
        mm = value * 1000
    else:
        mm = value
    mm_int = int(math.floor(mm + 0.5))
    if mm_int <= 0 or mm_int >= upper_bound_mm:
        return None
    return mm_int


def _is_rate_suffix(m: Match[str], text: str) -> bool:
    """A detached "m" glued to following text ("H=200 m当り") reads as "per metre", not as a unit."""
    following = text[m.end("unit") : m.end("unit") + 1]
    return bool(m.group("gap")) and bool(following) and not following.isspace()


def default_height_for(text: str) -> Optional[int]:
    for keyword, height in CATEGORY_DEFAULT_HEIGHTS:
        if keyword in text:
            return height
    return None


class DimensionExtractor:
    def __init__(self, thresholds: Optional[DetectionThresholds] = None) -> None:
        t = thresholds or DetectionThresholds.from_settings()
        self.upper_bound_mm = t.dimension_upper_bound_mm
        self.meters_ceiling = t.meters_decimal_ceiling

    def _to_mm(self, number: str, unit: Optional[str]) -> Optional[int]:
        return to_mm_smart(number, unit, upper_bound_mm=self.upper_bound_mm, meters_ceiling=self.meters_ceiling)

    def _first(self, pattern: Pattern[str], text: str) -> Optional[int]:
        for m in pattern.finditer(text):
            number, unit = m.group("num"), m.group("unit")
            mm = self._to_mm(number, unit)
            if mm is None and unit == "m" and _is_rate_suffix(m, text):
                mm = self._to_mm(number, None)
            if mm is not None:
                return mm
        return None

    def _pair(self, text: str) -> Optional[Tuple[int, int]]:
        for m in PAIR_RE.finditer(text):
            a = to_mm_smart(m.group("a"), "mm", upper_bound_mm=self.upper_bound_mm)
            b = to_mm_smart(m.group("b"), "mm", upper_bound_mm=self.upper_bound_mm)
            if a is not None and b is not None:
                return a, b
        return None

    def extract(self, raw_text: str) -> SizeResult:
        text = normalize_text(raw_text or "")
        if not text:
            return SizeResult()

        pair = self._pair(text)
        if pair is not None:
            wide, height = pair
        else:
            wide = self._first(WIDTH_RE, text)
            height = self._first(HEIGHT_RE, text)

        if height is None:
            height = default_height_for(text)

        return SizeResult(
            height_mm=height,
            wide_mm=wide,
            length_mm=self._first(LENGTH_RE, text),
            overlap_mm=self._first(OVERLAP_RE, text),
        )

    def extract_many(self, rows: Iterable[Tuple[int, str]]) -> Dict[int, SizeResult]:
        return {index: self.extract(text) for index, text in rows}
