"""
Text normalization for Japanese estimate sheets.

Every comparison in the engine runs on normalized text:
- NFKC (full-width ASCII -> half-width, half-width kana -> full-width)
- dash variants unified to "-"
- whitespace collapsed

The prolonged sound mark "ー" is a dash only next to ASCII letters/digits
("W ー 150", "Lー1200"); inside katakana words (シーリング) it is kept.
"""

from __future__ import annotations

import math
import re
import unicodedata
from typing import Any, Optional

_DASH_RE = re.compile(r"[‐‑‒–—―−－]")
_CHOON_NEAR_ASCII_RE = re.compile(r"(?<=[A-Za-z0-9=:\s])ー")
_WS_RE = re.compile(r"\s+")
_NUMBER_RE = re.compile(r"^[-+]?\d*\.?\d+$")
_NUMBER_STRIP_RE = re.compile(r"[,¥￥円$\s]")

# Canonical unit spellings (after NFKC, so "㎡" has already become "m2")
_UNIT_ALIASES = {
    "m": "m",
    "M": "m",
    "メートル": "m",
    "m2": "㎡",
    "M2": "㎡",
    "m^2": "㎡",
    "m²": "㎡",
    "平米": "㎡",
    "平方メートル": "㎡",
    "kg": "kg",
    "KG": "kg",
    "Kg": "kg",
    "l": "L",
    "L": "L",
    "ヶ所": "箇所",
    "ケ所": "箇所",
    "ヵ所": "箇所",
    "カ所": "箇所",
    "個所": "箇所",
    "箇所": "箇所",
}


def normalize_text(value: str) -> str:
    """NFKC + dash unification + whitespace collapse."""
    if not value:
        return ""
    text = unicodedata.normalize("NFKC", value)
    text = _DASH_RE.sub("-", text)
    text = _CHOON_NEAR_ASCII_RE.sub("-", text)
    text = _WS_RE.sub(" ", text)
    return text.strip()


def cell_to_text(value: Any) -> str:
    """Spreadsheet cell -> normalized string ("" for blanks)."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if not math.isfinite(value):
            return ""
        if value.is_integer():
            return str(int(value))
        return repr(value)
    return normalize_text(str(value))


def normalize_for_search(value: str) -> str:
    """Whitespace-free, case-folded key for substring search."""
    return normalize_text(value).replace(" ", "").lower()


def normalize_header_key(value: str) -> str:
    """
    Key for header/sheet-name comparison.

    Removes whitespace and every dash, including "ー", so that "シート-1",
    "シート 1" and "シートー1" collide.
    """
    text = normalize_for_search(value)
    return text.replace("-", "").replace("ー", "")


def normalize_unit(value: str) -> str:
    text = normalize_text(value).replace(" ", "")
    if not text:
        return ""
    return _UNIT_ALIASES.get(text, text)


def parse_number(value: Any) -> Optional[float]:
    """
    Plain numeric parse.

    Thousands separators and currency marks are stripped; what is left must be
    an optionally-signed decimal ("1,200" -> 1200.0, "¥3,000" -> 3000.0,
    "12m" -> None).
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(float(value)) else None
    text = _NUMBER_STRIP_RE.sub("", normalize_text(str(value)))
    if not text or not _NUMBER_RE.match(text):
        return None
    return float(text)


def count_digits(value: str) -> int:
    return sum(1 for ch in value if ch.isdigit())
