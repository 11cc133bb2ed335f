"""
LLM safety utilities.

Goals:
- Minimize data sent to the model (truncate / sample).
- Mask likely PII (emails, phone numbers) before leaving the system.
- Provide stable digests for logging without storing raw payloads.
"""

from __future__ import annotations

import hashlib
import json
import re
from typing import Any, Union


_EMAIL_RE = re.compile(r"(?i)\b[A-Z0-9._%+-]+@[A-Z0-9.-]+\.[A-Z]{2,}\b")
# Phone-like runs: 0x-xxxx-xxxx, +81 90 ...; estimate dimensions never reach 8 digits.
_LONG_DIGIT_RE = re.compile(r"\+?\d[\d\s().-]{7,}\d")


def sha256_hex(value: Union[str, bytes]) -> str:
    data = value.encode("utf-8") if isinstance(value, str) else value
    return hashlib.sha256(data).hexdigest()


def stable_json_dumps(obj: Any) -> str:
    return json.dumps(obj, ensure_ascii=False, separators=(",", ":"), sort_keys=True, default=str)


def digest_for_audit(obj: Any) -> str:
    return sha256_hex(stable_json_dumps(obj))


def truncate_text(text: str, *, max_chars: int) -> str:
    if max_chars <= 0:
        return ""
    if len(text) <= max_chars:
        return text
    return text[: max(0, max_chars - 1)] + "…"


def _mask_email(text: str) -> str:
    def _repl(match: re.Match[str]) -> str:
        return f"<email:{sha256_hex(match.group(0))[:10]}>"

    return _EMAIL_RE.sub(_repl, text)


def _mask_long_digits(text: str) -> str:
    def _repl(match: re.Match[str]) -> str:
        raw = match.group(0)
        digits = re.sub(r"\D+", "", raw)
        # "1200 1500 300" style dimension lists are not phone numbers
        if len(digits) < 10 or (" " in raw.strip() and "-" not in raw):
            return raw
        return f"<number:{sha256_hex(digits)[:10]}>"

    return _LONG_DIGIT_RE.sub(_repl, text)


def mask_pii_text(text: str, *, max_chars: int | None = None) -> str:
    out = _mask_email(text)
    out = _mask_long_digits(out)
    if max_chars is not None:
        out = truncate_text(out, max_chars=max_chars)
    return out
