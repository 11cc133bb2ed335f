"""
Batch size inference through the LLM gateway.

The model output is untrusted. The payload is parsed loosely (a list of
objects) and every field is checked on its own: numbers must be real numbers
within range, the row index must be one that was asked for. A field that
fails is dropped; nothing is defaulted to zero.
"""

from __future__ import annotations

import math
from typing import Any, Dict, List, Optional, Protocol, Sequence, Set, Tuple

from pydantic import BaseModel, ConfigDict, Field

from estimate_shared.models.sizes import AISizeEstimate, SizeExtractionRow, SizeResult
from estimate_shared.services.llm_gateway import LLMGateway
from estimate_shared.utils.app_logger import get_logger
from estimate_shared.utils.text_normalization import normalize_text

logger = get_logger(__name__)

# field -> (accepted keys, exclusive lower bound, inclusive upper bound)
FIELD_RANGES: Dict[str, Tuple[Tuple[str, ...], float, float]] = {
    "height_mm": (("heightMm", "height_mm"), 0, 19999),
    "wide_mm": (("wideMm", "wide_mm"), 0, 19999),
    "length_mm": (("lengthMm", "length_mm"), 0, 200000),
    "overlap_mm": (("overlapMm", "overlap_mm"), 0, 5000),
}

SIZE_SYSTEM_PROMPT = """
あなたは日本の建築見積書の「摘要・仕様・規格」テキストから寸法を推定するエンジンです。
入力は行ごとのテキストです。W(幅)/H(高さ)/L(長さ)/重ね を mm の整数で推定してください。

ルール:
- "W-1200" "H=50" "L 1500" のような表記から拾う
- "L=1.2m" のように m 表記なら mm に換算する（1.2m -> 1200）
- "重ね 50" があれば overlapMm=50
- 明確でない場合は null にする（推測で 0 を入れない）
- 必ず JSON オブジェクトだけを返す。説明文は禁止。

出力形式:
{"items": [{"index": 12, "heightMm": 50, "wideMm": 1200, "lengthMm": null, "overlapMm": null,
            "confidence": 0.8, "notes": ["短い根拠"]}]}
""".strip()


class SizeInferenceClient(Protocol):
    async def infer_sizes(self, rows: Sequence[SizeExtractionRow]) -> Dict[int, AISizeEstimate]:
        ...


class _AISizeBatchPayload(BaseModel):
    items: List[Dict[str, Any]] = Field(default_factory=list)

    model_config = ConfigDict(extra="ignore")


def _as_number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if not math.isfinite(float(value)):
        return None
    return float(value)


def validate_size_item(raw: Any, requested: Set[int]) -> Optional[AISizeEstimate]:
    """Trusted AISizeEstimate from one untrusted item, or None when the item is unusable."""
    if not isinstance(raw, dict):
        return None
    index = raw.get("index", raw.get("rowIndex"))
    if isinstance(index, bool) or not isinstance(index, int) or index not in requested:
        return None

    values: Dict[str, int] = {}
    dropped: List[str] = []
    for name, (keys, low, high) in FIELD_RANGES.items():
        present = [k for k in keys if k in raw and raw[k] is not None]
        if not present:
            continue
        number = _as_number(raw[present[0]])
        if number is None or not (low < number <= high):
            dropped.append(name)
            continue
        values[name] = int(math.floor(number + 0.5))

    confidence = _as_number(raw.get("confidence"))
    confidence = 0.0 if confidence is None else min(1.0, max(0.0, confidence))

    notes_raw = raw.get("notes")
    notes = [n for n in notes_raw if isinstance(n, str)] if isinstance(notes_raw, list) else []

    return AISizeEstimate(
        index=index,
        size=SizeResult(**values),
        confidence=confidence,
        notes=notes[:5],
        dropped_fields=dropped,
    )


def build_size_prompt(rows: Sequence[SizeExtractionRow]) -> str:
    lines = [f"ROW{r.index}: {normalize_text(r.text)}" for r in rows]
    return "以下の行テキストから寸法を推定してください。index には ROW の番号を使うこと。\n\n" + "\n".join(lines)


class LLMSizeInferenceClient:
    """SizeInferenceClient backed by LLMGateway (one request per batch)."""

    def __init__(self, gateway: Optional[LLMGateway] = None) -> None:
        self.gateway = gateway or LLMGateway()

    def is_enabled(self) -> bool:
        return self.gateway.is_enabled()

    async def infer_sizes(self, rows: Sequence[SizeExtractionRow]) -> Dict[int, AISizeEstimate]:
        batch = [r for r in rows if normalize_text(r.text)][: self.gateway.max_batch_rows]
        if not batch:
            return {}
        requested = {r.index for r in batch}

        payload, meta = await self.gateway.complete_json(
            task="size_inference",
            system_prompt=SIZE_SYSTEM_PROMPT,
            user_prompt=build_size_prompt(batch),
            response_model=_AISizeBatchPayload,
        )

        out: Dict[int, AISizeEstimate] = {}
        rejected = 0
        for item in payload.items:
            estimate = validate_size_item(item, requested)
            if estimate is None:
                rejected += 1
                continue
            out.setdefault(estimate.index, estimate)
        logger.info(
            f"Size inference: requested={len(batch)} returned={len(payload.items)} "
            f"accepted={len(out)} rejected={rejected} latency_ms={meta.latency_ms}"
        )
        return out
