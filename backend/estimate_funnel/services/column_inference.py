"""
LLM column-role inference for sheets the statistics could not settle.

The model sees a labelled sample of likely body rows ("[3]12") taken from the
merge-filled table and answers with 1-based column numbers. Answers are range
checked here; whether they are used is decided by HybridResolutionMerger.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Sequence

from pydantic import BaseModel, ConfigDict

from estimate_funnel.services.line_classifier import is_likely_body_row
from estimate_funnel.services.tables import FilledTable, Row
from estimate_shared.services.llm_gateway import LLMGateway
from estimate_shared.utils.app_logger import get_logger

logger = get_logger(__name__)

AI_COLUMN_ROLES = ("item", "desc", "qty", "unit", "amount", "size")

COLUMN_SYSTEM_PROMPT = """
あなたは日本の建築見積書（明細表）の列構造を推定するエンジンです。
各行はタブ区切りで、各セルには [列番号] が付いています（1始まり）。
次の役割の列番号を推定してください:
- item: 品名・名称・工種
- desc: 摘要・仕様・規格（長めのテキスト）
- qty: 数量（小さめの数値）
- unit: 単位（㎡, m, 式, 箇所, 本 など）
- amount: 金額（大きめの数値、無ければ null）
- size: W/H/L などの寸法表記が最も多い列（無ければ desc と同じ）
必ず JSON オブジェクトだけを返す:
{"item": 1, "desc": 2, "qty": 3, "unit": 4, "amount": 6, "size": 2, "confidence": 0.0, "notes": ["根拠"]}
""".strip()


@dataclass(frozen=True)
class AIColumnGuess:
    """Validated 1-based columns; None where the model gave nothing usable."""

    item: Optional[int] = None
    desc: Optional[int] = None
    qty: Optional[int] = None
    unit: Optional[int] = None
    amount: Optional[int] = None
    size: Optional[int] = None
    confidence: float = 0.0
    notes: List[str] = field(default_factory=list)

    def get(self, role: str) -> Optional[int]:
        return getattr(self, role)


class ColumnInferenceClient(Protocol):
    async def infer_columns(self, sample_text: str, width: int) -> AIColumnGuess:
        ...


class _AIColumnPayload(BaseModel):
    model_config = ConfigDict(extra="allow")


def _valid_column(value: Any, width: int) -> Optional[int]:
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value if 1 <= value <= width else None


def validate_column_guess(raw: Dict[str, Any], width: int) -> AIColumnGuess:
    cols = {role: _valid_column(raw.get(role), width) for role in AI_COLUMN_ROLES}
    confidence = raw.get("confidence")
    if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
        confidence = 0.0
    notes = raw.get("notes")
    return AIColumnGuess(
        **cols,
        confidence=min(1.0, max(0.0, float(confidence))),
        notes=[n for n in notes if isinstance(n, str)][:5] if isinstance(notes, list) else [],
    )


def select_ai_sample(rows: Sequence[Row], max_rows: int) -> List[Row]:
    filled = [r for r in rows if any(r)]
    body = [r for r in filled if is_likely_body_row(r)][:max_rows]
    if len(body) >= min(10, max_rows):
        return body
    return filled[:max_rows]


def build_sample_text(table: FilledTable, *, start_row: int = 0, max_rows: int = 60) -> str:
    sample = select_ai_sample(table.rows[start_row:], max_rows)
    lines = []
    for i, row in enumerate(sample, start=1):
        cells = "\t".join(f"[{c + 1}]{row[c]}" for c in range(table.column_count))
        lines.append(f"ROW{i}\t{cells}")
    return "\n".join(lines)


class LLMColumnInferenceClient:
    """ColumnInferenceClient backed by LLMGateway."""

    def __init__(self, gateway: Optional[LLMGateway] = None) -> None:
        self.gateway = gateway or LLMGateway()

    def is_enabled(self) -> bool:
        return self.gateway.is_enabled()

    async def infer_columns(self, sample_text: str, width: int) -> AIColumnGuess:
        payload, meta = await self.gateway.complete_json(
            task="column_inference",
            system_prompt=COLUMN_SYSTEM_PROMPT,
            user_prompt=f"列数: {width}\n\n{sample_text}",
            response_model=_AIColumnPayload,
        )
        guess = validate_column_guess(payload.model_dump(), width)
        logger.info(f"Column inference: width={width} confidence={guess.confidence:.2f} latency_ms={meta.latency_ms}")
        return guess
