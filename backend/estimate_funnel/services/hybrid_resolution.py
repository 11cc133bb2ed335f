"""
Rule-first / AI-fallback merging.

Rules always run first and their fields are never overwritten. The AI is
asked only about what the rules left open (rows without a primary
dimension, column roles that fell back to positional defaults, an unresolved
amount). The AI step is fail-open: a timeout, transport error or invalid
output is reported through ai_status / ai_error and the rule result is
returned unchanged.
"""

from __future__ import annotations

import asyncio
from typing import Dict, List, Optional, Sequence, Tuple

from estimate_funnel.services.amount_resolver import AmountColumnResolver
from estimate_funnel.services.column_inference import (
    AIColumnGuess,
    ColumnInferenceClient,
    LLMColumnInferenceClient,
    build_sample_text,
)
from estimate_funnel.services.dimension_extractor import DimensionExtractor
from estimate_funnel.services.role_scorer import CORE_ROLES
from estimate_funnel.services.size_inference import LLMSizeInferenceClient, SizeInferenceClient
from estimate_funnel.services.tables import FilledTable, RawTable
from estimate_funnel.services.thresholds import DetectionThresholds
from estimate_shared.config.settings import get_settings
from estimate_shared.models.estimate_columns import ColumnDetectionResponse
from estimate_shared.models.sizes import (
    DIMENSION_FIELDS,
    AISizeEstimate,
    HybridSizeResolution,
    SizeExtractionRow,
    SizeResult,
    SizeSource,
)
from estimate_shared.services.llm_gateway import (
    LLMOutputValidationError,
    LLMRequestError,
    LLMUnavailableError,
)
from estimate_shared.utils.app_logger import get_logger
from estimate_shared.utils.text_normalization import normalize_text

logger = get_logger(__name__)

_AI_ERRORS = (asyncio.TimeoutError, LLMUnavailableError, LLMRequestError, LLMOutputValidationError)


def merge_size(rule: SizeResult, ai: Optional[SizeResult]) -> Tuple[SizeResult, SizeSource]:
    """Fill only the fields the rules left empty."""
    if ai is None or ai.is_empty():
        return rule, ("none" if rule.is_empty() else "rule")
    values: Dict[str, Optional[int]] = {}
    used_ai = False
    for name in DIMENSION_FIELDS:
        rule_value = getattr(rule, name)
        if rule_value is not None:
            values[name] = rule_value
            continue
        ai_value = getattr(ai, name)
        values[name] = ai_value
        used_ai = used_ai or ai_value is not None
    merged = SizeResult(**values)
    if not used_ai:
        return merged, ("none" if rule.is_empty() else "rule")
    return merged, ("ai" if rule.is_empty() else "rule+ai")


def _describe(e: BaseException) -> str:
    if isinstance(e, asyncio.TimeoutError):
        return "timeout"
    return f"{type(e).__name__}: {e}"


class HybridResolutionMerger:
    def __init__(
        self,
        *,
        extractor: Optional[DimensionExtractor] = None,
        size_client: Optional[SizeInferenceClient] = None,
        column_client: Optional[ColumnInferenceClient] = None,
        timeout_s: Optional[float] = None,
    ) -> None:
        self.extractor = extractor or DimensionExtractor()
        self._size_client = size_client
        self._column_client = column_client
        self.timeout_s = float(timeout_s if timeout_s is not None else get_settings().llm.timeout_seconds)

    @property
    def size_client(self) -> SizeInferenceClient:
        if self._size_client is None:
            self._size_client = LLMSizeInferenceClient()
        return self._size_client

    @property
    def column_client(self) -> ColumnInferenceClient:
        if self._column_client is None:
            self._column_client = LLMColumnInferenceClient()
        return self._column_client

    @staticmethod
    def _client_enabled(client: object) -> bool:
        is_enabled = getattr(client, "is_enabled", None)
        return True if is_enabled is None else bool(is_enabled())

    async def resolve_sizes(
        self,
        rows: Sequence[SizeExtractionRow],
        *,
        use_ai: bool,
        thresholds: Optional[DetectionThresholds] = None,
    ) -> HybridSizeResolution:
        extractor = self.extractor if thresholds is None else DimensionExtractor(thresholds)
        rule_sizes = {r.index: extractor.extract(r.text) for r in rows}
        unresolved = [
            r for r in rows if not rule_sizes[r.index].has_primary_dimension() and normalize_text(r.text)
        ]

        out = HybridSizeResolution(ai_requested_rows=[r.index for r in unresolved] if use_ai else [])
        ai_sizes: Dict[int, AISizeEstimate] = {}

        if not use_ai or not unresolved:
            out.ai_status = "skipped"
        elif not self._client_enabled(self.size_client):
            out.ai_status = "disabled"
        else:
            try:
                ai_sizes = await asyncio.wait_for(self.size_client.infer_sizes(unresolved), timeout=self.timeout_s)
                out.ai_status = "ok"
            except _AI_ERRORS as e:
                out.ai_status, out.ai_error = "failed", _describe(e)
                logger.warning(f"Size inference failed, keeping rule results: {out.ai_error}")
            except Exception as e:
                out.ai_status, out.ai_error = "failed", _describe(e)
                logger.error(f"Unexpected size inference failure, keeping rule results: {out.ai_error}")

        for r in rows:
            estimate = ai_sizes.get(r.index)
            size, source = merge_size(rule_sizes[r.index], estimate.size if estimate else None)
            out.sizes[r.index] = size
            out.sources[r.index] = source

        logger.info(
            f"Size resolution: rows={len(rows)} unresolved={len(unresolved)} "
            f"ai_status={out.ai_status} ai_rows={len(ai_sizes)}"
        )
        return out

    @staticmethod
    def needs_column_ai(response: ColumnDetectionResponse) -> bool:
        sources = response.debug.role_sources
        return response.columns.amount is None or any(sources.get(r) == "fallback" for r in CORE_ROLES)

    async def resolve_columns(
        self,
        response: ColumnDetectionResponse,
        raw: RawTable,
        filled: FilledTable,
        thresholds: DetectionThresholds,
    ) -> ColumnDetectionResponse:
        """Let the AI fill fallback roles and an unresolved amount; detected roles stay as they are."""
        if raw.is_empty() or not self.needs_column_ai(response):
            return response.model_copy(update={"ai_status": "skipped"})
        if not self._client_enabled(self.column_client):
            return response.model_copy(update={"ai_status": "disabled"})

        header_row = response.columns.header_row_index
        start_row = 0 if header_row is None else header_row + 1
        sample_text = build_sample_text(filled, start_row=start_row, max_rows=thresholds.ai_sample_rows)
        try:
            guess: AIColumnGuess = await asyncio.wait_for(
                self.column_client.infer_columns(sample_text, raw.column_count), timeout=self.timeout_s
            )
        except _AI_ERRORS as e:
            logger.warning(f"Column inference failed, keeping detected columns: {_describe(e)}")
            return response.model_copy(update={"ai_status": "failed", "ai_error": _describe(e)})
        except Exception as e:
            logger.error(f"Unexpected column inference failure, keeping detected columns: {_describe(e)}")
            return response.model_copy(update={"ai_status": "failed", "ai_error": _describe(e)})

        columns = response.columns.model_copy()
        debug = response.debug.model_copy(deep=True)
        warnings: List[str] = list(response.warnings)

        old_desc = columns.desc
        desc_was_fallback = debug.role_sources.get("desc") == "fallback"
        for role in CORE_ROLES:
            if debug.role_sources.get(role) != "fallback":
                continue
            ai_col = guess.get(role)
            if ai_col is None:
                continue
            setattr(columns, role, ai_col)
            debug.role_sources[role] = "ai"
            debug.notes.append(f"{role} col{ai_col} from AI (confidence={guess.confidence:.2f})")

        if desc_was_fallback and columns.size == old_desc:
            columns.size = guess.size or columns.desc

        if columns.amount is None and guess.amount is not None:
            amount = AmountColumnResolver.resolve(
                raw,
                qty_col=columns.qty - 1,
                unit_col=columns.unit - 1,
                thresholds=thresholds,
                start_row=start_row,
                external_candidate=guess.amount - 1,
            )
            debug.rejected_candidates.extend(amount.rejected)
            debug.notes.extend(amount.notes)
            if amount.column is not None:
                columns.amount = amount.column + 1
                debug.amount_step = "ai"
                debug.amount_candidate = columns.amount
                debug.amount_verified = True
                warnings = [w for w in warnings if not w.startswith("Amount column unresolved")]

        remaining = [r for r in CORE_ROLES if debug.role_sources.get(r) == "fallback"]
        warnings = [w for w in warnings if not w.startswith("Positional defaults used for")]
        if remaining:
            warnings.append(f"Positional defaults used for: {', '.join(remaining)}")

        logger.info(
            f"Column AI merge: sources={debug.role_sources} amount={columns.amount} "
            f"confidence={guess.confidence:.2f}"
        )
        return response.model_copy(
            update={"columns": columns, "debug": debug, "warnings": warnings, "ai_status": "ok", "ai_error": None}
        )
