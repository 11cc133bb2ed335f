"""
LLM Gateway (assist-only, fail-open).

Design goals:
- Centralize LLM calls (prompt caps, timeouts, output parsing).
- Treat the LLM as untrusted assist: outputs must be a JSON object validated by a schema.
- Callers decide fallback behavior; this module only raises typed errors.
- Never log raw prompts or raw outputs (digests only).
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple, Type, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from estimate_shared.config.settings import LLMSettings, get_settings
from estimate_shared.utils.app_logger import get_logger
from estimate_shared.utils.llm_safety import digest_for_audit, mask_pii_text

logger = get_logger(__name__)

T = TypeVar("T", bound=BaseModel)


class LLMUnavailableError(RuntimeError):
    pass


class LLMRequestError(RuntimeError):
    pass


class LLMOutputValidationError(RuntimeError):
    pass


@dataclass(frozen=True)
class LLMCallMeta:
    provider: str
    model: str
    latency_ms: int
    prompt_digest: str


def _extract_json_object(text: str) -> Dict[str, Any]:
    """
    Best-effort JSON object extraction.

    Top-level arrays are rejected to keep the contract strict.
    """
    text = (text or "").strip()
    if not text:
        raise LLMOutputValidationError("Empty LLM output")

    # Common failure mode: fenced code blocks
    if text.startswith("```"):
        candidates = [p.strip() for p in text.split("```") if "{" in p and "}" in p]
        if candidates:
            text = max(candidates, key=len)
            if text.lower().startswith("json"):
                text = text[4:].strip()

    try:
        obj = json.loads(text)
        if isinstance(obj, dict):
            return obj
    except json.JSONDecodeError:
        pass

    # Fallback: outermost braces
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end == -1 or end <= start:
        raise LLMOutputValidationError("LLM output is not a JSON object")
    try:
        obj = json.loads(text[start : end + 1])
    except json.JSONDecodeError as e:
        raise LLMOutputValidationError(f"Failed to parse JSON object: {e}") from e
    if not isinstance(obj, dict):
        raise LLMOutputValidationError("LLM output JSON must be an object")
    return obj


class LLMGateway:
    """
    A thin, safe wrapper around an OpenAI-compatible chat completions endpoint.

    Providers:
    - disabled: every call raises LLMUnavailableError
    - openai_compat: POST {base_url}/chat/completions
    - mock: returns LLM_MOCK_JSON (tests, demos)
    """

    def __init__(self, llm_settings: Optional[LLMSettings] = None) -> None:
        cfg = llm_settings or get_settings().llm
        self.provider = (cfg.provider or "disabled").strip().lower()
        self.base_url = (cfg.base_url or "").strip().rstrip("/")
        self.api_key = (cfg.api_key or "").strip()
        self.model = (cfg.model or "").strip()
        self.timeout_s = float(cfg.timeout_seconds)
        self.temperature = float(cfg.temperature)
        self.max_tokens = int(cfg.max_tokens)
        self.enable_json_mode = bool(cfg.enable_json_mode)
        self.max_prompt_chars = int(cfg.max_prompt_chars)
        self.mock_json = cfg.mock_json or ""
        self.max_batch_rows = int(cfg.max_batch_rows)

    def is_enabled(self) -> bool:
        if self.provider in {"", "disabled", "off", "none"}:
            return False
        if self.provider == "openai_compat":
            return bool(self.base_url and self.model)
        if self.provider == "mock":
            return True
        return False

    async def complete_json(
        self,
        *,
        task: str,
        system_prompt: str,
        user_prompt: str,
        response_model: Type[T],
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> Tuple[T, LLMCallMeta]:
        if not self.is_enabled():
            raise LLMUnavailableError(
                "LLM is disabled or not configured (set LLM_PROVIDER=openai_compat and LLM_BASE_URL/LLM_MODEL)"
            )

        temperature = self.temperature if temperature is None else float(temperature)
        max_tokens = self.max_tokens if max_tokens is None else int(max_tokens)

        # Hard safety caps
        system_prompt = mask_pii_text(system_prompt, max_chars=self.max_prompt_chars)
        user_prompt = mask_pii_text(user_prompt, max_chars=self.max_prompt_chars)
        prompt_digest = digest_for_audit(
            {"system": system_prompt, "user": user_prompt, "task": task, "model": self.model}
        )

        started = time.monotonic()
        try:
            if self.provider == "mock":
                raw = self.mock_json.strip()
                if not raw:
                    raise LLMRequestError("LLM_PROVIDER=mock requires LLM_MOCK_JSON to be set")
                obj = _extract_json_object(raw)
            elif self.provider == "openai_compat":
                obj = await self._post_chat_completion(system_prompt, user_prompt, temperature, max_tokens)
            else:
                raise LLMUnavailableError(f"Unsupported LLM_PROVIDER: {self.provider}")
            out_model = response_model.model_validate(obj)
        except (ValidationError, LLMOutputValidationError) as e:
            logger.warning(f"LLM {task} output rejected (prompt={prompt_digest[:12]})")
            raise LLMOutputValidationError(f"LLM output validation failed: {e}") from e

        latency_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            f"LLM {task} ok provider={self.provider} model={self.model} "
            f"latency_ms={latency_ms} prompt={prompt_digest[:12]} output={digest_for_audit(obj)[:12]}"
        )
        return out_model, LLMCallMeta(
            provider=self.provider,
            model=self.model,
            latency_ms=latency_ms,
            prompt_digest=prompt_digest,
        )

    async def _post_chat_completion(
        self, system_prompt: str, user_prompt: str, temperature: float, max_tokens: int
    ) -> Dict[str, Any]:
        url = f"{self.base_url}/chat/completions"
        headers: Dict[str, str] = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        body: Dict[str, Any] = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if self.enable_json_mode:
            # OpenAI-style JSON mode (best-effort; some gateways ignore it)
            body["response_format"] = {"type": "json_object"}

        try:
            async with httpx.AsyncClient(timeout=self.timeout_s) as client:
                resp = await client.post(url, headers=headers, json=body)
        except httpx.HTTPError as e:
            raise LLMRequestError(f"LLM transport error: {e.__class__.__name__}: {e}") from e

        if resp.status_code >= 400:
            raise LLMRequestError(f"LLM HTTP {resp.status_code}: {resp.text[:500]}")

        try:
            data = resp.json()
        except ValueError as e:
            raise LLMOutputValidationError("LLM response body is not JSON") from e
        content = (((data.get("choices") or [{}])[0]).get("message") or {}).get("content") or ""
        return _extract_json_object(content)


def create_llm_gateway(llm_settings: Optional[LLMSettings] = None) -> LLMGateway:
    return LLMGateway(llm_settings)
