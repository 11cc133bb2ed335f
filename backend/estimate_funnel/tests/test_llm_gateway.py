from __future__ import annotations

import json

import httpx
import pytest
from pydantic import BaseModel

from estimate_shared.config.settings import LLMSettings
from estimate_shared.services.llm_gateway import (
    LLMGateway,
    LLMOutputValidationError,
    LLMRequestError,
    LLMUnavailableError,
    _extract_json_object,
)


class _Echo(BaseModel):
    ok: bool


def _gateway(**kwargs) -> LLMGateway:
    return LLMGateway(LLMSettings(**kwargs))


async def _complete(gateway: LLMGateway):
    return await gateway.complete_json(
        task="test",
        system_prompt="system",
        user_prompt="連絡先 taro@example.com 090-1234-5678",
        response_model=_Echo,
    )


class TestExtractJsonObject:
    def test_plain_object(self):
        assert _extract_json_object('{"a": 1}') == {"a": 1}

    def test_fenced_block(self):
        assert _extract_json_object('```json\n{"a": 1}\n```') == {"a": 1}

    def test_object_inside_prose(self):
        assert _extract_json_object('Here you go: {"a": 2} hope it helps') == {"a": 2}

    @pytest.mark.parametrize("text", ["", "   ", "[1, 2]", "no json here", "{broken"])
    def test_rejected(self, text):
        with pytest.raises(LLMOutputValidationError):
            _extract_json_object(text)


class TestProviders:
    def test_enablement(self):
        assert not _gateway(provider="disabled").is_enabled()
        assert not _gateway(provider="openai_compat").is_enabled()
        assert _gateway(provider="openai_compat", base_url="http://llm", model="m").is_enabled()
        assert _gateway(provider="mock").is_enabled()
        assert not _gateway(provider="something-else").is_enabled()

    @pytest.mark.asyncio
    async def test_disabled_raises_unavailable(self):
        with pytest.raises(LLMUnavailableError):
            await _complete(_gateway(provider="disabled"))

    @pytest.mark.asyncio
    async def test_mock_returns_validated_model(self):
        out, meta = await _complete(_gateway(provider="mock", mock_json='{"ok": true}'))
        assert out.ok is True
        assert meta.provider == "mock"
        assert len(meta.prompt_digest) == 64

    @pytest.mark.asyncio
    async def test_mock_without_payload(self):
        with pytest.raises(LLMRequestError):
            await _complete(_gateway(provider="mock"))

    @pytest.mark.asyncio
    async def test_schema_mismatch_is_an_output_error(self):
        with pytest.raises(LLMOutputValidationError):
            await _complete(_gateway(provider="mock", mock_json='{"ok": "perhaps"}'))


def _patch_transport(monkeypatch, handler) -> None:
    real_client = httpx.AsyncClient

    def factory(**kwargs):
        return real_client(transport=httpx.MockTransport(handler), **kwargs)

    monkeypatch.setattr(httpx, "AsyncClient", factory)


class TestOpenAICompat:
    @pytest.mark.asyncio
    async def test_chat_completion_round_trip(self, monkeypatch):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers.get("Authorization")
            seen["body"] = json.loads(request.content)
            content = '```json\n{"ok": true}\n```'
            return httpx.Response(200, json={"choices": [{"message": {"content": content}}]})

        _patch_transport(monkeypatch, handler)
        gateway = _gateway(provider="openai_compat", base_url="http://llm/v1/", model="m1", api_key="k")
        out, meta = await _complete(gateway)

        assert out.ok is True
        assert seen["url"] == "http://llm/v1/chat/completions"
        assert seen["auth"] == "Bearer k"
        assert seen["body"]["model"] == "m1"
        assert seen["body"]["response_format"] == {"type": "json_object"}
        user_prompt = seen["body"]["messages"][1]["content"]
        assert "taro@example.com" not in user_prompt
        assert "090-1234-5678" not in user_prompt
        assert meta.model == "m1"

    @pytest.mark.asyncio
    async def test_http_error_status(self, monkeypatch):
        _patch_transport(monkeypatch, lambda request: httpx.Response(502, text="bad gateway"))
        gateway = _gateway(provider="openai_compat", base_url="http://llm", model="m1")
        with pytest.raises(LLMRequestError, match="502"):
            await _complete(gateway)

    @pytest.mark.asyncio
    async def test_transport_error(self, monkeypatch):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        _patch_transport(monkeypatch, handler)
        gateway = _gateway(provider="openai_compat", base_url="http://llm", model="m1")
        with pytest.raises(LLMRequestError, match="ConnectError"):
            await _complete(gateway)

    @pytest.mark.asyncio
    async def test_non_json_body(self, monkeypatch):
        _patch_transport(monkeypatch, lambda request: httpx.Response(200, text="<html>"))
        gateway = _gateway(provider="openai_compat", base_url="http://llm", model="m1")
        with pytest.raises(LLMOutputValidationError):
            await _complete(gateway)
