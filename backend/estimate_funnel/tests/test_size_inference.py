from __future__ import annotations

import json

import pytest

from estimate_funnel.services.size_inference import (
    _AISizeBatchPayload,
    LLMSizeInferenceClient,
    build_size_prompt,
    validate_size_item,
)
from estimate_shared.config.settings import LLMSettings
from estimate_shared.models.sizes import SizeExtractionRow
from estimate_shared.services.llm_gateway import LLMCallMeta, LLMGateway, LLMUnavailableError


class TestValidateSizeItem:
    def test_valid_item(self):
        out = validate_size_item(
            {"index": 4, "heightMm": 50, "wideMm": 1200.4, "confidence": 0.8, "notes": ["W表記"]},
            {4},
        )
        assert out is not None
        assert out.size.height_mm == 50
        assert out.size.wide_mm == 1200
        assert out.confidence == 0.8
        assert out.notes == ["W表記"]

    def test_half_millimetres_round_up(self):
        out = validate_size_item({"index": 1, "heightMm": 22.5, "wideMm": 20.5}, {1})
        assert (out.size.height_mm, out.size.wide_mm) == (23, 21)

    def test_snake_case_keys(self):
        out = validate_size_item({"index": 1, "length_mm": 1800}, {1})
        assert out.size.length_mm == 1800

    def test_unrequested_or_bad_index(self):
        assert validate_size_item({"index": 9, "heightMm": 50}, {1}) is None
        assert validate_size_item({"index": "1", "heightMm": 50}, {1}) is None
        assert validate_size_item({"index": True, "heightMm": 50}, {1}) is None
        assert validate_size_item(["not", "a", "dict"], {1}) is None

    def test_out_of_range_and_wrong_type_fields_are_dropped(self):
        out = validate_size_item(
            {"index": 1, "heightMm": 0, "wideMm": 25000, "lengthMm": "1200", "overlapMm": 80},
            {1},
        )
        assert out.size.height_mm is None
        assert out.size.wide_mm is None
        assert out.size.length_mm is None
        assert out.size.overlap_mm == 80
        assert sorted(out.dropped_fields) == ["height_mm", "length_mm", "wide_mm"]

    def test_non_finite_and_bool_values(self):
        out = validate_size_item({"index": 1, "heightMm": float("inf"), "wideMm": True}, {1})
        assert out.size.is_empty()

    def test_confidence_is_clamped(self):
        assert validate_size_item({"index": 1, "confidence": 3}, {1}).confidence == 1.0
        assert validate_size_item({"index": 1, "confidence": "high"}, {1}).confidence == 0.0


def test_prompt_lists_rows_by_index():
    prompt = build_size_prompt([SizeExtractionRow(index=12, text="ＵＶ塗装 立上り")])
    assert "ROW12: UV塗装 立上り" in prompt


def _mock_gateway(payload) -> LLMGateway:
    return LLMGateway(LLMSettings(provider="mock", mock_json=json.dumps(payload)))


@pytest.mark.asyncio
async def test_llm_client_batches_and_validates():
    gateway = _mock_gateway(
        {
            "items": [
                {"index": 1, "heightMm": 300, "confidence": 0.6},
                {"index": 1, "heightMm": 999},
                {"index": 5, "wideMm": 100},
                {"index": 2, "wideMm": -5},
            ]
        }
    )
    client = LLMSizeInferenceClient(gateway)
    assert client.is_enabled()

    out = await client.infer_sizes(
        [SizeExtractionRow(index=1, text="側溝"), SizeExtractionRow(index=2, text="目地"), SizeExtractionRow(index=3)]
    )
    assert set(out) == {1, 2}
    assert out[1].size.height_mm == 300
    assert out[2].size.is_empty()
    assert out[2].dropped_fields == ["wide_mm"]


class _CapturingGateway(LLMGateway):
    def __init__(self) -> None:
        super().__init__(LLMSettings(provider="mock", mock_json="{}", max_batch_rows=2))
        self.prompts = []

    async def complete_json(self, **kwargs):
        self.prompts.append(kwargs["user_prompt"])
        return _AISizeBatchPayload(), LLMCallMeta(provider="mock", model="", latency_ms=0, prompt_digest="x")


@pytest.mark.asyncio
async def test_llm_client_respects_batch_cap():
    gateway = _CapturingGateway()
    client = LLMSizeInferenceClient(gateway)
    assert await client.infer_sizes([SizeExtractionRow(index=i, text=f"row{i}") for i in range(5)]) == {}
    assert len(gateway.prompts) == 1
    assert "ROW0:" in gateway.prompts[0] and "ROW1:" in gateway.prompts[0]
    assert "ROW2:" not in gateway.prompts[0]


@pytest.mark.asyncio
async def test_disabled_gateway_raises_unavailable():
    client = LLMSizeInferenceClient(LLMGateway(LLMSettings(provider="disabled")))
    assert not client.is_enabled()
    with pytest.raises(LLMUnavailableError):
        await client.infer_sizes([SizeExtractionRow(index=1, text="側溝")])
