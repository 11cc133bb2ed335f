from __future__ import annotations

import json

import pytest

from estimate_funnel.services.column_inference import (
    LLMColumnInferenceClient,
    build_sample_text,
    select_ai_sample,
    validate_column_guess,
)
from estimate_funnel.services.merged_cells import MergedCellFiller
from estimate_funnel.services.tables import RawTable
from estimate_shared.config.settings import LLMSettings
from estimate_shared.services.llm_gateway import LLMGateway, LLMOutputValidationError


def test_validate_column_guess_range_checks_every_role():
    guess = validate_column_guess(
        {"item": 1, "desc": 2, "qty": "3", "unit": 9, "amount": True, "size": 0, "confidence": 0.7, "notes": ["x", 1]},
        width=6,
    )
    assert (guess.item, guess.desc) == (1, 2)
    assert guess.qty is None
    assert guess.unit is None
    assert guess.amount is None
    assert guess.size is None
    assert guess.confidence == 0.7
    assert guess.notes == ["x"]


def test_sample_prefers_body_rows_when_there_are_enough():
    body = [("外壁", "10", "㎡")] * 12
    rows = [("御見積書", "", "")] + body
    assert select_ai_sample(rows, 60) == body
    few = [("御見積書", "", ""), ("外壁", "10", "㎡")]
    assert select_ai_sample(few, 60) == few


def test_sample_text_labels_cells_with_column_numbers():
    filled = MergedCellFiller.fill(RawTable.from_grid([["品名", "数量"], ["外壁", 10]]))
    text = build_sample_text(filled, start_row=1)
    assert text == "ROW1\t[1]外壁\t[2]10"


@pytest.mark.asyncio
async def test_llm_column_client_with_mock_provider():
    payload = {"item": 1, "desc": 2, "qty": 4, "unit": 5, "amount": 6, "size": 2, "confidence": 0.9}
    client = LLMColumnInferenceClient(LLMGateway(LLMSettings(provider="mock", mock_json=json.dumps(payload))))
    guess = await client.infer_columns("ROW1\t[1]a", width=6)
    assert (guess.qty, guess.unit, guess.amount) == (4, 5, 6)


@pytest.mark.asyncio
async def test_llm_column_client_rejects_non_object_output():
    client = LLMColumnInferenceClient(LLMGateway(LLMSettings(provider="mock", mock_json="[1, 2]")))
    with pytest.raises(LLMOutputValidationError):
        await client.infer_columns("ROW1\t[1]a", width=6)
