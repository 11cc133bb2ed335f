from __future__ import annotations

import pytest

from estimate_funnel.services.column_detection import EstimateColumnDetector, build_tables
from estimate_funnel.services.column_inference import LLMColumnInferenceClient
from estimate_funnel.services.hybrid_resolution import HybridResolutionMerger
from estimate_funnel.services.thresholds import DetectionThresholds
from estimate_shared.config.settings import LLMSettings
from estimate_shared.models.sheet_grid import MergeRange
from estimate_shared.services.llm_gateway import LLMGateway


@pytest.fixture
def detector() -> EstimateColumnDetector:
    return EstimateColumnDetector(DetectionThresholds())


def _roles(response):
    c = response.columns
    return {"item": c.item, "desc": c.desc, "qty": c.qty, "unit": c.unit, "size": c.size, "amount": c.amount}


class TestEndToEnd:
    def test_sheet_with_title_rows_and_header(self, detector, estimate_sheet):
        out = detector.detect(estimate_sheet)
        assert _roles(out) == {"item": 1, "desc": 2, "qty": 3, "unit": 4, "size": 2, "amount": 5}
        assert out.columns.header_row_index == 2
        assert out.debug.role_sources == {"item": "header", "desc": "header", "qty": "header", "unit": "header"}
        assert out.debug.amount_step == "header"
        assert out.debug.amount_verified is True
        assert out.metadata == {"rows": 50, "cols": 5}
        assert out.warnings == []
        assert out.ai_status == "skipped"

    def test_headerless_sheet_uses_statistics(self, detector, headerless_grid):
        out = detector.detect(headerless_grid)
        assert _roles(out) == {"item": 1, "desc": 2, "qty": 3, "unit": 4, "size": 2, "amount": 6}
        assert out.columns.header_row_index is None
        assert set(out.debug.role_sources.values()) == {"heuristic"}
        assert out.debug.amount_step == "heuristic"
        assert out.debug.sample_size == 30
        assert "amount_hint" in out.debug.score_traces

    def test_header_labels_win_over_statistics(self, detector):
        grid = [["品名", "摘要", "金額", "単位", "数量"]]
        for i in range(12):
            grid.append([f"部材{i}", f"ステンレス製 手摺 取付け 既存撤去含む {i}", i + 1, "本", (i + 1) * 1000])
        out = detector.detect(grid)
        assert (out.columns.qty, out.columns.amount) == (5, 3)
        assert out.debug.role_sources["qty"] == "header"

    def test_merged_title_does_not_count_as_amount(self, detector):
        grid = [
            ["品名", "摘要", "数量", "単位", "備考"],
            ["仮設工事 150000", "", "", "", ""],
        ]
        for i in range(12):
            grid.append([f"足場{i}", "くさび緊結式 W600", 10 + i, "㎡", ""])
        out = detector.detect(grid, merged_cells=[MergeRange(top=1, left=0, bottom=1, right=4)])
        assert out.columns.amount is None
        assert any(w.startswith("Amount column unresolved") for w in out.warnings)


class TestDegenerateInput:
    @pytest.mark.parametrize("grid", [[], [[]], [[], []]])
    def test_empty_table_defaults(self, detector, grid):
        out = detector.detect(grid)
        assert _roles(out) == {"item": 1, "desc": 1, "qty": 1, "unit": 1, "size": 1, "amount": None}
        assert out.columns.header_row_index is None
        assert out.warnings

    def test_ragged_rows_and_wider_sheet(self, detector):
        out = detector.detect([["a"], ["b", "c", "d"]], column_count=6)
        assert out.metadata == {"rows": 2, "cols": 6}
        assert "Positional defaults used for: item, desc, qty, unit" in out.warnings

    def test_narrow_sheet_fallbacks_stay_in_range(self, detector):
        out = detector.detect([["x", "1"], ["y", "2"]])
        for col in (out.columns.item, out.columns.desc, out.columns.qty, out.columns.unit, out.columns.size):
            assert 1 <= col <= 2


def test_build_tables_keeps_raw_and_filled_apart():
    raw, filled = build_tables([["A", ""]], [MergeRange(top=0, left=0, bottom=0, right=1)])
    assert raw.rows == (("A", ""),)
    assert filled.rows == (("A", "A"),)


def test_thresholds_change_eligibility(headerless_grid):
    strict = EstimateColumnDetector(DetectionThresholds(min_non_empty=1000))
    out = strict.detect(headerless_grid)
    assert set(out.debug.role_sources.values()) == {"fallback"}


class TestDetectWithAI:
    @pytest.mark.asyncio
    async def test_disabled_provider_reports_disabled(self, detector):
        grid = [["外壁塗装", "シリコン", "下地調整込み", "120", "㎡", "180000"]] * 3
        merger = HybridResolutionMerger(
            column_client=LLMColumnInferenceClient(LLMGateway(LLMSettings(provider="disabled")))
        )
        out = await detector.detect_with_ai(grid, merger=merger)
        assert out.ai_status == "disabled"
        assert out.columns == detector.detect(grid).columns

    @pytest.mark.asyncio
    async def test_confident_detection_skips_ai(self, detector, estimate_sheet):
        merger = HybridResolutionMerger(
            column_client=LLMColumnInferenceClient(LLMGateway(LLMSettings(provider="mock", mock_json="{}")))
        )
        out = await detector.detect_with_ai(estimate_sheet, merger=merger)
        assert out.ai_status == "skipped"
        assert out.columns.amount == 5
