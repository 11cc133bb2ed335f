import pytest
from pydantic import ValidationError

from estimate_funnel.services.merged_cells import MergedCellFiller
from estimate_funnel.services.tables import FilledTable, RawTable, require_raw
from estimate_shared.models.sheet_grid import MergeRange


class TestRawTable:
    def test_rectangularized_and_normalized(self):
        raw = RawTable.from_grid([["Ａ", 1.0], [None], []], column_count=3)
        assert raw.column_count == 3
        assert raw.rows == (("A", "1", ""), ("", "", ""), ("", "", ""))

    def test_cell_out_of_range_is_blank(self):
        raw = RawTable.from_grid([["a"]])
        assert raw.cell(0, 0) == "a"
        assert raw.cell(5, 0) == ""
        assert raw.cell(0, -1) == ""

    def test_empty(self):
        assert RawTable.from_grid([]).is_empty()
        assert RawTable.from_grid([[], []]).is_empty()
        assert not RawTable.from_grid([["x"]]).is_empty()

    def test_require_raw(self):
        raw = RawTable.from_grid([["x"]])
        assert require_raw(raw) is raw
        with pytest.raises(TypeError):
            require_raw(FilledTable(rows=raw.rows, column_count=raw.column_count))


class TestMergedCellFiller:
    def test_fills_range_from_top_left(self):
        raw = RawTable.from_grid([["仮設工事", "", ""], ["", "", ""]])
        filled = MergedCellFiller.fill(raw, [MergeRange(top=0, left=0, bottom=1, right=2)])
        assert filled.to_lists() == [["仮設工事"] * 3, ["仮設工事"] * 3]
        # raw is untouched
        assert raw.rows[1] == ("", "", "")

    def test_never_overwrites_existing_values(self):
        raw = RawTable.from_grid([["A", "B"], ["", "C"]])
        filled = MergedCellFiller.fill(raw, [MergeRange(top=0, left=0, bottom=1, right=1)])
        assert filled.to_lists() == [["A", "B"], ["A", "C"]]

    def test_empty_top_left_fills_nothing(self):
        raw = RawTable.from_grid([["", "x"], ["", ""]])
        filled = MergedCellFiller.fill(raw, [MergeRange(top=0, left=0, bottom=1, right=0)])
        assert filled.to_lists() == [["", "x"], ["", ""]]

    def test_ranges_are_clipped_to_the_table(self):
        raw = RawTable.from_grid([["v", ""]])
        filled = MergedCellFiller.fill(
            raw,
            [MergeRange(top=0, left=0, bottom=9, right=9), MergeRange(top=5, left=5, bottom=6, right=6)],
        )
        assert filled.to_lists() == [["v", "v"]]
        assert isinstance(filled, FilledTable)


def test_merge_range_rejects_inverted_bounds():
    with pytest.raises(ValidationError):
        MergeRange(top=3, left=0, bottom=1, right=0)
    assert MergeRange(top=0, left=0, bottom=1, right=1).contains(1, 1)
