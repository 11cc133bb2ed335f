import pytest

from estimate_funnel.services.dimension_extractor import DimensionExtractor, default_height_for, to_mm_smart
from estimate_funnel.services.thresholds import DetectionThresholds
from estimate_shared.config.settings import get_settings
from estimate_shared.models.sizes import SizeResult


@pytest.fixture
def extractor() -> DimensionExtractor:
    return DimensionExtractor()


class TestPairAndTokens:
    def test_pair_notation(self, extractor):
        assert extractor.extract("300×300") == SizeResult(wide_mm=300, height_mm=300)
        assert extractor.extract("U字側溝 240x300") == SizeResult(wide_mm=240, height_mm=300)

    def test_pair_short_circuits_width_and_height_tokens(self, extractor):
        out = extractor.extract("150×200 W=900 H=50")
        assert (out.wide_mm, out.height_mm) == (150, 200)

    def test_width_height_overlap(self, extractor):
        out = extractor.extract("W-1200 H=50 重ね=100")
        assert out == SizeResult(wide_mm=1200, height_mm=50, overlap_mm=100)

    def test_japanese_tokens(self, extractor):
        assert extractor.extract("幅150 高さ 50").wide_mm == 150
        assert extractor.extract("幅150 高さ 50").height_mm == 50
        assert extractor.extract("立上り200").height_mm == 200
        assert extractor.extract("ヨコ:300").wide_mm == 300
        assert extractor.extract("ラップ 50").overlap_mm == 50

    def test_full_width_input(self, extractor):
        assert extractor.extract("Ｗ＝１２００").wide_mm == 1200

    def test_baseboard_is_not_a_width_token(self, extractor):
        out = extractor.extract("巾木 H=60")
        assert out.wide_mm is None
        assert out.height_mm == 60


class TestLengthAndUnits:
    def test_meters_suffix(self, extractor):
        assert extractor.extract("L=1.2m").length_mm == 1200

    def test_unitless_integer_is_millimetres(self, extractor):
        assert extractor.extract("L-1200").length_mm == 1200

    def test_unitless_small_decimal_is_metres(self, extractor):
        assert extractor.extract("W=0.6").wide_mm == 600

    def test_explicit_mm(self, extractor):
        assert extractor.extract("W=300mm").wide_mm == 300

    def test_out_of_bounds_values_are_rejected(self, extractor):
        assert extractor.extract("L=25000").length_mm is None
        assert extractor.extract("W=00").wide_mm is None

    @pytest.mark.parametrize("text,expected", [("L=2m", 2000), ("L=4m", 4000), ("長さ3m", 3000), ("L=12 m", 12000)])
    def test_whole_metres(self, extractor, text, expected):
        assert extractor.extract(text).length_mm == expected

    def test_single_digit_without_metres_is_ignored(self, extractor):
        assert extractor.extract("L=2").length_mm is None
        assert extractor.extract("L=2mm").length_mm is None

    @pytest.mark.parametrize("text", ["ウレタン防水 立上り H=300 ㎡", "H=300 m2", "H=300m²", "H=300 m^2"])
    def test_area_unit_is_not_a_metres_suffix(self, extractor, text):
        assert extractor.extract(text).height_mm == 300

    def test_explicit_height_beats_category_default_before_area_unit(self, extractor):
        assert extractor.extract("溝 H=250 m2").height_mm == 250

    def test_per_metre_suffix_keeps_millimetres(self, extractor):
        assert extractor.extract("立上り H=200 m当り").height_mm == 200

    def test_detached_metres_at_end_is_still_rejected_when_too_long(self, extractor):
        assert extractor.extract("L=25 m").length_mm is None

    def test_bound_is_configurable(self):
        narrow = DimensionExtractor(DetectionThresholds(dimension_upper_bound_mm=1000))
        assert narrow.extract("W=1200").wide_mm is None
        assert narrow.extract("W=900").wide_mm == 900

    def test_default_bound_comes_from_settings(self, monkeypatch):
        monkeypatch.setattr(get_settings().detection, "dimension_upper_bound_mm", 1000)
        assert DimensionExtractor().extract("W=1200").wide_mm is None


class TestCategoryDefaults:
    def test_groove_gets_default_height_only(self, extractor):
        assert extractor.extract("U字溝 据付") == SizeResult(height_mm=300)

    def test_baseboard_default(self, extractor):
        assert extractor.extract("ソフト巾木").height_mm == 200

    def test_explicit_height_wins(self, extractor):
        assert extractor.extract("側溝 H=450").height_mm == 450

    def test_lookup(self):
        assert default_height_for("溝") == 300
        assert default_height_for("外壁") is None


def test_no_dimensions(extractor):
    assert extractor.extract("シーリング打替え").is_empty()
    assert extractor.extract("").is_empty()


def test_extract_many(extractor):
    out = extractor.extract_many([(3, "W=300"), (7, "")])
    assert out[3].wide_mm == 300
    assert out[7].is_empty()


@pytest.mark.parametrize(
    "number,unit,expected",
    [
        ("1.2", "m", 1200),
        ("1200", None, 1200),
        ("1.5", None, 1500),
        ("25.5", None, 26),
        # halves round up, not to even
        ("20.5", None, 21),
        ("22.5", None, 23),
        ("0", None, None),
    ],
)
def test_to_mm_smart(number, unit, expected):
    assert to_mm_smart(number, unit) == expected


def test_size_result_format():
    assert SizeResult(wide_mm=300, height_mm=300, length_mm=1200, overlap_mm=100).format() == "300×300 L=1200 重ね=100"
    assert SizeResult(height_mm=50).format() == "H=50"
    assert SizeResult().format() == ""
