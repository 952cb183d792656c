"""
Tests for popwarden.scoring: Characteristics normalization and the
confidence rubric.
"""

import pytest

pytestmark = pytest.mark.scoring

from popwarden.errors import InvalidInputError
from popwarden.scoring import Characteristics, ConfidenceScorer
from popwarden.scoring.characteristics import Position


@pytest.fixture
def scorer(clock):
    return ConfidenceScorer(clock=clock)


def signal_names(result):
    return [s["name"] for s in result.signals]


class TestCharacteristics:
    def test_parses_camel_case(self):
        chars = Characteristics.from_data({
            "position": "fixed",
            "zIndex": 9999,
            "hasCloseButton": True,
            "dimensions": {"width": 400, "height": 300},
        })
        assert chars.position == Position.FIXED
        assert chars.z_index == 9999
        assert chars.has_close_button is True
        assert chars.dimensions.width == 400

    def test_absent_fields_are_none(self):
        chars = Characteristics.from_data({})
        assert chars.position is None
        assert chars.contains_ads is None
        assert chars.flag("contains_ads") is False

    def test_position_is_case_insensitive(self):
        assert Characteristics.from_data({"position": " FIXED "}).position == Position.FIXED

    @pytest.mark.parametrize("raw,expected", [
        ("auto", 0),
        ("", 0),
        ("1500", 1500),
        ("12.7", 12),
        (True, 0),
        (None, None),
    ])
    def test_z_index_coercion(self, raw, expected):
        assert Characteristics.from_data({"zIndex": raw}).z_index == expected

    @pytest.mark.parametrize("raw,expected", [
        (0.5, 0.5),
        (-1, 0.0),
        (7, 1.0),
        ("0.25", 0.25),
        ("bogus", 1.0),
        (float("nan"), 1.0),
    ])
    def test_opacity_is_clamped(self, raw, expected):
        assert Characteristics.from_data({"opacity": raw}).opacity == expected

    def test_to_dict_omits_absent_fields(self):
        chars = Characteristics.from_data({"position": "fixed", "containsAds": False})
        assert chars.to_dict() == {"position": "fixed", "containsAds": False}

    def test_unknown_keys_are_ignored(self):
        chars = Characteristics.from_data({"position": "fixed", "tagName": "div"})
        assert "tagName" not in chars.to_dict()

    @pytest.mark.parametrize("bad", [None, "fixed", 42, ["position"]])
    def test_rejects_non_mappings(self, bad):
        with pytest.raises(InvalidInputError):
            Characteristics.from_data(bad)

    def test_rejects_invalid_position(self):
        with pytest.raises(InvalidInputError):
            Characteristics.from_data({"position": "floating"})

    def test_is_immutable(self):
        chars = Characteristics.from_data({"zIndex": 10})
        with pytest.raises(Exception):
            chars.z_index = 20


class TestConfidenceScorer:
    def test_typical_ad_popup_is_likely(self, scorer, popup_characteristics, clock):
        result = scorer.analyze(popup_characteristics)
        assert result.score == 75
        assert result.confidence == pytest.approx(0.75)
        assert result.is_likely_popup is True
        assert result.timestamp == clock.now
        assert signal_names(result) == ["fixed_position", "high_z_index", "modal", "close_button", "ad_content"]

    def test_empty_characteristics_score_zero(self, scorer):
        result = scorer.analyze({})
        assert result.score == 0
        assert result.confidence == 0.0
        assert result.is_likely_popup is False
        assert result.signals == []

    def test_every_signal_reaches_full_confidence(self, scorer):
        result = scorer.analyze({
            "position": "fixed",
            "zIndex": 2147483647,
            "hasBoxShadow": True,
            "hasBorder": True,
            "opacity": 0.9,
            "isModal": True,
            "hasCloseButton": True,
            "containsAds": True,
            "hasExternalLinks": True,
        })
        assert result.score == 100
        assert result.confidence == 1.0

    @pytest.mark.parametrize("overrides,modal", [
        ({}, True),
        ({"isModal": False}, False),
        ({"position": "absolute"}, False),
        ({"zIndex": 1000}, False),
        ({"dimensions": {"width": 200, "height": 300}}, False),
        ({"dimensions": {"width": 400, "height": 150}}, False),
    ])
    def test_modal_derived_when_flag_absent(self, scorer, overrides, modal):
        data = {"position": "fixed", "zIndex": 5000, "dimensions": {"width": 400, "height": 300}}
        data.update(overrides)
        assert ("modal" in signal_names(scorer.analyze(data))) is modal

    def test_derived_modal_is_not_stored(self, scorer, popup_characteristics):
        result = scorer.analyze(popup_characteristics)
        assert result.characteristics.is_modal is None
        assert "isModal" not in result.to_dict()["characteristics"]

    def test_threshold_is_strict(self, scorer):
        result = scorer.analyze({
            "position": "fixed",
            "zIndex": 2000,
            "hasCloseButton": True,
            "hasBorder": True,
        })
        assert result.confidence == 0.6
        assert result.is_likely_popup is False

    def test_absolute_position_scores_less_than_fixed(self, scorer):
        absolute = scorer.analyze({"position": "absolute"})
        fixed = scorer.analyze({"position": "fixed"})
        assert absolute.score == 10
        assert fixed.score == 20

    @pytest.mark.parametrize("z_index,points", [
        (50, 0),
        (100, 0),
        (101, 10),
        (1000, 10),
        (1001, 20),
    ])
    def test_z_index_bands(self, scorer, z_index, points):
        assert scorer.analyze({"zIndex": z_index}).score == points

    @pytest.mark.parametrize("opacity,points", [
        (1.0, 0),
        (0.95, 5),
        (0.8, 0),
        (0.3, 0),
    ])
    def test_partial_opacity_band(self, scorer, opacity, points):
        assert scorer.analyze({"opacity": opacity}).score == points

    def test_custom_threshold(self, clock):
        lenient = ConfidenceScorer(threshold=0.1, clock=clock)
        assert lenient.analyze({"position": "fixed"}).is_likely_popup is True

    def test_accepts_characteristics_instance(self, scorer):
        chars = Characteristics(position=Position.FIXED)
        assert scorer.analyze(chars).characteristics is chars

    def test_missing_characteristics_raise(self, scorer):
        with pytest.raises(InvalidInputError):
            scorer.analyze(None)

    def test_result_to_dict(self, scorer, popup_characteristics):
        data = scorer.analyze(popup_characteristics).to_dict()
        assert data["isLikelyPopup"] is True
        assert data["characteristics"]["zIndex"] == 9999
        assert {"name": "close_button", "points": 15} in data["signals"]
