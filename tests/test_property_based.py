"""
Property-based tests for popwarden scoring and learning using Hypothesis.

Invariants:
- Confidence is always within [0, 1] and equals score / 100
- Similarity is within [0, 1], symmetric, and 1 for identical inputs
- Pattern confidence stays within [min, 1] through any decision sequence
- Cleanup never keeps more than the cap and is idempotent
"""

import asyncio

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

pytestmark = pytest.mark.learning

from popwarden.config.models import LearningConfig
from popwarden.learning.similarity import calculate_similarity
from popwarden.learning.store import PatternStore
from popwarden.scoring.characteristics import Characteristics
from popwarden.scoring.scorer import ConfidenceScorer
from popwarden.storage.memory import MemoryStorage

settings.register_profile("popwarden", deadline=None, print_blob=True)
settings.load_profile("popwarden")

optional_bool = st.one_of(st.none(), st.booleans())

characteristics_data = st.fixed_dictionaries({}, optional={
    "position": st.sampled_from(["static", "relative", "absolute", "fixed", "sticky"]),
    "zIndex": st.one_of(st.integers(min_value=-10, max_value=2_147_483_647), st.just("auto")),
    "hasCloseButton": optional_bool,
    "containsAds": optional_bool,
    "hasExternalLinks": optional_bool,
    "isModal": optional_bool,
    "hasBoxShadow": optional_bool,
    "hasBorder": optional_bool,
    "opacity": st.floats(allow_nan=True, allow_infinity=True),
    "dimensions": st.fixed_dictionaries({
        "width": st.integers(min_value=0, max_value=5000),
        "height": st.integers(min_value=0, max_value=5000),
    }),
})


class FixedClock:
    def __init__(self):
        self.now = 1_700_000_000_000

    def __call__(self):
        return self.now


class TestScoringProperties:
    @given(data=characteristics_data)
    def test_confidence_bounds(self, data):
        result = ConfidenceScorer(clock=FixedClock()).analyze(data)
        assert 0.0 <= result.confidence <= 1.0
        assert result.confidence == pytest.approx(result.score / 100)
        assert result.is_likely_popup == (result.confidence > 0.6)
        assert sum(s["points"] for s in result.signals) == result.score

    @given(data=characteristics_data)
    def test_round_trip_through_wire_format(self, data):
        chars = Characteristics.from_data(data)
        assert Characteristics.from_data(chars.to_dict()) == chars


class TestSimilarityProperties:
    @given(a=characteristics_data, b=characteristics_data)
    def test_bounds_and_symmetry(self, a, b):
        left = Characteristics.from_data(a)
        right = Characteristics.from_data(b)
        similarity = calculate_similarity(left, right)
        assert 0.0 <= similarity <= 1.0
        assert similarity == pytest.approx(calculate_similarity(right, left))

    @given(data=characteristics_data)
    def test_identity(self, data):
        chars = Characteristics.from_data(data)
        similarity = calculate_similarity(chars, chars)
        assert similarity == 0.0 or similarity == pytest.approx(1.0)


class TestLearningProperties:
    @given(decisions=st.lists(st.sampled_from(["close", "keep"]), min_size=1, max_size=25))
    def test_confidence_stays_in_range(self, decisions):
        store = PatternStore(MemoryStorage(), clock=FixedClock())
        chars = {"containsAds": True, "hasCloseButton": True, "zIndex": 9999}

        async def replay():
            pattern = None
            for decision in decisions:
                pattern = await store.record(chars, decision)
                assert 0.1 <= pattern.confidence <= 1.0
                assert pattern.confidence == round(pattern.confidence, 4)
            return pattern

        pattern = asyncio.run(replay())
        assert len(store) == 1
        assert pattern.occurrences == len(decisions)

    @given(
        confidences=st.lists(st.floats(min_value=0.0, max_value=1.0), min_size=0, max_size=30),
        cap=st.integers(min_value=1, max_value=10),
    )
    def test_cleanup_cap_and_idempotence(self, confidences, cap):
        clock = FixedClock()
        store = PatternStore(MemoryStorage(), config=LearningConfig(max_patterns=cap), clock=clock)
        asyncio.run(store.replace_all([
            {
                "patternId": f"p{i}",
                "characteristics": {"zIndex": i},
                "userDecision": "close",
                "confidence": confidence,
                "occurrences": 1,
                "lastSeen": clock.now,
            }
            for i, confidence in enumerate(confidences)
        ]))

        store.cleanup()
        assert len(store) <= cap
        assert all(p.confidence >= 0.3 for p in store.patterns())
        assert store.cleanup() == 0
