"""Tests for mastery computation."""

import pytest

from conftest import NOW, concept
from dojo.scoring.mastery import (
    average_mastery,
    compute_mastery,
    days_since,
    decay_factor,
    mastery_band,
)


class TestComputeMastery:
    """Test the mastery formula."""

    def test_unexercised_is_zero(self):
        assert compute_mastery(concept(0, 0), NOW) == 0.0

    def test_missing_record_is_zero(self):
        assert compute_mastery(None, NOW) == 0.0

    def test_plain_ratio(self):
        assert compute_mastery(concept(4, 2), NOW) == pytest.approx(0.5)

    def test_fully_decayed_at_90_days(self):
        assert compute_mastery(concept(10, 10, streak=5, days_ago=89), NOW) > 0
        assert compute_mastery(concept(10, 10, streak=5, days_ago=90), NOW) == 0.0
        assert compute_mastery(concept(10, 10, streak=5, days_ago=200), NOW) == 0.0

    def test_half_decay(self):
        assert compute_mastery(concept(5, 3, days_ago=45), NOW) == pytest.approx(0.3)

    def test_never_seen_is_not_decayed(self):
        assert compute_mastery(concept(4, 2, days_ago=None), NOW) == pytest.approx(0.5)

    def test_longer_streak_scores_higher(self):
        scores = [compute_mastery(concept(10, 5, streak=s), NOW) for s in range(6)]
        assert all(a < b for a, b in zip(scores, scores[1:]))

    def test_streak_bonus_capped(self):
        assert compute_mastery(concept(10, 5, streak=5), NOW) == pytest.approx(
            compute_mastery(concept(10, 5, streak=50), NOW)
        )

    def test_more_contexts_never_lower(self):
        scores = [
            compute_mastery(concept(10, 5, contexts=[f"c{i}" for i in range(n)]), NOW)
            for n in range(8)
        ]
        assert all(a <= b for a, b in zip(scores, scores[1:]))
        assert scores[3] > scores[0]

    def test_clamped_at_one(self):
        record = concept(10, 10, streak=10, contexts=[f"c{i}" for i in range(7)])
        assert compute_mastery(record, NOW) == 1.0

    @pytest.mark.parametrize(
        "exposures,successes,streak,contexts,days_ago",
        [
            (1, 0, 0, 0, 0),
            (1, 1, 9, 9, 0),
            (7, 3, 2, 1, 30),
            (3, 3, 3, 3, 89.9),
            (100, 1, 0, 5, None),
        ],
    )
    def test_bounded(self, exposures, successes, streak, contexts, days_ago):
        record = concept(
            exposures,
            successes,
            streak=streak,
            contexts=[f"c{i}" for i in range(contexts)],
            days_ago=days_ago,
        )
        assert 0.0 <= compute_mastery(record, NOW) <= 1.0


class TestHelpers:
    """Test decay and summary helpers."""

    def test_days_since(self):
        assert days_since(None, NOW) is None
        record = concept(1, 1, days_ago=2.5)
        assert days_since(record.last_seen, NOW) == pytest.approx(2.5)

    def test_decay_factor(self):
        assert decay_factor(None, NOW) == 1.0
        assert decay_factor(concept(1, 1, days_ago=0).last_seen, NOW) == 1.0
        assert decay_factor(concept(1, 1, days_ago=120).last_seen, NOW) == 0.0

    @pytest.mark.parametrize(
        "mastery,band",
        [(0.95, "strong"), (0.8, "strong"), (0.79, "developing"), (0.5, "developing"), (0.1, "weak")],
    )
    def test_mastery_band(self, mastery, band):
        assert mastery_band(mastery) == band

    def test_average_mastery(self):
        assert average_mastery({}, NOW) == 0.0
        records = {"a": concept(2, 2), "b": concept(2, 0)}
        assert average_mastery(records, NOW) == pytest.approx(0.5)
