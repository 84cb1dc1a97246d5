"""
Temporal weighting tests: half-life decay and weighted average edge cases.
"""

from datetime import datetime, timedelta, timezone

import pytest

from recommender.stages.temporal_weighting import (
    days_between,
    decay_weight,
    weighted_average,
)

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


class TestDecay:
    def test_weight_halves_at_half_life(self):
        assert decay_weight(90.0, 90.0) == pytest.approx(0.5)

    def test_weight_is_one_at_zero_days(self):
        assert decay_weight(0.0, 90.0) == 1.0

    def test_future_timestamp_is_not_clamped(self):
        assert decay_weight(-90.0, 90.0) == pytest.approx(2.0)

    def test_non_positive_half_life_raises(self):
        with pytest.raises(ValueError):
            decay_weight(1.0, 0.0)

    def test_days_between_is_fractional(self):
        assert days_between(NOW, NOW - timedelta(hours=36)) == pytest.approx(1.5)

    def test_naive_timestamp_treated_as_utc(self):
        naive = datetime(2025, 5, 31, 12, 0)
        assert days_between(NOW, naive) == pytest.approx(1.0)


class TestWeightedAverage:
    def test_empty_input_returns_none(self):
        assert weighted_average([], 90.0, NOW) is None

    def test_single_vector_returns_itself(self):
        result = weighted_average([([1.0, 2.0], NOW - timedelta(days=400))], 90.0, NOW)
        assert result == pytest.approx([1.0, 2.0])

    def test_equal_ages_give_plain_mean(self):
        ts = NOW - timedelta(days=10)
        result = weighted_average([([0.0, 0.0], ts), ([2.0, 4.0], ts)], 90.0, NOW)
        assert result == pytest.approx([1.0, 2.0])

    def test_recent_vector_dominates(self):
        # weights 1.0 and 0.5 -> (1*[1,0] + 0.5*[0,1]) / 1.5
        result = weighted_average(
            [([1.0, 0.0], NOW), ([0.0, 1.0], NOW - timedelta(days=90))],
            90.0,
            NOW,
        )
        assert result == pytest.approx([2.0 / 3.0, 1.0 / 3.0], rel=1e-6)

    def test_all_weights_underflow_returns_none(self):
        ancient = NOW - timedelta(days=365 * 2000)
        assert weighted_average([([1.0], ancient)], 1.0, NOW) is None

    def test_invalid_half_life_raises(self):
        with pytest.raises(ValueError):
            weighted_average([([1.0], NOW)], -5.0, NOW)
