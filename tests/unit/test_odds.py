"""
test_odds.py - Unit Tests for baseline tier odds

Tests cover:
1. Hypergeometric match distribution
2. Expected winners per tier
3. Jackpot wait and no-winner probability
4. Expected prize per winner
"""

import math

import numpy as np
import pytest

from rankpool.odds import (
    match_distribution,
    tier_probability,
    tier_probabilities,
    expected_winners,
    no_winner_probability,
    expected_jackpot_wait,
    expected_prize_per_winner,
)


class TestMatchDistribution:

    def test_sums_to_one(self):
        assert np.isclose(match_distribution().sum(), 1.0)

    def test_jackpot_is_one_in_c_42_6(self):
        assert np.isclose(tier_probability(6), 1 / math.comb(42, 6))

    def test_matches_combinatorics(self):
        total = math.comb(42, 6)
        for m in range(7):
            expected = math.comb(6, m) * math.comb(36, 6 - m) / total
            assert np.isclose(tier_probability(m), expected)

    def test_tiers(self):
        probs = tier_probabilities()
        assert set(probs) == {6, 5, 4, 3}
        assert probs[3] > probs[4] > probs[5] > probs[6]

    def test_invalid_matches(self):
        with pytest.raises(ValueError):
            tier_probability(7)

    def test_invalid_selection_size(self):
        with pytest.raises(ValueError):
            match_distribution(5, 6)


class TestExpectations:

    def test_expected_winners_scale_linearly(self):
        one = expected_winners(1000)
        two = expected_winners(2000)
        for tier in one:
            assert np.isclose(two[tier], 2 * one[tier])

    def test_expected_winners_vectorised(self):
        result = expected_winners(np.array([10, 100]))
        assert result[3].shape == (2,)

    def test_negative_entries(self):
        with pytest.raises(ValueError):
            expected_winners(-1)

    def test_no_winner_probability(self):
        assert np.isclose(no_winner_probability(6, 0), 1.0)
        assert no_winner_probability(3, 1000) < 1e-6

    def test_jackpot_wait(self):
        p = tier_probability(6)
        assert np.isclose(expected_jackpot_wait(1), 1 / p)
        assert np.isinf(expected_jackpot_wait(0))

    def test_prize_single_entry(self):
        assert np.isclose(expected_prize_per_winner(100.0, 3, 1), 100.0)

    def test_prize_shrinks_with_more_entries(self):
        few = expected_prize_per_winner(100.0, 3, 10)
        many = expected_prize_per_winner(100.0, 3, 500)
        assert many < few <= 100.0

    def test_prize_validation(self):
        with pytest.raises(ValueError):
            expected_prize_per_winner(100.0, 3, 0)
        with pytest.raises(ValueError):
            expected_prize_per_winner(-1.0, 3, 10)
