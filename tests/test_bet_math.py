"""
Tests for bet_math.py

Run with: pytest tests/test_bet_math.py -v
"""

import math

import pytest

from arena_edge.core.bet_math import (
    MIN_PAYOUT,
    PROB_CEIL,
    PROB_FLOOR,
    clamp_payout,
    clamp_probability,
    combined_probability,
    consistency_weighted_ev,
    cost_adjusted_ev,
    expected_value,
    kelly_adjusted_ev,
    ranking_score,
    risk_adjusted_return,
    score_combination,
    single_pick_ev,
    total_payout,
)
from arena_edge.core.strategy_config import RankingKey


class TestClamping:
    """Degenerate inputs are corrected, not rejected."""

    def test_probability_bounds(self):
        """Probabilities are clamped into the open interval (0, 1)."""
        assert clamp_probability(0.0) == PROB_FLOOR
        assert clamp_probability(1.0) == PROB_CEIL
        assert clamp_probability(0.42) == pytest.approx(0.42)

    def test_nan_probability_rejected(self):
        """NaN is not a probability."""
        with pytest.raises(ValueError):
            clamp_probability(float("nan"))

    @pytest.mark.parametrize("payout,expected", [(0, 2), (1, 2), (2, 2), (13, 13)])
    def test_payout_floor(self, payout, expected):
        """Payouts are floored at 2:1."""
        assert clamp_payout(payout) == expected
        assert MIN_PAYOUT == 2


class TestCombinationScoring:
    """Joint probability, payout and EV of a multi-arena bet."""

    def test_two_leg_example(self):
        """0.6 × 0.5 = 0.30; 3 × 4 = 12; EV = 0.30 × 12 − 1 = 2.6."""
        probability, payout, ev = score_combination([0.6, 0.5], [3, 4])
        assert probability == pytest.approx(0.30)
        assert payout == 12
        assert ev == pytest.approx(2.6)

    def test_single_leg_matches_single_pick_ev(self):
        """A one-leg combination scores like the pick itself."""
        _, _, ev = score_combination([0.25], [5])
        assert ev == pytest.approx(single_pick_ev(0.25, 5))
        assert ev == pytest.approx(0.25)

    def test_payout_legs_are_clamped(self):
        """Sub-minimum payouts are corrected before multiplying."""
        assert total_payout([1, 3]) == 6

    def test_empty_product(self):
        assert combined_probability([]) == 1.0
        assert total_payout([]) == 1

    def test_expected_value_break_even(self):
        """A fair price has zero expected value."""
        assert expected_value(0.5, 2) == pytest.approx(0.0)


class TestAlternativeScores:
    """Scores used by the ranking-method comparison."""

    def test_kelly_no_edge_ranks_last(self):
        """A bet with no edge gets a zero Kelly fraction."""
        # b = 4, p = 0.1: b·p − q = 0.4 − 0.9 < 0
        assert kelly_adjusted_ev(0.1, 5) == -math.inf

    def test_kelly_positive_edge(self):
        """Kelly is positive when the price beats the probability."""
        # b = 2, p = 0.5 → f* = 0.25; EV 0.5; quarter Kelly
        assert kelly_adjusted_ev(0.5, 3) == pytest.approx(0.5 * 0.25 * 0.25)

    def test_consistency_weighting_damps_long_shots(self):
        """Probability weighting favours likelier bets of equal EV."""
        assert consistency_weighted_ev(0.25, 8) == pytest.approx(1.0 * 0.5)
        # same EV, lower probability scores lower
        assert consistency_weighted_ev(0.05, 40) < consistency_weighted_ev(0.25, 8)

    def test_cost_adjusted_equals_ev_per_unit(self):
        """Cost-adjusted EV is EV per unit staked."""
        assert cost_adjusted_ev(0.3, 5) == pytest.approx(expected_value(0.3, 5))

    def test_risk_adjusted_sign_follows_ev(self):
        """The risk-adjusted score keeps the sign of EV."""
        assert risk_adjusted_return(0.5, 3) > 0
        assert risk_adjusted_return(0.1, 3) < 0


class TestRankingScore:
    """Test dispatch from ranking key to score."""

    def test_empty_partial_is_lowest(self):
        """An empty partial bet scores below any real one."""
        for key in RankingKey:
            assert ranking_score(0, 1.0, 1, key) == -math.inf

    def test_expected_value_key(self):
        """The EV key ranks by expected value."""
        assert ranking_score(2, 0.30, 12, RankingKey.EXPECTED_VALUE) == pytest.approx(2.6)

    def test_total_payout_key_ignores_probability(self):
        """The payout key ranks by payout alone."""
        assert ranking_score(3, 0.0001, 810, RankingKey.TOTAL_PAYOUT) == 810.0
        assert ranking_score(3, 0.9, 8, RankingKey.TOTAL_PAYOUT) == 8.0
