"""Bet scoring mathematics: the single source of truth.

Every function here is **pure**: no I/O, no logging, no side effects.
Import from this module; never reimplement bet scoring locally in services.

The pillars exposed are:

1. **Clamping**: probabilities into the open interval (0, 1), payouts to a
   2:1 floor so degenerate odds never reach the product.
2. **Combination scoring**: combined probability, total payout and EV of a
   multi-arena bet (arenas are independent, so both are plain products).
3. **Ranking scores**: the value each :class:`RankingKey` orders bets by.

Design decisions
----------------
* A bet wins only if *every* pick wins, and arenas are independent, so::

      combined_probability = Π p_i
      total_payout         = Π payout_i
      EV                   = combined_probability × total_payout − 1

  The ``− 1`` is the unit stake; EV is therefore a per-unit figure.
* Payouts stay integers end to end.  Products of integers are exact in
  Python, so two bets with the same picks always score identically.
* An empty partial bet scores ``-inf`` under every key.  The beam search
  keeps it only while there is room, which is what allows later arenas to
  start fresh combinations.

Run tests with::

    pytest tests/test_bet_math.py -v
"""

from __future__ import annotations

import math
from typing import Final, Iterable, Sequence, Tuple

from arena_edge.core.strategy_config import RankingKey

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

#: Lowest payout accepted.  Displayed odds below 2:1 are corrected upward.
MIN_PAYOUT: Final[int] = 2

#: Probability clamp bounds; keeps products and logs finite.
PROB_FLOOR: Final[float] = 1e-6
PROB_CEIL: Final[float] = 1.0 - 1e-6

#: Fraction of full Kelly used by the Kelly ranking score.
KELLY_FRACTION: Final[float] = 0.25

#: Exponent on combined probability in the consistency-weighted score.
CONSISTENCY_WEIGHT: Final[float] = 0.5


# ---------------------------------------------------------------------------
# Clamping
# ---------------------------------------------------------------------------


def clamp_probability(p: float) -> float:
    """Clamp a win probability into ``[PROB_FLOOR, PROB_CEIL]``.

    Raises:
        ValueError: If ``p`` is NaN.
    """
    if math.isnan(p):
        raise ValueError("win probability is NaN")
    return min(max(float(p), PROB_FLOOR), PROB_CEIL)


def clamp_payout(payout: int) -> int:
    """Correct a displayed payout to at least ``MIN_PAYOUT``."""
    return max(MIN_PAYOUT, int(payout))


# ---------------------------------------------------------------------------
# Combination scoring
# ---------------------------------------------------------------------------


def combined_probability(probabilities: Iterable[float]) -> float:
    """Joint win probability of independent picks (empty product is 1.0)."""
    result = 1.0
    for p in probabilities:
        result *= p
    return result


def total_payout(payouts: Iterable[int]) -> int:
    """Payout multiple of a combination (each leg clamped to ``MIN_PAYOUT``)."""
    result = 1
    for payout in payouts:
        result *= clamp_payout(payout)
    return result


def expected_value(probability: float, payout: float) -> float:
    """EV per unit staked: ``probability × payout − 1``."""
    return probability * payout - 1.0


def single_pick_ev(win_probability: float, payout: int) -> float:
    """EV of betting on one competitor alone."""
    return expected_value(win_probability, clamp_payout(payout))


def score_combination(
    probabilities: Sequence[float],
    payouts: Sequence[int],
) -> Tuple[float, int, float]:
    """Return ``(combined_probability, total_payout, expected_value)``.

    Example::

        score_combination([0.6, 0.5], [3, 4])  →  (0.30, 12, 2.6)
    """
    p = combined_probability(probabilities)
    payout = total_payout(payouts)
    return p, payout, expected_value(p, payout)


# ---------------------------------------------------------------------------
# Alternative optimisation scores
# ---------------------------------------------------------------------------


def kelly_adjusted_ev(probability: float, payout: float, stake: float = 1.0) -> float:
    """EV scaled by the fractional Kelly stake the bet would earn.

    ``f* = (b·p − q) / b`` with ``b = payout − 1``.  Bets with no positive
    Kelly stake score ``-inf`` so they always rank last.
    """
    b = payout - 1.0
    if probability <= 0.0 or b <= 0.0:
        return -math.inf
    kelly_full = (b * probability - (1.0 - probability)) / b
    if kelly_full <= 0.0:
        return -math.inf
    ev = expected_value(probability, payout)
    return ev * kelly_full * KELLY_FRACTION * stake


def consistency_weighted_ev(probability: float, payout: float) -> float:
    """EV damped by ``p ** CONSISTENCY_WEIGHT`` to penalise long shots."""
    return expected_value(probability, payout) * probability ** CONSISTENCY_WEIGHT


def risk_adjusted_return(probability: float, payout: float) -> float:
    """EV per unit of standard deviation of the single-bet outcome."""
    ev = expected_value(probability, payout)
    variance = (
        probability * (payout - ev - 1.0) ** 2
        + (1.0 - probability) * (-ev - 1.0) ** 2
    )
    std = math.sqrt(variance)
    return ev / std if std > 0 else ev


def cost_adjusted_ev(probability: float, payout: float, stake: float = 1.0) -> float:
    """Expected profit at a fixed stake, as a fraction of that stake."""
    profit_if_win = payout * stake - stake
    expected_profit = probability * profit_if_win - (1.0 - probability) * stake
    return expected_profit / stake


# ---------------------------------------------------------------------------
# Ranking
# ---------------------------------------------------------------------------


def ranking_score(
    n_picks: int,
    probability: float,
    payout: int,
    key: RankingKey,
) -> float:
    """Score a (possibly partial) bet under ``key``; higher ranks first.

    Args:
        n_picks: Number of picks in the bet.  Zero means the empty partial.
        probability: Combined win probability.
        payout: Total payout multiple.
        key: The :class:`RankingKey` to score by.

    Returns:
        The score, or ``-inf`` for an empty partial.
    """
    if n_picks == 0:
        return -math.inf
    if key is RankingKey.EXPECTED_VALUE:
        return expected_value(probability, payout)
    if key is RankingKey.TOTAL_PAYOUT:
        return float(payout)
    if key is RankingKey.KELLY:
        return kelly_adjusted_ev(probability, payout)
    if key is RankingKey.CONSISTENCY_WEIGHTED:
        return consistency_weighted_ev(probability, payout)
    if key is RankingKey.RISK_ADJUSTED:
        return risk_adjusted_return(probability, payout)
    if key is RankingKey.COST_ADJUSTED:
        return cost_adjusted_ev(probability, payout)
    raise ValueError(f"Unknown ranking key {key!r}")
