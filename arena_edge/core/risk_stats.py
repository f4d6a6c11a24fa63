"""Risk statistics over a sequence of per-round results: pure functions.

All functions here take plain sequences (round ROIs or round net profits in
**temporal order**) and return floats or small value objects.  No I/O, no
logging.  ``services.strategy_metrics`` composes them; tests exercise them directly.

Degenerate inputs never raise and never produce NaN or infinity:

* zero variance            → Sharpe 0.0
* no downside rounds       → Sortino :data:`SORTINO_NO_DOWNSIDE` (or 0.0)
* zero gross loss          → :class:`ProfitFactor` tagged ``NO_LOSS``
* empty input              → 0.0 / empty arrays

Standard deviations are population (``ddof=0``) deviations: the backtest
window *is* the population being described, not a sample of it.

Run tests with::

    pytest tests/test_risk_stats.py -v
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Final, Optional, Sequence, Tuple

import numpy as np

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

#: Sortino value reported when no round fell below the risk-free rate and
#: the mean return beat it.
SORTINO_NO_DOWNSIDE: Final[float] = 999.0

#: Round ROI at or below which a round counts as an extreme loss.
EXTREME_LOSS_ROI: Final[float] = -0.5

#: Profit factor at which the risk-adjusted score component saturates.
PROFIT_FACTOR_CAP: Final[float] = 5.0

#: Deviations at or below this are treated as zero.  Equal returns can leave
#: floating-point residue in np.std (e.g. 1.4e-17 for [0.1, 0.1, 0.1]).
VARIANCE_EPSILON: Final[float] = 1e-12

# Consistency blend weights
_W_WIN_RATE: Final[float] = 0.5
_W_STABILITY: Final[float] = 0.3
_W_NO_EXTREME: Final[float] = 0.2

# Risk-adjusted composite weights
_W_MEAN: Final[float] = 0.3
_W_SHARPE: Final[float] = 0.3
_W_CONSISTENCY: Final[float] = 0.2
_W_PROFIT_FACTOR: Final[float] = 0.2


# ---------------------------------------------------------------------------
# Profit factor value object
# ---------------------------------------------------------------------------


class ProfitFactorKind(str, Enum):
    FINITE = "finite"
    NO_LOSS = "no_loss"


@dataclass(frozen=True)
class ProfitFactor:
    """Gross profit over gross loss, with an explicit no-loss variant.

    A window that made money without a single losing round has no finite
    profit factor.  Rather than a float sentinel it is represented as
    ``kind=NO_LOSS`` with ``value=None``; it sorts above every finite value
    and saturates the risk-adjusted score component.
    """

    kind: ProfitFactorKind
    value: Optional[float] = None

    @classmethod
    def finite(cls, value: float) -> ProfitFactor:
        return cls(ProfitFactorKind.FINITE, float(value))

    @classmethod
    def no_loss(cls) -> ProfitFactor:
        return cls(ProfitFactorKind.NO_LOSS, None)

    @property
    def is_no_loss(self) -> bool:
        return self.kind is ProfitFactorKind.NO_LOSS

    def score_component(self, cap: float = PROFIT_FACTOR_CAP) -> float:
        """``min(value / cap, 1)``; a no-loss window contributes 1.0."""
        if self.is_no_loss:
            return 1.0
        return min(self.value / cap, 1.0)

    def sort_key(self) -> Tuple[int, float]:
        return (1, 0.0) if self.is_no_loss else (0, self.value)

    def to_dict(self) -> dict:
        return {"kind": self.kind.value, "value": self.value}

    def __str__(self) -> str:
        return "no losses" if self.is_no_loss else f"{self.value:.2f}"


# ---------------------------------------------------------------------------
# Basic moments
# ---------------------------------------------------------------------------


def mean_return(returns: Sequence[float]) -> float:
    return float(np.mean(returns)) if len(returns) else 0.0


def median_return(returns: Sequence[float]) -> float:
    return float(np.median(returns)) if len(returns) else 0.0


def population_std(returns: Sequence[float]) -> float:
    """Population standard deviation.

    0.0 for fewer than two values, for a window whose values are all equal,
    and for anything at or below :data:`VARIANCE_EPSILON`.
    """
    if len(returns) < 2:
        return 0.0
    arr = np.asarray(returns, dtype=float)
    if np.ptp(arr) == 0.0:
        return 0.0
    std = float(np.std(arr, ddof=0))
    return std if std > VARIANCE_EPSILON else 0.0


# ---------------------------------------------------------------------------
# Return-to-risk ratios
# ---------------------------------------------------------------------------


def sharpe_ratio(returns: Sequence[float], risk_free_rate: float) -> float:
    """``(mean − rf) / σ``; 0.0 when σ is 0 or there are no returns."""
    if not len(returns):
        return 0.0
    std = population_std(returns)
    if std <= VARIANCE_EPSILON:
        return 0.0
    return (mean_return(returns) - risk_free_rate) / std


def sortino_ratio(returns: Sequence[float], risk_free_rate: float) -> float:
    """``(mean − rf) / downside deviation``.

    The downside deviation is ``sqrt(mean((r − rf)²))`` over the returns
    strictly below ``rf``.  With no such returns the ratio is
    :data:`SORTINO_NO_DOWNSIDE` if the mean beat ``rf``, else 0.0.
    """
    if not len(returns):
        return 0.0
    arr = np.asarray(returns, dtype=float)
    avg = float(arr.mean())
    downside = arr[arr < risk_free_rate]
    if downside.size == 0:
        return SORTINO_NO_DOWNSIDE if avg > risk_free_rate else 0.0
    deviation = float(np.sqrt(np.mean((downside - risk_free_rate) ** 2)))
    if deviation <= VARIANCE_EPSILON:
        return 0.0
    return (avg - risk_free_rate) / deviation


# ---------------------------------------------------------------------------
# Drawdown
# ---------------------------------------------------------------------------


class RunningDrawdown:
    """Streaming peak-to-trough tracker over cumulative net profit.

    Feed net profits in round order with :meth:`update`.  The peak starts
    at zero (the bankroll before the first round), so an opening loss is a
    drawdown.  ``max_drawdown`` never decreases and is never negative.
    """

    def __init__(self) -> None:
        self.cumulative = 0.0
        self.peak = 0.0
        self.max_drawdown = 0.0

    def update(self, net_profit: float) -> float:
        """Add one round; return the current drawdown."""
        self.cumulative += net_profit
        if self.cumulative > self.peak:
            self.peak = self.cumulative
        drawdown = self.peak - self.cumulative
        if drawdown > self.max_drawdown:
            self.max_drawdown = drawdown
        return drawdown


def drawdown_series(net_profits: Sequence[float]) -> Tuple[np.ndarray, np.ndarray]:
    """Return ``(running_peaks, drawdowns)`` of cumulative net profit.

    Example: profits ``[10, -5, 20, -30]`` accumulate to
    ``[10, 5, 25, -5]``, giving peaks ``[10, 10, 25, 25]`` and drawdowns
    ``[0, 5, 0, 30]``.
    """
    if not len(net_profits):
        return np.zeros(0), np.zeros(0)
    cumulative = np.cumsum(np.asarray(net_profits, dtype=float))
    peaks = np.maximum.accumulate(np.maximum(cumulative, 0.0))
    return peaks, peaks - cumulative


def max_drawdown(net_profits: Sequence[float]) -> float:
    tracker = RunningDrawdown()
    for profit in net_profits:
        tracker.update(profit)
    return tracker.max_drawdown


# ---------------------------------------------------------------------------
# Profit factor, consistency, composite
# ---------------------------------------------------------------------------


def profit_factor(net_profits: Sequence[float]) -> ProfitFactor:
    """Gross profit / |gross loss| over rounds."""
    arr = np.asarray(net_profits, dtype=float)
    gross_profit = float(arr[arr > 0].sum()) if arr.size else 0.0
    gross_loss = float(abs(arr[arr < 0].sum())) if arr.size else 0.0
    if gross_loss > 0.0:
        return ProfitFactor.finite(gross_profit / gross_loss)
    if gross_profit > 0.0:
        return ProfitFactor.no_loss()
    return ProfitFactor.finite(0.0)


def consistency_score(net_profits: Sequence[float], returns: Sequence[float]) -> float:
    """Blend of win rate, return stability and absence of extreme losses.

    ``0.5 × profitable-round fraction + 0.3 × 1/(1 + σ(returns))
    + 0.2 × (1.0 if no round ROI ≤ −50% else 0.5)``
    """
    if not len(net_profits):
        return 0.0
    win_rate = sum(1 for p in net_profits if p > 0) / len(net_profits)
    stability = 1.0 / (1.0 + population_std(returns))
    no_extreme = 1.0 if all(r > EXTREME_LOSS_ROI for r in returns) else 0.5
    return win_rate * _W_WIN_RATE + stability * _W_STABILITY + no_extreme * _W_NO_EXTREME


def risk_adjusted_score(
    avg_return: float,
    sharpe: float,
    consistency: float,
    pf: ProfitFactor,
) -> float:
    """Composite used to recommend a strategy."""
    return (
        avg_return * _W_MEAN
        + sharpe * _W_SHARPE
        + consistency * _W_CONSISTENCY
        + pf.score_component() * _W_PROFIT_FACTOR
    )


def streaks(net_profits: Sequence[float]) -> Tuple[int, int]:
    """Longest runs of profitable and losing rounds.

    A break-even round ends neither run.
    """
    win_run = loss_run = 0
    max_win = max_loss = 0
    for profit in net_profits:
        if profit > 0:
            win_run += 1
            loss_run = 0
            max_win = max(max_win, win_run)
        elif profit < 0:
            loss_run += 1
            win_run = 0
            max_loss = max(max_loss, loss_run)
    return max_win, max_loss
