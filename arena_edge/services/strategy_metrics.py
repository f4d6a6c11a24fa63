"""
Strategy metrics: reduce per-round realized results into per-strategy
statistics and rank the strategies.

Results must be supplied in round order; drawdown and streaks depend on it.
All degenerate cases resolve to defined values (see arena_edge.core.risk_stats),
so aggregation never raises on an empty or flat strategy.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence

from arena_edge.core.models import RealizedResult
from arena_edge.core.risk_stats import (
    ProfitFactor,
    RunningDrawdown,
    consistency_score,
    mean_return,
    median_return,
    profit_factor,
    risk_adjusted_score,
    sharpe_ratio,
    sortino_ratio,
    streaks,
)
from arena_edge.core.strategy_config import DEFAULT_RISK_FREE_RATE

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class StrategyMetrics:
    """Aggregate performance of one strategy over a backtest window."""

    strategy_name: str
    total_rounds: int = 0
    total_bets: int = 0
    winning_bets: int = 0
    hit_rate: float = 0.0

    total_cost: float = 0.0
    total_winnings: float = 0.0
    net_profit: float = 0.0
    roi: float = 0.0

    winning_rounds: int = 0
    winning_rounds_pct: float = 0.0

    mean_round_roi: float = 0.0
    median_round_roi: float = 0.0
    best_round_roi: float = 0.0
    worst_round_roi: float = 0.0

    sharpe_ratio: float = 0.0
    sortino_ratio: float = 0.0
    max_drawdown: float = 0.0
    profit_factor: ProfitFactor = field(default_factory=lambda: ProfitFactor.finite(0.0))
    consistency_score: float = 0.0
    risk_adjusted_score: float = 0.0

    longest_win_streak: int = 0
    longest_loss_streak: int = 0

    def to_dict(self) -> Dict:
        return {
            "strategy_name": self.strategy_name,
            "total_rounds": self.total_rounds,
            "total_bets": self.total_bets,
            "winning_bets": self.winning_bets,
            "hit_rate": round(self.hit_rate, 6),
            "total_cost": round(self.total_cost, 4),
            "total_winnings": round(self.total_winnings, 4),
            "net_profit": round(self.net_profit, 4),
            "roi": round(self.roi, 6),
            "winning_rounds": self.winning_rounds,
            "winning_rounds_pct": round(self.winning_rounds_pct, 6),
            "mean_round_roi": round(self.mean_round_roi, 6),
            "median_round_roi": round(self.median_round_roi, 6),
            "best_round_roi": round(self.best_round_roi, 6),
            "worst_round_roi": round(self.worst_round_roi, 6),
            "sharpe_ratio": round(self.sharpe_ratio, 6),
            "sortino_ratio": round(self.sortino_ratio, 6),
            "max_drawdown": round(self.max_drawdown, 4),
            "profit_factor": self.profit_factor.to_dict(),
            "consistency_score": round(self.consistency_score, 6),
            "risk_adjusted_score": round(self.risk_adjusted_score, 6),
            "longest_win_streak": self.longest_win_streak,
            "longest_loss_streak": self.longest_loss_streak,
        }


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------

def compute_strategy_metrics(
    strategy_name: str,
    results: Sequence[RealizedResult],
    risk_free_rate: float = DEFAULT_RISK_FREE_RATE,
) -> StrategyMetrics:
    """Fold one strategy's round results (in round order) into metrics."""
    if not results:
        return StrategyMetrics(strategy_name=strategy_name)

    total_bets = sum(r.total_bets for r in results)
    winning_bets = sum(r.winning_bets for r in results)
    total_cost = sum(r.bet_cost for r in results)
    total_winnings = sum(r.total_winnings for r in results)
    net = total_winnings - total_cost

    returns = [r.roi for r in results]
    profits = [r.net_profit for r in results]

    tracker = RunningDrawdown()
    for profit in profits:
        tracker.update(profit)

    winning_rounds = sum(1 for p in profits if p > 0)
    avg = mean_return(returns)
    sharpe = sharpe_ratio(returns, risk_free_rate)
    pf = profit_factor(profits)
    consistency = consistency_score(profits, returns)
    win_streak, loss_streak = streaks(profits)

    return StrategyMetrics(
        strategy_name=strategy_name,
        total_rounds=len(results),
        total_bets=total_bets,
        winning_bets=winning_bets,
        hit_rate=winning_bets / total_bets if total_bets > 0 else 0.0,
        total_cost=total_cost,
        total_winnings=total_winnings,
        net_profit=net,
        roi=net / total_cost if total_cost > 0 else 0.0,
        winning_rounds=winning_rounds,
        winning_rounds_pct=winning_rounds / len(results),
        mean_round_roi=avg,
        median_round_roi=median_return(returns),
        best_round_roi=max(returns),
        worst_round_roi=min(returns),
        sharpe_ratio=sharpe,
        sortino_ratio=sortino_ratio(returns, risk_free_rate),
        max_drawdown=tracker.max_drawdown,
        profit_factor=pf,
        consistency_score=consistency,
        risk_adjusted_score=risk_adjusted_score(avg, sharpe, consistency, pf),
        longest_win_streak=win_streak,
        longest_loss_streak=loss_streak,
    )


def aggregate_results(
    results: Iterable[RealizedResult],
    strategy_names: Optional[Sequence[str]] = None,
    risk_free_rate: float = DEFAULT_RISK_FREE_RATE,
) -> Dict[str, StrategyMetrics]:
    """Group results by strategy and compute metrics for each.

    ``strategy_names`` fixes the output order and guarantees an entry (all
    zeros) for strategies that never produced a result.
    """
    by_strategy: Dict[str, List[RealizedResult]] = {}
    for name in strategy_names or ():
        by_strategy[name] = []
    for r in results:
        by_strategy.setdefault(r.strategy_name, []).append(r)

    metrics = {}
    for name, rows in by_strategy.items():
        rows.sort(key=lambda r: r.round_id)
        metrics[name] = compute_strategy_metrics(name, rows, risk_free_rate)
        logger.debug(
            "%s: %d rounds, ROI %.2f%%, Sharpe %.2f",
            name, metrics[name].total_rounds, metrics[name].roi * 100, metrics[name].sharpe_ratio,
        )
    return metrics


# ---------------------------------------------------------------------------
# Ranking
# ---------------------------------------------------------------------------

def rank_strategies(metrics: Dict[str, StrategyMetrics]) -> Dict[str, List[str]]:
    """Strategy names ordered best-first under each criterion.

    Sorts are stable, so ties keep the input (profile) order.  A no-loss
    profit factor ranks above any finite one.
    """
    rows = list(metrics.values())

    def _order(key) -> List[str]:
        return [m.strategy_name for m in sorted(rows, key=key, reverse=True)]

    return {
        "by_risk_adjusted": _order(lambda m: m.risk_adjusted_score),
        "by_roi": _order(lambda m: m.roi),
        "by_sharpe": _order(lambda m: m.sharpe_ratio),
        "by_consistency": _order(lambda m: m.consistency_score),
        "by_profit_factor": _order(lambda m: m.profit_factor.sort_key()),
    }


def recommended_strategy(metrics: Dict[str, StrategyMetrics]) -> Optional[str]:
    """The strategy with the highest risk-adjusted score, if any."""
    ranking = rank_strategies(metrics)["by_risk_adjusted"]
    return ranking[0] if ranking else None
