"""
Backtest engine: replay historical rounds through every strategy profile.

Per round, in increasing round id:

    1. Load the round's predictions; none → round skipped.
    2. Generate the five series concurrently (joined before continuing).
    3. Load the winner reports; none → round skipped.  Where an arena has
       more than one reported winner the first report is used and a
       DataQualityAnomaly is recorded.
    4. Evaluate every series: a bet wins iff each pick names its arena's
       winner; winnings are ``total_payout × unit_stake``.

After the loop, results are reduced per strategy in round order and the
strategies ranked (see strategy_metrics).

Cancellation is cooperative: pass a ``threading.Event``; it is checked
before each round and again after series generation.  The round in flight
when the event is seen contributes nothing, and the report is flagged
``cancelled``.
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from arena_edge.core.models import BetSeries, DataQualityAnomaly, RealizedResult
from arena_edge.core.strategy_config import (
    EngineSettings,
    RankingKey,
    StrategyProfile,
    default_profiles,
)
from arena_edge.services.round_data import OutcomeSource, PredictionSource, WinnerReport
from arena_edge.services.series_builder import generate_all_series
from arena_edge.services.strategy_metrics import (
    StrategyMetrics,
    aggregate_results,
    compute_strategy_metrics,
    rank_strategies,
    recommended_strategy,
)

logger = logging.getLogger(__name__)

#: Methods compared by default in :func:`compare_ranking_methods`.
COMPARISON_METHODS: Tuple[RankingKey, ...] = (
    RankingKey.EXPECTED_VALUE,
    RankingKey.KELLY,
    RankingKey.CONSISTENCY_WEIGHTED,
    RankingKey.RISK_ADJUSTED,
    RankingKey.COST_ADJUSTED,
)


# ---------------------------------------------------------------------------
# Round evaluation
# ---------------------------------------------------------------------------

def resolve_winners(
    round_id: int,
    reports: Iterable[WinnerReport],
) -> Tuple[Dict[int, int], List[DataQualityAnomaly]]:
    """Map arena → winner, keeping the first report for each arena.

    Every arena reported with more than one distinct winner yields exactly
    one anomaly (and one warning), however many extra reports it has.
    """
    winners: Dict[int, int] = {}
    reported: Dict[int, List[int]] = {}
    for arena_id, competitor_id in reports:
        reported.setdefault(arena_id, [])
        if competitor_id not in reported[arena_id]:
            reported[arena_id].append(competitor_id)
        winners.setdefault(arena_id, competitor_id)

    anomalies = []
    for arena_id in sorted(reported):
        competitors = reported[arena_id]
        if len(competitors) < 2:
            continue
        anomaly = DataQualityAnomaly(
            round_id=round_id,
            arena_id=arena_id,
            reported_winners=tuple(competitors),
            chosen_winner=winners[arena_id],
        )
        logger.warning(
            "Round %d arena %d: %d winners reported %s, using %d",
            round_id, arena_id, len(competitors), competitors, anomaly.chosen_winner,
        )
        anomalies.append(anomaly)
    return winners, anomalies


def evaluate_series(
    series: BetSeries,
    winners: Dict[int, int],
    round_id: int,
    unit_stake: float = 1.0,
) -> RealizedResult:
    """Settle one series against the round's winners."""
    winning_bets = 0
    total_winnings = 0.0
    for bet in series.bets:
        if bet.wins(winners):
            winning_bets += 1
            total_winnings += bet.total_payout * unit_stake

    bet_cost = len(series.bets) * unit_stake
    net_profit = total_winnings - bet_cost
    return RealizedResult(
        round_id=round_id,
        strategy_name=series.strategy_name,
        total_bets=len(series.bets),
        winning_bets=winning_bets,
        bet_cost=bet_cost,
        total_winnings=total_winnings,
        net_profit=net_profit,
        roi=net_profit / bet_cost if bet_cost > 0 else 0.0,
    )


@dataclass(frozen=True)
class RoundEvaluation:
    """Everything one round contributed to a backtest."""

    round_id: int
    results: Tuple[RealizedResult, ...]
    anomalies: Tuple[DataQualityAnomaly, ...] = ()
    underfilled: Tuple[str, ...] = ()


# ---------------------------------------------------------------------------
# Report
# ---------------------------------------------------------------------------

@dataclass
class BacktestReport:
    start_round: int
    end_round: int
    rounds_processed: int = 0
    rounds_skipped: int = 0
    cancelled: bool = False
    ranking_key_override: Optional[RankingKey] = None
    strategies: Dict[str, StrategyMetrics] = field(default_factory=dict)
    rankings: Dict[str, List[str]] = field(default_factory=dict)
    recommended: Optional[str] = None
    anomalies: List[DataQualityAnomaly] = field(default_factory=list)
    underfilled_series: List[Dict] = field(default_factory=list)
    results: List[RealizedResult] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return {
            "start_round": self.start_round,
            "end_round": self.end_round,
            "rounds_processed": self.rounds_processed,
            "rounds_skipped": self.rounds_skipped,
            "cancelled": self.cancelled,
            "ranking_key_override": (
                self.ranking_key_override.value if self.ranking_key_override else None
            ),
            "recommended": self.recommended,
            "rankings": self.rankings,
            "strategies": {name: m.to_dict() for name, m in self.strategies.items()},
            "anomalies": [a.to_dict() for a in self.anomalies],
            "underfilled_series": self.underfilled_series,
        }


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

class BacktestEngine:
    """Replay a round range through a set of strategy profiles."""

    def __init__(
        self,
        predictions: PredictionSource,
        outcomes: OutcomeSource,
        profiles: Optional[Sequence[StrategyProfile]] = None,
        settings: Optional[EngineSettings] = None,
    ):
        self.predictions = predictions
        self.outcomes = outcomes
        self.profiles: Tuple[StrategyProfile, ...] = (
            tuple(profiles) if profiles is not None else default_profiles()
        )
        self.settings = settings or EngineSettings()

    def profiles_for(self, ranking_key_override: Optional[RankingKey]) -> Tuple[StrategyProfile, ...]:
        """Profiles with the override applied to every EV-ranked tier.

        Tiers ranked by another key (HighRisk ranks by total payout) are
        left unchanged.
        """
        if ranking_key_override is None:
            return self.profiles
        return tuple(
            p.with_ranking_key(ranking_key_override)
            if p.ranking_key is RankingKey.EXPECTED_VALUE
            else p
            for p in self.profiles
        )

    def _generate(self, round_id: int, profiles: Sequence[StrategyProfile]) -> List[BetSeries]:
        predictions = self.predictions.get_predictions(round_id)
        if not predictions:
            logger.debug("Round %d: no predictions, skipping", round_id)
            return []
        return generate_all_series(predictions, profiles, self.settings)

    def _settle(self, round_id: int, series_list: Sequence[BetSeries]) -> Optional[RoundEvaluation]:
        reports = self.outcomes.get_winner_reports(round_id)
        if not reports:
            logger.debug("Round %d: no results recorded, skipping", round_id)
            return None

        winners, anomalies = resolve_winners(round_id, reports)
        results = tuple(
            evaluate_series(s, winners, round_id, self.settings.unit_stake) for s in series_list
        )
        return RoundEvaluation(
            round_id=round_id,
            results=results,
            anomalies=tuple(anomalies),
            underfilled=tuple(s.strategy_name for s in series_list if s.underfilled),
        )

    def run_round(
        self,
        round_id: int,
        ranking_key_override: Optional[RankingKey] = None,
    ) -> Optional[RoundEvaluation]:
        """Generate and settle a single round; None if it lacks data."""
        series_list = self._generate(round_id, self.profiles_for(ranking_key_override))
        if not series_list:
            return None
        return self._settle(round_id, series_list)

    def run(
        self,
        start_round: int,
        end_round: int,
        cancel_event: Optional[threading.Event] = None,
        ranking_key_override: Optional[RankingKey] = None,
    ) -> BacktestReport:
        """Backtest rounds ``start_round..end_round`` inclusive.

        Raises:
            ValueError: If the range is empty.
            RoundDataUnavailableError: If a data source fails outright.
        """
        if end_round < start_round:
            raise ValueError(f"end_round {end_round} precedes start_round {start_round}")

        profiles = self.profiles_for(ranking_key_override)
        report = BacktestReport(
            start_round=start_round,
            end_round=end_round,
            ranking_key_override=ranking_key_override,
        )
        total = end_round - start_round + 1
        logger.info(
            "Backtesting rounds %d-%d (%d rounds, %d strategies%s)",
            start_round, end_round, total, len(profiles),
            f", ranking by {ranking_key_override.value}" if ranking_key_override else "",
        )

        for index, round_id in enumerate(range(start_round, end_round + 1), start=1):
            if cancel_event is not None and cancel_event.is_set():
                report.cancelled = True
                break

            series_list = self._generate(round_id, profiles)
            if cancel_event is not None and cancel_event.is_set():
                report.cancelled = True
                break

            evaluation = self._settle(round_id, series_list) if series_list else None
            if evaluation is None:
                report.rounds_skipped += 1
            else:
                report.rounds_processed += 1
                report.results.extend(evaluation.results)
                report.anomalies.extend(evaluation.anomalies)
                report.underfilled_series.extend(
                    {"round_id": round_id, "strategy_name": name} for name in evaluation.underfilled
                )

            if index % self.settings.progress_log_every == 0:
                logger.info(
                    "Progress: %d/%d rounds (%d evaluated, %d skipped)",
                    index, total, report.rounds_processed, report.rounds_skipped,
                )

        if report.cancelled:
            logger.warning(
                "Backtest cancelled after %d evaluated rounds; partial round discarded",
                report.rounds_processed,
            )

        report.strategies = aggregate_results(
            report.results,
            [p.name for p in profiles],
            self.settings.risk_free_rate,
        )
        report.rankings = rank_strategies(report.strategies)
        report.recommended = recommended_strategy(report.strategies) if report.results else None

        logger.info(
            "Backtest complete: %d rounds evaluated, %d skipped, %d anomalies, recommended=%s",
            report.rounds_processed, report.rounds_skipped, len(report.anomalies), report.recommended,
        )
        return report

    def find_rounds_with_multiple_winners(self, start_round: int, end_round: int) -> List[int]:
        """Pre-run data-quality scan: rounds with any arena reported twice."""
        flagged = []
        for round_id in range(start_round, end_round + 1):
            arenas = [arena_id for arena_id, _ in set(self.outcomes.get_winner_reports(round_id))]
            if len(arenas) != len(set(arenas)):
                flagged.append(round_id)
        if flagged:
            logger.warning("%d rounds have multiple winners in an arena: %s", len(flagged), flagged)
        return flagged


# ---------------------------------------------------------------------------
# Ranking-method comparison
# ---------------------------------------------------------------------------

@dataclass
class MethodComparison:
    """Backtest performance of each ranking method, pooled over strategies."""

    start_round: int
    end_round: int
    methods: Dict[RankingKey, StrategyMetrics] = field(default_factory=dict)
    best_by_roi: Optional[RankingKey] = None
    best_by_sharpe: Optional[RankingKey] = None
    best_by_consistency: Optional[RankingKey] = None
    best_by_profit_factor: Optional[RankingKey] = None

    def to_dict(self) -> Dict:
        def _name(key: Optional[RankingKey]) -> Optional[str]:
            return key.value if key else None

        return {
            "start_round": self.start_round,
            "end_round": self.end_round,
            "methods": {k.value: m.to_dict() for k, m in self.methods.items()},
            "best_by_roi": _name(self.best_by_roi),
            "best_by_sharpe": _name(self.best_by_sharpe),
            "best_by_consistency": _name(self.best_by_consistency),
            "best_by_profit_factor": _name(self.best_by_profit_factor),
        }


def pool_round_results(method: RankingKey, results: Iterable[RealizedResult]) -> List[RealizedResult]:
    """Collapse every strategy's result for a round into one per round."""
    by_round: Dict[int, List[RealizedResult]] = {}
    for r in results:
        by_round.setdefault(r.round_id, []).append(r)

    pooled = []
    for round_id in sorted(by_round):
        rows = by_round[round_id]
        cost = sum(r.bet_cost for r in rows)
        winnings = sum(r.total_winnings for r in rows)
        pooled.append(RealizedResult(
            round_id=round_id,
            strategy_name=method.value,
            total_bets=sum(r.total_bets for r in rows),
            winning_bets=sum(r.winning_bets for r in rows),
            bet_cost=cost,
            total_winnings=winnings,
            net_profit=winnings - cost,
            roi=(winnings - cost) / cost if cost > 0 else 0.0,
        ))
    return pooled


def compare_ranking_methods(
    engine: BacktestEngine,
    start_round: int,
    end_round: int,
    methods: Sequence[RankingKey] = COMPARISON_METHODS,
    cancel_event: Optional[threading.Event] = None,
) -> MethodComparison:
    """Backtest the window once per ranking method and pick the best.

    Each method overrides the ranking key of the EV-ranked tiers.  Methods
    are judged on all strategies pooled per round; "consistency" here is
    the fraction of profitable rounds.
    """
    comparison = MethodComparison(start_round=start_round, end_round=end_round)
    for method in methods:
        logger.info("Testing ranking method %s...", method.value)
        report = engine.run(start_round, end_round, cancel_event, ranking_key_override=method)
        metrics = compute_strategy_metrics(
            method.value,
            pool_round_results(method, report.results),
            engine.settings.risk_free_rate,
        )
        comparison.methods[method] = metrics
        logger.info(
            "  %s: ROI %+.2f%%, Sharpe %.2f, winning rounds %.1f%%",
            method.value, metrics.roi * 100, metrics.sharpe_ratio, metrics.winning_rounds_pct * 100,
        )
        if report.cancelled:
            break

    if comparison.methods:
        items = list(comparison.methods.items())

        def _best(key) -> RankingKey:
            return sorted(items, key=lambda kv: key(kv[1]), reverse=True)[0][0]

        comparison.best_by_roi = _best(lambda m: m.roi)
        comparison.best_by_sharpe = _best(lambda m: m.sharpe_ratio)
        comparison.best_by_consistency = _best(lambda m: m.winning_rounds_pct)
        comparison.best_by_profit_factor = _best(lambda m: m.profit_factor.sort_key())
    return comparison
