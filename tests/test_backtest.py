"""
Tests for backtest.py

Run with: pytest tests/test_backtest.py -v
"""

import logging
import threading
from unittest.mock import MagicMock

import pytest

from arena_edge.core.models import Bet, BetSeries, Prediction
from arena_edge.core.strategy_config import (
    EngineSettings,
    RankingKey,
    RiskTier,
    StrategyProfile,
)
from arena_edge.services.backtest import (
    COMPARISON_METHODS,
    BacktestEngine,
    compare_ranking_methods,
    evaluate_series,
    pool_round_results,
    resolve_winners,
)
from arena_edge.services.round_data import (
    InMemoryRoundData,
    RoundDataClient,
    RoundDataUnavailableError,
)

BACKTEST_LOGGER = "arena_edge.services.backtest"


def _round_predictions(round_id, n_arenas=3):
    preds = []
    for arena in range(1, n_arenas + 1):
        preds += [
            Prediction(round_id, arena, 1, 0.60, 2),
            Prediction(round_id, arena, 2, 0.25, 5),
            Prediction(round_id, arena, 3, 0.15, 9),
        ]
    return preds


def _favourites_win(n_arenas=3):
    return [(arena, 1) for arena in range(1, n_arenas + 1)]


def _data(rounds, winners=None, skip=()):
    predictions = {r: _round_predictions(r) for r in rounds if r not in skip}
    winners = winners or {r: _favourites_win() for r in rounds}
    return InMemoryRoundData(predictions, winners)


def _series(*bets):
    return BetSeries(strategy_name="Balanced", risk_tier=RiskTier.MEDIUM, bets=tuple(bets))


class TestResolveWinners:
    """Test first-report-wins winner resolution."""

    def test_single_reports(self):
        """One report per arena maps straight through."""
        winners, anomalies = resolve_winners(1, [(1, 3), (2, 5)])
        assert winners == {1: 3, 2: 5}
        assert anomalies == []

    def test_first_reported_winner_used(self, caplog):
        """Conflicting reports keep the first and log one warning."""
        with caplog.at_level(logging.WARNING, logger=BACKTEST_LOGGER):
            winners, anomalies = resolve_winners(9, [(1, 3), (2, 5), (1, 4), (1, 6)])
        assert winners == {1: 3, 2: 5}
        assert len(anomalies) == 1
        assert anomalies[0].arena_id == 1
        assert anomalies[0].reported_winners == (3, 4, 6)
        assert anomalies[0].chosen_winner == 3
        assert len([r for r in caplog.records if r.levelno == logging.WARNING]) == 1

    def test_repeated_identical_report_is_not_an_anomaly(self):
        """The same winner reported twice is not a conflict."""
        winners, anomalies = resolve_winners(1, [(1, 3), (1, 3)])
        assert winners == {1: 3}
        assert anomalies == []


class TestEvaluateSeries:
    """Test settling a series against actual winners."""

    def test_winning_and_losing_bets(self):
        """A bet pays only when every leg wins."""
        winner = Bet.from_picks([Prediction(1, 1, 1, 0.6, 3), Prediction(1, 2, 2, 0.5, 4)])
        loser = Bet.from_picks([Prediction(1, 1, 2, 0.2, 6)])
        result = evaluate_series(_series(winner, loser), {1: 1, 2: 2}, round_id=1)
        assert result.winning_bets == 1
        assert result.total_winnings == 12
        assert result.bet_cost == 2
        assert result.net_profit == 10
        assert result.roi == pytest.approx(5.0)

    def test_unit_stake_scales_money_not_roi(self):
        """Doubling the stake doubles profit but leaves ROI unchanged."""
        bet = Bet.from_picks([Prediction(1, 1, 1, 0.6, 3)])
        result = evaluate_series(_series(bet), {1: 1}, round_id=1, unit_stake=2.5)
        assert result.total_winnings == pytest.approx(7.5)
        assert result.bet_cost == pytest.approx(2.5)
        assert result.roi == pytest.approx(2.0)

    def test_missing_arena_result_loses(self):
        """A leg in an arena with no result counts as a loss."""
        bet = Bet.from_picks([Prediction(1, 4, 1, 0.6, 3)])
        assert evaluate_series(_series(bet), {1: 1}, round_id=1).winning_bets == 0

    def test_empty_series(self):
        result = evaluate_series(_series(), {1: 1}, round_id=1)
        assert result.bet_cost == 0
        assert result.roi == 0.0


class TestBacktestEngine:
    """Test the round-by-round backtest loop."""

    def test_runs_every_strategy_every_round(self):
        """Three rounds produce a result per strategy per round."""
        engine = BacktestEngine(_data([1, 2, 3]), _data([1, 2, 3]))
        report = engine.run(1, 3)
        assert report.rounds_processed == 3
        assert report.rounds_skipped == 0
        assert not report.cancelled
        assert len(report.results) == 15
        assert list(report.strategies) == [
            "Conservative", "Balanced", "Moderate", "Aggressive", "HighRisk",
        ]
        assert all(m.total_rounds == 3 for m in report.strategies.values())
        assert report.recommended in report.strategies
        assert set(report.rankings) == {
            "by_risk_adjusted", "by_roi", "by_sharpe", "by_consistency", "by_profit_factor",
        }

    def test_rounds_without_data_are_skipped(self):
        """Rounds missing predictions or results are counted as skipped."""
        data = _data([1, 2, 3, 4], winners={1: _favourites_win(), 2: _favourites_win(), 3: []}, skip=(2,))
        report = BacktestEngine(data, data).run(1, 4)
        # 2: no predictions; 3 and 4: no results
        assert report.rounds_processed == 1
        assert report.rounds_skipped == 3

    def test_favourites_winning_pays_conservative(self):
        """Conservative profits when every favourite wins."""
        data = _data([1])
        report = BacktestEngine(data, data).run(1, 1)
        conservative = report.strategies["Conservative"]
        assert conservative.winning_bets > 0
        assert conservative.total_bets == 10

    def test_duplicate_winner_logs_one_anomaly(self, caplog):
        """Conflicting winner reports become one anomaly in the report."""
        winners = {1: [(1, 1), (2, 1), (2, 2), (3, 1)]}
        data = _data([1], winners=winners)
        with caplog.at_level(logging.WARNING, logger=BACKTEST_LOGGER):
            report = BacktestEngine(data, data).run(1, 1)
        assert report.rounds_processed == 1
        assert len(report.anomalies) == 1
        assert report.anomalies[0].arena_id == 2
        anomaly_logs = [r for r in caplog.records if "winners reported" in r.getMessage()]
        assert len(anomaly_logs) == 1

    def test_cancel_before_start(self):
        """A set cancel event stops the run before any round."""
        data = _data([1, 2])
        cancel = threading.Event()
        cancel.set()
        report = BacktestEngine(data, data).run(1, 2, cancel_event=cancel)
        assert report.cancelled
        assert report.rounds_processed == 0
        assert report.recommended is None
        assert all(m.total_rounds == 0 for m in report.strategies.values())

    def test_cancel_mid_round_discards_partial(self):
        """Cancelling during a round drops that round's results."""
        cancel = threading.Event()

        class CancellingSource(InMemoryRoundData):
            def get_predictions(self, round_id):
                if round_id == 2:
                    cancel.set()
                return super().get_predictions(round_id)

        source = CancellingSource({r: _round_predictions(r) for r in (1, 2, 3)})
        outcomes = _data([1, 2, 3])
        report = BacktestEngine(source, outcomes).run(1, 3, cancel_event=cancel)
        assert report.cancelled
        assert report.rounds_processed == 1
        assert {r.round_id for r in report.results} == {1}

    def test_progress_logged(self, caplog):
        """The engine logs progress as rounds complete."""
        data = _data([1, 2, 3, 4])
        engine = BacktestEngine(data, data, settings=EngineSettings(progress_log_every=2))
        with caplog.at_level(logging.INFO, logger=BACKTEST_LOGGER):
            engine.run(1, 4)
        assert len([r for r in caplog.records if r.getMessage().startswith("Progress")]) == 2

    def test_empty_range_rejected(self):
        """An end round before the start round is a ValueError."""
        data = _data([1])
        with pytest.raises(ValueError):
            BacktestEngine(data, data).run(5, 4)

    def test_source_failure_is_fatal(self):
        """RoundDataUnavailableError propagates out of run()."""
        source = MagicMock()
        source.get_predictions.side_effect = RoundDataUnavailableError("down")
        with pytest.raises(RoundDataUnavailableError):
            BacktestEngine(source, _data([1])).run(1, 1)

    def test_duplicate_service_row_does_not_abort_run(self):
        """A repeated prediction row from the API is dropped and the run completes."""
        def rows(round_id):
            out = [
                {"arena_id": p.arena_id, "competitor_id": p.competitor_id,
                 "win_probability": p.win_probability, "payout": p.payout}
                for p in _round_predictions(round_id)
            ]
            if round_id == 2:
                out.append(dict(out[0]))
                out.append({"competitor_id": 9, "win_probability": 0.1, "payout": 20})
            return out

        def get(url, timeout):
            resp = MagicMock()
            resp.status_code = 200
            resp.json.return_value = rows(int(url.split("/")[-2]))
            return resp

        session = MagicMock()
        session.get.side_effect = get
        client = RoundDataClient(base_url="http://api.test", session=session)
        data = _data([1, 2, 3])

        report = BacktestEngine(client, data).run(1, 3)
        expected = BacktestEngine(data, data).run(1, 3)
        assert report.rounds_processed == 3
        assert report.rounds_skipped == 0
        assert [r.net_profit for r in report.results] == [r.net_profit for r in expected.results]

    def test_find_rounds_with_multiple_winners(self):
        """Only rounds with distinct conflicting winners are listed."""
        winners = {1: _favourites_win(), 2: [(1, 1), (1, 2)], 3: [], 4: [(3, 1), (3, 1)]}
        data = _data([1, 2, 3, 4], winners=winners)
        assert BacktestEngine(data, data).find_rounds_with_multiple_winners(1, 4) == [2]

    def test_run_round(self):
        """A single round settles every profile."""
        data = _data([1])
        evaluation = BacktestEngine(data, data).run_round(1)
        assert evaluation.round_id == 1
        assert len(evaluation.results) == 5
        assert BacktestEngine(data, data).run_round(2) is None


class TestRankingOverride:
    """Test ranking-method overrides and comparison."""

    def test_only_ev_tiers_overridden(self):
        """The override replaces EV ranking but leaves HighRisk on payout."""
        data = _data([1])
        profiles = BacktestEngine(data, data).profiles_for(RankingKey.KELLY)
        keys = {p.name: p.ranking_key for p in profiles}
        assert keys["HighRisk"] is RankingKey.TOTAL_PAYOUT
        assert all(keys[n] is RankingKey.KELLY for n in ["Conservative", "Balanced", "Moderate", "Aggressive"])

    def test_no_override_keeps_profiles(self):
        """Without an override the configured profiles are used as-is."""
        data = _data([1])
        engine = BacktestEngine(data, data, profiles=[StrategyProfile.balanced()])
        assert engine.profiles_for(None) == engine.profiles

    def test_report_records_override(self):
        """The report names the ranking method it ran with."""
        data = _data([1])
        report = BacktestEngine(data, data).run(1, 1, ranking_key_override=RankingKey.RISK_ADJUSTED)
        assert report.ranking_key_override is RankingKey.RISK_ADJUSTED
        assert report.to_dict()["ranking_key_override"] == "risk_adjusted"

    def test_compare_ranking_methods(self):
        """Every method is run, and each best-of pick names one of them."""
        data = _data([1, 2])
        comparison = compare_ranking_methods(BacktestEngine(data, data), 1, 2)
        assert list(comparison.methods) == list(COMPARISON_METHODS)
        for best in (
            comparison.best_by_roi,
            comparison.best_by_sharpe,
            comparison.best_by_consistency,
            comparison.best_by_profit_factor,
        ):
            assert best in COMPARISON_METHODS
        assert all(m.total_rounds == 2 for m in comparison.methods.values())

    def test_pool_round_results(self):
        """Per-tier results are pooled into one result per round."""
        data = _data([1])
        report = BacktestEngine(data, data).run(1, 1)
        pooled = pool_round_results(RankingKey.KELLY, report.results)
        assert len(pooled) == 1
        assert pooled[0].strategy_name == "kelly"
        assert pooled[0].total_bets == sum(r.total_bets for r in report.results)
