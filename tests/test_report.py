"""
Tests for report.py

Run with: pytest tests/test_report.py -v
"""

import json
import os
from datetime import datetime, timezone

from arena_edge.core.models import Bet, BetSeries, DataQualityAnomaly, Prediction, RealizedResult
from arena_edge.core.strategy_config import RankingKey, RiskTier
from arena_edge.services.backtest import BacktestReport, MethodComparison
from arena_edge.services.report import (
    format_backtest_report,
    format_bet_series,
    format_method_comparison,
    save_report,
)
from arena_edge.services.strategy_metrics import compute_strategy_metrics, rank_strategies


def _report(cancelled=False):
    result = RealizedResult(
        round_id=1, strategy_name="Balanced", total_bets=10, winning_bets=1,
        bet_cost=10.0, total_winnings=12.0, net_profit=2.0, roi=0.2,
    )
    metrics = {
        "Balanced": compute_strategy_metrics("Balanced", [result]),
        "HighRisk": compute_strategy_metrics("HighRisk", []),
    }
    return BacktestReport(
        start_round=1,
        end_round=2,
        rounds_processed=1,
        rounds_skipped=1,
        cancelled=cancelled,
        strategies=metrics,
        rankings=rank_strategies(metrics),
        recommended="Balanced",
        anomalies=[DataQualityAnomaly(1, 3, (4, 5), 4)],
        results=[result],
    )


class TestSaveReport:
    """Test writing reports to disk."""

    def test_timestamped_json(self, tmp_path):
        """The file is named from the UTC timestamp and holds the report."""
        now = datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
        path = save_report(_report(), str(tmp_path / "out"), now=now)

        assert os.path.basename(path) == "backtest_20260102_030405.json"
        with open(path, encoding="utf-8") as fh:
            data = json.load(fh)
        assert data["recommended"] == "Balanced"
        assert data["rounds_skipped"] == 1
        assert data["strategies"]["Balanced"]["profit_factor"]["kind"] == "no_loss"
        assert data["anomalies"][0]["reported_winners"] == [4, 5]

    def test_default_directory_from_env(self, tmp_path, monkeypatch):
        """REPORTS_DIR sets the default output directory."""
        monkeypatch.setenv("REPORTS_DIR", str(tmp_path / "env-reports"))
        path = save_report(_report())
        assert path.startswith(str(tmp_path / "env-reports"))
        assert os.path.exists(path)


class TestFormatting:
    """Test text rendering of reports and series."""

    def test_backtest_summary(self):
        """The summary shows strategies, the recommendation and anomalies."""
        text = format_backtest_report(_report())
        assert "BACKTEST  rounds 1-2" in text
        assert "Balanced" in text and "HighRisk" in text
        assert "Recommended strategy: Balanced" in text
        assert "round 1 arena 3" in text
        assert "no losses" in text

    def test_cancelled_flag_shown(self):
        """A cancelled run is marked in the summary."""
        assert "[CANCELLED]" in format_backtest_report(_report(cancelled=True))

    def test_bet_series_ticket(self):
        """A series renders each bet as a ticket line."""
        bet = Bet.from_picks([Prediction(1, 1, 2, 0.6, 3), Prediction(1, 2, 7, 0.5, 4)])
        series = BetSeries("Moderate", RiskTier.MEDIUM_HIGH, (bet,), "desc", underfilled=True)
        text = format_bet_series(series)
        assert "Moderate (medium_high)  [UNDERFILLED]" in text
        assert "Arena1:Competitor2(3:1) + Arena2:Competitor7(4:1)" in text
        assert "12:1 payout" in text
        assert "Total EV: +2.60" in text

    def test_method_comparison(self):
        """Methods without a winner show n/a."""
        metrics = compute_strategy_metrics("kelly", [])
        comparison = MethodComparison(
            start_round=1, end_round=5,
            methods={RankingKey.KELLY: metrics},
            best_by_roi=RankingKey.KELLY,
        )
        text = format_method_comparison(comparison)
        assert "kelly" in text
        assert "Best by ROI: kelly" in text
        assert "Best by Sharpe: n/a" in text
