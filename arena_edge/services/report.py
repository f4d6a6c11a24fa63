"""
Report sink: persist backtest reports and render them for humans.

    save_report(report, directory)     → reports/backtest_YYYYMMDD_HHMMSS.json
    format_backtest_report(report)     → multi-line summary
    format_bet_series(series)          → one series as a ticket
"""

import json
import logging
import os
from datetime import datetime, timezone
from typing import Optional

from arena_edge.core.models import BetSeries
from arena_edge.services.backtest import BacktestReport, MethodComparison

logger = logging.getLogger(__name__)

RULE = "=" * 72


def save_report(
    report: BacktestReport,
    directory: Optional[str] = None,
    now: Optional[datetime] = None,
) -> str:
    """Write ``report`` as JSON and return the file path.

    The file is named from the UTC time of writing.  ``directory`` defaults
    to ``REPORTS_DIR`` (``reports``) and is created if missing.
    """
    directory = directory or os.getenv("REPORTS_DIR", "reports")
    os.makedirs(directory, exist_ok=True)
    stamp = (now or datetime.now(timezone.utc)).strftime("%Y%m%d_%H%M%S")
    path = os.path.join(directory, f"backtest_{stamp}.json")

    with open(path, "w", encoding="utf-8") as fh:
        json.dump(report.to_dict(), fh, indent=2)

    logger.info("Backtest report saved to %s", path)
    return path


def format_bet_series(series: BetSeries) -> str:
    """Format one strategy's series for display."""
    lines = []
    flag = "  [UNDERFILLED]" if series.underfilled else ""
    lines.append(f"🎫 {series.strategy_name} ({series.risk_tier.value}){flag}")
    if series.description:
        lines.append(f"   {series.description}")
    for i, bet in enumerate(series.bets, start=1):
        lines.append(f"   {i:>2}. {bet}")
    lines.append(
        f"   Total EV: {series.total_expected_value:+.2f}  "
        f"Average EV: {series.average_expected_value:+.3f}  "
        f"Bets: {len(series.bets)}"
    )
    return "\n".join(lines)


def format_backtest_report(report: BacktestReport) -> str:
    """Multi-line summary of a backtest: per-strategy table, rankings, data issues."""
    lines = [RULE]
    title = f"BACKTEST  rounds {report.start_round}-{report.end_round}"
    if report.ranking_key_override is not None:
        title += f"  (ranking: {report.ranking_key_override.value})"
    if report.cancelled:
        title += "  [CANCELLED]"
    lines.append(title)
    lines.append(RULE)
    lines.append(
        f"Rounds evaluated: {report.rounds_processed}   skipped: {report.rounds_skipped}   "
        f"anomalies: {len(report.anomalies)}   underfilled series: {len(report.underfilled_series)}"
    )
    lines.append("")
    lines.append(
        f"{'Strategy':<14}{'Bets':>7}{'Hit%':>8}{'ROI':>9}{'Sharpe':>8}{'Sortino':>9}"
        f"{'MaxDD':>9}{'PF':>10}{'Cons':>6}{'Score':>8}"
    )
    for name, m in report.strategies.items():
        lines.append(
            f"{name:<14}{m.total_bets:>7}{m.hit_rate:>8.2%}{m.roi:>+9.2%}{m.sharpe_ratio:>8.2f}"
            f"{m.sortino_ratio:>9.2f}{m.max_drawdown:>9.2f}{str(m.profit_factor):>10}"
            f"{m.consistency_score:>6.2f}{m.risk_adjusted_score:>8.3f}"
        )

    if report.rankings:
        lines.append("")
        for criterion, names in report.rankings.items():
            label = criterion.replace("by_", "").replace("_", " ")
            lines.append(f"By {label:<14} {' > '.join(names)}")

    lines.append("")
    lines.append(f"Recommended strategy: {report.recommended or 'none'}")

    for anomaly in report.anomalies:
        lines.append(
            f"  ⚠️  round {anomaly.round_id} arena {anomaly.arena_id}: winners "
            f"{list(anomaly.reported_winners)}, used {anomaly.chosen_winner}"
        )
    lines.append(RULE)
    return "\n".join(lines)


def format_method_comparison(comparison: MethodComparison) -> str:
    """Summary table of a ranking-method comparison."""
    lines = [RULE, f"RANKING METHOD COMPARISON  rounds {comparison.start_round}-{comparison.end_round}", RULE]
    lines.append(f"{'Method':<22}{'ROI':>9}{'Sharpe':>8}{'Win%':>8}{'MaxDD':>9}{'PF':>10}")
    for method, m in comparison.methods.items():
        lines.append(
            f"{method.value:<22}{m.roi:>+9.2%}{m.sharpe_ratio:>8.2f}"
            f"{m.winning_rounds_pct:>8.1%}{m.max_drawdown:>9.2f}{str(m.profit_factor):>10}"
        )
    lines.append("")
    for label, key in (
        ("ROI", comparison.best_by_roi),
        ("Sharpe", comparison.best_by_sharpe),
        ("consistency", comparison.best_by_consistency),
        ("profit factor", comparison.best_by_profit_factor),
    ):
        lines.append(f"Best by {label}: {key.value if key else 'n/a'}")
    return "\n".join(lines)
