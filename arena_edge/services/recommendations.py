"""
Single-round recommendations: the five series for a live round.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from arena_edge.core.models import BetSeries
from arena_edge.core.strategy_config import EngineSettings, StrategyProfile
from arena_edge.services.report import RULE, format_bet_series
from arena_edge.services.round_data import PredictionSource
from arena_edge.services.series_builder import generate_all_series

logger = logging.getLogger(__name__)


@dataclass
class RoundRecommendations:
    round_id: int
    series: List[BetSeries] = field(default_factory=list)

    @property
    def total_bets(self) -> int:
        return sum(len(s.bets) for s in self.series)

    def to_dict(self) -> Dict:
        return {
            "round_id": self.round_id,
            "total_bets": self.total_bets,
            "series": [
                {
                    **s.to_dict(),
                    "total_expected_value": s.total_expected_value,
                    "average_expected_value": s.average_expected_value,
                }
                for s in self.series
            ],
        }


def generate_recommendations(
    round_id: int,
    predictions_source: PredictionSource,
    profiles: Optional[Sequence[StrategyProfile]] = None,
    settings: Optional[EngineSettings] = None,
) -> RoundRecommendations:
    """Build every profile's series for ``round_id``.

    A round without predictions yields an empty recommendation.
    """
    predictions = predictions_source.get_predictions(round_id)
    if not predictions:
        logger.warning("Round %d: no predictions available", round_id)
        return RoundRecommendations(round_id=round_id)

    recs = RoundRecommendations(
        round_id=round_id,
        series=generate_all_series(predictions, profiles, settings),
    )
    logger.info(
        "Round %d: %d series, %d bets recommended", round_id, len(recs.series), recs.total_bets
    )
    return recs


def format_recommendations(recs: RoundRecommendations) -> str:
    lines = [RULE, f"ROUND {recs.round_id} RECOMMENDATIONS  ({recs.total_bets} bets)", RULE]
    if not recs.series:
        lines.append("No predictions available.")
    for series in recs.series:
        lines.append(format_bet_series(series))
        lines.append("")
    return "\n".join(lines).rstrip()
