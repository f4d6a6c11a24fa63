"""Strategy-level configuration: every tier constant in one place.

This module is the **registry** for the five risk-tier profiles and for the
engine-wide tunables.  Nowhere else in the codebase should filter thresholds,
beam widths or size bounds be hard-coded.

Architecture
------------
:class:`StrategyProfile` is a frozen dataclass carrying all per-tier
constants.  Named constructors (:meth:`StrategyProfile.conservative`,
:meth:`StrategyProfile.high_risk`, ...) return pre-populated instances and
:func:`default_profiles` returns all five in recommendation order.

:class:`EngineSettings` holds the run-wide knobs (minimum series size, unit
stake, risk-free rate).  :meth:`EngineSettings.from_env` reads them from the
environment (``.env`` files are honoured via ``python-dotenv``).

Typical usage::

    from arena_edge.core.strategy_config import EngineSettings, default_profiles

    settings = EngineSettings.from_env()
    profiles = default_profiles()

    # Override a single constant for an experiment:
    from dataclasses import replace
    wide = replace(StrategyProfile.balanced(), beam_width=400)
"""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from enum import Enum
from typing import Final, Optional, Tuple

from dotenv import load_dotenv


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class RiskTier(str, Enum):
    """Risk level of a strategy profile, lowest first."""

    LOW = "low"
    MEDIUM = "medium"
    MEDIUM_HIGH = "medium_high"
    HIGH = "high"
    VERY_HIGH = "very_high"


class RankingKey(str, Enum):
    """Score used to order candidate bets.

    ``EXPECTED_VALUE`` and ``TOTAL_PAYOUT`` are the keys used by the fixed
    profiles.  The remaining members are alternative optimisation methods
    that :func:`~arena_edge.services.backtest.compare_ranking_methods`
    substitutes for EV when comparing ranking schemes over a backtest.
    """

    EXPECTED_VALUE = "expected_value"
    TOTAL_PAYOUT = "total_payout"
    KELLY = "kelly"
    CONSISTENCY_WEIGHTED = "consistency_weighted"
    RISK_ADJUSTED = "risk_adjusted"
    COST_ADJUSTED = "cost_adjusted"


class PickOrder(str, Enum):
    """Order in which a single arena's eligible competitors are ranked."""

    EXPECTED_VALUE = "expected_value"
    PAYOUT = "payout"
    WIN_PROBABILITY = "win_probability"


# ---------------------------------------------------------------------------
# Engine-wide defaults
# ---------------------------------------------------------------------------

#: Minimum number of distinct bets every series should carry.
DEFAULT_MIN_BETS_REQUIRED: Final[int] = 10

#: Number of top-ranked bets kept from the primary search of each tier.
DEFAULT_SERIES_SIZE: Final[int] = 10

#: Stake placed on every bet.  ROI is stake-invariant; profit is not.
DEFAULT_UNIT_STAKE: Final[float] = 1.0

#: Per-round baseline return subtracted in Sharpe and Sortino.
DEFAULT_RISK_FREE_RATE: Final[float] = 0.02

#: Beam width used when topping up an underfilled series.
DEFAULT_FALLBACK_BEAM_WIDTH: Final[int] = 500

#: Competitors per arena (by win probability) considered by the top-up search.
DEFAULT_FALLBACK_CANDIDATES_PER_ARENA: Final[int] = 5

#: Largest exhaustive path count ``Π(k_i + 1)`` before beam search is used.
DEFAULT_EXHAUSTIVE_PATH_LIMIT: Final[int] = 4096

#: Worker threads used to build the tier series of one round.
DEFAULT_MAX_WORKERS: Final[int] = 5

#: Backtest progress is logged every this many rounds.
DEFAULT_PROGRESS_LOG_EVERY: Final[int] = 50


# ---------------------------------------------------------------------------
# Strategy profiles
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class StrategyProfile:
    """Immutable parameter bundle for one risk tier.

    Attributes:
        name: Display name, also the key of the tier's metrics in reports.
        risk_tier: The :class:`RiskTier` this profile represents.
        description: One-line human description of the selection rule.

        --- Candidate filter ---
        min_win_probability: Competitors must have a win probability
            strictly above this value.  ``None`` disables the filter.
        require_positive_ev: When True only competitors whose single-pick
            EV (``p × payout − 1``) is strictly positive are eligible.
        max_candidates_per_arena: Eligible competitors kept per arena after
            ranking by ``pick_order``.
        pick_order: How competitors within one arena are ranked.

        --- Search ---
        min_picks: Smallest bet size emitted.
        max_picks: Largest bet size emitted (also caps partial bets).
        beam_width: Partial bets retained per arena by the beam search.
        ranking_key: Score by which bets are ordered and pruned.

        --- Minimum-count fallback ---
        fallback_min_picks: Size lower bound of the relaxed top-up search.
        fallback_max_picks: Size upper bound of the relaxed top-up search.
    """

    name: str
    risk_tier: RiskTier
    description: str

    # Candidate filter
    min_win_probability: Optional[float]
    require_positive_ev: bool
    max_candidates_per_arena: int
    pick_order: PickOrder

    # Search
    min_picks: int
    max_picks: int
    beam_width: int
    ranking_key: RankingKey

    # Fallback
    fallback_min_picks: int
    fallback_max_picks: int

    def __post_init__(self) -> None:
        if self.min_picks < 1 or self.max_picks < self.min_picks:
            raise ValueError(
                f"{self.name}: invalid size bounds [{self.min_picks}, {self.max_picks}]"
            )
        if self.fallback_min_picks < 1 or self.fallback_max_picks < self.fallback_min_picks:
            raise ValueError(
                f"{self.name}: invalid fallback bounds "
                f"[{self.fallback_min_picks}, {self.fallback_max_picks}]"
            )
        if self.beam_width < 1:
            raise ValueError(f"{self.name}: beam_width must be >= 1, got {self.beam_width}")
        if self.max_candidates_per_arena < 1:
            raise ValueError(
                f"{self.name}: max_candidates_per_arena must be >= 1, "
                f"got {self.max_candidates_per_arena}"
            )

    # ------------------------------------------------------------------ #
    #  Named constructors                                                  #
    # ------------------------------------------------------------------ #

    @classmethod
    def conservative(cls) -> StrategyProfile:
        """High-probability picks only (p > 0.50)."""
        return cls(
            name="Conservative",
            risk_tier=RiskTier.LOW,
            description="High probability picks (>50% win chance)",
            min_win_probability=0.50,
            require_positive_ev=False,
            max_candidates_per_arena=5,
            pick_order=PickOrder.EXPECTED_VALUE,
            min_picks=1,
            max_picks=5,
            beam_width=50,
            ranking_key=RankingKey.EXPECTED_VALUE,
            fallback_min_picks=1,
            fallback_max_picks=3,
        )

    @classmethod
    def balanced(cls) -> StrategyProfile:
        """Mix of safe and moderate picks (p > 0.25)."""
        return cls(
            name="Balanced",
            risk_tier=RiskTier.MEDIUM,
            description="Mix of safe and moderate picks (>25% win chance)",
            min_win_probability=0.25,
            require_positive_ev=False,
            max_candidates_per_arena=5,
            pick_order=PickOrder.EXPECTED_VALUE,
            min_picks=1,
            max_picks=5,
            beam_width=100,
            ranking_key=RankingKey.EXPECTED_VALUE,
            fallback_min_picks=1,
            fallback_max_picks=4,
        )

    @classmethod
    def moderate(cls) -> StrategyProfile:
        """Higher payout potential (p > 0.15)."""
        return cls(
            name="Moderate",
            risk_tier=RiskTier.MEDIUM_HIGH,
            description="Higher payout potential (>15% win chance)",
            min_win_probability=0.15,
            require_positive_ev=False,
            max_candidates_per_arena=5,
            pick_order=PickOrder.EXPECTED_VALUE,
            min_picks=1,
            max_picks=5,
            beam_width=150,
            ranking_key=RankingKey.EXPECTED_VALUE,
            fallback_min_picks=2,
            fallback_max_picks=5,
        )

    @classmethod
    def aggressive(cls) -> StrategyProfile:
        """Every competitor with positive single-pick EV."""
        return cls(
            name="Aggressive",
            risk_tier=RiskTier.HIGH,
            description="Maximum EV picks with positive expected value",
            min_win_probability=None,
            require_positive_ev=True,
            max_candidates_per_arena=4,
            pick_order=PickOrder.EXPECTED_VALUE,
            min_picks=1,
            max_picks=5,
            beam_width=200,
            ranking_key=RankingKey.EXPECTED_VALUE,
            fallback_min_picks=3,
            fallback_max_picks=5,
        )

    @classmethod
    def high_risk(cls) -> StrategyProfile:
        """Maximum payout combinations.

        Ranks by total payout rather than EV.  This is deliberate: the tier
        exists to surface long-shot tickets, not favourable ones.
        """
        return cls(
            name="HighRisk",
            risk_tier=RiskTier.VERY_HIGH,
            description="Maximum payout combinations, highest odds",
            min_win_probability=None,
            require_positive_ev=False,
            max_candidates_per_arena=3,
            pick_order=PickOrder.PAYOUT,
            min_picks=1,
            max_picks=5,
            beam_width=100,
            ranking_key=RankingKey.TOTAL_PAYOUT,
            fallback_min_picks=4,
            fallback_max_picks=5,
        )

    # ------------------------------------------------------------------ #
    #  Convenience                                                         #
    # ------------------------------------------------------------------ #

    def with_ranking_key(self, key: RankingKey) -> StrategyProfile:
        """Return a copy ranked by ``key`` instead of the tier default."""
        return replace(self, ranking_key=key)

    def __repr__(self) -> str:
        return (
            f"StrategyProfile(name={self.name!r}, tier={self.risk_tier.value}, "
            f"size=[{self.min_picks},{self.max_picks}], beam={self.beam_width}, "
            f"rank={self.ranking_key.value})"
        )


def default_profiles() -> Tuple[StrategyProfile, ...]:
    """The five fixed tiers, lowest risk first."""
    return (
        StrategyProfile.conservative(),
        StrategyProfile.balanced(),
        StrategyProfile.moderate(),
        StrategyProfile.aggressive(),
        StrategyProfile.high_risk(),
    )


# ---------------------------------------------------------------------------
# Engine settings
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EngineSettings:
    """Run-wide tunables shared by the assembler, backtest and metrics.

    Attributes:
        min_bets_required: Series shorter than this are topped up by the
            relaxed fallback search.
        series_size: Bets kept from each tier's primary search.
        unit_stake: Stake per bet.  Winnings are ``total_payout × unit_stake``.
        risk_free_rate: Per-round baseline return for Sharpe / Sortino.
        fallback_beam_width: Beam width of the top-up search.
        fallback_candidates_per_arena: Competitors per arena in the top-up.
        exhaustive_path_limit: Above this path count the beam search is
            used instead of exhaustive backtracking.
        max_workers: Thread pool size for per-round tier generation.
        progress_log_every: Backtest progress log cadence in rounds.
        reports_dir: Default directory for serialised reports.
    """

    min_bets_required: int = DEFAULT_MIN_BETS_REQUIRED
    series_size: int = DEFAULT_SERIES_SIZE
    unit_stake: float = DEFAULT_UNIT_STAKE
    risk_free_rate: float = DEFAULT_RISK_FREE_RATE
    fallback_beam_width: int = DEFAULT_FALLBACK_BEAM_WIDTH
    fallback_candidates_per_arena: int = DEFAULT_FALLBACK_CANDIDATES_PER_ARENA
    exhaustive_path_limit: int = DEFAULT_EXHAUSTIVE_PATH_LIMIT
    max_workers: int = DEFAULT_MAX_WORKERS
    progress_log_every: int = DEFAULT_PROGRESS_LOG_EVERY
    reports_dir: str = "reports"

    def __post_init__(self) -> None:
        if self.unit_stake <= 0:
            raise ValueError(f"unit_stake must be positive, got {self.unit_stake}")
        if self.series_size < 1 or self.min_bets_required < 0:
            raise ValueError("series_size must be >= 1 and min_bets_required >= 0")

    @classmethod
    def from_env(cls) -> EngineSettings:
        """Build settings from environment variables (``.env`` honoured)."""
        load_dotenv()
        return cls(
            min_bets_required=int(os.getenv("MIN_BETS_REQUIRED", str(DEFAULT_MIN_BETS_REQUIRED))),
            series_size=int(os.getenv("SERIES_SIZE", str(DEFAULT_SERIES_SIZE))),
            unit_stake=float(os.getenv("UNIT_STAKE", str(DEFAULT_UNIT_STAKE))),
            risk_free_rate=float(os.getenv("RISK_FREE_RATE", str(DEFAULT_RISK_FREE_RATE))),
            fallback_beam_width=int(
                os.getenv("FALLBACK_BEAM_WIDTH", str(DEFAULT_FALLBACK_BEAM_WIDTH))
            ),
            fallback_candidates_per_arena=int(
                os.getenv(
                    "FALLBACK_CANDIDATES_PER_ARENA",
                    str(DEFAULT_FALLBACK_CANDIDATES_PER_ARENA),
                )
            ),
            exhaustive_path_limit=int(
                os.getenv("EXHAUSTIVE_PATH_LIMIT", str(DEFAULT_EXHAUSTIVE_PATH_LIMIT))
            ),
            max_workers=int(os.getenv("SERIES_MAX_WORKERS", str(DEFAULT_MAX_WORKERS))),
            progress_log_every=int(
                os.getenv("PROGRESS_LOG_EVERY", str(DEFAULT_PROGRESS_LOG_EVERY))
            ),
            reports_dir=os.getenv("REPORTS_DIR", "reports"),
        )
