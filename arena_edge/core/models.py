"""Data-transfer objects shared by the search, assembler and backtest.

Every DTO here is frozen.  Predictions and outcomes belong to external
collaborators and are passed by value; nothing in the engine mutates them,
so the same objects can be handed to several worker threads at once.

* :class:`Prediction`: one competitor's (probability, payout) estimate for a
  round.  Also used as a *pick* once chosen into a bet.
* :class:`Bet`: a combination of at most one pick per arena.
* :class:`BetSeries`: the recommended bets of one strategy for one round.
* :class:`RealizedResult`: what a series actually returned in a round.
* :class:`DataQualityAnomaly`: a round/arena with more than one reported
  winner.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Dict, Iterable, Mapping, Tuple

from arena_edge.core.bet_math import (
    clamp_payout,
    clamp_probability,
    score_combination,
    single_pick_ev,
)
from arena_edge.core.strategy_config import RiskTier


# ---------------------------------------------------------------------------
# Predictions and bets
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Prediction:
    """A competitor's win-probability and payout estimate for one round.

    ``win_probability`` is clamped into (0, 1) and ``payout`` corrected to
    the 2:1 floor on construction, so downstream math never sees degenerate
    inputs.

    Attributes:
        round_id: Round the estimate belongs to.
        arena_id: Arena the competitor races in.
        competitor_id: Competitor identifier, unique within the arena.
        win_probability: Model probability of winning the arena.
        payout: Integer payout multiple (``n`` for ``n:1`` odds).
    """

    round_id: int
    arena_id: int
    competitor_id: int
    win_probability: float
    payout: int

    def __post_init__(self) -> None:
        object.__setattr__(self, "win_probability", clamp_probability(self.win_probability))
        object.__setattr__(self, "payout", clamp_payout(self.payout))

    @property
    def expected_value(self) -> float:
        """Single-pick EV: ``win_probability × payout − 1``."""
        return single_pick_ev(self.win_probability, self.payout)

    @property
    def key(self) -> str:
        """``"arena:competitor"`` token used in bet signatures."""
        return f"{self.arena_id}:{self.competitor_id}"


#: A prediction selected into a bet.
Pick = Prediction


@dataclass(frozen=True, slots=True)
class Bet:
    """A multi-arena wager; wins only if every pick wins its arena.

    Build with :meth:`from_picks` so the scores are always consistent with
    the picks.
    """

    picks: Tuple[Prediction, ...]
    combined_probability: float
    total_payout: int
    expected_value: float

    @classmethod
    def from_picks(cls, picks: Iterable[Prediction]) -> Bet:
        """Score ``picks`` and return the bet, ordered by arena.

        Raises:
            ValueError: If two picks share an arena.
        """
        ordered = tuple(sorted(picks, key=lambda p: p.arena_id))
        arenas = [p.arena_id for p in ordered]
        if len(arenas) != len(set(arenas)):
            raise ValueError(f"Bet has more than one pick in an arena: {arenas}")
        probability, payout, ev = score_combination(
            [p.win_probability for p in ordered],
            [p.payout for p in ordered],
        )
        return cls(
            picks=ordered,
            combined_probability=probability,
            total_payout=payout,
            expected_value=ev,
        )

    @property
    def arenas_covered(self) -> Tuple[int, ...]:
        return tuple(p.arena_id for p in self.picks)

    @property
    def size(self) -> int:
        return len(self.picks)

    @property
    def signature(self) -> str:
        """Sorted ``"arena:competitor"`` pairs joined by commas."""
        return ",".join(p.key for p in self.picks)

    def wins(self, winners: Mapping[int, int]) -> bool:
        """True iff every pick names the winner of its arena."""
        return all(winners.get(p.arena_id) == p.competitor_id for p in self.picks)

    def to_dict(self) -> Dict:
        return {
            "picks": [
                {
                    "arena_id": p.arena_id,
                    "competitor_id": p.competitor_id,
                    "win_probability": p.win_probability,
                    "payout": p.payout,
                }
                for p in self.picks
            ],
            "combined_probability": self.combined_probability,
            "total_payout": self.total_payout,
            "expected_value": self.expected_value,
            "signature": self.signature,
        }

    def __str__(self) -> str:
        legs = " + ".join(
            f"Arena{p.arena_id}:Competitor{p.competitor_id}({p.payout}:1)" for p in self.picks
        )
        return (
            f"[{legs}] -> {self.total_payout}:1 payout, "
            f"{self.combined_probability:.2%} win chance, "
            f"EV: {self.expected_value:+.2f}"
        )


@dataclass(frozen=True)
class BetSeries:
    """The recommended bets of one strategy profile for one round."""

    strategy_name: str
    risk_tier: RiskTier
    bets: Tuple[Bet, ...]
    description: str = ""
    underfilled: bool = False

    @property
    def total_expected_value(self) -> float:
        return sum(b.expected_value for b in self.bets)

    @property
    def average_expected_value(self) -> float:
        return self.total_expected_value / len(self.bets) if self.bets else 0.0

    def to_dict(self) -> Dict:
        return {
            "strategy_name": self.strategy_name,
            "risk_tier": self.risk_tier.value,
            "description": self.description,
            "underfilled": self.underfilled,
            "bets": [b.to_dict() for b in self.bets],
        }


# ---------------------------------------------------------------------------
# Backtest records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RealizedResult:
    """Outcome of one strategy's series in one round."""

    round_id: int
    strategy_name: str
    total_bets: int
    winning_bets: int
    bet_cost: float
    total_winnings: float
    net_profit: float
    roi: float

    def to_dict(self) -> Dict:
        return asdict(self)


@dataclass(frozen=True)
class DataQualityAnomaly:
    """More than one winner was reported for an arena."""

    round_id: int
    arena_id: int
    reported_winners: Tuple[int, ...] = field(default_factory=tuple)
    chosen_winner: int = 0

    def to_dict(self) -> Dict:
        return {
            "round_id": self.round_id,
            "arena_id": self.arena_id,
            "reported_winners": list(self.reported_winners),
            "chosen_winner": self.chosen_winner,
        }
