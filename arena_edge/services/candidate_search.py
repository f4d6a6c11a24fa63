"""
Candidate search: enumerate multi-arena bets from ranked picks.

A bet takes zero or one pick from each arena.  With ``k`` eligible picks in
each of ``n`` arenas there are ``(k + 1)^n`` combinations, so two strategies
share one interface:

    ExhaustiveSearch  backtracking over every combination; exact, only for
                      small inputs.
    BeamSearch        level-by-level expansion keeping the best
                      ``beam_width`` partial bets after each arena; bounded
                      at O(arenas × beam_width × picks_per_arena).

Both visit arenas in ascending id and picks in their precomputed rank order,
and both order their output with a stable sort on the ranking key, so equal
inputs always produce identical, identically ordered output.
"""

import logging
from abc import ABC, abstractmethod
from collections import defaultdict
from typing import Dict, Iterable, Iterator, List, Mapping, Sequence, Tuple

from arena_edge.core.bet_math import (
    combined_probability,
    ranking_score,
    total_payout,
)
from arena_edge.core.models import Bet, Prediction
from arena_edge.core.strategy_config import (
    DEFAULT_EXHAUSTIVE_PATH_LIMIT,
    PickOrder,
    RankingKey,
    StrategyProfile,
)

logger = logging.getLogger(__name__)

#: Arena id → eligible picks, best first.
RankedPicks = Mapping[int, Tuple[Prediction, ...]]

#: A partial bet under construction.
Partial = Tuple[Prediction, ...]


# ---------------------------------------------------------------------------
# Candidate preparation
# ---------------------------------------------------------------------------

def _pick_sort_value(pick: Prediction, order: PickOrder) -> float:
    if order is PickOrder.EXPECTED_VALUE:
        return pick.expected_value
    if order is PickOrder.PAYOUT:
        return float(pick.payout)
    return pick.win_probability


def _is_eligible(pick: Prediction, profile: StrategyProfile) -> bool:
    if profile.min_win_probability is not None and not (
        pick.win_probability > profile.min_win_probability
    ):
        return False
    if profile.require_positive_ev and not (pick.expected_value > 0.0):
        return False
    return True


def rank_picks(
    predictions: Iterable[Prediction],
    order: PickOrder,
    per_arena: int,
) -> Dict[int, Tuple[Prediction, ...]]:
    """Group by arena, rank each arena by ``order`` and keep the top ``per_arena``.

    The sort is stable, so competitors that tie keep their input order.
    Arenas come back in ascending id.
    """
    by_arena: Dict[int, List[Prediction]] = defaultdict(list)
    for p in predictions:
        by_arena[p.arena_id].append(p)

    return {
        arena_id: tuple(
            sorted(by_arena[arena_id], key=lambda p: _pick_sort_value(p, order), reverse=True)[
                :per_arena
            ]
        )
        for arena_id in sorted(by_arena)
    }


def rank_candidates(
    predictions: Iterable[Prediction],
    profile: StrategyProfile,
) -> Dict[int, Tuple[Prediction, ...]]:
    """Apply the profile's filter, then :func:`rank_picks` with its limits.

    Arenas left with no eligible competitor are dropped; they could only
    ever contribute the "skip" branch.
    """
    eligible = [p for p in predictions if _is_eligible(p, profile)]
    return rank_picks(eligible, profile.pick_order, profile.max_candidates_per_arena)


def count_paths(picks_per_arena: RankedPicks) -> int:
    """Number of leaves in the exhaustive search tree, ``Π(k_i + 1)``."""
    paths = 1
    for picks in picks_per_arena.values():
        paths *= len(picks) + 1
    return paths


# ---------------------------------------------------------------------------
# Search interface
# ---------------------------------------------------------------------------

class CandidateSearch(ABC):
    """Enumerate bets of size ``[min_picks, max_picks]`` from ranked picks.

    Subclasses share :meth:`expand` (skip / pick branching for one arena)
    and :meth:`finalize` (size filter, scoring, stable ranking) and differ
    only in how the frontier is pruned.
    """

    name = "base"

    def __init__(self, min_picks: int, max_picks: int, ranking_key: RankingKey):
        if min_picks < 1 or max_picks < min_picks:
            raise ValueError(f"invalid size bounds [{min_picks}, {max_picks}]")
        self.min_picks = min_picks
        self.max_picks = max_picks
        self.ranking_key = ranking_key

    def score(self, partial: Partial) -> float:
        """Ranking score of a partial bet; the empty partial is ``-inf``."""
        return ranking_score(
            len(partial),
            combined_probability(p.win_probability for p in partial),
            total_payout(p.payout for p in partial),
            self.ranking_key,
        )

    def expand(self, frontier: Sequence[Partial], arena_picks: Sequence[Prediction]) -> List[Partial]:
        """Branch every partial on one arena: skip first, then each pick.

        Picks are only added while the partial is below ``max_picks``.
        """
        expanded: List[Partial] = []
        for partial in frontier:
            expanded.append(partial)
            if len(partial) < self.max_picks:
                for pick in arena_picks:
                    expanded.append(partial + (pick,))
        return expanded

    @abstractmethod
    def prune(self, frontier: List[Partial]) -> List[Partial]:
        """Reduce the frontier after an arena has been expanded."""

    def finalize(self, frontier: Iterable[Partial]) -> List[Bet]:
        """Keep in-range partials, build bets, stable-sort by ranking key."""
        sized = [p for p in frontier if self.min_picks <= len(p) <= self.max_picks]
        scored = [(self.score(p), Bet.from_picks(p)) for p in sized]
        scored.sort(key=lambda item: item[0], reverse=True)
        return [bet for _, bet in scored]

    def search(self, picks_per_arena: RankedPicks) -> List[Bet]:
        frontier: List[Partial] = [()]
        for arena_id in sorted(picks_per_arena):
            frontier = self.prune(self.expand(frontier, picks_per_arena[arena_id]))
        bets = self.finalize(frontier)
        logger.debug(
            "%s search over %d arenas produced %d bets (size [%d,%d], rank=%s)",
            self.name, len(picks_per_arena), len(bets),
            self.min_picks, self.max_picks, self.ranking_key.value,
        )
        return bets


class ExhaustiveSearch(CandidateSearch):
    """Depth-first backtracking over every combination.

    Walks arenas in ascending id, branching "skip" before each pick in rank
    order, and emits a leaf once every arena has been visited.  Memory is
    proportional to the depth, not the number of leaves.
    """

    name = "exhaustive"

    def prune(self, frontier: List[Partial]) -> List[Partial]:
        return frontier

    def _walk(
        self,
        partial: Partial,
        arena_ids: Sequence[int],
        index: int,
        picks_per_arena: RankedPicks,
    ) -> Iterator[Partial]:
        if index == len(arena_ids):
            yield partial
            return
        for child in self.expand([partial], picks_per_arena[arena_ids[index]]):
            yield from self._walk(child, arena_ids, index + 1, picks_per_arena)

    def search(self, picks_per_arena: RankedPicks) -> List[Bet]:
        arena_ids = sorted(picks_per_arena)
        bets = self.finalize(self._walk((), arena_ids, 0, picks_per_arena))
        logger.debug(
            "exhaustive search over %d arenas (%d paths) produced %d bets",
            len(arena_ids), count_paths(picks_per_arena), len(bets),
        )
        return bets


class BeamSearch(CandidateSearch):
    """Keep only the ``beam_width`` best partial bets after each arena.

    An approximation: a combination whose prefix falls out of the beam is
    never revisited, so the global optimum can be missed.
    """

    name = "beam"

    def __init__(self, min_picks: int, max_picks: int, ranking_key: RankingKey, beam_width: int):
        super().__init__(min_picks, max_picks, ranking_key)
        if beam_width < 1:
            raise ValueError(f"beam_width must be >= 1, got {beam_width}")
        self.beam_width = beam_width

    def prune(self, frontier: List[Partial]) -> List[Partial]:
        # sorted() with reverse=True is stable: ties keep expansion order
        ranked = sorted(frontier, key=self.score, reverse=True)
        return ranked[: self.beam_width]


def select_search(
    profile: StrategyProfile,
    picks_per_arena: RankedPicks,
    exhaustive_path_limit: int = DEFAULT_EXHAUSTIVE_PATH_LIMIT,
    force_beam: bool = False,
) -> CandidateSearch:
    """Pick the search strategy for a profile and its ranked input.

    Exhaustive backtracking is used while the tree has at most
    ``exhaustive_path_limit`` leaves; larger inputs use the profile's beam.
    """
    paths = count_paths(picks_per_arena)
    if not force_beam and paths <= exhaustive_path_limit:
        return ExhaustiveSearch(profile.min_picks, profile.max_picks, profile.ranking_key)
    return BeamSearch(profile.min_picks, profile.max_picks, profile.ranking_key, profile.beam_width)
