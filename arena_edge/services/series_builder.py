"""
Series assembly: turn a tier's candidate bets into a recommended BetSeries.

For each strategy profile:

    1. Rank and filter the round's predictions per arena.
    2. Run the candidate search (exhaustive or beam).
    3. Drop duplicate bets by signature (first occurrence wins).
    4. Keep the top ``series_size`` by the profile's ranking key.
    5. If fewer than ``min_bets_required`` remain, top up from a relaxed
       beam search over every competitor (ranked by win probability) with
       tier-specific size bounds.  A series that is still short is returned
       as-is and flagged ``underfilled``.

The five profiles of a round are independent, so :func:`generate_all_series`
runs them on a thread pool and joins before returning.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Iterable, List, Optional, Sequence, Set, Tuple

from arena_edge.core.models import Bet, BetSeries, Prediction
from arena_edge.core.strategy_config import (
    EngineSettings,
    PickOrder,
    StrategyProfile,
    default_profiles,
)
from arena_edge.services.candidate_search import (
    BeamSearch,
    rank_candidates,
    rank_picks,
    select_search,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Deduplication
# ---------------------------------------------------------------------------

def bet_signature(bet: Bet) -> str:
    """Canonical identity of a bet: sorted ``arena:competitor`` pairs."""
    return bet.signature


def dedupe_bets(bets: Iterable[Bet]) -> List[Bet]:
    """Stable dedup by signature: the first occurrence of each is kept."""
    seen: Set[str] = set()
    unique: List[Bet] = []
    for bet in bets:
        sig = bet_signature(bet)
        if sig in seen:
            continue
        seen.add(sig)
        unique.append(bet)
    return unique


# ---------------------------------------------------------------------------
# Minimum-count guarantee
# ---------------------------------------------------------------------------

def ensure_minimum_bets(
    bets: Sequence[Bet],
    predictions: Sequence[Prediction],
    profile: StrategyProfile,
    settings: EngineSettings,
) -> List[Bet]:
    """Top ``bets`` up to ``settings.min_bets_required`` with unseen bets.

    The relaxed search ignores the profile's filter: every competitor is a
    candidate, the best ``fallback_candidates_per_arena`` per arena by win
    probability, sized by the profile's fallback bounds and searched with
    ``fallback_beam_width``.  Candidates are merged in rank order until the
    threshold is met or they run out.
    """
    result = list(bets)
    if len(result) >= settings.min_bets_required:
        return result

    seen = {bet_signature(b) for b in result}
    all_picks = rank_picks(
        predictions,
        PickOrder.WIN_PROBABILITY,
        settings.fallback_candidates_per_arena,
    )
    relaxed = BeamSearch(
        profile.fallback_min_picks,
        profile.fallback_max_picks,
        profile.ranking_key,
        settings.fallback_beam_width,
    )
    added = 0
    for bet in relaxed.search(all_picks):
        if len(result) >= settings.min_bets_required:
            break
        sig = bet_signature(bet)
        if sig in seen:
            continue
        seen.add(sig)
        result.append(bet)
        added += 1

    logger.info(
        "%s: topped up series with %d relaxed bets (size [%d,%d]) -> %d",
        profile.name, added, profile.fallback_min_picks, profile.fallback_max_picks, len(result),
    )
    return result


# ---------------------------------------------------------------------------
# Series generation
# ---------------------------------------------------------------------------

def assemble_series(
    candidates: Iterable[Bet],
    predictions: Sequence[Prediction],
    profile: StrategyProfile,
    settings: EngineSettings,
) -> BetSeries:
    """Dedup, truncate and top up an already ranked candidate list."""
    unique = dedupe_bets(candidates)[: settings.series_size]

    if len(unique) < settings.min_bets_required:
        logger.info(
            "%s: only %d unique bets from primary search, need %d",
            profile.name, len(unique), settings.min_bets_required,
        )
        unique = ensure_minimum_bets(unique, predictions, profile, settings)

    underfilled = len(unique) < settings.min_bets_required
    if underfilled:
        logger.warning(
            "%s: series underfilled, %d of %d bets available",
            profile.name, len(unique), settings.min_bets_required,
        )

    return BetSeries(
        strategy_name=profile.name,
        risk_tier=profile.risk_tier,
        bets=tuple(unique),
        description=profile.description,
        underfilled=underfilled,
    )


def build_series(
    predictions: Sequence[Prediction],
    profile: StrategyProfile,
    settings: Optional[EngineSettings] = None,
    force_beam: bool = False,
) -> BetSeries:
    """Generate one profile's BetSeries for a round's predictions."""
    settings = settings or EngineSettings()
    ranked = rank_candidates(predictions, profile)
    search = select_search(profile, ranked, settings.exhaustive_path_limit, force_beam=force_beam)
    candidates = search.search(ranked)

    logger.debug(
        "%s: %d arenas eligible, %s search produced %d candidates",
        profile.name, len(ranked), search.name, len(candidates),
    )
    return assemble_series(candidates, predictions, profile, settings)


def generate_all_series(
    predictions: Sequence[Prediction],
    profiles: Optional[Sequence[StrategyProfile]] = None,
    settings: Optional[EngineSettings] = None,
) -> List[BetSeries]:
    """Build every profile's series concurrently and join.

    Each task receives the same immutable tuple of predictions and derives
    its own ranked-picks mapping, so no state is shared between workers.
    The returned list follows ``profiles`` order, not completion order.
    """
    settings = settings or EngineSettings()
    profiles = tuple(profiles) if profiles is not None else default_profiles()
    frozen: Tuple[Prediction, ...] = tuple(predictions)

    if not frozen:
        return []

    workers = max(1, min(settings.max_workers, len(profiles)))
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="series") as pool:
        futures = [pool.submit(build_series, frozen, profile, settings) for profile in profiles]
        return [f.result() for f in futures]
