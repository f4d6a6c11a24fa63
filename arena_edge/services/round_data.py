"""
Round data boundary: where predictions and outcomes come from.

The engine consumes two external collaborators per round:

    PredictionSource  ordered predictions {arena, competitor, probability, payout}
    OutcomeSource     ordered winner reports (arena, competitor); an arena may
                      be reported more than once when the upstream data is bad

Two implementations are provided:

    InMemoryRoundData  dictionaries supplied by the caller (replays, tests)
    RoundDataClient    HTTP client for the round-data API

A round with no data is *not* an error: sources return an empty list and the
backtest skips the round.  API rows that cannot be parsed, and repeated rows for
the same competitor, are dropped with a warning.  The same duplicates handed to
InMemoryRoundData are a caller error and raise ValueError.  A source that
cannot be reached at all raises RoundDataUnavailableError, which is fatal to
the run.
"""

import logging
import os
from abc import ABC, abstractmethod
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple, TypeVar

import requests
from dotenv import load_dotenv

from arena_edge.core.models import Prediction

load_dotenv()

logger = logging.getLogger(__name__)

API_URL = os.getenv("ROUND_DATA_API_URL", "http://localhost:8000/api")
TIMEOUT_SEC = float(os.getenv("ROUND_DATA_TIMEOUT_SEC", "10"))

#: (arena_id, competitor_id) as reported by the outcome source.
WinnerReport = Tuple[int, int]

T = TypeVar("T")


class RoundDataUnavailableError(RuntimeError):
    """An external round-data dependency failed outright."""


# ---------------------------------------------------------------------------
# Interfaces
# ---------------------------------------------------------------------------

class PredictionSource(ABC):
    """Supplies the model's predictions for a round."""

    @abstractmethod
    def get_predictions(self, round_id: int) -> List[Prediction]:
        """Return the round's predictions, or an empty list if it has none."""


class OutcomeSource(ABC):
    """Supplies the actual winners of a finished round."""

    @abstractmethod
    def get_winner_reports(self, round_id: int) -> List[WinnerReport]:
        """Return ``(arena_id, competitor_id)`` winner reports in report order."""


def validate_predictions(predictions: Sequence[Prediction]) -> None:
    """Reject prediction sets with more than one entry per competitor.

    Raises:
        ValueError: On a duplicate ``(round, arena, competitor)``.
    """
    seen: Set[Tuple[int, int, int]] = set()
    for p in predictions:
        key = (p.round_id, p.arena_id, p.competitor_id)
        if key in seen:
            raise ValueError(
                f"Duplicate prediction for round {p.round_id}, arena {p.arena_id}, "
                f"competitor {p.competitor_id}"
            )
        seen.add(key)


def drop_duplicate_predictions(predictions: Sequence[Prediction]) -> List[Prediction]:
    """Keep the first prediction per ``(round, arena, competitor)``.

    Logs one warning with the number of rows dropped.
    """
    seen: Set[Tuple[int, int, int]] = set()
    kept: List[Prediction] = []
    for p in predictions:
        key = (p.round_id, p.arena_id, p.competitor_id)
        if key in seen:
            continue
        seen.add(key)
        kept.append(p)
    dropped = len(predictions) - len(kept)
    if dropped:
        logger.warning(
            "Round %d: dropped %d duplicate prediction row(s), kept %d",
            kept[0].round_id, dropped, len(kept),
        )
    return kept


# ---------------------------------------------------------------------------
# In-memory source
# ---------------------------------------------------------------------------

class InMemoryRoundData(PredictionSource, OutcomeSource):
    """Serve rounds from dictionaries keyed by round id."""

    def __init__(
        self,
        predictions: Optional[Mapping[int, Iterable[Prediction]]] = None,
        winners: Optional[Mapping[int, Iterable[WinnerReport]]] = None,
    ):
        self._predictions: Dict[int, Tuple[Prediction, ...]] = {
            rid: tuple(preds) for rid, preds in (predictions or {}).items()
        }
        self._winners: Dict[int, Tuple[WinnerReport, ...]] = {
            rid: tuple(reports) for rid, reports in (winners or {}).items()
        }
        for preds in self._predictions.values():
            validate_predictions(preds)

    def get_predictions(self, round_id: int) -> List[Prediction]:
        return list(self._predictions.get(round_id, ()))

    def get_winner_reports(self, round_id: int) -> List[WinnerReport]:
        return list(self._winners.get(round_id, ()))

    @property
    def round_ids(self) -> List[int]:
        return sorted(set(self._predictions) | set(self._winners))


# ---------------------------------------------------------------------------
# HTTP source
# ---------------------------------------------------------------------------

class RoundDataClient(PredictionSource, OutcomeSource):
    """Client for the round-data API.

    Endpoints::

        GET {base}/rounds/{round_id}/predictions
            → [{"arena_id", "competitor_id", "win_probability", "payout"}, ...]
        GET {base}/rounds/{round_id}/results
            → [{"arena_id", "competitor_id", "is_winner"}, ...]

    A 404 means the round has no data yet and yields an empty list.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = (base_url or API_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else TIMEOUT_SEC
        self.session = session or requests.Session()

    def _get(self, path: str) -> List[Dict]:
        url = f"{self.base_url}{path}"
        try:
            response = self.session.get(url, timeout=self.timeout)
            if response.status_code == 404:
                logger.debug("Round data: %s not found", url)
                return []
            response.raise_for_status()
            data = response.json()
        except requests.exceptions.RequestException as e:
            logger.error("Round data API error for %s: %s", url, e)
            raise RoundDataUnavailableError(f"Round data API unavailable: {e}") from e
        except ValueError as e:
            logger.error("Round data API returned invalid JSON for %s: %s", url, e)
            raise RoundDataUnavailableError(f"Invalid JSON from {url}") from e

        if not isinstance(data, list):
            raise RoundDataUnavailableError(f"Expected a list from {url}, got {type(data).__name__}")
        return data

    def get_predictions(self, round_id: int) -> List[Prediction]:
        rows = self._get(f"/rounds/{round_id}/predictions")
        parsed = _parse_rows(rows, round_id, "prediction", lambda row: Prediction(
            round_id=round_id,
            arena_id=int(row["arena_id"]),
            competitor_id=int(row["competitor_id"]),
            win_probability=float(row["win_probability"]),
            payout=int(row["payout"]),
        ))
        predictions = drop_duplicate_predictions(parsed)
        logger.info("Round %d: %d predictions fetched", round_id, len(predictions))
        return predictions

    def get_winner_reports(self, round_id: int) -> List[WinnerReport]:
        rows = self._get(f"/rounds/{round_id}/results")
        winners = [row for row in rows if not isinstance(row, dict) or row.get("is_winner", True)]
        return _parse_rows(winners, round_id, "result", lambda row: (
            int(row["arena_id"]),
            int(row["competitor_id"]),
        ))


def _parse_rows(rows: List[Dict], round_id: int, kind: str, parse: Callable[[Dict], T]) -> List[T]:
    """Apply ``parse`` to each row, skipping rows it cannot handle."""
    parsed: List[T] = []
    bad = 0
    for row in rows:
        try:
            parsed.append(parse(row))
        except (KeyError, TypeError, ValueError) as e:
            bad += 1
            logger.debug("Round %d: skipping malformed %s row %r (%s)", round_id, kind, row, e)
    if bad:
        logger.warning("Round %d: %d of %d %s rows malformed", round_id, bad, len(rows), kind)
    return parsed
