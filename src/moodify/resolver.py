"""
Mood resolver for Moodify.

Turns a mood label into an ordered list of tracks:

1) Parse the label into a Mood (unknown labels fail before any network call).
2) With a user token: ask /recommendations using the mood's seed genres and
   target audio features.
3) Without one: search with a random phrase for the mood using the app token,
   put tracks with a playable preview first, then truncate.

Persisting the returned tracks is a separate, best-effort step (`persist`).
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError

from .config import AppConfig, load_config
from .moods import Mood, get_profile, parse_mood
from .spotify import MAX_LIMIT, SpotifyClient
from .store import TrackStore
from .tracks import Track, normalize_tracks

logger = logging.getLogger(__name__)

SEARCH_OVERFETCH = 3


class EmptyQueryError(ValueError):
    """Raised when a free-text search is given a blank query."""


@dataclass
class PersistOutcome:
    inserted: int = 0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def prioritize_previews(tracks: List[Track], limit: int) -> List[Track]:
    """
    Stable partition: tracks with a preview URL first, then the rest, truncated to `limit`.
    """
    with_preview = [t for t in tracks if t.has_preview]
    without_preview = [t for t in tracks if not t.has_preview]
    return (with_preview + without_preview)[:limit]


def clamp_limit(limit: int) -> int:
    return max(1, min(int(limit), MAX_LIMIT))


class MoodResolver:
    def __init__(
        self,
        spotify: SpotifyClient,
        store: Optional[TrackStore] = None,
        *,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._spotify = spotify
        self._store = store
        self._rng = rng or random.Random()

    @property
    def spotify(self) -> SpotifyClient:
        return self._spotify

    @property
    def store(self) -> Optional[TrackStore]:
        return self._store

    def pick_query(self, mood: Mood) -> str:
        return self._rng.choice(get_profile(mood).queries)

    def recommend(
        self,
        mood_label: str,
        *,
        limit: int = 20,
        user_token: Optional[str] = None,
    ) -> List[Track]:
        """
        Resolve a mood label into tracks. Raises UnknownMoodError or SpotifyError.
        """
        mood = parse_mood(mood_label)
        limit = clamp_limit(limit)
        logger.info(
            f"Resolving mood {mood.value!r} (limit={limit}, authorized={user_token is not None})"
        )

        if user_token:
            params = get_profile(mood).recommendation_params()
            items = self._spotify.get_recommendations(user_token, params, limit=limit)
            tracks = normalize_tracks(items)[:limit]
        else:
            query = self.pick_query(mood)
            logger.debug(f"Search phrase for {mood.value!r}: {query!r}")
            items = self._spotify.search_tracks(query, limit=limit * SEARCH_OVERFETCH)
            tracks = prioritize_previews(normalize_tracks(items), limit)

        with_preview = sum(1 for t in tracks if t.has_preview)
        logger.info(f"Mood {mood.value!r} resolved to {len(tracks)} tracks ({with_preview} with preview)")
        return tracks

    def search(self, query: str, *, limit: int = 20) -> List[Track]:
        """
        Free-text track search with the app token.
        """
        if not query or not query.strip():
            raise EmptyQueryError("Search query must not be empty.")
        items = self._spotify.search_tracks(query.strip(), limit=clamp_limit(limit))
        return normalize_tracks(items)

    def persist(self, tracks: List[Track]) -> PersistOutcome:
        """
        Best-effort save of `tracks`. Never raises; failures are logged and returned.
        """
        if self._store is None or not tracks:
            return PersistOutcome()
        try:
            inserted = self._store.save_tracks(tracks)
        except SQLAlchemyError as exc:
            logger.error(f"Failed to persist {len(tracks)} tracks: {exc}")
            return PersistOutcome(error=str(exc))
        return PersistOutcome(inserted=inserted)

    def close(self) -> None:
        self._spotify.close()


def build_resolver(cfg: Optional[AppConfig] = None) -> MoodResolver:
    """
    Wire a resolver from configuration (env / .env when `cfg` is None).
    """
    if cfg is None:
        cfg = load_config()
    rng = random.Random(cfg.mood_seed) if cfg.mood_seed is not None else None
    return MoodResolver(SpotifyClient(cfg.spotify), TrackStore(cfg.database_url), rng=rng)


__all__ = [
    "EmptyQueryError",
    "MoodResolver",
    "PersistOutcome",
    "build_resolver",
    "clamp_limit",
    "prioritize_previews",
]
