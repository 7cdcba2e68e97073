"""
Mood table for Moodify.

Each supported mood maps to one profile carrying:
- up to three Spotify seed genres (authorized recommendations),
- target audio features for the recommendations endpoint,
- a few free-text search phrases (app-token search).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Tuple

logger = logging.getLogger(__name__)


MAX_SEED_GENRES = 3
MAX_TARGET_FEATURES = 6

AUDIO_FEATURES = (
    "valence",
    "energy",
    "danceability",
    "acousticness",
    "instrumentalness",
    "tempo",
)


class Mood(str, Enum):
    HAPPY = "happy"
    SAD = "sad"
    ENERGETIC = "energetic"
    CALM = "calm"
    FOCUS = "focus"
    PARTY = "party"
    ANGRY = "angry"
    ROMANTIC = "romantic"


class UnknownMoodError(ValueError):
    """Raised when a mood label is not one of the supported moods."""

    def __init__(self, label: str) -> None:
        self.label = label
        supported = ", ".join(m.value for m in Mood)
        super().__init__(f"Unknown mood: {label!r}. Supported moods: {supported}")


@dataclass(frozen=True)
class MoodProfile:
    seed_genres: Tuple[str, ...]
    targets: Dict[str, float] = field(default_factory=dict)
    queries: Tuple[str, ...] = ()

    def recommendation_params(self) -> Dict[str, str]:
        """
        Query parameters for the recommendations endpoint (seeds + targets only).
        """
        params: Dict[str, str] = {}
        genres = self.seed_genres[:MAX_SEED_GENRES]
        if genres:
            params["seed_genres"] = ",".join(genres)
        count = 0
        for name in AUDIO_FEATURES:
            if name not in self.targets or count >= MAX_TARGET_FEATURES:
                continue
            params[f"target_{name}"] = f"{self.targets[name]:g}"
            count += 1
        return params


MOOD_PROFILES: Dict[Mood, MoodProfile] = {
    Mood.HAPPY: MoodProfile(
        seed_genres=("pop", "dance", "happy"),
        targets={"valence": 0.85, "energy": 0.75, "danceability": 0.75},
        queries=("happy upbeat pop", "feel good hits", "good vibes summer songs"),
    ),
    Mood.SAD: MoodProfile(
        seed_genres=("acoustic", "sad", "piano"),
        targets={"valence": 0.15, "energy": 0.35, "acousticness": 0.7},
        queries=("sad emotional acoustic", "heartbreak ballads", "melancholy piano songs"),
    ),
    Mood.ENERGETIC: MoodProfile(
        seed_genres=("work-out", "edm", "electronic"),
        targets={"valence": 0.7, "energy": 0.9, "danceability": 0.75, "tempo": 128},
        queries=("energetic workout electronic", "high energy pump up", "running mix edm"),
    ),
    Mood.CALM: MoodProfile(
        seed_genres=("ambient", "chill", "acoustic"),
        targets={"valence": 0.55, "energy": 0.2, "acousticness": 0.65},
        queries=("calm relaxing ambient", "chill acoustic evening", "peaceful lofi"),
    ),
    Mood.FOCUS: MoodProfile(
        seed_genres=("study", "classical", "piano"),
        targets={
            "valence": 0.4,
            "energy": 0.35,
            "acousticness": 0.5,
            "instrumentalness": 0.85,
        },
        queries=("instrumental piano study", "deep focus", "classical concentration"),
    ),
    Mood.PARTY: MoodProfile(
        seed_genres=("party", "dance", "hip-hop"),
        targets={"valence": 0.8, "energy": 0.85, "danceability": 0.85, "tempo": 122},
        queries=("party dance hits", "club bangers", "dance party anthems"),
    ),
    Mood.ANGRY: MoodProfile(
        seed_genres=("metal", "rock", "punk"),
        targets={"valence": 0.3, "energy": 0.9, "tempo": 135},
        queries=("angry rock metal", "intense heavy riffs", "rage punk"),
    ),
    Mood.ROMANTIC: MoodProfile(
        seed_genres=("romance", "r-n-b", "soul"),
        targets={"valence": 0.65, "energy": 0.4, "danceability": 0.55, "acousticness": 0.4},
        queries=("romantic love ballads", "slow jams r&b", "love songs"),
    ),
}

_missing = [m.value for m in Mood if m not in MOOD_PROFILES]
if _missing:
    raise RuntimeError(f"Mood table is missing profiles for: {', '.join(_missing)}")


def parse_mood(label: str) -> Mood:
    """
    Case-insensitive lookup of a mood label. Raises UnknownMoodError.
    """
    normalized = (label or "").strip().lower()
    try:
        return Mood(normalized)
    except ValueError:
        logger.warning(f"Rejected unknown mood label: {label!r}")
        raise UnknownMoodError(label) from None


def get_profile(mood: Mood) -> MoodProfile:
    return MOOD_PROFILES[mood]


def supported_moods() -> List[str]:
    return [m.value for m in Mood]


__all__ = [
    "Mood",
    "MoodProfile",
    "MOOD_PROFILES",
    "UnknownMoodError",
    "get_profile",
    "parse_mood",
    "supported_moods",
]
