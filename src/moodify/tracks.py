"""
Normalized track records returned by the resolver and the API.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional


@dataclass
class Track:
    id: str
    name: str
    artist: str
    album: str
    album_art: Optional[str]
    duration: int  # seconds
    preview_url: Optional[str]
    spotify_url: Optional[str]
    popularity: int = 0

    @property
    def has_preview(self) -> bool:
        return bool(self.preview_url)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class Artist:
    id: str
    name: str
    genres: List[str]
    image: Optional[str]
    spotify_url: Optional[str]
    popularity: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _first_image_url(images: Any) -> Optional[str]:
    for image in images or []:
        if isinstance(image, dict) and image.get("url"):
            return image["url"]
    return None


def normalize_artist(item: Dict[str, Any]) -> Artist:
    return Artist(
        id=item.get("id") or "",
        name=item.get("name") or "<unknown>",
        genres=[g for g in item.get("genres") or [] if isinstance(g, str)],
        image=_first_image_url(item.get("images")),
        spotify_url=(item.get("external_urls") or {}).get("spotify"),
        popularity=int(item.get("popularity") or 0),
    )


def normalize_artists(items: List[Dict[str, Any]]) -> List[Artist]:
    return [normalize_artist(item) for item in items if isinstance(item, dict)]


def normalize_track(item: Dict[str, Any]) -> Track:
    """
    Flatten a Spotify track object into a Track.
    """
    album = item.get("album") or {}
    artists = ", ".join(
        a.get("name", "") for a in item.get("artists") or [] if isinstance(a, dict)
    )
    return Track(
        id=item.get("id") or "",
        name=item.get("name") or "<unknown>",
        artist=artists or "Unknown Artist",
        album=album.get("name") or "Unknown Album",
        album_art=_first_image_url(album.get("images")),
        duration=int((item.get("duration_ms") or 0) / 1000),
        preview_url=item.get("preview_url") or None,
        spotify_url=(item.get("external_urls") or {}).get("spotify"),
        popularity=int(item.get("popularity") or 0),
    )


def normalize_tracks(items: List[Dict[str, Any]]) -> List[Track]:
    return [normalize_track(item) for item in items if isinstance(item, dict)]


__all__ = [
    "Artist",
    "Track",
    "normalize_artist",
    "normalize_artists",
    "normalize_track",
    "normalize_tracks",
]
