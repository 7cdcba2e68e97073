from __future__ import annotations

import json
import os
import random
import threading
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

# Keep the module-level resolver in moodify.api off the real config dir database.
os.environ.setdefault("MOODIFY_DATABASE_URL", "sqlite://")

from moodify.config import SpotifyConfig  # noqa: E402
from moodify.resolver import MoodResolver  # noqa: E402
from moodify.spotify import SpotifyClient, TokenCache  # noqa: E402
from moodify.store import TrackStore  # noqa: E402


def make_item(track_id: str, *, preview: bool = True, name: Optional[str] = None) -> Dict[str, Any]:
    """A Spotify track object as returned by search/recommendations."""
    return {
        "id": track_id,
        "name": name or f"Song {track_id}",
        "artists": [{"name": "Artist One"}, {"name": "Artist Two"}],
        "album": {
            "name": f"Album {track_id}",
            "images": [{"url": f"https://img.example/{track_id}.jpg"}],
        },
        "duration_ms": 185_500,
        "preview_url": f"https://p.scdn.co/mp3-preview/{track_id}" if preview else None,
        "external_urls": {"spotify": f"https://open.spotify.com/track/{track_id}"},
        "popularity": 50,
    }


def make_artist(artist_id: str, *, images: Optional[List[dict]] = None) -> Dict[str, Any]:
    """A Spotify artist object as returned by /me/top/artists."""
    return {
        "id": artist_id,
        "name": f"Artist {artist_id}",
        "genres": ["indie", "dream pop"],
        "images": images if images is not None else [{"url": f"https://img.example/{artist_id}.jpg"}],
        "external_urls": {"spotify": f"https://open.spotify.com/artist/{artist_id}"},
        "popularity": 64,
    }


class FakeResponse:
    def __init__(self, status_code: int, json_data: Any, *, text: Optional[str] = None) -> None:
        self.status_code = status_code
        self._json_data = json_data
        # A raw text body is not JSON; .json() raises like httpx does.
        self._raw = text is not None
        self.text = text if text is not None else json.dumps(json_data)

    def json(self) -> Any:
        if self._raw:
            return json.loads(self.text)
        return self._json_data

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300


class FakeSpotifyHTTP:
    """
    Stand-in for httpx.Client that records every call made by SpotifyClient.
    """

    def __init__(
        self,
        *,
        search_items: Optional[List[dict]] = None,
        recommendation_items: Optional[List[dict]] = None,
        top_items: Optional[List[dict]] = None,
        expires_in: int = 3600,
        token_delay: float = 0.0,
    ) -> None:
        self.search_items = search_items if search_items is not None else [make_item("t1")]
        self.recommendation_items = (
            recommendation_items if recommendation_items is not None else [make_item("r1")]
        )
        self.top_items = top_items if top_items is not None else [make_item("top1")]
        self.artist_items = [make_artist("a1")]
        self.expires_in = expires_in
        self.token_delay = token_delay
        self.token_status = 200
        self.api_status = 200
        # Non-JSON bodies returned with a 200 status.
        self.token_raw_body: Optional[str] = None
        self.api_raw_body: Optional[str] = None
        self.token_calls: List[Dict[str, Any]] = []
        self.get_calls: List[Dict[str, Any]] = []
        self._lock = threading.Lock()

    def post(self, url: str, data=None, auth=None, **kwargs) -> FakeResponse:  # noqa: ARG002
        if self.token_delay:
            time.sleep(self.token_delay)
        with self._lock:
            self.token_calls.append({"url": url, "data": data, "auth": auth})
            n = len(self.token_calls)
        if self.token_status != 200:
            return FakeResponse(
                self.token_status,
                {"error": "invalid_client", "error_description": "Invalid client secret"},
            )
        if self.token_raw_body is not None:
            return FakeResponse(200, None, text=self.token_raw_body)
        payload = {
            "access_token": f"app-token-{n}",
            "token_type": "Bearer",
            "expires_in": self.expires_in,
        }
        if data and data.get("grant_type") in ("authorization_code", "refresh_token"):
            payload["access_token"] = f"user-token-{n}"
            payload["scope"] = "user-read-private user-read-email user-top-read"
            if data.get("grant_type") == "authorization_code":
                payload["refresh_token"] = "refresh-abc"
        return FakeResponse(200, payload)

    def get(self, url: str, params=None, headers=None, **kwargs) -> FakeResponse:  # noqa: ARG002
        self.get_calls.append({"url": url, "params": dict(params or {}), "headers": headers})
        if not 200 <= self.api_status < 300:
            return FakeResponse(
                self.api_status,
                {"error": {"status": self.api_status, "message": "invalid request"}},
            )
        if self.api_raw_body is not None:
            return FakeResponse(200, None, text=self.api_raw_body)
        if url.endswith("/search"):
            limit = int((params or {}).get("limit", 20))
            return FakeResponse(200, {"tracks": {"items": self.search_items[:limit]}})
        if url.endswith("/recommendations"):
            return FakeResponse(200, {"tracks": self.recommendation_items})
        if url.endswith("/me/top/tracks"):
            return FakeResponse(200, {"items": self.top_items})
        if url.endswith("/me/top/artists"):
            return FakeResponse(200, {"items": self.artist_items})
        return FakeResponse(404, {"error": {"status": 404, "message": "Service not found"}})

    def close(self) -> None:
        return None


@pytest.fixture
def spotify_cfg() -> SpotifyConfig:
    return SpotifyConfig(
        client_id="test-client-id",
        client_secret="test-client-secret",
        redirect_uri="http://localhost:3001/spotify/callback",
    )


@pytest.fixture
def fake_http() -> FakeSpotifyHTTP:
    return FakeSpotifyHTTP()


@pytest.fixture
def spotify_client(spotify_cfg, fake_http, monkeypatch) -> SpotifyClient:
    client = SpotifyClient(spotify_cfg, token_cache=TokenCache())
    monkeypatch.setattr(client, "_http", fake_http, raising=True)
    return client


@pytest.fixture
def store(tmp_path: Path) -> TrackStore:
    track_store = TrackStore(f"sqlite:///{tmp_path / 'moodify-test.db'}")
    yield track_store
    track_store.dispose()


@pytest.fixture
def resolver(spotify_client, store) -> MoodResolver:
    return MoodResolver(spotify_client, store, rng=random.Random(7))
