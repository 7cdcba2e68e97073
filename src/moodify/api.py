"""
FastAPI service for Moodify.

Endpoints used by the web frontend:

- GET  /spotify/connect                 authorize URL for the user-level flow
- GET  /spotify/callback                code -> token exchange, redirect to frontend
- GET  /spotify/sync?token=             store the user's top tracks locally
- GET  /spotify/top-tracks?token=       the user's top tracks
- GET  /spotify/top-artists?token=      the user's top artists
- GET  /spotify/connected               whether any tracks have been synced
- GET  /spotify/recommendations?token=&mood=&limit=
- GET  /spotify/mood-recommendations?mood=&limit=   (no user login needed)
- GET  /spotify/search?q=&limit=        (no user login needed)
- GET  /spotify/moods
- POST /spotify/refresh-token

Mood endpoints respond with:
    {
      "mood": "happy",
      "tracks": [
        {
          "id": "...",
          "name": "...",
          "artist": "A, B",
          "album": "...",
          "album_art": "https://...",
          "duration": 201,
          "preview_url": null,
          "spotify_url": "https://open.spotify.com/track/...",
          "popularity": 71
        }
      ]
    }
"""

import logging
from typing import List, Optional
from urllib.parse import urlencode

from fastapi import BackgroundTasks, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import RedirectResponse
from pydantic import BaseModel
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from .config import load_config
from .moods import MOOD_PROFILES, UnknownMoodError
from .resolver import EmptyQueryError, MoodResolver, build_resolver
from .spotify import SpotifyAPIError, SpotifyAuthError, SpotifyError
from .tracks import Artist, Track, normalize_artists, normalize_tracks

logger = logging.getLogger(__name__)

# Rate limiter to stay clear of Spotify's own 429s
limiter = Limiter(key_func=get_remote_address)

_cfg = load_config()
_resolver: MoodResolver = build_resolver(_cfg)

app = FastAPI(
    title="Moodify API",
    description="Moodify – mood-based music recommendations backed by the Spotify Web API.",
    version="0.1.0",
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cfg.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class TrackOut(BaseModel):
    id: str
    name: str
    artist: str
    album: str
    album_art: Optional[str] = None
    duration: int
    preview_url: Optional[str] = None
    spotify_url: Optional[str] = None
    popularity: int = 0


class TracksResponse(BaseModel):
    mood: Optional[str] = None
    tracks: List[TrackOut]


class MoodOut(BaseModel):
    mood: str
    seed_genres: List[str]


class ConnectResponse(BaseModel):
    url: str


class SyncResponse(BaseModel):
    synced: int


class ConnectedResponse(BaseModel):
    connected: bool


class ArtistOut(BaseModel):
    id: str
    name: str
    genres: List[str] = []
    image: Optional[str] = None
    spotify_url: Optional[str] = None
    popularity: int = 0


class ArtistsResponse(BaseModel):
    artists: List[ArtistOut]


class RefreshTokenRequest(BaseModel):
    refresh_token: str


class TokenResponse(BaseModel):
    access_token: str
    expires_in: int
    token_type: Optional[str] = None
    scope: Optional[str] = None
    refresh_token: Optional[str] = None


def _tracks_out(tracks: List[Track]) -> List[TrackOut]:
    return [TrackOut(**t.to_dict()) for t in tracks]


def _artists_out(artists: List[Artist]) -> List[ArtistOut]:
    return [ArtistOut(**a.to_dict()) for a in artists]


def _http_error(exc: Exception) -> HTTPException:
    """Map domain errors to HTTP errors."""
    if isinstance(exc, (UnknownMoodError, EmptyQueryError)):
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, SpotifyAuthError):
        return HTTPException(status_code=503, detail=f"Spotify is unavailable: {exc}")
    if isinstance(exc, SpotifyAPIError):
        return HTTPException(status_code=exc.status_code, detail=f"Spotify error: {exc}")
    return HTTPException(status_code=500, detail=f"Internal error: {exc}")


def _require_token(token: Optional[str]) -> str:
    if not token:
        logger.warning("Spotify endpoint called without an access token")
        raise HTTPException(status_code=401, detail="Spotify access token required")
    return token


@app.get("/health", tags=["system"])
def health() -> dict:
    logger.debug("Health check endpoint called")
    return {"status": "ok"}


@app.get("/spotify/connect", response_model=ConnectResponse, tags=["auth"])
def spotify_connect() -> ConnectResponse:
    if not _cfg.spotify.client_id:
        logger.error("Spotify connect failed: MOODIFY_SPOTIFY_CLIENT_ID not set")
        raise HTTPException(
            status_code=500,
            detail="MOODIFY_SPOTIFY_CLIENT_ID is not set. Cannot start Spotify login.",
        )
    return ConnectResponse(url=_resolver.spotify.authorize_url())


@app.get("/spotify/callback", tags=["auth"])
def spotify_callback(
    code: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
) -> RedirectResponse:
    """
    Spotify redirects here after the user approves or denies access.

    The frontend reads the token from the query string of /spotify-callback.
    """
    frontend = _cfg.frontend_url
    if error:
        logger.warning(f"Spotify callback: user denied access ({error})")
        return RedirectResponse(f"{frontend}/profile?spotify_error=denied", status_code=302)
    if not code:
        logger.warning("Spotify callback without authorization code")
        return RedirectResponse(f"{frontend}/profile?spotify_error=exchange_failed", status_code=302)

    try:
        data = _resolver.spotify.exchange_code(code)
    except SpotifyError as exc:
        logger.error(f"Spotify code exchange failed: {exc}")
        return RedirectResponse(f"{frontend}/profile?spotify_error=exchange_failed", status_code=302)

    params = {
        "accessToken": data["access_token"],
        "expiresIn": str(data.get("expires_in", 3600)),
    }
    if data.get("refresh_token"):
        params["refreshToken"] = data["refresh_token"]
    logger.info("Spotify callback successful, redirecting to frontend")
    return RedirectResponse(f"{frontend}/spotify-callback?{urlencode(params)}", status_code=302)


@app.post("/spotify/refresh-token", response_model=TokenResponse, tags=["auth"])
def spotify_refresh_token(body: RefreshTokenRequest) -> TokenResponse:
    if not body.refresh_token:
        raise HTTPException(status_code=400, detail="refresh_token is required")
    try:
        data = _resolver.spotify.refresh_user_token(body.refresh_token)
    except SpotifyError as exc:
        raise _http_error(exc) from exc
    return TokenResponse(
        access_token=data["access_token"],
        expires_in=int(data.get("expires_in", 3600)),
        token_type=data.get("token_type"),
        scope=data.get("scope"),
        refresh_token=data.get("refresh_token"),
    )


@app.get("/spotify/sync", response_model=SyncResponse, tags=["spotify"])
def spotify_sync(token: Optional[str] = Query(None)) -> SyncResponse:
    """
    Pull the user's top tracks and store the ones we have not seen yet.
    """
    token = _require_token(token)
    store = _resolver.store
    try:
        top = normalize_tracks(_resolver.spotify.get_top_tracks(token))
        synced = store.save_tracks(top) if store is not None else 0
    except Exception as exc:
        logger.exception(f"Failed to sync top tracks: {exc}")
        raise HTTPException(status_code=400, detail="Failed to sync tracks") from exc
    logger.info(f"Synced {synced} top tracks")
    return SyncResponse(synced=synced)


@app.get("/spotify/top-tracks", response_model=TracksResponse, tags=["spotify"])
def spotify_top_tracks(token: Optional[str] = Query(None)) -> TracksResponse:
    token = _require_token(token)
    try:
        tracks = normalize_tracks(_resolver.spotify.get_top_tracks(token))
    except SpotifyError as exc:
        raise _http_error(exc) from exc
    return TracksResponse(tracks=_tracks_out(tracks))


@app.get("/spotify/top-artists", response_model=ArtistsResponse, tags=["spotify"])
def spotify_top_artists(token: Optional[str] = Query(None)) -> ArtistsResponse:
    token = _require_token(token)
    try:
        artists = normalize_artists(_resolver.spotify.get_top_artists(token))
    except SpotifyError as exc:
        raise _http_error(exc) from exc
    return ArtistsResponse(artists=_artists_out(artists))


@app.get("/spotify/connected", response_model=ConnectedResponse, tags=["spotify"])
def spotify_connected() -> ConnectedResponse:
    """
    A Spotify account counts as connected once any track has been synced.
    """
    store = _resolver.store
    count = store.count() if store is not None else 0
    return ConnectedResponse(connected=count > 0)


@app.get("/spotify/recommendations", response_model=TracksResponse, tags=["spotify"])
@limiter.limit("30/minute")
def spotify_recommendations(
    request: Request,
    background_tasks: BackgroundTasks,
    token: Optional[str] = Query(None),
    mood: str = Query(...),
    limit: int = Query(20),
) -> TracksResponse:
    """
    Recommendations for a mood using the connected user's own token.
    """
    token = _require_token(token)
    logger.info(f"API recommendations request: mood={mood!r}, limit={limit}")
    try:
        tracks = _resolver.recommend(mood, limit=limit, user_token=token)
    except (UnknownMoodError, SpotifyError) as exc:
        raise _http_error(exc) from exc
    except Exception as exc:  # pragma: no cover - safety net
        logger.exception(f"Internal error in recommendations endpoint: {exc}")
        raise _http_error(exc) from exc

    background_tasks.add_task(_resolver.persist, tracks)
    return TracksResponse(mood=mood.strip().lower(), tracks=_tracks_out(tracks))


@app.get("/spotify/mood-recommendations", response_model=TracksResponse, tags=["spotify"])
@limiter.limit("30/minute")
def spotify_mood_recommendations(
    request: Request,
    background_tasks: BackgroundTasks,
    mood: str = Query(...),
    limit: int = Query(20),
) -> TracksResponse:
    """
    Recommendations for a mood without user login (app token + search).
    """
    logger.info(f"API mood-recommendations request: mood={mood!r}, limit={limit}")
    try:
        tracks = _resolver.recommend(mood, limit=limit)
    except (UnknownMoodError, SpotifyError) as exc:
        raise _http_error(exc) from exc
    except Exception as exc:  # pragma: no cover - safety net
        logger.exception(f"Internal error in mood-recommendations endpoint: {exc}")
        raise _http_error(exc) from exc

    background_tasks.add_task(_resolver.persist, tracks)
    return TracksResponse(mood=mood.strip().lower(), tracks=_tracks_out(tracks))


@app.get("/spotify/search", response_model=TracksResponse, tags=["spotify"])
@limiter.limit("60/minute")
def spotify_search(
    request: Request,
    background_tasks: BackgroundTasks,
    q: str = Query(""),
    limit: int = Query(20),
) -> TracksResponse:
    logger.info(f"API search request: q={q!r}, limit={limit}")
    try:
        tracks = _resolver.search(q, limit=limit)
    except (EmptyQueryError, SpotifyError) as exc:
        raise _http_error(exc) from exc

    background_tasks.add_task(_resolver.persist, tracks)
    return TracksResponse(tracks=_tracks_out(tracks))


@app.get("/spotify/moods", response_model=List[MoodOut], tags=["spotify"])
def spotify_moods() -> List[MoodOut]:
    return [
        MoodOut(mood=mood.value, seed_genres=list(profile.seed_genres))
        for mood, profile in MOOD_PROFILES.items()
    ]
