"""
Spotify integration layer for Moodify.

- App-level access via the Client Credentials flow, with a process-wide
  token cache that coalesces concurrent refreshes into a single exchange.
- User-level helpers for the Authorization Code flow (authorize URL, code
  exchange, refresh) used by the /spotify/* endpoints.
- Thin GET wrappers for search, recommendations and top tracks.

No retries: a failed call fails the caller, the next call starts fresh.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from time import time
from typing import Callable, Dict, List, Optional
from urllib.parse import urlencode

import httpx

from .config import SpotifyConfig

logger = logging.getLogger(__name__)


SPOTIFY_AUTHORIZE_URL = "https://accounts.spotify.com/authorize"
SPOTIFY_TOKEN_URL = "https://accounts.spotify.com/api/token"
SPOTIFY_API_BASE_URL = "https://api.spotify.com/v1"

USER_SCOPES = "user-read-private user-read-email user-top-read"

# Seconds shaved off every token lifetime.
TOKEN_SAFETY_MARGIN = 60

MAX_LIMIT = 50


class SpotifyError(Exception):
    """Base exception for Spotify-related issues."""


class SpotifyAuthError(SpotifyError):
    """Token exchange failed or credentials are missing."""


class SpotifyAPIError(SpotifyError):
    """Non-2xx response (or transport failure) from a Web API endpoint."""

    def __init__(self, message: str, status_code: int = 502) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass
class CachedToken:
    value: str
    expires_at: float


class TokenCache:
    """
    Holds one app-level token and refreshes it under a lock.

    Callers that miss the cache at the same time wait on the lock; the first
    one performs the exchange and the rest pick up its result.
    """

    def __init__(self, clock: Callable[[], float] = time) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._token: Optional[CachedToken] = None

    @property
    def token(self) -> Optional[CachedToken]:
        return self._token

    def _valid(self) -> Optional[str]:
        token = self._token
        if token is not None and self._clock() < token.expires_at:
            return token.value
        return None

    def get_or_fetch(self, fetch: Callable[[], Dict]) -> str:
        """
        Return the cached token, or call `fetch()` for a new token payload.

        `fetch` must return a dict with `access_token` and an integer
        `expires_in`, or raise. Nothing is cached when it raises.
        """
        value = self._valid()
        if value is not None:
            logger.debug("Using cached Spotify app token")
            return value

        with self._lock:
            value = self._valid()
            if value is not None:
                logger.debug("Spotify app token refreshed by a concurrent caller")
                return value

            data = fetch()
            expires_in = int(data.get("expires_in", 3600))
            self._token = CachedToken(
                value=data["access_token"],
                expires_at=self._clock() + expires_in - TOKEN_SAFETY_MARGIN,
            )
            logger.info(f"Spotify app token cached (expires in {expires_in}s, margin {TOKEN_SAFETY_MARGIN}s)")
            return self._token.value

    def clear(self) -> None:
        with self._lock:
            self._token = None


def _error_message(resp: httpx.Response) -> str:
    """Best-effort extraction of Spotify's `error.message`."""
    try:
        data = resp.json()
    except ValueError:
        return resp.text or f"HTTP {resp.status_code}"
    if isinstance(data, dict):
        err = data.get("error")
        if isinstance(err, dict) and err.get("message"):
            return str(err["message"])
        if isinstance(err, str):
            return data.get("error_description") or err
    return resp.text or f"HTTP {resp.status_code}"


def _clamp_limit(limit: int) -> int:
    return max(1, min(int(limit), MAX_LIMIT))


class SpotifyClient:
    """
    Spotify Web API client shared by the resolver and the HTTP layer.
    """

    def __init__(
        self,
        cfg: SpotifyConfig,
        *,
        timeout: float = 10.0,
        token_cache: Optional[TokenCache] = None,
    ) -> None:
        self._cfg = cfg
        self._http = httpx.Client(timeout=timeout)
        self._tokens = token_cache or TokenCache()

    @property
    def token_cache(self) -> TokenCache:
        return self._tokens

    # --------------------------------------------------------------------- #
    # Authentication
    # --------------------------------------------------------------------- #
    def _ensure_credentials(self) -> None:
        if not self._cfg.client_id or not self._cfg.client_secret:
            logger.error("Spotify credentials missing: client_id or client_secret not set")
            raise SpotifyAuthError(
                "Spotify client ID/secret are missing. "
                "Set MOODIFY_SPOTIFY_CLIENT_ID and MOODIFY_SPOTIFY_CLIENT_SECRET."
            )

    def _token_request(self, data: Dict[str, str]) -> Dict:
        self._ensure_credentials()
        grant = data.get("grant_type")
        try:
            resp = self._http.post(
                SPOTIFY_TOKEN_URL,
                data=data,
                auth=(self._cfg.client_id, self._cfg.client_secret),
            )
        except httpx.HTTPError as exc:
            logger.error(f"Failed to contact Spotify token endpoint ({grant}): {exc}")
            raise SpotifyAuthError(f"Failed to contact Spotify token endpoint: {exc}") from exc

        if not resp.is_success:
            logger.error(f"Spotify token exchange ({grant}) failed: {resp.status_code} {resp.text}")
            raise SpotifyAuthError(
                f"Spotify token exchange failed: {resp.status_code} {_error_message(resp)}"
            )

        try:
            payload = resp.json()
        except ValueError as exc:
            logger.error(f"Spotify token endpoint ({grant}) returned a non-JSON body: {exc}")
            raise SpotifyAuthError("Spotify token endpoint returned an invalid response body.") from exc
        if not isinstance(payload, dict) or not payload.get("access_token"):
            logger.error("Spotify token response missing access_token")
            raise SpotifyAuthError("Spotify token response missing access_token.")

        try:
            payload["expires_in"] = int(payload.get("expires_in", 3600))
        except (TypeError, ValueError) as exc:
            logger.error(f"Spotify token response has invalid expires_in: {payload.get('expires_in')!r}")
            raise SpotifyAuthError("Spotify token response has an invalid expires_in.") from exc
        return payload

    def get_app_token(self) -> str:
        """
        Application token from the Client Credentials flow, cached until
        one minute before it expires.
        """

        def fetch() -> Dict:
            logger.info("Requesting new Spotify access token (client credentials)")
            return self._token_request({"grant_type": "client_credentials"})

        return self._tokens.get_or_fetch(fetch)

    def authorize_url(self, state: Optional[str] = None) -> str:
        params = {
            "client_id": self._cfg.client_id,
            "response_type": "code",
            "redirect_uri": self._cfg.redirect_uri or "",
            "scope": USER_SCOPES,
        }
        if state:
            params["state"] = state
        return f"{SPOTIFY_AUTHORIZE_URL}?{urlencode(params)}"

    def exchange_code(self, code: str) -> Dict:
        logger.info("Exchanging Spotify authorization code for tokens")
        return self._token_request(
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": self._cfg.redirect_uri or "",
            }
        )

    def refresh_user_token(self, refresh_token: str) -> Dict:
        logger.info("Refreshing Spotify user access token")
        return self._token_request(
            {"grant_type": "refresh_token", "refresh_token": refresh_token}
        )

    # --------------------------------------------------------------------- #
    # Low-level request helper
    # --------------------------------------------------------------------- #
    def _get(self, path: str, token: str, params: Optional[Dict] = None) -> dict:
        url = f"{SPOTIFY_API_BASE_URL}{path}"
        logger.debug(f"Spotify API request: GET {path} params={params}")
        try:
            resp = self._http.get(
                url,
                params=params,
                headers={"Authorization": f"Bearer {token}"},
            )
        except httpx.HTTPError as exc:
            logger.error(f"HTTP error calling Spotify API {path}: {exc}")
            raise SpotifyAPIError(f"Error calling Spotify API: {exc}", status_code=502) from exc

        if not resp.is_success:
            message = _error_message(resp)
            logger.error(f"Spotify API error {resp.status_code} on {path}: {message}")
            raise SpotifyAPIError(message, status_code=resp.status_code)

        try:
            data = resp.json()
        except ValueError as exc:
            logger.error(f"Spotify API returned a non-JSON body on {path}: {exc}")
            raise SpotifyAPIError(
                "Spotify returned an invalid response body.", status_code=502
            ) from exc
        if not isinstance(data, dict):
            logger.error(f"Spotify API returned an unexpected body on {path}: {type(data).__name__}")
            raise SpotifyAPIError("Spotify returned an unexpected response body.", status_code=502)
        return data

    # --------------------------------------------------------------------- #
    # Endpoints
    # --------------------------------------------------------------------- #
    def search_tracks(
        self,
        query: str,
        *,
        limit: int = 20,
        token: Optional[str] = None,
    ) -> List[dict]:
        """
        Search for tracks by free-text query. Uses the app token unless one is given.
        """
        logger.info(f"Searching Spotify tracks: query={query!r}, limit={limit}")
        params = {"q": query, "type": "track", "limit": _clamp_limit(limit)}
        if self._cfg.market:
            params["market"] = self._cfg.market
        data = self._get("/search", token or self.get_app_token(), params)
        items = (data.get("tracks") or {}).get("items") or []
        logger.debug(f"Spotify search returned {len(items)} tracks")
        return items

    def get_recommendations(
        self,
        token: str,
        params: Dict[str, str],
        *,
        limit: int = 20,
    ) -> List[dict]:
        """
        Call /recommendations with seed/target parameters and a user token.
        """
        query = dict(params)
        query["limit"] = _clamp_limit(limit)
        if self._cfg.market:
            query["market"] = self._cfg.market
        logger.info(f"Requesting Spotify recommendations: {query}")
        data = self._get("/recommendations", token, query)
        tracks = data.get("tracks") or []
        logger.debug(f"Spotify recommendations returned {len(tracks)} tracks")
        return tracks

    def get_top_tracks(self, token: str, *, limit: int = 20) -> List[dict]:
        data = self._get("/me/top/tracks", token, {"limit": _clamp_limit(limit)})
        items = data.get("items") or []
        logger.info(f"Fetched {len(items)} top tracks for connected user")
        return items

    def get_top_artists(self, token: str, *, limit: int = 20) -> List[dict]:
        data = self._get("/me/top/artists", token, {"limit": _clamp_limit(limit)})
        items = data.get("items") or []
        logger.info(f"Fetched {len(items)} top artists for connected user")
        return items

    def close(self) -> None:
        logger.debug("Closing SpotifyClient HTTP connection")
        self._http.close()


__all__ = [
    "CachedToken",
    "SpotifyAPIError",
    "SpotifyAuthError",
    "SpotifyClient",
    "SpotifyError",
    "TokenCache",
]
