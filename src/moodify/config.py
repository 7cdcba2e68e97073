"""
Configuration loading for Moodify.

Everything comes from environment variables (optionally via a .env file).
The config directory also holds the default SQLite database and the logs.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from platformdirs import user_config_dir
from dotenv import load_dotenv
import os
import logging
from logging.handlers import RotatingFileHandler


APP_NAME = "moodify"
APP_AUTHOR = "Moodify"

DEFAULT_FRONTEND_URL = "http://localhost:5173"


@dataclass
class SpotifyConfig:
    client_id: str
    client_secret: str
    redirect_uri: Optional[str] = None  # OAuth redirect URI for the user-level flow.
    market: Optional[str] = None  # ISO country code passed to search/recommendations.


@dataclass
class AppConfig:
    spotify: SpotifyConfig
    database_url: str
    frontend_url: str = DEFAULT_FRONTEND_URL
    mood_seed: Optional[int] = None  # Fixes the search-phrase choice when set.
    cors_origins: List[str] = field(default_factory=list)


def get_default_config_dir() -> Path:
    """
    Returns the platform-appropriate directory for persistent Moodify data.
    """
    return Path(user_config_dir(APP_NAME, APP_AUTHOR))


def _default_database_url() -> str:
    config_dir = get_default_config_dir()
    config_dir.mkdir(parents=True, exist_ok=True)
    return f"sqlite:///{config_dir / 'moodify.db'}"


def _parse_seed(raw: Optional[str]) -> Optional[int]:
    if raw is None or not raw.strip():
        return None
    try:
        return int(raw)
    except ValueError:
        logging.getLogger(__name__).warning(f"Ignoring non-integer MOODIFY_MOOD_SEED={raw!r}")
        return None


def load_config() -> AppConfig:
    """
    Load configuration from environment variables / .env file.
    """
    load_dotenv()

    client_id = os.getenv("MOODIFY_SPOTIFY_CLIENT_ID", "")
    client_secret = os.getenv("MOODIFY_SPOTIFY_CLIENT_SECRET", "")
    redirect_uri = os.getenv("MOODIFY_SPOTIFY_REDIRECT_URI")
    market = os.getenv("MOODIFY_SPOTIFY_MARKET") or None

    frontend_url = os.getenv("MOODIFY_FRONTEND_URL", DEFAULT_FRONTEND_URL).rstrip("/")
    database_url = os.getenv("MOODIFY_DATABASE_URL") or _default_database_url()
    mood_seed = _parse_seed(os.getenv("MOODIFY_MOOD_SEED"))

    origins_raw = os.getenv("MOODIFY_CORS_ORIGINS", "")
    cors_origins = [o.strip() for o in origins_raw.split(",") if o.strip()]
    if frontend_url not in cors_origins:
        cors_origins.append(frontend_url)

    spotify_cfg = SpotifyConfig(
        client_id=client_id,
        client_secret=client_secret,
        redirect_uri=redirect_uri,
        market=market,
    )
    return AppConfig(
        spotify=spotify_cfg,
        database_url=database_url,
        frontend_url=frontend_url,
        mood_seed=mood_seed,
        cors_origins=cors_origins,
    )


def setup_logging() -> None:
    """
    Configure centralized logging for Moodify using Python's built-in logging module.

    - Logs to <config dir>/logs/moodify.log
    - Uses RotatingFileHandler with 10MB max size and 5 backup files
    - Logs to both file and console
    - Default level: INFO (can be overridden via MOODIFY_LOG_LEVEL env var)
    """
    log_level_str = os.getenv("MOODIFY_LOG_LEVEL", "INFO").upper()
    log_level = getattr(logging, log_level_str, logging.INFO)

    log_dir = get_default_config_dir() / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)

    log_format = "%(asctime)s | %(levelname)-8s | %(name)s:%(funcName)s:%(lineno)d | %(message)s"
    date_format = "%Y-%m-%d %H:%M:%S"

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # Remove existing handlers to avoid duplicates
    root_logger.handlers.clear()

    file_handler = RotatingFileHandler(
        str(log_dir / "moodify.log"),
        maxBytes=10 * 1024 * 1024,  # 10MB
        backupCount=5,
        encoding="utf-8",
    )
    file_handler.setLevel(log_level)
    file_handler.setFormatter(logging.Formatter(log_format, date_format))
    root_logger.addHandler(file_handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(logging.Formatter(log_format, date_format))
    root_logger.addHandler(console_handler)


# Initialize logging when module is imported (after get_default_config_dir is defined)
setup_logging()

__all__ = ["AppConfig", "SpotifyConfig", "get_default_config_dir", "load_config"]
