"""Environment-backed configuration helpers."""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path
from typing import Iterable, List, Optional

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parents[2]
DEFAULT_LAVALINK_PORT = 2333
# Only auto-load the .env file when not running under pytest to let tests
# control environment via monkeypatch.
_running_under_pytest = bool(os.getenv("PYTEST_CURRENT_TEST")) or any(
    "pytest" in (arg or "") for arg in sys.argv
)
if not _running_under_pytest:
    load_dotenv(BASE_DIR / ".env")

logger = logging.getLogger("guildtune.config")


def _int_env(name: str, default: int, *, minimum: int = 0) -> int:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return max(minimum, int(raw))
    except ValueError:
        logger.warning("Invalid %s '%s' - expected integer", name, raw)
        return default


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Invalid %s '%s' - expected number", name, raw)
        return default


def _optional_int_env(name: str) -> Optional[int]:
    raw = os.getenv(name)
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        logger.warning("Invalid %s '%s' - expected integer", name, raw)
        return None


class Config:
    """Central configuration loaded from environment variables."""

    BASE_DIR = BASE_DIR
    DISCORD_TOKEN = os.getenv("DISCORD_TOKEN") or os.getenv("DISCORD_BOT_TOKEN", "")
    PREFIX = os.getenv("COMMAND_PREFIX", "!")
    BOT_USERNAME = os.getenv("GUILDTUNE_USERNAME", "guildtune")
    GUILD_ID = _optional_int_env("GUILD_ID")

    SOUNDCLOUD_CLIENT_ID = os.getenv("SOUNDCLOUD_CLIENT_ID", "").strip()
    SEARCH_LIMIT = _int_env("MUSIC_SEARCH_LIMIT", 5, minimum=1)
    HTTP_TIMEOUT = _float_env("MUSIC_HTTP_TIMEOUT", 10.0)
    AUTH_TIMEOUT = _float_env("MUSIC_AUTH_TIMEOUT", 15.0)

    RELAY = os.getenv("MUSIC_RELAY", "").strip().lower()
    LAVALINK_HOST = os.getenv("LAVALINK_HOST", "localhost")
    LAVALINK_PASSWORD = os.getenv("LAVALINK_PASSWORD", "youshallnotpass")
    LAVALINK_PORT = _int_env("LAVALINK_PORT", DEFAULT_LAVALINK_PORT, minimum=1)

    YT_COOKIES_FILE = (
        os.getenv("YT_COOKIES_FILE")
        or os.getenv("YTDLP_COOKIES_FILE")
        or os.getenv("YTDLP_COOKIES_PATH")
    )

    @classmethod
    def relay_enabled(cls) -> bool:
        return cls.RELAY == "lavalink"

    @staticmethod
    def _missing_keys(keys: Iterable[str]) -> List[str]:
        return [key for key in keys if not os.getenv(key)]

    @staticmethod
    def validate() -> None:
        required = ["DISCORD_TOKEN"]
        if Config.relay_enabled():
            required.extend(["LAVALINK_HOST", "LAVALINK_PASSWORD"])
        missing = Config._missing_keys(required)

        if missing:
            joined = ", ".join(missing)
            logger.error("configuration missing required keys: %s", joined)
            sys.exit(1)

        if Config.RELAY and not Config.relay_enabled():
            logger.warning("Unknown MUSIC_RELAY '%s'; relay disabled", Config.RELAY)
        if not Config.SOUNDCLOUD_CLIENT_ID:
            logger.info("SOUNDCLOUD_CLIENT_ID unset; a free client id will be issued")


def get_lavalink_connection_info() -> tuple[str, int, str, bool]:
    """Return Lavalink connection info using runtime environment overrides."""

    host = os.getenv("LAVALINK_HOST") or Config.LAVALINK_HOST or "127.0.0.1"
    port = Config.LAVALINK_PORT
    port_raw = os.getenv("LAVALINK_PORT")
    if port_raw:
        try:
            port = int(port_raw)
        except ValueError:
            logger.warning(
                "Invalid runtime LAVALINK_PORT '%s'; falling back to %s",
                port_raw,
                port,
            )
    password = os.getenv("LAVALINK_PASSWORD") or Config.LAVALINK_PASSWORD
    secure = os.getenv("LAVALINK_SSL", "false").lower() == "true"
    return host, port, password, secure


def log_cookie_status() -> None:
    """Log the configured YouTube cookie file, if any."""

    path = Config.YT_COOKIES_FILE
    if not path:
        logger.info("cookies: none")
        return

    resolved = Path(path).expanduser()
    if not resolved.exists():
        logger.info("cookies: path=%s missing", resolved)
        return
    logger.info("cookies: path=%s", resolved)
