"""Cookie file tracking for the yt-dlp provider."""

from __future__ import annotations

import logging
import os
import threading
import time
from pathlib import Path
from typing import Dict, Optional, Sequence

__all__ = ["CookieManager"]

_logger = logging.getLogger("guildtune.music.cookies")


class CookieManager:
    """Monitor and lazily reload a Netscape cookie file for YouTube."""

    def __init__(
        self,
        *,
        env_var: str = "YT_COOKIES_FILE",
        alt_env_vars: Sequence[str] = ("YTDLP_COOKIES_FILE", "YTDLP_COOKIES_PATH"),
    ) -> None:
        self.env_var = env_var
        self._alt_env_vars = tuple(alt_env_vars)
        self._lock = threading.Lock()
        self._path: Optional[Path] = None
        self._mtime: Optional[float] = None
        self._last_check: float = 0.0
        self._load_from_env()

    def _configured_path(self) -> Optional[Path]:
        for candidate in (self.env_var, *self._alt_env_vars):
            value = os.getenv(candidate)
            if value:
                return Path(value).expanduser().resolve()
        return None

    def _load_from_env(self) -> None:
        resolved = self._configured_path()
        self._path = resolved
        self._mtime = resolved.stat().st_mtime if resolved and resolved.exists() else None

    def _refresh_if_needed(self) -> None:
        with self._lock:
            now = time.monotonic()
            if now - self._last_check < 1.0:
                return
            self._last_check = now

            resolved = self._configured_path()
            if resolved != self._path:
                self._path = resolved
                self._mtime = None
            if self._path is None:
                return
            if self._path.exists():
                mtime = self._path.stat().st_mtime
                if self._mtime != mtime:
                    if self._mtime is not None:
                        _logger.info("Cookie file changed", extra={"path": str(self._path)})
                    self._mtime = mtime
            else:
                self._mtime = None

    # ------------------------------------------------------------------
    # Public helpers
    # ------------------------------------------------------------------
    def cookie_file(self) -> Optional[Path]:
        self._refresh_if_needed()
        return self._path

    def yt_dlp_options(self) -> Dict[str, object]:
        self._refresh_if_needed()
        options: Dict[str, object] = {
            "quiet": True,
            "no_warnings": True,
            "format": "bestaudio/best",
            "noplaylist": True,
            "geo_bypass": True,
            "nocheckcertificate": True,
        }
        if self._path and self._path.exists():
            options["cookiefile"] = str(self._path)
        return options

    def cookie_age_seconds(self) -> Optional[float]:
        self._refresh_if_needed()
        if self._path is None or self._mtime is None:
            return None
        return max(0.0, time.time() - self._mtime)
