"""General-purpose video search fallback using yt-dlp."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional

import yt_dlp

from ..cookies import CookieManager
from ..errors import AuthError, ProviderUnavailable, ResolutionError, ResolutionNotFound
from ..metrics import PlaybackMetrics
from ..tracks import StreamHandle, Track, parse_duration
from . import is_url

__all__ = ["YtDlpProvider"]

_THROTTLE_HINTS = ("429", "too many requests", "throttl", "quota", "rate limit")
_NETWORK_HINTS = ("unable to download", "timed out", "connection", "temporary failure")
_MISSING_HINTS = (
    "video unavailable",
    "private video",
    "has been removed",
    "not available",
    "does not exist",
    "http error 404",
)


class YtDlpProvider:
    """Search YouTube and extract direct audio URLs with yt-dlp."""

    name = "youtube"

    def __init__(
        self,
        *,
        cookies: Optional[CookieManager] = None,
        metrics: Optional[PlaybackMetrics] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.cookies = cookies or CookieManager()
        self.metrics = metrics or PlaybackMetrics()
        self.logger = logger or logging.getLogger("guildtune.music.ytdlp")

    async def search(self, query: str, limit: int) -> List[Track]:
        query = query.strip()
        target = query if is_url(query) else f"ytsearch{max(1, limit)}:{query}"
        info = await self._extract(target, flat=True)
        if "entries" in info:
            entries = [entry for entry in info.get("entries") or [] if entry]
        else:
            entries = [info]
        tracks = [self._to_track(entry) for entry in entries]
        return [track for track in tracks if track is not None][:limit]

    async def stream(self, track: Track) -> StreamHandle:
        info = await self._extract(track.url, flat=False)
        if "entries" in info:
            entries = [entry for entry in info.get("entries") or [] if entry]
            if not entries:
                raise ResolutionNotFound(
                    f"yt-dlp returned no entries for {track.url}", provider=self.name
                )
            info = entries[0]
        stream_url = info.get("url")
        if not stream_url:
            raise ResolutionError("yt-dlp did not yield a usable stream", provider=self.name)
        headers = info.get("http_headers") or {}
        return StreamHandle(
            track=track,
            provider=self.name,
            url=str(stream_url),
            headers={str(k): str(v) for k, v in headers.items()},
        )

    # ------------------------------------------------------------------
    async def _extract(self, target: str, *, flat: bool) -> Dict[str, Any]:
        options = self.cookies.yt_dlp_options()
        options.update({"skip_download": True})
        if flat:
            options["extract_flat"] = "in_playlist"

        def _do_extract() -> Dict[str, Any]:
            with yt_dlp.YoutubeDL(options) as ydl:
                return ydl.extract_info(target, download=False)

        try:
            info = await asyncio.to_thread(_do_extract)
        except yt_dlp.utils.DownloadError as exc:
            raise self._classify(exc, target) from exc
        except Exception as exc:
            raise ResolutionError(
                "yt-dlp extraction failed", provider=self.name, cause=exc
            ) from exc
        if not isinstance(info, dict):
            raise ResolutionNotFound(f"yt-dlp found nothing for {target}", provider=self.name)
        return info

    def _classify(self, exc: Exception, target: str) -> ResolutionError:
        text = str(exc).lower()
        if "sign in to confirm" in text:
            cookie_path = self.cookies.cookie_file()
            self.metrics.record_provider_failure(self.name, "sign-in")
            self.logger.error(
                "YouTube rejected unauthenticated request; configure YT_COOKIES_FILE with a fresh export",
                extra={
                    "target": target,
                    "cookie_configured": bool(cookie_path and cookie_path.exists()),
                    "cookie_age_s": self.cookies.cookie_age_seconds(),
                },
            )
            return AuthError("YouTube rejected unauthenticated playback", provider=self.name, cause=exc)
        if any(hint in text for hint in _THROTTLE_HINTS + _NETWORK_HINTS):
            self.metrics.record_provider_failure(self.name, "unavailable")
            return ProviderUnavailable("YouTube is unavailable", provider=self.name, cause=exc)
        if any(hint in text for hint in _MISSING_HINTS):
            self.metrics.record_provider_failure(self.name, "not-found")
            return ResolutionNotFound(f"YouTube has no playable video for {target}", provider=self.name, cause=exc)
        self.metrics.record_provider_failure(self.name, exc.__class__.__name__.lower())
        return ResolutionError("yt-dlp extraction failed", provider=self.name, cause=exc)

    def _to_track(self, info: Dict[str, Any]) -> Optional[Track]:
        if not isinstance(info, dict):
            return None
        url = None
        for key in ("webpage_url", "original_url", "url"):
            candidate = info.get(key)
            if isinstance(candidate, str) and candidate:
                url = candidate
                break
        if url is None and info.get("id"):
            url = f"https://www.youtube.com/watch?v={info['id']}"
        if url is None:
            return None

        title = str(info.get("title") or info.get("track") or "").strip() or "Unknown title"
        author = (
            str(
                info.get("uploader")
                or info.get("channel")
                or info.get("artist")
                or info.get("creator")
                or ""
            ).strip()
            or "Unknown"
        )
        thumbnail = info.get("thumbnail")
        if not thumbnail:
            thumbnails = info.get("thumbnails") or []
            if thumbnails and isinstance(thumbnails[-1], dict):
                thumbnail = thumbnails[-1].get("url")

        return Track(
            url=url,
            title=title,
            author=author,
            duration_ms=parse_duration(info.get("duration")),
            thumbnail=thumbnail,
            provider=self.name,
            playable=info.get("id"),
        )
