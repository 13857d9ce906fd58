"""Token-gated primary provider backed by the SoundCloud v2 API."""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

import aiohttp

from ..auth import AuthTokenManager
from ..errors import AuthError, ProviderUnavailable, ResolutionError, ResolutionNotFound
from ..tracks import StreamHandle, Track, parse_duration
from . import is_url

__all__ = ["SoundCloudProvider"]

API_BASE = "https://api-v2.soundcloud.com"
WEB_BASE = "https://soundcloud.com"

_SCRIPT_RE = re.compile(r'<script[^>]+src="(https://[^"]+\.js)"')
_CLIENT_ID_RE = re.compile(r'client_id\s*[:=]\s*"([0-9A-Za-z]{16,})"')


def _is_soundcloud_url(query: str) -> bool:
    host = (urlparse(query.strip()).hostname or "").lower()
    return host == "soundcloud.com" or host.endswith(".soundcloud.com")


class SoundCloudProvider:
    """Search and stream SoundCloud tracks.

    Every API call needs a ``client_id``. The provider reads it from the
    attached :class:`AuthTokenManager`; it also knows how to scrape a free one
    and how to check whether a candidate is accepted.
    """

    name = "soundcloud"

    def __init__(
        self,
        *,
        auth: Optional[AuthTokenManager] = None,
        timeout: float = 10.0,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.auth = auth
        self.timeout = timeout
        self.logger = logger or logging.getLogger("guildtune.music.soundcloud")

    # ------------------------------------------------------------------
    # Provider interface
    # ------------------------------------------------------------------
    async def search(self, query: str, limit: int) -> List[Track]:
        query = query.strip()
        if is_url(query):
            if not _is_soundcloud_url(query):
                return []
            payload = await self._api_get("/resolve", {"url": query})
            return self._tracks_from_resolved(payload)[:limit]

        payload = await self._api_get(
            "/search/tracks", {"q": query, "limit": str(max(1, limit))}
        )
        collection = payload.get("collection") if isinstance(payload, dict) else None
        if not isinstance(collection, list):
            raise ResolutionError("Malformed search payload", provider=self.name)
        tracks = [self._to_track(item) for item in collection]
        return [track for track in tracks if track is not None][:limit]

    async def stream(self, track: Track) -> StreamHandle:
        payload = track.playable if isinstance(track.playable, dict) else None
        if not payload or not payload.get("transcodings"):
            resolved = await self._api_get("/resolve", {"url": track.url})
            fresh = self._tracks_from_resolved(resolved)
            if not fresh:
                raise ResolutionNotFound(
                    f"SoundCloud could not resolve {track.url}", provider=self.name
                )
            payload = fresh[0].playable

        transcoding = self._pick_transcoding(payload.get("transcodings") or [])
        if transcoding is None:
            raise ResolutionNotFound(
                f"No playable transcoding for {track.url}", provider=self.name
            )

        params: Dict[str, str] = {}
        authorization = payload.get("track_authorization")
        if authorization:
            params["track_authorization"] = str(authorization)
        media = await self._api_get(transcoding["url"], params)
        stream_url = media.get("url") if isinstance(media, dict) else None
        if not stream_url:
            raise ResolutionError("Transcoding returned no stream URL", provider=self.name)
        return StreamHandle(track=track, provider=self.name, url=str(stream_url))

    # ------------------------------------------------------------------
    # Credential helpers
    # ------------------------------------------------------------------
    async def fetch_free_client_id(self) -> Optional[str]:
        """Scrape a public ``client_id`` from the SoundCloud web bundles."""

        timeout = aiohttp.ClientTimeout(total=self.timeout)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(WEB_BASE) as resp:
                    if resp.status != 200:
                        raise ProviderUnavailable(
                            f"SoundCloud home page returned HTTP {resp.status}",
                            provider=self.name,
                        )
                    html = await resp.text()
                scripts = _SCRIPT_RE.findall(html)
                # The bundle carrying the id is usually one of the last ones.
                for script_url in reversed(scripts):
                    async with session.get(script_url) as resp:
                        if resp.status != 200:
                            continue
                        body = await resp.text()
                    match = _CLIENT_ID_RE.search(body)
                    if match:
                        self.logger.info(
                            "Scraped free SoundCloud client id",
                            extra={"script": script_url},
                        )
                        return match.group(1)
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise ProviderUnavailable(
                "Could not reach SoundCloud to issue a client id",
                provider=self.name,
                cause=exc,
            ) from exc
        self.logger.warning("No client id found in SoundCloud bundles")
        return None

    async def validate_client_id(self, client_id: str) -> bool:
        timeout = aiohttp.ClientTimeout(total=self.timeout)
        params = {"q": "a", "limit": "1", "client_id": client_id}
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(f"{API_BASE}/search/tracks", params=params) as resp:
                    return resp.status == 200
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            self.logger.warning(
                "Client id validation request failed", extra={"error": str(exc)}
            )
            return False

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _client_id(self) -> str:
        token = self.auth.token if self.auth is not None else None
        if not token:
            raise AuthError("No SoundCloud client id available", provider=self.name)
        return token

    async def _api_get(self, path: str, params: Dict[str, str]) -> Any:
        url = path if path.startswith("http") else f"{API_BASE}{path}"
        query = dict(params)
        query["client_id"] = self._client_id()
        timeout = aiohttp.ClientTimeout(total=self.timeout)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(url, params=query) as resp:
                    status = resp.status
                    if status in (401, 403):
                        raise AuthError(
                            f"SoundCloud rejected the client id (HTTP {status})",
                            provider=self.name,
                        )
                    if status == 404:
                        raise ResolutionNotFound(
                            "SoundCloud returned HTTP 404", provider=self.name
                        )
                    if status == 429 or status >= 500:
                        raise ProviderUnavailable(
                            f"SoundCloud unavailable (HTTP {status})", provider=self.name
                        )
                    if status != 200:
                        raise ResolutionError(
                            f"Unexpected SoundCloud response (HTTP {status})",
                            provider=self.name,
                        )
                    try:
                        return await resp.json(content_type=None)
                    except ValueError as exc:
                        raise ResolutionError(
                            "SoundCloud returned malformed JSON",
                            provider=self.name,
                            cause=exc,
                        ) from exc
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise ProviderUnavailable(
                "Failed to communicate with SoundCloud", provider=self.name, cause=exc
            ) from exc

    def _tracks_from_resolved(self, payload: Any) -> List[Track]:
        if not isinstance(payload, dict):
            raise ResolutionError("Malformed resolve payload", provider=self.name)
        kind = payload.get("kind")
        if kind == "track":
            items = [payload]
        elif kind == "playlist":
            items = payload.get("tracks") or []
        else:
            return []
        tracks = [self._to_track(item) for item in items]
        return [track for track in tracks if track is not None]

    def _to_track(self, item: Any) -> Optional[Track]:
        if not isinstance(item, dict):
            return None
        url = item.get("permalink_url")
        title = item.get("title")
        if not url or not title:
            # Playlist stubs only carry an id.
            return None
        media = item.get("media") or {}
        transcodings = media.get("transcodings") or []
        if not transcodings:
            return None
        user = item.get("user") or {}
        duration = item.get("full_duration") or item.get("duration") or 0
        return Track(
            url=str(url),
            title=str(title),
            author=str(user.get("username") or "Unknown"),
            duration_ms=parse_duration(duration, unit="ms"),
            thumbnail=item.get("artwork_url") or user.get("avatar_url"),
            provider=self.name,
            playable={
                "id": item.get("id"),
                "transcodings": transcodings,
                "track_authorization": item.get("track_authorization"),
            },
        )

    @staticmethod
    def _pick_transcoding(transcodings: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        usable = [
            item
            for item in transcodings
            if isinstance(item, dict) and item.get("url") and not item.get("snipped")
        ]
        for protocol in ("progressive", "hls"):
            for item in usable:
                fmt = item.get("format") or {}
                if fmt.get("protocol") == protocol:
                    return item
        return usable[0] if usable else None
