"""Optional Lavalink relay node, driven through Mafic."""

from __future__ import annotations

import asyncio
import inspect
import logging
import os
from typing import Any, Iterable, List, Optional

from guildtune.config import get_lavalink_connection_info

from ..errors import ProviderUnavailable, RelayUnavailable, ResolutionNotFound
from ..tracks import StreamHandle, Track

os.environ.setdefault("MAFIC_LIBRARY", "nextcord")
os.environ.setdefault("MAFIC_IGNORE_LIBRARY_CHECK", "1")

# Imported lazily so that the rest of the package works without a relay.
mafic = None

__all__ = ["LavalinkAudioBackend", "LavalinkProvider"]


def _default_logger() -> logging.Logger:
    return logging.getLogger("guildtune.music.lavalink")


def _load_mafic() -> Any:
    global mafic
    if mafic is None:
        try:
            import mafic as _mafic
        except ImportError as exc:  # pragma: no cover - import error surface
            raise RuntimeError("mafic library is required for the Lavalink relay") from exc
        mafic = _mafic
    return mafic


class LavalinkAudioBackend:
    """Manage a Mafic node and resolve tracks through it."""

    def __init__(
        self,
        bot,
        *,
        logger: Optional[logging.Logger] = None,
        identifier: str = "primary",
        search_type: Optional[str] = None,
    ) -> None:
        self.bot = bot
        self.logger = logger or _default_logger()
        self.identifier = identifier
        self.search_type = (
            search_type or os.getenv("LAVALINK_SEARCH_TYPE", "ytsearch")
        ).strip() or "ytsearch"
        self._ready = asyncio.Event()
        self._pool = _load_mafic().NodePool(bot)
        self._node = None
        self._lock = asyncio.Lock()

    @property
    def player_class(self) -> type:
        return _load_mafic().Player

    @property
    def ready(self) -> bool:
        return self._node is not None and self._ready.is_set()

    async def connect(self) -> None:
        """Create the Lavalink node if it does not already exist."""

        async with self._lock:
            if self._node is not None:
                return

            host, port, password, secure = get_lavalink_connection_info()
            session_id = os.getenv("LAVALINK_SESSION", "guildtune")

            self.logger.info(
                "Connecting to Lavalink",
                extra={"host": host, "port": port, "secure": secure},
            )

            create_params = inspect.signature(self._pool.create_node).parameters
            node_kwargs = dict(
                host=host,
                port=port,
                label=self.identifier,
                password=password,
                secure=secure,
            )
            if "session_id" in create_params:
                node_kwargs["session_id"] = session_id

            self._node = await self._pool.create_node(**node_kwargs)
            self._ready.set()

    async def wait_ready(self, timeout: float = 10.0) -> bool:
        try:
            await asyncio.wait_for(self.connect(), timeout=timeout)
        except Exception as exc:
            self.logger.warning("Lavalink node unavailable", extra={"error": str(exc)})
            return False
        return self._ready.is_set()

    async def close(self) -> None:
        node, self._node = self._node, None
        self._ready.clear()
        if node is not None:
            await node.close()

    async def resolve_tracks(self, query: str) -> List[Any]:
        """Return raw Mafic tracks for a query or URL."""

        if self._node is None:
            raise RelayUnavailable("Lavalink node is not ready", provider="lavalink")

        try:
            result = await self._node.fetch_tracks(query, search_type=self.search_type)
        except Exception as exc:
            raise ProviderUnavailable(
                "Failed to communicate with Lavalink", provider="lavalink", cause=exc
            ) from exc

        tracks: Iterable[Any]
        if result is None:
            tracks = []
        elif isinstance(result, _load_mafic().Playlist):
            tracks = result.tracks
        else:
            tracks = result
        return list(tracks)


class LavalinkProvider:
    """Provider adapter so the relay node can sit in the fallback chain."""

    name = "lavalink"

    def __init__(self, backend: LavalinkAudioBackend) -> None:
        self.backend = backend

    async def search(self, query: str, limit: int) -> List[Track]:
        raw = await self.backend.resolve_tracks(query.strip())
        return [Track.from_mafic(item) for item in raw[: max(1, limit)]]

    async def stream(self, track: Track) -> StreamHandle:
        relay_track = track.playable
        if relay_track is None:
            raw = await self.backend.resolve_tracks(track.url)
            if not raw:
                raise ResolutionNotFound(
                    f"Lavalink could not load {track.url}", provider=self.name
                )
            relay_track = raw[0]
        return StreamHandle(track=track, provider=self.name, relay_track=relay_track)
