"""Per-guild playback sessions and the audio sinks they drive."""

from __future__ import annotations

import asyncio
import enum
import functools
import itertools
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional, Protocol

import nextcord

from .errors import PlaybackError
from .tracks import StreamHandle

__all__ = [
    "EventKind",
    "PlaybackEvent",
    "PlaybackSession",
    "Sink",
    "VoiceClientSink",
    "RelaySink",
]

FinishCallback = Callable[[Optional[BaseException]], None]


class EventKind(enum.Enum):
    ENDED = "ended"
    ERRORED = "errored"


@dataclass(frozen=True)
class PlaybackEvent:
    kind: EventKind
    play_id: int
    error: Optional[BaseException] = None


class Sink(Protocol):
    """Live audio output for one guild."""

    @property
    def connected(self) -> bool:
        ...

    async def start(self, handle: StreamHandle, on_finish: FinishCallback) -> None:
        ...

    async def halt(self) -> None:
        ...

    async def release(self) -> None:
        ...


class PlaybackSession:
    """Wrap one guild's sink and report terminal events on :attr:`events`.

    Each call to :meth:`play` gets a play id. The sink reports completion
    through a callback that may run on any thread; the session moves it onto
    the event loop and publishes at most one :class:`PlaybackEvent` per play
    id. Plays that were replaced or stopped never publish anything.
    """

    def __init__(
        self,
        guild_id: int,
        sink: Sink,
        *,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.guild_id = guild_id
        self.sink = sink
        self.logger = logger or logging.getLogger("guildtune.music.session")
        self.events: "asyncio.Queue[PlaybackEvent]" = asyncio.Queue()
        self._loop = asyncio.get_running_loop()
        self._play_ids = itertools.count(1)
        self._active: Optional[int] = None
        self._settled: Optional[int] = None
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    def is_current(self, event: PlaybackEvent) -> bool:
        return event.play_id == self._active

    async def play(self, handle: StreamHandle) -> int:
        """Replace whatever is playing with ``handle``."""

        if self._released:
            raise PlaybackError("Voice session has been released")
        if self._active is not None:
            self._active = None
            await self.sink.halt()

        play_id = next(self._play_ids)
        self._active = play_id
        try:
            await self.sink.start(handle, functools.partial(self._on_finish, play_id))
        except PlaybackError:
            self._reset(play_id)
            raise
        except Exception as exc:
            self._reset(play_id)
            raise PlaybackError(f"Could not start playback: {exc}", cause=exc) from exc
        self.logger.debug(
            "Playback started",
            extra={"guild_id": self.guild_id, "play_id": play_id, **handle.describe()},
        )
        return play_id

    async def stop(self) -> None:
        """Halt output without publishing an ``ended`` event."""

        self._active = None
        await self.sink.halt()

    async def release(self) -> None:
        if self._released:
            return
        self._released = True
        await self.stop()
        await self.sink.release()

    # ------------------------------------------------------------------
    def _reset(self, play_id: int) -> None:
        if self._active == play_id:
            self._active = None

    def _on_finish(self, play_id: int, error: Optional[BaseException] = None) -> None:
        if self._loop.is_closed():
            self.logger.debug(
                "Dropping playback event after loop shutdown",
                extra={"guild_id": self.guild_id, "play_id": play_id},
            )
            return
        self._loop.call_soon_threadsafe(self._settle, play_id, error)

    def _settle(self, play_id: int, error: Optional[BaseException]) -> None:
        if play_id != self._active or play_id == self._settled:
            return
        self._settled = play_id
        kind = EventKind.ERRORED if error is not None else EventKind.ENDED
        self.events.put_nowait(PlaybackEvent(kind=kind, play_id=play_id, error=error))


class VoiceClientSink:
    """Play direct media URLs through a nextcord voice client and ffmpeg."""

    def __init__(
        self,
        voice_client: Any,
        *,
        ffmpeg_options: str = "-vn",
        source_factory: Optional[Callable[[StreamHandle], Any]] = None,
    ) -> None:
        self.voice_client = voice_client
        self.ffmpeg_options = ffmpeg_options
        self._source_factory = source_factory or self._ffmpeg_source

    @property
    def connected(self) -> bool:
        return bool(self.voice_client.is_connected())

    def _ffmpeg_source(self, handle: StreamHandle) -> nextcord.AudioSource:
        return nextcord.FFmpegPCMAudio(
            handle.url,
            before_options=handle.ffmpeg_before_options(),
            options=self.ffmpeg_options,
        )

    async def start(self, handle: StreamHandle, on_finish: FinishCallback) -> None:
        if handle.is_relay or not handle.url:
            raise PlaybackError(f"{handle.provider} handle has no direct stream URL")
        try:
            source = self._source_factory(handle)
        except nextcord.ClientException as exc:
            raise PlaybackError(f"Could not open audio source: {exc}", cause=exc) from exc
        try:
            self.voice_client.play(source, after=on_finish)
        except nextcord.ClientException as exc:
            source.cleanup()
            raise PlaybackError(f"Voice client refused audio: {exc}", cause=exc) from exc

    async def halt(self) -> None:
        if self.voice_client.is_playing() or self.voice_client.is_paused():
            self.voice_client.stop()

    async def release(self) -> None:
        await self.voice_client.disconnect(force=True)


_RELAY_IGNORED_REASONS = {"stopped", "replaced"}


class RelaySink:
    """Play through a Mafic player connected to the Lavalink relay.

    Lavalink reports track completion through bot events; the music cog
    forwards them to :meth:`deliver_end` and :meth:`deliver_error`.
    """

    def __init__(self, player: Any, backend: Any) -> None:
        self.player = player
        self.backend = backend
        self._on_finish: Optional[FinishCallback] = None

    @property
    def connected(self) -> bool:
        return bool(getattr(self.player, "connected", True))

    async def start(self, handle: StreamHandle, on_finish: FinishCallback) -> None:
        relay_track = handle.relay_track
        if relay_track is None:
            if not handle.url:
                raise PlaybackError(f"{handle.provider} handle has no playable reference")
            tracks = await self.backend.resolve_tracks(handle.url)
            if not tracks:
                raise PlaybackError(f"Lavalink could not load {handle.provider} stream")
            relay_track = tracks[0]
        self._on_finish = on_finish
        await self.player.play(relay_track)

    def deliver_end(self, reason: Any) -> None:
        text = str(getattr(reason, "value", reason) or "").lower()
        if text in _RELAY_IGNORED_REASONS:
            return
        callback, self._on_finish = self._on_finish, None
        if callback is None:
            return
        if text == "finished":
            callback(None)
        else:
            callback(PlaybackError(f"Relay track ended early ({text or 'unknown'})"))

    def deliver_error(self, error: BaseException) -> None:
        callback, self._on_finish = self._on_finish, None
        if callback is not None:
            callback(error)

    async def halt(self) -> None:
        self._on_finish = None
        await self.player.stop()

    async def release(self) -> None:
        self._on_finish = None
        await self.player.disconnect(force=True)
