"""Per-guild queue state machine."""

from __future__ import annotations

import asyncio
import contextlib
import enum
import logging
import time
from typing import Any, Dict, List, Optional, Set

from .embeds import EmbedFactory, Notice
from .errors import PlaybackError, ResolutionError, VoiceConnectionError
from .metrics import PlaybackMetrics
from .queue import GuildQueue
from .resolver import ProviderResolver
from .session import EventKind, PlaybackEvent, PlaybackSession
from .tracks import Track
from .voice import VoiceConnector

__all__ = ["PlaybackState", "GuildMusicManager"]


class PlaybackState(enum.Enum):
    IDLE = "idle"
    PLAYING = "playing"


class GuildMusicManager:
    """Own one guild's queue and drive its playback session.

    A per-guild lock guards queue and state changes only; track resolution
    runs outside it, so ``add_to_queue`` appends and returns while another
    track resolves. At most one advance loop runs at a time. ``stop`` skips
    the lock: it clears state synchronously and bumps a generation counter so
    that a resolution still in flight is discarded when it returns.
    """

    def __init__(
        self,
        guild_id: int,
        resolver: ProviderResolver,
        connector: VoiceConnector,
        *,
        embeds: Optional[EmbedFactory] = None,
        metrics: Optional[PlaybackMetrics] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.guild_id = guild_id
        self.resolver = resolver
        self.connector = connector
        self.embeds = embeds or EmbedFactory()
        self.metrics = metrics or PlaybackMetrics()
        self.logger = logger or logging.getLogger("guildtune.music.manager")

        self.queue = GuildQueue()
        self.state = PlaybackState.IDLE
        self.current_track: Optional[Track] = None
        self.notification_target: Optional[Any] = None
        self.session: Optional[PlaybackSession] = None
        self.consecutive_failures = 0

        self._lock = asyncio.Lock()
        self._join_lock = asyncio.Lock()
        self._generation = 0
        self._advancing = False
        self._consumer: Optional[asyncio.Task] = None
        self._notices: Set[asyncio.Task] = set()

    @property
    def is_connected(self) -> bool:
        return self.session is not None

    def _context(self, track: Optional[Track] = None, **extra: Any) -> Dict[str, Any]:
        context: Dict[str, Any] = {"guild_id": self.guild_id, "state": self.state.value}
        if track is not None:
            context.update(
                {
                    "track_title": track.title,
                    "track_url": track.url,
                    "track_provider": track.provider,
                    "track_duration": track.duration_ms,
                }
            )
        context.update(extra)
        return context

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------
    def set_notification_target(self, channel: Any) -> None:
        self.notification_target = channel

    def _notify(self, notice: Notice) -> None:
        target = self.notification_target
        if target is None:
            return
        task = asyncio.get_running_loop().create_task(self._post(target, notice))
        self._notices.add(task)
        task.add_done_callback(self._notices.discard)

    async def _post(self, target: Any, notice: Notice) -> None:
        try:
            await target.send(embed=self.embeds.render(notice))
        except Exception as exc:
            self.logger.warning(
                "Failed to post notice",
                extra=self._context(notice=notice.title, error=str(exc)),
            )

    async def flush_notifications(self) -> None:
        """Wait for every pending notice to be posted."""

        while self._notices:
            await asyncio.gather(*list(self._notices))

    # ------------------------------------------------------------------
    # Voice lifecycle
    # ------------------------------------------------------------------
    async def join(self, voice_channel_id: int, guild_id: Optional[int] = None) -> PlaybackSession:
        """Attach to a voice channel; a no-op when a session already exists."""

        if guild_id is not None and guild_id != self.guild_id:
            raise VoiceConnectionError(
                f"Manager for guild {self.guild_id} cannot join guild {guild_id}"
            )
        async with self._join_lock:
            if self.session is not None:
                return self.session
            sink = await self.connector.connect(self.guild_id, voice_channel_id)
            session = PlaybackSession(self.guild_id, sink, logger=self.logger)
            self.session = session
            self._consumer = asyncio.get_running_loop().create_task(
                self._consume_events(session)
            )
            self.logger.info(
                "Voice session established",
                extra=self._context(channel_id=voice_channel_id),
            )
            return session

    async def leave(self) -> None:
        """Stop playback and give up the voice sink. Safe when never joined."""

        await self.stop()
        consumer, self._consumer = self._consumer, None
        if consumer is not None:
            consumer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await consumer
        session, self.session = self.session, None
        if session is None:
            return
        try:
            await session.release()
        except Exception as exc:
            self.logger.warning(
                "Failed to release voice sink", extra=self._context(error=str(exc))
            )
        else:
            self.logger.info("Voice session released", extra=self._context())

    # ------------------------------------------------------------------
    # Queue operations
    # ------------------------------------------------------------------
    async def add_to_queue(self, track: Track) -> int:
        """Enqueue ``track``; returns its queue position, or 0 when it started."""

        async with self._lock:
            position = self.queue.enqueue(track)
            idle = self.state is PlaybackState.IDLE
            if idle:
                self.state = PlaybackState.PLAYING
            else:
                self.logger.info("Track queued", extra=self._context(track, position=position))
                self._notify(self.embeds.queued(track, position=position))
        if not idle:
            return position
        await self._advance()
        return 0

    async def play_next(self) -> None:
        await self._advance()

    async def stop(self) -> None:
        """Clear the queue and current track and halt the sink. Idempotent."""

        self._generation += 1
        dropped = self.queue.clear()
        had_track = self.current_track is not None
        self.current_track = None
        self.state = PlaybackState.IDLE
        self.consecutive_failures = 0
        if had_track or dropped:
            self.logger.info("Playback stopped", extra=self._context(dropped=dropped))
        if self.session is not None:
            await self.session.stop()

    def snapshot(self) -> List[Track]:
        return self.queue.snapshot()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    async def _advance(self) -> None:
        """Play the next queued track, skipping over tracks that fail.

        Only one loop runs per guild; a second caller returns at once and the
        running loop picks up whatever has been queued. Every iteration
        consumes one queued track and each failing track is dropped after one
        attempt. A result that went stale because of ``stop`` is discarded and
        the loop carries on with whatever was queued since.
        """

        async with self._lock:
            if self._advancing:
                return
            self._advancing = True
        try:
            await self._advance_loop()
        finally:
            self._advancing = False

    async def _advance_loop(self) -> None:
        while True:
            async with self._lock:
                generation = self._generation
                track = self.queue.dequeue()
                if track is None:
                    self.current_track = None
                    self.state = PlaybackState.IDLE
                    return
                self.current_track = track
                self.state = PlaybackState.PLAYING

            try:
                started = await self._start(track, generation)
            except (ResolutionError, PlaybackError) as exc:
                if generation != self._generation:
                    continue
                self.consecutive_failures += 1
                self.metrics.incr_failed()
                self.logger.warning(
                    "Track failed; advancing queue",
                    extra=self._context(
                        track,
                        error=str(exc),
                        error_type=type(exc).__name__,
                        consecutive_failures=self.consecutive_failures,
                        remaining=len(self.queue),
                    ),
                )
                self._notify(self.embeds.failure(track, exc))
                continue
            if started:
                self.consecutive_failures = 0
                return

    async def _start(self, track: Track, generation: int) -> bool:
        session = self.session
        if session is None:
            raise PlaybackError("Not connected to a voice channel")

        begin = time.perf_counter()
        handle = await self.resolver.stream(track)
        if generation != self._generation or self.session is not session:
            self.logger.info("Discarding stale resolution", extra=self._context(track))
            return False

        await session.play(handle)
        if generation != self._generation:
            await session.stop()
            return False

        self.metrics.incr_started()
        self.logger.info(
            "Playback started: %s (%s)",
            track.title,
            handle.provider,
            extra=self._context(
                track,
                stream_provider=handle.provider,
                startup_ms=round((time.perf_counter() - begin) * 1000, 2),
            ),
        )
        self._notify(self.embeds.now_playing(track, provider=handle.provider))
        return True

    async def _consume_events(self, session: PlaybackSession) -> None:
        while True:
            event = await session.events.get()
            async with self._lock:
                if self.session is not session or not session.is_current(event):
                    continue
                self._finish_current(event)
            await self._advance()

    def _finish_current(self, event: PlaybackEvent) -> None:
        track = self.current_track
        if event.kind is EventKind.ERRORED:
            error = event.error or PlaybackError("unknown playback error")
            self.metrics.incr_failed()
            self.logger.error(
                "Track errored mid-stream", extra=self._context(track, error=str(error))
            )
            self._notify(self.embeds.failure(track, error))
        else:
            self.logger.info("Track finished", extra=self._context(track))
        self.current_track = None
