"""Attach playback sinks to guild voice channels."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional, Protocol

import nextcord

from .errors import VoiceConnectionError
from .providers.lavalink import LavalinkAudioBackend
from .session import RelaySink, Sink, VoiceClientSink

__all__ = ["VoiceConnector", "NextcordVoiceConnector"]


class VoiceConnector(Protocol):
    async def connect(self, guild_id: int, channel_id: int) -> Sink:
        ...


class NextcordVoiceConnector:
    """Connect the bot to a voice channel and wrap the result in a sink.

    Without a relay backend the sink is a plain nextcord voice client fed by
    ffmpeg; with one, the connection is a Mafic player.
    """

    def __init__(
        self,
        bot,
        *,
        relay: Optional[LavalinkAudioBackend] = None,
        timeout: float = 15.0,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.bot = bot
        self.relay = relay
        self.timeout = timeout
        self.logger = logger or logging.getLogger("guildtune.music.voice")

    async def _fetch_channel(self, channel_id: int) -> Any:
        channel = self.bot.get_channel(channel_id)
        if channel is not None:
            return channel
        try:
            return await self.bot.fetch_channel(channel_id)
        except nextcord.HTTPException as exc:
            raise VoiceConnectionError(f"Channel {channel_id} is not accessible") from exc

    async def connect(self, guild_id: int, channel_id: int) -> Sink:
        channel = await self._fetch_channel(channel_id)
        if not callable(getattr(channel, "connect", None)):
            raise VoiceConnectionError("Invalid voice channel ID")
        guild = getattr(channel, "guild", None)
        if guild is None or guild.id != guild_id:
            raise VoiceConnectionError("Voice channel belongs to a different guild")

        if self.relay is not None and not await self.relay.wait_ready():
            raise VoiceConnectionError("Lavalink node is not ready")
        client_cls = self.relay.player_class if self.relay is not None else nextcord.VoiceClient

        voice = guild.voice_client
        try:
            if voice is not None and not isinstance(voice, client_cls):
                await voice.disconnect(force=True)
                voice = None
            if voice is not None and voice.channel != channel:
                await voice.move_to(channel)
            if voice is None:
                voice = await channel.connect(cls=client_cls, timeout=self.timeout)
        except (asyncio.TimeoutError, nextcord.ClientException, nextcord.HTTPException) as exc:
            self.logger.error(
                "Voice connection failed",
                extra={"guild_id": guild_id, "channel_id": channel_id},
                exc_info=exc,
            )
            raise VoiceConnectionError("Could not join the voice channel") from exc

        self.logger.info(
            "Joined voice channel",
            extra={"guild_id": guild_id, "channel_id": channel_id, "relay": self.relay is not None},
        )
        if self.relay is not None:
            return RelaySink(voice, self.relay)
        return VoiceClientSink(voice)
