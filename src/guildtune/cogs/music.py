"""Nextcord music cog backed by the multi-provider queue engine."""

from __future__ import annotations

import logging
from typing import Any, Optional, Tuple

import nextcord
from nextcord.ext import commands

from guildtune.music import (
    GuildMusicManager,
    PlaybackError,
    RelaySink,
    VoiceConnectionError,
    configure_json_logging,
)
from guildtune.music.service import MusicService
from guildtune.utils import safe_reply

_LOGGING_INITIALISED = False


def _ensure_logging() -> None:
    global _LOGGING_INITIALISED
    if not _LOGGING_INITIALISED:
        configure_json_logging()
        _LOGGING_INITIALISED = True


class Music(commands.Cog):
    """Slash command music cog with provider fallback."""

    def __init__(self, bot: commands.Bot, *, service: Optional[MusicService] = None) -> None:
        self.bot = bot
        self.logger = logging.getLogger("guildtune.music.cog")
        if service is None:
            _ensure_logging()
            service = MusicService.from_config(bot)
        self.service = service

    @property
    def embeds(self):
        return self.service.embeds

    # ------------------------------------------------------------------
    # Cog lifecycle
    # ------------------------------------------------------------------
    async def cog_load(self) -> None:  # type: ignore[override]
        self.service.warm_up()
        if self.service.relay is not None and not await self.service.relay.wait_ready():
            self.logger.warning("Lavalink relay not ready at startup")

    async def cog_unload(self) -> None:  # type: ignore[override]
        await self.service.shutdown()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _manager(self, guild_id: int) -> GuildMusicManager:
        return self.service.registry.get_or_create(guild_id)

    @staticmethod
    def _requester_channel(interaction: nextcord.Interaction) -> Tuple[Optional[Any], Optional[str]]:
        if interaction.guild is None:
            return None, "This command can only be used in guilds."
        voice = getattr(interaction.user, "voice", None)
        if voice is None or voice.channel is None:
            return None, "You must join a voice channel first."
        return voice.channel, None

    async def _join(self, interaction: nextcord.Interaction) -> Optional[GuildMusicManager]:
        channel, error = self._requester_channel(interaction)
        guild = interaction.guild
        if error or channel is None or guild is None:
            await safe_reply(interaction, error or "You must join a voice channel first.", ephemeral=True)
            return None
        manager = self._manager(guild.id)
        manager.set_notification_target(interaction.channel)
        try:
            await manager.join(channel.id, guild.id)
        except VoiceConnectionError as exc:
            self.logger.warning(
                "Join failed",
                extra={"guild_id": guild.id, "error": str(exc)},
            )
            await safe_reply(interaction, f"❌ {exc}", ephemeral=True)
            return None
        return manager

    async def handle_join(self, interaction: nextcord.Interaction) -> None:
        manager = await self._join(interaction)
        if manager is not None:
            await safe_reply(interaction, "Joined your voice channel.", ephemeral=True)

    async def handle_play(self, interaction: nextcord.Interaction, query: str) -> None:
        channel, error = self._requester_channel(interaction)
        if error:
            await safe_reply(interaction, error, ephemeral=True)
            return

        tracks = await self.service.resolver.search(
            query, requested_by=str(interaction.user)
        )
        if not tracks:
            notice = self.embeds.not_found(query)
            await safe_reply(interaction, embed=self.embeds.render(notice), ephemeral=True)
            return

        manager = await self._join(interaction)
        if manager is None:
            return
        track = tracks[0]
        position = await manager.add_to_queue(track)
        if position:
            await safe_reply(interaction, f"Queued **{track.title}** at #{position}.")
        else:
            await safe_reply(interaction, f"Starting **{track.title}**.")

    async def handle_stop(self, interaction: nextcord.Interaction) -> None:
        if interaction.guild is None:
            await safe_reply(interaction, "This command can only be used in guilds.", ephemeral=True)
            return
        manager = self.service.registry.get(interaction.guild.id)
        if manager is None:
            await safe_reply(interaction, "Nothing is playing right now.", ephemeral=True)
            return
        await manager.stop()
        await safe_reply(interaction, "Playback stopped and queue cleared.")

    async def handle_leave(self, interaction: nextcord.Interaction) -> None:
        if interaction.guild is None:
            await safe_reply(interaction, "This command can only be used in guilds.", ephemeral=True)
            return
        manager = self.service.registry.get(interaction.guild.id)
        if manager is not None:
            await manager.leave()
        await safe_reply(interaction, "Left the voice channel.")

    async def handle_queue(self, interaction: nextcord.Interaction) -> None:
        if interaction.guild is None:
            await safe_reply(interaction, "This command can only be used in guilds.", ephemeral=True)
            return
        manager = self.service.registry.get(interaction.guild.id)
        current = manager.current_track if manager else None
        upcoming = manager.snapshot() if manager else []
        total_ms = manager.queue.total_duration_ms() if manager else 0
        notice = self.embeds.queue_overview(current, upcoming, total_ms=total_ms)
        await safe_reply(interaction, embed=self.embeds.render(notice), ephemeral=True)

    async def handle_nowplaying(self, interaction: nextcord.Interaction) -> None:
        if interaction.guild is None:
            await safe_reply(interaction, "This command can only be used in guilds.", ephemeral=True)
            return
        manager = self.service.registry.get(interaction.guild.id)
        if manager is None or manager.current_track is None:
            await safe_reply(interaction, "Nothing is playing right now.", ephemeral=True)
            return
        notice = self.embeds.now_playing(manager.current_track)
        await safe_reply(interaction, embed=self.embeds.render(notice), ephemeral=True)

    def _relay_sink(self, player: Any) -> Optional[RelaySink]:
        guild = getattr(player, "guild", None)
        if guild is None:
            return None
        manager = self.service.registry.get(guild.id)
        if manager is None or manager.session is None:
            return None
        sink = manager.session.sink
        return sink if isinstance(sink, RelaySink) else None

    # ------------------------------------------------------------------
    # Slash commands
    # ------------------------------------------------------------------
    @nextcord.slash_command(name="join", description="Join your voice channel")
    async def join(self, interaction: nextcord.Interaction) -> None:
        await interaction.response.defer(ephemeral=True)
        await self.handle_join(interaction)

    @nextcord.slash_command(name="play", description="Search and queue a track")
    async def play(
        self,
        interaction: nextcord.Interaction,
        query: str = nextcord.SlashOption(description="Track name or link"),
    ) -> None:
        await interaction.response.defer(ephemeral=False)
        await self.handle_play(interaction, query)

    @nextcord.slash_command(name="stop", description="Stop playback and clear the queue")
    async def stop(self, interaction: nextcord.Interaction) -> None:
        await interaction.response.defer(ephemeral=True)
        await self.handle_stop(interaction)

    @nextcord.slash_command(name="leave", description="Leave the voice channel")
    async def leave(self, interaction: nextcord.Interaction) -> None:
        await interaction.response.defer(ephemeral=True)
        await self.handle_leave(interaction)

    @nextcord.slash_command(name="queue", description="Show the current queue")
    async def show_queue(self, interaction: nextcord.Interaction) -> None:
        await interaction.response.defer(ephemeral=True)
        await self.handle_queue(interaction)

    @nextcord.slash_command(name="nowplaying", description="Show the current track")
    async def nowplaying(self, interaction: nextcord.Interaction) -> None:
        await interaction.response.defer(ephemeral=True)
        await self.handle_nowplaying(interaction)

    # ------------------------------------------------------------------
    # Mafic event listeners
    # ------------------------------------------------------------------
    @commands.Cog.listener()
    async def on_track_end(self, event: Any) -> None:
        sink = self._relay_sink(event.player)
        if sink is not None:
            sink.deliver_end(event.reason)

    @commands.Cog.listener()
    async def on_track_exception(self, event: Any) -> None:
        sink = self._relay_sink(event.player)
        if sink is None:
            return
        exception = event.exception
        message = getattr(exception, "message", None) or str(exception)
        self.logger.error(
            "Relay track exception: %s",
            message,
            extra={"guild_id": event.player.guild.id},
        )
        sink.deliver_error(PlaybackError(message))

    @commands.Cog.listener()
    async def on_track_stuck(self, event: Any) -> None:
        sink = self._relay_sink(event.player)
        if sink is None:
            return
        threshold = getattr(event, "threshold", None)
        self.logger.warning(
            "Relay track stuck at %s ms",
            threshold,
            extra={"guild_id": event.player.guild.id},
        )
        sink.deliver_error(PlaybackError(f"Track stuck after {threshold} ms"))


def setup(bot: commands.Bot) -> None:
    bot.add_cog(Music(bot))
