"""Wire the music engine together from configuration."""

from __future__ import annotations

import logging
from typing import List, Optional

from guildtune.config import Config

from .auth import AuthTokenManager
from .cookies import CookieManager
from .embeds import EmbedFactory
from .manager import GuildMusicManager
from .metrics import PlaybackMetrics
from .providers import Provider
from .providers.lavalink import LavalinkAudioBackend, LavalinkProvider
from .providers.soundcloud import SoundCloudProvider
from .providers.ytdlp import YtDlpProvider
from .registry import GuildQueueRegistry
from .resolver import ProviderResolver
from .voice import NextcordVoiceConnector, VoiceConnector

__all__ = ["MusicService"]


class MusicService:
    """Shared, process-wide pieces of the music engine.

    Guilds only share the resolver, the credential manager and the metrics;
    everything else lives in the per-guild manager handed out by
    :attr:`registry`.
    """

    def __init__(
        self,
        resolver: ProviderResolver,
        connector: VoiceConnector,
        *,
        auth: Optional[AuthTokenManager] = None,
        relay: Optional[LavalinkAudioBackend] = None,
        embeds: Optional[EmbedFactory] = None,
        metrics: Optional[PlaybackMetrics] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.resolver = resolver
        self.connector = connector
        self.auth = auth
        self.relay = relay
        self.embeds = embeds or EmbedFactory()
        self.metrics = metrics or PlaybackMetrics()
        self.logger = logger or logging.getLogger("guildtune.music")
        self.registry = GuildQueueRegistry(self._create_manager)

    def _create_manager(self, guild_id: int) -> GuildMusicManager:
        self.logger.debug("Creating music manager", extra={"guild_id": guild_id})
        return GuildMusicManager(
            guild_id,
            self.resolver,
            self.connector,
            embeds=self.embeds,
            metrics=self.metrics,
            logger=self.logger.getChild("manager"),
        )

    @classmethod
    def from_config(cls, bot, *, logger: Optional[logging.Logger] = None) -> "MusicService":
        logger = logger or logging.getLogger("guildtune.music")
        metrics = PlaybackMetrics()

        soundcloud = SoundCloudProvider(
            timeout=Config.HTTP_TIMEOUT, logger=logger.getChild("soundcloud")
        )
        auth = AuthTokenManager(
            operator_token=Config.SOUNDCLOUD_CLIENT_ID,
            fetch_free_token=soundcloud.fetch_free_client_id,
            validate=soundcloud.validate_client_id,
            timeout=Config.AUTH_TIMEOUT,
            metrics=metrics,
            logger=logger.getChild("auth"),
        )
        soundcloud.auth = auth

        fallbacks: List[Provider] = [
            YtDlpProvider(
                cookies=CookieManager(), metrics=metrics, logger=logger.getChild("ytdlp")
            )
        ]
        relay: Optional[LavalinkAudioBackend] = None
        if Config.relay_enabled():
            relay = LavalinkAudioBackend(bot, logger=logger.getChild("lavalink"))
            fallbacks.append(LavalinkProvider(relay))

        resolver = ProviderResolver(
            soundcloud,
            fallbacks,
            auth=auth,
            search_limit=Config.SEARCH_LIMIT,
            metrics=metrics,
            logger=logger.getChild("resolver"),
        )
        connector = NextcordVoiceConnector(
            bot, relay=relay, logger=logger.getChild("voice")
        )
        return cls(
            resolver,
            connector,
            auth=auth,
            relay=relay,
            metrics=metrics,
            logger=logger,
        )

    def warm_up(self) -> None:
        if self.auth is not None:
            self.auth.warm_up()

    async def shutdown(self) -> None:
        for manager in self.registry.managers():
            try:
                await manager.leave()
            except Exception as exc:
                self.logger.warning(
                    "Failed to leave guild during shutdown",
                    extra={"guild_id": manager.guild_id, "error": str(exc)},
                )
        if self.relay is not None:
            await self.relay.close()
        self.logger.info("Playback metrics at shutdown", extra=self.metrics.snapshot())
