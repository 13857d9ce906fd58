"""Multi-provider music queue engine for guildtune."""

from .auth import AuthTokenManager
from .cookies import CookieManager
from .embeds import EmbedFactory, Notice, NoticeField
from .errors import (
    AuthError,
    MusicError,
    PlaybackError,
    ProviderExhausted,
    ProviderUnavailable,
    RelayUnavailable,
    ResolutionError,
    ResolutionNotFound,
    VoiceConnectionError,
)
from .logging_config import configure_json_logging
from .manager import GuildMusicManager, PlaybackState
from .metrics import PlaybackMetrics
from .queue import GuildQueue
from .registry import GuildQueueRegistry
from .resolver import ProviderResolver
from .session import EventKind, PlaybackEvent, PlaybackSession, RelaySink, VoiceClientSink
from .tracks import StreamHandle, Track, format_duration, parse_duration

__all__ = [
    "AuthTokenManager",
    "CookieManager",
    "EmbedFactory",
    "Notice",
    "NoticeField",
    "AuthError",
    "MusicError",
    "PlaybackError",
    "ProviderExhausted",
    "ProviderUnavailable",
    "RelayUnavailable",
    "ResolutionError",
    "ResolutionNotFound",
    "VoiceConnectionError",
    "configure_json_logging",
    "GuildMusicManager",
    "PlaybackState",
    "PlaybackMetrics",
    "GuildQueue",
    "GuildQueueRegistry",
    "ProviderResolver",
    "EventKind",
    "PlaybackEvent",
    "PlaybackSession",
    "RelaySink",
    "VoiceClientSink",
    "StreamHandle",
    "Track",
    "format_duration",
    "parse_duration",
]
