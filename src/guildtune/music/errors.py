"""Error taxonomy for the music subsystem."""

from __future__ import annotations

from typing import Optional

__all__ = [
    "MusicError",
    "VoiceConnectionError",
    "ResolutionError",
    "ProviderUnavailable",
    "AuthError",
    "ResolutionNotFound",
    "RelayUnavailable",
    "ProviderExhausted",
    "PlaybackError",
]


class MusicError(RuntimeError):
    """Base class for every music failure."""


class VoiceConnectionError(MusicError):
    """Raised when a voice sink cannot be attached."""


class ResolutionError(MusicError):
    """Raised when a provider fails to resolve a query or a track."""

    def __init__(
        self,
        message: str,
        *,
        provider: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message)
        self.provider = provider
        self.__cause__ = cause
        self.cause = cause


class ProviderUnavailable(ResolutionError):
    """Auth or availability failure; the resolver may fall back."""


class AuthError(ProviderUnavailable):
    """Credential rejected or expired."""


class ResolutionNotFound(ProviderUnavailable):
    """The provider has no such track."""


class RelayUnavailable(ProviderUnavailable):
    """The Lavalink relay node is not ready."""


class ProviderExhausted(ResolutionError):
    """Every provider in the chain failed for a track."""


class PlaybackError(MusicError):
    """The sink failed while starting or streaming audio."""

    def __init__(self, message: str, *, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.__cause__ = cause
        self.cause = cause
