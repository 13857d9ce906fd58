"""Resolve tracks across providers with credential self-healing and fallback."""

from __future__ import annotations

import logging
import time
from typing import Awaitable, Callable, List, Optional, Sequence, TypeVar

from .auth import AuthTokenManager
from .errors import (
    AuthError,
    ProviderExhausted,
    ProviderUnavailable,
    ResolutionError,
    ResolutionNotFound,
)
from .metrics import PlaybackMetrics
from .providers import Provider
from .tracks import StreamHandle, Track

__all__ = ["ProviderResolver"]

T = TypeVar("T")


class ProviderResolver:
    """Try the token-gated primary first, then each fallback in order.

    Only availability-class failures (:class:`ProviderUnavailable` and its
    subclasses) move resolution along the chain. Anything else is raised as a
    :class:`ResolutionError` straight away.
    """

    def __init__(
        self,
        primary: Optional[Provider],
        fallbacks: Sequence[Provider] = (),
        *,
        auth: Optional[AuthTokenManager] = None,
        search_limit: int = 5,
        metrics: Optional[PlaybackMetrics] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.primary = primary
        self.fallbacks = list(fallbacks)
        self.auth = auth
        self.search_limit = max(1, search_limit)
        self.metrics = metrics or PlaybackMetrics()
        self.logger = logger or logging.getLogger("guildtune.music.resolver")

    @property
    def providers(self) -> List[Provider]:
        chain: List[Provider] = []
        if self.primary is not None:
            chain.append(self.primary)
        chain.extend(self.fallbacks)
        return chain

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    async def search(
        self,
        query: str,
        *,
        limit: Optional[int] = None,
        requested_by: str = "",
    ) -> List[Track]:
        """Return up to ``limit`` candidates; empty when nobody has a match."""

        query = query.strip()
        if not query:
            return []
        limit = max(1, limit or self.search_limit)

        results: List[Track] = []
        for provider in self.providers:
            try:
                results = await self._call(provider, lambda: provider.search(query, limit))
            except ProviderUnavailable as exc:
                self._record_failure(provider, exc, operation="search", query=query)
                continue
            if results:
                if provider is not self.primary:
                    self.metrics.incr_fallback()
                    self.metrics.record_fallback_source(provider.name)
                break
            self.logger.debug(
                "Provider returned no results",
                extra={"provider": provider.name, "query": query},
            )

        if not results:
            self.logger.info("No results from any provider", extra={"query": query})
            return []
        tracks = results[:limit]
        if requested_by:
            tracks = [track.with_requester(requested_by) for track in tracks]
        return tracks

    async def stream(self, track: Track) -> StreamHandle:
        """Turn ``track`` into a playable handle or raise :class:`ProviderExhausted`."""

        start = time.perf_counter()
        owner = self._owner_of(track)
        last_error: Optional[ResolutionError] = None

        if owner is not None:
            try:
                handle = await self._call(owner, lambda: owner.stream(track))
            except ProviderUnavailable as exc:
                self._record_failure(owner, exc, operation="stream", query=track.url)
                last_error = exc
            else:
                self.metrics.observe_startup((time.perf_counter() - start) * 1000)
                return handle

        query = track.composed_query
        for provider in self.providers:
            if provider is owner:
                continue
            try:
                candidates = await self._call(provider, lambda: provider.search(query, 1))
                if not candidates:
                    raise ResolutionNotFound(
                        f"{provider.name} has no match for {query!r}",
                        provider=provider.name,
                    )
                candidate = candidates[0].with_requester(track.requested_by)
                handle = await self._call(provider, lambda: provider.stream(candidate))
            except ProviderUnavailable as exc:
                self._record_failure(provider, exc, operation="fallback", query=query)
                last_error = exc
                continue

            self.metrics.incr_fallback()
            self.metrics.record_fallback_source(provider.name)
            self.metrics.observe_startup((time.perf_counter() - start) * 1000)
            self.logger.info(
                "Resolved fallback stream",
                extra={
                    "track_url": track.url,
                    "query": query,
                    "provider": provider.name,
                    "candidate_url": candidate.url,
                },
            )
            return handle

        raise ProviderExhausted(
            f"No provider could stream {track.title!r}",
            provider=owner.name if owner is not None else None,
            cause=last_error,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _owner_of(self, track: Track) -> Optional[Provider]:
        for provider in self.providers:
            if provider.name == track.provider:
                return provider
        return None

    async def _call(self, provider: Provider, operation: Callable[[], Awaitable[T]]) -> T:
        if provider is self.primary and self.auth is not None:
            return await self._call_primary(provider, self.auth, operation)
        return await self._guard(provider, operation)

    async def _call_primary(
        self,
        provider: Provider,
        auth: AuthTokenManager,
        operation: Callable[[], Awaitable[T]],
    ) -> T:
        if not await auth.ensure_valid():
            raise AuthError("No credential available", provider=provider.name)
        token = auth.token
        try:
            return await self._guard(provider, operation)
        except (AuthError, ResolutionNotFound) as exc:
            self.logger.warning(
                "Primary provider rejected request; forcing credential refresh",
                extra={"provider": provider.name, "error": str(exc)},
            )
            auth.invalidate(str(exc), rejected=token)
            if not await auth.ensure_valid(force=True, rejected=token):
                raise AuthError(
                    "Credential refresh failed", provider=provider.name, cause=exc
                ) from exc
        return await self._guard(provider, operation)

    async def _guard(self, provider: Provider, operation: Callable[[], Awaitable[T]]) -> T:
        try:
            return await operation()
        except ResolutionError:
            raise
        except Exception as exc:
            raise ResolutionError(
                f"{provider.name} failed: {exc}", provider=provider.name, cause=exc
            ) from exc

    def _record_failure(
        self,
        provider: Provider,
        exc: ResolutionError,
        *,
        operation: str,
        query: str,
    ) -> None:
        self.metrics.record_provider_failure(provider.name, type(exc).__name__)
        self.logger.warning(
            "Provider unavailable; trying next",
            extra={
                "provider": provider.name,
                "operation": operation,
                "query": query,
                "error": str(exc),
            },
        )
