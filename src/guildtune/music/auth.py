"""Credential management for the token-gated primary provider."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional

from .metrics import PlaybackMetrics

__all__ = ["AuthTokenManager", "OPERATOR_SOURCE", "FREE_SOURCE"]

OPERATOR_SOURCE = "operator"
FREE_SOURCE = "free"

TokenFetcher = Callable[[], Awaitable[Optional[str]]]
TokenValidator = Callable[[str], Awaitable[bool]]


class AuthTokenManager:
    """Hold one credential and refresh it with single-flight semantics.

    The operator-supplied credential is tried first, then a dynamically issued
    free one. A forced refresh moves the last successful source to the back so
    a broken credential is not retried first. Concurrent callers share the
    in-flight refresh and all observe its result.
    """

    def __init__(
        self,
        *,
        operator_token: Optional[str] = None,
        fetch_free_token: Optional[TokenFetcher] = None,
        validate: Optional[TokenValidator] = None,
        timeout: float = 15.0,
        metrics: Optional[PlaybackMetrics] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._operator_token = (operator_token or "").strip() or None
        self._fetch_free_token = fetch_free_token
        self._validate = validate
        self.timeout = timeout
        self.metrics = metrics or PlaybackMetrics()
        self.logger = logger or logging.getLogger("guildtune.music.auth")

        self._token: Optional[str] = None
        self._source: Optional[str] = None
        self._valid = False
        self._inflight: Optional[asyncio.Task[bool]] = None
        self._warmup: Optional[asyncio.Task[bool]] = None

    @property
    def token(self) -> Optional[str]:
        return self._token if self._valid else None

    @property
    def source(self) -> Optional[str]:
        return self._source

    @property
    def is_valid(self) -> bool:
        return self._valid

    @property
    def refreshing(self) -> bool:
        return self._inflight is not None

    def is_stale(self, rejected: Optional[str]) -> bool:
        """True when ``rejected`` is no longer the credential being handed out."""

        return rejected is not None and rejected != self._token

    def invalidate(self, reason: Optional[str] = None, *, rejected: Optional[str] = None) -> None:
        if self.is_stale(rejected):
            self.logger.debug(
                "Ignoring rejection of a superseded credential",
                extra={"source": self._source, "reason": reason},
            )
            return
        if self._valid:
            self.logger.info(
                "Credential invalidated",
                extra={"source": self._source, "reason": reason},
            )
        self._valid = False

    def warm_up(self) -> "asyncio.Task[bool]":
        """Start a background refresh without blocking the caller."""

        if self._warmup is None or self._warmup.done():
            self._warmup = asyncio.get_running_loop().create_task(self.ensure_valid())
        return self._warmup

    async def ensure_valid(self, force: bool = False, *, rejected: Optional[str] = None) -> bool:
        """Return True when a usable credential is available.

        Never raises. A failed refresh leaves the manager invalid and every
        waiter receives False. A forced refresh on behalf of a ``rejected``
        credential that has already been replaced does nothing, so a late
        rejection never discards the newer credential or rotates sources.
        """

        inflight = self._inflight
        if inflight is not None:
            return await asyncio.shield(inflight)
        if self._valid and (not force or self.is_stale(rejected)):
            return True

        task = asyncio.get_running_loop().create_task(self._refresh(force=force))
        self._inflight = task
        return await asyncio.shield(task)

    # ------------------------------------------------------------------
    def _source_order(self, force: bool) -> List[str]:
        order: List[str] = []
        if self._operator_token:
            order.append(OPERATOR_SOURCE)
        if self._fetch_free_token is not None:
            order.append(FREE_SOURCE)
        if force and self._source in order and len(order) > 1:
            order.remove(self._source)
            order.append(self._source)
        return order

    async def _refresh(self, *, force: bool) -> bool:
        try:
            self._valid = False
            for source in self._source_order(force):
                try:
                    token = await asyncio.wait_for(
                        self._acquire(source), timeout=self.timeout
                    )
                except asyncio.TimeoutError:
                    self.logger.warning(
                        "Credential acquisition timed out", extra={"source": source}
                    )
                    continue
                except Exception as exc:
                    self.logger.warning(
                        "Credential acquisition failed",
                        extra={"source": source, "error": str(exc)},
                    )
                    continue
                if not token:
                    continue
                self._token = token
                self._source = source
                self._valid = True
                self.metrics.incr_auth_refresh(success=True)
                self.logger.info(
                    "Credential refreshed", extra={"source": source, "forced": force}
                )
                return True

            self._token = None
            self.metrics.incr_auth_refresh(success=False)
            self.logger.error("No usable credential available", extra={"forced": force})
            return False
        finally:
            self._inflight = None

    async def _acquire(self, source: str) -> Optional[str]:
        if source == OPERATOR_SOURCE:
            token = self._operator_token
        elif self._fetch_free_token is not None:
            token = await self._fetch_free_token()
        else:
            return None
        if not token:
            return None
        if self._validate is not None and not await self._validate(token):
            self.logger.warning("Credential rejected by provider", extra={"source": source})
            return None
        return token
