"""Audio providers that the resolver chains together."""

from __future__ import annotations

from typing import List, Protocol

from ..tracks import StreamHandle, Track

__all__ = ["Provider", "is_url"]


class Provider(Protocol):
    """Anything that can search for tracks and turn a track into a stream."""

    name: str

    async def search(self, query: str, limit: int) -> List[Track]:
        ...

    async def stream(self, track: Track) -> StreamHandle:
        ...


def is_url(query: str) -> bool:
    return query.strip().lower().startswith(("http://", "https://"))
