"""Value types shared by providers, the queue and playback sessions."""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Mapping, Optional

__all__ = [
    "Track",
    "StreamHandle",
    "parse_duration",
    "format_duration",
]


def parse_duration(value: Any, *, unit: str = "s") -> int:
    """Normalise a duration to integer milliseconds.

    Accepts ``"m:ss"``/``"h:mm:ss"`` strings, numeric strings and numbers.
    ``unit`` names the unit of bare numbers (``"s"`` or ``"ms"``).
    """

    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return 0
        if ":" in text:
            total = 0
            for part in text.split(":"):
                try:
                    total = total * 60 + int(part)
                except ValueError:
                    return 0
            return max(0, total) * 1000
        try:
            value = float(text)
        except ValueError:
            return 0
    try:
        numeric = float(value)
    except (TypeError, ValueError):
        return 0
    if numeric <= 0:
        return 0
    if unit == "ms":
        return int(numeric)
    return int(numeric * 1000)


def format_duration(ms: int) -> str:
    seconds = max(0, int(ms // 1000))
    if seconds >= 3600:
        return str(dt.timedelta(seconds=seconds))
    return f"{seconds // 60}:{seconds % 60:02d}"


@dataclass(frozen=True, slots=True)
class Track:
    """Immutable track metadata. Two tracks are equal when their URLs are."""

    url: str
    title: str = field(default="Unknown title", compare=False)
    author: str = field(default="Unknown", compare=False)
    duration_ms: int = field(default=0, compare=False)
    thumbnail: Optional[str] = field(default=None, compare=False)
    requested_by: str = field(default="", compare=False)
    provider: str = field(default="unknown", compare=False)
    playable: Any = field(default=None, compare=False, repr=False)

    @property
    def composed_query(self) -> str:
        """Query used to look the track up on another provider."""

        parts = [self.title.strip()]
        author = self.author.strip()
        if author and author.lower() != "unknown":
            parts.append(author)
        return " ".join(part for part in parts if part)

    @property
    def display_duration(self) -> str:
        return format_duration(self.duration_ms)

    def with_requester(self, requested_by: str) -> "Track":
        return replace(self, requested_by=requested_by)

    @classmethod
    def from_mafic(cls, track: Any, *, requested_by: str = "") -> "Track":
        """Build a track from a Lavalink track object or its info payload."""

        info = getattr(track, "info", None) or {}

        title = getattr(track, "title", None) or info.get("title") or "Unknown title"
        author = getattr(track, "author", None) or info.get("author") or "Unknown"
        length = (
            getattr(track, "length", None)
            or info.get("length")
            or info.get("duration")
            or 0
        )
        uri = getattr(track, "uri", None) or info.get("uri") or ""
        artwork = getattr(track, "artwork_url", None) or info.get("artworkUrl")

        return cls(
            url=str(uri),
            title=str(title),
            author=str(author),
            duration_ms=parse_duration(length, unit="ms"),
            thumbnail=artwork,
            requested_by=requested_by,
            provider="lavalink",
            playable=track,
        )


@dataclass(frozen=True, slots=True)
class StreamHandle:
    """A playable stream for one track.

    ``url`` is a direct media URL that ffmpeg can open. ``relay_track`` is set
    instead when the audio is served by the Lavalink node.
    """

    track: Track
    provider: str
    url: str = ""
    headers: Mapping[str, str] = field(default_factory=dict)
    relay_track: Any = field(default=None, repr=False)

    @property
    def is_relay(self) -> bool:
        return self.relay_track is not None

    def ffmpeg_before_options(self) -> str:
        options = "-reconnect 1 -reconnect_streamed 1 -reconnect_delay_max 5"
        if self.headers:
            header_blob = "".join(f"{key}: {value}\r\n" for key, value in self.headers.items())
            options = f'{options} -headers "{header_blob}"'
        return options

    def describe(self) -> Dict[str, object]:
        return {
            "provider": self.provider,
            "relay": self.is_relay,
            "track_url": self.track.url,
        }
