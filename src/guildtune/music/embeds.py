"""Structured playback notices and their nextcord rendering."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Sequence, Tuple

import nextcord

from .tracks import Track, format_duration

__all__ = ["Notice", "NoticeField", "EmbedFactory"]


@dataclass(frozen=True)
class NoticeField:
    name: str
    value: str
    inline: bool = True


@dataclass(frozen=True)
class Notice:
    """A presentation-neutral status message for a text channel."""

    title: str
    description: str = ""
    thumbnail: Optional[str] = None
    fields: Tuple[NoticeField, ...] = field(default_factory=tuple)
    footer: Optional[str] = None
    color: int = 0x5865F2

    def field_value(self, name: str) -> Optional[str]:
        for item in self.fields:
            if item.name == name:
                return item.value
        return None


def _link(track: Track) -> str:
    if track.url:
        return f"**[{track.title}]({track.url})**"
    return f"**{track.title}**"


def _requested(track: Track) -> Optional[str]:
    return f"Requested by {track.requested_by}" if track.requested_by else None


class EmbedFactory:
    """Create notices for playback events and render them as embeds."""

    def __init__(
        self,
        *,
        color: int = 0x5865F2,
        playing_color: int = 0x10B981,
        failure_color: int = 0xFF5555,
    ) -> None:
        self.color = color
        self.playing_color = playing_color
        self.failure_color = failure_color

    def now_playing(self, track: Track, *, provider: Optional[str] = None) -> Notice:
        fields = [
            NoticeField("Artist", track.author or "Unknown"),
            NoticeField("Duration", format_duration(track.duration_ms)),
        ]
        if provider and provider != track.provider:
            fields.append(NoticeField("Source", provider))
        return Notice(
            title="🎶 Now Playing",
            description=_link(track),
            thumbnail=track.thumbnail,
            fields=tuple(fields),
            footer=_requested(track),
            color=self.playing_color,
        )

    def queued(self, track: Track, *, position: int) -> Notice:
        return Notice(
            title="✅ Added to queue",
            description=f"{_link(track)} has been added to the queue.",
            thumbnail=track.thumbnail,
            fields=(
                NoticeField("Duration", format_duration(track.duration_ms)),
                NoticeField("Position", f"#{position}"),
            ),
            footer=_requested(track),
            color=self.color,
        )

    def failure(self, track: Optional[Track], error: BaseException) -> Notice:
        if track is None:
            description = f"Playback failed: {error}"
        else:
            description = f"Could not play {_link(track)}: {error}"
        return Notice(
            title="❌ Playback failed",
            description=description,
            color=self.failure_color,
        )

    def not_found(self, query: str) -> Notice:
        return Notice(
            title="🔍 Nothing found",
            description=f"No results for `{query}`.",
            color=self.failure_color,
        )

    def queue_overview(
        self,
        current: Optional[Track],
        upcoming: Sequence[Track],
        *,
        total_ms: int = 0,
        limit: int = 10,
    ) -> Notice:
        lines = []
        for index, track in enumerate(upcoming[:limit], start=1):
            lines.append(f"`{index}.` {track.title} ({format_duration(track.duration_ms)})")
        if len(upcoming) > limit:
            lines.append(f"…and {len(upcoming) - limit} more")
        fields = []
        if current is not None:
            fields.append(NoticeField("Now Playing", _link(current), inline=False))
        footer = None
        if upcoming and total_ms > 0:
            footer = f"{len(upcoming)} queued, {format_duration(total_ms)} total"
        return Notice(
            title="Queue",
            description="\n".join(lines) or "Queue is empty.",
            fields=tuple(fields),
            footer=footer,
            color=self.color,
        )

    def render(self, notice: Notice) -> nextcord.Embed:
        embed = nextcord.Embed(
            title=notice.title, description=notice.description, color=notice.color
        )
        if notice.thumbnail:
            embed.set_thumbnail(url=notice.thumbnail)
        for item in notice.fields:
            embed.add_field(name=item.name, value=item.value, inline=item.inline)
        if notice.footer:
            embed.set_footer(text=notice.footer)
        return embed
