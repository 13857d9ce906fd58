import asyncio
import os

import pytest

os.environ["MAFIC_LIBRARY"] = "nextcord"

from guildtune.cogs import music as music_cog
from guildtune.music.errors import VoiceConnectionError
from guildtune.music.resolver import ProviderResolver
from guildtune.music.service import MusicService
from guildtune.music.session import RelaySink
from guildtune.music.tracks import StreamHandle, Track


class DummyProvider:
    name = "soundcloud"

    def __init__(self, results):
        self.results = results

    async def search(self, query, limit):
        return list(self.results)[:limit]

    async def stream(self, track):
        return StreamHandle(track=track, provider=self.name, url="https://cdn/a.mp3")


class DummySink:
    def __init__(self):
        self.callbacks = []
        self.released = False

    @property
    def connected(self):
        return True

    async def start(self, handle, on_finish):
        self.callbacks.append(on_finish)

    async def halt(self):
        return None

    async def release(self):
        self.released = True


class DummyConnector:
    def __init__(self, sink=None, error=None):
        self.sink = sink or DummySink()
        self.error = error
        self.calls = []

    async def connect(self, guild_id, channel_id):
        self.calls.append((guild_id, channel_id))
        if self.error is not None:
            raise self.error
        return self.sink


class DummyFollowup:
    def __init__(self):
        self.sent = []

    async def send(self, *args, **kwargs):
        self.sent.append((args, kwargs))


class DummyTextChannel:
    def __init__(self):
        self.embeds = []

    async def send(self, *, embed):
        self.embeds.append(embed)


class DummyUser:
    def __init__(self, channel_id=None):
        voice_channel = type("VoiceChannel", (), {"id": channel_id})() if channel_id else None
        self.voice = type("VoiceState", (), {"channel": voice_channel})() if channel_id else None

    def __str__(self):
        return "alice"


def make_interaction(channel_id=10, guild_id=1):
    response = type("Response", (), {"is_done": lambda self: True})()
    return type(
        "Interaction",
        (),
        {
            "guild": type("Guild", (), {"id": guild_id})(),
            "user": DummyUser(channel_id),
            "channel": DummyTextChannel(),
            "response": response,
            "followup": DummyFollowup(),
        },
    )()


def make_cog(results=None, connector=None):
    track = Track(
        url="https://soundcloud.com/m83/midnight-city",
        title="Midnight City",
        author="M83",
        duration_ms=244_000,
        provider="soundcloud",
    )
    resolver = ProviderResolver(DummyProvider([track] if results is None else results))
    service = MusicService(resolver, connector or DummyConnector())
    return music_cog.Music(object(), service=service), service


def replies(interaction):
    return [args[0] if args else kwargs.get("embed") for args, kwargs in interaction.followup.sent]


@pytest.mark.asyncio
async def test_play_joins_and_starts_first_result():
    cog, service = make_cog()
    interaction = make_interaction()

    await cog.handle_play(interaction, "midnight city")

    manager = service.registry.get(1)
    assert manager.current_track.title == "Midnight City"
    assert manager.current_track.requested_by == "alice"
    assert service.connector.calls == [(1, 10)]
    assert replies(interaction) == ["Starting **Midnight City**."]
    await manager.leave()


@pytest.mark.asyncio
async def test_play_second_track_reports_position():
    cog, service = make_cog()
    await cog.handle_play(make_interaction(), "midnight city")
    interaction = make_interaction()

    await cog.handle_play(interaction, "midnight city")

    assert replies(interaction) == ["Queued **Midnight City** at #1."]
    await service.registry.get(1).leave()


@pytest.mark.asyncio
async def test_play_requires_voice_channel():
    cog, service = make_cog()
    interaction = make_interaction(channel_id=None)

    await cog.handle_play(interaction, "midnight city")

    assert replies(interaction) == ["You must join a voice channel first."]
    assert len(service.registry) == 0


@pytest.mark.asyncio
async def test_join_outside_a_guild_is_refused():
    cog, service = make_cog()
    interaction = make_interaction()
    interaction.guild = None

    await cog.handle_join(interaction)

    assert replies(interaction) == ["This command can only be used in guilds."]
    assert len(service.registry) == 0


@pytest.mark.asyncio
async def test_play_with_no_results_sends_not_found():
    cog, service = make_cog(results=[])
    interaction = make_interaction()

    await cog.handle_play(interaction, "zzzz")

    embed = replies(interaction)[0]
    assert embed.title == "🔍 Nothing found"
    assert service.connector.calls == []


@pytest.mark.asyncio
async def test_play_reports_join_failure():
    connector = DummyConnector(error=VoiceConnectionError("Could not join the voice channel"))
    cog, service = make_cog(connector=connector)
    interaction = make_interaction()

    await cog.handle_play(interaction, "midnight city")

    assert replies(interaction) == ["❌ Could not join the voice channel"]
    assert service.registry.get(1).snapshot() == []


@pytest.mark.asyncio
async def test_stop_and_leave_commands():
    cog, service = make_cog()
    await cog.handle_play(make_interaction(), "midnight city")
    manager = service.registry.get(1)

    stop = make_interaction()
    await cog.handle_stop(stop)
    assert manager.current_track is None
    assert replies(stop) == ["Playback stopped and queue cleared."]

    leave = make_interaction()
    await cog.handle_leave(leave)
    assert service.connector.sink.released
    assert manager.session is None


@pytest.mark.asyncio
async def test_leave_without_joining_is_harmless():
    cog, _service = make_cog()
    interaction = make_interaction()

    await cog.handle_leave(interaction)

    assert replies(interaction) == ["Left the voice channel."]


@pytest.mark.asyncio
async def test_queue_and_nowplaying_commands():
    cog, service = make_cog()
    await cog.handle_play(make_interaction(), "midnight city")
    await cog.handle_play(make_interaction(), "midnight city")

    queue = make_interaction()
    await cog.handle_queue(queue)
    overview = replies(queue)[0]
    assert overview.title == "Queue"
    assert "Midnight City" in overview.description
    assert overview.footer.text == "1 queued, 4:04 total"

    now = make_interaction()
    await cog.handle_nowplaying(now)
    assert replies(now)[0].title == "🎶 Now Playing"
    await service.registry.get(1).leave()


@pytest.mark.asyncio
async def test_relay_events_reach_the_sink():
    sink = RelaySink(player=None, backend=None)
    outcomes = []
    sink._on_finish = outcomes.append
    cog, service = make_cog(connector=DummyConnector(sink=sink))
    manager = service.registry.get_or_create(1)
    await manager.join(10)

    player = type("Player", (), {"guild": type("Guild", (), {"id": 1})()})()
    event = type("Event", (), {"player": player, "reason": "FINISHED"})()
    await cog.on_track_end(event)

    assert outcomes == [None]
    await asyncio.sleep(0)
