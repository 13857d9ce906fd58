import aiohttp
import pytest

from guildtune.music.auth import AuthTokenManager
from guildtune.music.errors import AuthError, ProviderUnavailable, ResolutionError, ResolutionNotFound
from guildtune.music.providers import soundcloud as soundcloud_module
from guildtune.music.providers.soundcloud import SoundCloudProvider
from guildtune.music.tracks import Track


class _FakeResponse:
    def __init__(self, status: int, payload: object = None, text: str = ""):
        self.status = status
        self._payload = payload
        self._text = text

    async def __aenter__(self) -> "_FakeResponse":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        return False

    async def json(self, content_type=None):
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload

    async def text(self):
        return self._text


class _FakeSession:
    def __init__(self, responses, requests):
        self._responses = responses
        self._requests = requests

    async def __aenter__(self) -> "_FakeSession":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        return False

    def get(self, url, params=None, **kwargs):
        self._requests.append((url, dict(params or {})))
        if not self._responses:
            raise AssertionError(f"unexpected request to {url}")
        response = self._responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def install_session(monkeypatch, *responses):
    queue = list(responses)
    requests = []

    def _factory(*_args, **_kwargs):
        return _FakeSession(queue, requests)

    monkeypatch.setattr(soundcloud_module.aiohttp, "ClientSession", _factory)
    return requests


async def make_provider(token="client-123"):
    auth = AuthTokenManager(operator_token=token)
    await auth.ensure_valid()
    return SoundCloudProvider(auth=auth)


def api_track(**overrides):
    item = {
        "id": 42,
        "title": "Midnight City",
        "permalink_url": "https://soundcloud.com/m83/midnight-city",
        "full_duration": 243_000,
        "duration": 30_000,
        "artwork_url": "https://i1.sndcdn.com/art.jpg",
        "track_authorization": "auth-token",
        "user": {"username": "M83"},
        "media": {
            "transcodings": [
                {
                    "url": "https://api-v2.soundcloud.com/media/42/hls",
                    "format": {"protocol": "hls"},
                },
                {
                    "url": "https://api-v2.soundcloud.com/media/42/progressive",
                    "format": {"protocol": "progressive"},
                },
            ]
        },
    }
    item.update(overrides)
    return item


@pytest.mark.asyncio
async def test_search_maps_collection(monkeypatch):
    requests = install_session(
        monkeypatch,
        _FakeResponse(200, {"collection": [api_track(), {"id": 7}]}),
    )
    provider = await make_provider()

    tracks = await provider.search("midnight city", 5)

    url, params = requests[0]
    assert url == "https://api-v2.soundcloud.com/search/tracks"
    assert params == {"q": "midnight city", "limit": "5", "client_id": "client-123"}
    assert len(tracks) == 1
    track = tracks[0]
    assert track.title == "Midnight City"
    assert track.author == "M83"
    assert track.duration_ms == 243_000
    assert track.provider == "soundcloud"
    assert track.playable["track_authorization"] == "auth-token"


@pytest.mark.asyncio
async def test_search_ignores_foreign_urls(monkeypatch):
    requests = install_session(monkeypatch)
    provider = await make_provider()

    assert await provider.search("https://www.youtube.com/watch?v=abc", 5) == []
    assert requests == []


@pytest.mark.asyncio
async def test_search_resolves_soundcloud_urls(monkeypatch):
    requests = install_session(monkeypatch, _FakeResponse(200, dict(api_track(), kind="track")))
    provider = await make_provider()

    tracks = await provider.search("https://soundcloud.com/m83/midnight-city", 5)

    assert requests[0][0] == "https://api-v2.soundcloud.com/resolve"
    assert tracks[0].url == "https://soundcloud.com/m83/midnight-city"


@pytest.mark.asyncio
async def test_stream_prefers_progressive_transcoding(monkeypatch):
    requests = install_session(
        monkeypatch,
        _FakeResponse(200, {"collection": [api_track()]}),
        _FakeResponse(200, {"url": "https://cf-media.sndcdn.com/stream.mp3"}),
    )
    provider = await make_provider()
    track = (await provider.search("midnight city", 1))[0]

    handle = await provider.stream(track)

    url, params = requests[1]
    assert url == "https://api-v2.soundcloud.com/media/42/progressive"
    assert params["track_authorization"] == "auth-token"
    assert handle.url == "https://cf-media.sndcdn.com/stream.mp3"
    assert handle.provider == "soundcloud"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status, expected",
    [
        (401, AuthError),
        (403, AuthError),
        (404, ResolutionNotFound),
        (429, ProviderUnavailable),
        (503, ProviderUnavailable),
    ],
)
async def test_http_statuses_map_to_errors(monkeypatch, status, expected):
    install_session(monkeypatch, _FakeResponse(status))
    provider = await make_provider()

    with pytest.raises(expected):
        await provider.search("song", 1)


@pytest.mark.asyncio
async def test_unexpected_status_is_not_an_availability_error(monkeypatch):
    install_session(monkeypatch, _FakeResponse(400))
    provider = await make_provider()

    with pytest.raises(ResolutionError) as excinfo:
        await provider.search("song", 1)
    assert not isinstance(excinfo.value, ProviderUnavailable)


@pytest.mark.asyncio
async def test_missing_collection_is_malformed(monkeypatch):
    install_session(monkeypatch, _FakeResponse(200, {"errors": []}))
    provider = await make_provider()

    with pytest.raises(ResolutionError):
        await provider.search("song", 1)


@pytest.mark.asyncio
async def test_network_failure_is_unavailable(monkeypatch):
    install_session(monkeypatch, aiohttp.ClientConnectionError("reset"))
    provider = await make_provider()

    with pytest.raises(ProviderUnavailable) as excinfo:
        await provider.search("song", 1)
    assert isinstance(excinfo.value.cause, aiohttp.ClientConnectionError)


@pytest.mark.asyncio
async def test_requests_without_credential_raise_auth_error(monkeypatch):
    requests = install_session(monkeypatch)
    provider = SoundCloudProvider(auth=AuthTokenManager())

    with pytest.raises(AuthError):
        await provider.search("song", 1)
    assert requests == []


@pytest.mark.asyncio
async def test_stream_without_transcodings_re_resolves(monkeypatch):
    install_session(
        monkeypatch,
        _FakeResponse(200, {"kind": "playlist", "tracks": []}),
    )
    provider = await make_provider()
    track = Track(url="https://soundcloud.com/m83/gone", provider="soundcloud")

    with pytest.raises(ResolutionNotFound):
        await provider.stream(track)


@pytest.mark.asyncio
async def test_fetch_free_client_id_scrapes_bundles(monkeypatch):
    html = (
        '<script crossorigin src="https://a-v2.sndcdn.com/assets/0-aaa.js"></script>'
        '<script crossorigin src="https://a-v2.sndcdn.com/assets/1-bbb.js"></script>'
    )
    requests = install_session(
        monkeypatch,
        _FakeResponse(200, text=html),
        _FakeResponse(200, text='({client_id:"AbCdEfGhIjKlMnOpQrStUvWx12345678"})'),
    )
    provider = SoundCloudProvider()

    client_id = await provider.fetch_free_client_id()

    assert client_id == "AbCdEfGhIjKlMnOpQrStUvWx12345678"
    assert requests[1][0] == "https://a-v2.sndcdn.com/assets/1-bbb.js"


@pytest.mark.asyncio
async def test_fetch_free_client_id_returns_none_without_match(monkeypatch):
    install_session(
        monkeypatch,
        _FakeResponse(200, text='<script src="https://a-v2.sndcdn.com/assets/0.js"></script>'),
        _FakeResponse(200, text="nothing to see"),
    )
    provider = SoundCloudProvider()

    assert await provider.fetch_free_client_id() is None


@pytest.mark.asyncio
async def test_validate_client_id(monkeypatch):
    install_session(monkeypatch, _FakeResponse(200), _FakeResponse(401))
    provider = SoundCloudProvider()

    assert await provider.validate_client_id("good") is True
    assert await provider.validate_client_id("bad") is False
