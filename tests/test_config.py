import importlib
import logging

import pytest


def _reload():
    import guildtune.config as config

    return importlib.reload(config)


def test_config_validate_missing_env(monkeypatch):
    monkeypatch.delenv("DISCORD_TOKEN", raising=False)
    monkeypatch.delenv("DISCORD_BOT_TOKEN", raising=False)
    config = _reload()

    with pytest.raises(SystemExit):
        config.Config.validate()


def test_config_validate_pass(monkeypatch):
    monkeypatch.setenv("DISCORD_TOKEN", "token")
    monkeypatch.delenv("MUSIC_RELAY", raising=False)
    config = _reload()

    config.Config.validate()


def test_relay_requires_lavalink_settings(monkeypatch):
    monkeypatch.setenv("DISCORD_TOKEN", "token")
    monkeypatch.setenv("MUSIC_RELAY", "lavalink")
    monkeypatch.delenv("LAVALINK_HOST", raising=False)
    monkeypatch.delenv("LAVALINK_PASSWORD", raising=False)
    config = _reload()

    assert config.Config.relay_enabled()
    with pytest.raises(SystemExit):
        config.Config.validate()


def test_music_defaults(monkeypatch):
    for name in (
        "MUSIC_SEARCH_LIMIT",
        "MUSIC_HTTP_TIMEOUT",
        "MUSIC_AUTH_TIMEOUT",
        "MUSIC_RELAY",
        "SOUNDCLOUD_CLIENT_ID",
    ):
        monkeypatch.delenv(name, raising=False)
    config = _reload()

    assert config.Config.SEARCH_LIMIT == 5
    assert config.Config.HTTP_TIMEOUT == 10.0
    assert config.Config.AUTH_TIMEOUT == 15.0
    assert config.Config.SOUNDCLOUD_CLIENT_ID == ""
    assert not config.Config.relay_enabled()


def test_invalid_search_limit_logs_warning(monkeypatch, caplog):
    monkeypatch.setenv("MUSIC_SEARCH_LIMIT", "lots")

    with caplog.at_level(logging.WARNING):
        config = _reload()

    assert config.Config.SEARCH_LIMIT == 5
    assert any("Invalid MUSIC_SEARCH_LIMIT" in r.message for r in caplog.records)


def test_invalid_guild_id_logs_warning(monkeypatch, caplog):
    monkeypatch.setenv("GUILD_ID", "abc")

    with caplog.at_level(logging.WARNING):
        config = _reload()

    assert config.Config.GUILD_ID is None
    assert any("Invalid GUILD_ID" in r.message for r in caplog.records)


def test_default_lavalink_port_when_unset(monkeypatch):
    monkeypatch.delenv("LAVALINK_PORT", raising=False)
    config = _reload()

    assert config.Config.LAVALINK_PORT == config.DEFAULT_LAVALINK_PORT


def test_lavalink_connection_info_reads_runtime_overrides(monkeypatch):
    config = _reload()
    monkeypatch.setenv("LAVALINK_HOST", "lavalink.internal")
    monkeypatch.setenv("LAVALINK_PORT", "2444")
    monkeypatch.setenv("LAVALINK_PASSWORD", "secret")
    monkeypatch.setenv("LAVALINK_SSL", "true")

    assert config.get_lavalink_connection_info() == ("lavalink.internal", 2444, "secret", True)
