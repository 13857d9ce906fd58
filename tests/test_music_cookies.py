import os

from guildtune.music.cookies import CookieManager


def _clear_env(monkeypatch):
    for name in ("YT_COOKIES_FILE", "YTDLP_COOKIES_FILE", "YTDLP_COOKIES_PATH"):
        monkeypatch.delenv(name, raising=False)


def test_cookie_manager_tracks_file(tmp_path, monkeypatch):
    _clear_env(monkeypatch)
    cookie_file = tmp_path / "cookies.txt"
    cookie_file.write_text("# Netscape cookies\n")
    os.utime(cookie_file, (1_000_000, 1_000_000))

    monkeypatch.setenv("YT_COOKIES_FILE", str(cookie_file))
    manager = CookieManager()

    assert manager.cookie_file() == cookie_file.resolve()
    age = manager.cookie_age_seconds()
    assert age is not None and age > 0
    opts = manager.yt_dlp_options()
    assert opts["cookiefile"] == str(cookie_file.resolve())
    assert opts["format"] == "bestaudio/best"
    assert opts["noplaylist"] is True


def test_cookie_manager_handles_missing_file(tmp_path, monkeypatch):
    _clear_env(monkeypatch)
    missing = tmp_path / "missing.txt"
    monkeypatch.setenv("YT_COOKIES_FILE", str(missing))
    manager = CookieManager()

    assert manager.cookie_file() == missing.resolve()
    assert manager.cookie_age_seconds() is None
    assert "cookiefile" not in manager.yt_dlp_options()


def test_cookie_manager_reads_alias_variables(tmp_path, monkeypatch):
    _clear_env(monkeypatch)
    cookie_file = tmp_path / "alias.txt"
    cookie_file.write_text("# Netscape cookies\n")
    monkeypatch.setenv("YTDLP_COOKIES_PATH", str(cookie_file))

    assert CookieManager().cookie_file() == cookie_file.resolve()


def test_cookie_manager_without_configuration(monkeypatch):
    _clear_env(monkeypatch)
    manager = CookieManager()

    assert manager.cookie_file() is None
    assert manager.cookie_age_seconds() is None
    assert "cookiefile" not in manager.yt_dlp_options()
