"""Tests for layered configuration."""

import pytest

from idbbrowser.utils.config_utils import Config


def test_defaults():
    config = Config()
    assert config.get("row_store.flush_delay") == 0.1
    assert config["browser.abort_superseded_loads"] is True
    assert config.get("missing.key", "fallback") == "fallback"
    assert "profile.storage_roots" in config
    with pytest.raises(KeyError):
        config["profile.missing"]


def test_file_then_environment(tmp_path, monkeypatch):
    path = tmp_path / "browser.toml"
    path.write_text(
        '[row_store]\nflush_delay = 0.5\n\n[profile]\ndirectory = "/profiles/a"\n',
        encoding="utf-8",
    )
    monkeypatch.setenv("IDBBROWSER_PROFILE_DIRECTORY", "/profiles/b")
    monkeypatch.setenv("IDBBROWSER_BROWSER_ABORT_SUPERSEDED_LOADS", "no")
    monkeypatch.setenv("IDBBROWSER_ORIGIN_DRIVE_LETTERS", "true")

    config = Config.load(path)

    assert config.get("row_store.flush_delay") == 0.5
    assert config.get("profile.directory") == "/profiles/b"
    assert config.get("browser.abort_superseded_loads") is False
    assert config.get("origin.drive_letters") is True


def test_list_values_from_environment(monkeypatch):
    monkeypatch.delenv("IDBBROWSER_CONFIG", raising=False)
    monkeypatch.setenv("IDBBROWSER_PROFILE_STORAGE_ROOTS", '["a", "b/c"]')
    assert Config.load().get("profile.storage_roots") == ["a", "b/c"]

    monkeypatch.setenv("IDBBROWSER_PROFILE_STORAGE_ROOTS", "x, y")
    assert Config.load().get("profile.storage_roots") == ["x", "y"]


def test_defaults_are_not_shared():
    first = Config()
    first.as_dict()["logging"]["level"] = "DEBUG"
    Config({"logging": {"level": "ERROR"}})
    assert Config().get("logging.level") == "INFO"
