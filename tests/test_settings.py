"""Tests for the settings persistence layer."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from feedkeeper.services.settings import Settings, SettingsStore


def test_load_returns_defaults_when_file_missing(tmp_path: Path) -> None:
    store = SettingsStore(tmp_path / "settings.json")

    assert store.load() == Settings()


def test_save_and_load_roundtrip(tmp_path: Path) -> None:
    path = tmp_path / "settings.json"
    original = Settings(
        data_dir=str(tmp_path / "data"),
        request_timeout=5.5,
        max_retries=1,
        user_agent="tests/1.0",
        default_fetch_frequency=60,
        export_title="Mine",
    )

    SettingsStore(path).save(original)
    reloaded = SettingsStore(path).load()

    assert reloaded == original
    assert json.loads(path.read_text(encoding="utf-8"))["version"] == 1


def test_data_paths_follow_data_dir(tmp_path: Path) -> None:
    settings = Settings(data_dir=str(tmp_path))

    assert settings.groups_path == tmp_path / "groups.json"
    assert settings.sources_path == tmp_path / "sources.json"


def test_unknown_and_invalid_payloads_fall_back(tmp_path: Path) -> None:
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({"version": 1, "export_title": "Kept", "legacy": True}), encoding="utf-8")
    assert SettingsStore(path).load().export_title == "Kept"

    path.write_text("[1, 2]", encoding="utf-8")
    assert SettingsStore(path).load() == Settings()

    path.write_text("{broken", encoding="utf-8")
    assert SettingsStore(path).load() == Settings()


def test_env_overrides_take_precedence(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("FEEDKEEPER_DATA_DIR", str(tmp_path / "env-data"))
    monkeypatch.setenv("FEEDKEEPER_USER_AGENT", "env-agent")
    store = SettingsStore(tmp_path / "settings.json")
    store.save(Settings(user_agent="disk-agent"))

    settings = store.load()

    assert settings.data_dir == str(tmp_path / "env-data")
    assert settings.user_agent == "env-agent"


def test_typed_env_overrides(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("FEEDKEEPER_DEBUG_LOGGING", "yes")
    monkeypatch.setenv("FEEDKEEPER_REQUEST_TIMEOUT", "2.5")
    monkeypatch.setenv("FEEDKEEPER_MAX_RETRIES", "7")

    settings = SettingsStore(tmp_path / "settings.json").load()

    assert settings.debug_logging is True
    assert settings.request_timeout == pytest.approx(2.5)
    assert settings.max_retries == 7


def test_invalid_numeric_env_override_is_ignored(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("FEEDKEEPER_MAX_RETRIES", "many")

    settings = SettingsStore(tmp_path / "settings.json").load()

    assert settings.max_retries == Settings().max_retries


def test_load_applies_cli_overrides(tmp_path: Path) -> None:
    store = SettingsStore(tmp_path / "settings.json")

    settings = store.load(overrides={"export_title": "CLI", "max_retries": 9, "bogus": 1})

    assert settings.export_title == "CLI"
    assert settings.max_retries == 9


def test_env_overrides_take_priority_over_cli(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("FEEDKEEPER_EXPORT_TITLE", "env")

    settings = SettingsStore(tmp_path / "settings.json").load(overrides={"export_title": "cli"})

    assert settings.export_title == "env"
