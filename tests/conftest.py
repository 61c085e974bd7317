"""Shared pytest fixtures."""

from __future__ import annotations

import pytest

from feedkeeper.events import EventBus, NoticePosted

from helpers import RecordingGateway, StaticProbe


@pytest.fixture(autouse=True)
def _isolated_home(tmp_path, monkeypatch):
    """Keep log files and default settings out of the real home directory."""

    monkeypatch.setenv("FEEDKEEPER_LOG_DIR", str(tmp_path / "logs"))
    for name in (
        "FEEDKEEPER_DATA_DIR",
        "FEEDKEEPER_USER_AGENT",
        "FEEDKEEPER_EXPORT_TITLE",
        "FEEDKEEPER_DEBUG_LOGGING",
        "FEEDKEEPER_REQUEST_TIMEOUT",
        "FEEDKEEPER_MAX_RETRIES",
        "FEEDKEEPER_SETTINGS_PATH",
        "FEEDKEEPER_DEBUG",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def notices(bus: EventBus) -> list[NoticePosted]:
    received: list[NoticePosted] = []
    bus.subscribe(NoticePosted, received.append)
    return received


@pytest.fixture
def gateway() -> RecordingGateway:
    return RecordingGateway()


@pytest.fixture
def probe() -> StaticProbe:
    return StaticProbe()
