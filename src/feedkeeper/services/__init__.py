"""Service layer helpers (settings, persistence, backups)."""

from .persistence import JsonGroupGateway, JsonSourceRepository
from .settings import DEFAULT_SETTINGS_PATH, Settings, SettingsStore

__all__ = [
    "DEFAULT_SETTINGS_PATH",
    "JsonGroupGateway",
    "JsonSourceRepository",
    "Settings",
    "SettingsStore",
]
