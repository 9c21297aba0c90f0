"""Configuration and persistence services."""

from .settings import Settings, SettingsStore
from .storage import JsonDirectoryStore, KeyValueStore, MemoryKeyValueStore

__all__ = [
    "Settings",
    "SettingsStore",
    "KeyValueStore",
    "MemoryKeyValueStore",
    "JsonDirectoryStore",
]
