"""Configuration and durable-state services."""

from .persistence import (
    AUTH_STORAGE_KEY,
    UI_STORAGE_KEY,
    KeyValueStorage,
    MemoryStorage,
    StateStorage,
    TokenCipher,
)
from .settings import Settings, SettingsStore

__all__ = [
    "AUTH_STORAGE_KEY",
    "KeyValueStorage",
    "MemoryStorage",
    "Settings",
    "SettingsStore",
    "StateStorage",
    "TokenCipher",
    "UI_STORAGE_KEY",
]
