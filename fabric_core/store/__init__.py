"""Settings store implementations."""

from fabric_core.store.base import SettingsStore
from fabric_core.store.local import LocalSettingsStore, MemorySettingsStore

__all__ = ["LocalSettingsStore", "MemorySettingsStore", "SettingsStore"]
