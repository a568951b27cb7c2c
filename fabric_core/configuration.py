"""Typed key/value view over the settings document."""

from __future__ import annotations

import copy
from typing import Any, TypeVar

from loguru import logger

from fabric_core.events import EventEmitter
from fabric_core.store.base import SettingsStore

T = TypeVar("T")

ENVIRONMENT_KEY = "Environment"
WORKSPACE_FOLDERS_KEY = "WorkspaceFolders"
LAST_WORKSPACE_KEY = "LastWorkspaceId"


class ConfigurationProvider:
    """Reads from an in-memory snapshot; writes through to the store.

    Call ``load()`` once before use.  ``on_did_configuration_change`` fires
    with the changed key after the store has accepted the new document.
    """

    def __init__(self, store: SettingsStore, defaults: dict[str, Any] | None = None) -> None:
        self._store = store
        self._defaults = dict(defaults or {})
        self._values: dict[str, Any] = {}
        self.on_did_configuration_change: EventEmitter[str] = EventEmitter("configuration change")

    async def load(self) -> None:
        self._values = await self._store.load()
        logger.debug("Configuration: loaded {} keys", len(self._values))

    def get(self, key: str, default: T | None = None) -> Any:
        if key in self._values:
            return copy.deepcopy(self._values[key])
        if key in self._defaults:
            return copy.deepcopy(self._defaults[key])
        return default

    async def update(self, key: str, value: Any) -> None:
        """Persist ``value`` under ``key``.  ``None`` removes the key."""
        if self._values.get(key) == value and (value is not None or key not in self._values):
            return
        updated = dict(self._values)
        if value is None:
            updated.pop(key, None)
        else:
            updated[key] = copy.deepcopy(value)
        await self._store.save(updated)
        self._values = updated
        logger.debug("Configuration: updated {}", key)
        await self.on_did_configuration_change.fire_async(key)
