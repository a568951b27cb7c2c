"""Settings store interface.

The store holds the small, user-editable document of core preferences: the
active environment, the most recently opened workspace and the mapping from
workspace id to local folder.  The whole document is read and written at
once; it is expected to stay a few kilobytes.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class SettingsStore(Protocol):
    """Async protocol for loading and saving the settings document."""

    async def load(self) -> dict[str, Any]:
        """Return the stored document, or ``{}`` when nothing was saved yet."""
        ...

    async def save(self, data: dict[str, Any]) -> None:
        """Replace the stored document."""
        ...
