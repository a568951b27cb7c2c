"""File-backed settings store.

Stores the settings document as a single JSON file::

    ~/.fabric-core/settings.json

Uses ``anyio.to_thread.run_sync`` for non-blocking file I/O.  Writes are
atomic: data goes to a temporary file in the same directory, which is then
renamed over the target, so a crash never leaves a half-written document.
"""

from __future__ import annotations

import contextlib
import json
import os
import tempfile
from functools import partial
from pathlib import Path
from typing import Any

from anyio import to_thread
from loguru import logger


class LocalSettingsStore:
    """Local filesystem implementation of the SettingsStore protocol."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path).expanduser()

    @property
    def path(self) -> Path:
        return self._path

    async def load(self) -> dict[str, Any]:
        raw = await to_thread.run_sync(partial(_read_file, self._path))
        if raw is None:
            return {}
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            logger.warning("Settings file {} is not valid JSON, ignoring it: {}", self._path, exc)
            return {}
        if not isinstance(data, dict):
            logger.warning("Settings file {} does not hold an object, ignoring it", self._path)
            return {}
        return data

    async def save(self, data: dict[str, Any]) -> None:
        text = json.dumps(data, indent=2, sort_keys=True)
        await to_thread.run_sync(partial(_atomic_write, self._path, text))


class MemorySettingsStore:
    """In-process store, for tests and hosts that persist settings themselves."""

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self._data: dict[str, Any] = json.loads(json.dumps(initial or {}))
        self.save_count = 0

    async def load(self) -> dict[str, Any]:
        return json.loads(json.dumps(self._data))

    async def save(self, data: dict[str, Any]) -> None:
        self._data = json.loads(json.dumps(data))
        self.save_count += 1


# -- Sync helpers (run in thread pool) -----------------------------------------


def _atomic_write(path: Path, data: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=path.parent, suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(data)
        os.replace(tmp_path, path)
    except BaseException:
        with contextlib.suppress(OSError):
            os.unlink(tmp_path)
        raise


def _read_file(path: Path) -> str | None:
    """Read file contents, ``None`` if the file does not exist."""
    try:
        return path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
