"""Mapping from workspaces and artifacts to local directories.

The default layout is::

    {workspaces_root}/{tenant?}/{workspace display name}/{artifact name}.{type}

Explicit mappings chosen by the user are persisted in configuration, scoped
by environment because workspace ids are only unique within one.
Mappings are never created implicitly: callers pass ``create_if_not_exists``.
"""

from __future__ import annotations

import re
from functools import partial
from pathlib import Path
from typing import TYPE_CHECKING

from anyio import to_thread
from loguru import logger

from fabric_core.configuration import WORKSPACE_FOLDERS_KEY, ConfigurationProvider

if TYPE_CHECKING:
    from fabric_core.environment import EnvironmentProvider
    from fabric_core.models.artifact import Artifact
    from fabric_core.models.workspace import Workspace

_UNSAFE_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f]')


def safe_folder_name(name: str) -> str:
    """Replace characters that are not valid in a directory name."""
    cleaned = _UNSAFE_CHARS.sub("_", name).strip().rstrip(".")
    return cleaned or "_"


class LocalFolderManager:
    def __init__(
        self,
        config: ConfigurationProvider,
        environment: EnvironmentProvider,
        workspaces_root: str | Path,
        *,
        tenant_name: str | None = None,
    ) -> None:
        self._config = config
        self._environment = environment
        self._root = Path(workspaces_root).expanduser()
        self._tenant_name = tenant_name
        self._resolved: dict[str, Path] = {}

    # -- Query -----------------------------------------------------------------

    def default_workspace_folder(self, workspace: Workspace) -> Path:
        base = self._root / safe_folder_name(self._tenant_name) if self._tenant_name else self._root
        return base / safe_folder_name(workspace.display_name)

    def get_workspace_folder(self, workspace_id: str) -> Path | None:
        """Return the mapped folder, or ``None`` if the workspace has no mapping."""
        if workspace_id in self._resolved:
            return self._resolved[workspace_id]
        stored = self._stored_mappings().get(workspace_id)
        if stored:
            path = Path(stored)
            self._resolved[workspace_id] = path
            return path
        return None

    @staticmethod
    def artifact_folder(workspace_folder: Path, artifact: Artifact) -> Path:
        return workspace_folder / safe_folder_name(f"{artifact.display_name}.{artifact.type}")

    # -- Mutation --------------------------------------------------------------

    async def set_workspace_folder(self, workspace: Workspace, path: Path) -> None:
        mappings = self._config.get(WORKSPACE_FOLDERS_KEY, {}) or {}
        env_key = str(self._environment.get_current().env)
        mappings.setdefault(env_key, {})[workspace.id] = str(path)
        await self._config.update(WORKSPACE_FOLDERS_KEY, mappings)
        self._resolved[workspace.id] = path
        logger.debug("Folders: workspace {} mapped to {}", workspace.id, path)

    async def ensure_workspace_folder(self, workspace: Workspace) -> Path:
        """Return the mapped folder, recording the default mapping if needed, and create it on disk."""
        path = self.get_workspace_folder(workspace.id)
        if path is None:
            path = self.default_workspace_folder(workspace)
            await self.set_workspace_folder(workspace, path)
        return await self.ensure_folder(path)

    async def ensure_folder(self, path: Path) -> Path:
        await to_thread.run_sync(partial(path.mkdir, parents=True, exist_ok=True))
        return path

    def reset(self) -> None:
        """Forget resolved mappings; they are re-read for the active environment."""
        self._resolved.clear()

    def _stored_mappings(self) -> dict[str, str]:
        mappings = self._config.get(WORKSPACE_FOLDERS_KEY, {}) or {}
        return mappings.get(str(self._environment.get_current().env), {}) or {}
