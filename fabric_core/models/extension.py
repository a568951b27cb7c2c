"""Contracts between the core and satellite extensions.

A satellite describes itself with an ``ExtensionDescriptor`` and hands it to
``ExtensionRegistry.add_extension``.  In return it receives the shared
``ServiceCollection``.  Per-type behavior is contributed as handlers and
providers keyed by artifact type string.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from fabric_core.client.base import ApiClient
    from fabric_core.managers.artifacts import ArtifactManager
    from fabric_core.managers.workspaces import WorkspaceManager
    from fabric_core.models.api import ApiRequestOptions, ApiResponse
    from fabric_core.models.artifact import Artifact
    from fabric_core.models.tree import ArtifactNode, LocalProjectNode


@dataclass(frozen=True)
class ServiceCollection:
    """Capability bundle handed to every satellite.

    There is one instance per core; every satellite receives the same object,
    so manager state changes are visible to all of them.
    """

    workspace_manager: WorkspaceManager
    artifact_manager: ArtifactManager
    api_client: ApiClient


class ArtifactHandler:
    """Per-type hooks around artifact operations.

    Subclass and override the hooks you need; the defaults leave requests
    untouched.  ``on_open`` returns a location the host should show (a local
    path or a URL), or ``None`` when the handler opened the artifact itself.
    """

    artifact_type: str = ""

    async def on_before_create(self, artifact: Artifact, options: ApiRequestOptions) -> None:
        return None

    async def on_after_create(self, artifact: Artifact, response: ApiResponse) -> None:
        return None

    async def on_before_read(self, artifact: Artifact, options: ApiRequestOptions) -> None:
        return None

    async def on_before_get_definition(self, artifact: Artifact, options: ApiRequestOptions) -> None:
        return None

    async def on_before_update_definition(self, artifact: Artifact, options: ApiRequestOptions) -> None:
        return None

    async def on_open(self, artifact: Artifact, folder: Path | None) -> str | None:
        return None


@runtime_checkable
class TreeNodeProvider(Protocol):
    artifact_type: str

    async def create_artifact_tree_node(self, artifact: Artifact) -> ArtifactNode: ...


@runtime_checkable
class LocalProjectTreeNodeProvider(Protocol):
    artifact_type: str

    async def create_local_project_tree_node(self, path: Path) -> LocalProjectNode | None: ...


@dataclass
class ExtensionDescriptor:
    """What a satellite declares when it registers.

    ``identity`` is a reverse-domain id such as ``fabric.vscode-notebooks``.
    ``api_version`` is ``major.minor``.
    """

    identity: str
    api_version: str
    artifact_types: list[str] = field(default_factory=list)
    artifact_handlers: list[ArtifactHandler] = field(default_factory=list)
    tree_node_providers: list[TreeNodeProvider] = field(default_factory=list)
    local_project_tree_node_providers: list[LocalProjectTreeNodeProvider] = field(default_factory=list)
    dispose: Callable[[], Awaitable[None] | None] | None = field(default=None, repr=False)
    """Called when the registration is disposed, to release satellite resources."""
