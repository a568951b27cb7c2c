"""Presentation node shapes.

One ``ArtifactNode`` shape covers every artifact type; per-type behavior
lives in the strategy table in ``fabric_core.tree``.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from fabric_core.models.artifact import Artifact
from fabric_core.models.enums import NodeKind


@dataclass
class TreeNode:
    label: str
    kind: NodeKind
    children: list[TreeNode] = field(default_factory=list)
    context_value: str | None = None
    tooltip: str | None = None


@dataclass
class ArtifactNode(TreeNode):
    """An artifact in the tree.

    ``children_loader`` is called lazily when the node is expanded; nodes
    without one are leaves.
    """

    artifact: Artifact | None = None
    portal_url: str | None = None
    children_loader: Callable[[], Awaitable[list[TreeNode]]] | None = field(default=None, repr=False)

    async def load_children(self) -> list[TreeNode]:
        if self.children_loader is None:
            return []
        self.children = await self.children_loader()
        return self.children


@dataclass
class DefinitionFileNode(TreeNode):
    """A file of an artifact definition, with its decoded content."""

    path: str = ""
    content: bytes = b""


@dataclass
class LocalProjectNode(TreeNode):
    """A local folder recognised by a satellite as one of its projects."""

    path: Path | None = None
    artifact_type: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)
