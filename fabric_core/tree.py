"""Tree presentation of workspaces and artifacts.

Every artifact is presented with the same ``ArtifactNode`` shape.  What
differs per artifact type (portal folder, whether the definition can be
browsed) is looked up in ``ARTIFACT_TYPE_STRATEGIES``; a satellite that
registered a ``TreeNodeProvider`` for the type builds the node instead.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from loguru import logger

from fabric_core.models.enums import NodeKind
from fabric_core.models.tree import ArtifactNode, DefinitionFileNode, TreeNode
from fabric_core.models.workspace import WorkspaceFolder, build_folder_tree

if TYPE_CHECKING:
    from fabric_core.environment import EnvironmentProvider, FabricEnvironmentSettings
    from fabric_core.managers.artifacts import ArtifactManager
    from fabric_core.managers.workspaces import WorkspaceManager
    from fabric_core.models.artifact import Artifact
    from fabric_core.models.workspace import Workspace
    from fabric_core.registry import ExtensionRegistry

PORTAL_EXPERIENCE = "data-engineering"


@dataclass(frozen=True)
class ArtifactTypeStrategy:
    display_name: str
    display_name_plural: str
    portal_folder: str | None = None
    """Path segment used by the portal; defaults to ``{type}s``."""

    supports_definition: bool = False


ARTIFACT_TYPE_STRATEGIES: dict[str, ArtifactTypeStrategy] = {
    "Notebook": ArtifactTypeStrategy("Notebook", "Notebooks", "synapsenotebooks", supports_definition=True),
    "Lakehouse": ArtifactTypeStrategy("Lakehouse", "Lakehouses", "lakehouses"),
    "Warehouse": ArtifactTypeStrategy("Warehouse", "Warehouses", "datawarehouses"),
    "SQLDatabase": ArtifactTypeStrategy("SQL database", "SQL databases", "sqldatabases"),
    "SemanticModel": ArtifactTypeStrategy("Semantic model", "Semantic models", "datasets", supports_definition=True),
    "Report": ArtifactTypeStrategy("Report", "Reports", "reports", supports_definition=True),
    "DataPipeline": ArtifactTypeStrategy("Data pipeline", "Data pipelines", "pipelines", supports_definition=True),
    "Environment": ArtifactTypeStrategy("Environment", "Environments", "sparkenvironments", supports_definition=True),
    "UserDataFunction": ArtifactTypeStrategy(
        "User data function", "User data functions", "userdatafunctions", supports_definition=True
    ),
}


def strategy_for(artifact_type: str) -> ArtifactTypeStrategy:
    strategy = ARTIFACT_TYPE_STRATEGIES.get(artifact_type)
    if strategy is None:
        return ArtifactTypeStrategy(artifact_type, f"{artifact_type}s")
    return strategy


def portal_folder(artifact_type: str) -> str:
    return strategy_for(artifact_type).portal_folder or f"{artifact_type}s"


# ---------------------------------------------------------------------------
# Portal URLs
# ---------------------------------------------------------------------------


def build_workspace_portal_url(environment: FabricEnvironmentSettings, workspace_id: str) -> str | None:
    if not environment.portal_uri:
        return None
    return f"https://{environment.portal_uri}/groups/{workspace_id}?experience={PORTAL_EXPERIENCE}"


def build_portal_url(environment: FabricEnvironmentSettings, artifact: Artifact) -> str | None:
    if not environment.portal_uri:
        return None
    return (
        f"https://{environment.portal_uri}/groups/{artifact.workspace_id}/"
        f"{portal_folder(artifact.type)}/{artifact.id}?experience={PORTAL_EXPERIENCE}"
    )


# ---------------------------------------------------------------------------
# Definition files
# ---------------------------------------------------------------------------


def build_definition_nodes(files: dict[str, bytes]) -> list[TreeNode]:
    """Nest ``path -> content`` entries into folder and file nodes.

    Folders sort before files; both alphabetically.
    """
    root = TreeNode(label="", kind=NodeKind.DEFINITION_FOLDER)
    for path in sorted(files):
        segments = [s for s in path.replace("\\", "/").split("/") if s]
        if not segments:
            continue
        parent = root
        for segment in segments[:-1]:
            folder = next(
                (c for c in parent.children if c.kind == NodeKind.DEFINITION_FOLDER and c.label == segment), None
            )
            if folder is None:
                folder = TreeNode(label=segment, kind=NodeKind.DEFINITION_FOLDER)
                parent.children.append(folder)
            parent = folder
        parent.children.append(
            DefinitionFileNode(
                label=segments[-1], kind=NodeKind.DEFINITION_FILE, path="/".join(segments), content=files[path]
            )
        )
    _sort_definition_nodes(root)
    return root.children


def _sort_definition_nodes(node: TreeNode) -> None:
    node.children.sort(key=lambda c: (c.kind != NodeKind.DEFINITION_FOLDER, c.label.lower()))
    for child in node.children:
        _sort_definition_nodes(child)


# ---------------------------------------------------------------------------
# Workspace tree
# ---------------------------------------------------------------------------


class WorkspaceTreeBuilder:
    """Builds the remote-workspace view: workspace -> artifact type -> artifact."""

    def __init__(
        self,
        registry: ExtensionRegistry,
        workspace_manager: WorkspaceManager,
        artifact_manager: ArtifactManager,
        environment: EnvironmentProvider,
    ) -> None:
        self._registry = registry
        self._workspaces = workspace_manager
        self._artifacts = artifact_manager
        self._environment = environment

    async def build(self, workspace: Workspace) -> TreeNode:
        """Group the workspace's artifacts by type.  Input order is irrelevant; output is sorted."""
        artifacts = await self._artifacts.list_artifacts(workspace)
        root = TreeNode(
            label=workspace.display_name,
            kind=NodeKind.WORKSPACE,
            context_value="workspace",
            tooltip=build_workspace_portal_url(self._environment.get_current(), workspace.id),
        )
        by_type: dict[str, list[Artifact]] = {}
        for artifact in artifacts:
            by_type.setdefault(artifact.type, []).append(artifact)

        for artifact_type in sorted(by_type, key=lambda t: strategy_for(t).display_name_plural.lower()):
            group = TreeNode(
                label=strategy_for(artifact_type).display_name_plural,
                kind=NodeKind.ARTIFACT_TYPE,
                context_value=artifact_type,
            )
            for artifact in sorted(by_type[artifact_type], key=lambda a: a.display_name.lower()):
                group.children.append(await self.create_artifact_node(artifact))
            root.children.append(group)
        return root

    async def build_folder_view(self, workspace: Workspace) -> TreeNode:
        """Place artifacts under the workspace folders they live in."""
        folders = await self._workspaces.get_folders_in_workspace(workspace.id)
        artifacts = await self._artifacts.list_artifacts(workspace)
        root = TreeNode(label=workspace.display_name, kind=NodeKind.WORKSPACE, context_value="workspace")

        folder_nodes: dict[str, TreeNode] = {}

        def _add(folder: WorkspaceFolder, parent: TreeNode) -> None:
            node = TreeNode(label=folder.display_name, kind=NodeKind.FOLDER, context_value="folder")
            folder_nodes[folder.id] = node
            parent.children.append(node)
            for child in sorted(folder.children, key=lambda f: f.display_name.lower()):
                _add(child, node)

        for folder in sorted(build_folder_tree(folders), key=lambda f: f.display_name.lower()):
            _add(folder, root)

        for artifact in sorted(artifacts, key=lambda a: a.display_name.lower()):
            parent = folder_nodes.get(artifact.folder_id or "", root)
            parent.children.append(await self.create_artifact_node(artifact))
        return root

    async def create_artifact_node(self, artifact: Artifact) -> ArtifactNode:
        provider = self._registry.get_tree_node_provider(artifact.type)
        if provider is not None:
            try:
                return await provider.create_artifact_tree_node(artifact)
            except Exception:
                logger.exception("Tree node provider for {} failed, using the default node", artifact.type)
        return self._default_node(artifact)

    def _default_node(self, artifact: Artifact) -> ArtifactNode:
        node = ArtifactNode(
            label=artifact.display_name,
            kind=NodeKind.ARTIFACT,
            context_value=f"Item{artifact.type}",
            tooltip=artifact.description,
            artifact=artifact,
            portal_url=build_portal_url(self._environment.get_current(), artifact),
        )
        if strategy_for(artifact.type).supports_definition:

            async def _load_definition() -> list[TreeNode]:
                files = await self._artifacts.get_definition_files(artifact)
                if not files:
                    return []
                root = TreeNode(label="Definition", kind=NodeKind.DEFINITION_ROOT, context_value="definition")
                root.children = build_definition_nodes(files)
                return [root]

            node.children_loader = _load_definition
        return node
