"""Data models for the core."""

from fabric_core.models.api import ApiRequestOptions, ApiResponse
from fabric_core.models.artifact import PLATFORM_METADATA_PATH, Artifact, DefinitionPart, ItemDefinition
from fabric_core.models.capacity import Capacity
from fabric_core.models.enums import (
    CacheState,
    CapacityState,
    DeepLinkState,
    FabricEnvironmentName,
    HttpMethod,
    LongRunningOperationStatus,
    NodeKind,
    PayloadType,
    WorkspaceProperty,
)
from fabric_core.models.extension import (
    ArtifactHandler,
    ExtensionDescriptor,
    LocalProjectTreeNodeProvider,
    ServiceCollection,
    TreeNodeProvider,
)
from fabric_core.models.tree import ArtifactNode, DefinitionFileNode, LocalProjectNode, TreeNode
from fabric_core.models.workspace import SourceControlInfo, Workspace, WorkspaceFolder, build_folder_tree

__all__ = [
    "PLATFORM_METADATA_PATH",
    "ApiRequestOptions",
    "ApiResponse",
    "Artifact",
    "ArtifactHandler",
    "ArtifactNode",
    "CacheState",
    "Capacity",
    "CapacityState",
    "DeepLinkState",
    "DefinitionFileNode",
    "DefinitionPart",
    "ExtensionDescriptor",
    "FabricEnvironmentName",
    "HttpMethod",
    "ItemDefinition",
    "LocalProjectNode",
    "LocalProjectTreeNodeProvider",
    "LongRunningOperationStatus",
    "NodeKind",
    "PayloadType",
    "ServiceCollection",
    "SourceControlInfo",
    "TreeNode",
    "TreeNodeProvider",
    "Workspace",
    "WorkspaceFolder",
    "WorkspaceProperty",
    "build_folder_tree",
]
