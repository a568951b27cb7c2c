"""Shared enumerations used across the core."""

from __future__ import annotations

from enum import StrEnum

# -- Environment -------------------------------------------------------------


class FabricEnvironmentName(StrEnum):
    MOCK = "MOCK"
    ONEBOX = "ONEBOX"
    EDOG = "EDOG"
    EDOGONEBOX = "EDOGONEBOX"
    DAILY = "DAILY"
    DXT = "DXT"
    MSIT = "MSIT"
    PROD = "PROD"


# -- HTTP --------------------------------------------------------------------


class HttpMethod(StrEnum):
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"


class LongRunningOperationStatus(StrEnum):
    NOT_STARTED = "NotStarted"
    RUNNING = "Running"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"


# -- Definitions -------------------------------------------------------------


class PayloadType(StrEnum):
    """Encoding of a definition part payload.

    Only ``InlineBase64`` is decoded; every other value is read as UTF-8 text.
    """

    INLINE_BASE64 = "InlineBase64"
    INLINE_TEXT = "InlineText"
    INLINE_JSON = "InlineJson"


# -- Capacities --------------------------------------------------------------


class CapacityState(StrEnum):
    ACTIVE = "Active"
    INACTIVE = "Inactive"


# -- Workspace cache ---------------------------------------------------------


class CacheState(StrEnum):
    """Lifecycle of the workspace cache.

    ``UNLOADED -> LOADING -> LOADED -> STALE -> LOADING``
    """

    UNLOADED = "unloaded"
    LOADING = "loading"
    LOADED = "loaded"
    STALE = "stale"


class WorkspaceProperty(StrEnum):
    """Names carried by WorkspaceManager change notifications."""

    CURRENT_WORKSPACE = "current_workspace"
    CONNECTION_STATE = "connection_state"


# -- Tree --------------------------------------------------------------------


class NodeKind(StrEnum):
    WORKSPACE = "workspace"
    FOLDER = "folder"
    ARTIFACT_TYPE = "artifact_type"
    ARTIFACT = "artifact"
    DEFINITION_ROOT = "definition_root"
    DEFINITION_FOLDER = "definition_folder"
    DEFINITION_FILE = "definition_file"
    LOCAL_PROJECT = "local_project"


# -- Deep link ---------------------------------------------------------------


class DeepLinkState(StrEnum):
    PARSE = "parse"
    VALIDATE_IDS = "validate_ids"
    RESOLVE_ENVIRONMENT = "resolve_environment"
    RESOLVE_WORKSPACE = "resolve_workspace"
    RESOLVE_ARTIFACT = "resolve_artifact"
    CONFIRM_AND_OPEN = "confirm_and_open"
    DONE = "done"
    ERROR = "error"
