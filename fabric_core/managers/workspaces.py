"""Workspace state: listing, creation, the current workspace and folder mapping.

``WorkspaceManager`` is the only writer of the workspace cache and of the
current-workspace pointer.  The cache moves through
``UNLOADED -> LOADING -> LOADED -> STALE -> LOADING``; it goes stale on an
environment switch or an explicit ``invalidate()``.

Change notifications carry only the property name (see
``WorkspaceProperty``); listeners read the new value from the manager.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Any

from loguru import logger

from fabric_core.cancellation import CancellationToken, run_cancellable
from fabric_core.configuration import LAST_WORKSPACE_KEY, ConfigurationProvider
from fabric_core.errors import FabricError, NotConnectedError, NotFoundError, OperationCancelledError, ValidationError
from fabric_core.events import EventEmitter, Subscription
from fabric_core.managers.base import JSON_HEADERS, get_all_pages, parse_model, raise_for_status
from fabric_core.models.api import ApiRequestOptions, ApiResponse
from fabric_core.models.artifact import Artifact
from fabric_core.models.enums import CacheState, HttpMethod, WorkspaceProperty
from fabric_core.models.workspace import SourceControlInfo, Workspace, WorkspaceFolder

if TYPE_CHECKING:
    from fabric_core.client.auth import TokenProvider
    from fabric_core.client.base import ApiClient
    from fabric_core.environment import EnvironmentProvider
    from fabric_core.folders import LocalFolderManager


class WorkspaceManager:
    def __init__(
        self,
        api_client: ApiClient,
        environment: EnvironmentProvider,
        config: ConfigurationProvider,
        folders: LocalFolderManager,
        token_provider: TokenProvider,
    ) -> None:
        self._api = api_client
        self._environment = environment
        self._config = config
        self._folders = folders
        self._token_provider = token_provider

        self._workspaces: dict[str, Workspace] = {}
        self._state = CacheState.UNLOADED
        self._current: Workspace | None = None
        self._connected = False

        self.on_did_change_property_value: EventEmitter[str] = EventEmitter("workspace property change")
        self._env_subscription: Subscription = environment.on_did_environment_change.subscribe(
            self._on_environment_change
        )

    # -- Cache -----------------------------------------------------------------

    @property
    def cache_state(self) -> CacheState:
        return self._state

    @property
    def workspaces(self) -> list[Workspace]:
        """Snapshot of cached workspaces, in no particular order."""
        return list(self._workspaces.values())

    def invalidate(self) -> None:
        if self._state != CacheState.UNLOADED:
            self._state = CacheState.STALE
            logger.debug("Workspaces: cache marked stale")

    async def list_workspaces(self, *, cancellation: CancellationToken | None = None) -> list[Workspace]:
        """Fetch all workspaces and replace the cache.

        The backend does not guarantee an order; sort for display, not here.
        A cancelled load leaves the cache and its state as they were.
        """
        previous = self._state
        self._state = CacheState.LOADING
        try:
            items = await get_all_pages(self._api, "/v1/workspaces", cancellation=cancellation)
        except OperationCancelledError:
            self._state = previous
            raise
        except BaseException:
            self._state = CacheState.STALE if previous != CacheState.UNLOADED else CacheState.UNLOADED
            raise

        workspaces = [ws for ws in (parse_model(Workspace, item) for item in items) if ws is not None]
        self._workspaces = {ws.id: ws for ws in workspaces}
        self._state = CacheState.LOADED
        logger.debug("Workspaces: loaded {} workspaces", len(workspaces))
        return workspaces

    async def get_workspace_by_id(
        self, workspace_id: str, *, cancellation: CancellationToken | None = None
    ) -> Workspace | None:
        """Return a workspace from cache, or fetch it.  ``None`` if it does not exist."""
        if self._state == CacheState.LOADED and workspace_id in self._workspaces:
            return self._workspaces[workspace_id]

        response = await self._send(ApiRequestOptions(path_template=f"/v1/workspaces/{workspace_id}"), cancellation)
        if response.status in (400, 404):
            logger.debug("Workspaces: {} not found (status {})", workspace_id, response.status)
            return None
        raise_for_status(response)
        workspace = parse_model(Workspace, response.parsed_body)
        if workspace is None:
            return None
        self._workspaces[workspace.id] = workspace
        return workspace

    # -- Mutation --------------------------------------------------------------

    async def create_workspace(
        self,
        name: str,
        *,
        capacity_id: str | None = None,
        description: str | None = None,
        cancellation: CancellationToken | None = None,
    ) -> ApiResponse:
        """Create a workspace.  The response is returned as-is, success or not."""
        if not name or not name.strip():
            msg = "Workspace name must not be empty"
            raise ValidationError(msg)

        body: dict[str, Any] = {"displayName": name}
        if capacity_id:
            body["capacityId"] = capacity_id
        if description:
            body["description"] = description

        response = await self._send(
            ApiRequestOptions(
                path_template="/v1/workspaces",
                method=HttpMethod.POST,
                body=body,
                headers=dict(JSON_HEADERS),
            ),
            cancellation,
        )
        if response.succeeded:
            logger.info("Workspaces: created workspace {!r}", name)
            self.invalidate()
        else:
            logger.warning("Workspaces: creating {!r} failed with status {}", name, response.status)
        return response

    # -- Items -----------------------------------------------------------------

    async def get_items_in_workspace(
        self, workspace_id: str, *, cancellation: CancellationToken | None = None
    ) -> list[Artifact]:
        """List the artifacts of a workspace.  Raises ``NotFoundError`` for an unknown workspace."""
        items = await get_all_pages(
            self._api,
            f"/v1/workspaces/{workspace_id}/items",
            not_found=f"Workspace not found: '{workspace_id}'",
            cancellation=cancellation,
        )
        environment = str(self._environment.get_current().env)
        artifacts: list[Artifact] = []
        for item in items:
            artifact = parse_model(Artifact, {"workspaceId": workspace_id, **item, "environment": environment})
            if artifact is not None:
                artifacts.append(artifact)
        return artifacts

    async def get_folders_in_workspace(
        self, workspace_id: str, *, cancellation: CancellationToken | None = None
    ) -> list[WorkspaceFolder]:
        """List the folders of a workspace, skipping incomplete records."""
        items = await get_all_pages(
            self._api,
            f"/v1/workspaces/{workspace_id}/folders",
            not_found=f"Workspace not found: '{workspace_id}'",
            cancellation=cancellation,
        )
        folders = []
        for item in items:
            if not (item.get("id") and item.get("displayName") and item.get("workspaceId")):
                continue
            folder = parse_model(WorkspaceFolder, item)
            if folder is not None:
                folders.append(folder)
        return folders

    # -- Folder mutations ------------------------------------------------------
    # Like ``create_workspace``, these return the response whatever its status.

    async def create_folder(
        self,
        workspace_id: str,
        name: str,
        *,
        parent_folder_id: str | None = None,
        cancellation: CancellationToken | None = None,
    ) -> ApiResponse:
        await self._ensure_connected()
        if not name or not name.strip():
            msg = "Folder name must not be empty"
            raise ValidationError(msg)

        body: dict[str, Any] = {"displayName": name}
        if parent_folder_id:
            body["parentFolderId"] = parent_folder_id
        response = await self._send(
            ApiRequestOptions(
                path_template=f"/v1/workspaces/{workspace_id}/folders",
                method=HttpMethod.POST,
                body=body,
                headers=dict(JSON_HEADERS),
            ),
            cancellation,
        )
        _log_folder_result("create", name, response)
        return response

    async def rename_folder(
        self,
        workspace_id: str,
        folder_id: str,
        new_name: str,
        *,
        cancellation: CancellationToken | None = None,
    ) -> ApiResponse:
        await self._ensure_connected()
        if not new_name or not new_name.strip():
            msg = "Folder name must not be empty"
            raise ValidationError(msg)

        response = await self._send(
            ApiRequestOptions(
                path_template=f"/v1/workspaces/{workspace_id}/folders/{folder_id}",
                method=HttpMethod.PATCH,
                body={"displayName": new_name},
                headers=dict(JSON_HEADERS),
            ),
            cancellation,
        )
        _log_folder_result("rename", folder_id, response)
        return response

    async def delete_folder(
        self, workspace_id: str, folder_id: str, *, cancellation: CancellationToken | None = None
    ) -> ApiResponse:
        await self._ensure_connected()
        response = await self._send(
            ApiRequestOptions(
                path_template=f"/v1/workspaces/{workspace_id}/folders/{folder_id}",
                method=HttpMethod.DELETE,
            ),
            cancellation,
        )
        _log_folder_result("delete", folder_id, response)
        return response

    # -- Current workspace -----------------------------------------------------

    @property
    def current_workspace(self) -> Workspace | None:
        return self._current

    async def set_current_workspace(self, workspace: Workspace | None) -> None:
        if workspace is not None:
            workspace = await self._refresh_source_control(workspace)
            self._workspaces[workspace.id] = workspace

        previous_id = self._current.id if self._current else None
        self._current = workspace
        await self._config.update(LAST_WORKSPACE_KEY, workspace.id if workspace else None)
        if previous_id != (workspace.id if workspace else None):
            logger.info("Workspaces: current workspace is now {}", workspace.id if workspace else None)
            await self.on_did_change_property_value.fire_async(WorkspaceProperty.CURRENT_WORKSPACE)

    async def open_workspace_by_id(
        self, workspace_id: str, *, cancellation: CancellationToken | None = None
    ) -> Workspace:
        workspace = await self.get_workspace_by_id(workspace_id, cancellation=cancellation)
        if workspace is None:
            msg = f"Workspace not found: '{workspace_id}'"
            raise NotFoundError(msg, "Workspace not found")
        await self.set_current_workspace(workspace)
        return workspace

    async def close_workspace(self) -> None:
        await self.set_current_workspace(None)

    async def _refresh_source_control(self, workspace: Workspace) -> Workspace:
        try:
            response = await self._api.send_request(
                ApiRequestOptions(path_template=f"/v1/workspaces/{workspace.id}/git/connection")
            )
        except FabricError as exc:
            logger.debug("Workspaces: git connection lookup for {} failed: {}", workspace.id, exc)
            return workspace
        if not response.succeeded or not isinstance(response.parsed_body, dict):
            return workspace
        return workspace.model_copy(update={"source_control": _source_control_info(response.parsed_body)})

    # -- Connection ------------------------------------------------------------

    async def is_connected(self) -> bool:
        return bool(await self._token_provider.get_token())

    async def refresh_connection(self) -> bool:
        """Re-evaluate sign-in after a sign-in, tenant or environment change.

        Prior state is dropped; when signed in, the last opened workspace is
        reopened if it still exists.
        """
        connected = await self.is_connected()
        changed = connected != self._connected
        self._connected = connected
        await self.clear_prior_state_if_any()
        if changed:
            await self.on_did_change_property_value.fire_async(WorkspaceProperty.CONNECTION_STATE)

        last_id = self._config.get(LAST_WORKSPACE_KEY)
        if connected and last_id:
            try:
                await self.open_workspace_by_id(last_id)
            except FabricError as exc:
                logger.info("Workspaces: could not reopen last workspace {}: {}", last_id, exc.non_localized_message)
        return connected

    async def clear_prior_state_if_any(self) -> None:
        """Forget the current workspace, cached workspaces and folder mappings."""
        had_current = self._current is not None
        self._current = None
        self._workspaces.clear()
        self._folders.reset()
        self.invalidate()
        if had_current:
            await self.on_did_change_property_value.fire_async(WorkspaceProperty.CURRENT_WORKSPACE)

    async def _on_environment_change(self, environment: str) -> None:
        logger.info("Workspaces: environment changed to {}, clearing state", environment)
        await self.clear_prior_state_if_any()

    # -- Local folders ---------------------------------------------------------

    async def get_local_folder_for_workspace(
        self, workspace: Workspace, *, create_if_not_exists: bool = False
    ) -> Path | None:
        """Return the workspace's local folder, or ``None`` if it has no mapping.

        With ``create_if_not_exists``, a missing mapping falls back to the
        default layout, is recorded and the directory is created.
        """
        if not create_if_not_exists:
            return self._folders.get_workspace_folder(workspace.id)
        return await self._folders.ensure_workspace_folder(workspace)

    async def set_local_folder_for_workspace(self, workspace: Workspace, path: Path) -> None:
        await self._folders.set_workspace_folder(workspace, path)

    async def get_local_folder_for_artifact(
        self, artifact: Artifact, *, create_if_not_exists: bool = False
    ) -> Path | None:
        if not create_if_not_exists:
            workspace_folder = self._folders.get_workspace_folder(artifact.workspace_id)
            if workspace_folder is None:
                return None
            return self._folders.artifact_folder(workspace_folder, artifact)

        workspace = await self.get_workspace_by_id(artifact.workspace_id)
        if workspace is None:
            msg = f"Workspace not found: '{artifact.workspace_id}'"
            raise NotFoundError(msg, "Workspace not found")
        workspace_folder = await self._folders.ensure_workspace_folder(workspace)
        return await self._folders.ensure_folder(self._folders.artifact_folder(workspace_folder, artifact))

    # -- Internals -------------------------------------------------------------

    async def _send(self, options: ApiRequestOptions, cancellation: CancellationToken | None) -> ApiResponse:
        return await run_cancellable(cancellation, lambda: self._api.send_request(options))

    async def _ensure_connected(self) -> None:
        if not await self.is_connected():
            raise NotConnectedError

    # -- Lifecycle -------------------------------------------------------------

    def dispose(self) -> None:
        self._env_subscription.dispose()
        self.on_did_change_property_value.clear()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _log_folder_result(action: str, target: str, response: ApiResponse) -> None:
    if response.succeeded:
        logger.info("Workspaces: {} folder {!r} succeeded", action, target)
    else:
        logger.warning("Workspaces: {} folder {!r} failed with status {}", action, target, response.status)


def _source_control_info(body: dict[str, Any]) -> SourceControlInfo | None:
    if body.get("gitConnectionState") in (None, "NotConnected"):
        return None
    details = body.get("gitProviderDetails") or {}
    provider = details.get("gitProviderType")
    repository = None
    if provider == "GitHub" and details.get("ownerName") and details.get("repositoryName"):
        repository = f"https://github.com/{details['ownerName']}/{details['repositoryName']}"
    elif details.get("organizationName") and details.get("projectName") and details.get("repositoryName"):
        repository = (
            f"https://{details['organizationName']}.visualstudio.com/"
            f"{details['projectName']}/_git/{details['repositoryName']}"
        )
    return SourceControlInfo(
        branch_name=details.get("branchName"),
        repository=repository,
        directory_name=details.get("directoryName"),
    )

