"""Artifact operations: CRUD, definitions, opening and context-menu actions.

Each CRUD call maps to exactly one REST request (plus operation polling for
definition calls).  A non-2xx status is raised as ``ApiRequestError``; the
artifact cache is only touched after a call succeeded and was not
cancelled.

Context-menu actions share one manager-wide gate: while one runs, every
other invocation is rejected immediately instead of being queued.
"""

from __future__ import annotations

import base64
import binascii
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

from loguru import logger
from pydantic import ValidationError as PydanticValidationError

from fabric_core.cancellation import CancellationToken, run_cancellable
from fabric_core.client.lro import poll_long_running_operation
from fabric_core.errors import ContextMenuBusyError, Notifier, ValidationError, fabric_action, notify_error
from fabric_core.events import Subscription
from fabric_core.managers.base import JSON_HEADERS, JSON_UTF8_HEADERS, raise_for_status
from fabric_core.models.api import ApiRequestOptions, ApiResponse
from fabric_core.models.artifact import Artifact, ItemDefinition
from fabric_core.models.enums import HttpMethod, PayloadType
from fabric_core.models.extension import ArtifactHandler
from fabric_core.models.workspace import Workspace
from fabric_core.tree import build_portal_url

if TYPE_CHECKING:
    from pathlib import Path

    from fabric_core.client.base import ApiClient
    from fabric_core.environment import EnvironmentProvider
    from fabric_core.managers.workspaces import WorkspaceManager

HandlerResolver = Callable[[str], ArtifactHandler | None]


def decode_definition_parts(definition: ItemDefinition) -> dict[str, bytes]:
    """Decode definition parts into ``path -> bytes``.

    ``InlineBase64`` payloads are base64-decoded; any other payload type is
    taken as UTF-8 text.  The ``.platform`` part is always left out.  Raises
    ``ValidationError`` for a payload that is not valid base64.
    """
    files: dict[str, bytes] = {}
    for part in definition.parts:
        if part.is_platform_metadata:
            continue
        path = part.path.replace("\\", "/")
        if part.payload_type == PayloadType.INLINE_BASE64:
            try:
                files[path] = base64.b64decode(part.payload, validate=True)
            except (binascii.Error, ValueError) as exc:
                msg = f"Definition part '{path}' is not valid base64"
                raise ValidationError(msg, "Definition part is not valid base64") from exc
        else:
            files[path] = part.payload.encode("utf-8")
    return files


class DefaultArtifactHandler(ArtifactHandler):
    """Used for types no satellite handles: opening shows the portal page."""

    def __init__(self, environment: EnvironmentProvider) -> None:
        self._environment = environment

    async def on_open(self, artifact: Artifact, folder: Path | None) -> str | None:
        return build_portal_url(self._environment.get_current(), artifact)


class ArtifactManager:
    def __init__(
        self,
        api_client: ApiClient,
        workspace_manager: WorkspaceManager,
        environment: EnvironmentProvider,
        *,
        notifier: Notifier | None = None,
        lro_poll_interval: float | None = None,
    ) -> None:
        self._api = api_client
        self._workspaces = workspace_manager
        self._environment = environment
        self._notifier = notifier
        self._lro_poll_interval = lro_poll_interval
        self._resolve_handler: HandlerResolver = lambda _artifact_type: None
        self._default_handler = DefaultArtifactHandler(environment)

        self._artifacts: dict[str, Artifact] = {}
        self._context_menu_running: str | None = None
        self._env_subscription: Subscription = environment.on_did_environment_change.subscribe(
            self._on_environment_change
        )

    def set_handler_resolver(self, resolver: HandlerResolver) -> None:
        """Install the lookup used to find the satellite handler for an artifact type."""
        self._resolve_handler = resolver

    def handler_for(self, artifact: Artifact) -> ArtifactHandler:
        return self._resolve_handler(artifact.type) or self._default_handler

    # -- Cache -----------------------------------------------------------------

    def cached_artifact(self, artifact_id: str) -> Artifact | None:
        return self._artifacts.get(artifact_id)

    def clear_cache(self) -> None:
        self._artifacts.clear()

    async def _on_environment_change(self, environment: str) -> None:
        self.clear_cache()

    # -- CRUD ------------------------------------------------------------------

    async def create_artifact(
        self,
        artifact: Artifact,
        item_specific_metadata: dict[str, Any] | None = None,
        *,
        cancellation: CancellationToken | None = None,
    ) -> ApiResponse:
        body: dict[str, Any] = {
            "displayName": artifact.display_name,
            "description": artifact.description or "",
            "type": artifact.type,
        }
        if item_specific_metadata:
            body["creationPayload"] = item_specific_metadata
        options = ApiRequestOptions(
            path_template=f"/v1/workspaces/{artifact.workspace_id}/items",
            method=HttpMethod.POST,
            body=body,
            headers=dict(JSON_HEADERS),
        )
        handler = self.handler_for(artifact)
        await handler.on_before_create(artifact, options)

        response = await self._send(options, cancellation, long_running=True)
        raise_for_status(response)
        await handler.on_after_create(artifact, response)

        created = self._merge(artifact, response.parsed_body)
        if created.id:
            self._artifacts[created.id] = created
        logger.info("Artifacts: created {} {!r} in workspace {}", artifact.type, artifact.display_name, artifact.workspace_id)
        return response

    async def get_artifact(self, artifact: Artifact, *, cancellation: CancellationToken | None = None) -> ApiResponse:
        """Fetch one artifact.  Raises ``NotFoundError`` if it no longer exists."""
        options = ApiRequestOptions(path_template=_item_path(artifact))
        await self.handler_for(artifact).on_before_read(artifact, options)
        response = await self._send(options, cancellation)
        raise_for_status(response, not_found=f"Artifact not found: '{artifact.id}'")
        self._artifacts[artifact.id] = self._merge(artifact, response.parsed_body)
        return response

    async def update_artifact(
        self,
        artifact: Artifact,
        changes: dict[str, Any],
        *,
        cancellation: CancellationToken | None = None,
    ) -> ApiResponse:
        """Patch display name / description.  ``changes`` uses wire (camelCase) keys."""
        options = ApiRequestOptions(
            path_template=_item_path(artifact),
            method=HttpMethod.PATCH,
            body=changes,
            headers=dict(JSON_UTF8_HEADERS),
        )
        response = await self._send(options, cancellation)
        raise_for_status(response, not_found=f"Artifact not found: '{artifact.id}'")
        self._artifacts[artifact.id] = self._merge(artifact, {**changes, **_as_dict(response.parsed_body)})
        return response

    async def delete_artifact(self, artifact: Artifact, *, cancellation: CancellationToken | None = None) -> ApiResponse:
        options = ApiRequestOptions(path_template=_item_path(artifact), method=HttpMethod.DELETE)
        response = await self._send(options, cancellation)
        raise_for_status(response, not_found=f"Artifact not found: '{artifact.id}'")
        self._artifacts.pop(artifact.id, None)
        logger.info("Artifacts: deleted {} {}", artifact.type, artifact.id)
        return response

    async def list_artifacts(
        self, workspace: Workspace | str, *, cancellation: CancellationToken | None = None
    ) -> list[Artifact]:
        """List a workspace's artifacts.

        An empty workspace yields ``[]``; an unknown one raises
        ``NotFoundError``; any other failure raises ``ApiRequestError``.
        """
        workspace_id = workspace.id if isinstance(workspace, Workspace) else workspace
        artifacts = await self._workspaces.get_items_in_workspace(workspace_id, cancellation=cancellation)
        for artifact in artifacts:
            self._artifacts[artifact.id] = artifact
        return artifacts

    # -- Definitions -----------------------------------------------------------

    async def get_artifact_definition(
        self, artifact: Artifact, *, cancellation: CancellationToken | None = None
    ) -> ApiResponse:
        options = ApiRequestOptions(path_template=f"{_item_path(artifact)}/getDefinition", method=HttpMethod.POST)
        await self.handler_for(artifact).on_before_get_definition(artifact, options)
        response = await self._send(options, cancellation, long_running=True)
        raise_for_status(response, not_found=f"Artifact not found: '{artifact.id}'")
        return response

    async def get_item_definition(
        self, artifact: Artifact, *, cancellation: CancellationToken | None = None
    ) -> ItemDefinition:
        response = await self.get_artifact_definition(artifact, cancellation=cancellation)
        body = _as_dict(response.parsed_body)
        try:
            return ItemDefinition.model_validate(body.get("definition", {}))
        except PydanticValidationError as exc:
            msg = f"Malformed definition for artifact '{artifact.id}'"
            raise ValidationError(msg, "Malformed item definition") from exc

    async def update_artifact_definition(
        self,
        artifact: Artifact,
        definition: ItemDefinition,
        *,
        cancellation: CancellationToken | None = None,
    ) -> ApiResponse:
        options = ApiRequestOptions(
            path_template=f"{_item_path(artifact)}/updateDefinition",
            method=HttpMethod.POST,
            body={"definition": definition.model_dump(by_alias=True, exclude_none=True)},
            headers=dict(JSON_HEADERS),
        )
        await self.handler_for(artifact).on_before_update_definition(artifact, options)
        response = await self._send(options, cancellation, long_running=True)
        raise_for_status(response, not_found=f"Artifact not found: '{artifact.id}'")
        return response

    async def create_artifact_with_definition(
        self,
        artifact: Artifact,
        definition: ItemDefinition,
        *,
        cancellation: CancellationToken | None = None,
    ) -> ApiResponse:
        options = ApiRequestOptions(
            path_template=f"/v1/workspaces/{artifact.workspace_id}/items",
            method=HttpMethod.POST,
            body={
                "displayName": artifact.display_name,
                "description": artifact.description or "",
                "type": artifact.type,
                "definition": definition.model_dump(by_alias=True, exclude_none=True),
            },
            headers=dict(JSON_HEADERS),
        )
        handler = self.handler_for(artifact)
        await handler.on_before_create(artifact, options)
        response = await self._send(options, cancellation, long_running=True)
        raise_for_status(response)
        await handler.on_after_create(artifact, response)
        created = self._merge(artifact, response.parsed_body)
        if created.id:
            self._artifacts[created.id] = created
        return response

    async def get_definition_files(self, artifact: Artifact) -> dict[str, bytes]:
        """Decoded definition files for presentation; ``{}`` if anything goes wrong."""
        try:
            definition = await self.get_item_definition(artifact)
            return decode_definition_parts(definition)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Artifacts: could not load definition of {} {}: {}", artifact.type, artifact.id, exc)
            return {}

    # -- Open ------------------------------------------------------------------

    async def open_artifact(self, artifact: Artifact) -> str | None:
        """Open ``artifact`` with its type's handler.

        Satellite handlers get the artifact's local folder (created on
        demand); the default handler returns the portal URL.
        """
        handler = self._resolve_handler(artifact.type)
        if handler is None:
            logger.info("Artifacts: no handler for {}, opening in portal", artifact.type)
            return await self._default_handler.on_open(artifact, None)
        folder = await self._workspaces.get_local_folder_for_artifact(artifact, create_if_not_exists=True)
        logger.info("Artifacts: opening {} {} in {}", artifact.type, artifact.id, folder)
        return await handler.on_open(artifact, folder)

    # -- Context menu ----------------------------------------------------------

    @property
    def context_menu_item_running(self) -> str | None:
        return self._context_menu_running

    async def do_context_menu_item(
        self,
        args: Any,
        description: str,
        callback: Callable[[Any], Awaitable[None]],
    ) -> bool:
        """Run a context-menu action unless another one is still executing.

        Returns ``True`` when ``callback`` ran to completion.  A rejected
        call returns ``False`` without invoking ``callback`` and shows an
        information message.  A failing callback is reported and also
        yields ``False``.
        """
        if self._context_menu_running is not None:
            busy = ContextMenuBusyError(description, self._context_menu_running)
            logger.info(busy.message)
            notify_error(busy, self._notifier)
            return False

        self._context_menu_running = description
        try:
            async with fabric_action(description, notifier=self._notifier):
                await callback(args)
        except Exception:  # noqa: BLE001
            return False
        finally:
            self._context_menu_running = None
        return True

    # -- Internals -------------------------------------------------------------

    async def _send(
        self,
        options: ApiRequestOptions,
        cancellation: CancellationToken | None,
        *,
        long_running: bool = False,
    ) -> ApiResponse:
        async def _call() -> ApiResponse:
            response = await self._api.send_request(options)
            if long_running:
                response = await poll_long_running_operation(
                    self._api, response, poll_interval=self._lro_poll_interval
                )
            return response

        return await run_cancellable(cancellation, _call)

    def _merge(self, artifact: Artifact, body: Any) -> Artifact:
        data = {**artifact.model_dump(by_alias=True), **_as_dict(body)}
        data["workspaceId"] = data.get("workspaceId") or artifact.workspace_id
        data["environment"] = artifact.environment or str(self._environment.get_current().env)
        try:
            return Artifact.model_validate(data)
        except PydanticValidationError:
            logger.debug("Artifacts: response for {} did not describe an artifact", artifact.id)
            return artifact

    def dispose(self) -> None:
        self._env_subscription.dispose()


def _item_path(artifact: Artifact) -> str:
    return f"/v1/workspaces/{artifact.workspace_id}/items/{artifact.id}"


def _as_dict(body: Any) -> dict[str, Any]:
    return body if isinstance(body, dict) else {}


