"""Unit tests for WorkspaceManager."""

from __future__ import annotations

import json
from pathlib import Path

import anyio
import httpx
import pytest
from fakes import MISSING_ID, WORKSPACE_ID, FakeBackend, item_json, workspace_json

from fabric_core.cancellation import CancellationToken
from fabric_core.client.auth import StaticTokenProvider
from fabric_core.client.fake import FakeApiClient
from fabric_core.configuration import LAST_WORKSPACE_KEY, ConfigurationProvider
from fabric_core.environment import EnvironmentProvider
from fabric_core.errors import (
    ApiRequestError,
    NotConnectedError,
    NotFoundError,
    OperationCancelledError,
    ValidationError,
)
from fabric_core.managers.workspaces import WorkspaceManager
from fabric_core.models.artifact import Artifact
from fabric_core.models.enums import CacheState, FabricEnvironmentName, WorkspaceProperty
from fabric_core.models.workspace import Workspace, build_folder_tree

OTHER_WORKSPACE_ID = "0a1b2c3d-0000-4000-8000-000000000002"


# ---------------------------------------------------------------------------
# Listing and cache
# ---------------------------------------------------------------------------


async def test_list_workspaces_loads_cache(workspace_manager: WorkspaceManager, backend: FakeBackend) -> None:
    backend.json("GET", "/v1/workspaces", {"value": [workspace_json(), workspace_json(OTHER_WORKSPACE_ID, "Ops")]})
    assert workspace_manager.cache_state == CacheState.UNLOADED

    workspaces = await workspace_manager.list_workspaces()

    assert {ws.display_name for ws in workspaces} == {"Sales", "Ops"}
    assert workspace_manager.cache_state == CacheState.LOADED
    assert len(workspace_manager.workspaces) == 2


async def test_list_workspaces_follows_continuation(workspace_manager: WorkspaceManager, backend: FakeBackend) -> None:
    def _paged(request: httpx.Request) -> httpx.Response:
        if request.url.params.get("continuationToken") == "page 2":
            return httpx.Response(200, json={"value": [workspace_json(OTHER_WORKSPACE_ID, "Ops")]})
        return httpx.Response(200, json={"value": [workspace_json()], "continuationToken": "page 2"})

    backend.route("GET", "/v1/workspaces", _paged)

    workspaces = await workspace_manager.list_workspaces()

    assert [ws.id for ws in workspaces] == [WORKSPACE_ID, OTHER_WORKSPACE_ID]
    assert backend.count("GET", "/v1/workspaces") == 2


async def test_list_workspaces_skips_malformed(workspace_manager: WorkspaceManager, backend: FakeBackend) -> None:
    backend.json("GET", "/v1/workspaces", {"value": [workspace_json(), {"id": OTHER_WORKSPACE_ID}]})

    workspaces = await workspace_manager.list_workspaces()

    assert [ws.id for ws in workspaces] == [WORKSPACE_ID]


async def test_list_workspaces_failure_restores_state(
    workspace_manager: WorkspaceManager, backend: FakeBackend
) -> None:
    backend.json("GET", "/v1/workspaces", {"message": "denied"}, status=403)

    with pytest.raises(ApiRequestError) as exc_info:
        await workspace_manager.list_workspaces()

    assert exc_info.value.status == 403
    assert workspace_manager.cache_state == CacheState.UNLOADED


async def test_invalidate_marks_loaded_cache_stale(workspace_manager: WorkspaceManager, backend: FakeBackend) -> None:
    workspace_manager.invalidate()
    assert workspace_manager.cache_state == CacheState.UNLOADED

    backend.json("GET", "/v1/workspaces", {"value": [workspace_json()]})
    await workspace_manager.list_workspaces()
    workspace_manager.invalidate()

    assert workspace_manager.cache_state == CacheState.STALE


async def test_get_workspace_by_id_uses_loaded_cache(workspace_manager: WorkspaceManager, backend: FakeBackend) -> None:
    backend.json("GET", "/v1/workspaces", {"value": [workspace_json()]})
    await workspace_manager.list_workspaces()

    workspace = await workspace_manager.get_workspace_by_id(WORKSPACE_ID)

    assert workspace is not None
    assert workspace.display_name == "Sales"
    assert backend.count("GET", f"/v1/workspaces/{WORKSPACE_ID}") == 0


async def test_get_workspace_by_id_fetches(workspace_manager: WorkspaceManager, backend: FakeBackend) -> None:
    backend.json("GET", f"/v1/workspaces/{WORKSPACE_ID}", workspace_json())

    workspace = await workspace_manager.get_workspace_by_id(WORKSPACE_ID)

    assert workspace == Workspace(id=WORKSPACE_ID, display_name="Sales")


@pytest.mark.parametrize("status", [400, 404])
async def test_get_workspace_by_id_missing(workspace_manager: WorkspaceManager, backend: FakeBackend, status: int) -> None:
    backend.json("GET", f"/v1/workspaces/{MISSING_ID}", {"errorCode": "WorkspaceNotFound"}, status=status)

    assert await workspace_manager.get_workspace_by_id(MISSING_ID) is None


# ---------------------------------------------------------------------------
# create_workspace
# ---------------------------------------------------------------------------


async def test_create_workspace_posts_json(workspace_manager: WorkspaceManager, backend: FakeBackend) -> None:
    backend.json("GET", "/v1/workspaces", {"value": []})
    await workspace_manager.list_workspaces()
    captured: list[httpx.Request] = []

    def _create(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(201, json=workspace_json(OTHER_WORKSPACE_ID, "New"))

    backend.route("POST", "/v1/workspaces", _create)

    response = await workspace_manager.create_workspace("New", capacity_id="cap-1", description="scratch")

    assert response.status == 201
    assert response.parsed_body["displayName"] == "New"
    request = captured[0]
    assert request.headers["content-type"] == "application/json"
    assert json.loads(request.content) == {"displayName": "New", "capacityId": "cap-1", "description": "scratch"}
    assert workspace_manager.cache_state == CacheState.STALE


async def test_create_workspace_returns_failed_response(
    workspace_manager: WorkspaceManager, backend: FakeBackend
) -> None:
    backend.json("POST", "/v1/workspaces", {"errorCode": "WorkspaceNameAlreadyExists"}, status=409)

    response = await workspace_manager.create_workspace("Sales")

    assert response.status == 409
    assert not response.succeeded


@pytest.mark.parametrize("name", ["", "   "])
async def test_create_workspace_rejects_blank_name(
    workspace_manager: WorkspaceManager, backend: FakeBackend, name: str
) -> None:
    with pytest.raises(ValidationError):
        await workspace_manager.create_workspace(name)
    assert backend.calls == []


# ---------------------------------------------------------------------------
# Items and folders
# ---------------------------------------------------------------------------


async def test_get_items_in_workspace(workspace_manager: WorkspaceManager, backend: FakeBackend) -> None:
    backend.json(
        "GET",
        f"/v1/workspaces/{WORKSPACE_ID}/items",
        {"value": [item_json(), {"id": "broken"}, item_json("a2", "Daily", "Lakehouse", workspace_id="")]},
    )

    items = await workspace_manager.get_items_in_workspace(WORKSPACE_ID)

    assert [a.display_name for a in items] == ["Forecast"]
    assert items[0].workspace_id == WORKSPACE_ID
    assert items[0].environment == "PROD"


async def test_get_items_fills_missing_workspace_id(workspace_manager: WorkspaceManager, backend: FakeBackend) -> None:
    record = item_json()
    del record["workspaceId"]
    backend.json("GET", f"/v1/workspaces/{WORKSPACE_ID}/items", {"value": [record]})

    items = await workspace_manager.get_items_in_workspace(WORKSPACE_ID)

    assert items[0].workspace_id == WORKSPACE_ID


async def test_get_items_in_missing_workspace(workspace_manager: WorkspaceManager, backend: FakeBackend) -> None:
    with pytest.raises(NotFoundError, match=MISSING_ID):
        await workspace_manager.get_items_in_workspace(MISSING_ID)


async def test_get_items_empty_workspace(workspace_manager: WorkspaceManager, backend: FakeBackend) -> None:
    backend.json("GET", f"/v1/workspaces/{WORKSPACE_ID}/items", {"value": []})

    assert await workspace_manager.get_items_in_workspace(WORKSPACE_ID) == []


async def test_get_folders_in_workspace(workspace_manager: WorkspaceManager, backend: FakeBackend) -> None:
    backend.json(
        "GET",
        f"/v1/workspaces/{WORKSPACE_ID}/folders",
        {
            "value": [
                {"id": "f1", "displayName": "Reports", "workspaceId": WORKSPACE_ID},
                {"id": "f2", "displayName": "2024", "workspaceId": WORKSPACE_ID, "parentFolderId": "f1"},
                {"id": "f3", "workspaceId": WORKSPACE_ID},
            ]
        },
    )

    folders = await workspace_manager.get_folders_in_workspace(WORKSPACE_ID)
    roots = build_folder_tree(folders)

    assert [f.id for f in folders] == ["f1", "f2"]
    assert [r.id for r in roots] == ["f1"]
    assert [c.id for c in roots[0].children] == ["f2"]
    # Input models are not mutated.
    assert folders[0].children == []


# ---------------------------------------------------------------------------
# Folder mutations
# ---------------------------------------------------------------------------


async def test_create_folder(workspace_manager: WorkspaceManager, backend: FakeBackend) -> None:
    captured: list[httpx.Request] = []

    def _create(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(201, json={"id": "f9", "displayName": "Drafts", "workspaceId": WORKSPACE_ID})

    backend.route("POST", f"/v1/workspaces/{WORKSPACE_ID}/folders", _create)

    response = await workspace_manager.create_folder(WORKSPACE_ID, "Drafts", parent_folder_id="f1")

    assert response.status == 201
    assert captured[0].headers["content-type"] == "application/json"
    assert json.loads(captured[0].content) == {"displayName": "Drafts", "parentFolderId": "f1"}


async def test_create_root_folder_omits_parent(workspace_manager: WorkspaceManager, backend: FakeBackend) -> None:
    captured: list[httpx.Request] = []

    def _create(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(201, json={})

    backend.route("POST", f"/v1/workspaces/{WORKSPACE_ID}/folders", _create)

    await workspace_manager.create_folder(WORKSPACE_ID, "Drafts")

    assert json.loads(captured[0].content) == {"displayName": "Drafts"}


async def test_rename_folder(workspace_manager: WorkspaceManager, backend: FakeBackend) -> None:
    captured: list[httpx.Request] = []

    def _rename(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(200, json={"id": "f1", "displayName": "Archive", "workspaceId": WORKSPACE_ID})

    backend.route("PATCH", f"/v1/workspaces/{WORKSPACE_ID}/folders/f1", _rename)

    response = await workspace_manager.rename_folder(WORKSPACE_ID, "f1", "Archive")

    assert response.succeeded
    assert captured[0].headers["content-type"] == "application/json"
    assert json.loads(captured[0].content) == {"displayName": "Archive"}


async def test_delete_folder_returns_response(workspace_manager: WorkspaceManager, backend: FakeBackend) -> None:
    backend.json("DELETE", f"/v1/workspaces/{WORKSPACE_ID}/folders/f1", {"errorCode": "FolderNotEmpty"}, status=400)

    response = await workspace_manager.delete_folder(WORKSPACE_ID, "f1")

    assert response.status == 400
    assert backend.count("DELETE", f"/v1/workspaces/{WORKSPACE_ID}/folders/f1") == 1


async def test_folder_mutations_require_sign_in(
    workspace_manager: WorkspaceManager, backend: FakeBackend, tokens: StaticTokenProvider
) -> None:
    tokens.set_token(None)

    with pytest.raises(NotConnectedError):
        await workspace_manager.create_folder(WORKSPACE_ID, "Drafts")
    with pytest.raises(NotConnectedError):
        await workspace_manager.rename_folder(WORKSPACE_ID, "f1", "Archive")
    with pytest.raises(NotConnectedError):
        await workspace_manager.delete_folder(WORKSPACE_ID, "f1")
    assert backend.calls == []


@pytest.mark.parametrize("name", ["", "  "])
async def test_folder_names_must_not_be_blank(
    workspace_manager: WorkspaceManager, backend: FakeBackend, name: str
) -> None:
    with pytest.raises(ValidationError):
        await workspace_manager.create_folder(WORKSPACE_ID, name)
    with pytest.raises(ValidationError):
        await workspace_manager.rename_folder(WORKSPACE_ID, "f1", name)
    assert backend.calls == []


# ---------------------------------------------------------------------------
# Current workspace
# ---------------------------------------------------------------------------


async def test_set_current_workspace_fires_once(
    workspace_manager: WorkspaceManager, backend: FakeBackend, config: ConfigurationProvider
) -> None:
    seen: list[str] = []
    workspace_manager.on_did_change_property_value.subscribe(seen.append)
    workspace = Workspace(id=WORKSPACE_ID, display_name="Sales")

    await workspace_manager.set_current_workspace(workspace)
    await workspace_manager.set_current_workspace(workspace)

    assert seen == [WorkspaceProperty.CURRENT_WORKSPACE]
    assert workspace_manager.current_workspace is not None
    assert workspace_manager.current_workspace.id == WORKSPACE_ID
    assert config.get(LAST_WORKSPACE_KEY) == WORKSPACE_ID

    await workspace_manager.close_workspace()

    assert workspace_manager.current_workspace is None
    assert config.get(LAST_WORKSPACE_KEY) is None
    assert seen == [WorkspaceProperty.CURRENT_WORKSPACE, WorkspaceProperty.CURRENT_WORKSPACE]


async def test_set_current_workspace_reads_git_connection(
    workspace_manager: WorkspaceManager, backend: FakeBackend
) -> None:
    backend.json(
        "GET",
        f"/v1/workspaces/{WORKSPACE_ID}/git/connection",
        {
            "gitConnectionState": "ConnectedAndInitialized",
            "gitProviderDetails": {
                "gitProviderType": "GitHub",
                "ownerName": "contoso",
                "repositoryName": "analytics",
                "branchName": "main",
                "directoryName": "/fabric",
            },
        },
    )

    await workspace_manager.set_current_workspace(Workspace(id=WORKSPACE_ID, display_name="Sales"))

    current = workspace_manager.current_workspace
    assert current is not None
    assert current.source_control is not None
    assert current.source_control.repository == "https://github.com/contoso/analytics"
    assert current.source_control.branch_name == "main"


async def test_open_workspace_by_id_missing(workspace_manager: WorkspaceManager, backend: FakeBackend) -> None:
    with pytest.raises(NotFoundError):
        await workspace_manager.open_workspace_by_id(MISSING_ID)
    assert workspace_manager.current_workspace is None


# ---------------------------------------------------------------------------
# Connection and environment
# ---------------------------------------------------------------------------


async def test_refresh_connection_reopens_last_workspace(
    workspace_manager: WorkspaceManager, backend: FakeBackend, config: ConfigurationProvider
) -> None:
    await config.update(LAST_WORKSPACE_KEY, WORKSPACE_ID)
    backend.json("GET", f"/v1/workspaces/{WORKSPACE_ID}", workspace_json())
    seen: list[str] = []
    workspace_manager.on_did_change_property_value.subscribe(seen.append)

    connected = await workspace_manager.refresh_connection()

    assert connected is True
    assert WorkspaceProperty.CONNECTION_STATE in seen
    assert workspace_manager.current_workspace is not None
    assert workspace_manager.current_workspace.id == WORKSPACE_ID


async def test_refresh_connection_signed_out(
    workspace_manager: WorkspaceManager, backend: FakeBackend, tokens: StaticTokenProvider
) -> None:
    tokens.set_token(None)

    assert await workspace_manager.refresh_connection() is False
    assert await workspace_manager.is_connected() is False
    assert backend.calls == []


async def test_environment_switch_clears_state(
    workspace_manager: WorkspaceManager, backend: FakeBackend, environment: EnvironmentProvider
) -> None:
    backend.json("GET", "/v1/workspaces", {"value": [workspace_json()]})
    await workspace_manager.list_workspaces()
    await workspace_manager.set_current_workspace(Workspace(id=WORKSPACE_ID, display_name="Sales"))
    seen: list[str] = []
    workspace_manager.on_did_change_property_value.subscribe(seen.append)

    assert await environment.switch_to(FabricEnvironmentName.MSIT) is True

    assert workspace_manager.current_workspace is None
    assert workspace_manager.workspaces == []
    assert workspace_manager.cache_state == CacheState.STALE
    assert seen == [WorkspaceProperty.CURRENT_WORKSPACE]


# ---------------------------------------------------------------------------
# Local folders
# ---------------------------------------------------------------------------


async def test_local_folder_for_workspace(workspace_manager: WorkspaceManager, tmp_path: Path) -> None:
    workspace = Workspace(id=WORKSPACE_ID, display_name="Sales: EMEA")

    assert await workspace_manager.get_local_folder_for_workspace(workspace) is None

    folder = await workspace_manager.get_local_folder_for_workspace(workspace, create_if_not_exists=True)

    assert folder == tmp_path / "Workspaces" / "Sales_ EMEA"
    assert folder is not None and folder.is_dir()
    assert await workspace_manager.get_local_folder_for_workspace(workspace) == folder


async def test_set_local_folder_for_workspace(workspace_manager: WorkspaceManager, tmp_path: Path) -> None:
    workspace = Workspace(id=WORKSPACE_ID, display_name="Sales")
    chosen = tmp_path / "elsewhere"

    await workspace_manager.set_local_folder_for_workspace(workspace, chosen)

    assert await workspace_manager.get_local_folder_for_workspace(workspace) == chosen


async def test_local_folder_for_artifact(
    workspace_manager: WorkspaceManager, backend: FakeBackend, tmp_path: Path
) -> None:
    backend.json("GET", f"/v1/workspaces/{WORKSPACE_ID}", workspace_json())
    artifact = Artifact(id="a1", workspace_id=WORKSPACE_ID, type="Notebook", display_name="Forecast")

    assert await workspace_manager.get_local_folder_for_artifact(artifact) is None

    folder = await workspace_manager.get_local_folder_for_artifact(artifact, create_if_not_exists=True)

    assert folder == tmp_path / "Workspaces" / "Sales" / "Forecast.Notebook"
    assert folder is not None and folder.is_dir()


# ---------------------------------------------------------------------------
# Cancellation
# ---------------------------------------------------------------------------


def _hang_until_cancelled(api_client: FakeApiClient) -> anyio.Event:
    arrived = anyio.Event()

    async def _hang(_request: httpx.Request) -> httpx.Response:
        arrived.set()
        await anyio.sleep_forever()
        raise AssertionError("unreachable")

    api_client.respond_with(_hang)
    return arrived


async def test_cancel_list_workspaces_keeps_cache(
    workspace_manager: WorkspaceManager, backend: FakeBackend, api_client: FakeApiClient
) -> None:
    backend.json("GET", "/v1/workspaces", {"value": [workspace_json()]})
    await workspace_manager.list_workspaces()
    arrived = _hang_until_cancelled(api_client)
    token = CancellationToken()
    errors: list[Exception] = []

    async def _call() -> None:
        try:
            await workspace_manager.list_workspaces(cancellation=token)
        except OperationCancelledError as exc:
            errors.append(exc)

    async with anyio.create_task_group() as tg:
        tg.start_soon(_call)
        await arrived.wait()
        assert workspace_manager.cache_state == CacheState.LOADING
        token.cancel()

    assert len(errors) == 1
    assert workspace_manager.cache_state == CacheState.LOADED
    assert [ws.id for ws in workspace_manager.workspaces] == [WORKSPACE_ID]


async def test_cancel_first_list_workspaces(workspace_manager: WorkspaceManager, api_client: FakeApiClient) -> None:
    arrived = _hang_until_cancelled(api_client)
    token = CancellationToken()

    async def _call() -> None:
        with pytest.raises(OperationCancelledError):
            await workspace_manager.list_workspaces(cancellation=token)

    async with anyio.create_task_group() as tg:
        tg.start_soon(_call)
        await arrived.wait()
        token.cancel()

    assert workspace_manager.cache_state == CacheState.UNLOADED
    assert workspace_manager.workspaces == []


async def test_cancel_get_workspace_by_id_leaves_cache(
    workspace_manager: WorkspaceManager, api_client: FakeApiClient
) -> None:
    arrived = _hang_until_cancelled(api_client)
    token = CancellationToken()

    async def _call() -> None:
        with pytest.raises(OperationCancelledError):
            await workspace_manager.get_workspace_by_id(WORKSPACE_ID, cancellation=token)

    async with anyio.create_task_group() as tg:
        tg.start_soon(_call)
        await arrived.wait()
        token.cancel()

    assert workspace_manager.workspaces == []


async def test_cancelled_token_sends_nothing(workspace_manager: WorkspaceManager, backend: FakeBackend) -> None:
    token = CancellationToken()
    token.cancel()

    with pytest.raises(OperationCancelledError):
        await workspace_manager.create_workspace("Sales", cancellation=token)
    with pytest.raises(OperationCancelledError):
        await workspace_manager.get_items_in_workspace(WORKSPACE_ID, cancellation=token)
    with pytest.raises(OperationCancelledError):
        await workspace_manager.get_folders_in_workspace(WORKSPACE_ID, cancellation=token)
    with pytest.raises(OperationCancelledError):
        await workspace_manager.create_folder(WORKSPACE_ID, "Drafts", cancellation=token)
    assert backend.calls == []
    assert workspace_manager.cache_state == CacheState.UNLOADED
