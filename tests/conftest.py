"""Shared test fixtures.

Everything runs against ``FakeApiClient``: a ``FakeBackend`` (see
``fakes.py``) routes each outgoing request by method and path to a canned
response.  No network, no Docker.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Iterator
from pathlib import Path

import pytest
from fakes import BASE_URL, FakeBackend

from fabric_core.client.auth import StaticTokenProvider
from fabric_core.client.fake import FakeApiClient
from fabric_core.configuration import ENVIRONMENT_KEY, ConfigurationProvider
from fabric_core.environment import EnvironmentProvider
from fabric_core.folders import LocalFolderManager
from fabric_core.managers.artifacts import ArtifactManager
from fabric_core.managers.workspaces import WorkspaceManager
from fabric_core.models.extension import ServiceCollection
from fabric_core.registry import ExtensionRegistry
from fabric_core.settings import _get_settings_cached
from fabric_core.store.local import MemorySettingsStore
from fabric_core.telemetry import TelemetryContext


@pytest.fixture
def settings_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Iterator[pytest.MonkeyPatch]:
    """Point FABRIC_* paths at ``tmp_path`` and reset the settings cache around the test."""
    monkeypatch.setenv("FABRIC_SETTINGS_PATH", str(tmp_path / "settings.json"))
    monkeypatch.setenv("FABRIC_WORKSPACES_ROOT", str(tmp_path / "Workspaces"))
    _get_settings_cached.cache_clear()
    yield monkeypatch
    _get_settings_cached.cache_clear()


# ---------------------------------------------------------------------------
# Core graph
# ---------------------------------------------------------------------------


@pytest.fixture
def store() -> MemorySettingsStore:
    return MemorySettingsStore()


@pytest.fixture
async def config(store: MemorySettingsStore) -> ConfigurationProvider:
    provider = ConfigurationProvider(store, defaults={ENVIRONMENT_KEY: "PROD"})
    await provider.load()
    return provider


@pytest.fixture
def environment(config: ConfigurationProvider) -> EnvironmentProvider:
    return EnvironmentProvider(config, base_url=BASE_URL)


@pytest.fixture
def tokens() -> StaticTokenProvider:
    return StaticTokenProvider("test-token")


@pytest.fixture
async def api_client(environment: EnvironmentProvider, tokens: StaticTokenProvider) -> AsyncIterator[FakeApiClient]:
    client = FakeApiClient(environment, tokens)
    yield client
    await client.aclose()


@pytest.fixture
def backend(api_client: FakeApiClient) -> FakeBackend:
    fake = FakeBackend()
    api_client.respond_with(fake)
    return fake


@pytest.fixture
def folders(config: ConfigurationProvider, environment: EnvironmentProvider, tmp_path: Path) -> LocalFolderManager:
    return LocalFolderManager(config, environment, tmp_path / "Workspaces")


@pytest.fixture
def workspace_manager(
    api_client: FakeApiClient,
    environment: EnvironmentProvider,
    config: ConfigurationProvider,
    folders: LocalFolderManager,
    tokens: StaticTokenProvider,
) -> WorkspaceManager:
    return WorkspaceManager(api_client, environment, config, folders, tokens)


@pytest.fixture
def artifact_manager(
    api_client: FakeApiClient, workspace_manager: WorkspaceManager, environment: EnvironmentProvider
) -> ArtifactManager:
    return ArtifactManager(api_client, workspace_manager, environment, lro_poll_interval=0)


@pytest.fixture
def telemetry() -> TelemetryContext:
    return TelemetryContext(session_id="session-1", machine_id="machine-1")


@pytest.fixture
def services(
    workspace_manager: WorkspaceManager, artifact_manager: ArtifactManager, api_client: FakeApiClient
) -> ServiceCollection:
    return ServiceCollection(workspace_manager=workspace_manager, artifact_manager=artifact_manager, api_client=api_client)


@pytest.fixture
def registry(
    telemetry: TelemetryContext, services: ServiceCollection, artifact_manager: ArtifactManager
) -> ExtensionRegistry:
    reg = ExtensionRegistry(telemetry)
    reg.attach_services(services)
    artifact_manager.set_handler_resolver(reg.get_artifact_handler)
    return reg
