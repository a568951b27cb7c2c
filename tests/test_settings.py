"""Unit tests for process settings, environments and the service graph."""

from __future__ import annotations

from pathlib import Path

import pytest

from fabric_core.app import FabricCore
from fabric_core.configuration import ENVIRONMENT_KEY, ConfigurationProvider
from fabric_core.environment import (
    FABRIC_ENVIRONMENTS,
    EnvironmentProvider,
    get_fabric_environment,
    is_known_environment,
    parse_environment_name,
)
from fabric_core.managers.capacities import CapacityManager
from fabric_core.models.enums import FabricEnvironmentName
from fabric_core.models.extension import ExtensionDescriptor
from fabric_core.registry import CORE_API_VERSION
from fabric_core.settings import FabricSettings, get_settings
from fabric_core.store.local import MemorySettingsStore

# ---------------------------------------------------------------------------
# FabricSettings
# ---------------------------------------------------------------------------


def test_settings_from_env(settings_env: pytest.MonkeyPatch, tmp_path: Path) -> None:
    settings_env.setenv("FABRIC_LOG_LEVEL", "DEBUG")
    settings_env.setenv("FABRIC_ENVIRONMENT", "MSIT")
    settings_env.setenv("FABRIC_TOKEN", "secret-token")
    settings_env.setenv("FABRIC_ALLOWED_EXTENSIONS", '["fabric.notebooks"]')

    settings = get_settings()

    assert settings.log_level == "DEBUG"
    assert settings.environment == "MSIT"
    assert settings.token is not None
    assert settings.token.get_secret_value() == "secret-token"
    assert "secret-token" not in repr(settings)
    assert settings.allowed_extensions == ["fabric.notebooks"]
    assert settings.settings_path == tmp_path / "settings.json"
    assert get_settings() is settings


def test_settings_defaults(settings_env: pytest.MonkeyPatch) -> None:
    settings = FabricSettings()

    assert settings.environment == "PROD"
    assert settings.api_timeout == 30.0
    assert settings.max_get_retries == 2
    assert settings.base_url is None


# ---------------------------------------------------------------------------
# Environment table
# ---------------------------------------------------------------------------


def test_environment_table_is_complete() -> None:
    assert set(FABRIC_ENVIRONMENTS) == set(FabricEnvironmentName)
    for name, env in FABRIC_ENVIRONMENTS.items():
        assert env.env == name
        assert not env.shared_uri.endswith("/")


def test_parse_environment_name() -> None:
    assert parse_environment_name("msit") == FabricEnvironmentName.MSIT
    assert parse_environment_name(" Daily ") == FabricEnvironmentName.DAILY
    assert parse_environment_name("moon") is None
    assert parse_environment_name(None) is None
    assert is_known_environment("PROD")
    assert not is_known_environment("")


def test_get_fabric_environment_falls_back_to_prod() -> None:
    assert get_fabric_environment("nowhere").env == FabricEnvironmentName.PROD
    assert get_fabric_environment("EDOG").portal_uri == "edog.analysis-df.windows.net"


async def test_environment_provider_switch(config: ConfigurationProvider) -> None:
    provider = EnvironmentProvider(config)
    seen: list[str] = []
    provider.on_did_environment_change.subscribe(seen.append)

    assert provider.get_current().shared_uri == "https://api.fabric.microsoft.com"
    assert await provider.switch_to(FabricEnvironmentName.PROD) is False
    assert await provider.switch_to(FabricEnvironmentName.DXT) is True

    assert provider.get_current().env == FabricEnvironmentName.DXT
    assert config.get(ENVIRONMENT_KEY) == "DXT"
    assert seen == ["DXT"]

    provider.dispose()
    await config.update(ENVIRONMENT_KEY, "PROD")
    assert seen == ["DXT"]


async def test_environment_provider_base_url(config: ConfigurationProvider) -> None:
    provider = EnvironmentProvider(config, base_url="https://proxy.test/")

    current = provider.get_current()

    assert current.shared_uri == "https://proxy.test"
    assert current.portal_uri == "app.fabric.microsoft.com"


# ---------------------------------------------------------------------------
# FabricCore
# ---------------------------------------------------------------------------


async def test_core_wiring(tmp_path: Path) -> None:
    settings = FabricSettings(
        environment="DAILY",
        workspaces_root=tmp_path / "Workspaces",
        settings_path=tmp_path / "settings.json",
        token="t",
        tenant_id="tenant-1",
    )
    store = MemorySettingsStore()

    async with await FabricCore.create(settings, store=store) as core:
        assert core.environment.get_current().env == FabricEnvironmentName.DAILY
        assert core.telemetry.default_properties()["common.fabricenvironment"] == "DAILY"
        assert core.telemetry.default_properties()["common.tenantid"] == "tenant-1"
        assert isinstance(core.capacity_manager, CapacityManager)

        services = core.registry.add_extension(
            ExtensionDescriptor(identity="fabric.notebooks", api_version=CORE_API_VERSION)
        )
        assert services is core.services
        assert services.workspace_manager is core.workspace_manager

        await core.environment.switch_to(FabricEnvironmentName.MSIT)
        assert core.telemetry.default_properties()["common.fabricenvironment"] == "MSIT"
        assert (await store.load())[ENVIRONMENT_KEY] == "MSIT"

    assert core.registry.registrations == []


async def test_core_without_tenant(tmp_path: Path) -> None:
    settings = FabricSettings(workspaces_root=tmp_path, settings_path=tmp_path / "settings.json")

    async with await FabricCore.create(settings, store=MemorySettingsStore()) as core:
        assert "common.tenantid" not in core.telemetry.default_properties()


async def test_core_without_confirmer_declines(tmp_path: Path) -> None:
    settings = FabricSettings(workspaces_root=tmp_path, settings_path=tmp_path / "settings.json")

    async with await FabricCore.create(settings, store=MemorySettingsStore()) as core:
        result = await core.deep_link_handler.handle("vscode://fabric/?workspaceId=bad&artifactId=bad")

    assert result.message == "Invalid workspace identifier: 'bad'"
