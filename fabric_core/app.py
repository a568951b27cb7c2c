"""Service graph construction and teardown.

``FabricCore`` owns every long-lived object of the core.  Build it with
``FabricCore.create`` (explicit collaborators) or
``FabricCore.from_settings`` (environment variables), use it as an async
context manager, and hand ``core.services`` to satellites through
``core.registry.add_extension``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from loguru import logger

from fabric_core.client.auth import StaticTokenProvider, TokenProvider
from fabric_core.client.http import HttpApiClient
from fabric_core.configuration import ENVIRONMENT_KEY, ConfigurationProvider
from fabric_core.deeplink import DeepLinkHandler
from fabric_core.environment import EnvironmentProvider
from fabric_core.folders import LocalFolderManager
from fabric_core.managers.artifacts import ArtifactManager
from fabric_core.managers.capacities import CapacityManager
from fabric_core.managers.workspaces import WorkspaceManager
from fabric_core.models.extension import ServiceCollection
from fabric_core.registry import ExtensionRegistry
from fabric_core.settings import FabricSettings, get_settings
from fabric_core.store.local import LocalSettingsStore
from fabric_core.telemetry import TelemetryContext
from fabric_core.tree import WorkspaceTreeBuilder

if TYPE_CHECKING:
    from types import TracebackType

    from fabric_core.client.base import ApiClient
    from fabric_core.deeplink import Confirmer
    from fabric_core.errors import Notifier
    from fabric_core.store.base import SettingsStore


class _DeclineConfirmer:
    async def confirm(self, message: str) -> bool | None:
        logger.info("No confirmer configured, declining: {}", message)
        return False


@dataclass
class FabricCore:
    settings: FabricSettings
    config: ConfigurationProvider
    environment: EnvironmentProvider
    telemetry: TelemetryContext
    api_client: ApiClient
    workspace_manager: WorkspaceManager
    artifact_manager: ArtifactManager
    capacity_manager: CapacityManager
    registry: ExtensionRegistry
    deep_link_handler: DeepLinkHandler
    tree_builder: WorkspaceTreeBuilder
    services: ServiceCollection

    @classmethod
    async def create(
        cls,
        settings: FabricSettings,
        *,
        store: SettingsStore | None = None,
        token_provider: TokenProvider | None = None,
        api_client: ApiClient | None = None,
        confirmer: Confirmer | None = None,
        notifier: Notifier | None = None,
        lro_poll_interval: float | None = None,
    ) -> FabricCore:
        """Wire the graph.  ``api_client`` defaults to an ``HttpApiClient`` built from ``settings``."""
        config = ConfigurationProvider(
            store or LocalSettingsStore(settings.settings_path),
            defaults={ENVIRONMENT_KEY: settings.environment},
        )
        await config.load()
        environment = EnvironmentProvider(config, base_url=settings.base_url)

        telemetry = TelemetryContext()
        telemetry.set_environment(str(environment.get_current().env))
        telemetry.set_tenant(settings.tenant_id)
        environment.on_did_environment_change.subscribe(telemetry.set_environment)

        tokens = token_provider or StaticTokenProvider(settings.token)
        if api_client is None:
            api_client = HttpApiClient(
                environment,
                tokens,
                timeout=settings.api_timeout,
                max_get_retries=settings.max_get_retries,
                debug_logging=settings.debug_logging,
            )

        folders = LocalFolderManager(config, environment, settings.workspaces_root, tenant_name=settings.tenant_name)
        workspace_manager = WorkspaceManager(api_client, environment, config, folders, tokens)
        artifact_manager = ArtifactManager(
            api_client, workspace_manager, environment, notifier=notifier, lro_poll_interval=lro_poll_interval
        )
        capacity_manager = CapacityManager(api_client)

        registry = ExtensionRegistry(telemetry, allowed_extensions=settings.allowed_extensions)
        services = ServiceCollection(
            workspace_manager=workspace_manager,
            artifact_manager=artifact_manager,
            api_client=api_client,
        )
        registry.attach_services(services)
        artifact_manager.set_handler_resolver(registry.get_artifact_handler)

        deep_link_handler = DeepLinkHandler(
            workspace_manager,
            artifact_manager,
            environment,
            confirmer or _DeclineConfirmer(),
            notifier=notifier,
        )
        tree_builder = WorkspaceTreeBuilder(registry, workspace_manager, artifact_manager, environment)

        logger.info("Fabric core ready (environment={})", environment.get_current().env)
        return cls(
            settings=settings,
            config=config,
            environment=environment,
            telemetry=telemetry,
            api_client=api_client,
            workspace_manager=workspace_manager,
            artifact_manager=artifact_manager,
            capacity_manager=capacity_manager,
            registry=registry,
            deep_link_handler=deep_link_handler,
            tree_builder=tree_builder,
            services=services,
        )

    @classmethod
    async def from_settings(cls, **kwargs: object) -> FabricCore:
        return await cls.create(get_settings(), **kwargs)  # type: ignore[arg-type]

    async def aclose(self) -> None:
        """Dispose satellites first, then the managers, then the transport."""
        await self.registry.dispose()
        self.artifact_manager.dispose()
        self.workspace_manager.dispose()
        self.environment.dispose()
        await self.api_client.aclose()
        logger.info("Fabric core closed")

    async def __aenter__(self) -> FabricCore:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()
