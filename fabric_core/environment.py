"""Fabric environments and the provider that tracks the active one."""

from __future__ import annotations

from dataclasses import dataclass

from loguru import logger

from fabric_core.configuration import ENVIRONMENT_KEY, ConfigurationProvider
from fabric_core.events import EventEmitter, Subscription
from fabric_core.models.enums import FabricEnvironmentName

_PPE_CLIENT_ID = "5bc58d85-1abe-45e0-bdaf-f487e3ce7bfb"
_PROD_CLIENT_ID = "02fe4832-64e1-42d2-a605-d14958774a2e"
_PPE_SCOPES = ("https://analysis.windows-int.net/powerbi/api/.default",)
_PROD_SCOPES = ("https://analysis.windows.net/powerbi/api/.default",)


@dataclass(frozen=True)
class FabricEnvironmentSettings:
    env: FabricEnvironmentName
    client_id: str
    scopes: tuple[str, ...]
    shared_uri: str
    """REST endpoint, without trailing slash."""

    portal_uri: str
    """Portal host name, without scheme."""


FABRIC_ENVIRONMENTS: dict[FabricEnvironmentName, FabricEnvironmentSettings] = {
    FabricEnvironmentName.MOCK: FabricEnvironmentSettings(
        env=FabricEnvironmentName.MOCK, client_id="", scopes=(), shared_uri="", portal_uri=""
    ),
    FabricEnvironmentName.ONEBOX: FabricEnvironmentSettings(
        env=FabricEnvironmentName.ONEBOX,
        client_id=_PPE_CLIENT_ID,
        scopes=_PPE_SCOPES,
        shared_uri="https://onebox-redirect.analysis.windows-int.net",
        portal_uri="portal.analysis.windows-int.net",
    ),
    FabricEnvironmentName.EDOG: FabricEnvironmentSettings(
        env=FabricEnvironmentName.EDOG,
        client_id=_PPE_CLIENT_ID,
        scopes=_PPE_SCOPES,
        shared_uri="https://powerbiapi.analysis-df.windows.net",
        portal_uri="edog.analysis-df.windows.net",
    ),
    FabricEnvironmentName.EDOGONEBOX: FabricEnvironmentSettings(
        env=FabricEnvironmentName.EDOGONEBOX,
        client_id=_PPE_CLIENT_ID,
        scopes=_PPE_SCOPES,
        shared_uri="https://powerbiapi.analysis-df.windows.net",
        portal_uri="edog.analysis-df.windows.net",
    ),
    FabricEnvironmentName.DAILY: FabricEnvironmentSettings(
        env=FabricEnvironmentName.DAILY,
        client_id=_PROD_CLIENT_ID,
        scopes=_PROD_SCOPES,
        shared_uri="https://dailyapi.fabric.microsoft.com",
        portal_uri="daily.fabric.microsoft.com",
    ),
    FabricEnvironmentName.DXT: FabricEnvironmentSettings(
        env=FabricEnvironmentName.DXT,
        client_id=_PROD_CLIENT_ID,
        scopes=_PROD_SCOPES,
        shared_uri="https://dxtapi.fabric.microsoft.com",
        portal_uri="dxt.fabric.microsoft.com",
    ),
    FabricEnvironmentName.MSIT: FabricEnvironmentSettings(
        env=FabricEnvironmentName.MSIT,
        client_id=_PROD_CLIENT_ID,
        scopes=_PROD_SCOPES,
        shared_uri="https://msitapi.fabric.microsoft.com",
        portal_uri="msit.fabric.microsoft.com",
    ),
    FabricEnvironmentName.PROD: FabricEnvironmentSettings(
        env=FabricEnvironmentName.PROD,
        client_id=_PROD_CLIENT_ID,
        scopes=_PROD_SCOPES,
        shared_uri="https://api.fabric.microsoft.com",
        portal_uri="app.fabric.microsoft.com",
    ),
}


def parse_environment_name(name: str | None) -> FabricEnvironmentName | None:
    """Case-insensitive lookup; ``None`` for unknown or empty names."""
    if not name:
        return None
    try:
        return FabricEnvironmentName(name.strip().upper())
    except ValueError:
        return None


def is_known_environment(name: str | None) -> bool:
    return parse_environment_name(name) is not None


def get_fabric_environment(name: str | None) -> FabricEnvironmentSettings:
    """Return the settings for ``name``, falling back to PROD when unknown."""
    env = parse_environment_name(name)
    if env is None:
        logger.warning("Unknown Fabric environment {!r}, using {}", name, FabricEnvironmentName.PROD)
        env = FabricEnvironmentName.PROD
    return FABRIC_ENVIRONMENTS[env]


class EnvironmentProvider:
    """Resolves the active environment from configuration.

    ``base_url`` replaces the environment's REST endpoint, which lets tests
    and proxies point the client elsewhere without a custom environment.
    """

    def __init__(self, config: ConfigurationProvider, *, base_url: str | None = None) -> None:
        self._config = config
        self._base_url = base_url.rstrip("/") if base_url else None
        self.on_did_environment_change: EventEmitter[str] = EventEmitter("environment change")
        self._subscription: Subscription = config.on_did_configuration_change.subscribe(self._on_config_change)

    def get_current(self) -> FabricEnvironmentSettings:
        current = get_fabric_environment(self._config.get(ENVIRONMENT_KEY, FabricEnvironmentName.PROD))
        if self._base_url is not None:
            return FabricEnvironmentSettings(
                env=current.env,
                client_id=current.client_id,
                scopes=current.scopes,
                shared_uri=self._base_url,
                portal_uri=current.portal_uri,
            )
        return current

    async def switch_to(self, name: FabricEnvironmentName) -> bool:
        """Persist ``name`` as the active environment.  Returns whether it changed."""
        if self.get_current().env == name:
            return False
        logger.info("Switching Fabric environment to {}", name)
        await self._config.update(ENVIRONMENT_KEY, str(name))
        return True

    async def _on_config_change(self, key: str) -> None:
        if key == ENVIRONMENT_KEY:
            await self.on_did_environment_change.fire_async(str(self.get_current().env))

    def dispose(self) -> None:
        self._subscription.dispose()
        self.on_did_environment_change.clear()
