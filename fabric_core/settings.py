"""Process configuration loaded from FABRIC_* environment variables."""

from __future__ import annotations

from pathlib import Path

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class FabricSettings(BaseSettings):
    """Fabric core settings.

    All fields are read from environment variables with the ``FABRIC_`` prefix.
    For example, ``FABRIC_LOG_LEVEL=DEBUG`` maps to ``log_level``.

    User-editable preferences that change at runtime (the active environment,
    the workspace folder mapping) live in the JSON settings file instead, see
    ``fabric_core.store``.  ``environment`` here only seeds that file.
    """

    model_config = SettingsConfigDict(
        env_prefix="FABRIC_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # -- Logging ---------------------------------------------------------------
    log_level: str = "INFO"
    debug_logging: bool = False
    """Log every request/response pair issued by the API client."""

    # -- Environment -----------------------------------------------------------
    environment: str = "PROD"
    """Initial Fabric environment when the settings file does not name one."""

    base_url: str | None = None
    """Override the environment's shared API endpoint (useful against a proxy)."""

    # -- Transport -------------------------------------------------------------
    api_timeout: float = 30.0
    """Seconds before an outbound request is abandoned and reported as 408."""

    max_get_retries: int = 2
    """Extra attempts for idempotent GET requests on transport errors and 5xx."""

    # -- Auth ------------------------------------------------------------------
    token: SecretStr | None = None
    """Bearer token for the Fabric REST API.  Acquisition is the host's job."""

    tenant_id: str | None = None
    """Tenant the token was issued for.  Reported as ``common.tenantid`` in telemetry."""

    tenant_name: str | None = None
    """Optional tenant display name, inserted into default workspace folders."""

    # -- Local state -----------------------------------------------------------
    workspaces_root: Path = Field(default_factory=lambda: Path.home() / "Workspaces")
    """Parent directory for default workspace folders."""

    settings_path: Path = Field(default_factory=lambda: Path.home() / ".fabric-core" / "settings.json")

    # -- Extensions ------------------------------------------------------------
    allowed_extensions: list[str] = Field(default_factory=list)
    """Satellite identities permitted to register.  Empty allows any."""


def get_settings() -> FabricSettings:
    """Return a cached settings instance.

    Reads from environment variables and ``.env`` on first call, then returns
    the same object.  Call ``_get_settings_cached.cache_clear()`` in tests to
    force a re-read after overriding env vars.
    """
    return _get_settings_cached()


def _get_settings_cached() -> FabricSettings:
    """Inner function wrapped by lru_cache (allows type-safe cache_clear)."""
    return FabricSettings()


from functools import lru_cache  # noqa: E402

_get_settings_cached = lru_cache(maxsize=1)(_get_settings_cached)
