"""Satellite extension registry.

``add_extension`` is the single entry point between the core and satellite
extensions.  Each successful call records an ``ExtensionRegistration``,
indexes the satellite's handlers and providers by artifact type and hands
back the one shared ``ServiceCollection``.
"""

from __future__ import annotations

import inspect
import re
from collections.abc import Callable
from typing import TYPE_CHECKING

from loguru import logger

from fabric_core.errors import (
    DuplicateRegistrationError,
    ExtensionNotAllowedError,
    IncompatibleApiVersionError,
    ValidationError,
)
from fabric_core.events import EventEmitter

if TYPE_CHECKING:
    from fabric_core.models.extension import (
        ArtifactHandler,
        ExtensionDescriptor,
        LocalProjectTreeNodeProvider,
        ServiceCollection,
        TreeNodeProvider,
    )
    from fabric_core.telemetry import TelemetryContext

CORE_API_VERSION = "0.8"

_IDENTITY_RE = re.compile(r"^[A-Za-z0-9][\w-]*(\.[A-Za-z0-9][\w-]*)+$")
_VERSION_RE = re.compile(r"^(\d+)\.(\d+)(?:\.\d+)?(?:[-+].*)?$")


def parse_api_version(version: str) -> tuple[int, int]:
    """``"1.4"`` / ``"1.4.2"`` -> ``(1, 4)``.  Raises ``IncompatibleApiVersionError`` when malformed."""
    match = _VERSION_RE.match(version.strip()) if version else None
    if match is None:
        msg = f"API version '{version}' is not a valid major.minor version"
        raise IncompatibleApiVersionError(msg, "Malformed API version")
    return int(match.group(1)), int(match.group(2))


def is_compatible_api_version(extension_version: str, core_version: str = CORE_API_VERSION) -> bool:
    """Same major required; the extension's minor may not exceed the core's."""
    ext_major, ext_minor = parse_api_version(extension_version)
    core_major, core_minor = parse_api_version(core_version)
    return ext_major == core_major and ext_minor <= core_minor


class ExtensionRegistration:
    """Handle for one active satellite.  ``dispose()`` is idempotent."""

    def __init__(self, registry: ExtensionRegistry, descriptor: ExtensionDescriptor) -> None:
        self._registry = registry
        self.descriptor = descriptor
        self.disposed = False

    @property
    def identity(self) -> str:
        return self.descriptor.identity

    async def dispose(self) -> None:
        if self.disposed:
            return
        self.disposed = True
        self._registry._remove(self)
        hook = self.descriptor.dispose
        if hook is not None:
            result = hook()
            if inspect.isawaitable(result):
                await result
        logger.debug("Registry: disposed extension {}", self.identity)


class ExtensionRegistry:
    """Registry of active satellite extensions.

    Handler and provider maps are keyed by artifact type.  When two
    satellites contribute for the same type, the later one wins until it is
    disposed; disposal only removes entries the disposed satellite still
    owns.
    """

    def __init__(
        self,
        telemetry: TelemetryContext,
        *,
        allowed_extensions: list[str] | None = None,
        core_api_version: str = CORE_API_VERSION,
    ) -> None:
        self._telemetry = telemetry
        self._allowed = set(allowed_extensions or [])
        self._core_api_version = core_api_version
        self._services: ServiceCollection | None = None

        self._registrations: dict[str, ExtensionRegistration] = {}
        self._artifact_handlers: dict[str, tuple[str, ArtifactHandler]] = {}
        self._tree_node_providers: dict[str, tuple[str, TreeNodeProvider]] = {}
        self._local_project_providers: dict[str, tuple[str, LocalProjectTreeNodeProvider]] = {}

        self.on_extensions_updated: EventEmitter[str] = EventEmitter("extensions updated")

    @property
    def core_api_version(self) -> str:
        return self._core_api_version

    def attach_services(self, services: ServiceCollection) -> None:
        self._services = services

    # -- Registration ----------------------------------------------------------

    def add_extension(self, descriptor: ExtensionDescriptor) -> ServiceCollection:
        """Register a satellite and return the shared service collection.

        Raises ``ValidationError`` for a malformed identity,
        ``ExtensionNotAllowedError``, ``DuplicateRegistrationError`` or
        ``IncompatibleApiVersionError``.  Nothing is recorded on failure.
        """
        identity = descriptor.identity
        if not identity or not _IDENTITY_RE.match(identity):
            msg = f"Extension identity '{identity}' is not a reverse-domain id"
            raise ValidationError(msg, "Malformed extension identity")

        if self._allowed and identity not in self._allowed:
            msg = f"Extension {identity} is not allowed"
            raise ExtensionNotAllowedError(msg, "Extension is not allowed")

        if identity in self._registrations:
            msg = f"Extension {identity} is already registered"
            raise DuplicateRegistrationError(msg, "Extension is already registered")

        if not is_compatible_api_version(descriptor.api_version, self._core_api_version):
            msg = (
                f"Extension {identity} targets API version {descriptor.api_version}, "
                f"which is not compatible with core API version {self._core_api_version}"
            )
            raise IncompatibleApiVersionError(msg, "Incompatible extension API version")

        if self._services is None:
            msg = "Service collection not set"
            raise RuntimeError(msg)

        registration = ExtensionRegistration(self, descriptor)
        self._registrations[identity] = registration
        for handler in descriptor.artifact_handlers:
            self._artifact_handlers[handler.artifact_type] = (identity, handler)
        for provider in descriptor.tree_node_providers:
            self._tree_node_providers[provider.artifact_type] = (identity, provider)
        for provider in descriptor.local_project_tree_node_providers:
            self._local_project_providers[provider.artifact_type] = (identity, provider)

        logger.info("Registry: registered extension {} (api {})", identity, descriptor.api_version)
        self.on_extensions_updated.fire(identity)
        return self._services

    def _remove(self, registration: ExtensionRegistration) -> None:
        identity = registration.identity
        if self._registrations.get(identity) is registration:
            del self._registrations[identity]
        for index in (self._artifact_handlers, self._tree_node_providers, self._local_project_providers):
            for artifact_type in [t for t, (owner, _) in index.items() if owner == identity]:
                del index[artifact_type]
        self.on_extensions_updated.fire(identity)

    # -- Query -----------------------------------------------------------------

    def get_registration(self, identity: str) -> ExtensionRegistration | None:
        return self._registrations.get(identity)

    def is_registered(self, identity: str) -> bool:
        return identity in self._registrations

    @property
    def registrations(self) -> list[ExtensionRegistration]:
        """Active registrations in registration order."""
        return list(self._registrations.values())

    @property
    def artifact_types(self) -> set[str]:
        types: set[str] = set()
        for registration in self._registrations.values():
            types.update(registration.descriptor.artifact_types)
        types.update(self._artifact_handlers)
        return types

    def get_artifact_handler(self, artifact_type: str) -> ArtifactHandler | None:
        entry = self._artifact_handlers.get(artifact_type)
        return entry[1] if entry else None

    def get_tree_node_provider(self, artifact_type: str) -> TreeNodeProvider | None:
        entry = self._tree_node_providers.get(artifact_type)
        return entry[1] if entry else None

    def get_local_project_tree_node_provider(self, artifact_type: str) -> LocalProjectTreeNodeProvider | None:
        entry = self._local_project_providers.get(artifact_type)
        return entry[1] if entry else None

    def get_function_to_fetch_common_telemetry_properties(self) -> Callable[[], dict[str, str]]:
        """Return a closure that reads the telemetry defaults each time it is called."""

        def _fetch() -> dict[str, str]:
            return self._telemetry.default_properties()

        return _fetch

    # -- Lifecycle -------------------------------------------------------------

    async def dispose(self) -> None:
        """Dispose every registration in registration order.

        A failing satellite is logged and skipped so the rest still get
        disposed.
        """
        for registration in self.registrations:
            try:
                await registration.dispose()
            except Exception:
                logger.exception("Registry: disposing extension {} failed", registration.identity)
        self.on_extensions_updated.clear()
