"""Deep-link handling: open an artifact named by an external URI.

A link looks like::

    <scheme>://<host>/?workspaceId=<guid>&artifactId=<guid>[&Environment=<name>]

``DeepLinkHandler.handle`` walks a fixed sequence of states and never
raises for bad input: every rejection ends in ``ERROR`` with a log line
whose prefix identifies the case.

A link carrying ``signedUp=1`` is the sign-up completion callback rather
than an open request.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol
from urllib.parse import parse_qs, urlsplit

from loguru import logger

from fabric_core.environment import parse_environment_name
from fabric_core.errors import FabricError
from fabric_core.models.enums import DeepLinkState

if TYPE_CHECKING:
    from fabric_core.environment import EnvironmentProvider
    from fabric_core.errors import Notifier
    from fabric_core.managers.artifacts import ArtifactManager
    from fabric_core.managers.workspaces import WorkspaceManager
    from fabric_core.models.artifact import Artifact

GUID_RE = re.compile(r"^[0-9A-F]{8}-[0-9A-F]{4}-[0-9A-F]{4}-[0-9A-F]{4}-[0-9A-F]{12}$", re.IGNORECASE)

OPEN_CONFIRMATION = "Do you want to close the current folder and open your Fabric item?"
SIGNED_UP_MESSAGE = "Welcome to Microsoft Fabric! Your account setup is complete."
AUTO_ASSIGNED_MESSAGE = (
    "We've assigned you a Microsoft Fabric (Free) license for personal use. "
    "You're signed in and can create and explore Fabric items."
)


def is_guid(value: str | None) -> bool:
    return bool(value) and GUID_RE.match(value) is not None


class Confirmer(Protocol):
    async def confirm(self, message: str) -> bool | None:
        """Ask the user; ``None`` means the prompt was dismissed."""
        ...


@dataclass
class DeepLinkRequest:
    workspace_id: str
    artifact_id: str
    environment: str | None = None


@dataclass
class DeepLinkResult:
    state: DeepLinkState
    request: DeepLinkRequest | None = None
    artifact: Artifact | None = None
    opened: bool = False
    location: str | None = None
    """What the artifact handler returned from opening (path or URL)."""

    message: str | None = None
    history: list[DeepLinkState] = field(default_factory=list)


class DeepLinkHandler:
    def __init__(
        self,
        workspace_manager: WorkspaceManager,
        artifact_manager: ArtifactManager,
        environment: EnvironmentProvider,
        confirmer: Confirmer,
        *,
        notifier: Notifier | None = None,
    ) -> None:
        self._workspaces = workspace_manager
        self._artifacts = artifact_manager
        self._environment = environment
        self._confirmer = confirmer
        self._notifier = notifier

    async def handle(self, uri: str) -> DeepLinkResult:
        result = DeepLinkResult(state=DeepLinkState.PARSE, history=[DeepLinkState.PARSE])
        try:
            await self._run(uri, result)
        except FabricError as exc:
            self._fail(result, exc.message)
        except Exception as exc:
            logger.exception("Deep link handling failed")
            self._fail(result, f"Unable to open Fabric item: {exc}")
        return result

    # -- States ----------------------------------------------------------------

    async def _run(self, uri: str, result: DeepLinkResult) -> None:
        params = {k: v[0] for k, v in parse_qs(urlsplit(uri).query).items() if v}
        logger.info("Deep link received: {}", uri)

        if params.get("signedUp") == "1":
            await self._handle_sign_up(params, result)
            return

        environment = params.get("Environment")
        request = DeepLinkRequest(
            workspace_id=params.get("workspaceId", ""),
            artifact_id=params.get("artifactId", ""),
            environment=environment.upper() if environment else None,
        )
        result.request = request

        self._enter(result, DeepLinkState.VALIDATE_IDS)
        if not is_guid(request.workspace_id):
            self._fail(result, f"Invalid workspace identifier: '{request.workspace_id}'")
            return
        if not is_guid(request.artifact_id):
            self._fail(result, f"Invalid artifact identifier: '{request.artifact_id}'")
            return

        self._enter(result, DeepLinkState.RESOLVE_ENVIRONMENT)
        if request.environment is not None:
            target = parse_environment_name(request.environment)
            if target is None:
                self._fail(result, f"Environment parameter not valid: {request.environment}")
                return
            if await self._environment.switch_to(target):
                # Ids from the previous environment are meaningless now
                await self._workspaces.clear_prior_state_if_any()
                self._artifacts.clear_cache()

        self._enter(result, DeepLinkState.RESOLVE_WORKSPACE)
        workspace = await self._workspaces.get_workspace_by_id(request.workspace_id)
        if workspace is None:
            self._fail(result, f"Workspace not found: '{request.workspace_id}'")
            return

        self._enter(result, DeepLinkState.RESOLVE_ARTIFACT)
        items = await self._workspaces.get_items_in_workspace(workspace.id)
        artifact = next((a for a in items if a.id.lower() == request.artifact_id.lower()), None)
        if artifact is None:
            self._fail(
                result,
                f"Artifact not found in workspace: artifact '{request.artifact_id}', workspace '{request.workspace_id}'",
            )
            return
        result.artifact = artifact

        self._enter(result, DeepLinkState.CONFIRM_AND_OPEN)
        answer = await self._confirmer.confirm(OPEN_CONFIRMATION)
        if not answer:
            logger.info("Deep link: opening {} declined", artifact.id)
            self._enter(result, DeepLinkState.DONE)
            return

        await self._workspaces.set_current_workspace(workspace)
        result.location = await self._artifacts.open_artifact(artifact)
        result.opened = True
        self._enter(result, DeepLinkState.DONE)

    async def _handle_sign_up(self, params: dict[str, str], result: DeepLinkResult) -> None:
        logger.info("Deep link: sign-up completion callback received")
        await self._workspaces.refresh_connection()
        message = AUTO_ASSIGNED_MESSAGE if params.get("autoAssigned") == "1" else SIGNED_UP_MESSAGE
        if self._notifier is not None:
            self._notifier.show_information(message)
        result.message = message
        self._enter(result, DeepLinkState.DONE)

    # -- Helpers ---------------------------------------------------------------

    @staticmethod
    def _enter(result: DeepLinkResult, state: DeepLinkState) -> None:
        result.state = state
        result.history.append(state)

    def _fail(self, result: DeepLinkResult, message: str) -> None:
        logger.error(message)
        result.message = message
        self._enter(result, DeepLinkState.ERROR)
        if self._notifier is not None:
            self._notifier.show_error(message)
