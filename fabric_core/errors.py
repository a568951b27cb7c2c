"""Error taxonomy for the core.

Every domain error derives from ``FabricError``.  Errors that also have a
natural builtin meaning (bad input, absence) subclass that builtin too, so
callers can catch either.

``message`` is for humans and may contain identifiers.  ``non_localized_message``
must not, so that log aggregation can group occurrences.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from enum import StrEnum
from typing import Any, Protocol, TypeVar

from loguru import logger

T = TypeVar("T")


class NotificationLevel(StrEnum):
    ERROR = "error"
    INFORMATION = "information"
    NONE = "none"


class FabricError(Exception):
    """Base class for all core errors."""

    def __init__(
        self,
        message: str,
        non_localized_message: str | None = None,
        *,
        notify: NotificationLevel = NotificationLevel.ERROR,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.non_localized_message = non_localized_message or message
        self.notify = notify
        self.processed = False


class ValidationError(FabricError, ValueError):
    """Malformed input, detected before any I/O."""


class NotFoundError(FabricError, LookupError):
    """The requested resource does not exist."""


class ApiRequestError(FabricError):
    """A remote call returned a non-success status."""

    def __init__(self, status: int, body: str, *, parsed_body: Any = None, url: str | None = None) -> None:
        target = f" {url}" if url else ""
        super().__init__(f"Request failed with status {status}{target}: {body}", f"Request failed with status {status}")
        self.status = status
        self.body = body
        self.parsed_body = parsed_body
        self.url = url


class ApiTimeoutError(ApiRequestError):
    """The transport gave up on the request (reported as status 408)."""


class OperationFailedError(ApiRequestError):
    """A long-running operation finished with status ``Failed``.

    ``parsed_body`` is the operation status body; its ``error`` member
    carries the backend's error code and message.
    """

    def __init__(self, status: int, body: str, *, parsed_body: Any = None, url: str | None = None) -> None:
        super().__init__(status, body, parsed_body=parsed_body, url=url)
        error = parsed_body.get("error") if isinstance(parsed_body, dict) else None
        self.error_code = error.get("errorCode") if isinstance(error, dict) else None
        detail = f": {self.error_code}" if self.error_code else ""
        self.message = f"Operation failed{detail}"
        self.non_localized_message = "Long-running operation failed"
        self.args = (self.message,)


class DuplicateRegistrationError(FabricError):
    """An extension with the same identity is already registered."""


class IncompatibleApiVersionError(FabricError):
    """The extension targets an API version the core does not serve."""


class ExtensionNotAllowedError(FabricError):
    """The extension identity is not on the configured allow-list."""


class OperationCancelledError(FabricError):
    """The caller cancelled the operation before it completed."""

    def __init__(self, message: str = "Operation cancelled") -> None:
        super().__init__(message, notify=NotificationLevel.NONE)


class NotConnectedError(FabricError):
    """No sign-in is available to authorize requests."""

    def __init__(self, message: str = "Not signed in to Fabric") -> None:
        super().__init__(message, notify=NotificationLevel.INFORMATION)


class ContextMenuBusyError(FabricError):
    """Another context-menu action is still executing."""

    def __init__(self, requested: str, running: str) -> None:
        super().__init__(
            f"Context menu action '{requested}' ignored while already executing '{running}'",
            "Context menu action ignored while another is executing",
            notify=NotificationLevel.INFORMATION,
        )
        self.requested = requested
        self.running = running


# ---------------------------------------------------------------------------
# UI boundary
# ---------------------------------------------------------------------------


class Notifier(Protocol):
    """Host callback that shows a message to the user."""

    def show_error(self, message: str) -> None: ...

    def show_information(self, message: str) -> None: ...


def notify_error(error: FabricError, notifier: Notifier | None) -> None:
    if notifier is None:
        return
    if error.notify == NotificationLevel.ERROR:
        notifier.show_error(error.message)
    elif error.notify == NotificationLevel.INFORMATION:
        notifier.show_information(error.message)


@asynccontextmanager
async def fabric_action(description: str, *, notifier: Notifier | None = None) -> AsyncIterator[None]:
    """Log and surface errors raised inside an action, then re-raise them.

    A ``FabricError`` is reported once: nested ``fabric_action`` blocks see
    ``processed`` already set and only re-raise.
    """
    try:
        yield
    except FabricError as exc:
        if not exc.processed:
            exc.processed = True
            logger.error("{} failed: {}", description, exc.non_localized_message)
            notify_error(exc, notifier)
        raise
    except Exception:
        logger.exception("{} failed with an unexpected error", description)
        if notifier is not None:
            notifier.show_error(f"{description} failed")
        raise


async def with_error_handling(
    description: str,
    fn: Callable[[], Awaitable[T]],
    *,
    notifier: Notifier | None = None,
) -> T | None:
    """Run ``fn`` at a UI boundary: errors are reported and swallowed."""
    try:
        async with fabric_action(description, notifier=notifier):
            return await fn()
    except Exception:  # noqa: BLE001
        # Already logged by fabric_action
        return None
