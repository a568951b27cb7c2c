"""Caller-driven cancellation of in-flight operations.

A ``CancellationToken`` is created by the caller and passed to manager
methods.  ``run_cancellable`` runs the remote part of the operation inside an
anyio cancel scope bound to the token, so ``token.cancel()`` interrupts the
pending I/O and the call resolves to ``OperationCancelledError``.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import TypeVar

import anyio

from fabric_core.errors import OperationCancelledError

T = TypeVar("T")


class CancellationToken:
    def __init__(self) -> None:
        self._cancelled = False
        self._scopes: set[anyio.CancelScope] = set()

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True
        for scope in list(self._scopes):
            scope.cancel()

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise OperationCancelledError

    def _attach(self, scope: anyio.CancelScope) -> None:
        self._scopes.add(scope)
        if self._cancelled:
            scope.cancel()

    def _detach(self, scope: anyio.CancelScope) -> None:
        self._scopes.discard(scope)


async def run_cancellable(token: CancellationToken | None, fn: Callable[[], Awaitable[T]]) -> T:
    """Await ``fn()``; raise ``OperationCancelledError`` if ``token`` fires first.

    Results of a call that completes after cancellation was requested are
    discarded, so callers never apply them to their caches.
    """
    if token is None:
        return await fn()

    token.raise_if_cancelled()
    with anyio.CancelScope() as scope:
        token._attach(scope)
        try:
            result = await fn()
        finally:
            token._detach(scope)
        if not token.is_cancelled:
            return result
    raise OperationCancelledError
