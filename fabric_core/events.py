"""Minimal observer list.

Events carry a lightweight value (usually a property name); subscribers pull
current state from the owner instead of trusting a payload snapshot.
"""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable
from typing import Generic, TypeVar

from loguru import logger

T = TypeVar("T")

Listener = Callable[[T], Awaitable[None] | None]


class Subscription:
    def __init__(self, remove: Callable[[], None]) -> None:
        self._remove: Callable[[], None] | None = remove

    def dispose(self) -> None:
        if self._remove is not None:
            self._remove()
            self._remove = None


class EventEmitter(Generic[T]):
    """Ordered list of listeners.

    ``fire`` calls synchronous listeners and schedules nothing: coroutine
    listeners are only awaited by ``fire_async``.  A failing listener is
    logged and does not stop the rest.
    """

    def __init__(self, name: str = "event") -> None:
        self._name = name
        self._listeners: list[Listener[T]] = []

    def subscribe(self, listener: Listener[T]) -> Subscription:
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return Subscription(_remove)

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def fire(self, value: T) -> None:
        for listener in list(self._listeners):
            try:
                result = listener(value)
            except Exception:
                logger.exception("Listener for {} failed", self._name)
                continue
            if inspect.isawaitable(result):
                # Close the coroutine so it is not reported as never awaited
                result.close()  # type: ignore[union-attr]
                logger.warning("Async listener for {} ignored by fire(); use fire_async()", self._name)

    async def fire_async(self, value: T) -> None:
        for listener in list(self._listeners):
            try:
                result = listener(value)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Listener for {} failed", self._name)

    def clear(self) -> None:
        self._listeners.clear()
