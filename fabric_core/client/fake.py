"""Test double for the API client.

``FakeApiClient`` is a real ``HttpApiClient`` built on an
``httpx.MockTransport``: URL resolution, auth, headers, retry and response
parsing all run unchanged, only the network hop is replaced.  At most one
interceptor is active; setting another replaces it, clearing it restores
pass-through to ``passthrough_transport``.
"""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

import httpx

from fabric_core.client.auth import StaticTokenProvider
from fabric_core.client.http import HttpApiClient

if TYPE_CHECKING:
    from fabric_core.client.auth import TokenProvider
    from fabric_core.environment import EnvironmentProvider

Interceptor = Callable[[httpx.Request], httpx.Response | Awaitable[httpx.Response]]


class FakeApiClient(HttpApiClient):
    """``HttpApiClient`` whose transport can be programmed per test.

    Every request that reaches the transport is appended to ``requests``,
    including those served by pass-through.
    """

    def __init__(
        self,
        environment: EnvironmentProvider,
        token_provider: TokenProvider | None = None,
        *,
        passthrough_transport: httpx.AsyncBaseTransport | None = None,
        **kwargs: Any,
    ) -> None:
        kwargs.setdefault("retry_delay", 0.0)
        super().__init__(
            environment,
            token_provider or StaticTokenProvider("fake-token"),
            transport=httpx.MockTransport(self._dispatch),
            **kwargs,
        )
        self._passthrough = passthrough_transport or httpx.AsyncHTTPTransport()
        self._interceptor: Interceptor | None = None
        self.requests: list[httpx.Request] = []

    # -- Interceptor -----------------------------------------------------------

    def get_interceptor(self) -> Interceptor | None:
        return self._interceptor

    def set_interceptor(self, interceptor: Interceptor | None) -> None:
        self._interceptor = interceptor

    def clear_interceptor(self) -> None:
        self._interceptor = None

    # -- Canned responders -----------------------------------------------------

    def respond_with_json(self, status: int, body: Any, headers: dict[str, str] | None = None) -> None:
        self.set_interceptor(lambda _request: httpx.Response(status, json=body, headers=headers))

    def respond_with_text(self, status: int, text: str, headers: dict[str, str] | None = None) -> None:
        self.set_interceptor(lambda _request: httpx.Response(status, text=text, headers=headers))

    def respond_with(self, factory: Interceptor) -> None:
        """Compute each response from the outgoing ``httpx.Request``."""
        self.set_interceptor(factory)

    def throw_on_send(self, error: BaseException) -> None:
        """Raise ``error`` from the transport, e.g. ``httpx.ReadTimeout`` or ``httpx.ConnectError``."""

        def _raise(_request: httpx.Request) -> httpx.Response:
            raise error

        self.set_interceptor(_raise)

    # -- Transport -------------------------------------------------------------

    async def _dispatch(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        interceptor = self._interceptor
        if interceptor is None:
            return await self._passthrough.handle_async_request(request)
        result = interceptor(request)
        if inspect.isawaitable(result):
            result = await result
        return result

    @property
    def last_request(self) -> httpx.Request | None:
        return self.requests[-1] if self.requests else None

    async def aclose(self) -> None:
        await super().aclose()
        await self._passthrough.aclose()
