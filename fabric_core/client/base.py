"""API client interface shared by the production client and its test double."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from fabric_core.models.api import ApiRequestOptions, ApiResponse


@runtime_checkable
class ApiClient(Protocol):
    async def send_request(self, options: ApiRequestOptions) -> ApiResponse:
        """Send one request.

        Non-2xx statuses are returned, not raised; managers decide what a
        status means.  A transport timeout comes back as status 408.
        """
        ...

    async def aclose(self) -> None: ...
