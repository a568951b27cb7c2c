"""httpx-based API client.

A request passes through an ordered list of stages before it is sent::

    resolve_url -> authenticate -> apply_headers -> trace -> send (with retry)

Each stage is an async callable that mutates a ``PreparedRequest``.  Hosts
may append stages (``add_stage``) to decorate requests further.  The
transport underneath is an ``httpx.AsyncBaseTransport`` chosen at
construction time; ``FakeApiClient`` injects one that intercepts requests.
"""

from __future__ import annotations

import json
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import anyio
import httpx
from loguru import logger

from fabric_core.errors import ApiRequestError, NotConnectedError
from fabric_core.models.api import ApiRequestOptions, ApiResponse
from fabric_core.models.enums import HttpMethod

if TYPE_CHECKING:
    from fabric_core.client.auth import TokenProvider
    from fabric_core.environment import EnvironmentProvider

ORIGINATING_APP_HEADER = "x-ms-originatingapp"
ORIGINATING_APP = "fabric-core"

_RETRYABLE_STATUSES = frozenset({429, 500, 502, 503, 504})
_MAX_RETRY_AFTER = 30.0


@dataclass
class PreparedRequest:
    options: ApiRequestOptions
    method: str
    url: str = ""
    headers: dict[str, str] = field(default_factory=dict)
    content: bytes | None = None
    timeout: float | None = None


RequestStage = Callable[[PreparedRequest], Awaitable[None]]


class HttpApiClient:
    """Production ``ApiClient``.

    Only GET requests are retried: on transport errors, timeouts, 429 and
    5xx, up to ``max_get_retries`` extra attempts with exponential backoff
    (or the server's ``Retry-After``, capped).  A request that still times
    out is reported as a 408 response rather than raised.
    """

    def __init__(
        self,
        environment: EnvironmentProvider,
        token_provider: TokenProvider,
        *,
        timeout: float = 30.0,
        max_get_retries: int = 2,
        retry_delay: float = 0.5,
        debug_logging: bool = False,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._environment = environment
        self._token_provider = token_provider
        self._timeout = timeout
        self._max_get_retries = max_get_retries
        self._retry_delay = retry_delay
        self._debug_logging = debug_logging
        self._client = httpx.AsyncClient(transport=transport, timeout=timeout)
        self._stages: list[RequestStage] = [
            self._resolve_url,
            self._authenticate,
            self._apply_headers,
            self._trace,
        ]

    # -- Pipeline --------------------------------------------------------------

    def add_stage(self, stage: RequestStage) -> None:
        """Append a stage; it runs after the built-in ones."""
        self._stages.append(stage)

    async def send_request(self, options: ApiRequestOptions) -> ApiResponse:
        request = PreparedRequest(options=options, method=str(options.method).upper())
        for stage in self._stages:
            await stage(request)
        return await self._send_with_retry(request)

    async def _resolve_url(self, request: PreparedRequest) -> None:
        options = request.options
        if options.url:
            request.url = options.url
        elif options.path_template is not None:
            base = self._environment.get_current().shared_uri.rstrip("/")
            path = options.path_template if options.path_template.startswith("/") else f"/{options.path_template}"
            request.url = f"{base}{path}"
        else:
            msg = "ApiRequestOptions needs either url or path_template"
            raise ValueError(msg)
        request.timeout = options.timeout if options.timeout is not None else self._timeout
        request.content = _encode_body(options.body)

    async def _authenticate(self, request: PreparedRequest) -> None:
        token = request.options.token or await self._token_provider.get_token()
        if not token:
            raise NotConnectedError
        request.headers["Authorization"] = f"Bearer {token}"

    async def _apply_headers(self, request: PreparedRequest) -> None:
        shared_uri = self._environment.get_current().shared_uri
        if shared_uri and request.url.startswith(shared_uri):
            request.headers[ORIGINATING_APP_HEADER] = ORIGINATING_APP
        request.headers.update(request.options.headers)

    async def _trace(self, request: PreparedRequest) -> None:
        if self._debug_logging:
            logger.debug("API request: {} {} headers={}", request.method, request.url, _redact(request.headers))

    # -- Transport -------------------------------------------------------------

    async def _send_with_retry(self, request: PreparedRequest) -> ApiResponse:
        retries = self._max_get_retries if request.method == HttpMethod.GET else 0
        attempt = 0
        while True:
            start = time.perf_counter()
            try:
                http_response = await self._client.request(
                    request.method,
                    request.url,
                    headers=request.headers,
                    content=request.content,
                    timeout=request.timeout,
                )
            except httpx.TimeoutException:
                if attempt < retries:
                    attempt += 1
                    await self._backoff(attempt, None)
                    continue
                return self._timeout_response(request, start)
            except httpx.TransportError as exc:
                if attempt < retries:
                    attempt += 1
                    logger.debug("API request: {} {} failed ({}), retrying", request.method, request.url, exc)
                    await self._backoff(attempt, None)
                    continue
                logger.warning("API request: {} {} failed: {}", request.method, request.url, exc)
                raise ApiRequestError(0, str(exc), url=request.url) from exc

            if http_response.status_code in _RETRYABLE_STATUSES and attempt < retries:
                attempt += 1
                logger.debug(
                    "API request: {} {} returned {}, retrying", request.method, request.url, http_response.status_code
                )
                await self._backoff(attempt, http_response.headers.get("retry-after"))
                continue

            response = _to_api_response(http_response, request, (time.perf_counter() - start) * 1000)
            if self._debug_logging:
                logger.debug(
                    "API response: {} {} -> {} ({:.0f}ms)", request.method, request.url, response.status, response.elapsed_ms
                )
            return response

    async def _backoff(self, attempt: int, retry_after: str | None) -> None:
        delay = self._retry_delay * (2 ** (attempt - 1))
        if retry_after:
            try:
                delay = min(float(retry_after), _MAX_RETRY_AFTER)
            except ValueError:
                pass
        if delay > 0:
            await anyio.sleep(delay)

    def _timeout_response(self, request: PreparedRequest, start: float) -> ApiResponse:
        elapsed_ms = (time.perf_counter() - start) * 1000
        timeout_ms = int((request.timeout or 0) * 1000)
        body = {"error": f"Timeout error {timeout_ms}ms {request.url}"}
        logger.warning("API request: {} {} timed out after {}ms", request.method, request.url, timeout_ms)
        return ApiResponse.build(
            408,
            {"content-type": "application/json"},
            body_as_text=json.dumps(body),
            parsed_body=body,
            url=request.url,
            elapsed_ms=elapsed_ms,
            request=request.options,
        )

    # -- Lifecycle -------------------------------------------------------------

    async def aclose(self) -> None:
        await self._client.aclose()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _encode_body(body: Any) -> bytes | None:
    if body is None:
        return None
    if isinstance(body, bytes):
        return body
    if isinstance(body, str):
        return body.encode("utf-8")
    return json.dumps(body).encode("utf-8")


def _to_api_response(http_response: httpx.Response, request: PreparedRequest, elapsed_ms: float) -> ApiResponse:
    text = http_response.text
    parsed: Any = None
    content_type = http_response.headers.get("content-type", "")
    if text and "json" in content_type.lower():
        try:
            parsed = json.loads(text)
        except ValueError:
            logger.debug("API response from {} declared JSON but did not parse", request.url)
    return ApiResponse.build(
        http_response.status_code,
        dict(http_response.headers),
        body_as_text=text,
        parsed_body=parsed,
        url=request.url,
        elapsed_ms=elapsed_ms,
        request=request.options,
    )


def _redact(headers: dict[str, str]) -> dict[str, str]:
    return {k: ("***" if k.lower() == "authorization" else v) for k, v in headers.items()}
