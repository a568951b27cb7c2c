"""Long-running operation polling.

Definition calls may answer ``202 Accepted`` with a ``Location`` header
pointing at an operation resource.  The operation is polled until its
``status`` is ``Succeeded`` or ``Failed``.  On success the result lives at
``{location}/result``; a failure is raised, never returned.
"""

from __future__ import annotations

import anyio
from loguru import logger

from fabric_core.client.base import ApiClient
from fabric_core.errors import ApiTimeoutError, OperationFailedError
from fabric_core.models.api import ApiRequestOptions, ApiResponse
from fabric_core.models.enums import HttpMethod, LongRunningOperationStatus

_TERMINAL = frozenset({LongRunningOperationStatus.SUCCEEDED, LongRunningOperationStatus.FAILED})


def _poll_delay(response: ApiResponse, override: float | None) -> float:
    if override is not None:
        return override
    try:
        retry_after = float(response.header("retry-after") or 0)
    except ValueError:
        retry_after = 0.0
    return max(retry_after / 5, 1.0)


async def poll_long_running_operation(
    client: ApiClient,
    response: ApiResponse,
    *,
    poll_interval: float | None = None,
    max_polls: int = 120,
) -> ApiResponse:
    """Follow a 202 response to its final result.

    Anything other than a 202 with a ``Location`` is returned unchanged.  A
    ``Failed`` operation raises ``OperationFailedError`` carrying the status
    body.  Raises ``ApiTimeoutError`` after ``max_polls``.
    """
    location = response.header("location")
    if response.status != 202 or not location:
        return response

    operation_id = response.header("x-ms-operation-id")
    delay = _poll_delay(response, poll_interval)
    logger.debug("LRO: polling operation {} at {}", operation_id, location)

    for _ in range(max_polls):
        await anyio.sleep(delay)
        status_response = await client.send_request(ApiRequestOptions(url=location, method=HttpMethod.GET))
        if not status_response.succeeded:
            return status_response
        body = status_response.parsed_body if isinstance(status_response.parsed_body, dict) else {}
        status = body.get("status")
        if status in _TERMINAL:
            break
    else:
        msg = f"Operation {operation_id} did not finish after {max_polls} polls"
        raise ApiTimeoutError(408, msg, url=location)

    if status == LongRunningOperationStatus.FAILED:
        logger.warning("LRO: operation {} failed", operation_id)
        raise OperationFailedError(
            status_response.status,
            status_response.body_as_text,
            parsed_body=status_response.parsed_body,
            url=location,
        )

    logger.debug("LRO: operation {} succeeded", operation_id)
    return await client.send_request(ApiRequestOptions(url=f"{location.rstrip('/')}/result", method=HttpMethod.GET))
