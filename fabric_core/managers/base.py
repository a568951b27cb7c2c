"""Helpers shared by the managers: status checks and paged collection reads."""

from __future__ import annotations

from typing import Any, TypeVar
from urllib.parse import quote

from loguru import logger
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from fabric_core.cancellation import CancellationToken, run_cancellable
from fabric_core.client.base import ApiClient
from fabric_core.errors import ApiRequestError, ApiTimeoutError, NotFoundError
from fabric_core.models.api import ApiRequestOptions, ApiResponse

JSON_HEADERS = {"Content-Type": "application/json"}
JSON_UTF8_HEADERS = {"Content-Type": "application/json; charset=utf-8"}

M = TypeVar("M", bound=BaseModel)


def raise_for_status(response: ApiResponse, *, not_found: str | None = None) -> None:
    """Turn a non-2xx response into the matching error.

    With ``not_found`` set, a 404 raises ``NotFoundError`` carrying that
    message; otherwise it is an ``ApiRequestError`` like any other status.
    """
    if response.succeeded:
        return
    if response.status == 404 and not_found is not None:
        raise NotFoundError(not_found, "Resource not found")
    error_cls = ApiTimeoutError if response.status == 408 else ApiRequestError
    raise error_cls(response.status, response.body_as_text, parsed_body=response.parsed_body, url=response.url)


def parse_model(model: type[M], data: Any) -> M | None:
    """Validate one wire record; a malformed record is logged and yields ``None``."""
    try:
        return model.model_validate(data)
    except PydanticValidationError as exc:
        logger.warning("Skipping malformed {} record: {}", model.__name__, exc.errors(include_url=False))
        return None


def value_list(body: Any) -> list[dict[str, Any]]:
    """Extract the item array from a collection body (``{"value": [...]}`` or a bare list)."""
    if isinstance(body, list):
        items = body
    elif isinstance(body, dict):
        items = body.get("value") or []
    else:
        items = []
    return [item for item in items if isinstance(item, dict)]


async def get_all_pages(
    client: ApiClient,
    path_template: str,
    *,
    not_found: str | None = None,
    cancellation: CancellationToken | None = None,
) -> list[dict[str, Any]]:
    """GET a collection, following ``continuationToken`` until exhausted.

    Cancelling ``cancellation`` abandons the whole read; no partial list is
    returned.
    """
    return await run_cancellable(cancellation, lambda: _read_pages(client, path_template, not_found))


async def _read_pages(client: ApiClient, path_template: str, not_found: str | None) -> list[dict[str, Any]]:
    items: list[dict[str, Any]] = []
    path = path_template
    while True:
        response = await client.send_request(ApiRequestOptions(path_template=path))
        raise_for_status(response, not_found=not_found)
        items.extend(value_list(response.parsed_body))
        body = response.parsed_body if isinstance(response.parsed_body, dict) else {}
        token = body.get("continuationToken")
        if not token:
            return items
        separator = "&" if "?" in path_template else "?"
        path = f"{path_template}{separator}continuationToken={quote(token, safe='')}"
