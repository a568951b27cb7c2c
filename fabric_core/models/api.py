"""Request/response shapes for the REST client.

These are plain dataclasses rather than pydantic models: they carry
arbitrary payloads and are built on every call.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from fabric_core.models.enums import HttpMethod


@dataclass
class ApiRequestOptions:
    """Description of one outbound request.

    Either ``path_template`` (appended to the environment's API endpoint) or a
    fully qualified ``url`` must be given.  ``body`` is JSON-encoded unless it
    is already ``str`` or ``bytes``.
    """

    path_template: str | None = None
    method: HttpMethod = HttpMethod.GET
    url: str | None = None
    body: Any = None
    headers: dict[str, str] = field(default_factory=dict)
    timeout: float | None = None
    """Seconds; overrides the client default for this request."""

    token: str | None = None
    """Bearer token; overrides the token provider for this request."""


@dataclass
class ApiResponse:
    """Response as seen by managers.

    Header names are stored lower-cased.  ``parsed_body`` is set when the
    response declares a JSON content type and the body parses.
    """

    status: int
    headers: dict[str, str] = field(default_factory=dict)
    body_as_text: str = ""
    parsed_body: Any = None
    url: str | None = None
    elapsed_ms: float | None = None
    request: ApiRequestOptions | None = field(default=None, repr=False)

    @classmethod
    def build(cls, status: int, headers: Mapping[str, str] | None = None, **kwargs: Any) -> ApiResponse:
        lowered = {k.lower(): v for k, v in (headers or {}).items()}
        return cls(status=status, headers=lowered, **kwargs)

    @property
    def succeeded(self) -> bool:
        return 200 <= self.status < 300

    def header(self, name: str) -> str | None:
        return self.headers.get(name.lower())
