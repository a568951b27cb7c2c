"""REST client for the Fabric API and its test double."""

from fabric_core.client.auth import StaticTokenProvider, TokenProvider
from fabric_core.client.base import ApiClient
from fabric_core.client.fake import FakeApiClient
from fabric_core.client.http import HttpApiClient, PreparedRequest, RequestStage
from fabric_core.client.lro import poll_long_running_operation

__all__ = [
    "ApiClient",
    "FakeApiClient",
    "HttpApiClient",
    "PreparedRequest",
    "RequestStage",
    "StaticTokenProvider",
    "TokenProvider",
    "poll_long_running_operation",
]
