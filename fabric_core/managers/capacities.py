"""Capacity listing, used to pick a host capacity for a new workspace."""

from __future__ import annotations

from typing import TYPE_CHECKING

from loguru import logger

from fabric_core.managers.base import get_all_pages, parse_model
from fabric_core.models.capacity import Capacity

if TYPE_CHECKING:
    from fabric_core.cancellation import CancellationToken
    from fabric_core.client.base import ApiClient


class CapacityManager:
    def __init__(self, api_client: ApiClient) -> None:
        self._api = api_client

    async def list_capacities(self, *, cancellation: CancellationToken | None = None) -> list[Capacity]:
        """List the capacities the signed-in user can assign workspaces to.

        A failed request raises ``ApiRequestError``; malformed records are
        skipped.
        """
        items = await get_all_pages(self._api, "/v1/capacities", cancellation=cancellation)
        capacities = [c for c in (parse_model(Capacity, item) for item in items) if c is not None]
        logger.debug("Capacities: loaded {} capacities", len(capacities))
        return capacities
