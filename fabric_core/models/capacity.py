"""Capacity model.  A capacity hosts workspaces; see ``create_workspace(capacity_id=...)``."""

from __future__ import annotations

from fabric_core.models.base import WireModel
from fabric_core.models.enums import CapacityState


class Capacity(WireModel):
    id: str
    display_name: str
    sku: str = ""
    region: str = ""
    state: str = CapacityState.INACTIVE

    @property
    def is_active(self) -> bool:
        return self.state == CapacityState.ACTIVE
