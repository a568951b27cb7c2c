"""Artifact and item-definition models."""

from __future__ import annotations

import base64

from pydantic import Field

from fabric_core.models.base import WireModel
from fabric_core.models.enums import PayloadType

PLATFORM_METADATA_PATH = ".platform"
"""Reserved definition part holding platform metadata; never shown as a file."""


class Artifact(WireModel):
    """A remotely hosted item.  Always belongs to exactly one workspace.

    ``id`` is empty for an artifact that is about to be created.
    """

    id: str = ""
    workspace_id: str = Field(min_length=1)
    type: str
    display_name: str
    description: str | None = None
    folder_id: str | None = None
    environment: str | None = Field(default=None, exclude=True)
    """Environment the artifact was discovered in.  Local bookkeeping only."""


class DefinitionPart(WireModel):
    path: str
    payload: str
    payload_type: str = PayloadType.INLINE_BASE64

    @classmethod
    def from_bytes(cls, path: str, data: bytes) -> DefinitionPart:
        return cls(path=path, payload=base64.b64encode(data).decode("ascii"), payload_type=PayloadType.INLINE_BASE64)

    @property
    def is_platform_metadata(self) -> bool:
        return self.path.replace("\\", "/") == PLATFORM_METADATA_PATH


class ItemDefinition(WireModel):
    """Multi-file artifact body."""

    format: str | None = None
    parts: list[DefinitionPart] = Field(default_factory=list)
