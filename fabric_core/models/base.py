"""Base model for payloads exchanged with the REST API."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """Accepts camelCase (wire) or snake_case (Python) field names.

    Dump with ``by_alias=True`` when building request bodies.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)
