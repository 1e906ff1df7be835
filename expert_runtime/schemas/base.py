"""Pydantic base schema utilities for runtime models."""

from __future__ import annotations

import time
from typing import Any, Dict
from uuid import uuid4

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


def new_id() -> str:
    return uuid4().hex


def now_ms() -> int:
    return int(time.time() * 1000)


class BaseSchema(BaseModel):
    """
    Base Pydantic model for all runtime schemas.

    Configures common Pydantic behaviors:
    - ``populate_by_name=True``: Allow initialization by alias or field name.
    - ``extra="forbid"``: Prevent unknown fields from slipping into the model, ensuring strict validation.
    - ``alias_generator=to_camel``: Stored JSON uses camelCase keys (``stepNumber``, ``jobId``).
    """

    model_config = ConfigDict(
        populate_by_name=True,
        extra="forbid",
        alias_generator=to_camel,
    )

    def to_storage(self) -> Dict[str, Any]:
        """Dump to the JSON-compatible, camelCase form used by storage and event sinks."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
