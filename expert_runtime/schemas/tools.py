from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import Field

from .base import BaseSchema
from .parts import ToolResultContent


class ToolCall(BaseSchema):
    """A model-issued tool invocation; ``id`` is chosen by the model/provider."""

    id: str
    skill_name: str
    tool_name: str
    args: Dict[str, Any] = Field(default_factory=dict)


class ToolResult(BaseSchema):
    """Outcome of a ``ToolCall``; shares the call's ``id``."""

    id: str
    skill_name: str
    tool_name: str
    result: List[ToolResultContent] = Field(default_factory=list)


class ToolDefinition(BaseSchema):
    skill_name: str
    name: str
    description: Optional[str] = None
    input_schema: Dict[str, Any] = Field(default_factory=lambda: {"type": "object", "properties": {}})
    interactive: bool = False
