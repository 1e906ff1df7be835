"""Conversation messages.

A checkpoint's message list is append-only; each message is an ordered list of
typed content parts.
"""

from __future__ import annotations

from typing import Annotated, List, Literal, Optional, Union

from pydantic import Field

from .base import BaseSchema, new_id
from .parts import ExpertContent, TextPart, ToolResultPart, UserContent


class InstructionMessage(BaseSchema):
    type: Literal["instructionMessage"] = "instructionMessage"
    id: str = Field(default_factory=new_id)
    contents: List[TextPart]
    cache: Optional[bool] = None


class UserMessage(BaseSchema):
    type: Literal["userMessage"] = "userMessage"
    id: str = Field(default_factory=new_id)
    contents: List[UserContent]
    cache: Optional[bool] = None


class ExpertMessage(BaseSchema):
    type: Literal["expertMessage"] = "expertMessage"
    id: str = Field(default_factory=new_id)
    contents: List[ExpertContent]
    cache: Optional[bool] = None

    def first_text(self) -> Optional[str]:
        """Return the first text part's text, if the message has one."""
        for part in self.contents:
            if isinstance(part, TextPart):
                return part.text
        return None


class ToolMessage(BaseSchema):
    type: Literal["toolMessage"] = "toolMessage"
    id: str = Field(default_factory=new_id)
    contents: List[ToolResultPart]
    cache: Optional[bool] = None


Message = Annotated[
    Union[InstructionMessage, UserMessage, ExpertMessage, ToolMessage],
    Field(discriminator="type"),
]
