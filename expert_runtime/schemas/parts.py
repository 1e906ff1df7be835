"""Typed content parts carried by messages and tool results."""

from __future__ import annotations

from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import Field

from .base import BaseSchema, new_id


class TextPart(BaseSchema):
    type: Literal["textPart"] = "textPart"
    id: str = Field(default_factory=new_id)
    text: str


class ThinkingPart(BaseSchema):
    type: Literal["thinkingPart"] = "thinkingPart"
    id: str = Field(default_factory=new_id)
    thinking: str
    signature: Optional[str] = None


class ImageUrlPart(BaseSchema):
    type: Literal["imageUrlPart"] = "imageUrlPart"
    id: str = Field(default_factory=new_id)
    url: str
    mime_type: str


class ImageInlinePart(BaseSchema):
    type: Literal["imageInlinePart"] = "imageInlinePart"
    id: str = Field(default_factory=new_id)
    encoded_data: str
    mime_type: str


class ImageBinaryPart(BaseSchema):
    """Binary image payload, kept base64-encoded so the part stays JSON-serializable."""

    type: Literal["imageBinaryPart"] = "imageBinaryPart"
    id: str = Field(default_factory=new_id)
    data: str
    mime_type: str


class FileUrlPart(BaseSchema):
    type: Literal["fileUrlPart"] = "fileUrlPart"
    id: str = Field(default_factory=new_id)
    url: str
    mime_type: str


class FileInlinePart(BaseSchema):
    type: Literal["fileInlinePart"] = "fileInlinePart"
    id: str = Field(default_factory=new_id)
    encoded_data: str
    mime_type: str


class FileBinaryPart(BaseSchema):
    type: Literal["fileBinaryPart"] = "fileBinaryPart"
    id: str = Field(default_factory=new_id)
    data: str
    mime_type: str


class ToolCallPart(BaseSchema):
    type: Literal["toolCallPart"] = "toolCallPart"
    id: str = Field(default_factory=new_id)
    tool_call_id: str
    tool_name: str
    args: Dict[str, Any] = Field(default_factory=dict)


ToolResultContent = Annotated[
    Union[TextPart, ImageInlinePart, FileInlinePart],
    Field(discriminator="type"),
]


class ToolResultPart(BaseSchema):
    type: Literal["toolResultPart"] = "toolResultPart"
    id: str = Field(default_factory=new_id)
    tool_call_id: str
    tool_name: str
    contents: List[ToolResultContent] = Field(default_factory=list)
    is_error: Optional[bool] = None


UserContent = Annotated[
    Union[TextPart, ImageUrlPart, ImageInlinePart, ImageBinaryPart, FileUrlPart, FileInlinePart, FileBinaryPart],
    Field(discriminator="type"),
]

ExpertContent = Annotated[
    Union[ThinkingPart, TextPart, ToolCallPart],
    Field(discriminator="type"),
]
