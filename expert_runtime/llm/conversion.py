"""Conversion between runtime messages and pydantic_ai message history."""

from __future__ import annotations

import base64
from typing import Any, Dict, List, Sequence, Tuple, Union

from pydantic_ai import messages as pai
from pydantic_ai.tools import ToolDefinition as PaiToolDefinition

from ..schemas.messages import ExpertMessage, InstructionMessage, Message, ToolMessage, UserMessage
from ..schemas.parts import (
    FileBinaryPart,
    FileInlinePart,
    FileUrlPart,
    ImageBinaryPart,
    ImageInlinePart,
    ImageUrlPart,
    TextPart,
    ThinkingPart,
    ToolCallPart,
)
from ..schemas.tools import ToolDefinition

UserPromptItem = Union[str, pai.ImageUrl, pai.DocumentUrl, pai.BinaryContent]


def _binary(data: str, mime_type: str) -> pai.BinaryContent:
    return pai.BinaryContent(data=base64.b64decode(data), media_type=mime_type)


def _user_item(part: Any) -> UserPromptItem:
    if isinstance(part, TextPart):
        return part.text
    if isinstance(part, ImageUrlPart):
        return pai.ImageUrl(url=part.url)
    if isinstance(part, FileUrlPart):
        return pai.DocumentUrl(url=part.url)
    if isinstance(part, (ImageInlinePart, FileInlinePart)):
        return _binary(part.encoded_data, part.mime_type)
    if isinstance(part, (ImageBinaryPart, FileBinaryPart)):
        return _binary(part.data, part.mime_type)
    raise TypeError(f"Unsupported user content part: {type(part).__name__}")


def _expert_part(part: Any) -> pai.ModelResponsePart:
    if isinstance(part, ThinkingPart):
        return pai.ThinkingPart(content=part.thinking, signature=part.signature)
    if isinstance(part, TextPart):
        return pai.TextPart(content=part.text)
    if isinstance(part, ToolCallPart):
        return pai.ToolCallPart(tool_name=part.tool_name, args=part.args, tool_call_id=part.tool_call_id)
    raise TypeError(f"Unsupported expert content part: {type(part).__name__}")


def _tool_message_parts(message: ToolMessage) -> List[pai.ModelRequestPart]:
    """Tool results become ``ToolReturnPart``s; inline media follows as a user prompt."""
    returns: List[pai.ModelRequestPart] = []
    media: List[UserPromptItem] = []
    for part in message.contents:
        texts = [content.text for content in part.contents if isinstance(content, TextPart)]
        for content in part.contents:
            if isinstance(content, (ImageInlinePart, FileInlinePart)):
                media.append(_binary(content.encoded_data, content.mime_type))
        returns.append(
            pai.ToolReturnPart(tool_name=part.tool_name, content="\n".join(texts), tool_call_id=part.tool_call_id)
        )
    if media:
        returns.append(pai.UserPromptPart(content=media))
    return returns


def to_model_messages(messages: Sequence[Message]) -> List[pai.ModelMessage]:
    history: List[pai.ModelMessage] = []
    for message in messages:
        if isinstance(message, InstructionMessage):
            text = "\n".join(part.text for part in message.contents)
            history.append(pai.ModelRequest(parts=[pai.SystemPromptPart(content=text)]))
        elif isinstance(message, UserMessage):
            history.append(pai.ModelRequest(parts=[pai.UserPromptPart(content=[_user_item(p) for p in message.contents])]))
        elif isinstance(message, ExpertMessage):
            history.append(pai.ModelResponse(parts=[_expert_part(p) for p in message.contents]))
        elif isinstance(message, ToolMessage):
            history.append(pai.ModelRequest(parts=_tool_message_parts(message)))
        else:
            raise TypeError(f"Unsupported message type: {type(message).__name__}")
    return history


def to_tool_definitions(definitions: Sequence[ToolDefinition]) -> List[PaiToolDefinition]:
    return [
        PaiToolDefinition(
            name=definition.name,
            description=definition.description,
            parameters_json_schema=definition.input_schema,
        )
        for definition in definitions
    ]


def response_text(response: pai.ModelResponse) -> str:
    return "".join(part.content for part in response.parts if isinstance(part, pai.TextPart))


def response_thinking(response: pai.ModelResponse) -> List[ThinkingPart]:
    return [
        ThinkingPart(thinking=part.content, signature=part.signature)
        for part in response.parts
        if isinstance(part, pai.ThinkingPart) and part.content
    ]


def response_tool_calls(response: pai.ModelResponse) -> List[Tuple[str, str, Dict[str, Any]]]:
    """Return ``(tool_call_id, tool_name, args)`` for every tool call in ``response``."""
    return [
        (part.tool_call_id, part.tool_name, part.args_as_dict())
        for part in response.parts
        if isinstance(part, pai.ToolCallPart)
    ]
