"""Conversion of MCP tool results into runtime content parts."""

from __future__ import annotations

import json
from typing import Any, Dict, List, Union

from mcp import types as mcp_types
from mcp.shared.exceptions import McpError

from ..schemas.parts import FileInlinePart, ImageInlinePart, TextPart
from .base import ToolContent


def handle_tool_error(error: BaseException, tool_name: str) -> List[TextPart]:
    """Turn an ``McpError`` into a text part the model can read; re-raise anything else."""
    if isinstance(error, McpError):
        return [TextPart(text=f"Error calling tool {tool_name}: {error.error.message}")]
    raise error


def convert_resource(
    resource: Union[mcp_types.TextResourceContents, mcp_types.BlobResourceContents],
) -> Union[TextPart, FileInlinePart]:
    if not resource.mimeType:
        raise ValueError(f"Resource {resource.uri} has no mimeType")
    if isinstance(resource, mcp_types.TextResourceContents):
        return TextPart(text=resource.text)
    return FileInlinePart(encoded_data=resource.blob, mime_type=resource.mimeType)


def convert_part(part: Any) -> ToolContent:
    if isinstance(part, mcp_types.TextContent):
        return TextPart(text=part.text or "Error: No content")
    if isinstance(part, mcp_types.ImageContent):
        if not part.data or not part.mimeType:
            raise ValueError("Image part must have both data and mimeType")
        return ImageInlinePart(encoded_data=part.data, mime_type=part.mimeType)
    if isinstance(part, mcp_types.EmbeddedResource):
        return convert_resource(part.resource)
    raise ValueError(f"Unsupported tool result part: {type(part).__name__}")


def convert_tool_result(result: mcp_types.CallToolResult, tool_name: str, args: Dict[str, Any]) -> List[ToolContent]:
    if not result.content:
        encoded_args = json.dumps(args, separators=(",", ":"))
        return [TextPart(text=f"Tool {tool_name} returned nothing with arguments: {encoded_args}")]
    return [
        convert_part(part)
        for part in result.content
        if not isinstance(part, (mcp_types.AudioContent, mcp_types.ResourceLink))
    ]
