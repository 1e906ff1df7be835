from __future__ import annotations

import asyncio
import base64
import json
import logging
from pathlib import Path
from typing import List, Optional, Tuple, Union

from ...constants import ATTEMPT_COMPLETION_TOOL, BASE_SKILL_NAME
from ...errors import RunStateError
from ...helpers.usage import create_empty_usage
from ...schemas.checkpoint import Checkpoint, CheckpointStatus
from ...schemas.events import (
    AttemptCompletionEvent,
    CallDelegateEvent,
    CallInteractiveToolEvent,
    CompleteRunEvent,
    ResolveToolResultsEvent,
)
from ...schemas.messages import ExpertMessage
from ...schemas.parts import FileInlinePart, ImageInlinePart, TextPart, ToolResultContent
from ...schemas.tools import ToolCall, ToolResult
from ...skills.classifier import classify_tool_calls
from ...skills.registry import SkillManagers, get_skill_manager_by_tool_name
from ..events import create_event
from ..models import StateContext
from .common import create_tool_result_message, finished_step

logger = logging.getLogger(__name__)

CallingEvent = Union[
    ResolveToolResultsEvent, AttemptCompletionEvent, CompleteRunEvent, CallDelegateEvent, CallInteractiveToolEvent
]


FILE_READ_TOOLS = ("readImageFile", "readPdfFile")


def _described_file(part: ToolResultContent) -> Optional[Tuple[str, str]]:
    if not isinstance(part, TextPart):
        return None
    try:
        parsed = json.loads(part.text)
    except json.JSONDecodeError:
        return None
    if not isinstance(parsed, dict):
        return None
    path, mime_type = parsed.get("path"), parsed.get("mimeType")
    if isinstance(path, str) and isinstance(mime_type, str):
        return path, mime_type
    return None


async def inline_file_result(tool_result: ToolResult) -> ToolResult:
    """Swap the file descriptions returned by ``readImageFile`` / ``readPdfFile`` for the file bytes."""
    contents: List[ToolResultContent] = []
    for part in tool_result.result:
        described = _described_file(part)
        if described is None:
            contents.append(part)
            continue
        path, mime_type = described
        try:
            data = await asyncio.to_thread(Path(path).read_bytes)
        except OSError as e:
            contents.append(TextPart(id=part.id, text=f'Failed to read file "{path}": {e}'))
            continue
        encoded = base64.b64encode(data).decode("ascii")
        if tool_result.tool_name == "readImageFile":
            contents.append(ImageInlinePart(id=part.id, encoded_data=encoded, mime_type=mime_type))
        else:
            contents.append(FileInlinePart(id=part.id, encoded_data=encoded, mime_type=mime_type))
    return tool_result.model_copy(update={"result": contents})


async def execute_tool_call(tool_call: ToolCall, managers: SkillManagers) -> ToolResult:
    """Run one plain tool call against the manager that serves it."""
    manager = managers.get(tool_call.skill_name)
    if manager is None:
        manager = await get_skill_manager_by_tool_name(managers, tool_call.tool_name)
    logger.debug("Calling tool %s/%s", manager.name, tool_call.tool_name)
    contents = await manager.call_tool(tool_call.tool_name, tool_call.args)
    tool_result = ToolResult(
        id=tool_call.id, skill_name=tool_call.skill_name, tool_name=tool_call.tool_name, result=contents
    )
    if tool_call.tool_name in FILE_READ_TOOLS:
        return await inline_file_result(tool_result)
    return tool_result


def has_remaining_todos(tool_result: ToolResult) -> bool:
    if not tool_result.result or not isinstance(tool_result.result[0], TextPart):
        return False
    try:
        parsed = json.loads(tool_result.result[0].text)
    except json.JSONDecodeError:
        return False
    remaining = parsed.get("remainingTodos") if isinstance(parsed, dict) else None
    return isinstance(remaining, list) and len(remaining) > 0


def last_message_text(checkpoint: Checkpoint) -> Optional[str]:
    """Text the model wrote alongside its final tool calls, if any."""
    if not checkpoint.messages or not isinstance(checkpoint.messages[-1], ExpertMessage):
        return None
    text = checkpoint.messages[-1].first_text()
    if text is None or not text.strip():
        return None
    return text.strip()


def _is_attempt_completion(tool_call: ToolCall) -> bool:
    return tool_call.skill_name == BASE_SKILL_NAME and tool_call.tool_name == ATTEMPT_COMPLETION_TOOL


async def calling_tool_logic(ctx: StateContext) -> CallingEvent:
    """Execute the step's pending plain tool calls.

    ``attemptCompletion`` pre-empts everything else. Plain calls run
    concurrently; delegate and interactive calls are deferred, with the plain
    results stashed as partial results so a resumed run never repeats them.
    """
    setting, checkpoint, step = ctx.setting, ctx.checkpoint, ctx.step
    managers = ctx.deps.skill_managers
    pending = step.pending_tool_calls or step.tool_calls or []
    if not pending:
        raise RunStateError("No tool calls found")
    tool_results: List[ToolResult] = list(step.tool_results or [])

    completion_call = next((call for call in pending if _is_attempt_completion(call)), None)
    if completion_call is not None:
        tool_result = await execute_tool_call(completion_call, managers)
        if has_remaining_todos(tool_result):
            return create_event(ResolveToolResultsEvent, setting, checkpoint, tool_results=[tool_result])
        existing_text = last_message_text(checkpoint)
        if existing_text is None:
            return create_event(AttemptCompletionEvent, setting, checkpoint, tool_result=tool_result)
        tool_message = create_tool_result_message([tool_result], [completion_call])
        return create_event(
            CompleteRunEvent,
            setting,
            checkpoint,
            checkpoint=checkpoint.model_copy(
                update={"messages": [*checkpoint.messages, tool_message], "status": CheckpointStatus.completed}
            ),
            step=finished_step(step, new_messages=[*step.new_messages, tool_message], tool_results=[tool_result]),
            text=existing_text,
            usage=create_empty_usage(),
        )

    classified = await classify_tool_calls(pending, managers)
    if classified.mcp:
        tool_results.extend(
            await asyncio.gather(*(execute_tool_call(call.tool_call, managers) for call in classified.mcp))
        )

    delegates = [call.tool_call for call in classified.delegate]
    interactives = [call.tool_call for call in classified.interactive]
    if delegates:
        return create_event(
            CallDelegateEvent,
            setting,
            checkpoint,
            tool_calls=delegates,
            pending_tool_calls=[*delegates, *interactives],
            partial_tool_results=tool_results,
            usage=create_empty_usage(),
        )
    if interactives:
        return create_event(
            CallInteractiveToolEvent,
            setting,
            checkpoint,
            tool_call=interactives[0],
            pending_tool_calls=interactives,
            partial_tool_results=tool_results,
            usage=create_empty_usage(),
        )
    return create_event(ResolveToolResultsEvent, setting, checkpoint, tool_results=tool_results)
