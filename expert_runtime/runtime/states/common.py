"""Building blocks shared by several state logics."""

from __future__ import annotations

import json
from typing import Optional, Sequence

from ...helpers.messages import create_tool_message, create_user_message
from ...helpers.model import calculate_context_window_usage
from ...helpers.usage import sum_usage
from ...llm.adapters import ProviderError
from ...schemas.checkpoint import Checkpoint, CheckpointStatus, RunError, Step
from ...schemas.events import RetryEvent, StopRunByErrorEvent
from ...schemas.messages import Message, ToolMessage, UserMessage
from ...schemas.base import now_ms
from ...schemas.parts import TextPart, ToolResultPart
from ...schemas.tools import ToolCall, ToolResult
from ...schemas.usage import Usage
from ..events import create_event
from ..models import StateContext


def retry_reason(error: str, message: str) -> str:
    return json.dumps({"error": error, "message": message}, separators=(",", ":"))


def reason_message(reason: str) -> UserMessage:
    return create_user_message([TextPart(text=reason)])


def current_retry_count(checkpoint: Checkpoint) -> int:
    return checkpoint.retry_count or 0


def retries_exhausted(ctx: StateContext) -> bool:
    return current_retry_count(ctx.checkpoint) >= ctx.setting.max_retries


def create_tool_result_message(
    tool_results: Sequence[ToolResult], tool_calls: Optional[Sequence[ToolCall]] = None
) -> ToolMessage:
    """Fold tool results into one tool message, naming each part after its call."""
    names = {tool_call.id: tool_call.tool_name for tool_call in tool_calls or ()}
    return create_tool_message(
        [
            ToolResultPart(
                tool_call_id=tool_result.id,
                tool_name=names.get(tool_result.id, tool_result.tool_name),
                contents=list(tool_result.result),
            )
            for tool_result in tool_results
        ]
    )


def with_usage(checkpoint: Checkpoint, usage: Usage, **update) -> Checkpoint:
    """Copy ``checkpoint`` with ``usage`` added to its total.

    The context window share reflects ``usage`` alone, the footprint of the latest call.
    """
    total = sum_usage(checkpoint.usage, usage)
    context_window_usage = checkpoint.context_window_usage
    if checkpoint.context_window:
        context_window_usage = calculate_context_window_usage(usage, checkpoint.context_window)
    return checkpoint.model_copy(update={"usage": total, "context_window_usage": context_window_usage, **update})


def finished_step(step: Step, **update) -> Step:
    return step.model_copy(update={"finished_at": now_ms(), **update})


def stop_by_error(ctx: StateContext, name: str, message: str, status_code: Optional[int] = None) -> StopRunByErrorEvent:
    error = RunError(name=name, message=message, status_code=status_code, is_retryable=False)
    return create_event(
        StopRunByErrorEvent,
        ctx.setting,
        ctx.checkpoint,
        checkpoint=ctx.checkpoint.model_copy(update={"status": CheckpointStatus.stopped_by_error, "error": error}),
        step=finished_step(ctx.step),
        error=error,
    )


def retry_or_stop(
    ctx: StateContext, error: ProviderError, is_retryable: bool, leading_messages: Sequence[Message] = ()
) -> RetryEvent | StopRunByErrorEvent:
    """Turn a failed model call into a retry, or a fatal stop once retries are spent.

    The error is shown to the model as a user message so it can self-correct.
    """
    retry_count = current_retry_count(ctx.checkpoint)
    if not is_retryable or retry_count >= ctx.setting.max_retries:
        message = error.message
        if retry_count >= ctx.setting.max_retries:
            message = f"Max retries ({ctx.setting.max_retries}) exceeded: {error.message}"
        return stop_by_error(ctx, error.name or "Error", message, error.status_code)
    reason = retry_reason(error.name or "Error", error.message)
    return create_event(
        RetryEvent,
        ctx.setting,
        ctx.checkpoint,
        reason=reason,
        new_messages=[*leading_messages, reason_message(reason)],
        usage=Usage(),
        retry_count=retry_count + 1,
    )
