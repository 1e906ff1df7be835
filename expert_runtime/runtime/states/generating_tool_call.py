from __future__ import annotations

import logging
from typing import List, Sequence, Union

from ...helpers.messages import create_expert_message, create_tool_message
from ...helpers.usage import sum_usage, usage_from_response
from ...llm.conversion import response_text, response_thinking, response_tool_calls
from ...schemas.checkpoint import CheckpointStatus
from ...schemas.events import (
    CallDelegateEvent,
    CallInteractiveToolEvent,
    CallToolsEvent,
    CompleteRunEvent,
    CompleteStreamingReasoningEvent,
    RetryEvent,
    StopRunByErrorEvent,
)
from ...schemas.parts import TextPart, ToolCallPart, ToolResultPart
from ...schemas.tools import ToolCall, ToolResult
from ...skills.classifier import ClassifiedToolCall, sort_tool_calls_by_priority
from ...skills.registry import get_skill_manager_by_tool_name, get_tool_set
from ..events import create_event
from ..models import StateContext
from .common import (
    current_retry_count,
    finished_step,
    reason_message,
    retries_exhausted,
    retry_or_stop,
    retry_reason,
    stop_by_error,
    with_usage,
)

logger = logging.getLogger(__name__)

GeneratingEvent = Union[
    RetryEvent, StopRunByErrorEvent, CompleteRunEvent, CallToolsEvent, CallDelegateEvent, CallInteractiveToolEvent
]


async def _classify(ctx: StateContext, raw_calls) -> List[ClassifiedToolCall]:
    classified = []
    for tool_call_id, tool_name, args in raw_calls:
        manager = await get_skill_manager_by_tool_name(ctx.deps.skill_managers, tool_name)
        classified.append(
            ClassifiedToolCall(ToolCall(id=tool_call_id, skill_name=manager.name, tool_name=tool_name, args=args), manager)
        )
    return sort_tool_calls_by_priority(classified)


def _of_type(calls: Sequence[ClassifiedToolCall], skill_type: str) -> List[ToolCall]:
    return [call.tool_call for call in calls if call.skill_manager.type == skill_type]


async def generating_tool_call_logic(ctx: StateContext) -> GeneratingEvent:
    """Ask the model for the next tool calls.

    Text without tool calls completes the run. Tool calls are classified and
    ordered mcp, delegate, interactive; plain calls go to calling, otherwise
    the delegate or interactive calls are handed off directly.
    """
    setting, checkpoint, step = ctx.setting, ctx.checkpoint, ctx.step
    expert = setting.experts[setting.expert_key]
    emitter = ctx.deps.emitter

    callbacks = emitter.reasoning_callbacks(setting, checkpoint)
    reasoning_completed = False
    on_reasoning_complete = callbacks.on_reasoning_complete

    async def _on_reasoning_complete(text: str) -> None:
        nonlocal reasoning_completed
        reasoning_completed = True
        await on_reasoning_complete(text)

    callbacks.on_reasoning_complete = _on_reasoning_complete

    result = await ctx.deps.executor.stream(
        checkpoint.messages,
        callbacks,
        tools=await get_tool_set(ctx.deps.skill_managers),
        temperature=setting.temperature,
        reasoning_budget=setting.reasoning_budget,
        provider_tool_names=expert.provider_tools,
    )
    if not result.success:
        return retry_or_stop(ctx, result.error, result.is_retryable)

    response = result.response
    usage = usage_from_response(response)
    text = response_text(response)
    thinking = response_thinking(response)
    raw_calls = response_tool_calls(response)

    thinking_text = "\n".join(part.thinking for part in thinking)
    if thinking_text and not reasoning_completed:
        await emitter.emit(create_event(CompleteStreamingReasoningEvent, setting, checkpoint, text=thinking_text))

    if not raw_calls and text:
        new_message = create_expert_message([*thinking, TextPart(text=text)])
        return create_event(
            CompleteRunEvent,
            setting,
            checkpoint,
            checkpoint=with_usage(
                checkpoint,
                usage,
                messages=[*checkpoint.messages, new_message],
                status=CheckpointStatus.completed,
                retry_count=0,
            ),
            step=finished_step(
                step, new_messages=[*step.new_messages, new_message], usage=sum_usage(step.usage, usage)
            ),
            text=text,
            usage=usage,
        )

    if not raw_calls:
        if retries_exhausted(ctx):
            return stop_by_error(
                ctx,
                "MaxRetriesExceeded",
                f"Max retries ({setting.max_retries}) exceeded: No tool call or text generated",
            )
        reason = retry_reason(
            "Error: No tool call or text generated",
            "You must generate a tool call or provide a response. Try again.",
        )
        return create_event(
            RetryEvent,
            setting,
            checkpoint,
            reason=reason,
            new_messages=[reason_message(reason)],
            usage=usage,
            retry_count=current_retry_count(checkpoint) + 1,
        )

    calls = await _classify(ctx, raw_calls)

    if response.finish_reason == "length":
        if retries_exhausted(ctx):
            return stop_by_error(
                ctx,
                "MaxRetriesExceeded",
                f"Max retries ({setting.max_retries}) exceeded: Generation length exceeded",
            )
        first = calls[0].tool_call
        reason = retry_reason("Error: Tool call generation failed", "Generation length exceeded. Try again.")
        logger.info("Tool call %s truncated by length limit, retrying", first.tool_name)
        return create_event(
            RetryEvent,
            setting,
            checkpoint,
            reason=reason,
            new_messages=[
                create_expert_message([ToolCallPart(tool_call_id=first.id, tool_name=first.tool_name, args=first.args)]),
                create_tool_message(
                    [ToolResultPart(tool_call_id=first.id, tool_name=first.tool_name, contents=[TextPart(text=reason)])]
                ),
            ],
            tool_calls=[first],
            tool_results=[
                ToolResult(id=first.id, skill_name=first.skill_name, tool_name=first.tool_name, result=[TextPart(text=reason)])
            ],
            usage=usage,
            retry_count=current_retry_count(checkpoint) + 1,
        )

    # thinking, then text, then tool calls
    contents = [*thinking]
    if text:
        contents.append(TextPart(text=text))
    contents.extend(
        ToolCallPart(tool_call_id=call.tool_call.id, tool_name=call.tool_call.tool_name, args=call.tool_call.args)
        for call in calls
    )
    new_message = create_expert_message(contents)

    if _of_type(calls, "mcp"):
        return create_event(
            CallToolsEvent,
            setting,
            checkpoint,
            new_message=new_message,
            tool_calls=[call.tool_call for call in calls],
            usage=usage,
        )

    delegates = _of_type(calls, "delegate")
    interactives = _of_type(calls, "interactive")
    if delegates:
        return create_event(
            CallDelegateEvent,
            setting,
            checkpoint,
            new_message=new_message,
            tool_calls=delegates,
            pending_tool_calls=[*delegates, *interactives],
            partial_tool_results=[],
            usage=usage,
        )
    return create_event(
        CallInteractiveToolEvent,
        setting,
        checkpoint,
        new_message=new_message,
        tool_call=interactives[0],
        pending_tool_calls=interactives,
        partial_tool_results=[],
        usage=usage,
    )
