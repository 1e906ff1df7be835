from __future__ import annotations

from typing import Union

from ...errors import RunStateError
from ...helpers.messages import create_expert_message
from ...helpers.usage import sum_usage, usage_from_response
from ...llm.conversion import response_text, response_thinking
from ...schemas.checkpoint import CheckpointStatus
from ...schemas.events import CompleteRunEvent, CompleteStreamingRunResultEvent, RetryEvent, StopRunByErrorEvent
from ...schemas.parts import TextPart
from ..events import create_event
from ..models import StateContext
from .common import create_tool_result_message, finished_step, retry_or_stop, with_usage


async def generating_run_result_logic(ctx: StateContext) -> Union[CompleteRunEvent, RetryEvent, StopRunByErrorEvent]:
    """Generate the final answer after ``attemptCompletion``.

    The completion result is sent back as a tool message and the model answers
    without tools. Result text is streamed through the run-result callbacks.
    """
    setting, checkpoint, step = ctx.setting, ctx.checkpoint, ctx.step
    if not step.tool_results:
        raise RunStateError("No tool calls or tool results found")
    tool_message = create_tool_result_message(step.tool_results, step.tool_calls)

    result = await ctx.deps.executor.stream(
        [*checkpoint.messages, tool_message],
        ctx.deps.emitter.run_result_callbacks(setting, checkpoint),
        temperature=setting.temperature,
        reasoning_budget=setting.reasoning_budget,
    )
    if not result.success:
        return retry_or_stop(ctx, result.error, result.is_retryable, leading_messages=[tool_message])

    response = result.response
    usage = usage_from_response(response)
    text = response_text(response)
    contents = [*response_thinking(response)]
    if text:
        contents.append(TextPart(text=text))
    new_messages = [tool_message, create_expert_message(contents)]
    await ctx.deps.emitter.emit(create_event(CompleteStreamingRunResultEvent, setting, checkpoint, text=text))

    return create_event(
        CompleteRunEvent,
        setting,
        checkpoint,
        checkpoint=with_usage(
            checkpoint,
            usage,
            messages=[*checkpoint.messages, *new_messages],
            status=CheckpointStatus.completed,
            retry_count=0,
        ),
        step=finished_step(step, new_messages=[*step.new_messages, *new_messages], usage=sum_usage(step.usage, usage)),
        text=text,
        usage=usage,
    )
