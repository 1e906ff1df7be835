"""State transition table.

Every node produces one event; ``apply_event`` folds that event into the
checkpoint and step and names the next node. Unknown ``(node, event)`` pairs
are programming errors and raise ``RunStateError``.
"""

from __future__ import annotations

from typing import Callable, Dict, Optional, Tuple

from ..errors import RunStateError
from ..helpers.model import calculate_context_window_usage
from ..helpers.usage import sum_usage
from ..schemas.checkpoint import Checkpoint, CheckpointStatus, Step
from ..schemas.events import (
    AttemptCompletionEvent,
    CallDelegateEvent,
    CallInteractiveToolEvent,
    CallToolsEvent,
    ContinueToNextStepEvent,
    FinishToolCallEvent,
    ResolveToolResultsEvent,
    RetryEvent,
    RunEvent,
    StartRunEvent,
)
from ..schemas.messages import ExpertMessage
from ..schemas.usage import Usage

INIT = "init"
GENERATING_TOOL_CALL = "generating_tool_call"
CALLING_TOOL = "calling_tool"
CALLING_DELEGATE = "calling_delegate"
CALLING_INTERACTIVE_TOOL = "calling_interactive_tool"
RESOLVING_TOOL_RESULT = "resolving_tool_result"
GENERATING_RUN_RESULT = "generating_run_result"
FINISHING_STEP = "finishing_step"
STOPPED = "stopped"

NODES = (
    INIT,
    GENERATING_TOOL_CALL,
    CALLING_TOOL,
    CALLING_DELEGATE,
    CALLING_INTERACTIVE_TOOL,
    RESOLVING_TOOL_RESULT,
    GENERATING_RUN_RESULT,
    FINISHING_STEP,
)

_TERMINAL_EVENTS = (
    "completeRun",
    "stopRunByError",
    "stopRunByDelegate",
    "stopRunByInteractiveTool",
    "stopRunByExceededMaxSteps",
)

_NEXT_NODE: Dict[Tuple[str, str], str] = {
    (GENERATING_TOOL_CALL, "retry"): FINISHING_STEP,
    (GENERATING_TOOL_CALL, "callTools"): CALLING_TOOL,
    (GENERATING_TOOL_CALL, "callDelegate"): CALLING_DELEGATE,
    (GENERATING_TOOL_CALL, "callInteractiveTool"): CALLING_INTERACTIVE_TOOL,
    (GENERATING_TOOL_CALL, "completeRun"): STOPPED,
    (GENERATING_TOOL_CALL, "stopRunByError"): STOPPED,
    (CALLING_TOOL, "resolveToolResults"): RESOLVING_TOOL_RESULT,
    (CALLING_TOOL, "attemptCompletion"): GENERATING_RUN_RESULT,
    (CALLING_TOOL, "completeRun"): STOPPED,
    (CALLING_TOOL, "callDelegate"): CALLING_DELEGATE,
    (CALLING_TOOL, "callInteractiveTool"): CALLING_INTERACTIVE_TOOL,
    (CALLING_DELEGATE, "stopRunByDelegate"): STOPPED,
    (CALLING_INTERACTIVE_TOOL, "stopRunByInteractiveTool"): STOPPED,
    (RESOLVING_TOOL_RESULT, "finishToolCall"): FINISHING_STEP,
    (GENERATING_RUN_RESULT, "retry"): FINISHING_STEP,
    (GENERATING_RUN_RESULT, "completeRun"): STOPPED,
    (GENERATING_RUN_RESULT, "stopRunByError"): STOPPED,
    (FINISHING_STEP, "continueToNextStep"): GENERATING_TOOL_CALL,
    (FINISHING_STEP, "stopRunByExceededMaxSteps"): STOPPED,
}

Reducer = Callable[[Checkpoint, Step, RunEvent], Tuple[Checkpoint, Step]]


def _context_window_usage(checkpoint: Checkpoint, usage: Usage) -> Optional[float]:
    if not checkpoint.context_window:
        return checkpoint.context_window_usage
    return calculate_context_window_usage(usage, checkpoint.context_window)


def _start_run(checkpoint: Checkpoint, step: Step, event: StartRunEvent) -> Tuple[Checkpoint, Step]:
    initial = event.initial_checkpoint
    checkpoint = initial.model_copy(
        update={
            "status": CheckpointStatus.proceeding,
            "messages": [*initial.messages, *event.input_messages],
        }
    )
    step = Step(
        step_number=checkpoint.step_number,
        input_messages=event.input_messages,
        pending_tool_calls=initial.pending_tool_calls,
        partial_tool_results=initial.partial_tool_results,
        tool_results=list(initial.partial_tool_results) if initial.partial_tool_results else None,
    )
    return checkpoint, step


def _retry(checkpoint: Checkpoint, step: Step, event: RetryEvent) -> Tuple[Checkpoint, Step]:
    usage = sum_usage(checkpoint.usage, event.usage)
    checkpoint = checkpoint.model_copy(
        update={
            "messages": [*checkpoint.messages, *event.new_messages],
            "usage": usage,
            "retry_count": event.retry_count,
        }
    )
    step = step.model_copy(
        update={
            "new_messages": list(event.new_messages),
            "tool_calls": event.tool_calls,
            "tool_results": event.tool_results,
            "usage": sum_usage(step.usage, event.usage),
        }
    )
    return checkpoint, step


def _generated(
    checkpoint: Checkpoint, step: Step, new_message: Optional[ExpertMessage], usage: Usage
) -> Tuple[Checkpoint, Step]:
    if new_message is None:
        return checkpoint, step
    total = sum_usage(checkpoint.usage, usage)
    checkpoint = checkpoint.model_copy(
        update={
            "messages": [*checkpoint.messages, new_message],
            "usage": total,
            "context_window_usage": _context_window_usage(checkpoint, usage),
            "retry_count": 0,
        }
    )
    step = step.model_copy(update={"new_messages": [*step.new_messages, new_message], "usage": sum_usage(step.usage, usage)})
    return checkpoint, step


def _call_tools(checkpoint: Checkpoint, step: Step, event: CallToolsEvent) -> Tuple[Checkpoint, Step]:
    checkpoint, step = _generated(checkpoint, step, event.new_message, event.usage)
    return checkpoint, step.model_copy(update={"tool_calls": list(event.tool_calls)})


def _call_delegate(checkpoint: Checkpoint, step: Step, event: CallDelegateEvent) -> Tuple[Checkpoint, Step]:
    checkpoint, step = _generated(checkpoint, step, event.new_message, event.usage)
    update = {
        "pending_tool_calls": list(event.pending_tool_calls),
        "partial_tool_results": list(event.partial_tool_results),
    }
    if event.new_message is not None:
        update["tool_calls"] = list(event.tool_calls)
    return checkpoint, step.model_copy(update=update)


def _call_interactive_tool(
    checkpoint: Checkpoint, step: Step, event: CallInteractiveToolEvent
) -> Tuple[Checkpoint, Step]:
    checkpoint, step = _generated(checkpoint, step, event.new_message, event.usage)
    update = {
        "pending_tool_calls": list(event.pending_tool_calls),
        "partial_tool_results": list(event.partial_tool_results),
    }
    if event.new_message is not None:
        update["tool_calls"] = list(event.pending_tool_calls)
    return checkpoint, step.model_copy(update=update)


def _resolve_tool_results(
    checkpoint: Checkpoint, step: Step, event: ResolveToolResultsEvent
) -> Tuple[Checkpoint, Step]:
    return checkpoint, step.model_copy(update={"tool_results": list(event.tool_results), "pending_tool_calls": None})


def _attempt_completion(
    checkpoint: Checkpoint, step: Step, event: AttemptCompletionEvent
) -> Tuple[Checkpoint, Step]:
    return checkpoint, step.model_copy(update={"tool_results": [event.tool_result]})


def _finish_tool_call(checkpoint: Checkpoint, step: Step, event: FinishToolCallEvent) -> Tuple[Checkpoint, Step]:
    checkpoint = checkpoint.model_copy(
        update={
            "messages": [*checkpoint.messages, *event.new_messages],
            "pending_tool_calls": None,
            "partial_tool_results": None,
        }
    )
    step = step.model_copy(update={"new_messages": [*step.new_messages, *event.new_messages]})
    return checkpoint, step


def _continue_to_next_step(
    checkpoint: Checkpoint, step: Step, event: ContinueToNextStepEvent
) -> Tuple[Checkpoint, Step]:
    return event.next_checkpoint, Step(step_number=event.next_checkpoint.step_number)


def _stop(checkpoint: Checkpoint, step: Step, event: RunEvent) -> Tuple[Checkpoint, Step]:
    return event.checkpoint, event.step.model_copy(update={"input_messages": None})


_REDUCERS: Dict[str, Reducer] = {
    "startRun": _start_run,
    "retry": _retry,
    "callTools": _call_tools,
    "callDelegate": _call_delegate,
    "callInteractiveTool": _call_interactive_tool,
    "resolveToolResults": _resolve_tool_results,
    "attemptCompletion": _attempt_completion,
    "finishToolCall": _finish_tool_call,
    "continueToNextStep": _continue_to_next_step,
    **{event_type: _stop for event_type in _TERMINAL_EVENTS},
}


def route_after_start(checkpoint: Checkpoint) -> str:
    """Pick the first node of a run.

    A resumed run with calls still pending goes straight to calling them; one
    whose pending calls were all answered externally goes to resolving;
    everything else starts by generating.
    """
    if checkpoint.pending_tool_calls:
        return CALLING_TOOL
    if checkpoint.partial_tool_results:
        return RESOLVING_TOOL_RESULT
    return GENERATING_TOOL_CALL


def apply_event(node: str, checkpoint: Checkpoint, step: Step, event: RunEvent) -> Tuple[Checkpoint, Step, str]:
    """Fold ``event`` emitted by ``node`` into ``(checkpoint, step)`` and return the next node."""
    if node == INIT:
        if event.type != "startRun":
            raise RunStateError(f"Unexpected event {event.type} in state {node}")
        checkpoint, step = _start_run(checkpoint, step, event)
        return checkpoint, step, route_after_start(checkpoint)
    next_node = _NEXT_NODE.get((node, event.type))
    if next_node is None:
        raise RunStateError(f"Unexpected event {event.type} in state {node}")
    checkpoint, step = _REDUCERS[event.type](checkpoint, step, event)
    return checkpoint, step, next_node
