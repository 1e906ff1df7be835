from __future__ import annotations

from ...errors import RunStateError
from ...schemas.events import FinishToolCallEvent
from ..events import create_event
from ..models import StateContext
from .common import create_tool_result_message


async def resolving_tool_result_logic(ctx: StateContext) -> FinishToolCallEvent:
    """Fold the step's tool results into a single tool message."""
    if not ctx.step.tool_results:
        raise RunStateError("No tool results found")
    tool_message = create_tool_result_message(ctx.step.tool_results, ctx.step.tool_calls)
    return create_event(FinishToolCallEvent, ctx.setting, ctx.checkpoint, new_messages=[tool_message])
