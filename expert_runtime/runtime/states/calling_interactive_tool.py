from __future__ import annotations

from ...schemas.checkpoint import CheckpointStatus
from ...schemas.events import StopRunByInteractiveToolEvent
from ..events import create_event
from ..models import StateContext
from .common import finished_step


async def calling_interactive_tool_logic(ctx: StateContext) -> StopRunByInteractiveToolEvent:
    """Stop the run until the pending interactive call is answered from outside."""
    return create_event(
        StopRunByInteractiveToolEvent,
        ctx.setting,
        ctx.checkpoint,
        checkpoint=ctx.checkpoint.model_copy(
            update={
                "status": CheckpointStatus.stopped_by_interactive_tool,
                "pending_tool_calls": ctx.step.pending_tool_calls,
                "partial_tool_results": ctx.step.partial_tool_results,
            }
        ),
        step=finished_step(ctx.step),
    )
