from __future__ import annotations

from typing import Union

from ...helpers.checkpoint import create_next_step_checkpoint
from ...schemas.checkpoint import CheckpointStatus
from ...schemas.events import ContinueToNextStepEvent, StopRunByExceededMaxStepsEvent
from ..events import create_event
from ..models import StateContext
from .common import finished_step


async def finishing_step_logic(ctx: StateContext) -> Union[ContinueToNextStepEvent, StopRunByExceededMaxStepsEvent]:
    """Close the step: stop at the step limit, otherwise open the next checkpoint."""
    setting, checkpoint = ctx.setting, ctx.checkpoint
    step = finished_step(ctx.step)
    if not ctx.deps.within_step_limit(setting, checkpoint):
        return create_event(
            StopRunByExceededMaxStepsEvent,
            setting,
            checkpoint,
            checkpoint=checkpoint.model_copy(update={"status": CheckpointStatus.stopped_by_exceeded_max_steps}),
            step=step,
        )
    return create_event(
        ContinueToNextStepEvent,
        setting,
        checkpoint,
        checkpoint=checkpoint,
        step=step,
        next_checkpoint=create_next_step_checkpoint(checkpoint),
    )
