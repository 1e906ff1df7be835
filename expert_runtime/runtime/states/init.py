from __future__ import annotations

from ...errors import RunStateError
from ...helpers.messages import create_instruction_message, create_user_message
from ...schemas.checkpoint import CheckpointStatus
from ...schemas.events import StartRunEvent
from ...schemas.parts import TextPart
from ...schemas.tools import ToolResult
from ..events import create_event
from ..models import StateContext

_RESUMABLE = (CheckpointStatus.stopped_by_delegate, CheckpointStatus.stopped_by_interactive_tool)


async def init_logic(ctx: StateContext) -> StartRunEvent:
    """Build the run's input messages from its checkpoint status.

    - ``init``: instruction message plus the user's text.
    - stopped by a delegate or interactive tool: the external answer becomes a
      tool result and the answered call leaves the pending list.
    - anything else: the user's text continues the conversation.
    """
    setting, checkpoint = ctx.setting, ctx.checkpoint
    expert = setting.experts[setting.expert_key]

    if checkpoint.status == CheckpointStatus.init:
        if not setting.input.text:
            raise RunStateError("Input message is undefined")
        return create_event(
            StartRunEvent,
            setting,
            checkpoint,
            initial_checkpoint=checkpoint,
            input_messages=[
                create_instruction_message(expert, setting.experts, setting.started_at),
                create_user_message([TextPart(text=setting.input.text)]),
            ],
        )

    if checkpoint.status in _RESUMABLE:
        answer = setting.input.interactive_tool_call_result
        if answer is None:
            raise RunStateError("Interactive tool call result is undefined")
        tool_result = ToolResult(
            id=answer.tool_call_id,
            skill_name=answer.skill_name or "",
            tool_name=answer.tool_name,
            result=[TextPart(text=answer.text)],
        )
        pending = [call for call in checkpoint.pending_tool_calls or [] if call.id != answer.tool_call_id]
        resumed = checkpoint.model_copy(
            update={
                "partial_tool_results": [*(checkpoint.partial_tool_results or []), tool_result],
                "pending_tool_calls": pending or None,
                "delegate_to": None,
            }
        )
        return create_event(StartRunEvent, setting, resumed, initial_checkpoint=resumed, input_messages=[])

    if not setting.input.text:
        raise RunStateError("Input message is undefined")
    return create_event(
        StartRunEvent,
        setting,
        checkpoint,
        initial_checkpoint=checkpoint,
        input_messages=[create_user_message([TextPart(text=setting.input.text)])],
    )
