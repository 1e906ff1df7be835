from __future__ import annotations

from typing import List

from ...errors import DelegationError, RunStateError
from ...helpers.checkpoint import expert_ref
from ...schemas.checkpoint import CheckpointStatus, DelegationTarget
from ...schemas.events import StopRunByDelegateEvent
from ...schemas.tools import ToolCall
from ...skills.delegate import DelegateSkillManager
from ...skills.registry import get_skill_manager_by_tool_name
from ..events import create_event
from ..models import StateContext
from .common import finished_step


async def calling_delegate_logic(ctx: StateContext) -> StopRunByDelegateEvent:
    """Stop the run and record who to delegate to.

    Each pending delegate call becomes a ``DelegationTarget``; the run is
    resumed externally once the delegates finish. Non-delegate calls stay
    pending.
    """
    step = ctx.step
    if not step.pending_tool_calls:
        raise RunStateError("No pending tool calls found")

    targets: List[DelegationTarget] = []
    others: List[ToolCall] = []
    for tool_call in step.pending_tool_calls:
        manager = await get_skill_manager_by_tool_name(ctx.deps.skill_managers, tool_call.tool_name)
        if manager.type != "delegate":
            others.append(tool_call)
            continue
        if not isinstance(manager, DelegateSkillManager):
            raise DelegationError(f'skill manager "{tool_call.tool_name}" not found')
        query = tool_call.args.get("query")
        if not isinstance(query, str) or not query:
            raise DelegationError(f"query is undefined for {tool_call.tool_name}")
        targets.append(
            DelegationTarget(
                expert=expert_ref(manager.expert),
                tool_call_id=tool_call.id,
                tool_name=tool_call.tool_name,
                query=query,
            )
        )
    if not targets:
        raise RunStateError("No delegate tool calls found")

    return create_event(
        StopRunByDelegateEvent,
        ctx.setting,
        ctx.checkpoint,
        checkpoint=ctx.checkpoint.model_copy(
            update={
                "status": CheckpointStatus.stopped_by_delegate,
                "delegate_to": targets,
                "pending_tool_calls": others or None,
                "partial_tool_results": step.partial_tool_results,
            }
        ),
        step=finished_step(step),
    )
