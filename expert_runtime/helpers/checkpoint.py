"""Checkpoint construction and delegation state transitions."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from ..errors import DelegationError, RunStateError
from ..schemas.base import new_id
from ..schemas.checkpoint import Checkpoint, CheckpointStatus, DelegatedBy, DelegationTarget, ExpertRef
from ..schemas.experts import Expert
from ..schemas.messages import ExpertMessage, Message
from ..schemas.setting import InteractiveToolCallResult, RunInput, RunSetting
from ..schemas.tools import ToolCall, ToolResult
from ..schemas.usage import Usage
from .usage import create_empty_usage


@dataclass(frozen=True)
class DelegationStateResult:
    setting: RunSetting
    checkpoint: Checkpoint


def expert_ref(expert: Expert) -> ExpertRef:
    return ExpertRef(key=expert.key, name=expert.name, version=expert.version)


def create_initial_checkpoint(
    *,
    job_id: str,
    run_id: str,
    expert: Expert,
    context_window: Optional[int] = None,
    checkpoint_id: Optional[str] = None,
) -> Checkpoint:
    return Checkpoint(
        id=checkpoint_id or new_id(),
        job_id=job_id,
        run_id=run_id,
        status=CheckpointStatus.init,
        step_number=1,
        messages=[],
        expert=expert_ref(expert),
        usage=create_empty_usage(),
        context_window=context_window,
        context_window_usage=0.0 if context_window else None,
    )


def create_next_step_checkpoint(checkpoint: Checkpoint, checkpoint_id: Optional[str] = None) -> Checkpoint:
    return checkpoint.model_copy(update={"id": checkpoint_id or new_id(), "step_number": checkpoint.step_number + 1})


def last_expert_text(checkpoint: Checkpoint) -> str:
    """Return the text of the final expert message of a finished delegate run.

    Raises:
        DelegationError: If the last message is not an expert message or carries no text.
    """
    if not checkpoint.messages or not isinstance(checkpoint.messages[-1], ExpertMessage):
        raise DelegationError("delegation result message is incorrect")
    text = checkpoint.messages[-1].first_text()
    if text is None:
        raise DelegationError("delegation result message does not contain text")
    return text


def build_delegation_return_state(
    current_setting: RunSetting,
    result_checkpoint: Checkpoint,
    parent_checkpoint: Checkpoint,
) -> DelegationStateResult:
    """Resume the parent of a completed delegate run with the delegate's final text."""
    delegated_by = result_checkpoint.delegated_by
    if delegated_by is None:
        raise RunStateError("delegated_by is required to return from a delegation")
    text = last_expert_text(result_checkpoint)
    setting = current_setting.model_copy(
        update={
            "expert_key": delegated_by.expert.key,
            "run_id": parent_checkpoint.run_id,
            "input": RunInput(
                interactive_tool_call_result=InteractiveToolCallResult(
                    tool_call_id=delegated_by.tool_call_id,
                    tool_name=delegated_by.tool_name,
                    skill_name=f"delegate/{result_checkpoint.expert.key}",
                    text=text,
                )
            ),
        }
    )
    checkpoint = parent_checkpoint.model_copy(
        update={"step_number": result_checkpoint.step_number, "usage": result_checkpoint.usage}
    )
    return DelegationStateResult(setting=setting, checkpoint=checkpoint)


@dataclass(frozen=True)
class DelegationContext:
    """What a delegation needs from the parent checkpoint.

    ``messages`` are kept so the parent can resume its conversation after a
    parallel delegation; children always start with no messages.
    """

    id: str
    run_id: str
    step_number: int
    usage: Usage
    messages: List[Message]
    context_window: Optional[int] = None
    pending_tool_calls: Optional[List[ToolCall]] = None
    partial_tool_results: Optional[List[ToolResult]] = None
    delegated_by: Optional[DelegatedBy] = None


def extract_delegation_context(checkpoint: Checkpoint) -> DelegationContext:
    return DelegationContext(
        id=checkpoint.id,
        run_id=checkpoint.run_id,
        step_number=checkpoint.step_number,
        usage=checkpoint.usage,
        messages=list(checkpoint.messages),
        context_window=checkpoint.context_window,
        pending_tool_calls=checkpoint.pending_tool_calls,
        partial_tool_results=checkpoint.partial_tool_results,
        delegated_by=checkpoint.delegated_by,
    )


def build_delegate_to_state(
    current_setting: RunSetting,
    target: DelegationTarget,
    context: DelegationContext,
    parent_expert: ExpertRef,
    *,
    usage: Optional[Usage] = None,
) -> DelegationStateResult:
    """Prepare the child run for one delegation.

    The child gets a new run id and checkpoint id, starts with no messages,
    and links back to the parent checkpoint through ``delegated_by``.

    Args:
        current_setting: The parent's run setting.
        target: The delegate call to run.
        context: The parent checkpoint's delegation context.
        parent_expert: The delegating expert.
        usage: Starting usage of the child, the parent's usage when omitted.

    Returns:
        DelegationStateResult: The child's setting and initial checkpoint.
    """
    child_run_id = new_id()
    setting = current_setting.model_copy(
        update={"expert_key": target.expert.key, "run_id": child_run_id, "input": RunInput(text=target.query)}
    )
    checkpoint = Checkpoint(
        id=new_id(),
        job_id=current_setting.job_id,
        run_id=child_run_id,
        status=CheckpointStatus.init,
        step_number=context.step_number,
        messages=[],
        expert=target.expert,
        usage=context.usage if usage is None else usage,
        context_window=context.context_window,
        delegated_by=DelegatedBy(
            expert=parent_expert,
            tool_call_id=target.tool_call_id,
            tool_name=target.tool_name,
            checkpoint_id=context.id,
            run_id=context.run_id,
        ),
    )
    return DelegationStateResult(setting=setting, checkpoint=checkpoint)
