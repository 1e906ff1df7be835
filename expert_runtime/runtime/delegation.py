"""Delegation strategies.

A run that stops with ``stoppedByDelegate`` hands its ``delegate_to`` targets
to a strategy:

- ``SingleDelegationStrategy`` only prepares the child run; the run loop
  executes it next and returns to the parent when it completes.
- ``ParallelDelegationStrategy`` runs every child concurrently, then resumes
  the parent with the first result as its input and the others stashed as
  partial tool results.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Awaitable, List, Protocol, Sequence

from ..errors import DelegationError
from ..helpers.checkpoint import (
    DelegationContext,
    DelegationStateResult,
    build_delegate_to_state,
    build_delegation_return_state,
    extract_delegation_context,
    last_expert_text,
)
from ..helpers.usage import create_empty_usage, sum_usage
from ..schemas.checkpoint import Checkpoint, CheckpointStatus, DelegationTarget, ExpertRef
from ..schemas.parts import TextPart
from ..schemas.setting import InteractiveToolCallResult, RunInput, RunSetting
from ..schemas.tools import ToolResult
from ..schemas.usage import Usage

logger = logging.getLogger(__name__)

__all__ = [
    "DelegationContext",
    "DelegationExecutionResult",
    "DelegationResult",
    "DelegationStrategy",
    "ParallelDelegationStrategy",
    "RunFn",
    "SingleDelegationStrategy",
    "build_return_from_delegation",
    "extract_delegation_context",
    "select_delegation_strategy",
]


class RunFn(Protocol):
    """Runs a (child) run to its end and returns the final checkpoint."""

    def __call__(
        self, setting: RunSetting, checkpoint: Checkpoint, *, return_on_delegation_complete: bool = False
    ) -> Awaitable[Checkpoint]: ...


@dataclass(frozen=True)
class DelegationResult:
    tool_call_id: str
    tool_name: str
    expert_key: str
    text: str
    step_number: int
    delta_usage: Usage


@dataclass(frozen=True)
class DelegationExecutionResult:
    next_setting: RunSetting
    next_checkpoint: Checkpoint


def delegate_skill_name(expert_key: str) -> str:
    return f"delegate/{expert_key}"


class DelegationStrategy(ABC):
    @abstractmethod
    async def execute(
        self,
        delegations: Sequence[DelegationTarget],
        setting: RunSetting,
        context: DelegationContext,
        parent_expert: ExpertRef,
        run_fn: RunFn,
    ) -> DelegationExecutionResult:
        """Return the setting and checkpoint the run loop continues with."""


class SingleDelegationStrategy(DelegationStrategy):
    async def execute(
        self,
        delegations: Sequence[DelegationTarget],
        setting: RunSetting,
        context: DelegationContext,
        parent_expert: ExpertRef,
        run_fn: RunFn,
    ) -> DelegationExecutionResult:
        if len(delegations) != 1:
            raise DelegationError("SingleDelegationStrategy requires exactly one delegation")
        child = build_delegate_to_state(setting, delegations[0], context, parent_expert)
        return DelegationExecutionResult(next_setting=child.setting, next_checkpoint=child.checkpoint)


class ParallelDelegationStrategy(DelegationStrategy):
    async def execute(
        self,
        delegations: Sequence[DelegationTarget],
        setting: RunSetting,
        context: DelegationContext,
        parent_expert: ExpertRef,
        run_fn: RunFn,
    ) -> DelegationExecutionResult:
        """Run all delegations concurrently and fold their results into the parent.

        Usage of every child is added to the parent's; the resumed parent's step
        number is the highest any child reached.
        """
        if len(delegations) < 2:
            raise DelegationError("ParallelDelegationStrategy requires at least two delegations")
        logger.info("Running %d delegations in parallel", len(delegations))
        results: List[DelegationResult] = list(
            await asyncio.gather(
                *(self._execute_one(delegation, setting, context, parent_expert, run_fn) for delegation in delegations)
            )
        )
        first, *rest = results

        usage = context.usage
        for result in results:
            usage = sum_usage(usage, result.delta_usage)
        rest_tool_results = [
            ToolResult(
                id=result.tool_call_id,
                skill_name=delegate_skill_name(result.expert_key),
                tool_name=result.tool_name,
                result=[TextPart(text=result.text)],
            )
            for result in rest
        ]
        delegated_ids = {delegation.tool_call_id for delegation in delegations}
        remaining = [call for call in context.pending_tool_calls or [] if call.id not in delegated_ids]

        next_setting = setting.model_copy(
            update={
                "expert_key": parent_expert.key,
                "input": RunInput(
                    interactive_tool_call_result=InteractiveToolCallResult(
                        tool_call_id=first.tool_call_id,
                        tool_name=first.tool_name,
                        skill_name=delegate_skill_name(first.expert_key),
                        text=first.text,
                    )
                ),
            }
        )
        next_checkpoint = Checkpoint(
            id=context.id,
            job_id=setting.job_id,
            run_id=setting.run_id,
            status=CheckpointStatus.stopped_by_delegate,
            step_number=max(result.step_number for result in results),
            messages=list(context.messages),
            expert=parent_expert,
            usage=usage,
            context_window=context.context_window,
            delegated_by=context.delegated_by,
            delegate_to=None,
            pending_tool_calls=remaining or None,
            partial_tool_results=[*(context.partial_tool_results or []), *rest_tool_results],
        )
        return DelegationExecutionResult(next_setting=next_setting, next_checkpoint=next_checkpoint)

    async def _execute_one(
        self,
        delegation: DelegationTarget,
        setting: RunSetting,
        context: DelegationContext,
        parent_expert: ExpertRef,
        run_fn: RunFn,
    ) -> DelegationResult:
        child = build_delegate_to_state(setting, delegation, context, parent_expert, usage=create_empty_usage())
        result_checkpoint = await run_fn(child.setting, child.checkpoint, return_on_delegation_complete=True)
        return DelegationResult(
            tool_call_id=delegation.tool_call_id,
            tool_name=delegation.tool_name,
            expert_key=delegation.expert.key,
            text=last_expert_text(result_checkpoint),
            step_number=result_checkpoint.step_number,
            delta_usage=result_checkpoint.usage,
        )


def select_delegation_strategy(delegation_count: int) -> DelegationStrategy:
    if delegation_count < 1:
        raise DelegationError("No delegations found")
    if delegation_count == 1:
        return SingleDelegationStrategy()
    return ParallelDelegationStrategy()


def build_return_from_delegation(
    current_setting: RunSetting, result_checkpoint: Checkpoint, parent_checkpoint: Checkpoint
) -> DelegationStateResult:
    """Resume the parent of a completed single delegation with the child's final text."""
    return build_delegation_return_state(current_setting, result_checkpoint, parent_checkpoint)
