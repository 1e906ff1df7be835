"""Run loop across runs of one job.

``RunOrchestrator.execute`` runs the state machine for one expert, then acts
on the terminal checkpoint: completed runs return (or resume the delegating
parent), delegations start child runs, other stops end the job.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Sequence, Tuple

from ..constants import RUNTIME_VERSION
from ..core.config import settings
from ..errors import ExpertNotFoundError, RunStateError
from ..helpers.checkpoint import create_initial_checkpoint, create_next_step_checkpoint, extract_delegation_context
from ..helpers.listener import EventListener, notify
from ..helpers.model import get_context_window
from ..llm.adapters import get_provider_adapter
from ..llm.executor import LLMExecutor, create_llm_executor
from ..repos.interfaces import Storage
from ..repos.memory import InMemoryStorage
from ..schemas.base import now_ms
from ..schemas.checkpoint import Checkpoint, CheckpointStatus
from ..schemas.events import RUN_EVENTS, InitializeRuntimeEvent
from ..schemas.experts import Expert
from ..schemas.job import Job, JobStatus
from ..schemas.setting import ProviderConfig, RunInput, RunSetting
from ..schemas.tools import ToolDefinition
from ..skills.registry import SkillManagerFactory, get_skill_managers, group_tool_definitions
from .delegation import build_return_from_delegation, select_delegation_strategy
from .engine import execute_state_machine
from .events import RunEventEmitter, create_runtime_event
from .models import RunDeps, ShouldContinueRun, WithinStepLimit, within_max_steps

logger = logging.getLogger(__name__)

ResolveExpertToRun = Callable[[str, Dict[str, Expert]], Awaitable[Expert]]
ExecutorFactory = Callable[[RunSetting], LLMExecutor]

_JOB_STATUS_BY_STOP: Dict[CheckpointStatus, JobStatus] = {
    CheckpointStatus.stopped_by_interactive_tool: JobStatus.stopped_by_interactive_tool,
    CheckpointStatus.stopped_by_exceeded_max_steps: JobStatus.stopped_by_max_steps,
    CheckpointStatus.stopped_by_error: JobStatus.stopped_by_error,
}


def default_executor_factory(setting: RunSetting) -> LLMExecutor:
    return create_llm_executor(get_provider_adapter(setting.provider_config), setting.model, timeout=setting.timeout)


def create_run_setting(
    expert_key: str,
    experts: Dict[str, Expert],
    *,
    text: Optional[str] = None,
    model: Optional[str] = None,
    provider_name: Optional[str] = None,
    **overrides: Any,
) -> RunSetting:
    """Build a ``RunSetting`` whose unset values come from the runtime ``settings``.

    Args:
        expert_key: The expert to run.
        experts: Every expert the run may use, delegates included.
        text: The user's query.
        model: Model id, ``settings.default_model`` when omitted.
        provider_name: Provider, ``settings.default_provider`` when omitted.
        **overrides: Any other ``RunSetting`` field.

    Returns:
        RunSetting: A setting for a new job.
    """
    provider_name = provider_name or settings.default_provider
    fields: Dict[str, Any] = {
        "max_retries": settings.default_max_retries,
        "timeout": settings.default_timeout,
        **overrides,
    }
    return RunSetting(
        expert_key=expert_key,
        experts=experts,
        input=RunInput(text=text),
        model=model or settings.default_model,
        provider_config=ProviderConfig(provider_name=provider_name, **settings.provider_credentials(provider_name)),
        **fields,
    )


class RunOrchestrator:
    """Drive a job from its first run to a terminal checkpoint.

    Every run event is stored through ``storage.store_event`` before the
    caller's listener sees it; streaming and runtime events only reach the
    listener.
    """

    def __init__(
        self,
        *,
        storage: Optional[Storage] = None,
        event_listener: Optional[EventListener] = None,
        should_continue_run: Optional[ShouldContinueRun] = None,
        within_step_limit: WithinStepLimit = within_max_steps,
        resolve_expert_to_run: Optional[ResolveExpertToRun] = None,
        executor_factory: Optional[ExecutorFactory] = None,
        skill_manager_factory: Optional[SkillManagerFactory] = None,
        locked_tool_definitions: Optional[Mapping[str, Sequence[ToolDefinition]]] = None,
        return_on_delegation_complete: bool = False,
    ) -> None:
        """
        Initialize the RunOrchestrator.

        Args:
            storage: Persistence for checkpoints, events and jobs. Defaults to in-memory.
            event_listener: Receives every run, streaming and runtime event.
            should_continue_run: Consulted after every transition; ``False`` halts the run.
            within_step_limit: Decides whether another step may start.
            resolve_expert_to_run: Looks up experts missing from ``setting.experts``.
            executor_factory: Builds the model executor for a run setting.
            skill_manager_factory: Builds skill managers; swap to inject fakes.
            locked_tool_definitions: Tool definitions discovered earlier, keyed by expert key.
                MCP skills listed there start only when one of their tools is called.
            return_on_delegation_complete: Return as soon as this delegated run completes
                instead of resuming its parent.
        """
        self._storage: Storage = storage if storage is not None else InMemoryStorage()
        self._user_listener = event_listener
        self._should_continue_run = should_continue_run
        self._within_step_limit = within_step_limit
        self._resolve_expert_to_run = resolve_expert_to_run
        self._executor_factory = executor_factory or default_executor_factory
        self._skill_manager_factory = skill_manager_factory
        self._locked_tool_definitions = locked_tool_definitions or {}
        self._return_on_delegation_complete = return_on_delegation_complete

    async def _listener(self, event) -> None:
        if isinstance(event, RUN_EVENTS):
            await self._storage.store_event(event)
        await notify(self._user_listener, event)

    async def _resolve_experts(self, setting: RunSetting) -> Tuple[Expert, Dict[str, Expert]]:
        """Return the expert to run and every expert reachable from it."""
        experts = dict(setting.experts)

        async def _resolve(key: str) -> Expert:
            if key in experts:
                return experts[key]
            if self._resolve_expert_to_run is None:
                raise ExpertNotFoundError(key)
            experts[key] = await self._resolve_expert_to_run(key, experts)
            return experts[key]

        expert = await _resolve(setting.expert_key)
        for delegate_key in expert.delegates:
            await _resolve(delegate_key)
        return expert, experts

    async def _emit_init_event(self, setting: RunSetting, expert: Expert) -> None:
        event = create_runtime_event(
            InitializeRuntimeEvent,
            setting,
            runtime_version=RUNTIME_VERSION,
            expert_name=expert.name,
            experts=list(setting.experts.keys()),
            model=setting.model,
            temperature=setting.temperature,
            max_steps=setting.max_steps,
            max_retries=setting.max_retries,
            timeout=setting.timeout,
            query=setting.input.text,
            interactive_tool_call=setting.input.interactive_tool_call_result,
        )
        await self._listener(event)

    async def _start_job(self, setting: RunSetting) -> Job:
        job = await self._storage.retrieve_job(setting.job_id)
        if job is None:
            job = Job(id=setting.job_id, coordinator_expert_key=setting.expert_key, max_steps=setting.max_steps)
        elif job.status != JobStatus.running:
            job = job.model_copy(update={"status": JobStatus.running, "finished_at": None})
        await self._storage.store_job(job)
        return job

    async def _run_once(self, setting: RunSetting, checkpoint: Optional[Checkpoint], expert: Expert) -> Checkpoint:
        executor = self._executor_factory(setting)
        await self._emit_init_event(setting, expert)
        managers = await get_skill_managers(
            expert,
            setting.experts,
            setting,
            self._listener,
            is_delegated_run=checkpoint is not None and checkpoint.delegated_by is not None,
            factory=self._skill_manager_factory,
            tool_definitions=group_tool_definitions(self._locked_tool_definitions.get(expert.key, ())),
        )
        if checkpoint is not None:
            initial = create_next_step_checkpoint(checkpoint)
        else:
            initial = create_initial_checkpoint(
                job_id=setting.job_id,
                run_id=setting.run_id,
                expert=expert,
                context_window=get_context_window(setting.provider_config.provider_name, setting.model),
            )
        deps = RunDeps(
            executor=executor,
            skill_managers=managers,
            emitter=RunEventEmitter(self._listener),
            store_checkpoint=self._storage.store_checkpoint,
            should_continue_run=self._should_continue_run,
            within_step_limit=self._within_step_limit,
        )
        return await execute_state_machine(setting, initial, deps)

    async def _run_child(
        self, setting: RunSetting, checkpoint: Checkpoint, *, return_on_delegation_complete: bool = False
    ) -> Checkpoint:
        child = RunOrchestrator(
            storage=self._storage,
            event_listener=self._user_listener,
            should_continue_run=self._should_continue_run,
            within_step_limit=self._within_step_limit,
            resolve_expert_to_run=self._resolve_expert_to_run,
            executor_factory=self._executor_factory,
            skill_manager_factory=self._skill_manager_factory,
            locked_tool_definitions=self._locked_tool_definitions,
            return_on_delegation_complete=return_on_delegation_complete,
        )
        return await child.execute(setting, checkpoint)

    async def execute(self, setting: RunSetting, checkpoint: Optional[Checkpoint] = None) -> Checkpoint:
        """Run until the job reaches a terminal checkpoint.

        Args:
            setting: The setting of the first run.
            checkpoint: Resume from this checkpoint instead of starting fresh.

        Returns:
            Checkpoint: The terminal checkpoint.

        Raises:
            ExpertNotFoundError: If the expert to run cannot be resolved.
            DelegationError: If a delegate run ends without a final text.
            RunStateError: If a run stops in a state the loop cannot handle.
        """
        job = await self._start_job(setting)
        try:
            return await self._drive(setting, checkpoint, job)
        except Exception as e:
            logger.error("Job %s stopped by error: %s", setting.job_id, e)
            latest = await self._storage.retrieve_job(setting.job_id) or job
            await self._storage.store_job(
                latest.model_copy(update={"status": JobStatus.stopped_by_error, "finished_at": now_ms()})
            )
            raise

    async def _drive(self, setting: RunSetting, checkpoint: Optional[Checkpoint], job: Job) -> Checkpoint:
        root_run_id = setting.run_id

        while True:
            expert, experts = await self._resolve_experts(setting)
            setting = setting.model_copy(update={"experts": experts})
            await self._storage.store_run_setting(setting)
            logger.info("Starting run %s of expert %s", setting.run_id, setting.expert_key)

            result = await self._run_once(setting, checkpoint, expert)
            job = job.model_copy(update={"total_steps": result.step_number, "usage": result.usage})
            logger.info("Run %s stopped with status %s", result.run_id, result.status.value)

            if result.status == CheckpointStatus.completed:
                is_own_run = result.run_id == root_run_id
                if result.delegated_by is not None and not (self._return_on_delegation_complete and is_own_run):
                    await self._storage.store_job(job)
                    parent = await self._storage.retrieve_checkpoint(setting.job_id, result.delegated_by.checkpoint_id)
                    returned = build_return_from_delegation(setting, result, parent)
                    setting, checkpoint = returned.setting, returned.checkpoint
                    continue
                if self._return_on_delegation_complete:
                    await self._storage.store_job(job)
                    return result
                await self._storage.store_job(job.model_copy(update={"status": JobStatus.completed, "finished_at": now_ms()}))
                return result

            if result.status == CheckpointStatus.stopped_by_delegate:
                await self._storage.store_job(job)
                if not result.delegate_to:
                    raise RunStateError("No delegations found in checkpoint")
                strategy = select_delegation_strategy(len(result.delegate_to))
                next_state = await strategy.execute(
                    result.delegate_to,
                    setting,
                    extract_delegation_context(result),
                    result.expert,
                    self._run_child,
                )
                setting, checkpoint = next_state.next_setting, next_state.next_checkpoint
                continue

            if result.status in _JOB_STATUS_BY_STOP:
                status = _JOB_STATUS_BY_STOP[result.status]
                if status == JobStatus.stopped_by_interactive_tool:
                    await self._storage.store_job(job.model_copy(update={"status": status}))
                else:
                    await self._storage.store_job(job.model_copy(update={"status": status, "finished_at": now_ms()}))
                return result

            if result.status in (CheckpointStatus.init, CheckpointStatus.proceeding):
                # halted by should_continue_run
                await self._storage.store_job(job)
                return result

            raise RunStateError(f"Run stopped by unknown reason: {result.status.value}")


async def run(
    setting: RunSetting,
    checkpoint: Optional[Checkpoint] = None,
    *,
    storage: Optional[Storage] = None,
    event_listener: Optional[EventListener] = None,
    should_continue_run: Optional[ShouldContinueRun] = None,
    resolve_expert_to_run: Optional[ResolveExpertToRun] = None,
    executor_factory: Optional[ExecutorFactory] = None,
    skill_manager_factory: Optional[SkillManagerFactory] = None,
    locked_tool_definitions: Optional[Mapping[str, Sequence[ToolDefinition]]] = None,
) -> Checkpoint:
    """Execute a job and return its terminal checkpoint.

    Convenience wrapper around :class:`RunOrchestrator`.
    """
    orchestrator = RunOrchestrator(
        storage=storage,
        event_listener=event_listener,
        should_continue_run=should_continue_run,
        resolve_expert_to_run=resolve_expert_to_run,
        executor_factory=executor_factory,
        skill_manager_factory=skill_manager_factory,
        locked_tool_definitions=locked_tool_definitions,
    )
    return await orchestrator.execute(setting, checkpoint)
