"""Run state machine, delegation and the run loop."""

from .delegation import (
    DelegationExecutionResult,
    DelegationResult,
    DelegationStrategy,
    ParallelDelegationStrategy,
    RunFn,
    SingleDelegationStrategy,
    build_return_from_delegation,
    select_delegation_strategy,
)
from .engine import RunStateMachine, execute_state_machine
from .events import RunEventEmitter, create_event, create_runtime_event
from .models import RunDeps, StateContext, within_max_steps
from .orchestrator import RunOrchestrator, create_run_setting, default_executor_factory, run
from .transitions import apply_event, route_after_start

__all__ = [
    "DelegationExecutionResult",
    "DelegationResult",
    "DelegationStrategy",
    "ParallelDelegationStrategy",
    "RunDeps",
    "RunEventEmitter",
    "RunFn",
    "RunOrchestrator",
    "RunStateMachine",
    "SingleDelegationStrategy",
    "StateContext",
    "apply_event",
    "build_return_from_delegation",
    "create_event",
    "create_run_setting",
    "create_runtime_event",
    "default_executor_factory",
    "execute_state_machine",
    "route_after_start",
    "run",
    "select_delegation_strategy",
    "within_max_steps",
]
