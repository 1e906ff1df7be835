from __future__ import annotations

"""Runtime dependency bundle and LangGraph state types.

The state machine is dependency-injected.

- ``RunDeps`` collects the collaborators one run needs (model executor, skill
  managers, event emitter and the caller's persistence hooks).
- ``StateContext`` is what each state's logic receives.
- ``_GraphState`` is the mutable state passed between LangGraph nodes.
"""

from dataclasses import dataclass
from typing import Awaitable, Callable, NotRequired, Optional, Required, TypedDict

from ..llm.executor import LLMExecutor
from ..schemas.checkpoint import Checkpoint, Step
from ..schemas.events import RunEvent
from ..schemas.setting import RunSetting
from ..skills.registry import SkillManagers
from .events import RunEventEmitter

StoreCheckpoint = Callable[[Checkpoint], Awaitable[None]]
ShouldContinueRun = Callable[[RunSetting, Checkpoint, Step], Awaitable[bool]]
WithinStepLimit = Callable[[RunSetting, Checkpoint], bool]


def within_max_steps(setting: RunSetting, checkpoint: Checkpoint) -> bool:
    """Default step limit: unlimited without ``max_steps``, else ``step_number < max_steps``."""
    return setting.max_steps is None or checkpoint.step_number < setting.max_steps


@dataclass(frozen=True)
class RunDeps:
    """Dependency bundle for ``RunStateMachine``.

    - ``executor`` performs the model calls.
    - ``skill_managers`` are the initialized tool backends, keyed by name.
      The state machine closes them when the run stops.
    - ``emitter`` delivers every event to the caller's listener.
    - ``store_checkpoint`` persists the checkpoint carried by checkpoint events.
    - ``should_continue_run`` may halt the run after any transition.
    - ``within_step_limit`` decides whether another step may start.
    """

    executor: LLMExecutor
    skill_managers: SkillManagers
    emitter: RunEventEmitter
    store_checkpoint: Optional[StoreCheckpoint] = None
    should_continue_run: Optional[ShouldContinueRun] = None
    within_step_limit: WithinStepLimit = within_max_steps


@dataclass(frozen=True)
class StateContext:
    setting: RunSetting
    checkpoint: Checkpoint
    step: Step
    deps: RunDeps


StateLogic = Callable[[StateContext], Awaitable[RunEvent]]


class _GraphState(TypedDict):
    """Mutable LangGraph state for a single run.

    Required keys:

    - ``setting``: the run setting, unchanged for the whole run.
    - ``checkpoint``: the checkpoint after the last applied event.
    - ``step``: scratch state of the current step.
    - ``node``: the next node to execute; ``"stopped"`` ends the graph.

    Optional keys:

    - ``last_event``: the event produced by the previous node.
    """

    setting: Required[RunSetting]
    checkpoint: Required[Checkpoint]
    step: Required[Step]
    node: Required[str]
    last_event: NotRequired[Optional[RunEvent]]
