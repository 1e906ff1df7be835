from __future__ import annotations

"""LangGraph run state machine.

``RunStateMachine`` drives one run of one expert until it stops.

Execution model
---------------

- The engine runs a LangGraph state machine over a mutable ``_GraphState``.
- Each node runs exactly one state logic, which returns exactly one event.
- After every event the node:

  1. persists the event's checkpoint, when the event carries one;
  2. emits the event to the listener;
  3. folds the event into (checkpoint, step) and names the next node;
  4. unless the run already stopped, asks ``should_continue_run`` whether to go on.

Stopping
--------

Every terminal event routes to ``finish``, which closes all skill managers.
The same happens when ``should_continue_run`` declines. If any node raises,
the managers are closed and the exception propagates to the caller.
"""

import logging
from typing import Any, Dict, Optional

from langgraph.graph import END, StateGraph

from ..schemas.checkpoint import Checkpoint, Step
from ..schemas.events import CHECKPOINT_EVENTS
from ..schemas.setting import RunSetting
from ..skills.registry import close_skill_managers
from .models import RunDeps, StateContext, StateLogic, _GraphState
from .states import STATE_LOGICS
from .transitions import INIT, NODES, STOPPED, apply_event

logger = logging.getLogger(__name__)

# Upper bound on node visits for runs without ``max_steps``.
DEFAULT_RECURSION_LIMIT = 100_000
_NODES_PER_STEP = 6


class RunStateMachine:
    """Execute one run with checkpointing after every transition.

    The machine owns no persistence itself: checkpoints go through
    ``RunDeps.store_checkpoint`` and events through ``RunDeps.emitter``.
    """

    def __init__(self, deps: RunDeps) -> None:
        """
        Initialize the RunStateMachine.

        Args:
            deps: The run's dependencies (executor, skill managers, emitter and hooks).
        """
        self._deps = deps
        self._graph = self._build_graph()

    def _build_graph(self):
        """Build and compile the LangGraph state machine."""
        g: StateGraph = StateGraph(_GraphState)
        for name in NODES:
            g.add_node(name, self._make_node(STATE_LOGICS[name]))
        g.add_node("finish", self._node_finish)

        g.set_entry_point(INIT)
        routes = {name: name for name in NODES}
        routes[STOPPED] = "finish"
        for name in NODES:
            g.add_conditional_edges(name, self._route, routes)
        g.add_edge("finish", END)
        return g.compile()

    def _make_node(self, logic: StateLogic):
        async def _node(state: _GraphState) -> Dict[str, Any]:
            return await self._run_state(state, logic)

        _node.__name__ = f"_node_{logic.__name__}"
        return _node

    async def _run_state(self, state: _GraphState, logic: StateLogic) -> Dict[str, Any]:
        setting, checkpoint, step = state["setting"], state["checkpoint"], state["step"]
        node = state["node"]
        event = await logic(StateContext(setting=setting, checkpoint=checkpoint, step=step, deps=self._deps))
        logger.debug("run %s step %d: %s -> %s", setting.run_id, checkpoint.step_number, node, event.type)

        if isinstance(event, CHECKPOINT_EVENTS) and self._deps.store_checkpoint is not None:
            await self._deps.store_checkpoint(event.checkpoint)
        await self._deps.emitter.emit(event)

        checkpoint, step, next_node = apply_event(node, checkpoint, step, event)
        if next_node != STOPPED and self._deps.should_continue_run is not None:
            if not await self._deps.should_continue_run(setting, checkpoint, step):
                logger.info("Run %s halted by should_continue_run after %s", setting.run_id, event.type)
                next_node = STOPPED
        return {"checkpoint": checkpoint, "step": step, "node": next_node, "last_event": event}

    def _route(self, state: _GraphState) -> str:
        return state["node"]

    async def _node_finish(self, state: _GraphState) -> Dict[str, Any]:
        """Close every skill manager once the run has stopped."""
        await close_skill_managers(self._deps.skill_managers)
        return {"node": STOPPED}

    def _recursion_limit(self, setting: RunSetting) -> int:
        if setting.max_steps is None:
            return DEFAULT_RECURSION_LIMIT
        return (setting.max_steps + setting.max_retries + 2) * _NODES_PER_STEP

    async def run(self, setting: RunSetting, checkpoint: Checkpoint) -> Checkpoint:
        """Run from ``checkpoint`` until a terminal event and return the final checkpoint.

        Raises:
            Exception: Whatever a state logic raised, after all skill managers are closed.
        """
        state: _GraphState = {
            "setting": setting,
            "checkpoint": checkpoint,
            "step": Step(step_number=checkpoint.step_number),
            "node": INIT,
            "last_event": None,
        }
        try:
            final: Optional[Dict[str, Any]] = await self._graph.ainvoke(
                state, config={"recursion_limit": self._recursion_limit(setting)}
            )
        except Exception:
            logger.exception("Run %s failed; closing skill managers", setting.run_id)
            await close_skill_managers(self._deps.skill_managers)
            raise
        return final["checkpoint"]


async def execute_state_machine(setting: RunSetting, checkpoint: Checkpoint, deps: RunDeps) -> Checkpoint:
    return await RunStateMachine(deps).run(setting, checkpoint)
