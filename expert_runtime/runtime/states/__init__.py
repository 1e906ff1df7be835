"""Per-state logic of the run state machine.

Each logic takes a ``StateContext`` and returns exactly one ``RunEvent``.
"""

from typing import Dict

from ..models import StateLogic
from ..transitions import (
    CALLING_DELEGATE,
    CALLING_INTERACTIVE_TOOL,
    CALLING_TOOL,
    FINISHING_STEP,
    GENERATING_RUN_RESULT,
    GENERATING_TOOL_CALL,
    INIT,
    RESOLVING_TOOL_RESULT,
)
from .calling_delegate import calling_delegate_logic
from .calling_interactive_tool import calling_interactive_tool_logic
from .calling_tool import calling_tool_logic, execute_tool_call
from .finishing_step import finishing_step_logic
from .generating_run_result import generating_run_result_logic
from .generating_tool_call import generating_tool_call_logic
from .init import init_logic
from .resolving_tool_result import resolving_tool_result_logic

STATE_LOGICS: Dict[str, StateLogic] = {
    INIT: init_logic,
    GENERATING_TOOL_CALL: generating_tool_call_logic,
    CALLING_TOOL: calling_tool_logic,
    CALLING_DELEGATE: calling_delegate_logic,
    CALLING_INTERACTIVE_TOOL: calling_interactive_tool_logic,
    RESOLVING_TOOL_RESULT: resolving_tool_result_logic,
    GENERATING_RUN_RESULT: generating_run_result_logic,
    FINISHING_STEP: finishing_step_logic,
}

__all__ = [
    "STATE_LOGICS",
    "calling_delegate_logic",
    "calling_interactive_tool_logic",
    "calling_tool_logic",
    "execute_tool_call",
    "finishing_step_logic",
    "generating_run_result_logic",
    "generating_tool_call_logic",
    "init_logic",
    "resolving_tool_result_logic",
]
