from __future__ import annotations

from typing import Any, Dict, List, Optional

from ..helpers.listener import EventListener
from ..schemas.experts import Expert
from ..schemas.tools import ToolDefinition
from .base import BaseSkillManager, SkillType, ToolContent


def delegate_tool_name(expert_name: str) -> str:
    """Tool name for a delegate: the last ``/``-separated segment of the expert name."""
    return expert_name.split("/")[-1]


class DelegateSkillManager(BaseSkillManager):
    """Exposes another expert as a single tool taking a ``query``.

    Calling the tool does nothing here; the state machine turns the call into
    a delegated run.
    """

    type: SkillType = "delegate"
    lazy_init = False

    def __init__(self, expert: Expert, job_id: str, run_id: str, event_listener: Optional[EventListener] = None) -> None:
        super().__init__(job_id, run_id, event_listener)
        self.expert = expert
        self.name = expert.name

    async def _do_init(self) -> None:
        self._tool_definitions = [
            ToolDefinition(
                skill_name=self.expert.name,
                name=delegate_tool_name(self.expert.name),
                description=self.expert.description,
                input_schema={
                    "type": "object",
                    "properties": {"query": {"type": "string"}},
                    "required": ["query"],
                },
            )
        ]

    async def call_tool(self, tool_name: str, args: Dict[str, Any]) -> List[ToolContent]:
        return []
