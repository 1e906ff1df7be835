from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

from ..helpers.listener import EventListener
from ..schemas.experts import InteractiveSkill
from ..schemas.tools import ToolDefinition
from .base import BaseSkillManager, SkillType, ToolContent


class InteractiveSkillManager(BaseSkillManager):
    """Tools answered outside the run by a human or UI.

    Calls never execute here: the state machine stops the run and the answer
    comes back as the next run's input.
    """

    type: SkillType = "interactive"
    lazy_init = False

    def __init__(
        self, skill: InteractiveSkill, job_id: str, run_id: str, event_listener: Optional[EventListener] = None
    ) -> None:
        super().__init__(job_id, run_id, event_listener)
        self.skill = skill
        self.name = skill.name

    async def _do_init(self) -> None:
        self._tool_definitions = [
            ToolDefinition(
                skill_name=self.skill.name,
                name=tool.name,
                description=tool.description,
                input_schema=json.loads(tool.input_json_schema),
                interactive=True,
            )
            for tool in self.skill.tools.values()
        ]

    async def call_tool(self, tool_name: str, args: Dict[str, Any]) -> List[ToolContent]:
        return []
