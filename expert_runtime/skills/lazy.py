from __future__ import annotations

import asyncio
from typing import Any, Callable, Dict, List, Optional, Sequence

from ..helpers.listener import EventListener
from ..schemas.tools import ToolDefinition
from .base import BaseSkillManager, SkillType, ToolContent, filter_by_pick_omit
from .mcp import McpSkill, McpSkillManager

ManagerFactory = Callable[[], BaseSkillManager]


class LazySkillManager(BaseSkillManager):
    """MCP skill whose tool list is known ahead of time.

    Tool definitions come from a previous discovery (for example a lockfile),
    so nothing is spawned until the first ``call_tool``. Concurrent first
    calls share a single start-up of the real manager.
    """

    type: SkillType = "mcp"
    lazy_init = True

    def __init__(
        self,
        skill: McpSkill,
        tool_definitions: Sequence[ToolDefinition],
        env: Dict[str, str],
        job_id: str,
        run_id: str,
        event_listener: Optional[EventListener] = None,
        factory: Optional[ManagerFactory] = None,
    ) -> None:
        super().__init__(job_id, run_id, event_listener)
        self.skill = skill
        self.name = skill.name
        self._env = env
        self._cached = [definition.model_copy(update={"skill_name": skill.name}) for definition in tool_definitions]
        self._factory = factory or self._default_factory
        self._real: Optional[BaseSkillManager] = None
        self._starting: Optional[asyncio.Future] = None

    def _default_factory(self) -> BaseSkillManager:
        return McpSkillManager(self.skill, self._env, self.job_id, self.run_id, self._event_listener)

    async def _do_init(self) -> None:
        self._tool_definitions = list(self._cached)

    async def get_tool_definitions(self) -> List[ToolDefinition]:
        return self._filter_tools(self._cached)

    def _filter_tools(self, tools: Sequence[ToolDefinition]) -> List[ToolDefinition]:
        return filter_by_pick_omit(tools, self.skill.pick, self.skill.omit)

    async def _start_real(self) -> BaseSkillManager:
        manager = self._factory()
        manager.lazy_init = False
        await manager.init()
        self._real = manager
        return manager

    async def _ensure_real(self) -> BaseSkillManager:
        if self._real is not None:
            return self._real
        if self._starting is None:
            self._starting = asyncio.ensure_future(self._start_real())
        try:
            return await asyncio.shield(self._starting)
        except Exception:
            self._starting = None
            raise

    async def call_tool(self, tool_name: str, args: Dict[str, Any]) -> List[ToolContent]:
        manager = await self._ensure_real()
        return await manager.call_tool(tool_name, args)

    async def _do_close(self) -> None:
        if self._real is not None:
            await self._real.close()
            self._real = None
