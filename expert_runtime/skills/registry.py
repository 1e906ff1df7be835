"""Skill manager creation, lookup and teardown for one run."""

from __future__ import annotations

import asyncio
from typing import Dict, List, Mapping, Optional, Sequence

from ..constants import BASE_SKILL_NAME
from ..core.logging_config import get_logger
from ..errors import DelegateExpertNotFoundError, SkillConfigurationError, ToolNotFoundError
from ..helpers.listener import EventListener
from ..schemas.experts import Expert, InteractiveSkill, McpHttpSkill, McpSseSkill, McpStdioSkill
from ..schemas.setting import RunSetting
from ..schemas.tools import ToolDefinition
from .base import BaseSkillManager
from .delegate import DelegateSkillManager
from .interactive import InteractiveSkillManager
from .lazy import LazySkillManager
from .mcp import InMemoryBaseSkillManager, McpSkill, McpSkillManager

logger = get_logger(__name__)

SkillManagers = Dict[str, BaseSkillManager]


class SkillManagerFactory:
    """Builds the concrete managers; swap it out to inject fakes."""

    def create_in_memory_base(
        self, skill: McpStdioSkill, setting: RunSetting, event_listener: Optional[EventListener]
    ) -> BaseSkillManager:
        return InMemoryBaseSkillManager(setting.job_id, setting.run_id, event_listener, skill=skill)

    def create_mcp(self, skill: McpSkill, setting: RunSetting, event_listener: Optional[EventListener]) -> BaseSkillManager:
        return McpSkillManager(skill, setting.env, setting.job_id, setting.run_id, event_listener)

    def create_lazy(
        self,
        skill: McpSkill,
        tool_definitions: Sequence[ToolDefinition],
        setting: RunSetting,
        event_listener: Optional[EventListener],
    ) -> BaseSkillManager:
        return LazySkillManager(
            skill,
            tool_definitions,
            setting.env,
            setting.job_id,
            setting.run_id,
            event_listener,
            factory=lambda: self.create_mcp(skill, setting, event_listener),
        )

    def create_interactive(
        self, skill: InteractiveSkill, setting: RunSetting, event_listener: Optional[EventListener]
    ) -> BaseSkillManager:
        return InteractiveSkillManager(skill, setting.job_id, setting.run_id, event_listener)

    def create_delegate(self, expert: Expert, setting: RunSetting, event_listener: Optional[EventListener]) -> BaseSkillManager:
        return DelegateSkillManager(expert, setting.job_id, setting.run_id, event_listener)


default_skill_manager_factory = SkillManagerFactory()


def group_tool_definitions(definitions: Sequence[ToolDefinition]) -> Dict[str, List[ToolDefinition]]:
    """Group previously discovered tool definitions by skill name."""
    grouped: Dict[str, List[ToolDefinition]] = {}
    for definition in definitions:
        grouped.setdefault(definition.skill_name, []).append(definition)
    return grouped


async def close_all(managers: Sequence[BaseSkillManager]) -> None:
    await asyncio.gather(*(manager.close() for manager in managers), return_exceptions=True)


async def init_skill_managers_with_cleanup(
    managers: Sequence[BaseSkillManager], all_managers: Sequence[BaseSkillManager]
) -> None:
    """Initialize ``managers`` concurrently; on any failure close ``all_managers``.

    Every ``init`` is allowed to settle before cleanup starts, so no manager is
    left half-started. The first failure (in ``managers`` order) is re-raised.
    """
    results = await asyncio.gather(*(manager.init() for manager in managers), return_exceptions=True)
    failure = next((result for result in results if isinstance(result, BaseException)), None)
    if failure is not None:
        logger.warning("Skill initialization failed, closing %d managers: %s", len(all_managers), failure)
        await close_all(all_managers)
        raise failure


def is_base_skill(skill: McpSkill) -> bool:
    if skill.name == BASE_SKILL_NAME:
        return True
    if isinstance(skill, McpStdioSkill):
        if skill.package_name and skill.package_name.startswith(BASE_SKILL_NAME):
            return True
        return any(arg.startswith(BASE_SKILL_NAME) for arg in skill.args)
    return False


def has_explicit_base_version(skill: McpStdioSkill) -> bool:
    """True when the base skill is pinned, e.g. ``@perstack/base@1.2.3``."""
    if skill.package_name and skill.package_name.find("@", 1) > 0:
        return True
    prefix = f"{BASE_SKILL_NAME}@"
    return any(arg.startswith(prefix) and len(arg) > len(prefix) for arg in skill.args)


def should_use_bundled_base(skill: McpSkill, base_skill_command: Optional[List[str]]) -> bool:
    if base_skill_command:
        return False
    if not isinstance(skill, McpStdioSkill):
        return False
    return not has_explicit_base_version(skill)


def apply_base_skill_command(skill: McpSkill, base_skill_command: Optional[List[str]]) -> McpSkill:
    """Replace the spawn command of an npx-launched base skill with ``base_skill_command``."""
    if base_skill_command is None or not isinstance(skill, McpStdioSkill) or skill.command != "npx":
        return skill
    if skill.package_name != BASE_SKILL_NAME and BASE_SKILL_NAME not in skill.args:
        return skill
    if not base_skill_command:
        raise SkillConfigurationError(skill.name, "base skill command override must have at least one element")
    command, *args = base_skill_command
    return skill.model_copy(update={"command": command, "package_name": None, "args": args, "lazy_init": False})


async def get_skill_managers(
    expert: Expert,
    experts: Dict[str, Expert],
    setting: RunSetting,
    event_listener: Optional[EventListener] = None,
    *,
    is_delegated_run: bool = False,
    factory: Optional[SkillManagerFactory] = None,
    tool_definitions: Optional[Mapping[str, Sequence[ToolDefinition]]] = None,
) -> SkillManagers:
    """Create and initialize every skill manager ``expert`` needs.

    Groups start in order: base, MCP skills, interactive skills (not for
    delegated runs), delegates. A failure in any group closes everything
    started so far before the error propagates.

    Args:
        expert: The expert being run.
        experts: All known experts, used to resolve delegates.
        setting: The run setting (ids, env and base skill override).
        event_listener: Receives runtime events emitted by the managers.
        is_delegated_run: Delegated runs never get interactive skills.
        factory: Manager factory, defaults to the real implementations.
        tool_definitions: Tool lists already known per MCP skill name. Those skills get a
            ``LazySkillManager`` that only spawns the server on its first tool call.

    Returns:
        SkillManagers: Managers keyed by name, base skill first.

    Raises:
        SkillConfigurationError: If the base skill is missing or misconfigured.
        DelegateExpertNotFoundError: If a delegate key is not in ``experts``.
    """
    factory = factory or default_skill_manager_factory
    base_skill = expert.skills.get(BASE_SKILL_NAME)
    if base_skill is None or isinstance(base_skill, InteractiveSkill):
        raise SkillConfigurationError(BASE_SKILL_NAME, "is not defined")

    all_managers: List[BaseSkillManager] = []
    use_bundled_base = should_use_bundled_base(base_skill, setting.base_skill_command)
    if use_bundled_base:
        base_manager = factory.create_in_memory_base(base_skill, setting, event_listener)
        all_managers.append(base_manager)
        await init_skill_managers_with_cleanup([base_manager], all_managers)

    mcp_managers: List[BaseSkillManager] = []
    try:
        for skill in expert.skills.values():
            if not isinstance(skill, (McpStdioSkill, McpSseSkill, McpHttpSkill)):
                continue
            if use_bundled_base and is_base_skill(skill):
                continue
            skill = apply_base_skill_command(skill, setting.base_skill_command)
            cached = tool_definitions.get(skill.name) if tool_definitions else None
            if cached:
                manager = factory.create_lazy(skill, cached, setting, event_listener)
            else:
                manager = factory.create_mcp(skill, setting, event_listener)
            all_managers.append(manager)
            mcp_managers.append(manager)
    except SkillConfigurationError:
        await close_all(all_managers)
        raise
    await init_skill_managers_with_cleanup(mcp_managers, all_managers)

    if not is_delegated_run:
        interactive_managers: List[BaseSkillManager] = []
        for skill in expert.skills.values():
            if isinstance(skill, InteractiveSkill):
                manager = factory.create_interactive(skill, setting, event_listener)
                all_managers.append(manager)
                interactive_managers.append(manager)
        await init_skill_managers_with_cleanup(interactive_managers, all_managers)

    delegate_managers: List[BaseSkillManager] = []
    for key in expert.delegates:
        delegate = experts.get(key)
        if delegate is None:
            await close_all(all_managers)
            raise DelegateExpertNotFoundError(key)
        manager = factory.create_delegate(delegate, setting, event_listener)
        all_managers.append(manager)
        delegate_managers.append(manager)
    await init_skill_managers_with_cleanup(delegate_managers, all_managers)

    return {manager.name: manager for manager in all_managers}


async def close_skill_managers(managers: SkillManagers) -> None:
    await close_all(list(managers.values()))


async def get_skill_manager_by_tool_name(managers: SkillManagers, tool_name: str) -> BaseSkillManager:
    for manager in managers.values():
        for definition in await manager.get_tool_definitions():
            if definition.name == tool_name:
                return manager
    raise ToolNotFoundError(tool_name)


async def get_tool_set(managers: SkillManagers) -> List[ToolDefinition]:
    """All tool definitions across ``managers``; a later duplicate name replaces an earlier one."""
    tools: Dict[str, ToolDefinition] = {}
    for manager in managers.values():
        for definition in await manager.get_tool_definitions():
            tools[definition.name] = definition
    return list(tools.values())
