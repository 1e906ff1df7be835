from .base import BaseSkillManager, SkillType, ToolContent
from .builtin import create_base_server
from .classifier import ClassifiedToolCall, ClassifiedToolCalls, classify_tool_calls, sort_tool_calls_by_priority
from .delegate import DelegateSkillManager
from .interactive import InteractiveSkillManager
from .lazy import LazySkillManager
from .mcp import InMemoryBaseSkillManager, McpSkillManager
from .registry import (
    SkillManagerFactory,
    SkillManagers,
    close_skill_managers,
    get_skill_manager_by_tool_name,
    get_skill_managers,
    get_tool_set,
    init_skill_managers_with_cleanup,
)

__all__ = [
    "BaseSkillManager",
    "ClassifiedToolCall",
    "ClassifiedToolCalls",
    "DelegateSkillManager",
    "InMemoryBaseSkillManager",
    "InteractiveSkillManager",
    "LazySkillManager",
    "McpSkillManager",
    "SkillManagerFactory",
    "SkillManagers",
    "SkillType",
    "ToolContent",
    "classify_tool_calls",
    "close_skill_managers",
    "create_base_server",
    "get_skill_manager_by_tool_name",
    "get_skill_managers",
    "get_tool_set",
    "init_skill_managers_with_cleanup",
    "sort_tool_calls_by_priority",
]
