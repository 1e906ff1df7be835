"""Partitioning of a tool-call batch by the kind of backend that serves it."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Sequence

from ..schemas.tools import ToolCall
from .base import BaseSkillManager
from .registry import SkillManagers, get_skill_manager_by_tool_name

_PRIORITY: Dict[str, int] = {"mcp": 0, "delegate": 1, "interactive": 2}


@dataclass(frozen=True)
class ClassifiedToolCall:
    tool_call: ToolCall
    skill_manager: BaseSkillManager


@dataclass
class ClassifiedToolCalls:
    mcp: List[ClassifiedToolCall] = field(default_factory=list)
    delegate: List[ClassifiedToolCall] = field(default_factory=list)
    interactive: List[ClassifiedToolCall] = field(default_factory=list)


async def classify_tool_calls(tool_calls: Sequence[ToolCall], managers: SkillManagers) -> ClassifiedToolCalls:
    """Split ``tool_calls`` into mcp, delegate and interactive buckets.

    Call order is preserved inside each bucket.

    Raises:
        ToolNotFoundError: If no manager declares a called tool.
    """
    classified = ClassifiedToolCalls()
    for tool_call in tool_calls:
        manager = await get_skill_manager_by_tool_name(managers, tool_call.tool_name)
        getattr(classified, manager.type).append(ClassifiedToolCall(tool_call, manager))
    return classified


def sort_tool_calls_by_priority(calls: Sequence[ClassifiedToolCall]) -> List[ClassifiedToolCall]:
    """Order calls mcp, then delegate, then interactive; stable within a kind."""
    return sorted(calls, key=lambda call: _PRIORITY[call.skill_manager.type])
