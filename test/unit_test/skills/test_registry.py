from __future__ import annotations

from typing import List

import pytest

from expert_runtime.constants import BASE_SKILL_NAME
from expert_runtime.errors import DelegateExpertNotFoundError, SkillConfigurationError, ToolNotFoundError
from expert_runtime.schemas.experts import InteractiveSkill, InteractiveTool, McpSseSkill, McpStdioSkill, default_base_skill
from expert_runtime.schemas.tools import ToolCall, ToolDefinition
from expert_runtime.skills.base import BaseSkillManager
from expert_runtime.skills.classifier import classify_tool_calls
from expert_runtime.skills.delegate import DelegateSkillManager
from expert_runtime.skills.interactive import InteractiveSkillManager
from expert_runtime.skills.lazy import LazySkillManager
from expert_runtime.skills.registry import (
    apply_base_skill_command,
    get_skill_manager_by_tool_name,
    get_skill_managers,
    get_tool_set,
    group_tool_definitions,
    has_explicit_base_version,
    init_skill_managers_with_cleanup,
    is_base_skill,
    should_use_bundled_base,
)
from test.unit_test.fakes import FakeSkillManager, FakeSkillManagerFactory, make_expert, make_setting


def _sse(name: str) -> McpSseSkill:
    return McpSseSkill(name=name, endpoint=f"https://{name}.example.com/sse")


class _FailingFactory(FakeSkillManagerFactory):
    """MCP skills named in ``failing`` raise from ``init``."""

    def __init__(self, failing) -> None:
        super().__init__({"alpha": {"a": "1"}, "bravo": {"b": "2"}, "charlie": {"c": "3"}})
        self.failing = failing

    def create_mcp(self, skill, setting, event_listener):
        error = self.failing.get(skill.name)
        return self._track(FakeSkillManager(skill.name, self.mcp_tools.get(skill.name, {}), init_error=error))


@pytest.mark.asyncio
async def test_failed_init_closes_every_started_manager_once() -> None:
    skills = {BASE_SKILL_NAME: default_base_skill(), **{name: _sse(name) for name in ("alpha", "bravo", "charlie")}}
    expert = make_expert("assistant", skills=skills)
    setting = make_setting("assistant", {"assistant": expert})
    factory = _FailingFactory({"bravo": RuntimeError("bravo exploded")})

    with pytest.raises(RuntimeError, match="bravo exploded"):
        await get_skill_managers(expert, setting.experts, setting, factory=factory)

    assert [manager.name for manager in factory.created] == [BASE_SKILL_NAME, "alpha", "bravo", "charlie"]
    assert [manager.close_count for manager in factory.created] == [1, 1, 1, 1]


@pytest.mark.asyncio
async def test_init_with_cleanup_raises_the_first_failure_after_all_settle() -> None:
    managers: List[BaseSkillManager] = [
        FakeSkillManager("a", {}),
        FakeSkillManager("b", {}, init_error=ValueError("first")),
        FakeSkillManager("c", {}, init_error=ValueError("second")),
    ]

    with pytest.raises(ValueError, match="first"):
        await init_skill_managers_with_cleanup(managers, managers)

    assert managers[0].is_initialized()
    assert [manager.close_count for manager in managers] == [1, 1, 1]


@pytest.mark.asyncio
async def test_managers_are_created_in_group_order() -> None:
    ui = InteractiveSkill(name="ui", tools={"askUser": InteractiveTool(name="askUser", input_json_schema="{}")})
    expert = make_expert(
        "assistant",
        skills={BASE_SKILL_NAME: default_base_skill(), "search": _sse("search"), "ui": ui},
        delegates=["helper"],
    )
    experts = {"assistant": expert, "helper": make_expert("helper")}
    setting = make_setting("assistant", experts)

    managers = await get_skill_managers(expert, experts, setting, factory=FakeSkillManagerFactory())

    assert list(managers) == [BASE_SKILL_NAME, "search", "ui", "helper"]
    assert isinstance(managers["ui"], InteractiveSkillManager)
    assert isinstance(managers["helper"], DelegateSkillManager)


@pytest.mark.asyncio
async def test_delegated_runs_get_no_interactive_skills() -> None:
    ui = InteractiveSkill(name="ui", tools={"askUser": InteractiveTool(name="askUser", input_json_schema="{}")})
    expert = make_expert("assistant", skills={BASE_SKILL_NAME: default_base_skill(), "ui": ui})
    setting = make_setting("assistant", {"assistant": expert})

    managers = await get_skill_managers(
        expert, setting.experts, setting, is_delegated_run=True, factory=FakeSkillManagerFactory()
    )

    assert list(managers) == [BASE_SKILL_NAME]


@pytest.mark.asyncio
async def test_unknown_delegate_closes_started_managers() -> None:
    expert = make_expert("assistant", delegates=["ghost"])
    setting = make_setting("assistant", {"assistant": expert})
    factory = FakeSkillManagerFactory()

    with pytest.raises(DelegateExpertNotFoundError, match='"ghost"'):
        await get_skill_managers(expert, setting.experts, setting, factory=factory)

    assert [manager.close_count for manager in factory.created] == [1]


@pytest.mark.asyncio
async def test_missing_base_skill_is_a_configuration_error() -> None:
    expert = make_expert("assistant", skills={"search": _sse("search")})
    setting = make_setting("assistant", {"assistant": expert})

    with pytest.raises(SkillConfigurationError, match=BASE_SKILL_NAME):
        await get_skill_managers(expert, setting.experts, setting, factory=FakeSkillManagerFactory())


@pytest.mark.asyncio
async def test_tool_lookup_and_tool_set() -> None:
    first = FakeSkillManager("first", {"search": "a", "fetch": "b"})
    second = FakeSkillManager("second", {"search": "c"})
    for manager in (first, second):
        await manager.init()
    managers = {"first": first, "second": second}

    assert await get_skill_manager_by_tool_name(managers, "fetch") is first
    assert await get_skill_manager_by_tool_name(managers, "search") is first
    tool_set = await get_tool_set(managers)
    assert sorted((tool.skill_name, tool.name) for tool in tool_set) == [("first", "fetch"), ("second", "search")]
    with pytest.raises(ToolNotFoundError):
        await get_skill_manager_by_tool_name(managers, "missing")


@pytest.mark.asyncio
async def test_classification_keeps_call_order_per_kind() -> None:
    tools = FakeSkillManager("tools", {"search": "", "fetch": ""})
    ui = FakeSkillManager("ui", {"askUser": ""}, skill_type="interactive")
    for manager in (tools, ui):
        await manager.init()
    calls = [
        ToolCall(id="1", skill_name="ui", tool_name="askUser"),
        ToolCall(id="2", skill_name="tools", tool_name="fetch"),
        ToolCall(id="3", skill_name="tools", tool_name="search"),
    ]

    classified = await classify_tool_calls(calls, {"tools": tools, "ui": ui})

    assert [call.tool_call.id for call in classified.mcp] == ["2", "3"]
    assert [call.tool_call.id for call in classified.interactive] == ["1"]
    assert classified.delegate == []


@pytest.mark.parametrize(
    ("skill", "expected"),
    [
        (default_base_skill(), True),
        (McpStdioSkill(name="base", command="npx", args=["-y", "@perstack/base@1.2.0"]), True),
        (McpStdioSkill(name="base", command="npx", package_name="@perstack/base"), True),
        (McpStdioSkill(name="files", command="npx", args=["-y", "@acme/files"]), False),
        (_sse("remote"), False),
    ],
)
def test_is_base_skill(skill, expected) -> None:
    assert is_base_skill(skill) is expected


def test_pinned_base_version_uses_the_real_package() -> None:
    pinned = McpStdioSkill(name=BASE_SKILL_NAME, command="npx", args=["-y", "@perstack/base@1.2.0"])

    assert has_explicit_base_version(pinned)
    assert not should_use_bundled_base(pinned, None)
    assert should_use_bundled_base(default_base_skill(), None)
    assert not should_use_bundled_base(default_base_skill(), ["node", "base.js"])


def test_base_skill_command_override() -> None:
    overridden = apply_base_skill_command(default_base_skill(), ["node", "dist/base.js", "--quiet"])

    assert (overridden.command, overridden.args) == ("node", ["dist/base.js", "--quiet"])
    assert overridden.lazy_init is False
    assert apply_base_skill_command(default_base_skill(), None) == default_base_skill().model_copy()
    with pytest.raises(SkillConfigurationError):
        apply_base_skill_command(default_base_skill(), [])


def test_tool_definitions_are_grouped_by_skill() -> None:
    definitions = [
        ToolDefinition(skill_name="search", name="find"),
        ToolDefinition(skill_name="files", name="read"),
        ToolDefinition(skill_name="search", name="fetch"),
    ]

    grouped = group_tool_definitions(definitions)

    assert {skill: [tool.name for tool in tools] for skill, tools in grouped.items()} == {
        "search": ["find", "fetch"],
        "files": ["read"],
    }


@pytest.mark.asyncio
async def test_skills_with_known_tools_start_on_first_call() -> None:
    expert = make_expert("assistant", skills={BASE_SKILL_NAME: default_base_skill(), "search": _sse("search"), "docs": _sse("docs")})
    setting = make_setting("assistant", {"assistant": expert})
    factory = FakeSkillManagerFactory({"search": {"find": "hit"}, "docs": {"lookup": "page"}})

    managers = await get_skill_managers(
        expert,
        setting.experts,
        setting,
        factory=factory,
        tool_definitions={"search": [ToolDefinition(skill_name="search", name="find")]},
    )

    assert isinstance(managers["search"], LazySkillManager)
    assert not isinstance(managers["docs"], LazySkillManager)
    assert [manager.name for manager in factory.created] == [BASE_SKILL_NAME, "docs"]
    assert sorted(tool.name for tool in await get_tool_set(managers)) == sorted(["attemptCompletion", "think", "find", "lookup"])

    result = await managers["search"].call_tool("find", {"q": "x"})

    assert result[0].text == "hit"
    assert [manager.name for manager in factory.created] == [BASE_SKILL_NAME, "docs", "search"]
