"""Hand-written fakes shared by the unit tests.

``FakeExecutor`` replays scripted pydantic_ai responses, ``FakeSkillManager``
serves fixed tool results, and ``FakeSkillManagerFactory`` plugs them into
``get_skill_managers`` in place of real MCP connections.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence, Tuple

from pydantic_ai import messages as pai
from pydantic_ai.usage import RequestUsage

from expert_runtime.constants import ATTEMPT_COMPLETION_TOOL, BASE_SKILL_NAME
from expert_runtime.llm.adapters import ProviderError
from expert_runtime.llm.executor import LLMExecutionResult, StreamCallbacks
from expert_runtime.schemas.experts import Expert
from expert_runtime.schemas.parts import TextPart
from expert_runtime.schemas.setting import InteractiveToolCallResult, ProviderConfig, RunInput, RunSetting
from expert_runtime.schemas.tools import ToolDefinition
from expert_runtime.skills.base import BaseSkillManager, SkillType, ToolContent
from expert_runtime.skills.registry import SkillManagerFactory

RawToolCall = Tuple[str, str, Dict[str, Any]]


def response(
    text: str = "",
    *,
    tool_calls: Sequence[RawToolCall] = (),
    thinking: str = "",
    input_tokens: int = 10,
    output_tokens: int = 5,
    finish_reason: str = "stop",
) -> pai.ModelResponse:
    parts: List[Any] = []
    if thinking:
        parts.append(pai.ThinkingPart(content=thinking))
    if text:
        parts.append(pai.TextPart(content=text))
    for tool_call_id, tool_name, args in tool_calls:
        parts.append(pai.ToolCallPart(tool_name=tool_name, args=args, tool_call_id=tool_call_id))
    return pai.ModelResponse(
        parts=parts,
        usage=RequestUsage(input_tokens=input_tokens, output_tokens=output_tokens),
        model_name="fake-model",
        finish_reason=finish_reason,
    )


def ok(model_response: pai.ModelResponse) -> LLMExecutionResult:
    return LLMExecutionResult(success=True, response=model_response)


def failed(name: str = "RateLimitError", message: str = "rate limit", *, retryable: bool = True) -> LLMExecutionResult:
    error = ProviderError(name=name, message=message, is_retryable=retryable, status_code=429 if retryable else 400)
    return LLMExecutionResult(success=False, error=error, is_retryable=retryable)


class FakeExecutor:
    """Returns scripted results in order and records every request."""

    def __init__(self, results: Sequence[LLMExecutionResult]) -> None:
        self._results = list(results)
        self.requests: List[Dict[str, Any]] = []

    async def _next(self, messages, **kwargs) -> LLMExecutionResult:
        self.requests.append({"messages": list(messages), **kwargs})
        if not self._results:
            raise AssertionError("FakeExecutor ran out of scripted results")
        return self._results.pop(0)

    async def stream(self, messages, callbacks: StreamCallbacks, **kwargs) -> LLMExecutionResult:
        result = await self._next(messages, **kwargs)
        if result.success and result.response is not None:
            await _replay(result.response, callbacks)
        return result

    async def generate(self, messages, **kwargs) -> LLMExecutionResult:
        return await self._next(messages, **kwargs)

    async def generate_without_tools(self, messages, **kwargs) -> LLMExecutionResult:
        return await self._next(messages, **kwargs)


async def _replay(model_response: pai.ModelResponse, callbacks: StreamCallbacks) -> None:
    thinking = "".join(part.content for part in model_response.parts if isinstance(part, pai.ThinkingPart))
    if thinking:
        if callbacks.on_reasoning_start:
            await callbacks.on_reasoning_start()
        if callbacks.on_reasoning_delta:
            await callbacks.on_reasoning_delta(thinking)
        if callbacks.on_reasoning_complete:
            await callbacks.on_reasoning_complete(thinking)
    text = "".join(part.content for part in model_response.parts if isinstance(part, pai.TextPart))
    if text:
        if callbacks.on_result_start:
            await callbacks.on_result_start()
        if callbacks.on_result_delta:
            await callbacks.on_result_delta(text)


class FakeSkillManager(BaseSkillManager):
    """Serves ``tools`` (name -> result text) and counts lifecycle calls."""

    def __init__(
        self,
        name: str,
        tools: Dict[str, str],
        *,
        skill_type: SkillType = "mcp",
        init_error: Optional[Exception] = None,
        job_id: str = "job",
        run_id: str = "run",
    ) -> None:
        super().__init__(job_id, run_id)
        self.name = name
        self.type = skill_type
        self._tools = tools
        self._init_error = init_error
        self.calls: List[Tuple[str, Dict[str, Any]]] = []
        self.close_count = 0

    async def _do_init(self) -> None:
        if self._init_error is not None:
            raise self._init_error
        self._tool_definitions = [ToolDefinition(skill_name=self.name, name=name) for name in self._tools]

    async def call_tool(self, tool_name: str, args: Dict[str, Any]) -> List[ToolContent]:
        self.calls.append((tool_name, dict(args)))
        return [TextPart(text=self._tools[tool_name])]

    async def _do_close(self) -> None:
        self.close_count += 1


def base_manager(*, completion: str = "{}", job_id: str = "job", run_id: str = "run") -> FakeSkillManager:
    return FakeSkillManager(
        BASE_SKILL_NAME, {ATTEMPT_COMPLETION_TOOL: completion, "think": "{}"}, job_id=job_id, run_id=run_id
    )


class FakeSkillManagerFactory(SkillManagerFactory):
    """Fake base and MCP managers; interactive and delegate managers are the real ones."""

    def __init__(self, mcp_tools: Optional[Dict[str, Dict[str, str]]] = None, *, completion: str = "{}") -> None:
        self.mcp_tools = mcp_tools or {}
        self.completion = completion
        self.created: List[BaseSkillManager] = []

    def _track(self, manager: BaseSkillManager) -> BaseSkillManager:
        self.created.append(manager)
        return manager

    def create_in_memory_base(self, skill, setting, event_listener):
        return self._track(base_manager(completion=self.completion, job_id=setting.job_id, run_id=setting.run_id))

    def create_mcp(self, skill, setting, event_listener):
        tools = self.mcp_tools.get(skill.name, {})
        return self._track(FakeSkillManager(skill.name, tools, job_id=setting.job_id, run_id=setting.run_id))

    def create_interactive(self, skill, setting, event_listener):
        return self._track(super().create_interactive(skill, setting, event_listener))

    def create_delegate(self, expert, setting, event_listener):
        return self._track(super().create_delegate(expert, setting, event_listener))


class ScriptedExecutors:
    """Executor factory handing each expert its own ``FakeExecutor`` across runs."""

    def __init__(self, scripts: Dict[str, Sequence[LLMExecutionResult]]) -> None:
        self.executors = {key: FakeExecutor(results) for key, results in scripts.items()}

    def __call__(self, setting: RunSetting) -> FakeExecutor:
        return self.executors[setting.expert_key]


def make_expert(key: str, **kwargs: Any) -> Expert:
    fields: Dict[str, Any] = {"name": key, "version": "1.0.0", "instruction": f"You are {key}."}
    fields.update(kwargs)
    return Expert(key=key, **fields)


def make_setting(
    expert_key: str,
    experts: Dict[str, Expert],
    *,
    text: Optional[str] = "2+2?",
    answer: Optional[InteractiveToolCallResult] = None,
    **kwargs: Any,
) -> RunSetting:
    return RunSetting(
        expert_key=expert_key,
        experts=experts,
        model="fake-model",
        provider_config=ProviderConfig(provider_name="anthropic"),
        input=RunInput(text=text, interactive_tool_call_result=answer),
        **kwargs,
    )
