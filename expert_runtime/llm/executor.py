"""Model calls with timeout, error normalization and ordered streaming."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from pydantic_ai import messages as pai
from pydantic_ai.direct import model_request, model_request_stream
from pydantic_ai.models import Model, ModelRequestParameters

from ..constants import DEFAULT_TIMEOUT_SECONDS
from ..schemas.messages import Message
from ..schemas.setting import ReasoningBudget
from ..schemas.tools import ToolDefinition
from .adapters import ProviderAdapter, ProviderError
from .conversion import to_model_messages, to_tool_definitions

logger = logging.getLogger(__name__)

DeltaCallback = Callable[[str], Awaitable[None]]
SignalCallback = Callable[[], Awaitable[None]]


@dataclass
class StreamCallbacks:
    """Async hooks invoked while a streamed response arrives.

    Reasoning hooks always fire before the first result hook.
    """

    on_reasoning_start: Optional[SignalCallback] = None
    on_reasoning_delta: Optional[DeltaCallback] = None
    on_reasoning_complete: Optional[DeltaCallback] = None
    on_result_start: Optional[SignalCallback] = None
    on_result_delta: Optional[DeltaCallback] = None


@dataclass
class LLMExecutionResult:
    success: bool
    response: Optional[pai.ModelResponse] = None
    error: Optional[ProviderError] = None
    is_retryable: bool = False


@dataclass
class _StreamPhases:
    callbacks: StreamCallbacks
    reasoning_started: bool = False
    reasoning_completed: bool = False
    result_started: bool = False
    reasoning_chunks: List[str] = field(default_factory=list)

    async def reasoning(self, delta: str) -> None:
        if not delta or self.reasoning_completed:
            return
        if not self.reasoning_started:
            self.reasoning_started = True
            if self.callbacks.on_reasoning_start:
                await self.callbacks.on_reasoning_start()
        self.reasoning_chunks.append(delta)
        if self.callbacks.on_reasoning_delta:
            await self.callbacks.on_reasoning_delta(delta)

    async def complete_reasoning(self) -> None:
        if not self.reasoning_started or self.reasoning_completed:
            return
        self.reasoning_completed = True
        if self.callbacks.on_reasoning_complete:
            await self.callbacks.on_reasoning_complete("".join(self.reasoning_chunks))

    async def result(self, delta: str) -> None:
        if not delta:
            return
        await self.complete_reasoning()
        if not self.result_started:
            self.result_started = True
            if self.callbacks.on_result_start:
                await self.callbacks.on_result_start()
        if self.callbacks.on_result_delta:
            await self.callbacks.on_result_delta(delta)

    async def handle(self, event: Any) -> None:
        if isinstance(event, pai.PartStartEvent):
            part = event.part
            if isinstance(part, pai.ThinkingPart):
                await self.reasoning(part.content)
            elif isinstance(part, pai.TextPart):
                await self.result(part.content)
            else:
                await self.complete_reasoning()
        elif isinstance(event, pai.PartDeltaEvent):
            delta = event.delta
            if isinstance(delta, pai.ThinkingPartDelta):
                await self.reasoning(delta.content_delta or "")
            elif isinstance(delta, pai.TextPartDelta):
                await self.result(delta.content_delta)


class LLMExecutor:
    """Runs one model call for a run.

    Failures never raise: they come back as an unsuccessful
    :class:`LLMExecutionResult` carrying the normalized provider error.
    """

    def __init__(self, adapter: ProviderAdapter, model: Model, *, timeout: float = DEFAULT_TIMEOUT_SECONDS) -> None:
        self.adapter = adapter
        self.model = model
        self.timeout = timeout

    def _model_settings(self, temperature: Optional[float], reasoning_budget: Optional[ReasoningBudget]) -> Dict[str, Any]:
        settings = self.adapter.get_provider_options(temperature)
        if reasoning_budget is not None:
            settings.update(self.adapter.get_reasoning_options(reasoning_budget))
        return settings

    def _parameters(
        self, tools: Sequence[ToolDefinition], provider_tool_names: Sequence[str]
    ) -> ModelRequestParameters:
        return ModelRequestParameters(
            function_tools=to_tool_definitions(tools),
            builtin_tools=self.adapter.get_provider_tools(list(provider_tool_names)),
            allow_text_output=True,
        )

    def _failure(self, error: BaseException) -> LLMExecutionResult:
        if isinstance(error, asyncio.TimeoutError):
            provider_error = ProviderError(
                name="TimeoutError",
                message=f"Model request timed out after {self.timeout}s",
                is_retryable=True,
                provider=self.adapter.provider_name,
            )
        else:
            provider_error = self.adapter.normalize_error(error)
        logger.warning("Model call failed (%s): %s", provider_error.name, provider_error.message)
        return LLMExecutionResult(success=False, error=provider_error, is_retryable=provider_error.is_retryable)

    async def generate(
        self,
        messages: Sequence[Message],
        *,
        tools: Sequence[ToolDefinition] = (),
        temperature: Optional[float] = None,
        reasoning_budget: Optional[ReasoningBudget] = None,
        provider_tool_names: Sequence[str] = (),
    ) -> LLMExecutionResult:
        try:
            response = await asyncio.wait_for(
                model_request(
                    self.model,
                    to_model_messages(messages),
                    model_settings=self._model_settings(temperature, reasoning_budget),
                    model_request_parameters=self._parameters(tools, provider_tool_names),
                ),
                timeout=self.timeout,
            )
        except Exception as e:
            return self._failure(e)
        return LLMExecutionResult(success=True, response=response)

    async def generate_without_tools(
        self,
        messages: Sequence[Message],
        *,
        temperature: Optional[float] = None,
        reasoning_budget: Optional[ReasoningBudget] = None,
    ) -> LLMExecutionResult:
        return await self.generate(messages, temperature=temperature, reasoning_budget=reasoning_budget)

    async def stream(
        self,
        messages: Sequence[Message],
        callbacks: StreamCallbacks,
        *,
        tools: Sequence[ToolDefinition] = (),
        temperature: Optional[float] = None,
        reasoning_budget: Optional[ReasoningBudget] = None,
        provider_tool_names: Sequence[str] = (),
    ) -> LLMExecutionResult:
        """Stream a response, forwarding deltas to ``callbacks`` in phase order.

        Reasoning completion is signalled before the first result delta, or
        from the accumulated reasoning text once the stream ends if the
        provider never moved past reasoning.
        """
        phases = _StreamPhases(callbacks)

        async def _consume() -> pai.ModelResponse:
            async with model_request_stream(
                self.model,
                to_model_messages(messages),
                model_settings=self._model_settings(temperature, reasoning_budget),
                model_request_parameters=self._parameters(tools, provider_tool_names),
            ) as stream:
                async for event in stream:
                    await phases.handle(event)
                return stream.get()

        try:
            response = await asyncio.wait_for(_consume(), timeout=self.timeout)
        except Exception as e:
            return self._failure(e)
        await phases.complete_reasoning()
        return LLMExecutionResult(success=True, response=response)


def create_llm_executor(adapter: ProviderAdapter, model_id: str, *, timeout: float = DEFAULT_TIMEOUT_SECONDS) -> LLMExecutor:
    return LLMExecutor(adapter, adapter.create_model(model_id), timeout=timeout)
