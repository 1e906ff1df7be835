from __future__ import annotations

import asyncio

import httpx
import pytest
from pydantic import SecretStr
from pydantic_ai.builtin_tools import CodeExecutionTool, UrlContextTool, WebSearchTool
from pydantic_ai.exceptions import ModelHTTPError

from expert_runtime.llm.adapters import (
    AnthropicAdapter,
    GoogleAdapter,
    OpenAIAdapter,
    budget_to_tokens,
    get_provider_adapter,
)
from expert_runtime.schemas.setting import ProviderConfig


def _adapter(provider_name: str, **kwargs):
    return get_provider_adapter(ProviderConfig(provider_name=provider_name, **kwargs))


def test_adapter_lookup_by_provider() -> None:
    assert isinstance(_adapter("openai"), OpenAIAdapter)
    assert isinstance(_adapter("anthropic"), AnthropicAdapter)
    assert isinstance(_adapter("google"), GoogleAdapter)


def test_api_key_is_unwrapped_from_the_secret() -> None:
    assert _adapter("anthropic", api_key=SecretStr("sk-test")).api_key == "sk-test"
    assert _adapter("anthropic").api_key is None


@pytest.mark.parametrize(
    ("budget", "tokens"),
    [("minimal", 1024), ("low", 2048), ("medium", 5000), ("high", 10000), (3000, 3000)],
)
def test_budget_to_tokens(budget, tokens) -> None:
    assert budget_to_tokens(budget) == tokens


@pytest.mark.parametrize(
    ("budget", "effort"),
    [("minimal", "low"), ("low", "low"), (4000, "medium"), ("high", "high"), (20000, "high")],
)
def test_openai_reasoning_effort(budget, effort) -> None:
    assert _adapter("openai").get_reasoning_options(budget)["openai_reasoning_effort"] == effort


def test_anthropic_and_google_reasoning_budgets() -> None:
    assert _adapter("anthropic").get_reasoning_options("medium") == {
        "anthropic_thinking": {"type": "enabled", "budget_tokens": 5000}
    }
    assert _adapter("google").get_reasoning_options(1500) == {
        "google_thinking_config": {"thinking_budget": 1500, "include_thoughts": True}
    }


def test_provider_options_only_carry_what_is_set() -> None:
    adapter = _adapter("openai")

    assert adapter.get_provider_options(0.3) == {"temperature": 0.3}
    assert adapter.get_provider_options() == {}


def test_provider_tools_skip_unsupported_names() -> None:
    google_tools = _adapter("google").get_provider_tools(["googleSearch", "urlContext", "webSearch"])
    anthropic_tools = _adapter("anthropic").get_provider_tools(["webSearch", "codeExecution"])

    assert [type(tool) for tool in google_tools] == [WebSearchTool, UrlContextTool]
    assert [type(tool) for tool in anthropic_tools] == [WebSearchTool, CodeExecutionTool]


@pytest.mark.parametrize(
    ("error", "retryable"),
    [
        (ModelHTTPError(429, "m"), True),
        (ModelHTTPError(529, "m"), True),
        (ModelHTTPError(503, "m"), True),
        (ModelHTTPError(400, "m"), False),
        (ModelHTTPError(401, "m"), False),
        (asyncio.TimeoutError(), True),
        (httpx.ConnectError("connection refused"), True),
        (RuntimeError("Service Unavailable, try later"), True),
        (RuntimeError("Overloaded"), True),
        (ValueError("invalid schema"), False),
    ],
)
def test_is_retryable(error, retryable) -> None:
    assert _adapter("anthropic").is_retryable(error) is retryable


def test_normalize_error_keeps_status_and_body() -> None:
    error = _adapter("openai").normalize_error(ModelHTTPError(429, "gpt-4o", body={"message": "slow down"}))

    assert error.name == "ModelHTTPError"
    assert error.status_code == 429
    assert error.is_retryable
    assert error.provider == "openai"
    assert "slow down" in error.message


def test_normalize_error_without_message_uses_the_type_name() -> None:
    assert _adapter("google").normalize_error(ValueError()).message == "ValueError"
