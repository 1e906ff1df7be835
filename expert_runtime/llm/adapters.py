"""Provider adapters over pydantic_ai models.

One adapter per upstream provider. An adapter knows how to build the
pydantic_ai ``Model``, which ``ModelSettings`` to send, how a reasoning budget
is expressed for that provider, and how to classify the provider's errors.
"""

from __future__ import annotations

import asyncio
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Type

import httpx
from pydantic_ai.builtin_tools import AbstractBuiltinTool, CodeExecutionTool, UrlContextTool, WebSearchTool
from pydantic_ai.exceptions import ModelHTTPError
from pydantic_ai.models import Model
from pydantic_ai.models.anthropic import AnthropicModel
from pydantic_ai.models.google import GoogleModel
from pydantic_ai.models.openai import OpenAIResponsesModel
from pydantic_ai.providers.anthropic import AnthropicProvider
from pydantic_ai.providers.google import GoogleProvider
from pydantic_ai.providers.openai import OpenAIProvider

from ..schemas.setting import ProviderConfig, ReasoningBudget

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = frozenset({408, 409, 429, 500, 502, 503, 504, 529})

REASONING_BUDGET_TOKENS: Dict[str, int] = {
    "minimal": 1024,
    "low": 2048,
    "medium": 5000,
    "high": 10000,
}

_RETRYABLE_PATTERNS = [
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"rate limit",
        r"timeout",
        r"timed out",
        r"overloaded",
        r"service unavailable",
        r"internal server error",
        r"bad gateway",
        r"gateway timeout",
    )
]


@dataclass(frozen=True)
class ProviderError:
    """Provider-independent description of a failed model call."""

    name: str
    message: str
    is_retryable: bool
    status_code: Optional[int] = None
    provider: Optional[str] = None


def budget_to_tokens(budget: ReasoningBudget) -> int:
    if isinstance(budget, int):
        return budget
    return REASONING_BUDGET_TOKENS.get(budget, REASONING_BUDGET_TOKENS["medium"])


def _status_code(error: BaseException) -> Optional[int]:
    if isinstance(error, ModelHTTPError):
        return error.status_code
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code
    status = getattr(error, "status_code", None)
    return status if isinstance(status, int) else None


class ProviderAdapter(ABC):
    """Base class for provider adapters.

    Subclasses implement :meth:`create_model` and may override the option
    builders. Error classification is shared: timeouts, transport failures and
    the retryable HTTP status codes are retryable for every provider.
    """

    provider_name: str = ""
    provider_tool_factories: Dict[str, Type[AbstractBuiltinTool]] = {}

    def __init__(self, config: ProviderConfig) -> None:
        self.config = config

    @property
    def api_key(self) -> Optional[str]:
        return self.config.api_key.get_secret_value() if self.config.api_key else None

    @abstractmethod
    def create_model(self, model_id: str) -> Model:
        """Build the pydantic_ai model for ``model_id``."""

    def get_provider_options(self, temperature: Optional[float] = None) -> Dict[str, Any]:
        options: Dict[str, Any] = {}
        if temperature is not None:
            options["temperature"] = temperature
        return options

    def get_reasoning_options(self, budget: ReasoningBudget) -> Dict[str, Any]:
        return {}

    def get_provider_tools(self, tool_names: List[str]) -> List[AbstractBuiltinTool]:
        tools: List[AbstractBuiltinTool] = []
        for name in tool_names:
            factory = self.provider_tool_factories.get(name)
            if factory is None:
                logger.warning("Provider tool %s is not supported by %s", name, self.provider_name)
                continue
            tools.append(factory())
        return tools

    def is_retryable(self, error: BaseException) -> bool:
        if isinstance(error, (asyncio.TimeoutError, TimeoutError, httpx.TimeoutException, httpx.TransportError)):
            return True
        status_code = _status_code(error)
        if status_code is not None:
            return status_code in RETRYABLE_STATUS_CODES
        message = str(error)
        return any(pattern.search(message) for pattern in _RETRYABLE_PATTERNS)

    def normalize_error(self, error: BaseException) -> ProviderError:
        message = str(error) or type(error).__name__
        if isinstance(error, ModelHTTPError) and error.body is not None:
            message = f"{message}: {error.body}"
        return ProviderError(
            name=type(error).__name__,
            message=message,
            is_retryable=self.is_retryable(error),
            status_code=_status_code(error),
            provider=self.provider_name,
        )


class OpenAIAdapter(ProviderAdapter):
    provider_name = "openai"
    provider_tool_factories = {"webSearch": WebSearchTool, "codeInterpreter": CodeExecutionTool}

    def create_model(self, model_id: str) -> Model:
        logger.debug("Creating OpenAI model: %s", model_id)
        provider = OpenAIProvider(api_key=self.api_key, base_url=self.config.base_url)
        return OpenAIResponsesModel(model_id, provider=provider)

    def get_reasoning_options(self, budget: ReasoningBudget) -> Dict[str, Any]:
        tokens = budget_to_tokens(budget)
        if tokens <= REASONING_BUDGET_TOKENS["low"]:
            effort = "low"
        elif tokens <= REASONING_BUDGET_TOKENS["medium"]:
            effort = "medium"
        else:
            effort = "high"
        return {"openai_reasoning_effort": effort, "openai_reasoning_summary": "auto"}


class AnthropicAdapter(ProviderAdapter):
    provider_name = "anthropic"
    provider_tool_factories = {"webSearch": WebSearchTool, "codeExecution": CodeExecutionTool}

    def create_model(self, model_id: str) -> Model:
        logger.debug("Creating Anthropic model: %s", model_id)
        provider = AnthropicProvider(api_key=self.api_key, base_url=self.config.base_url)
        return AnthropicModel(model_id, provider=provider)

    def get_reasoning_options(self, budget: ReasoningBudget) -> Dict[str, Any]:
        return {"anthropic_thinking": {"type": "enabled", "budget_tokens": budget_to_tokens(budget)}}


class GoogleAdapter(ProviderAdapter):
    provider_name = "google"
    provider_tool_factories = {
        "googleSearch": WebSearchTool,
        "codeExecution": CodeExecutionTool,
        "urlContext": UrlContextTool,
    }

    def create_model(self, model_id: str) -> Model:
        logger.debug("Creating Google model: %s", model_id)
        if self.config.base_url:
            logger.warning("base_url is ignored for the google provider")
        provider = GoogleProvider(api_key=self.api_key)
        return GoogleModel(model_id, provider=provider)

    def get_reasoning_options(self, budget: ReasoningBudget) -> Dict[str, Any]:
        return {"google_thinking_config": {"thinking_budget": budget_to_tokens(budget), "include_thoughts": True}}


_ADAPTERS: Dict[str, Type[ProviderAdapter]] = {
    "openai": OpenAIAdapter,
    "anthropic": AnthropicAdapter,
    "google": GoogleAdapter,
}


def get_provider_adapter(config: ProviderConfig) -> ProviderAdapter:
    """Return the adapter for ``config.provider_name``.

    Raises:
        ValueError: If the provider is not supported.
    """
    adapter_cls = _ADAPTERS.get(config.provider_name)
    if adapter_cls is None:
        raise ValueError(f"Unsupported provider: {config.provider_name}")
    return adapter_cls(config)
