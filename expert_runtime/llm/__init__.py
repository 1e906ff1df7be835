from .adapters import (
    AnthropicAdapter,
    GoogleAdapter,
    OpenAIAdapter,
    ProviderAdapter,
    ProviderError,
    budget_to_tokens,
    get_provider_adapter,
)
from .executor import LLMExecutionResult, LLMExecutor, StreamCallbacks, create_llm_executor

__all__ = [
    "AnthropicAdapter",
    "GoogleAdapter",
    "LLMExecutionResult",
    "LLMExecutor",
    "OpenAIAdapter",
    "ProviderAdapter",
    "ProviderError",
    "StreamCallbacks",
    "budget_to_tokens",
    "create_llm_executor",
    "get_provider_adapter",
]
