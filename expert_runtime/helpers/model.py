from __future__ import annotations

from typing import Dict, Optional

from ..schemas.usage import Usage

# Context window sizes (tokens) of the models the runtime knows about.
_CONTEXT_WINDOWS: Dict[str, Dict[str, int]] = {
    "anthropic": {
        "claude-opus-4-1": 200_000,
        "claude-opus-4-0": 200_000,
        "claude-sonnet-4-5": 200_000,
        "claude-sonnet-4-0": 200_000,
        "claude-3-7-sonnet-latest": 200_000,
        "claude-3-5-haiku-latest": 200_000,
        "claude-haiku-4-5": 200_000,
    },
    "openai": {
        "gpt-5": 400_000,
        "gpt-5-mini": 400_000,
        "gpt-5-nano": 400_000,
        "gpt-4.1": 1_047_576,
        "gpt-4.1-mini": 1_047_576,
        "gpt-4o": 128_000,
        "gpt-4o-mini": 128_000,
        "o3": 200_000,
        "o4-mini": 200_000,
    },
    "google": {
        "gemini-2.5-pro": 1_048_576,
        "gemini-2.5-flash": 1_048_576,
        "gemini-2.5-flash-lite": 1_048_576,
        "gemini-2.0-flash": 1_048_576,
    },
}


def get_context_window(provider_name: str, model: str) -> Optional[int]:
    """Return the model's context window, or ``None`` when the model is unknown."""
    return _CONTEXT_WINDOWS.get(provider_name, {}).get(model)


def calculate_context_window_usage(usage: Usage, context_window: int) -> float:
    """Fraction of the context window consumed by ``usage``."""
    return (usage.input_tokens + usage.cached_input_tokens + usage.output_tokens) / context_window
