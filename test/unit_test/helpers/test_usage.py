from __future__ import annotations

import pytest
from pydantic_ai import messages as pai
from pydantic_ai.usage import RequestUsage

from expert_runtime.helpers.model import calculate_context_window_usage, get_context_window
from expert_runtime.helpers.usage import create_empty_usage, sum_usage, usage_from_response
from expert_runtime.schemas.usage import Usage


def test_sum_usage_is_elementwise() -> None:
    a = Usage(input_tokens=10, output_tokens=5, reasoning_tokens=1, total_tokens=15, cached_input_tokens=2)
    b = Usage(input_tokens=20, output_tokens=3, reasoning_tokens=0, total_tokens=23, cached_input_tokens=4)

    assert sum_usage(a, b) == Usage(
        input_tokens=30, output_tokens=8, reasoning_tokens=1, total_tokens=38, cached_input_tokens=6
    )
    assert sum_usage(a, b) == sum_usage(b, a)
    assert sum_usage(a, create_empty_usage()) == a


def test_cache_reads_are_split_out_of_input_tokens() -> None:
    response = pai.ModelResponse(
        parts=[pai.TextPart(content="hi")],
        usage=RequestUsage(
            input_tokens=100, cache_read_tokens=30, output_tokens=10, details={"reasoning_tokens": 4}
        ),
    )

    assert usage_from_response(response) == Usage(
        input_tokens=70, output_tokens=10, reasoning_tokens=4, total_tokens=110, cached_input_tokens=30
    )


def test_response_without_usage_counts_nothing() -> None:
    assert usage_from_response(object()) == Usage()


@pytest.mark.parametrize(
    ("provider", "model", "expected"),
    [
        ("anthropic", "claude-sonnet-4-5", 200_000),
        ("openai", "gpt-4o", 128_000),
        ("google", "gemini-2.5-pro", 1_048_576),
        ("openai", "unknown-model", None),
        ("mistral", "gpt-4o", None),
    ],
)
def test_context_window_lookup(provider, model, expected) -> None:
    assert get_context_window(provider, model) == expected


def test_context_window_usage_counts_cached_input() -> None:
    usage = Usage(input_tokens=600, cached_input_tokens=200, output_tokens=200)

    assert calculate_context_window_usage(usage, 2_000) == pytest.approx(0.5)
