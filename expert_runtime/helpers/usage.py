"""Token accounting.

``sum_usage`` is a pure elementwise fold: order of aggregation never matters,
so usage from concurrent branches can be combined without locking.
"""

from __future__ import annotations

from typing import Any

from ..schemas.usage import Usage


def create_empty_usage() -> Usage:
    return Usage()


def sum_usage(a: Usage, b: Usage) -> Usage:
    return Usage(
        input_tokens=a.input_tokens + b.input_tokens,
        output_tokens=a.output_tokens + b.output_tokens,
        reasoning_tokens=a.reasoning_tokens + b.reasoning_tokens,
        total_tokens=a.total_tokens + b.total_tokens,
        cached_input_tokens=a.cached_input_tokens + b.cached_input_tokens,
    )


def usage_from_response(response: Any) -> Usage:
    """Build a ``Usage`` from a pydantic_ai ``ModelResponse``.

    pydantic_ai reports cache reads as part of ``input_tokens``; they are split
    out here so ``input_tokens + cached_input_tokens`` never double counts.
    """
    usage = getattr(response, "usage", None)
    if usage is None:
        return create_empty_usage()
    input_tokens = int(usage.input_tokens or 0)
    cached = int(usage.cache_read_tokens or 0)
    output_tokens = int(usage.output_tokens or 0)
    details = usage.details or {}
    return Usage(
        input_tokens=max(input_tokens - cached, 0),
        output_tokens=output_tokens,
        reasoning_tokens=int(details.get("reasoning_tokens", 0)),
        total_tokens=input_tokens + output_tokens,
        cached_input_tokens=cached,
    )
