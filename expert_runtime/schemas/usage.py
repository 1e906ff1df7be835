from __future__ import annotations

from .base import BaseSchema


class Usage(BaseSchema):
    input_tokens: int = 0
    output_tokens: int = 0
    reasoning_tokens: int = 0
    total_tokens: int = 0
    cached_input_tokens: int = 0
