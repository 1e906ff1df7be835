from __future__ import annotations

from typing import Dict, List, Literal, Optional, Union

from pydantic import ConfigDict, Field, SecretStr

from ..constants import DEFAULT_MAX_RETRIES, DEFAULT_TEMPERATURE, DEFAULT_TIMEOUT_SECONDS
from .base import BaseSchema, new_id, now_ms
from .experts import Expert

ProviderName = Literal["openai", "anthropic", "google"]

ReasoningLevel = Literal["minimal", "low", "medium", "high"]

ReasoningBudget = Union[ReasoningLevel, int]


class ProviderConfig(BaseSchema):
    provider_name: ProviderName
    api_key: Optional[SecretStr] = None
    base_url: Optional[str] = None


class InteractiveToolCallResult(BaseSchema):
    """An externally supplied answer to a pending interactive or delegate tool call."""

    tool_call_id: str
    tool_name: str
    skill_name: Optional[str] = None
    text: str


class RunInput(BaseSchema):
    text: Optional[str] = None
    interactive_tool_call_result: Optional[InteractiveToolCallResult] = None


class RunSetting(BaseSchema):
    """Immutable per-run configuration.

    Delegated sub-runs derive theirs with ``model_copy(update=...)`` (new
    ``run_id``, swapped ``expert_key`` and ``input``).
    """

    model_config = ConfigDict(frozen=True)

    job_id: str = Field(default_factory=new_id)
    run_id: str = Field(default_factory=new_id)
    expert_key: str
    model: str
    provider_config: ProviderConfig
    input: RunInput = Field(default_factory=RunInput)
    experts: Dict[str, Expert] = Field(default_factory=dict)
    temperature: float = DEFAULT_TEMPERATURE
    max_steps: Optional[int] = Field(default=None, ge=1)
    max_retries: int = Field(default=DEFAULT_MAX_RETRIES, ge=0)
    timeout: float = Field(default=DEFAULT_TIMEOUT_SECONDS, gt=0, description="Model call timeout in seconds")
    reasoning_budget: Optional[ReasoningBudget] = None
    env: Dict[str, str] = Field(default_factory=dict)
    base_skill_command: Optional[List[str]] = None
    started_at: int = Field(default_factory=now_ms)
    updated_at: int = Field(default_factory=now_ms)
