"""Checkpoint and step models.

A ``Checkpoint`` is the durable resumability unit for one run. A ``Step`` is
the transient scratch space of the current generate/call/resolve iteration.
Parent and child runs reference each other by id only (``delegated_by``).
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import Field

from .base import BaseSchema, new_id, now_ms
from .messages import Message
from .tools import ToolCall, ToolResult
from .usage import Usage


class CheckpointStatus(str, Enum):
    init = "init"
    proceeding = "proceeding"
    completed = "completed"
    stopped_by_interactive_tool = "stoppedByInteractiveTool"
    stopped_by_delegate = "stoppedByDelegate"
    stopped_by_exceeded_max_steps = "stoppedByExceededMaxSteps"
    stopped_by_error = "stoppedByError"


class ExpertRef(BaseSchema):
    key: str
    name: str
    version: str


class DelegationTarget(BaseSchema):
    expert: ExpertRef
    tool_call_id: str
    tool_name: str
    query: str


class DelegatedBy(BaseSchema):
    expert: ExpertRef
    tool_call_id: str
    tool_name: str
    checkpoint_id: str
    run_id: Optional[str] = None


class RunError(BaseSchema):
    name: str
    message: str
    status_code: Optional[int] = None
    is_retryable: bool = False


class Checkpoint(BaseSchema):
    id: str = Field(default_factory=new_id)
    job_id: str
    run_id: str
    status: CheckpointStatus = CheckpointStatus.init
    step_number: int = Field(default=1, ge=1)
    messages: List[Message] = Field(default_factory=list)
    expert: ExpertRef
    usage: Usage = Field(default_factory=Usage)
    context_window: Optional[int] = None
    context_window_usage: Optional[float] = None
    pending_tool_calls: Optional[List[ToolCall]] = None
    partial_tool_results: Optional[List[ToolResult]] = None
    delegate_to: Optional[List[DelegationTarget]] = None
    delegated_by: Optional[DelegatedBy] = None
    error: Optional[RunError] = None
    retry_count: Optional[int] = None
    metadata: Optional[Dict[str, Any]] = None


class Step(BaseSchema):
    step_number: int
    input_messages: Optional[List[Message]] = None
    new_messages: List[Message] = Field(default_factory=list)
    tool_calls: Optional[List[ToolCall]] = None
    tool_results: Optional[List[ToolResult]] = None
    pending_tool_calls: Optional[List[ToolCall]] = None
    partial_tool_results: Optional[List[ToolResult]] = None
    usage: Usage = Field(default_factory=Usage)
    started_at: int = Field(default_factory=now_ms)
    finished_at: Optional[int] = None
