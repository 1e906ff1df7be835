from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import Field

from .base import BaseSchema, now_ms
from .usage import Usage


class JobStatus(str, Enum):
    running = "running"
    completed = "completed"
    stopped_by_interactive_tool = "stoppedByInteractiveTool"
    stopped_by_max_steps = "stoppedByMaxSteps"
    stopped_by_error = "stoppedByError"


class Job(BaseSchema):
    """Coarse progress record of a whole job (a coordinator run and its delegates)."""

    id: str
    coordinator_expert_key: str
    status: JobStatus = JobStatus.running
    total_steps: int = 0
    max_steps: Optional[int] = None
    usage: Usage = Field(default_factory=Usage)
    started_at: int = Field(default_factory=now_ms)
    finished_at: Optional[int] = None
