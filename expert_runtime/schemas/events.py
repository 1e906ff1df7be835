"""Run, streaming and runtime events.

``RunEvent`` is a closed tagged union with one model per state-machine
transition. Each variant carries exactly what is needed to replay the
transition, so a stored event list doubles as the audit log.

Streaming events carry incremental model output for live display, and runtime
events describe the environment (skill processes, runtime start-up). Neither
is persisted.
"""

from __future__ import annotations

from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import Field

from .base import BaseSchema, new_id, now_ms
from .checkpoint import Checkpoint, RunError, Step
from .messages import ExpertMessage, Message
from .setting import InteractiveToolCallResult
from .tools import ToolCall, ToolResult
from .usage import Usage


class BaseRunEvent(BaseSchema):
    id: str = Field(default_factory=new_id)
    timestamp: int = Field(default_factory=now_ms)
    job_id: str
    run_id: str
    expert_key: str
    step_number: int


class StartRunEvent(BaseRunEvent):
    type: Literal["startRun"] = "startRun"
    initial_checkpoint: Checkpoint
    input_messages: List[Message]


class RetryEvent(BaseRunEvent):
    type: Literal["retry"] = "retry"
    reason: str
    new_messages: List[Message]
    tool_calls: Optional[List[ToolCall]] = None
    tool_results: Optional[List[ToolResult]] = None
    usage: Usage
    retry_count: int


class CallToolsEvent(BaseRunEvent):
    type: Literal["callTools"] = "callTools"
    new_message: ExpertMessage
    tool_calls: List[ToolCall]
    usage: Usage


class CallDelegateEvent(BaseRunEvent):
    """Delegate calls are deferred; ``new_message`` is set only when emitted straight from generation."""

    type: Literal["callDelegate"] = "callDelegate"
    new_message: Optional[ExpertMessage] = None
    tool_calls: List[ToolCall]
    pending_tool_calls: List[ToolCall]
    partial_tool_results: List[ToolResult]
    usage: Usage


class CallInteractiveToolEvent(BaseRunEvent):
    type: Literal["callInteractiveTool"] = "callInteractiveTool"
    new_message: Optional[ExpertMessage] = None
    tool_call: ToolCall
    pending_tool_calls: List[ToolCall]
    partial_tool_results: List[ToolResult]
    usage: Usage


class ResolveToolResultsEvent(BaseRunEvent):
    type: Literal["resolveToolResults"] = "resolveToolResults"
    tool_results: List[ToolResult]


class AttemptCompletionEvent(BaseRunEvent):
    type: Literal["attemptCompletion"] = "attemptCompletion"
    tool_result: ToolResult


class FinishToolCallEvent(BaseRunEvent):
    type: Literal["finishToolCall"] = "finishToolCall"
    new_messages: List[Message]


class ContinueToNextStepEvent(BaseRunEvent):
    type: Literal["continueToNextStep"] = "continueToNextStep"
    checkpoint: Checkpoint
    step: Step
    next_checkpoint: Checkpoint


class StopRunByInteractiveToolEvent(BaseRunEvent):
    type: Literal["stopRunByInteractiveTool"] = "stopRunByInteractiveTool"
    checkpoint: Checkpoint
    step: Step


class StopRunByDelegateEvent(BaseRunEvent):
    type: Literal["stopRunByDelegate"] = "stopRunByDelegate"
    checkpoint: Checkpoint
    step: Step


class StopRunByExceededMaxStepsEvent(BaseRunEvent):
    type: Literal["stopRunByExceededMaxSteps"] = "stopRunByExceededMaxSteps"
    checkpoint: Checkpoint
    step: Step


class StopRunByErrorEvent(BaseRunEvent):
    type: Literal["stopRunByError"] = "stopRunByError"
    checkpoint: Checkpoint
    step: Step
    error: RunError


class CompleteRunEvent(BaseRunEvent):
    type: Literal["completeRun"] = "completeRun"
    checkpoint: Checkpoint
    step: Step
    text: str
    usage: Usage


RunEvent = Annotated[
    Union[
        StartRunEvent,
        RetryEvent,
        CallToolsEvent,
        CallDelegateEvent,
        CallInteractiveToolEvent,
        ResolveToolResultsEvent,
        AttemptCompletionEvent,
        FinishToolCallEvent,
        ContinueToNextStepEvent,
        StopRunByInteractiveToolEvent,
        StopRunByDelegateEvent,
        StopRunByExceededMaxStepsEvent,
        StopRunByErrorEvent,
        CompleteRunEvent,
    ],
    Field(discriminator="type"),
]

RUN_EVENTS = (
    StartRunEvent,
    RetryEvent,
    CallToolsEvent,
    CallDelegateEvent,
    CallInteractiveToolEvent,
    ResolveToolResultsEvent,
    AttemptCompletionEvent,
    FinishToolCallEvent,
    ContinueToNextStepEvent,
    StopRunByInteractiveToolEvent,
    StopRunByDelegateEvent,
    StopRunByExceededMaxStepsEvent,
    StopRunByErrorEvent,
    CompleteRunEvent,
)

CHECKPOINT_EVENTS = (
    ContinueToNextStepEvent,
    StopRunByInteractiveToolEvent,
    StopRunByDelegateEvent,
    StopRunByExceededMaxStepsEvent,
    StopRunByErrorEvent,
    CompleteRunEvent,
)

# ---------------------------------------------------------------------------
# Streaming events
# ---------------------------------------------------------------------------


class StartStreamingReasoningEvent(BaseRunEvent):
    type: Literal["startStreamingReasoning"] = "startStreamingReasoning"


class StreamReasoningEvent(BaseRunEvent):
    type: Literal["streamReasoning"] = "streamReasoning"
    delta: str


class CompleteStreamingReasoningEvent(BaseRunEvent):
    type: Literal["completeStreamingReasoning"] = "completeStreamingReasoning"
    text: str


class StartStreamingRunResultEvent(BaseRunEvent):
    type: Literal["startStreamingRunResult"] = "startStreamingRunResult"


class StreamRunResultEvent(BaseRunEvent):
    type: Literal["streamRunResult"] = "streamRunResult"
    delta: str


class CompleteStreamingRunResultEvent(BaseRunEvent):
    type: Literal["completeStreamingRunResult"] = "completeStreamingRunResult"
    text: str


StreamingEvent = Annotated[
    Union[
        StartStreamingReasoningEvent,
        StreamReasoningEvent,
        CompleteStreamingReasoningEvent,
        StartStreamingRunResultEvent,
        StreamRunResultEvent,
        CompleteStreamingRunResultEvent,
    ],
    Field(discriminator="type"),
]

# ---------------------------------------------------------------------------
# Runtime events
# ---------------------------------------------------------------------------


class BaseRuntimeEvent(BaseSchema):
    id: str = Field(default_factory=new_id)
    timestamp: int = Field(default_factory=now_ms)
    job_id: str
    run_id: str


class InitializeRuntimeEvent(BaseRuntimeEvent):
    type: Literal["initializeRuntime"] = "initializeRuntime"
    runtime_version: str
    expert_name: str
    experts: List[str]
    model: str
    temperature: float
    max_steps: Optional[int] = None
    max_retries: int
    timeout: float
    query: Optional[str] = None
    interactive_tool_call: Optional[InteractiveToolCallResult] = None


class SkillStartingEvent(BaseRuntimeEvent):
    type: Literal["skillStarting"] = "skillStarting"
    skill_name: str
    command: Optional[str] = None
    args: List[str] = Field(default_factory=list)


class SkillConnectedEvent(BaseRuntimeEvent):
    type: Literal["skillConnected"] = "skillConnected"
    skill_name: str
    server_info: Optional[Dict[str, Any]] = None
    total_duration_ms: Optional[int] = None


class SkillDisconnectedEvent(BaseRuntimeEvent):
    type: Literal["skillDisconnected"] = "skillDisconnected"
    skill_name: str


RuntimeEvent = Annotated[
    Union[InitializeRuntimeEvent, SkillStartingEvent, SkillConnectedEvent, SkillDisconnectedEvent],
    Field(discriminator="type"),
]

AnyEvent = Union[RunEvent, StreamingEvent, RuntimeEvent]
