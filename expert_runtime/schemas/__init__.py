"""Schemas for runs, checkpoints, messages and events."""

from .base import BaseSchema, new_id, now_ms
from .checkpoint import (
    Checkpoint,
    CheckpointStatus,
    DelegatedBy,
    DelegationTarget,
    ExpertRef,
    RunError,
    Step,
)
from .events import (
    CHECKPOINT_EVENTS,
    RUN_EVENTS,
    AnyEvent,
    AttemptCompletionEvent,
    BaseRunEvent,
    BaseRuntimeEvent,
    CallDelegateEvent,
    CallInteractiveToolEvent,
    CallToolsEvent,
    CompleteRunEvent,
    CompleteStreamingReasoningEvent,
    CompleteStreamingRunResultEvent,
    ContinueToNextStepEvent,
    FinishToolCallEvent,
    InitializeRuntimeEvent,
    ResolveToolResultsEvent,
    RetryEvent,
    RunEvent,
    RuntimeEvent,
    SkillConnectedEvent,
    SkillDisconnectedEvent,
    SkillStartingEvent,
    StartRunEvent,
    StartStreamingReasoningEvent,
    StartStreamingRunResultEvent,
    StopRunByDelegateEvent,
    StopRunByErrorEvent,
    StopRunByExceededMaxStepsEvent,
    StopRunByInteractiveToolEvent,
    StreamingEvent,
    StreamReasoningEvent,
    StreamRunResultEvent,
)
from .experts import (
    Expert,
    InteractiveSkill,
    InteractiveTool,
    McpHttpSkill,
    McpSkill,
    McpSseSkill,
    McpStdioSkill,
    Skill,
    default_base_skill,
)
from .job import Job, JobStatus
from .messages import ExpertMessage, InstructionMessage, Message, ToolMessage, UserMessage
from .parts import (
    FileBinaryPart,
    FileInlinePart,
    FileUrlPart,
    ImageBinaryPart,
    ImageInlinePart,
    ImageUrlPart,
    TextPart,
    ThinkingPart,
    ToolCallPart,
    ToolResultContent,
    ToolResultPart,
)
from .setting import (
    InteractiveToolCallResult,
    ProviderConfig,
    ProviderName,
    ReasoningBudget,
    RunInput,
    RunSetting,
)
from .tools import ToolCall, ToolDefinition, ToolResult
from .usage import Usage

__all__ = [
    "AnyEvent",
    "AttemptCompletionEvent",
    "BaseRunEvent",
    "BaseRuntimeEvent",
    "BaseSchema",
    "CHECKPOINT_EVENTS",
    "RUN_EVENTS",
    "CallDelegateEvent",
    "CallInteractiveToolEvent",
    "CallToolsEvent",
    "Checkpoint",
    "CheckpointStatus",
    "CompleteRunEvent",
    "CompleteStreamingReasoningEvent",
    "CompleteStreamingRunResultEvent",
    "ContinueToNextStepEvent",
    "DelegatedBy",
    "DelegationTarget",
    "Expert",
    "ExpertMessage",
    "ExpertRef",
    "FileBinaryPart",
    "FileInlinePart",
    "FileUrlPart",
    "FinishToolCallEvent",
    "ImageBinaryPart",
    "ImageInlinePart",
    "ImageUrlPart",
    "InitializeRuntimeEvent",
    "InstructionMessage",
    "InteractiveSkill",
    "InteractiveTool",
    "InteractiveToolCallResult",
    "Job",
    "JobStatus",
    "McpHttpSkill",
    "McpSkill",
    "McpSseSkill",
    "McpStdioSkill",
    "Message",
    "ProviderConfig",
    "ProviderName",
    "ReasoningBudget",
    "ResolveToolResultsEvent",
    "RetryEvent",
    "RunError",
    "RunEvent",
    "RunInput",
    "RunSetting",
    "RuntimeEvent",
    "Skill",
    "SkillConnectedEvent",
    "SkillDisconnectedEvent",
    "SkillStartingEvent",
    "StartRunEvent",
    "StartStreamingReasoningEvent",
    "StartStreamingRunResultEvent",
    "Step",
    "StopRunByDelegateEvent",
    "StopRunByErrorEvent",
    "StopRunByExceededMaxStepsEvent",
    "StopRunByInteractiveToolEvent",
    "StreamReasoningEvent",
    "StreamRunResultEvent",
    "StreamingEvent",
    "TextPart",
    "ThinkingPart",
    "ToolCall",
    "ToolCallPart",
    "ToolDefinition",
    "ToolMessage",
    "ToolResult",
    "ToolResultContent",
    "ToolResultPart",
    "Usage",
    "UserMessage",
    "default_base_skill",
    "new_id",
    "now_ms",
]
