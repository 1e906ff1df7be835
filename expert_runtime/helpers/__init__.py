from .checkpoint import (
    DelegationContext,
    DelegationStateResult,
    build_delegate_to_state,
    build_delegation_return_state,
    create_initial_checkpoint,
    create_next_step_checkpoint,
    expert_ref,
    extract_delegation_context,
    last_expert_text,
)
from .listener import EventListener, notify
from .messages import create_expert_message, create_instruction_message, create_tool_message, create_user_message
from .model import calculate_context_window_usage, get_context_window
from .usage import create_empty_usage, sum_usage, usage_from_response

__all__ = [
    "DelegationContext",
    "DelegationStateResult",
    "EventListener",
    "build_delegate_to_state",
    "build_delegation_return_state",
    "calculate_context_window_usage",
    "create_empty_usage",
    "create_expert_message",
    "create_initial_checkpoint",
    "create_instruction_message",
    "create_next_step_checkpoint",
    "create_tool_message",
    "create_user_message",
    "expert_ref",
    "extract_delegation_context",
    "get_context_window",
    "last_expert_text",
    "notify",
    "sum_usage",
    "usage_from_response",
]
