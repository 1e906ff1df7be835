"""Message builders, including the system instruction sent first on every run."""

from __future__ import annotations

import os
import textwrap
from datetime import datetime, timezone
from typing import Dict, Sequence

from ..schemas.experts import Expert
from ..schemas.messages import ExpertMessage, InstructionMessage, ToolMessage, UserMessage
from ..schemas.parts import TextPart

_PERSONA = "You are an AI expert that tackles tasks requested by users by utilizing all available tools."

_META_INSTRUCTION = textwrap.dedent(
    """\
    IMPORTANT:
    Based on the user's initial message, you must determine what needs to be done.
    You must iterate through hypothesis and verification to fulfill the task.
    YOU MUST CONTINUE TO CALL TOOLS UNTIL THE TASK IS COMPLETE.
    If you do not call tools, the task will be considered complete, and the agent loop will end.

    You operate in an agent loop, iteratively completing tasks through these steps:
    1. Analyze Events: Understand user needs and current state through the event stream, focusing on the latest user messages and execution results
    2. Select Tools: Choose the next tool call based on current state, task planning, relevant knowledge, and available data APIs
    3. Wait for Execution: The selected tool action will be executed by the sandbox environment with new observations added to the event stream
    4. Iterate: Choose only one tool call per iteration, patiently repeat the above steps until task completion
    5. Notify Task Completion: Call attemptCompletion ONLY - do NOT include any text response with this tool call
    6. Generate Final Results: AFTER attemptCompletion returns, you will be prompted to produce a final result in a SEPARATE response

    Conditions for ending the agent loop:
    If any of the following apply, **immediately call the attemptCompletion tool**.
    When the agent loop must end, calling any tool other than attemptCompletion is highly dangerous.
    Under all circumstances, strictly follow this rule.
    - When the task is complete
    - When the user's request is outside your expertise
    - When the user's request is unintelligible

    Rules for requests outside your area of expertise:
    - Tell your area of expertise to the user in final results

    Environment information:
    - Current time is {current_time}
    - Current working directory is {cwd}"""
)


def create_user_message(contents: Sequence) -> UserMessage:
    return UserMessage(contents=list(contents))


def create_expert_message(contents: Sequence) -> ExpertMessage:
    return ExpertMessage(contents=list(contents))


def create_tool_message(contents: Sequence) -> ToolMessage:
    return ToolMessage(contents=list(contents))


def _meta_instruction(started_at: int) -> str:
    current_time = datetime.fromtimestamp(started_at / 1000, tz=timezone.utc).isoformat(timespec="milliseconds")
    return _META_INSTRUCTION.format(current_time=current_time.replace("+00:00", "Z"), cwd=os.getcwd())


def _skill_rules(expert: Expert) -> str:
    rules = [f'"{skill.name}" skill rules:\n{skill.rule}' for skill in expert.skills.values() if skill.rule]
    return "\n\n".join(rules)


def _delegate_rules(expert: Expert, experts: Dict[str, Expert]) -> str:
    rules = []
    for key in expert.delegates:
        delegate = experts.get(key)
        if delegate is None:
            continue
        rules.append(f'About "{delegate.name}":\n{delegate.description or ""}')
    return "\n\n".join(rules)


def create_instruction_message(expert: Expert, experts: Dict[str, Expert], started_at: int) -> InstructionMessage:
    """Build the cached system instruction for ``expert``.

    The text is assembled from the runtime's meta instruction, the expert's own
    instruction, every skill ``rule`` and a short description of each delegate.

    Args:
        expert: The expert being run.
        experts: All known experts, used to describe delegates.
        started_at: Run start time in epoch milliseconds.

    Returns:
        InstructionMessage: A single-text-part message with ``cache=True``.
    """
    sections = [
        _PERSONA,
        "(The following information describes your nature and role as an AI, the mechanisms of the AI system, "
        "and other meta-cognitive aspects.)",
        _meta_instruction(started_at),
        "---\n(The following describes the objective, steps, rules, etc. regarding your expert task.)",
        expert.instruction,
        "---\n(The following is an overview of each skill and the rules for calling tools.)",
        _skill_rules(expert),
        "---\n(The following is an overview of each delegate expert and the rules for calling tools.)",
        "You can delegate tasks to the following experts by calling delegate expert name as a tool:",
        _delegate_rules(expert, experts),
    ]
    return InstructionMessage(contents=[TextPart(text="\n\n".join(sections))], cache=True)
