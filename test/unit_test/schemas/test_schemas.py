from __future__ import annotations

import pytest
from pydantic import TypeAdapter, ValidationError

from expert_runtime.constants import BASE_SKILL_NAME
from expert_runtime.schemas.checkpoint import Checkpoint, CheckpointStatus, ExpertRef
from expert_runtime.schemas.events import RunEvent
from expert_runtime.schemas.experts import Expert, InteractiveSkill, McpHttpSkill, McpStdioSkill
from expert_runtime.schemas.messages import ExpertMessage, Message, UserMessage
from expert_runtime.schemas.parts import TextPart, ToolCallPart
from test.unit_test.fakes import make_expert, make_setting


def test_skills_and_interactive_tools_take_their_names_from_keys() -> None:
    expert = Expert.model_validate(
        {
            "key": "assistant",
            "name": "Assistant",
            "version": "1.0.0",
            "instruction": "Help.",
            "skills": {
                BASE_SKILL_NAME: {"type": "mcpStdioSkill", "command": "npx", "args": ["-y", BASE_SKILL_NAME]},
                "docs": {"type": "mcpHttpSkill", "endpoint": "https://docs.example.com/mcp"},
                "ui": {"type": "interactiveSkill", "tools": {"askUser": {"inputJsonSchema": "{}"}}},
            },
        }
    )

    assert isinstance(expert.skills[BASE_SKILL_NAME], McpStdioSkill)
    assert isinstance(expert.skills["docs"], McpHttpSkill)
    assert expert.skills["docs"].name == "docs"
    ui = expert.skills["ui"]
    assert isinstance(ui, InteractiveSkill)
    assert ui.tools["askUser"].name == "askUser"


def test_expert_gets_the_base_skill_by_default() -> None:
    expert = make_expert("assistant")

    assert list(expert.skills) == [BASE_SKILL_NAME]
    assert expert.skills[BASE_SKILL_NAME].lazy_init is False


def test_unknown_fields_are_rejected() -> None:
    with pytest.raises(ValidationError):
        ExpertRef(key="a", name="a", version="1", extra_field=True)


def test_run_setting_is_frozen() -> None:
    setting = make_setting("assistant", {"assistant": make_expert("assistant")})

    with pytest.raises(ValidationError):
        setting.max_steps = 3
    assert setting.model_copy(update={"max_steps": 3}).max_steps == 3


def test_storage_form_is_camel_case_without_nones() -> None:
    checkpoint = Checkpoint(
        job_id="job",
        run_id="run",
        step_number=2,
        status=CheckpointStatus.stopped_by_delegate,
        expert=ExpertRef(key="a", name="a", version="1"),
    )

    stored = checkpoint.to_storage()

    assert stored["jobId"] == "job"
    assert stored["stepNumber"] == 2
    assert stored["status"] == "stoppedByDelegate"
    assert stored["usage"]["inputTokens"] == 0
    assert "pendingToolCalls" not in stored
    assert Checkpoint.model_validate(stored) == checkpoint


def test_messages_and_events_are_discriminated_by_type() -> None:
    message = TypeAdapter(Message).validate_python(
        {
            "type": "expertMessage",
            "contents": [
                {"type": "textPart", "text": "calling"},
                {"type": "toolCallPart", "toolCallId": "c-1", "toolName": "search", "args": {"q": "x"}},
            ],
        }
    )
    event = TypeAdapter(RunEvent).validate_python(
        {"type": "finishToolCall", "jobId": "job", "runId": "run", "expertKey": "a", "stepNumber": 1, "newMessages": []}
    )

    assert isinstance(message, ExpertMessage)
    assert isinstance(message.contents[1], ToolCallPart)
    assert message.first_text() == "calling"
    assert event.type == "finishToolCall"


def test_first_text_is_none_without_text_parts() -> None:
    message = ExpertMessage(contents=[ToolCallPart(tool_call_id="c-1", tool_name="search")])

    assert message.first_text() is None
    assert UserMessage(contents=[TextPart(text="hi")]).contents[0].text == "hi"
