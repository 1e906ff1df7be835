from __future__ import annotations

import pytest

from expert_runtime.errors import DelegationError, RunStateError
from expert_runtime.helpers.checkpoint import (
    build_delegate_to_state,
    build_delegation_return_state,
    create_initial_checkpoint,
    create_next_step_checkpoint,
    expert_ref,
    extract_delegation_context,
    last_expert_text,
)
from expert_runtime.schemas.checkpoint import Checkpoint, CheckpointStatus, DelegatedBy, DelegationTarget
from expert_runtime.schemas.messages import ExpertMessage, UserMessage
from expert_runtime.schemas.parts import TextPart, ThinkingPart
from expert_runtime.schemas.usage import Usage
from test.unit_test.fakes import make_expert, make_setting


@pytest.fixture
def coordinator():
    return make_expert("coordinator", delegates=["helper"])


@pytest.fixture
def setting(coordinator):
    return make_setting("coordinator", {"coordinator": coordinator, "helper": make_expert("helper")})


def test_initial_checkpoint_starts_at_step_one(coordinator) -> None:
    checkpoint = create_initial_checkpoint(job_id="job", run_id="run", expert=coordinator, context_window=200_000)

    assert checkpoint.status == CheckpointStatus.init
    assert checkpoint.step_number == 1
    assert checkpoint.messages == []
    assert checkpoint.usage == Usage()
    assert checkpoint.context_window_usage == 0.0
    assert create_initial_checkpoint(job_id="job", run_id="run", expert=coordinator).context_window_usage is None


def test_next_step_checkpoint_gets_a_new_id(coordinator) -> None:
    first = create_initial_checkpoint(job_id="job", run_id="run", expert=coordinator)

    second = create_next_step_checkpoint(first)

    assert second.id != first.id
    assert second.step_number == 2
    assert (second.run_id, second.expert) == (first.run_id, first.expert)


class TestLastExpertText:
    def _checkpoint(self, coordinator, messages) -> Checkpoint:
        return Checkpoint(job_id="job", run_id="run", expert=expert_ref(coordinator), messages=messages)

    def test_returns_the_first_text_part(self, coordinator) -> None:
        message = ExpertMessage(contents=[ThinkingPart(thinking="hmm"), TextPart(text="4"), TextPart(text="more")])

        assert last_expert_text(self._checkpoint(coordinator, [message])) == "4"

    def test_last_message_must_come_from_the_expert(self, coordinator) -> None:
        with pytest.raises(DelegationError, match="incorrect"):
            last_expert_text(self._checkpoint(coordinator, [UserMessage(contents=[TextPart(text="hi")])]))

    def test_last_message_must_carry_text(self, coordinator) -> None:
        message = ExpertMessage(contents=[ThinkingPart(thinking="hmm")])

        with pytest.raises(DelegationError, match="does not contain text"):
            last_expert_text(self._checkpoint(coordinator, [message]))


def test_delegate_to_state_links_the_child_to_its_parent(setting, coordinator) -> None:
    parent = create_initial_checkpoint(job_id=setting.job_id, run_id=setting.run_id, expert=coordinator)
    parent = parent.model_copy(update={"step_number": 3, "usage": Usage(input_tokens=50, total_tokens=50)})
    target = DelegationTarget(
        expert=expert_ref(make_expert("helper")), tool_call_id="d-1", tool_name="helper", query="2+2?"
    )

    result = build_delegate_to_state(setting, target, extract_delegation_context(parent), expert_ref(coordinator))

    assert result.setting.expert_key == "helper"
    assert result.setting.run_id not in (setting.run_id, parent.run_id)
    assert result.setting.input.text == "2+2?"
    assert result.checkpoint.run_id == result.setting.run_id
    assert result.checkpoint.step_number == 3
    assert result.checkpoint.messages == []
    assert result.checkpoint.usage.input_tokens == 50
    assert result.checkpoint.delegated_by == DelegatedBy(
        expert=expert_ref(coordinator), tool_call_id="d-1", tool_name="helper", checkpoint_id=parent.id, run_id=parent.run_id
    )


def test_delegate_to_state_can_start_from_empty_usage(setting, coordinator) -> None:
    parent = create_initial_checkpoint(job_id=setting.job_id, run_id=setting.run_id, expert=coordinator)
    parent = parent.model_copy(update={"usage": Usage(input_tokens=50)})
    target = DelegationTarget(expert=expert_ref(make_expert("helper")), tool_call_id="d-1", tool_name="helper", query="q")

    result = build_delegate_to_state(
        setting, target, extract_delegation_context(parent), expert_ref(coordinator), usage=Usage()
    )

    assert result.checkpoint.usage == Usage()


def test_return_state_resumes_the_parent_with_the_child_answer(setting, coordinator) -> None:
    parent = create_initial_checkpoint(job_id=setting.job_id, run_id=setting.run_id, expert=coordinator)
    child = Checkpoint(
        job_id=setting.job_id,
        run_id="child-run",
        status=CheckpointStatus.completed,
        step_number=5,
        expert=expert_ref(make_expert("helper")),
        usage=Usage(input_tokens=30, output_tokens=15, total_tokens=45),
        messages=[ExpertMessage(contents=[TextPart(text="4")])],
        delegated_by=DelegatedBy(
            expert=expert_ref(coordinator), tool_call_id="d-1", tool_name="helper", checkpoint_id=parent.id
        ),
    )

    result = build_delegation_return_state(setting, child, parent)

    answer = result.setting.input.interactive_tool_call_result
    assert (answer.tool_call_id, answer.tool_name, answer.skill_name, answer.text) == ("d-1", "helper", "delegate/helper", "4")
    assert result.setting.expert_key == "coordinator"
    assert result.setting.run_id == parent.run_id
    assert result.checkpoint.id == parent.id
    assert result.checkpoint.step_number == 5
    assert result.checkpoint.usage == child.usage


def test_return_state_requires_delegated_by(setting, coordinator) -> None:
    parent = create_initial_checkpoint(job_id=setting.job_id, run_id=setting.run_id, expert=coordinator)

    with pytest.raises(RunStateError):
        build_delegation_return_state(setting, parent, parent)
