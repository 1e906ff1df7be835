from __future__ import annotations

from typing import Any, Dict, List, Optional

import pytest

from expert_runtime.constants import BASE_SKILL_NAME
from expert_runtime.errors import ToolNotFoundError
from expert_runtime.helpers.checkpoint import create_initial_checkpoint
from expert_runtime.helpers.usage import sum_usage
from expert_runtime.runtime.engine import DEFAULT_RECURSION_LIMIT, RunStateMachine, execute_state_machine
from expert_runtime.runtime.events import RunEventEmitter
from expert_runtime.runtime.models import RunDeps
from expert_runtime.schemas.checkpoint import Checkpoint, CheckpointStatus
from expert_runtime.schemas.events import RUN_EVENTS
from expert_runtime.schemas.experts import InteractiveSkill, InteractiveTool, default_base_skill
from expert_runtime.schemas.messages import ExpertMessage, ToolMessage
from expert_runtime.schemas.usage import Usage
from expert_runtime.skills.base import BaseSkillManager
from expert_runtime.skills.delegate import DelegateSkillManager
from expert_runtime.skills.interactive import InteractiveSkillManager
from test.unit_test.fakes import FakeExecutor, FakeSkillManager, base_manager, make_expert, make_setting, ok, response


class _Recorder:
    def __init__(self) -> None:
        self.events: List[Any] = []
        self.checkpoints: List[Checkpoint] = []

    async def listener(self, event: Any) -> None:
        self.events.append(event)

    async def store(self, checkpoint: Checkpoint) -> None:
        self.checkpoints.append(checkpoint)

    @property
    def run_event_types(self) -> List[str]:
        return [event.type for event in self.events if isinstance(event, RUN_EVENTS)]


async def _managers(*managers: BaseSkillManager) -> Dict[str, BaseSkillManager]:
    for manager in managers:
        await manager.init()
    return {manager.name: manager for manager in managers}


def _deps(executor: FakeExecutor, managers: Dict[str, BaseSkillManager], recorder: _Recorder, **kwargs) -> RunDeps:
    return RunDeps(
        executor=executor,
        skill_managers=managers,
        emitter=RunEventEmitter(recorder.listener),
        store_checkpoint=recorder.store,
        **kwargs,
    )


def _start(expert_key: str = "assistant", experts: Optional[Dict] = None, **setting_kwargs):
    experts = experts or {expert_key: make_expert(expert_key)}
    setting = make_setting(expert_key, experts, **setting_kwargs)
    checkpoint = create_initial_checkpoint(job_id=setting.job_id, run_id=setting.run_id, expert=experts[expert_key])
    return setting, checkpoint


@pytest.mark.asyncio
async def test_final_text_without_tool_calls_completes_in_one_step() -> None:
    recorder = _Recorder()
    base = base_manager()
    executor = FakeExecutor([ok(response("4"))])
    setting, checkpoint = _start(text="2+2?")

    final = await execute_state_machine(setting, checkpoint, _deps(executor, await _managers(base), recorder))

    assert recorder.run_event_types == ["startRun", "completeRun"]
    assert final.status == CheckpointStatus.completed
    assert final.step_number == checkpoint.step_number
    assert isinstance(final.messages[-1], ExpertMessage)
    assert final.messages[-1].first_text() == "4"
    assert recorder.events[-1].text == "4"
    assert base.close_count == 1


@pytest.mark.asyncio
async def test_usage_is_sum_of_step_usages_and_step_numbers_never_decrease() -> None:
    recorder = _Recorder()
    tools = FakeSkillManager("tools", {"search": "found it"})
    executor = FakeExecutor(
        [
            ok(response(tool_calls=[("call-1", "search", {"q": "x"})], input_tokens=10, output_tokens=5)),
            ok(response("answer", input_tokens=20, output_tokens=7)),
        ]
    )
    setting, checkpoint = _start()

    final = await execute_state_machine(setting, checkpoint, _deps(executor, await _managers(base_manager(), tools), recorder))

    assert recorder.run_event_types == [
        "startRun",
        "callTools",
        "resolveToolResults",
        "finishToolCall",
        "continueToNextStep",
        "completeRun",
    ]
    step_usages = [event.step.usage for event in recorder.events if event.type in ("continueToNextStep", "completeRun")]
    total = Usage()
    for usage in step_usages:
        total = sum_usage(total, usage)
    assert final.usage == total
    assert final.usage.input_tokens == 30
    assert final.usage.output_tokens == 12

    step_numbers = [stored.step_number for stored in recorder.checkpoints]
    assert step_numbers == sorted(step_numbers)
    assert final.step_number == 2
    assert tools.calls == [("search", {"q": "x"})]
    tool_messages = [message for message in final.messages if isinstance(message, ToolMessage)]
    assert tool_messages[0].contents[0].tool_call_id == "call-1"
    assert tool_messages[0].contents[0].tool_name == "search"


@pytest.mark.asyncio
async def test_step_limit_stops_the_run() -> None:
    recorder = _Recorder()
    tools = FakeSkillManager("tools", {"search": "found it"})
    executor = FakeExecutor([ok(response(tool_calls=[("call-1", "search", {})]))])
    setting, checkpoint = _start(max_steps=1)

    final = await execute_state_machine(setting, checkpoint, _deps(executor, await _managers(base_manager(), tools), recorder))

    assert final.status == CheckpointStatus.stopped_by_exceeded_max_steps
    assert recorder.run_event_types[-1] == "stopRunByExceededMaxSteps"
    assert tools.close_count == 1


@pytest.mark.asyncio
async def test_attempt_completion_generates_the_run_result() -> None:
    recorder = _Recorder()
    executor = FakeExecutor(
        [
            ok(response(tool_calls=[("done-1", "attemptCompletion", {})])),
            ok(response("All done.", thinking="wrap up")),
        ]
    )
    setting, checkpoint = _start()

    final = await execute_state_machine(setting, checkpoint, _deps(executor, await _managers(base_manager()), recorder))

    assert recorder.run_event_types == ["startRun", "callTools", "attemptCompletion", "completeRun"]
    assert final.status == CheckpointStatus.completed
    assert final.messages[-1].first_text() == "All done."
    assert isinstance(final.messages[-2], ToolMessage)
    # the final answer is requested without tools
    assert "tools" not in executor.requests[1]
    streaming = [event.type for event in recorder.events if event.type.startswith(("start", "stream", "complete"))]
    assert streaming.index("completeStreamingReasoning") < streaming.index("startStreamingRunResult")
    assert "completeStreamingRunResult" in streaming


@pytest.mark.asyncio
async def test_remaining_todos_keep_the_run_going() -> None:
    recorder = _Recorder()
    base = base_manager(completion='{"remainingTodos":[{"id":0,"title":"write tests","completed":false}]}')
    executor = FakeExecutor([ok(response(tool_calls=[("done-1", "attemptCompletion", {})])), ok(response("finished"))])
    setting, checkpoint = _start()

    final = await execute_state_machine(setting, checkpoint, _deps(executor, await _managers(base), recorder))

    assert recorder.run_event_types == [
        "startRun",
        "callTools",
        "resolveToolResults",
        "finishToolCall",
        "continueToNextStep",
        "completeRun",
    ]
    assert final.step_number == 2


@pytest.mark.asyncio
async def test_empty_generation_retries_on_the_next_step() -> None:
    recorder = _Recorder()
    executor = FakeExecutor([ok(response()), ok(response("recovered"))])
    setting, checkpoint = _start()

    final = await execute_state_machine(setting, checkpoint, _deps(executor, await _managers(base_manager()), recorder))

    assert recorder.run_event_types == ["startRun", "retry", "continueToNextStep", "completeRun"]
    retry = next(event for event in recorder.events if event.type == "retry")
    assert retry.retry_count == 1
    assert final.retry_count == 0
    assert final.status == CheckpointStatus.completed


@pytest.mark.asyncio
async def test_delegate_call_stops_the_run_with_targets() -> None:
    recorder = _Recorder()
    helper = make_expert("helper", description="Answers sub-questions")
    coordinator = make_expert("coordinator", delegates=["helper"])
    experts = {"coordinator": coordinator, "helper": helper}
    delegate = DelegateSkillManager(helper, "job", "run")
    executor = FakeExecutor([ok(response(tool_calls=[("d-1", "helper", {"query": "what is 2+2?"})]))])
    setting, checkpoint = _start("coordinator", experts)

    final = await execute_state_machine(
        setting, checkpoint, _deps(executor, await _managers(base_manager(), delegate), recorder)
    )

    assert recorder.run_event_types == ["startRun", "callDelegate", "stopRunByDelegate"]
    assert final.status == CheckpointStatus.stopped_by_delegate
    assert [target.expert.key for target in final.delegate_to] == ["helper"]
    assert final.delegate_to[0].query == "what is 2+2?"
    assert final.pending_tool_calls is None
    assert recorder.checkpoints[-1] == final


@pytest.mark.asyncio
async def test_interactive_call_stops_the_run_with_pending_call() -> None:
    recorder = _Recorder()
    skill = InteractiveSkill(
        name="ui", tools={"askUser": InteractiveTool(name="askUser", input_json_schema='{"type": "object"}')}
    )
    expert = make_expert("assistant", skills={BASE_SKILL_NAME: default_base_skill(), "ui": skill})
    interactive = InteractiveSkillManager(skill, "job", "run")
    executor = FakeExecutor([ok(response("Let me ask.", tool_calls=[("ask-1", "askUser", {"question": "Which?"})]))])
    setting, checkpoint = _start("assistant", {"assistant": expert})

    final = await execute_state_machine(
        setting, checkpoint, _deps(executor, await _managers(base_manager(), interactive), recorder)
    )

    assert recorder.run_event_types == ["startRun", "callInteractiveTool", "stopRunByInteractiveTool"]
    assert final.status == CheckpointStatus.stopped_by_interactive_tool
    assert [call.id for call in final.pending_tool_calls] == ["ask-1"]
    assert final.partial_tool_results == []


@pytest.mark.asyncio
async def test_failing_state_closes_managers_and_propagates() -> None:
    recorder = _Recorder()
    base = base_manager()
    executor = FakeExecutor([ok(response(tool_calls=[("call-1", "doesNotExist", {})]))])
    setting, checkpoint = _start()

    with pytest.raises(ToolNotFoundError, match="Tool doesNotExist not found"):
        await execute_state_machine(setting, checkpoint, _deps(executor, await _managers(base), recorder))

    assert base.close_count == 1


@pytest.mark.asyncio
async def test_should_continue_run_halts_after_the_current_transition() -> None:
    recorder = _Recorder()
    base = base_manager()
    seen: List[CheckpointStatus] = []

    async def _never(setting, checkpoint, step) -> bool:
        seen.append(checkpoint.status)
        return False

    executor = FakeExecutor([])
    setting, checkpoint = _start()

    final = await execute_state_machine(
        setting, checkpoint, _deps(executor, await _managers(base), recorder, should_continue_run=_never)
    )

    assert recorder.run_event_types == ["startRun"]
    assert seen == [CheckpointStatus.proceeding]
    assert final.status == CheckpointStatus.proceeding
    assert base.close_count == 1
    assert executor.requests == []


def test_recursion_limit_scales_with_max_steps() -> None:
    machine = RunStateMachine(_deps(FakeExecutor([]), {}, _Recorder()))
    setting, _ = _start(max_steps=3, max_retries=2)
    unlimited, _ = _start()

    assert machine._recursion_limit(setting) == (3 + 2 + 2) * 6
    assert machine._recursion_limit(unlimited) == DEFAULT_RECURSION_LIMIT


@pytest.mark.asyncio
async def test_context_window_usage_tracks_the_last_call_not_the_total() -> None:
    recorder = _Recorder()
    tools = FakeSkillManager("tools", {"search": "found it"})
    executor = FakeExecutor(
        [
            ok(response(tool_calls=[("call-1", "search", {})], input_tokens=400, output_tokens=0)),
            ok(response(tool_calls=[("call-2", "search", {})], input_tokens=400, output_tokens=0)),
            ok(response("answer", input_tokens=300, output_tokens=0)),
        ]
    )
    setting, checkpoint = _start(text="find it")
    checkpoint = checkpoint.model_copy(update={"context_window": 1000, "context_window_usage": 0.0})

    final = await execute_state_machine(setting, checkpoint, _deps(executor, await _managers(base_manager(), tools), recorder))

    assert final.status == CheckpointStatus.completed
    assert final.usage.input_tokens == 1100
    assert final.context_window_usage == pytest.approx(0.3)
    usages = [stored.context_window_usage for stored in recorder.checkpoints]
    assert all(usage <= 0.4 + 1e-9 for usage in usages)
