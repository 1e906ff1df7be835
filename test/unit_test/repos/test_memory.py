from __future__ import annotations

import pytest
from pydantic import SecretStr

from expert_runtime.errors import CheckpointNotFoundError
from expert_runtime.repos.memory import InMemoryStorage
from expert_runtime.schemas.checkpoint import Checkpoint, ExpertRef
from expert_runtime.schemas.events import FinishToolCallEvent, ResolveToolResultsEvent
from expert_runtime.schemas.job import Job, JobStatus
from expert_runtime.schemas.messages import ExpertMessage
from expert_runtime.schemas.parts import TextPart
from expert_runtime.schemas.setting import ProviderConfig
from test.unit_test.fakes import make_expert, make_setting

EXPERT = ExpertRef(key="assistant", name="assistant", version="1.0.0")


def _checkpoint(step_number: int, **kwargs) -> Checkpoint:
    return Checkpoint(job_id="job", run_id="run", expert=EXPERT, step_number=step_number, **kwargs)


def _event(event_cls, step_number: int, run_id: str = "run", **kwargs):
    return event_cls(job_id="job", run_id=run_id, expert_key="assistant", step_number=step_number, **kwargs)


@pytest.mark.asyncio
async def test_checkpoints_are_stored_as_snapshots() -> None:
    storage = InMemoryStorage()
    checkpoint = _checkpoint(1, messages=[ExpertMessage(contents=[TextPart(text="4")])])
    await storage.store_checkpoint(checkpoint)

    checkpoint.messages.append(ExpertMessage(contents=[TextPart(text="mutated")]))
    retrieved = await storage.retrieve_checkpoint("job", checkpoint.id)

    assert len(retrieved.messages) == 1
    assert retrieved.messages[0].first_text() == "4"
    assert retrieved is not await storage.retrieve_checkpoint("job", checkpoint.id)


@pytest.mark.asyncio
async def test_storing_the_same_id_replaces_the_checkpoint() -> None:
    storage = InMemoryStorage()
    checkpoint = _checkpoint(1)
    await storage.store_checkpoint(checkpoint)

    await storage.store_checkpoint(checkpoint.model_copy(update={"step_number": 2}))

    assert (await storage.retrieve_checkpoint("job", checkpoint.id)).step_number == 2
    assert len(await storage.get_checkpoints_by_job_id("job")) == 1


@pytest.mark.asyncio
async def test_unknown_checkpoint_raises() -> None:
    with pytest.raises(CheckpointNotFoundError, match="missing"):
        await InMemoryStorage().retrieve_checkpoint("job", "missing")


@pytest.mark.asyncio
async def test_checkpoints_of_a_job_are_ordered_by_step() -> None:
    storage = InMemoryStorage()
    for step_number in (3, 1, 2):
        await storage.store_checkpoint(_checkpoint(step_number))

    checkpoints = await storage.get_checkpoints_by_job_id("job")

    assert [checkpoint.step_number for checkpoint in checkpoints] == [1, 2, 3]
    assert await storage.get_checkpoints_by_job_id("other") == []


@pytest.mark.asyncio
async def test_events_keep_emission_order_and_filter_by_step() -> None:
    storage = InMemoryStorage()
    events = [
        _event(ResolveToolResultsEvent, 1, tool_results=[]),
        _event(FinishToolCallEvent, 1, new_messages=[]),
        _event(FinishToolCallEvent, 2, new_messages=[]),
        _event(FinishToolCallEvent, 1, run_id="child", new_messages=[]),
    ]
    for event in events:
        await storage.store_event(event)

    run_events = await storage.get_event_contents("job", "run")
    assert [event.id for event in run_events] == [event.id for event in events[:3]]
    assert isinstance(run_events[0], ResolveToolResultsEvent)
    assert [event.step_number for event in await storage.get_event_contents("job", "run", max_step=1)] == [1, 1]
    by_run = await storage.get_events_by_run("job")
    assert {run_id: len(items) for run_id, items in by_run.items()} == {"run": 3, "child": 1}
    assert await storage.get_event_contents("job", "unknown") == []


@pytest.mark.asyncio
async def test_jobs_round_trip() -> None:
    storage = InMemoryStorage()
    job = Job(id="job", coordinator_expert_key="assistant", max_steps=10)
    await storage.store_job(job)
    await storage.store_job(job.model_copy(update={"status": JobStatus.completed, "total_steps": 4}))

    stored = await storage.retrieve_job("job")

    assert (stored.status, stored.total_steps) == (JobStatus.completed, 4)
    assert [item.id for item in await storage.get_all_jobs()] == ["job"]
    assert await storage.retrieve_job("missing") is None


@pytest.mark.asyncio
async def test_run_settings_keep_the_api_key() -> None:
    storage = InMemoryStorage()
    setting = make_setting("assistant", {"assistant": make_expert("assistant")}).model_copy(
        update={"provider_config": ProviderConfig(provider_name="openai", api_key=SecretStr("sk-secret"))}
    )

    await storage.store_run_setting(setting)

    (stored,) = await storage.get_all_runs()
    assert stored.run_id == setting.run_id
    assert stored.provider_config.api_key.get_secret_value() == "sk-secret"
