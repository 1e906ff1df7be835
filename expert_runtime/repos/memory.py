from __future__ import annotations

"""In-memory storage implementation.

Values are kept in their serialized JSON form, so a stored checkpoint or event
is an exact snapshot and every retrieve returns a fresh object. Suitable for
tests, embedding and single-process use.
"""

import asyncio
import logging
from collections import defaultdict
from typing import Dict, List, Optional

from pydantic import TypeAdapter

from ..errors import CheckpointNotFoundError
from ..schemas.checkpoint import Checkpoint
from ..schemas.events import RunEvent
from ..schemas.job import Job
from ..schemas.setting import RunSetting

logger = logging.getLogger(__name__)

_run_event_adapter: TypeAdapter[RunEvent] = TypeAdapter(RunEvent)


class InMemoryStorage:
    """Dict-backed ``Storage``; safe for concurrent tasks on one event loop."""

    def __init__(self) -> None:
        self._checkpoints: Dict[str, Dict[str, str]] = defaultdict(dict)
        self._events: Dict[str, Dict[str, List[str]]] = defaultdict(lambda: defaultdict(list))
        self._jobs: Dict[str, str] = {}
        self._run_settings: Dict[str, RunSetting] = {}
        self._lock = asyncio.Lock()

    async def store_checkpoint(self, checkpoint: Checkpoint) -> None:
        async with self._lock:
            self._checkpoints[checkpoint.job_id][checkpoint.id] = checkpoint.model_dump_json(by_alias=True)
        logger.debug("Stored checkpoint %s (step %d)", checkpoint.id, checkpoint.step_number)

    async def retrieve_checkpoint(self, job_id: str, checkpoint_id: str) -> Checkpoint:
        raw = self._checkpoints.get(job_id, {}).get(checkpoint_id)
        if raw is None:
            raise CheckpointNotFoundError(job_id, checkpoint_id)
        return Checkpoint.model_validate_json(raw)

    async def get_checkpoints_by_job_id(self, job_id: str) -> List[Checkpoint]:
        checkpoints = [Checkpoint.model_validate_json(raw) for raw in self._checkpoints.get(job_id, {}).values()]
        return sorted(checkpoints, key=lambda checkpoint: checkpoint.step_number)

    async def store_event(self, event: RunEvent) -> None:
        async with self._lock:
            self._events[event.job_id][event.run_id].append(event.model_dump_json(by_alias=True))

    async def get_event_contents(self, job_id: str, run_id: str, max_step: Optional[int] = None) -> List[RunEvent]:
        events = [_run_event_adapter.validate_json(raw) for raw in self._events.get(job_id, {}).get(run_id, [])]
        if max_step is not None:
            events = [event for event in events if event.step_number <= max_step]
        return events

    async def get_events_by_run(self, job_id: str) -> Dict[str, List[RunEvent]]:
        return {
            run_id: [_run_event_adapter.validate_json(raw) for raw in raws]
            for run_id, raws in self._events.get(job_id, {}).items()
        }

    async def store_job(self, job: Job) -> None:
        self._jobs[job.id] = job.model_dump_json(by_alias=True)

    async def retrieve_job(self, job_id: str) -> Optional[Job]:
        raw = self._jobs.get(job_id)
        return Job.model_validate_json(raw) if raw is not None else None

    async def get_all_jobs(self) -> List[Job]:
        return [Job.model_validate_json(raw) for raw in self._jobs.values()]

    async def store_run_setting(self, setting: RunSetting) -> None:
        # Kept as objects: JSON would mask the provider API key.
        self._run_settings[setting.run_id] = setting.model_copy(deep=True)

    async def get_all_runs(self) -> List[RunSetting]:
        return list(self._run_settings.values())
