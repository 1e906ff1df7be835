from __future__ import annotations

"""Storage interface contract.

The runtime depends on this Protocol instead of a concrete storage backend;
any implementation that fulfils it is interchangeable.

Contract guidelines
-------------------

- All methods are async.
- Stored values are snapshots: mutating an object after storing it must not
  change what a later retrieve returns.
- The event log is append-only and ordered by emission.
- Retrieving an unknown checkpoint raises ``CheckpointNotFoundError``; other
  lookups of unknown ids return ``None`` or an empty list.
"""

from typing import List, Optional, Protocol

from ..schemas.checkpoint import Checkpoint
from ..schemas.events import RunEvent
from ..schemas.job import Job
from ..schemas.setting import RunSetting


class Storage(Protocol):
    """Persist checkpoints, run events, jobs and run settings."""

    async def store_checkpoint(self, checkpoint: Checkpoint) -> None:
        """
        Store a checkpoint, replacing any earlier one with the same id.

        Args:
            checkpoint: The checkpoint to persist.
        """
        ...

    async def retrieve_checkpoint(self, job_id: str, checkpoint_id: str) -> Checkpoint:
        """
        Retrieve a checkpoint by job and checkpoint id.

        Raises:
            CheckpointNotFoundError: If no such checkpoint was stored.
        """
        ...

    async def get_checkpoints_by_job_id(self, job_id: str) -> List[Checkpoint]:
        """All checkpoints of a job, ordered by step number."""
        ...

    async def store_event(self, event: RunEvent) -> None:
        """Append a run event to its run's log."""
        ...

    async def get_event_contents(self, job_id: str, run_id: str, max_step: Optional[int] = None) -> List[RunEvent]:
        """
        Return the events of a run in emission order.

        Args:
            job_id: The job identifier.
            run_id: The run identifier.
            max_step: Only events with ``step_number <= max_step`` when set.
        """
        ...

    async def get_events_by_run(self, job_id: str) -> dict[str, List[RunEvent]]:
        """Events of every run of a job, keyed by run id."""
        ...

    async def store_job(self, job: Job) -> None: ...

    async def retrieve_job(self, job_id: str) -> Optional[Job]: ...

    async def get_all_jobs(self) -> List[Job]: ...

    async def store_run_setting(self, setting: RunSetting) -> None: ...

    async def get_all_runs(self) -> List[RunSetting]: ...
