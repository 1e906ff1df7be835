"""Event construction and delivery for the state machine."""

from __future__ import annotations

import logging
from typing import Any, Optional, Type, TypeVar

from ..helpers.listener import EventListener, notify
from ..llm.executor import StreamCallbacks
from ..schemas.checkpoint import Checkpoint
from ..schemas.events import (
    BaseRunEvent,
    BaseRuntimeEvent,
    CompleteStreamingReasoningEvent,
    StartStreamingReasoningEvent,
    StartStreamingRunResultEvent,
    StreamReasoningEvent,
    StreamRunResultEvent,
)
from ..schemas.setting import RunSetting

logger = logging.getLogger(__name__)

RunEventT = TypeVar("RunEventT", bound=BaseRunEvent)
RuntimeEventT = TypeVar("RuntimeEventT", bound=BaseRuntimeEvent)


def create_event(event_type: Type[RunEventT], setting: RunSetting, source: Checkpoint, /, **fields: Any) -> RunEventT:
    """Build a run or streaming event stamped with the run's ids and current step."""
    return event_type(
        job_id=setting.job_id,
        run_id=setting.run_id,
        expert_key=setting.expert_key,
        step_number=source.step_number,
        **fields,
    )


def create_runtime_event(event_type: Type[RuntimeEventT], setting: RunSetting, **fields: Any) -> RuntimeEventT:
    return event_type(job_id=setting.job_id, run_id=setting.run_id, **fields)


class RunEventEmitter:
    """Deliver events to a listener in strict emission order."""

    def __init__(self, listener: Optional[EventListener] = None) -> None:
        self._listener = listener

    async def emit(self, event: Any) -> None:
        logger.debug("emit %s", getattr(event, "type", type(event).__name__))
        await notify(self._listener, event)

    def reasoning_callbacks(self, setting: RunSetting, checkpoint: Checkpoint) -> StreamCallbacks:
        """Callbacks that forward only reasoning deltas.

        Used while generating tool calls: whether the text is a final result is
        unknown until the stream ends.
        """

        async def on_start() -> None:
            await self.emit(create_event(StartStreamingReasoningEvent, setting, checkpoint))

        async def on_delta(delta: str) -> None:
            await self.emit(create_event(StreamReasoningEvent, setting, checkpoint, delta=delta))

        async def on_complete(text: str) -> None:
            await self.emit(create_event(CompleteStreamingReasoningEvent, setting, checkpoint, text=text))

        return StreamCallbacks(on_reasoning_start=on_start, on_reasoning_delta=on_delta, on_reasoning_complete=on_complete)

    def run_result_callbacks(self, setting: RunSetting, checkpoint: Checkpoint) -> StreamCallbacks:
        callbacks = self.reasoning_callbacks(setting, checkpoint)

        async def on_result_start() -> None:
            await self.emit(create_event(StartStreamingRunResultEvent, setting, checkpoint))

        async def on_result_delta(delta: str) -> None:
            await self.emit(create_event(StreamRunResultEvent, setting, checkpoint, delta=delta))

        callbacks.on_result_start = on_result_start
        callbacks.on_result_delta = on_result_delta
        return callbacks
