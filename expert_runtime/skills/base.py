"""Skill manager lifecycle.

A skill manager hides one tool backend behind ``init`` / ``get_tool_definitions``
/ ``call_tool`` / ``close``. Managers flagged ``lazy_init`` start their
initialization in the background so the run can proceed; the first call that
needs the tool list waits for it.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Literal, Optional, Sequence, Union

from ..errors import SkillAlreadyInitializedError, SkillNotInitializedError
from ..helpers.listener import EventListener, notify
from ..schemas.parts import FileInlinePart, ImageInlinePart, TextPart
from ..schemas.tools import ToolDefinition

logger = logging.getLogger(__name__)

SkillType = Literal["mcp", "delegate", "interactive"]

ToolContent = Union[TextPart, ImageInlinePart, FileInlinePart]


class BaseSkillManager(ABC):
    name: str
    type: SkillType
    lazy_init: bool = False

    def __init__(self, job_id: str, run_id: str, event_listener: Optional[EventListener] = None) -> None:
        self.job_id = job_id
        self.run_id = run_id
        self._event_listener = event_listener
        self._tool_definitions: List[ToolDefinition] = []
        self._initialized = False
        self._initializing: Optional[asyncio.Task] = None

    async def init(self) -> None:
        """Initialize the backend.

        Raises:
            SkillAlreadyInitializedError: If the manager is initialized or initializing.
        """
        if self._initialized:
            raise SkillAlreadyInitializedError(self.name)
        if self._initializing is not None:
            raise SkillAlreadyInitializedError(self.name, in_flight=True)
        task = asyncio.ensure_future(self._perform_init())
        self._initializing = task
        if self.lazy_init:
            task.add_done_callback(self._log_background_failure)
            return
        try:
            await task
        except Exception:
            self._initialized = False
            self._initializing = None
            raise

    def _log_background_failure(self, task: asyncio.Task) -> None:
        if not task.cancelled() and task.exception() is not None:
            logger.warning("Background initialization of skill %s failed: %s", self.name, task.exception())

    async def _perform_init(self) -> None:
        await self._do_init()
        self._initialized = True
        self._initializing = None

    @abstractmethod
    async def _do_init(self) -> None: ...

    def is_initialized(self) -> bool:
        return self._initialized

    async def get_tool_definitions(self) -> List[ToolDefinition]:
        if not self._initialized and self._initializing is not None:
            await asyncio.shield(self._initializing)
        if not self._initialized:
            raise SkillNotInitializedError(self.name)
        return self._filter_tools(self._tool_definitions)

    def _filter_tools(self, tools: Sequence[ToolDefinition]) -> List[ToolDefinition]:
        return list(tools)

    @abstractmethod
    async def call_tool(self, tool_name: str, args: Dict[str, Any]) -> List[ToolContent]: ...

    async def close(self) -> None:
        """Release the backend. Never raises."""
        if self._initializing is not None and not self._initializing.done():
            self._initializing.cancel()
            with contextlib.suppress(asyncio.CancelledError, Exception):
                await self._initializing
        try:
            await self._do_close()
        except Exception as e:
            logger.warning("Failed to close skill %s: %s", self.name, e)

    async def _do_close(self) -> None:
        return None

    async def _emit(self, event: Any) -> None:
        await notify(self._event_listener, event)


def filter_by_pick_omit(tools: Sequence[ToolDefinition], pick: Sequence[str], omit: Sequence[str]) -> List[ToolDefinition]:
    selected = [tool for tool in tools if tool.name not in omit] if omit else list(tools)
    return [tool for tool in selected if tool.name in pick] if pick else selected
