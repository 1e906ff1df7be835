from __future__ import annotations

import inspect
from typing import Any, Awaitable, Callable, Optional, Union

EventListener = Callable[[Any], Union[None, Awaitable[None]]]


async def notify(listener: Optional[EventListener], event: Any) -> None:
    """Deliver ``event`` to ``listener``, awaiting it when it is a coroutine function."""
    if listener is None:
        return
    result = listener(event)
    if inspect.isawaitable(result):
        await result
