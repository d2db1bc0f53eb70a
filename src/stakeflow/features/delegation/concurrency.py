from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine
from typing import Any

__all__ = ["Debouncer", "TaskTracker"]

logger = logging.getLogger(__name__)


class Debouncer:
    """Run ``callback`` once input has been quiet for ``delay`` seconds.

    Every :meth:`trigger` cancels the pending timer and schedules a new one, so
    bursts of keystrokes collapse into a single call with the latest arguments.
    Must be used from inside a running event loop.
    """

    def __init__(self, delay: float, callback: Callable[..., None]) -> None:
        self.delay = max(0.0, delay)
        self._callback = callback
        self._handle: asyncio.TimerHandle | None = None
        self._idle: asyncio.Future[None] | None = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def trigger(self, *args: Any) -> None:
        loop = asyncio.get_running_loop()
        if self._handle is not None:
            self._handle.cancel()
        if self._idle is None or self._idle.done():
            self._idle = loop.create_future()
        self._handle = loop.call_later(self.delay, self._fire, args)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self._mark_idle()

    async def wait(self) -> None:
        if self._idle is not None and not self._idle.done():
            await asyncio.shield(self._idle)

    def _fire(self, args: tuple[Any, ...]) -> None:
        self._handle = None
        try:
            self._callback(*args)
        finally:
            self._mark_idle()

    def _mark_idle(self) -> None:
        if self._idle is not None and not self._idle.done():
            self._idle.set_result(None)


class TaskTracker:
    """Keeps strong references to in-flight tasks so they can be drained or abandoned."""

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[Any]] = set()

    def __len__(self) -> int:
        return len(self._tasks)

    def spawn(self, coro: Coroutine[Any, Any, Any], *, name: str | None = None) -> asyncio.Task[Any]:
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def cancel_all(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            logger.debug("Cancelled in-flight tasks", extra={"count": len(self._tasks)})

    async def drain(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
