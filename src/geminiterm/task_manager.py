"""Structured lifecycle manager for the loop's deferred tasks."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
import logging
from typing import Any

from .events import Event
from .tasks import Task

LOGGER = logging.getLogger(__name__)

EventSink = Callable[[Event], Awaitable[None] | None]
Runner = Callable[[Callable[[], Event]], Awaitable[Event]]


async def run_in_thread(fn: Callable[[], Event]) -> Event:
    return await asyncio.to_thread(fn)


class TaskManager:
    """Resolve deferred tasks on worker threads and deliver their events.

    Every scheduled task is tracked until it completes so that shutdown can
    cancel whatever is still pending.
    """

    def __init__(self, sink: EventSink, runner: Runner | None = None) -> None:
        self._sink = sink
        self._runner = runner or run_in_thread
        self._pending: set[asyncio.Task[Any]] = set()

    def submit(self, task: Task) -> asyncio.Task[Any]:
        """Schedule ``task``; its result event is delivered to the sink."""
        future = asyncio.create_task(self._resolve(task), name=f"geminiterm.{task.name}")
        self._pending.add(future)
        future.add_done_callback(self._pending.discard)
        future.add_done_callback(self._log_exception)
        return future

    def submit_all(self, tasks: list[Task]) -> None:
        for task in tasks:
            self.submit(task)

    async def _resolve(self, task: Task) -> None:
        if task.delay > 0:
            await asyncio.sleep(task.delay)
            event = task.fn()
        else:
            event = await self._runner(task.fn)
        result = self._sink(event)
        if asyncio.iscoroutine(result):
            await result

    def _log_exception(self, future: asyncio.Task[Any]) -> None:
        """Log unhandled exceptions so they are not silently lost."""
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            LOGGER.warning(
                "task.exception",
                extra={
                    "event": "task.exception",
                    "task": future.get_name(),
                    "error_type": type(exc).__name__,
                    "error": str(exc),
                },
            )

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def cancel_all(self) -> None:
        """Cancel every tracked task and await them all."""
        tasks = [task for task in self._pending if not task.done()]
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception:  # noqa: BLE001 - already logged by the done callback.
                pass
        self._pending.clear()

    async def await_all(self) -> None:
        """Await all tracked tasks without cancelling them."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
