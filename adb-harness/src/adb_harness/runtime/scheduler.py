"""Single-flight FIFO task scheduler.

Tasks submitted to one scheduler run strictly one after another, in
submission order. A runner bound to a scheduler therefore never has two adb
processes in flight for the same device, and its results resolve in the
order the commands were issued.

Locking Strategy:
- No locks: a single worker task drains an asyncio.Queue.
- The worker starts lazily on the first `schedule()` call, inside the running loop.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

_Entry = tuple[Callable[[], Awaitable[Any]], "asyncio.Future[Any]", str]


class SchedulerClosedError(RuntimeError):
    """Raised when scheduling on a closed scheduler."""


class TaskScheduler:
    """Runs scheduled coroutine functions one at a time, FIFO."""

    def __init__(self, name: str = "scheduler") -> None:
        self.name = name
        self._queue: Optional[asyncio.Queue[Optional[_Entry]]] = None
        self._worker: Optional[asyncio.Task[None]] = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def _ensure_worker(self) -> asyncio.Queue[Optional[_Entry]]:
        if self._queue is None or self._worker is None or self._worker.done():
            # A queue is bound to the loop that first waits on it; a finished
            # worker may belong to an earlier loop.
            self._queue = asyncio.Queue()
            self._worker = asyncio.get_running_loop().create_task(
                self._run(self._queue), name=f"{self.name}-worker"
            )
        return self._queue

    def schedule(
        self, fn: Callable[[], Awaitable[T]], *, description: Optional[str] = None
    ) -> "asyncio.Future[T]":
        """Queue `fn` and return a future resolved with its result.

        Must be called from within a running event loop. Cancelling the returned
        future skips the task if it has not started, or cancels it if it has.
        """

        if self._closed:
            raise SchedulerClosedError(f"{self.name} is closed")
        queue = self._ensure_worker()
        fut: asyncio.Future[T] = asyncio.get_running_loop().create_future()
        queue.put_nowait((fn, fut, description or getattr(fn, "__name__", "task")))
        return fut

    async def _run(self, queue: asyncio.Queue[Optional[_Entry]]) -> None:
        while True:
            entry = await queue.get()
            if entry is None:
                return
            fn, fut, description = entry
            if fut.done():
                continue  # cancelled before it started

            try:
                task = asyncio.ensure_future(fn())
            except Exception as e:
                fut.set_exception(e)
                continue

            def _propagate_cancel(f: asyncio.Future[Any], task: asyncio.Future[Any] = task) -> None:
                if f.cancelled():
                    task.cancel()

            fut.add_done_callback(_propagate_cancel)
            await asyncio.wait([task])

            if fut.done():
                if not task.cancelled() and task.exception() is not None:
                    logger.debug("%s: %s finished after cancel", self.name, description)
                continue
            if task.cancelled():
                fut.cancel()
            elif task.exception() is not None:
                logger.debug("%s: %s failed: %s", self.name, description, task.exception())
                fut.set_exception(task.exception())  # type: ignore[arg-type]
            else:
                fut.set_result(task.result())

    async def close(self) -> None:
        """Stop the worker and cancel everything still queued."""

        self._closed = True
        if self._queue is not None:
            while not self._queue.empty():
                entry = self._queue.get_nowait()
                if entry is not None:
                    entry[1].cancel()
            self._queue.put_nowait(None)
        if self._worker is not None:
            try:
                await self._worker
            finally:
                self._worker = None

    async def __aenter__(self) -> "TaskScheduler":
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()
