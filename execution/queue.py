"""
Execution Queue — the runtime's single serialization point.

Every dispatch (live activation, chain descriptor, pipeline step) goes through
``submit``. Independent submissions run strictly FIFO on one worker task.
Work submitted by a task that belongs to the running job (the worker itself,
or a handler task adopted with ``adopt``) is that job's own chaining and runs
inline, so a job finishes with all of its chain before the next queued job
starts.

Tasks a handler spawns on its own are not part of the job: their submits are
queued behind it. A handler must therefore not await such a task, or it waits
on work that cannot start until the handler returns.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)

Thunk = Callable[[], Awaitable[Any]]


class QueueClearedError(Exception):
    """Raised to submitters whose work was dropped by ``clear()`` before running."""


class ExecutionQueue:
    """FIFO of async thunks drained by a single worker task."""

    def __init__(self) -> None:
        self._pending: deque[tuple[Thunk, asyncio.Future]] = deque()
        self._worker: asyncio.Task | None = None
        self._job_tasks: set[asyncio.Task] = set()

    @property
    def in_job(self) -> bool:
        try:
            current = asyncio.current_task()
        except RuntimeError:
            return False
        return current is not None and current in self._job_tasks

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def adopt(self, awaitable: Awaitable[Any]) -> asyncio.Future:
        """Run ``awaitable`` as a task that counts as part of the current job."""
        task = asyncio.ensure_future(awaitable)
        if isinstance(task, asyncio.Task) and not task.done():
            self._job_tasks.add(task)
            task.add_done_callback(self._job_tasks.discard)
        return task

    async def submit(self, thunk: Thunk) -> Any:
        """Run ``thunk`` in queue order and return its result."""
        if self.in_job:
            return await thunk()

        loop = asyncio.get_running_loop()
        future: asyncio.Future = loop.create_future()
        self._pending.append((thunk, future))
        if self._worker is None or self._worker.done():
            self._worker = loop.create_task(self._drain())
            self._job_tasks.add(self._worker)
            self._worker.add_done_callback(self._job_tasks.discard)
        return await future

    async def _drain(self) -> None:
        while self._pending:
            thunk, future = self._pending.popleft()
            if future.done():
                continue
            try:
                result = await thunk()
            except Exception as exc:
                if not future.done():
                    future.set_exception(exc)
            else:
                if not future.done():
                    future.set_result(result)

    async def join(self) -> None:
        """Wait until the queue is idle."""
        while self._worker is not None and not self._worker.done():
            await asyncio.shield(self._worker)

    def clear(self) -> int:
        """Drop queued-but-not-started work. Returns the number of dropped jobs."""
        dropped = 0
        while self._pending:
            _thunk, future = self._pending.popleft()
            if not future.done():
                future.set_exception(QueueClearedError("Queued command dropped by reset"))
                dropped += 1
        if dropped:
            logger.info("Execution queue cleared: %d pending job(s) dropped", dropped)
        return dropped
