"""
Delayed task scheduling for routing actions and email sequences.

Every scheduled callback returns a ScheduledTask handle that can be
cancelled. ManualScheduler keeps a virtual clock so tests can advance time
instead of sleeping.

A callback may return an awaitable (for example an async webhook call). The
task then stays pending until the awaitable finishes: AsyncioScheduler runs it
as a task on the event loop, the synchronous schedulers run it to completion
with asyncio.run.
"""

import asyncio
import heapq
import inspect
import itertools
import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Coroutine, List, Optional, Set

logger = logging.getLogger(__name__)

TaskCallback = Callable[[], Optional[Awaitable[Any]]]


class ScheduledTask:
    """Handle for a scheduled callback."""

    _ids = itertools.count(1)

    def __init__(self, callback: TaskCallback, due_ms: float, name: Optional[str] = None):
        self.id = next(self._ids)
        self.callback = callback
        self.due_ms = due_ms
        self.name = name or f"task-{self.id}"
        self.cancelled = False
        self.done = False
        self.error: Optional[BaseException] = None
        self._on_cancel: Optional[Callable[[], Any]] = None

    def cancel(self) -> bool:
        """Cancel the task. Returns False if it already ran or was cancelled."""
        if self.done or self.cancelled:
            return False
        self.cancelled = True
        if self._on_cancel:
            self._on_cancel()
        logger.debug(f"Task cancelled: {self.name}")
        return True

    @property
    def pending(self) -> bool:
        return not (self.done or self.cancelled)

    def run(self) -> Optional[Coroutine[Any, Any, None]]:
        """
        Invoke the callback.

        Returns a coroutine when the callback produced an awaitable; the caller
        must await it for the task to finish.
        """
        if not self.pending:
            return None
        try:
            result = self.callback()
        except Exception as e:
            self._fail(e)
            self.done = True
            return None
        if inspect.isawaitable(result):
            return self._settle(result)
        self.done = True
        return None

    async def _settle(self, awaitable: Awaitable[Any]):
        try:
            await awaitable
        except Exception as e:
            self._fail(e)
        finally:
            self.done = True

    def _fail(self, error: Exception):
        self.error = error
        logger.error(f"Scheduled task {self.name} failed: {error}")

    def __repr__(self):
        state = "done" if self.done else "cancelled" if self.cancelled else "pending"
        return f"<ScheduledTask {self.name} due={self.due_ms}ms {state}>"


def _run_to_completion(task: ScheduledTask):
    pending = task.run()
    if pending is not None:
        asyncio.run(pending)


class Scheduler(ABC):
    """Runs callbacks after a delay in milliseconds."""

    @abstractmethod
    def schedule(self, delay_ms: float, callback: TaskCallback, name: Optional[str] = None) -> ScheduledTask:
        ...


class ImmediateScheduler(Scheduler):
    """Runs every callback synchronously, ignoring the delay."""

    def schedule(self, delay_ms, callback, name=None):
        task = ScheduledTask(callback, due_ms=max(0.0, delay_ms), name=name)
        _run_to_completion(task)
        return task


class ManualScheduler(Scheduler):
    """
    Scheduler driven by a virtual clock.

    Tasks run only when time is advanced. Tasks due at the same instant run
    in the order they were scheduled; tasks scheduled by a running task are
    picked up within the same advance() if they fall due. advance() must be
    called from synchronous code, outside a running event loop.
    """

    def __init__(self):
        self.now_ms = 0.0
        self._queue: List[tuple] = []
        self._seq = itertools.count()
        self._lock = threading.Lock()

    def schedule(self, delay_ms, callback, name=None):
        task = ScheduledTask(callback, due_ms=self.now_ms + max(0.0, delay_ms), name=name)
        with self._lock:
            heapq.heappush(self._queue, (task.due_ms, next(self._seq), task))
        return task

    def advance(self, ms: float) -> int:
        """Move the clock forward and run every task that falls due. Returns tasks run."""
        target = self.now_ms + max(0.0, ms)
        ran = 0
        while True:
            with self._lock:
                if not self._queue or self._queue[0][0] > target:
                    break
                due_ms, _, task = heapq.heappop(self._queue)
            if not task.pending:
                continue
            self.now_ms = max(self.now_ms, due_ms)
            _run_to_completion(task)
            ran += 1
        self.now_ms = target
        return ran

    def flush(self) -> int:
        """Run everything pending, however far in the future."""
        ran = 0
        while True:
            with self._lock:
                pending = [t for _, _, t in self._queue if t.pending]
                if not pending:
                    self._queue.clear()
                    return ran
                horizon = max(t.due_ms for t in pending)
            ran += self.advance(horizon - self.now_ms)

    def pending(self) -> List[ScheduledTask]:
        with self._lock:
            return [t for _, _, t in sorted(self._queue) if t.pending]


class AsyncioScheduler(Scheduler):
    """
    Schedules callbacks on an asyncio event loop with call_later.

    Awaitables returned by callbacks run as loop tasks, so slow I/O in a
    delegate never blocks the loop.
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop
        self._running: Set[asyncio.Task] = set()

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        try:
            return asyncio.get_running_loop()
        except RuntimeError:
            if self._loop is None:
                raise RuntimeError("AsyncioScheduler needs a running event loop")
            return self._loop

    def schedule(self, delay_ms, callback, name=None):
        loop = self._get_loop()
        delay_ms = max(0.0, delay_ms)
        task = ScheduledTask(callback, due_ms=loop.time() * 1000 + delay_ms, name=name)
        handle = loop.call_later(delay_ms / 1000, self._fire, task, loop)
        task._on_cancel = handle.cancel
        return task

    def _fire(self, task: ScheduledTask, loop: asyncio.AbstractEventLoop):
        pending = task.run()
        if pending is None:
            return
        running = loop.create_task(pending, name=task.name)
        task._on_cancel = running.cancel
        self._running.add(running)
        running.add_done_callback(self._running.discard)

    def in_flight(self) -> int:
        """Number of awaitable callbacks still running."""
        return len(self._running)
