from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Coroutine

import anyio

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TaskFailure:
    """A detached task that ended with an exception."""

    name: str
    error: BaseException
    context: dict[str, Any] = field(default_factory=dict)


class DetachedTaskRunner:
    """
    Spawn-and-forget runner with an error channel.

    - Spawned coroutines are never awaited by the caller.
    - Failures are logged and appended to ``failures``; registered listeners
      are called with each ``TaskFailure``.
    - From a worker thread (FastAPI sync endpoints) the task is created on the
      main loop via anyio.from_thread; with no loop at all (CLI/scripts) the
      coroutine runs inline, still guarded.
    """

    def __init__(self, *, max_failures: int = 100):
        self._tasks: set[asyncio.Task] = set()
        self.failures: deque[TaskFailure] = deque(maxlen=max_failures)
        self._listeners: list[Callable[[TaskFailure], None]] = []

    def add_listener(self, listener: Callable[[TaskFailure], None]) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: Callable[[TaskFailure], None]) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def spawn(
        self,
        coro: Coroutine[object, object, Any],
        *,
        name: str,
        context: dict[str, Any] | None = None,
    ) -> asyncio.Task | None:
        """Schedule ``coro`` without waiting for it. Never raises for task failures."""
        context = context or {}
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return self._spawn_outside_loop(coro, name=name, context=context)
        return self._create_task(coro, name=name, context=context)

    def _create_task(
        self, coro: Coroutine[object, object, Any], *, name: str, context: dict[str, Any]
    ) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(
            self._guard(coro, name=name, context=context), name=name
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _spawn_outside_loop(
        self, coro: Coroutine[object, object, Any], *, name: str, context: dict[str, Any]
    ) -> asyncio.Task | None:
        try:
            return anyio.from_thread.run_sync(
                lambda: self._create_task(coro, name=name, context=context)
            )
        except RuntimeError:
            anyio.run(lambda: self._guard(coro, name=name, context=context))
            return None

    async def _guard(
        self, coro: Coroutine[object, object, Any], *, name: str, context: dict[str, Any]
    ) -> Any:
        try:
            return await coro
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self._record(TaskFailure(name=name, error=exc, context=context))
            return None

    def _record(self, failure: TaskFailure) -> None:
        logger.warning(
            "Detached task %s failed: %s",
            failure.name,
            failure.error,
            extra=failure.context,
        )
        self.failures.append(failure)
        for listener in list(self._listeners):
            try:
                listener(failure)
            except Exception:
                logger.exception("Detached task failure listener raised")

    async def drain(self, timeout: float | None = None) -> None:
        """Wait for every task spawned so far (shutdown and tests)."""
        tasks = list(self._tasks)
        if not tasks:
            return
        if timeout is not None:
            with anyio.fail_after(timeout):
                await asyncio.gather(*tasks, return_exceptions=True)
        else:
            await asyncio.gather(*tasks, return_exceptions=True)


# Singleton instance
background = DetachedTaskRunner()
