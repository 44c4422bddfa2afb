"""In-memory registry of running per-account sync tasks."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Generic, TypeVar

if TYPE_CHECKING:
    from collections.abc import Callable, Coroutine
    from typing import Any

T = TypeVar("T")


class InFlightRegistry(Generic[T]):
    """Map each key to at most one running task.

    Thread-safety: safe under asyncio's single-threaded cooperative model.
    ``start`` has no await points between the lookup and the insertion, so
    two callers can never both start a task for the same key. Do NOT use
    from multiple OS threads.
    """

    def __init__(self) -> None:
        self._tasks: dict[str, asyncio.Task[T]] = {}

    def __contains__(self, key: object) -> bool:
        return key in self._tasks

    def __len__(self) -> int:
        return len(self._tasks)

    def keys(self) -> list[str]:
        return list(self._tasks)

    def get(self, key: str) -> asyncio.Task[T] | None:
        """Return the running task for a key, if any."""
        task = self._tasks.get(key)
        if task is not None and task.done():
            self._tasks.pop(key, None)
            return None
        return task

    def start(
        self, key: str, factory: Callable[[], Coroutine[Any, Any, T]]
    ) -> tuple[asyncio.Task[T], bool]:
        """Return the running task for ``key``, or start one from ``factory``.

        The second element is True when a new task was started.
        """
        existing = self.get(key)
        if existing is not None:
            return existing, False
        task = asyncio.create_task(factory(), name=f"inflight:{key}")
        self._tasks[key] = task
        # Covers tasks cancelled before their coroutine ever ran.
        task.add_done_callback(lambda finished: self.release(key, finished))
        return task, True

    def release(self, key: str, task: asyncio.Task[T] | None = None) -> None:
        """Forget the task registered for ``key``.

        When ``task`` is given, only that exact task is released, so a late
        release never drops a newer registration.
        """
        current = self._tasks.get(key)
        if current is None:
            return
        if task is not None and current is not task:
            return
        del self._tasks[key]
