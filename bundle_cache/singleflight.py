"""Collapse concurrent work for the same key into one asyncio task."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Hashable
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)
T = TypeVar("T")


class SingleFlight(Generic[K, T]):
    """Registry of in-flight tasks keyed by a cache key.

    The first caller for a key starts the task; later callers join it until
    it finishes, at which point the key is released. Awaiters are shielded,
    so a cancelled caller never cancels the shared work.
    """

    def __init__(self) -> None:
        self._tasks: dict[K, asyncio.Task[T]] = {}

    def __contains__(self, key: object) -> bool:
        return key in self._tasks

    def __len__(self) -> int:
        return len(self._tasks)

    def get(self, key: K) -> asyncio.Task[T] | None:
        return self._tasks.get(key)

    def join(self, key: K, factory: Callable[[], Awaitable[T]]) -> tuple[asyncio.Task[T], bool]:
        """Return the task for *key* and whether this call started it."""
        task = self._tasks.get(key)
        if task is not None:
            return task, False
        task = asyncio.ensure_future(factory())
        self._tasks[key] = task
        task.add_done_callback(lambda t, k=key: self._release(k, t))
        return task, True

    async def do(self, key: K, factory: Callable[[], Awaitable[T]]) -> T:
        task, _ = self.join(key, factory)
        return await asyncio.shield(task)

    def _release(self, key: K, task: asyncio.Task[T]) -> None:
        if self._tasks.get(key) is task:
            del self._tasks[key]
        # Mark the result retrieved; awaiters still see the exception.
        if not task.cancelled() and task.exception() is not None:
            logger.debug("In-flight task for %s failed: %r", key, task.exception())
