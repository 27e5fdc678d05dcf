from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Coroutine, TypeVar

T = TypeVar("T")


class TaskRegistry:
    """Keeps strong references to fire-and-forget tasks until they finish."""

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[Any]] = set()
        self._logger = logging.getLogger(__name__)

    def spawn(self, coro: Coroutine[Any, Any, T], name: str | None = None) -> asyncio.Task[T]:
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self._logger.error(
                "Background task failed",
                exc_info=exc,
                extra={"reason": task.get_name(), "error": str(exc)},
            )

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait until no task is left, including tasks spawned while waiting."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def cancel_all(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()


class OwnedTimer:
    """
    One cancellable timer handle. Scheduling again replaces the previous
    handle instead of stacking a second callback.
    """

    def __init__(self, registry: TaskRegistry, name: str) -> None:
        self._registry = registry
        self._name = name
        self._handle: asyncio.TimerHandle | None = None

    @property
    def is_scheduled(self) -> bool:
        return self._handle is not None

    def schedule(self, delay: float, factory: Callable[[], Awaitable[Any]]) -> None:
        self.cancel()
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(max(0.0, delay), self._fire, factory)

    def _fire(self, factory: Callable[[], Awaitable[Any]]) -> None:
        self._handle = None
        self._registry.spawn(_await(factory), name=self._name)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None


async def _await(factory: Callable[[], Awaitable[T]]) -> T:
    return await factory()
