"""Lifecycle tracking for background exchange tasks."""

from __future__ import annotations

import asyncio
from collections.abc import Coroutine
import logging
from typing import Any

LOGGER = logging.getLogger(__name__)


class TaskManager:
    """Own the asyncio tasks that run exchanges outside any view.

    Named tasks are keyed by session id and drop out of tracking when they
    finish; anonymous tasks do the same.  Exceptions that escape a task are
    logged rather than lost.
    """

    def __init__(self) -> None:
        self._named: dict[str, asyncio.Task[Any]] = {}
        self._anonymous: set[asyncio.Task[Any]] = set()

    def __len__(self) -> int:
        return len(self._named) + len(self._anonymous)

    def spawn(
        self, coro: Coroutine[Any, Any, Any], name: str | None = None
    ) -> asyncio.Task[Any]:
        """Schedule ``coro`` on the running loop and track it."""
        task = asyncio.create_task(coro, name=name)
        self.add(task, name=name)
        return task

    def add(self, task: asyncio.Task[Any], name: str | None = None) -> None:
        if name is not None:
            self._named[name] = task
            task.add_done_callback(lambda done, key=name: self._forget(key, done))
        else:
            self._anonymous.add(task)
            task.add_done_callback(self._anonymous.discard)
        task.add_done_callback(self._log_exception)

    def _forget(self, name: str, task: asyncio.Task[Any]) -> None:
        if self._named.get(name) is task:
            del self._named[name]

    def _log_exception(self, task: asyncio.Task[Any]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            LOGGER.error(
                "task.exception",
                extra={
                    "event": "task.exception",
                    "task": task.get_name(),
                    "error_type": type(exc).__name__,
                    "error": str(exc),
                },
            )

    def get(self, name: str) -> asyncio.Task[Any] | None:
        return self._named.get(name)

    def is_running(self, name: str) -> bool:
        task = self._named.get(name)
        return task is not None and not task.done()

    def _tracked(self) -> list[asyncio.Task[Any]]:
        return [*self._named.values(), *self._anonymous]

    async def await_all(self, timeout: float | None = None) -> bool:
        """Wait for tracked tasks without cancelling them.

        Returns False when ``timeout`` elapsed with tasks still pending.
        """
        pending = [task for task in self._tracked() if not task.done()]
        if not pending:
            return True
        _done, still_pending = await asyncio.wait(pending, timeout=timeout)
        return not still_pending

    async def cancel_all(self) -> None:
        """Cancel every tracked task and wait for them to unwind."""
        tasks = self._tracked()
        for task in tasks:
            if not task.done():
                task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception:  # noqa: BLE001 - already reported by _log_exception.
                pass
        self._named.clear()
        self._anonymous.clear()
