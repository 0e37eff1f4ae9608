"""Named interval/timeout handles on the running asyncio loop."""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Callable

logger = logging.getLogger(__name__)

TimerCallback = Callable[[], Any]


class TimerRegistry:
    """Owns every timer of one engine so teardown can release all of them.

    Creating a timer under an existing name cancels the previous handle.
    A firing never waits for the previous callback to finish; coroutine
    callbacks run as their own tasks.
    """

    def __init__(self) -> None:
        self._intervals: dict[str, asyncio.Task[None]] = {}
        self._timeouts: dict[str, asyncio.Task[None]] = {}
        self._inflight: set[asyncio.Task[Any]] = set()

    @property
    def interval_names(self) -> list[str]:
        return list(self._intervals)

    @property
    def timeout_names(self) -> list[str]:
        return list(self._timeouts)

    def create_interval(
        self, name: str, fn: TimerCallback, period: float
    ) -> asyncio.Task[None]:
        if period <= 0:
            raise ValueError("Interval period must be positive")
        self.clear_interval(name)
        loop = asyncio.get_running_loop()
        task = loop.create_task(self._run_interval(name, fn, period), name=f"interval:{name}")
        self._intervals[name] = task
        return task

    def create_timeout(
        self, name: str, fn: TimerCallback, delay: float
    ) -> asyncio.Task[None]:
        self.clear_timeout(name)
        loop = asyncio.get_running_loop()
        task = loop.create_task(
            self._run_timeout(name, fn, max(0.0, delay)), name=f"timeout:{name}"
        )
        self._timeouts[name] = task
        return task

    def clear_interval(self, name: str) -> None:
        task = self._intervals.pop(name, None)
        if task is not None:
            task.cancel()

    def clear_timeout(self, name: str) -> None:
        task = self._timeouts.pop(name, None)
        if task is not None:
            task.cancel()

    def clear_all(self) -> None:
        for task in self._intervals.values():
            task.cancel()
        self._intervals.clear()
        for task in self._timeouts.values():
            task.cancel()
        self._timeouts.clear()

    async def _run_interval(self, name: str, fn: TimerCallback, period: float) -> None:
        while True:
            await asyncio.sleep(period)
            self._dispatch(name, fn)

    async def _run_timeout(self, name: str, fn: TimerCallback, delay: float) -> None:
        await asyncio.sleep(delay)
        if self._timeouts.get(name) is asyncio.current_task():
            del self._timeouts[name]
        self._dispatch(name, fn)

    def _dispatch(self, name: str, fn: TimerCallback) -> None:
        try:
            result = fn()
        except Exception:
            logger.exception("Timer %r callback failed", name)
            return
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._inflight.add(task)
            task.add_done_callback(lambda done: self._on_callback_done(name, done))

    def _on_callback_done(self, name: str, task: asyncio.Future[Any]) -> None:
        self._inflight.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Timer %r callback failed", name, exc_info=exc)
