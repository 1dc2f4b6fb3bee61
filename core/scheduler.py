"""Cancelable task scheduling, injected into the session machine and the core.

Two implementations:
  - AsyncioScheduler  →  wall clock, asyncio event loop timers (real runs)
  - VirtualScheduler  →  virtual clock advanced explicitly (tests)
"""

from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)

Callback = Callable[[], Awaitable[None]]


class TaskHandle:
    def __init__(self, name: str) -> None:
        self.name = name
        self.cancelled = False
        self._timer: asyncio.TimerHandle | None = None

    def cancel(self) -> None:
        """Idempotent."""
        self.cancelled = True
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None


class Scheduler(ABC):
    @abstractmethod
    def now(self) -> float:
        """Current time in epoch seconds."""

    @abstractmethod
    def call_later(self, delay: float, callback: Callback, name: str) -> TaskHandle:
        ...

    @abstractmethod
    def call_every(self, interval: float, callback: Callback, name: str) -> TaskHandle:
        ...


class TaskSlot:
    """One named task that is always cancelled before it is scheduled again."""

    def __init__(self, scheduler: Scheduler, name: str) -> None:
        self._scheduler = scheduler
        self.name = name
        self._handle: TaskHandle | None = None

    @property
    def armed(self) -> bool:
        return self._handle is not None and not self._handle.cancelled

    def arm_every(self, interval: float, callback: Callback) -> None:
        self.disarm()
        self._handle = self._scheduler.call_every(interval, callback, self.name)

    def arm_once(self, delay: float, callback: Callback) -> None:
        self.disarm()
        self._handle = self._scheduler.call_later(delay, callback, self.name)

    def disarm(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None


# ── asyncio ───────────────────────────────────────────────────────────────────


class AsyncioScheduler(Scheduler):
    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop
        self._running: set[asyncio.Task] = set()

    def now(self) -> float:
        return time.time()

    def call_later(self, delay: float, callback: Callback, name: str) -> TaskHandle:
        handle = TaskHandle(name)

        def _fire() -> None:
            handle._timer = None
            if not handle.cancelled:
                self._spawn(callback, name)

        handle._timer = self._get_loop().call_later(delay, _fire)
        return handle

    def call_every(self, interval: float, callback: Callback, name: str) -> TaskHandle:
        handle = TaskHandle(name)
        loop = self._get_loop()

        def _fire() -> None:
            if handle.cancelled:
                return
            self._spawn(callback, name)
            handle._timer = loop.call_later(interval, _fire)

        handle._timer = loop.call_later(interval, _fire)
        return handle

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def _spawn(self, callback: Callback, name: str) -> None:
        task = self._get_loop().create_task(self._run(callback, name))
        self._running.add(task)
        task.add_done_callback(self._running.discard)

    async def _run(self, callback: Callback, name: str) -> None:
        try:
            await callback()
        except Exception:
            logger.exception("scheduled task %s failed", name)


# ── virtual clock ─────────────────────────────────────────────────────────────


@dataclass(order=True)
class _VirtualTask:
    due: float
    seq: int
    interval: float | None = field(compare=False)
    callback: Callback = field(compare=False)
    handle: TaskHandle = field(compare=False)


class VirtualScheduler(Scheduler):
    """Deterministic scheduler: nothing runs until ``advance()`` is awaited."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self._now = start
        self._seq = 0
        self._tasks: list[_VirtualTask] = []

    def now(self) -> float:
        return self._now

    def call_later(self, delay: float, callback: Callback, name: str) -> TaskHandle:
        return self._add(delay, None, callback, name)

    def call_every(self, interval: float, callback: Callback, name: str) -> TaskHandle:
        return self._add(interval, interval, callback, name)

    def pending(self, name: str | None = None) -> list[str]:
        """Names of live tasks, optionally filtered by *name*."""
        return [
            t.handle.name for t in sorted(self._tasks)
            if not t.handle.cancelled and (name is None or t.handle.name == name)
        ]

    async def advance(self, seconds: float) -> None:
        """Move the clock forward, running every task that falls due on the way."""
        target = self._now + seconds
        while True:
            self._tasks = [t for t in self._tasks if not t.handle.cancelled]
            due = [t for t in self._tasks if t.due <= target]
            if not due:
                break
            task = min(due)
            self._now = max(self._now, task.due)
            if task.interval is None:
                self._tasks.remove(task)
                task.handle.cancelled = True
            else:
                task.due += task.interval
            await task.callback()
        self._now = target

    def _add(self, delay: float, interval: float | None, callback: Callback, name: str) -> TaskHandle:
        handle = TaskHandle(name)
        self._seq += 1
        self._tasks.append(_VirtualTask(self._now + delay, self._seq, interval, callback, handle))
        return handle
