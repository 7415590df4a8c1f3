from __future__ import annotations

import asyncio
import time
from typing import Callable, Optional, Protocol

Clock = Callable[[], float]


def wall_clock_ms() -> float:
    """Epoch milliseconds. All focus/injection comparisons are done on this scale."""
    return time.time() * 1000.0


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class TimerFactory(Protocol):
    def call_later(self, delay_seconds: float, callback: Callable[[], None]) -> TimerHandle: ...


class LoopTimers:
    """TimerFactory backed by the running asyncio loop."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        self._loop = loop

    def call_later(self, delay_seconds: float, callback: Callable[[], None]) -> TimerHandle:
        loop = self._loop or asyncio.get_running_loop()
        return loop.call_later(max(0.0, float(delay_seconds)), callback)


class OneShotTimer:
    """
    Restartable single-fire timer. ``start`` re-arms (dropping any pending
    fire), ``cancel`` forgets the pending fire, the callback runs at most once
    per ``start``.
    """

    def __init__(self, timers: TimerFactory, delay_seconds: float, callback: Callable[[], None]) -> None:
        self._timers = timers
        self.delay_seconds = float(delay_seconds)
        self._callback = callback
        self._handle: Optional[TimerHandle] = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def start(self) -> None:
        self.cancel()
        self._handle = self._timers.call_later(self.delay_seconds, self._fire)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self) -> None:
        if self._handle is None:
            return
        self._handle = None
        self._callback()
