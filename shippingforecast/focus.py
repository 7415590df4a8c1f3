from __future__ import annotations

import asyncio
import logging
import signal
from dataclasses import dataclass
from typing import Callable, List, Optional, Protocol

from .events import EventBus, FocusLost, FocusRestored
from .timing import Clock, OneShotTimer, TimerFactory, wall_clock_ms

log = logging.getLogger("shippingforecast.focus")

DEFAULT_DEBOUNCE_SECONDS = 1.0
DEFAULT_TICK_SECONDS = 1.0

VisibilityListener = Callable[[bool], None]  # called with hidden=True/False


class VisibilitySource(Protocol):
    def is_hidden(self) -> bool: ...

    def add_listener(self, listener: VisibilityListener) -> None: ...

    def remove_listener(self, listener: VisibilityListener) -> None: ...


class SignalVisibilitySource:
    """
    Listener presence driven by POSIX signals, so a front end (or an operator)
    can flip it with ``kill``: SIGUSR1 = nobody listening, SIGUSR2 = back.
    """

    HIDDEN_SIGNAL = getattr(signal, "SIGUSR1", None)
    VISIBLE_SIGNAL = getattr(signal, "SIGUSR2", None)

    def __init__(self, loop: asyncio.AbstractEventLoop, start_hidden: bool = False) -> None:
        self._loop = loop
        self._hidden = bool(start_hidden)
        self._listeners: List[VisibilityListener] = []
        self._installed = False

    @classmethod
    def install(cls, loop: asyncio.AbstractEventLoop) -> Optional["SignalVisibilitySource"]:
        """Returns None where the platform cannot deliver the signals."""
        if cls.HIDDEN_SIGNAL is None or cls.VISIBLE_SIGNAL is None:
            return None
        src = cls(loop)
        try:
            loop.add_signal_handler(cls.HIDDEN_SIGNAL, src._set, True)
            loop.add_signal_handler(cls.VISIBLE_SIGNAL, src._set, False)
        except (NotImplementedError, RuntimeError, ValueError):
            return None
        src._installed = True
        return src

    def uninstall(self) -> None:
        if not self._installed:
            return
        for sig in (self.HIDDEN_SIGNAL, self.VISIBLE_SIGNAL):
            self._loop.remove_signal_handler(sig)
        self._installed = False

    def is_hidden(self) -> bool:
        return self._hidden

    def add_listener(self, listener: VisibilityListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: VisibilityListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _set(self, hidden: bool) -> None:
        self._hidden = hidden
        for fn in list(self._listeners):
            fn(hidden)


@dataclass(frozen=True)
class FocusState:
    is_visible: bool
    focus_lost_at: Optional[float]
    last_warning_at: Optional[float]
    warning_count: int


class FocusMonitor:
    """
    Turns raw hidden/visible signals into a debounced focus state.

    Hidden is taken immediately. Visible only counts once it has held for
    ``debounce_seconds``; a hidden signal inside that window cancels the
    restore and leaves the loss timestamp alone.
    """

    def __init__(
        self,
        bus: EventBus,
        source: Optional[VisibilitySource],
        timers: TimerFactory,
        clock: Clock = wall_clock_ms,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        tick_seconds: float = DEFAULT_TICK_SECONDS,
    ) -> None:
        self.bus = bus
        self.source = source
        self.clock = clock

        self._is_visible = True
        self._focus_lost_at: Optional[float] = None
        self._previous_focus_lost_at: Optional[float] = None
        self._last_warning_at: Optional[float] = None
        self._warning_count = 0

        self._restore_timer = OneShotTimer(timers, debounce_seconds, self._commit_restore)
        self._tick_timer = OneShotTimer(timers, tick_seconds, self._tick)
        self._started = False

    @property
    def enabled(self) -> bool:
        return self._started

    def start(self) -> bool:
        if self._started:
            log.warning("FocusMonitor already started")
            return True

        if self.source is None:
            log.warning("No visibility source available; inactivity warnings are disabled")
            return False

        self.source.add_listener(self.handle_visibility)
        self._started = True
        log.info("FocusMonitor started")

        if self.source.is_hidden():
            self._on_hidden()
        return True

    def stop(self) -> None:
        self._restore_timer.cancel()
        self._tick_timer.cancel()
        if self.source is not None and self._started:
            self.source.remove_listener(self.handle_visibility)
        self._started = False

    def handle_visibility(self, hidden: bool) -> None:
        if hidden:
            self._on_hidden()
        else:
            self._on_visible()

    def state(self) -> FocusState:
        return FocusState(
            is_visible=self._is_visible,
            focus_lost_at=self._focus_lost_at,
            last_warning_at=self._last_warning_at,
            warning_count=self._warning_count,
        )

    def record_warning_sent(self) -> None:
        self._last_warning_at = self.clock()
        self._warning_count += 1

    def _on_hidden(self) -> None:
        # a hidden signal inside the debounce window means the restore never happened
        self._restore_timer.cancel()
        self._is_visible = False

        if self._focus_lost_at is not None:
            return

        now = self.clock()
        previous = self._previous_focus_lost_at
        self._focus_lost_at = now
        self._last_warning_at = None
        self._warning_count = 0
        self._tick_timer.start()

        log.info("Focus lost")
        self.bus.publish(FocusLost(timestamp_ms=now, previous_focus_lost_at=previous))

    def _on_visible(self) -> None:
        if self._is_visible and self._focus_lost_at is None:
            return
        self._restore_timer.start()

    def _commit_restore(self) -> None:
        now = self.clock()
        duration = now - self._focus_lost_at if self._focus_lost_at is not None else 0.0
        warnings_played = self._warning_count

        self._is_visible = True
        self._previous_focus_lost_at = self._focus_lost_at
        self._focus_lost_at = None
        self._last_warning_at = None
        self._warning_count = 0
        self._tick_timer.cancel()

        log.info("Focus restored after %.1fs (%d warnings)", duration / 1000.0, warnings_played)
        self.bus.publish(
            FocusRestored(
                unfocused_duration_ms=duration,
                warnings_played=warnings_played,
                timestamp_ms=now,
            )
        )

    def _tick(self) -> None:
        # bookkeeping only; decisions are made from timestamps, not tick counts
        if self._focus_lost_at is None:
            return
        log.debug(
            "Unfocused for %.0fs (warnings=%d)",
            (self.clock() - self._focus_lost_at) / 1000.0,
            self._warning_count,
        )
        self._tick_timer.start()
