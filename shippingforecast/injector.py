from __future__ import annotations

import logging
import random
from typing import Callable, List, Optional, Tuple

from .events import EventBus, EventKind, FocusRestored, ReportComplete, WarningReady
from .focus import FocusMonitor
from .messages import WARNING_MESSAGES, WarningMessage, random_message
from .timing import Clock, wall_clock_ms

log = logging.getLogger("shippingforecast.injector")

DEFAULT_THRESHOLD_MS = 60_000


class WarningInjector:
    """
    At every report boundary, decide whether to splice an inactivity warning
    into the next playback slot. Never interrupts anything already playing:
    the only trigger is ``report:complete``.
    """

    def __init__(
        self,
        focus: FocusMonitor,
        bus: EventBus,
        is_playing: Callable[[], bool],
        clock: Clock = wall_clock_ms,
        rng: Optional[random.Random] = None,
        threshold_ms: float = DEFAULT_THRESHOLD_MS,
        messages: Tuple[WarningMessage, ...] = WARNING_MESSAGES,
    ) -> None:
        if not messages:
            raise ValueError("WarningInjector needs a non-empty message pool")
        self.focus = focus
        self.bus = bus
        self.is_playing = is_playing
        self.clock = clock
        self.rng = rng or random.Random()
        self.threshold_ms = float(threshold_ms)
        self.messages = messages
        self._unsubscribers: List[Callable[[], None]] = []

    def start(self) -> None:
        if self._unsubscribers:
            log.warning("WarningInjector already started")
            return
        self._unsubscribers = [
            self.bus.subscribe(EventKind.REPORT_COMPLETE, self._on_report_complete),
            self.bus.subscribe(EventKind.FOCUS_RESTORED, self._on_focus_restored),
        ]
        log.info("WarningInjector started (threshold=%.0fs)", self.threshold_ms / 1000.0)

    def stop(self) -> None:
        for unsub in self._unsubscribers:
            unsub()
        self._unsubscribers = []

    def _on_report_complete(self, event: ReportComplete) -> None:
        self.check_and_inject()

    def _on_focus_restored(self, event: FocusRestored) -> None:
        # later checks fail on visibility by themselves; nothing in flight to cancel
        log.info(
            "Listener back after %.1fs; %d warnings were played",
            event.unfocused_duration_ms / 1000.0,
            event.warnings_played,
        )

    def should_inject(self) -> bool:
        st = self.focus.state()
        if st.is_visible:
            return False
        if not self.is_playing():
            return False

        reference = st.last_warning_at if st.last_warning_at is not None else st.focus_lost_at
        if reference is None:
            return False

        return self.clock() - reference > self.threshold_ms

    def check_and_inject(self) -> Optional[WarningReady]:
        if not self.should_inject():
            return None

        msg = random_message(self.rng, self.messages)
        event = WarningReady(
            message_id=msg.id,
            message_text=msg.text,
            warning_count=self.focus.state().warning_count + 1,
            timestamp_ms=self.clock(),
        )
        log.info("Injecting warning %d (message %d)", event.warning_count, msg.id)

        try:
            self.bus.publish(event)
        finally:
            # counted as sent even if playback fails downstream
            self.focus.record_warning_sent()
        return event
