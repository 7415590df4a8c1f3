from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Any, Callable, ClassVar, Dict, List, Optional, Union

log = logging.getLogger("shippingforecast.events")


class EventKind(str, enum.Enum):
    REPORT_PLAYING = "report:playing"
    REPORT_COMPLETE = "report:complete"
    FOCUS_LOST = "focus:lost"
    FOCUS_RESTORED = "focus:restored"
    WARNING_READY = "warning:ready"
    WARNING_PLAYING = "warning:playing"
    WARNING_COMPLETE = "warning:complete"
    PLAYBACK_STARTED = "playback:started"
    PLAYBACK_STOPPED = "playback:stopped"


@dataclass(frozen=True)
class ReportPlaying:
    kind: ClassVar[EventKind] = EventKind.REPORT_PLAYING
    report: Any


@dataclass(frozen=True)
class ReportComplete:
    kind: ClassVar[EventKind] = EventKind.REPORT_COMPLETE
    report: Any


@dataclass(frozen=True)
class FocusLost:
    kind: ClassVar[EventKind] = EventKind.FOCUS_LOST
    timestamp_ms: float
    previous_focus_lost_at: Optional[float]


@dataclass(frozen=True)
class FocusRestored:
    kind: ClassVar[EventKind] = EventKind.FOCUS_RESTORED
    unfocused_duration_ms: float
    warnings_played: int
    timestamp_ms: float


@dataclass(frozen=True)
class WarningReady:
    kind: ClassVar[EventKind] = EventKind.WARNING_READY
    message_id: int
    message_text: str
    warning_count: int
    timestamp_ms: float


@dataclass(frozen=True)
class WarningPlaying:
    kind: ClassVar[EventKind] = EventKind.WARNING_PLAYING
    message_id: int
    warning_count: int


@dataclass(frozen=True)
class WarningComplete:
    kind: ClassVar[EventKind] = EventKind.WARNING_COMPLETE
    message_id: int
    warning_count: int
    ok: bool


@dataclass(frozen=True)
class PlaybackStarted:
    kind: ClassVar[EventKind] = EventKind.PLAYBACK_STARTED


@dataclass(frozen=True)
class PlaybackStopped:
    kind: ClassVar[EventKind] = EventKind.PLAYBACK_STOPPED


Event = Union[
    ReportPlaying,
    ReportComplete,
    FocusLost,
    FocusRestored,
    WarningReady,
    WarningPlaying,
    WarningComplete,
    PlaybackStarted,
    PlaybackStopped,
]
Handler = Callable[[Any], None]


class EventBus:
    """
    In-process pub/sub. Handlers run synchronously in subscription order; one
    handler raising does not stop delivery to the rest.
    """

    def __init__(self) -> None:
        self._handlers: Dict[EventKind, List[Handler]] = {}

    def subscribe(self, kind: EventKind, handler: Handler) -> Callable[[], None]:
        self._handlers.setdefault(EventKind(kind), []).append(handler)

        def _unsubscribe() -> None:
            self.unsubscribe(kind, handler)

        return _unsubscribe

    def unsubscribe(self, kind: EventKind, handler: Handler) -> None:
        handlers = self._handlers.get(EventKind(kind))
        if not handlers:
            return
        try:
            handlers.remove(handler)
        except ValueError:
            return
        if not handlers:
            del self._handlers[EventKind(kind)]

    def publish(self, event: Event) -> None:
        # copy: handlers may unsubscribe while we iterate
        for handler in list(self._handlers.get(event.kind, ())):
            try:
                handler(event)
            except Exception:
                log.exception("Event handler failed for %s", event.kind.value)

    def handler_count(self, kind: EventKind) -> int:
        return len(self._handlers.get(EventKind(kind), ()))

    def clear(self, kind: Optional[EventKind] = None) -> None:
        if kind is None:
            self._handlers.clear()
        else:
            self._handlers.pop(EventKind(kind), None)
