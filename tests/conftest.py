import heapq
import itertools
import random
import wave
from pathlib import Path

import pytest

from shippingforecast.areas import AreaKind, create_sea_area
from shippingforecast.events import EventBus, EventKind
from shippingforecast.report import Precipitation, WeatherReport, WindCondition


class _Handle:
    def __init__(self):
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class ManualTimers:
    """Clock (epoch ms) and TimerFactory in one; time only moves on advance()."""

    def __init__(self, start_ms=1_700_000_000_000.0):
        self.now_ms = float(start_ms)
        self._queue = []
        self._seq = itertools.count()

    def now(self):
        return self.now_ms

    def call_later(self, delay_seconds, callback):
        handle = _Handle()
        due = self.now_ms + delay_seconds * 1000.0
        heapq.heappush(self._queue, (due, next(self._seq), handle, callback))
        return handle

    def pending(self):
        return sum(1 for _, _, h, _ in self._queue if not h.cancelled)

    def advance(self, ms):
        target = self.now_ms + ms
        while self._queue and self._queue[0][0] <= target:
            due, _, handle, callback = heapq.heappop(self._queue)
            if handle.cancelled:
                continue
            self.now_ms = due
            callback()
        self.now_ms = target


class ScriptedRandom(random.Random):
    """random() returns the scripted values first, then the seeded stream."""

    def __init__(self, values=(), seed=0):
        super().__init__(seed)
        self.values = list(values)

    def random(self):
        if self.values:
            return self.values.pop(0)
        return super().random()

    def getrandbits(self, k):
        return super().getrandbits(k)


class FakeVisibilitySource:
    def __init__(self, hidden=False):
        self.hidden = hidden
        self.listeners = []

    def is_hidden(self):
        return self.hidden

    def add_listener(self, listener):
        self.listeners.append(listener)

    def remove_listener(self, listener):
        self.listeners.remove(listener)

    def set(self, hidden):
        self.hidden = hidden
        for fn in list(self.listeners):
            fn(hidden)


class EventRecorder:
    def __init__(self, bus):
        self.events = []
        for kind in EventKind:
            bus.subscribe(kind, self.events.append)

    def of(self, kind):
        return [e for e in self.events if e.kind is kind]

    def kinds(self):
        return [e.kind for e in self.events]


def make_report(name="Dogger", force=5, kind=AreaKind.STANDARD, **wind_extra):
    connector = wind_extra.pop("connector", "to" if isinstance(force, tuple) else None)
    return WeatherReport(
        area=create_sea_area(name, kind),
        wind=WindCondition(direction="Westerly", force=force, connector=connector, **wind_extra),
        precipitation=Precipitation("Heavy", "rain"),
        visibility="Good",
    )


def write_test_wav(path: Path, seconds=0.01, rate=8000, channels=1):
    path.parent.mkdir(parents=True, exist_ok=True)
    with wave.open(str(path), "wb") as wf:
        wf.setnchannels(channels)
        wf.setsampwidth(2)
        wf.setframerate(rate)
        wf.writeframes(b"\x00\x00" * channels * int(seconds * rate))


@pytest.fixture
def timers():
    return ManualTimers()


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def recorder(bus):
    return EventRecorder(bus)


@pytest.fixture
def source():
    return FakeVisibilitySource()
