from __future__ import annotations

import asyncio
import collections
import itertools
import logging
import wave
from pathlib import Path
from typing import Callable, Deque, List, Optional, Protocol

from .audio import concat_wavs, wav_duration_seconds, write_silence_like
from .broadcast import BroadcastGenerator
from .buffer import ReportBuffer
from .events import (
    EventBus,
    EventKind,
    PlaybackStarted,
    PlaybackStopped,
    ReportComplete,
    ReportPlaying,
    WarningComplete,
    WarningPlaying,
    WarningReady,
)
from .generator import ReportGenerator
from .report import WeatherReport
from .sinks import Sink
from .ssml import SSMLBuilder
from .tts import TTSError

log = logging.getLogger("shippingforecast.broadcaster")


class Renderer(Protocol):
    async def render(self, ssml: str, out_wav: Path) -> None: ...


class Broadcaster:
    """
    The playback side of the station. Plays one item at a time, in this
    order of preference at each boundary: pending warnings, a due preamble,
    the next buffered report. Nothing is ever cut off mid-item.
    """

    def __init__(
        self,
        bus: EventBus,
        generator: ReportGenerator,
        buffer: ReportBuffer,
        ssml: SSMLBuilder,
        renderer: Renderer,
        sink: Sink,
        work_dir: Path,
        broadcasts: Optional[BroadcastGenerator] = None,
        preamble_every: int = 31,
        gap_seconds: float = 0.0,
        error_backoff_seconds: float = 2.0,
    ) -> None:
        self.bus = bus
        self.generator = generator
        self.buffer = buffer
        self.ssml = ssml
        self.renderer = renderer
        self.sink = sink
        self.work_dir = Path(work_dir)
        self.broadcasts = broadcasts
        self.preamble_every = max(0, int(preamble_every))
        self.gap_seconds = max(0.0, float(gap_seconds))
        self.error_backoff_seconds = max(0.0, float(error_backoff_seconds))

        self._pending_warnings: Deque[WarningReady] = collections.deque()
        self._playing = False
        self._stop = asyncio.Event()
        self._seq = itertools.count(1)
        self._reports_since_preamble: Optional[int] = None  # None: nothing spoken yet
        self._unsubscribers: List[Callable[[], None]] = []
        self._last_played: Optional[Path] = None

        self.reports_played = 0
        self.warnings_played = 0

    @property
    def is_playing(self) -> bool:
        return self._playing

    @property
    def pending_warnings(self) -> int:
        return len(self._pending_warnings)

    def start(self) -> None:
        if not self._unsubscribers:
            self._unsubscribers.append(self.bus.subscribe(EventKind.WARNING_READY, self._on_warning_ready))

    def stop(self) -> None:
        self._stop.set()
        for unsub in self._unsubscribers:
            unsub()
        self._unsubscribers = []

    def _on_warning_ready(self, event: WarningReady) -> None:
        self._pending_warnings.append(event)

    def fill_buffer(self) -> int:
        if not self.buffer.needs_refill():
            return 0
        added = 0
        while not self.buffer.is_full():
            self.buffer.enqueue(self.generator.generate())
            added += 1
        log.debug("Buffer refilled (+%d, size=%d)", added, self.buffer.size())
        return added

    def _preamble_due(self) -> bool:
        if self.broadcasts is None:
            return False
        if self._reports_since_preamble is None:
            return True
        return self.preamble_every > 0 and self._reports_since_preamble >= self.preamble_every

    async def run(self, max_items: Optional[int] = None) -> None:
        self.start()
        self._stop.clear()
        self._playing = True
        self.bus.publish(PlaybackStarted())
        log.info("Playback started (sink=%s)", getattr(self.sink, "name", type(self.sink).__name__))

        played = 0
        try:
            while not self._stop.is_set():
                if max_items is not None and played >= max_items:
                    break
                await self.play_next()
                played += 1
        finally:
            self._playing = False
            self._release_played()
            self.bus.publish(PlaybackStopped())
            log.info("Playback stopped (reports=%d warnings=%d)", self.reports_played, self.warnings_played)

    async def play_next(self) -> None:
        if self._pending_warnings:
            await self.play_warning(self._pending_warnings.popleft())
            return

        if self._preamble_due():
            await self.play_preamble()
            return

        self.fill_buffer()
        report = self.buffer.dequeue()
        if report is None:
            # only reachable with a zero-capacity buffer
            report = self.generator.generate()
        await self.play_report(report)

    async def play_report(self, report: WeatherReport) -> bool:
        template = self.ssml.build(report)
        self.bus.publish(ReportPlaying(report=report))
        try:
            await self._speak(template.ssml, "report")
        except (TTSError, OSError, RuntimeError) as e:
            log.error("Report %s (%s) could not be played: %s", template.report_id, report.area.name, e)
            await self._backoff(e)
            return False

        self.reports_played += 1
        if self._reports_since_preamble is not None:
            self._reports_since_preamble += 1
        self.bus.publish(ReportComplete(report=report))
        return True

    async def play_preamble(self) -> bool:
        assert self.broadcasts is not None
        self._reports_since_preamble = 0
        text = self.broadcasts.preamble()
        log.info("Preamble: %s", text)
        try:
            await self._speak(self.ssml.build_segment(text), "preamble")
        except (TTSError, OSError, RuntimeError) as e:
            log.error("Preamble could not be played: %s", e)
            await self._backoff(e)
            return False
        return True

    async def play_warning(self, warning: WarningReady) -> bool:
        self.bus.publish(WarningPlaying(message_id=warning.message_id, warning_count=warning.warning_count))
        ok = False
        try:
            await self._speak(self.ssml.build_warning(warning.message_text), "warning")
            ok = True
            self.warnings_played += 1
        except Exception:
            # fail-open: the injector has already counted this warning as sent
            log.exception("Warning %d playback failed", warning.warning_count)
        self.bus.publish(
            WarningComplete(message_id=warning.message_id, warning_count=warning.warning_count, ok=ok)
        )
        return ok

    async def _speak(self, ssml: str, kind: str) -> None:
        seq = next(self._seq)
        speech = self.work_dir / f"{kind}-{seq:06d}.speech.wav"
        out = self.work_dir / f"{kind}-{seq:06d}.wav"
        gap = self.work_dir / f"{kind}-{seq:06d}.gap.wav"

        handed_over = False
        try:
            await self.renderer.render(ssml, speech)
            try:
                if self.gap_seconds > 0:
                    write_silence_like(gap, self.gap_seconds, speech)
                    concat_wavs(out, [speech, gap])
                else:
                    speech.replace(out)
                duration = wav_duration_seconds(out)
            except (wave.Error, EOFError, ValueError) as e:
                raise TTSError(f"{kind} audio is unreadable: {e}") from e

            await self.sink.play(out, duration)
            handed_over = True
        finally:
            speech.unlink(missing_ok=True)
            gap.unlink(missing_ok=True)
            if handed_over:
                # a queueing sink may still be reading the clip; drop it one item later
                self._release_played()
                self._last_played = out
            else:
                out.unlink(missing_ok=True)

    def _release_played(self) -> None:
        if self._last_played is not None:
            self._last_played.unlink(missing_ok=True)
            self._last_played = None

    async def _backoff(self, err: Exception) -> None:
        delay = self.error_backoff_seconds
        retry_after = getattr(err, "retry_after", None)
        if retry_after:
            delay = max(delay, float(retry_after))
        if delay > 0:
            try:
                await asyncio.wait_for(self._stop.wait(), delay)
            except asyncio.TimeoutError:
                pass
