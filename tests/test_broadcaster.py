import asyncio
import base64
import random

import httpx
import pytest

from conftest import ScriptedRandom, write_test_wav
from shippingforecast.audio import wav_format
from shippingforecast.broadcast import BroadcastGenerator
from shippingforecast.broadcaster import Broadcaster
from shippingforecast.buffer import ReportBuffer
from shippingforecast.events import EventKind, WarningReady
from shippingforecast.focus import FocusMonitor
from shippingforecast.generator import ReportGenerator
from shippingforecast.injector import WarningInjector
from shippingforecast.sinks import NullSink
from shippingforecast.ssml import SSMLBuilder
from shippingforecast.tts import ProxyTTS, TTSError

WARNING_PROSODY = 'pitch="-10%"'


class FakeRenderer:
    def __init__(self, fail_when=None, error=None, on_render=None):
        self.calls = []
        self.fail_when = fail_when
        self.error = error or TTSError("synth failed", status=503)
        self.on_render = on_render

    async def render(self, ssml, out_wav):
        self.calls.append(ssml)
        if self.on_render is not None:
            self.on_render()
        if self.fail_when is not None and self.fail_when(ssml):
            raise self.error
        write_test_wav(out_wav)


class RecordingSink:
    name = "recording"

    def __init__(self):
        self.played = []

    async def play(self, wav_path, duration_seconds):
        self.played.append((wav_path.name, duration_seconds, wav_format(wav_path)))

    async def ping(self):
        return True

    def required_binaries(self):
        return []


def make_broadcaster(bus, tmp_path, renderer=None, sink=None, with_preamble=False, **kw):
    rng = random.Random(3)
    gen = ReportGenerator(rng=rng)
    return Broadcaster(
        bus,
        gen,
        ReportBuffer(3, 5),
        SSMLBuilder(rng=rng),
        renderer or FakeRenderer(),
        sink or NullSink(speed=1000),
        tmp_path,
        broadcasts=BroadcastGenerator(gen) if with_preamble else None,
        error_backoff_seconds=0,
        **kw,
    )


def kinds_played(sink):
    return [p.name.split("-")[0] for p in sink.played]


class TestPlaybackOrder:
    def test_reports_play_in_order_with_events(self, bus, recorder, tmp_path):
        sink = NullSink(speed=1000)
        b = make_broadcaster(bus, tmp_path, sink=sink)
        asyncio.run(b.run(max_items=3))

        assert kinds_played(sink) == ["report"] * 3
        assert recorder.kinds() == [
            EventKind.PLAYBACK_STARTED,
            EventKind.REPORT_PLAYING,
            EventKind.REPORT_COMPLETE,
            EventKind.REPORT_PLAYING,
            EventKind.REPORT_COMPLETE,
            EventKind.REPORT_PLAYING,
            EventKind.REPORT_COMPLETE,
            EventKind.PLAYBACK_STOPPED,
        ]
        playing = [e.report for e in recorder.of(EventKind.REPORT_PLAYING)]
        complete = [e.report for e in recorder.of(EventKind.REPORT_COMPLETE)]
        assert playing == complete
        assert b.reports_played == 3
        assert not b.is_playing
        assert list(tmp_path.iterdir()) == []

    def test_preamble_at_start_and_every_n_reports(self, bus, tmp_path):
        sink = NullSink(speed=1000)
        b = make_broadcaster(bus, tmp_path, sink=sink, with_preamble=True, preamble_every=2)
        asyncio.run(b.run(max_items=6))
        assert kinds_played(sink) == ["preamble", "report", "report", "preamble", "report", "report"]

    def test_preamble_only_at_start_when_zero(self, bus, tmp_path):
        sink = NullSink(speed=1000)
        b = make_broadcaster(bus, tmp_path, sink=sink, with_preamble=True, preamble_every=0)
        asyncio.run(b.run(max_items=5))
        assert kinds_played(sink) == ["preamble"] + ["report"] * 4

    def test_fill_buffer_tops_up_to_max(self, bus, tmp_path):
        b = make_broadcaster(bus, tmp_path)
        assert b.fill_buffer() == 5
        assert b.fill_buffer() == 0
        b.buffer.dequeue()
        b.buffer.dequeue()
        assert b.fill_buffer() == 2

    def test_is_playing_during_run(self, bus, tmp_path):
        seen = []
        b = make_broadcaster(bus, tmp_path)
        bus.subscribe(EventKind.REPORT_PLAYING, lambda e: seen.append(b.is_playing))
        asyncio.run(b.run(max_items=2))
        assert seen == [True, True]
        assert b.is_playing is False


class TestWarnings:
    def test_pending_warning_plays_at_next_boundary(self, bus, recorder, tmp_path):
        sink = NullSink(speed=1000)
        b = make_broadcaster(bus, tmp_path, sink=sink)
        b.start()
        bus.publish(WarningReady(message_id=4, message_text="The walls are listening.", warning_count=1, timestamp_ms=0.0))
        assert b.pending_warnings == 1

        asyncio.run(b.run(max_items=2))

        assert kinds_played(sink) == ["warning", "report"]
        assert b.warnings_played == 1
        done = recorder.of(EventKind.WARNING_COMPLETE)
        assert len(done) == 1 and done[0].ok and done[0].message_id == 4
        # a warning is not a report boundary
        assert len(recorder.of(EventKind.REPORT_COMPLETE)) == 1

    def test_failed_warning_is_reported_and_playback_continues(self, bus, recorder, tmp_path):
        renderer = FakeRenderer(fail_when=lambda ssml: WARNING_PROSODY in ssml)
        sink = NullSink(speed=1000)
        b = make_broadcaster(bus, tmp_path, renderer=renderer, sink=sink)
        b.start()
        bus.publish(WarningReady(message_id=2, message_text="Stay near the beacon.", warning_count=1, timestamp_ms=0.0))

        asyncio.run(b.run(max_items=2))

        done = recorder.of(EventKind.WARNING_COMPLETE)
        assert [e.ok for e in done] == [False]
        assert kinds_played(sink) == ["report"]
        assert b.warnings_played == 0

    def test_failed_report_is_not_a_boundary(self, bus, recorder, tmp_path):
        renderer = FakeRenderer(fail_when=lambda ssml: True)
        b = make_broadcaster(bus, tmp_path, renderer=renderer)
        asyncio.run(b.run(max_items=2))
        assert len(recorder.of(EventKind.REPORT_PLAYING)) == 2
        assert recorder.of(EventKind.REPORT_COMPLETE) == []
        assert b.reports_played == 0
        assert list(tmp_path.iterdir()) == []


class GarbageRenderer:
    async def render(self, ssml, out_wav):
        out_wav.write_bytes(b"RIFFgarbage")


class SnapshotSink:
    """Sees which clips are still on disk each time it is handed one."""

    name = "snapshot"

    def __init__(self):
        self.seen = []

    async def play(self, wav_path, duration_seconds):
        self.seen.append(sorted(p.name for p in wav_path.parent.iterdir()))

    async def ping(self):
        return True

    def required_binaries(self):
        return []


class TestBadAudio:
    def test_unreadable_clip_is_skipped(self, bus, recorder, tmp_path):
        sink = NullSink(speed=1000)
        b = make_broadcaster(bus, tmp_path, renderer=GarbageRenderer(), sink=sink)
        asyncio.run(b.run(max_items=2))
        assert sink.played == []
        assert recorder.of(EventKind.REPORT_COMPLETE) == []
        assert EventKind.PLAYBACK_STOPPED in recorder.kinds()
        assert list(tmp_path.iterdir()) == []

    def test_unreadable_clip_with_gap_is_skipped(self, bus, tmp_path):
        b = make_broadcaster(bus, tmp_path, renderer=GarbageRenderer(), gap_seconds=0.5)
        asyncio.run(b.run(max_items=1))
        assert b.reports_played == 0
        assert list(tmp_path.iterdir()) == []

    @pytest.mark.parametrize("audio_content", ["abc", base64.b64encode(b"RIFFgarbage").decode("ascii")])
    def test_malformed_proxy_audio_does_not_stop_the_station(self, bus, recorder, tmp_path, audio_content):
        async def scenario():
            renderer = ProxyTTS(
                "http://proxy.test/synthesize",
                retry_attempts=1,
                retry_delay=0,
                transport=httpx.MockTransport(lambda r: httpx.Response(200, json={"audioContent": audio_content})),
            )
            try:
                b = make_broadcaster(bus, tmp_path, renderer=renderer)
                await b.run(max_items=2)
                return b
            finally:
                await renderer.aclose()

        b = asyncio.run(scenario())
        assert b.reports_played == 0
        assert len(recorder.of(EventKind.REPORT_PLAYING)) == 2
        assert recorder.kinds()[-1] == EventKind.PLAYBACK_STOPPED


class TestClipLifetime:
    def test_played_clip_is_kept_until_the_next_one_is_handed_over(self, bus, tmp_path):
        sink = SnapshotSink()
        b = make_broadcaster(bus, tmp_path, sink=sink)
        asyncio.run(b.run(max_items=3))
        assert sink.seen == [
            ["report-000001.wav"],
            ["report-000001.wav", "report-000002.wav"],
            ["report-000002.wav", "report-000003.wav"],
        ]
        assert list(tmp_path.iterdir()) == []

    def test_failed_item_does_not_release_the_held_clip(self, bus, tmp_path):
        renderer = FakeRenderer(fail_when=lambda ssml: len(renderer.calls) == 2)
        sink = SnapshotSink()
        b = make_broadcaster(bus, tmp_path, renderer=renderer, sink=sink)
        asyncio.run(b.run(max_items=3))
        assert sink.seen == [
            ["report-000001.wav"],
            ["report-000001.wav", "report-000003.wav"],
        ]
        assert list(tmp_path.iterdir()) == []


class TestGap:
    def test_gap_is_appended_in_matching_format(self, bus, tmp_path):
        sink = RecordingSink()
        b = make_broadcaster(bus, tmp_path, sink=sink, gap_seconds=0.5)
        asyncio.run(b.run(max_items=1))
        (name, duration, fmt), = sink.played
        assert name == "report-000001.wav"
        assert duration == pytest.approx(0.51, abs=1e-3)
        assert (fmt.channels, fmt.sample_rate) == (1, 8000)


class TestInactivityLoop:
    def test_warnings_spliced_while_listener_is_away(self, bus, recorder, source, timers, tmp_path):
        """Every render takes 61 s of station time, so each report boundary is past the threshold"""
        renderer = FakeRenderer(on_render=lambda: timers.advance(61_000))
        sink = NullSink(speed=1000)
        b = make_broadcaster(bus, tmp_path, renderer=renderer, sink=sink)

        focus = FocusMonitor(bus, source, timers, clock=timers.now)
        focus.start()
        injector = WarningInjector(
            focus, bus, is_playing=lambda: b.is_playing, clock=timers.now, rng=ScriptedRandom([0.0, 0.5])
        )
        injector.start()
        source.set(True)

        asyncio.run(b.run(max_items=5))

        assert kinds_played(sink) == ["report", "warning", "report", "warning", "report"]
        ready = recorder.of(EventKind.WARNING_READY)
        assert [e.warning_count for e in ready][:2] == [1, 2]
        assert [e.message_id for e in ready][:2] == [0, 5]
        assert focus.state().warning_count == len(ready)

    def test_no_warnings_while_listener_is_present(self, bus, recorder, source, timers, tmp_path):
        renderer = FakeRenderer(on_render=lambda: timers.advance(61_000))
        b = make_broadcaster(bus, tmp_path, renderer=renderer)
        focus = FocusMonitor(bus, source, timers, clock=timers.now)
        focus.start()
        WarningInjector(focus, bus, is_playing=lambda: b.is_playing, clock=timers.now).start()

        asyncio.run(b.run(max_items=4))

        assert recorder.of(EventKind.WARNING_READY) == []
