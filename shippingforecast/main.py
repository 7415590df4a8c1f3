from __future__ import annotations

import argparse
import asyncio
import logging
import random
import shutil
import signal
import sys
from pathlib import Path
from typing import List, Optional, Union

from .areas import AreaCycler
from .broadcast import BroadcastGenerator
from .broadcaster import Broadcaster
from .buffer import ReportBuffer
from .config import AppConfig, load_config
from .events import EventBus
from .focus import FocusMonitor, SignalVisibilitySource, VisibilitySource
from .generator import ReportGenerator
from .injector import WarningInjector
from .sinks import LiquidsoapSink, Sink, make_sink
from .ssml import SSMLBuilder
from .timing import Clock, LoopTimers, TimerFactory, wall_clock_ms
from .tts import TTS, ProxyTTS, RadioFilter

log = logging.getLogger("shippingforecast")


class CapabilityError(RuntimeError):
    pass


def _setup_logging() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stdout,
    )


def build_renderer(cfg: AppConfig) -> Union[TTS, ProxyTTS]:
    t = cfg.tts
    radio = RadioFilter(noise_gain=cfg.audio.noise_gain) if cfg.audio.radio_filter else None
    if t.backend == "proxy":
        return ProxyTTS(
            t.proxy_url,
            language_code=t.language_code,
            voice_name=t.voice_name,
            sample_rate=cfg.audio.sample_rate,
            timeout=t.timeout_seconds,
            retry_attempts=t.retry_attempts,
            origin=t.proxy_origin or None,
            radio=radio,
        )
    return TTS(
        backend=t.backend,
        voice=t.voice,
        rate_wpm=t.rate_wpm,
        volume=t.volume,
        sample_rate=cfg.audio.sample_rate,
        radio=radio,
    )


class Station:
    """
    Builds every component once and wires them together explicitly; nothing
    lives at module level.
    """

    def __init__(
        self,
        cfg: AppConfig,
        *,
        rng: Optional[random.Random] = None,
        clock: Clock = wall_clock_ms,
        renderer: Optional[Union[TTS, ProxyTTS]] = None,
        sink: Optional[Sink] = None,
    ) -> None:
        self.cfg = cfg
        self.rng = rng or random.Random(cfg.station.seed)
        self.clock = clock

        self.bus = EventBus()
        self.cycler = AreaCycler(rng=self.rng, phantom_probability=cfg.generation.phantom_probability)
        self.generator = ReportGenerator(cycler=self.cycler, rng=self.rng)
        self.broadcasts = BroadcastGenerator(self.generator, rng=self.rng)
        self.buffer = ReportBuffer(cfg.buffer.min_size, cfg.buffer.max_size)
        self.ssml = SSMLBuilder(rng=self.rng)

        self.renderer = renderer or build_renderer(cfg)
        self.sink = sink or make_sink(
            cfg.sink.kind,
            host=cfg.sink.host,
            port=cfg.sink.port,
            queue=cfg.sink.queue,
            command=cfg.sink.command or None,
            speed=cfg.sink.speed,
        )

        self.broadcaster = Broadcaster(
            self.bus,
            self.generator,
            self.buffer,
            self.ssml,
            self.renderer,
            self.sink,
            Path(cfg.paths.work_dir),
            broadcasts=self.broadcasts,
            preamble_every=cfg.generation.preamble_every,
            gap_seconds=cfg.audio.gap_seconds,
        )

        self.focus: Optional[FocusMonitor] = None
        self.injector: Optional[WarningInjector] = None
        self._visibility: Optional[SignalVisibilitySource] = None

    def missing_binaries(self) -> List[str]:
        needed: List[str] = []
        if isinstance(self.renderer, (TTS, ProxyTTS)):
            needed += self.renderer.required_binaries()
        needed += self.sink.required_binaries()
        return [b for b in dict.fromkeys(needed) if not shutil.which(b)]

    def check_capabilities(self) -> None:
        missing = self.missing_binaries()
        if missing:
            raise CapabilityError(
                "This station cannot broadcast here; missing required programs: " + ", ".join(missing)
            )

    def start_focus(self, source: Optional[VisibilitySource], timers: TimerFactory) -> bool:
        f = self.cfg.focus
        self.focus = FocusMonitor(
            self.bus,
            source,
            timers,
            clock=self.clock,
            debounce_seconds=f.debounce_seconds,
            tick_seconds=f.tick_seconds,
        )
        if not self.focus.start():
            return False

        self.injector = WarningInjector(
            self.focus,
            self.bus,
            is_playing=lambda: self.broadcaster.is_playing,
            clock=self.clock,
            rng=self.rng,
            threshold_ms=f.warning_threshold_seconds * 1000.0,
        )
        self.injector.start()
        return True

    async def _wait_for_sink(self) -> None:
        if not isinstance(self.sink, LiquidsoapSink):
            return
        for _ in range(60):
            if await self.sink.ping():
                log.info("Liquidsoap telnet is reachable")
                return
            await asyncio.sleep(1)
        raise RuntimeError("Liquidsoap telnet did not become reachable (is liquidsoap running?)")

    def stop(self) -> None:
        log.info("Stopping")
        self.broadcaster.stop()

    async def run(self) -> None:
        Path(self.cfg.paths.work_dir).mkdir(parents=True, exist_ok=True)
        loop = asyncio.get_running_loop()

        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.stop)
            except (NotImplementedError, RuntimeError):
                log.debug("No handler for %s on this platform", sig)

        await self._wait_for_sink()

        if self.cfg.focus.enabled:
            self._visibility = SignalVisibilitySource.install(loop)
            if self.start_focus(self._visibility, LoopTimers(loop)):
                log.info("Inactivity warnings armed (kill -USR1 = listener away, -USR2 = back)")
        else:
            log.info("Inactivity warnings disabled by config")

        try:
            await self.broadcaster.run()
        finally:
            if self.injector is not None:
                self.injector.stop()
            if self.focus is not None:
                self.focus.stop()
            if self._visibility is not None:
                self._visibility.uninstall()
            if isinstance(self.renderer, ProxyTTS):
                await self.renderer.aclose()


def main(argv: list[str] | None = None) -> int:
    _setup_logging()
    ap = argparse.ArgumentParser(description="Endless procedurally generated shipping forecast")
    ap.add_argument("--config", default=None, help="YAML config (defaults apply when omitted)")
    ap.add_argument("--seed", type=int, default=None, help="override station.seed")
    ap.add_argument("--debug", action="store_true")
    args = ap.parse_args(argv)

    if args.debug:
        logging.getLogger().setLevel(logging.DEBUG)

    cfg = load_config(args.config)
    station = Station(cfg, rng=random.Random(args.seed) if args.seed is not None else None)

    try:
        station.check_capabilities()
    except CapabilityError as e:
        log.error("%s", e)
        return 2

    log.info("%s on air", cfg.station.name)
    asyncio.run(station.run())
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
