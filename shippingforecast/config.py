from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional
import os

import yaml


@dataclass(frozen=True)
class StationConfig:
    name: str
    seed: Optional[int]


@dataclass(frozen=True)
class GenerationConfig:
    phantom_probability: float
    preamble_every: int


@dataclass(frozen=True)
class BufferConfig:
    min_size: int
    max_size: int


@dataclass(frozen=True)
class FocusConfig:
    enabled: bool
    debounce_seconds: float
    tick_seconds: float
    warning_threshold_seconds: float


@dataclass(frozen=True)
class TTSConfig:
    backend: str  # espeak-ng | piper | festival | proxy
    voice: str
    rate_wpm: int
    volume: float
    proxy_url: str
    proxy_origin: str
    language_code: str
    voice_name: str
    timeout_seconds: float
    retry_attempts: int


@dataclass(frozen=True)
class AudioConfig:
    sample_rate: int
    gap_seconds: float
    radio_filter: bool
    noise_gain: float


@dataclass(frozen=True)
class SinkConfig:
    kind: str  # liquidsoap | command | null
    host: str
    port: int
    queue: str
    command: str
    speed: float


@dataclass(frozen=True)
class PathsConfig:
    work_dir: str


@dataclass(frozen=True)
class AppConfig:
    station: StationConfig
    generation: GenerationConfig
    buffer: BufferConfig
    focus: FocusConfig
    tts: TTSConfig
    audio: AudioConfig
    sink: SinkConfig
    paths: PathsConfig


def _env(key: str, default: str | None = None) -> str | None:
    v = os.environ.get(key)
    return v if v not in (None, "") else default


def _env_int(key: str, default: int) -> int:
    v = _env(key)
    if v is None:
        return default
    try:
        return int(v)
    except ValueError:
        return default


def _env_float(key: str, default: float) -> float:
    v = _env(key)
    if v is None:
        return default
    try:
        return float(v)
    except ValueError:
        return default


def _env_bool(key: str, default: bool) -> bool:
    v = _env(key)
    if v is None:
        return default
    return v.strip().lower() in {"1", "true", "yes", "y", "on"}


def _section(raw: Dict[str, Any], name: str) -> Dict[str, Any]:
    sec = raw.get(name) or {}
    if not isinstance(sec, dict):
        raise ValueError(f"config section '{name}' must be a mapping")
    return sec


def config_from_dict(raw: Dict[str, Any]) -> AppConfig:
    """Every key is optional; missing ones take the station defaults, then env wins."""
    st = _section(raw, "station")
    gen = _section(raw, "generation")
    buf = _section(raw, "buffer")
    foc = _section(raw, "focus")
    tts = _section(raw, "tts")
    aud = _section(raw, "audio")
    snk = _section(raw, "sink")
    pth = _section(raw, "paths")

    seed_raw = _env("SHIPPING_SEED", None if st.get("seed") is None else str(st["seed"]))
    station = StationConfig(
        name=str(st.get("name", "The Infinite Shipping Forecast")),
        seed=int(seed_raw) if seed_raw is not None else None,
    )

    generation = GenerationConfig(
        phantom_probability=_env_float(
            "SHIPPING_PHANTOM_PROBABILITY", float(gen.get("phantom_probability", 0.02))
        ),
        preamble_every=_env_int("SHIPPING_PREAMBLE_EVERY", int(gen.get("preamble_every", 31))),
    )

    buffer = BufferConfig(
        min_size=int(buf.get("min_size", 3)),
        max_size=int(buf.get("max_size", 5)),
    )

    focus = FocusConfig(
        enabled=_env_bool("SHIPPING_FOCUS_ENABLED", bool(foc.get("enabled", True))),
        debounce_seconds=float(foc.get("debounce_seconds", 1.0)),
        tick_seconds=float(foc.get("tick_seconds", 1.0)),
        warning_threshold_seconds=_env_float(
            "SHIPPING_WARNING_THRESHOLD_SECONDS", float(foc.get("warning_threshold_seconds", 60.0))
        ),
    )

    tts_cfg = TTSConfig(
        backend=str(_env("SHIPPING_TTS_BACKEND", tts.get("backend", "espeak-ng"))),
        voice=str(_env("SHIPPING_TTS_VOICE", tts.get("voice", "en-gb"))),
        rate_wpm=_env_int("SHIPPING_TTS_RATE_WPM", int(tts.get("rate_wpm", 150))),
        volume=float(tts.get("volume", 1.0)),
        proxy_url=str(_env("SHIPPING_PROXY_URL", tts.get("proxy_url", "http://127.0.0.1:8787/synthesize"))),
        proxy_origin=str(_env("SHIPPING_PROXY_ORIGIN", tts.get("proxy_origin", "")) or ""),
        language_code=str(tts.get("language_code", "en-GB")),
        voice_name=str(tts.get("voice_name", "en-GB-Neural2-B")),
        timeout_seconds=float(tts.get("timeout_seconds", 5.0)),
        retry_attempts=int(tts.get("retry_attempts", 3)),
    )

    audio = AudioConfig(
        sample_rate=int(aud.get("sample_rate", 24000)),
        gap_seconds=float(aud.get("gap_seconds", 0.0)),
        radio_filter=_env_bool("SHIPPING_RADIO_FILTER", bool(aud.get("radio_filter", True))),
        noise_gain=float(aud.get("noise_gain", 0.02)),
    )

    sink = SinkConfig(
        kind=str(_env("SHIPPING_SINK", snk.get("kind") or "null")),
        host=str(_env("LIQUIDSOAP_TELNET_HOST", snk.get("host", "127.0.0.1"))),
        port=_env_int("LIQUIDSOAP_TELNET_PORT", int(snk.get("port", 1234))),
        queue=str(snk.get("queue", "forecast")),
        command=str(_env("SHIPPING_SINK_COMMAND", snk.get("command", "")) or ""),
        speed=float(snk.get("speed", 1.0)),
    )

    paths = PathsConfig(work_dir=str(_env("SHIPPING_WORK_DIR", pth.get("work_dir", "/tmp/shippingforecast"))))

    cfg = AppConfig(
        station=station,
        generation=generation,
        buffer=buffer,
        focus=focus,
        tts=tts_cfg,
        audio=audio,
        sink=sink,
        paths=paths,
    )
    validate_config(cfg)
    return cfg


def validate_config(cfg: AppConfig) -> None:
    if not 0.0 <= cfg.generation.phantom_probability <= 1.0:
        raise ValueError("generation.phantom_probability must be within [0, 1]")
    if not 0 <= cfg.buffer.min_size < cfg.buffer.max_size:
        raise ValueError("buffer.min_size must be >= 0 and below buffer.max_size")
    if cfg.focus.warning_threshold_seconds <= 0:
        raise ValueError("focus.warning_threshold_seconds must be positive")
    if cfg.tts.backend == "proxy" and not cfg.tts.proxy_url:
        raise ValueError("tts.backend 'proxy' needs tts.proxy_url")
    if not 0.0 <= cfg.audio.noise_gain <= 0.1:
        raise ValueError("audio.noise_gain must be within [0, 0.1]")


def load_config(path: str | None) -> AppConfig:
    if not path:
        return config_from_dict({})
    raw = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
    if not isinstance(raw, dict):
        raise ValueError(f"{path}: top level must be a mapping")
    return config_from_dict(raw)
