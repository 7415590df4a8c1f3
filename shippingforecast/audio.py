from __future__ import annotations

import io
import wave
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Union

WavSource = Union[Path, str, bytes]


@dataclass(frozen=True)
class WavFormat:
    channels: int
    sample_width: int
    sample_rate: int


def _open(src: WavSource):
    if isinstance(src, (bytes, bytearray)):
        return wave.open(io.BytesIO(bytes(src)), "rb")
    return wave.open(str(src), "rb")


def wav_format(src: WavSource) -> WavFormat:
    with _open(src) as r:
        return WavFormat(r.getnchannels(), r.getsampwidth(), r.getframerate())


def write_silence_wav(
    path: Path,
    seconds: float,
    sample_rate: int,
    channels: int = 2,
    sample_width: int = 2,
) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    n_frames = max(0, int(seconds * sample_rate))
    with wave.open(str(path), "wb") as wf:
        wf.setnchannels(channels)
        wf.setsampwidth(sample_width)
        wf.setframerate(sample_rate)
        wf.writeframes(b"\x00" * sample_width * channels * n_frames)


def write_silence_like(path: Path, seconds: float, reference: WavSource) -> None:
    """Silence in the same channel/width/rate layout as ``reference`` so the two concatenate."""
    fmt = wav_format(reference)
    write_silence_wav(path, seconds, fmt.sample_rate, channels=fmt.channels, sample_width=fmt.sample_width)


def wav_duration_seconds(src: WavSource) -> float:
    """
    Fast duration probe (no ffmpeg). Assumes a valid WAV file or WAV bytes.
    """
    with _open(src) as wf:
        frames = wf.getnframes()
        rate = wf.getframerate()
        if rate <= 0:
            return 0.0
        return float(frames) / float(rate)


def concat_wavs(out_path: Path, parts: Iterable[Path]) -> None:
    parts = [Path(p) for p in parts]
    if not parts:
        raise ValueError("concat_wavs: no parts")
    out_path.parent.mkdir(parents=True, exist_ok=True)

    first = wav_format(parts[0])

    with wave.open(str(out_path), "wb") as w:
        w.setnchannels(first.channels)
        w.setsampwidth(first.sample_width)
        w.setframerate(first.sample_rate)
        for p in parts:
            with wave.open(str(p), "rb") as r:
                if (r.getnchannels(), r.getsampwidth(), r.getframerate()) != (
                    first.channels,
                    first.sample_width,
                    first.sample_rate,
                ):
                    raise ValueError(f"WAV format mismatch: {p}")
                while True:
                    frames = r.readframes(8192)
                    if not frames:
                        break
                    w.writeframes(frames)
