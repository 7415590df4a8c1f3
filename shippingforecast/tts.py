from __future__ import annotations

import asyncio
import base64
import binascii
import logging
import re
import shutil
import subprocess
import tempfile
import wave
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional
from xml.sax.saxutils import unescape

import httpx

from .audio import wav_format

log = logging.getLogger("shippingforecast.tts")

_SPACE_RE = re.compile(r"[ \t]+")
_TAG_RE = re.compile(r"<[^>]+>")
_BREAK_RE = re.compile(r"<break\b[^>]*/>", re.IGNORECASE)

_API_KEY_RE = re.compile(r"AIza[a-zA-Z0-9_-]{35}")

RETRYABLE_STATUS = frozenset({429, 503, 504})


class TTSError(RuntimeError):
    """Synthesis failed. ``status`` is the HTTP status when there was one."""

    def __init__(self, message: str, status: Optional[int] = None, retry_after: Optional[float] = None) -> None:
        super().__init__(_API_KEY_RE.sub("[REDACTED]", message))
        self.status = status
        self.retry_after = retry_after

    @property
    def retryable(self) -> bool:
        return self.status is None or self.status in RETRYABLE_STATUS


def ssml_to_text(ssml: str) -> str:
    """
    Flatten SSML for engines that only take plain text: breaks become
    sentence pauses, every other tag is dropped, entities are decoded.
    """
    t = _BREAK_RE.sub(" ... ", ssml or "")
    t = _TAG_RE.sub(" ", t)
    t = unescape(t, {"&quot;": '"', "&apos;": "'"})
    return clean_for_tts(t)


def clean_for_tts(text: str) -> str:
    if not text:
        return ""

    t = text.replace("\r\n", "\n").replace("\r", "\n")
    t = t.replace("–", "-").replace("—", "-")

    lines_out: list[str] = []
    for raw in t.split("\n"):
        line = _SPACE_RE.sub(" ", raw).strip()
        if line:
            lines_out.append(line)

    return " ".join(lines_out)


def _festival_voice_expr(voice: str) -> str:
    """
    Accept:
      - kal_diphone
      - voice_kal_diphone
      - (voice_kal_diphone)
    Return a safe Festival expression like: (voice_kal_diphone)
    """
    v = (voice or "").strip()
    if not v:
        v = "kal_diphone"

    if v.startswith("(") and v.endswith(")"):
        v = v[1:-1].strip()

    if not v.startswith("voice_"):
        v = f"voice_{v}"

    return f"({v})"


def _duration_stretch_from_wpm(rate_wpm: int, baseline_wpm: int = 175) -> float:
    # Duration_Stretch > 1.0 is slower
    wpm = max(80, min(400, int(rate_wpm)))
    stretch = baseline_wpm / float(wpm)
    return max(0.5, min(2.0, stretch))


@dataclass(frozen=True)
class RadioFilter:
    """
    Radio-transmission colouring: a 300-3000 Hz voice band with a little
    white noise mixed underneath.
    """

    low_hz: int = 300
    high_hz: int = 3000
    noise_gain: float = 0.02

    def graph(self, volume: float = 1.0) -> str:
        noise = max(0.0, min(0.1, float(self.noise_gain)))
        chain = f"highpass=f={int(self.low_hz)},lowpass=f={int(self.high_hz)}"
        if volume > 0 and abs(volume - 1.0) > 1e-3:
            chain += f",volume={volume}"
        return (
            f"anoisesrc=color=white:amplitude={noise}[noise];"
            f"[0:a][noise]amix=inputs=2:duration=first:normalize=0,{chain}[out]"
        )


def ffmpeg_normalize_cmd(
    src: Path,
    dst: Path,
    sample_rate: int,
    channels: int,
    volume: float = 1.0,
    radio: Optional[RadioFilter] = None,
) -> List[str]:
    cmd = [
        "ffmpeg",
        "-y",
        "-hide_banner",
        "-loglevel",
        "error",
        "-i",
        str(src),
    ]

    vol = float(volume)
    if radio is not None:
        cmd += ["-filter_complex", radio.graph(vol), "-map", "[out]"]
    elif vol > 0 and abs(vol - 1.0) > 1e-3:
        cmd += ["-filter:a", f"volume={vol}"]

    cmd += [
        "-ar",
        str(int(sample_rate)),
        "-ac",
        str(int(channels)),
        "-c:a",
        "pcm_s16le",
        str(dst),
    ]
    return cmd


@dataclass
class TTS:
    """Local engines driven as subprocesses, normalised to 16-bit PCM WAV with ffmpeg."""

    backend: str
    voice: str
    rate_wpm: int
    volume: float
    sample_rate: int
    channels: int = 2
    radio: Optional[RadioFilter] = None

    def required_binaries(self) -> List[str]:
        engine = {"piper": "piper", "festival": "text2wave"}.get(self.backend, "espeak-ng")
        return [engine, "ffmpeg"]

    def synth_to_wav(self, ssml: str, out_wav: Path) -> None:
        out_wav.parent.mkdir(parents=True, exist_ok=True)
        tmp_wav = out_wav.with_suffix(".tmp.wav")

        try:
            if self.backend == "piper":
                if not shutil.which("piper"):
                    raise TTSError("piper backend selected but piper binary not found")

                cmd = ["piper", "-m", self.voice, "-f", str(tmp_wav)]
                subprocess.run(cmd, input=ssml_to_text(ssml).encode("utf-8"), check=True)

            elif self.backend == "festival":
                if not shutil.which("text2wave"):
                    raise TTSError("festival backend selected but text2wave not found")

                with tempfile.NamedTemporaryFile("w", encoding="utf-8", delete=False, suffix=".txt") as tf:
                    tf.write(ssml_to_text(ssml) + "\n")
                    text_path = Path(tf.name)

                try:
                    cmd = [
                        "text2wave",
                        "-eval",
                        f"(Parameter.set 'Duration_Stretch {_duration_stretch_from_wpm(self.rate_wpm)})",
                        "-eval",
                        _festival_voice_expr(self.voice),
                        "-o",
                        str(tmp_wav),
                        str(text_path),
                    ]
                    subprocess.run(cmd, check=True)
                finally:
                    text_path.unlink(missing_ok=True)

            else:
                # default: espeak-ng, which understands SSML markup directly (-m)
                if not shutil.which("espeak-ng"):
                    raise TTSError("espeak-ng not found")

                cmd = ["espeak-ng", "-m", "-v", self.voice, "-s", str(int(self.rate_wpm)), "-w", str(tmp_wav), ssml]
                subprocess.run(cmd, check=True)

            if not shutil.which("ffmpeg"):
                raise TTSError("ffmpeg not found")

            ff_cmd = ffmpeg_normalize_cmd(
                tmp_wav,
                out_wav,
                self.sample_rate,
                self.channels,
                volume=self.volume,
                radio=self.radio,
            )
            subprocess.run(ff_cmd, check=True)

        except subprocess.CalledProcessError as e:
            raise TTSError(f"{self.backend} synthesis failed: exit {e.returncode}") from e

        finally:
            tmp_wav.unlink(missing_ok=True)

    async def render(self, ssml: str, out_wav: Path) -> None:
        await asyncio.to_thread(self.synth_to_wav, ssml, out_wav)


class ProxyTTS:
    """
    Client of the edge proxy's ``POST /synthesize``. Asks for LINEAR16, which
    the upstream returns as a complete WAV file, so no decoding is needed here.
    """

    def __init__(
        self,
        url: str,
        language_code: str = "en-GB",
        voice_name: str = "en-GB-Neural2-B",
        sample_rate: int = 24000,
        timeout: float = 5.0,
        retry_attempts: int = 3,
        retry_delay: float = 0.1,
        origin: Optional[str] = None,
        radio: Optional[RadioFilter] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.url = url
        self.radio = radio
        self.language_code = language_code
        self.voice_name = voice_name
        self.sample_rate = int(sample_rate)
        self.retry_attempts = max(1, int(retry_attempts))
        self.retry_delay = float(retry_delay)

        headers = {"Content-Type": "application/json"}
        if origin:
            headers["Origin"] = origin
        self._client = httpx.AsyncClient(timeout=timeout, headers=headers, transport=transport)

    def required_binaries(self) -> List[str]:
        return ["ffmpeg"] if self.radio is not None else []

    async def aclose(self) -> None:
        await self._client.aclose()

    def payload(self, ssml: str) -> Dict[str, Any]:
        return {
            "input": {"ssml": ssml},
            "voice": {"languageCode": self.language_code, "name": self.voice_name},
            "audioConfig": {"audioEncoding": "LINEAR16", "sampleRateHertz": self.sample_rate},
        }

    async def _post_once(self, ssml: str) -> bytes:
        try:
            r = await self._client.post(self.url, json=self.payload(ssml))
        except httpx.TimeoutException as e:
            raise TTSError("TTS proxy timed out") from e
        except httpx.TransportError as e:
            raise TTSError(f"TTS proxy unreachable: {type(e).__name__}") from e

        if r.status_code != 200:
            try:
                data = r.json()
            except ValueError:
                data = {}
            msg = data.get("error") if isinstance(data, dict) else None
            if isinstance(msg, dict):
                msg = msg.get("message")
            retry_after = data.get("retryAfter") if isinstance(data, dict) else None
            raise TTSError(
                f"TTS proxy error {r.status_code}: {msg or r.reason_phrase}",
                status=r.status_code,
                retry_after=float(retry_after) if retry_after is not None else None,
            )

        try:
            data = r.json()
        except ValueError as e:
            raise TTSError("TTS proxy returned invalid JSON", status=r.status_code) from e
        audio_b64 = data.get("audioContent") if isinstance(data, dict) else None
        if not audio_b64 or not isinstance(audio_b64, str):
            raise TTSError("No audio content in TTS response", status=r.status_code)

        try:
            audio = base64.b64decode(audio_b64, validate=True)
        except (binascii.Error, ValueError) as e:
            raise TTSError("TTS response audio is not valid base64", status=r.status_code) from e
        if not audio.startswith(b"RIFF"):
            raise TTSError("TTS response is not WAV audio", status=r.status_code)
        try:
            wav_format(audio)
        except (wave.Error, EOFError) as e:
            raise TTSError(f"TTS response WAV is unreadable: {e}", status=r.status_code) from e
        return audio

    async def synthesize(self, ssml: str) -> bytes:
        if not ssml:
            raise ValueError("ssml is required")

        last_exc: Optional[TTSError] = None
        for attempt in range(1, self.retry_attempts + 1):
            try:
                return await self._post_once(ssml)
            except TTSError as e:
                last_exc = e
                if not e.retryable or attempt >= self.retry_attempts:
                    raise
                delay = self.retry_delay * (2 ** (attempt - 1))
                log.warning("%s, retrying in %.2fs (attempt %d/%d)", e, delay, attempt, self.retry_attempts)
                await asyncio.sleep(delay)

        raise TTSError("TTS proxy request failed") from last_exc

    async def render(self, ssml: str, out_wav: Path) -> None:
        audio = await self.synthesize(ssml)
        out_wav.parent.mkdir(parents=True, exist_ok=True)
        if self.radio is None:
            out_wav.write_bytes(audio)
            return

        raw_wav = out_wav.with_suffix(".raw.wav")
        raw_wav.write_bytes(audio)
        try:
            await asyncio.to_thread(self._apply_radio, raw_wav, out_wav, wav_format(audio).channels)
        finally:
            raw_wav.unlink(missing_ok=True)

    def _apply_radio(self, src: Path, dst: Path, channels: int) -> None:
        if not shutil.which("ffmpeg"):
            raise TTSError("ffmpeg not found")
        cmd = ffmpeg_normalize_cmd(src, dst, self.sample_rate, channels, radio=self.radio)
        try:
            subprocess.run(cmd, check=True)
        except subprocess.CalledProcessError as e:
            raise TTSError(f"radio filter failed: exit {e.returncode}") from e
