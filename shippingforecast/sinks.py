from __future__ import annotations

import asyncio
import logging
import shlex
from pathlib import Path
from typing import List, Optional, Protocol, Sequence

log = logging.getLogger("shippingforecast.sinks")


class Sink(Protocol):
    name: str

    async def play(self, wav_path: Path, duration_seconds: float) -> None: ...

    async def ping(self) -> bool: ...

    def required_binaries(self) -> List[str]: ...


def _to_uri(wav_path: str) -> str:
    s = str(wav_path).strip()

    if (s.startswith('"') and s.endswith('"')) or (s.startswith("'") and s.endswith("'")):
        s = s[1:-1]

    if "://" in s:
        return s

    return Path(s).resolve().as_uri()


class LiquidsoapSink:
    """
    Pushes clips onto a Liquidsoap request queue over its telnet interface
    and then waits out the clip, so ``play`` returns roughly when the
    listener hears the end of it.
    """

    name = "liquidsoap"

    def __init__(self, host: str, port: int, queue: str = "forecast", timeout: float = 3.0) -> None:
        self.host = host
        self.port = int(port)
        self.queue = queue
        self.timeout = float(timeout)

    async def _send(self, command: str) -> str:
        reader, writer = await asyncio.wait_for(asyncio.open_connection(self.host, self.port), self.timeout)
        try:
            writer.write(command.encode("utf-8") + b"\n")
            await writer.drain()
            out = await asyncio.wait_for(reader.readuntil(b"END"), self.timeout)
            return out.decode("utf-8", errors="replace")
        finally:
            writer.close()
            await writer.wait_closed()

    async def push(self, wav_path: Path) -> str:
        return await self._send(f"{self.queue}.push {_to_uri(str(wav_path))}")

    async def flush(self) -> None:
        try:
            await self._send(f"{self.queue}.flush")
        except (OSError, asyncio.TimeoutError, asyncio.IncompleteReadError) as e:
            log.warning("Liquidsoap flush failed: %s", e)

    async def play(self, wav_path: Path, duration_seconds: float) -> None:
        await self.push(wav_path)
        await asyncio.sleep(max(0.0, duration_seconds))

    async def ping(self) -> bool:
        try:
            await self._send("help")
            return True
        except (OSError, asyncio.TimeoutError, asyncio.IncompleteReadError):
            return False

    def required_binaries(self) -> List[str]:
        return []


class CommandSink:
    """Runs a local player per clip (``aplay -q {path}``, ``ffplay -nodisp -autoexit {path}``...)."""

    name = "command"

    def __init__(self, command: Sequence[str] | str) -> None:
        argv = shlex.split(command) if isinstance(command, str) else list(command)
        if not argv:
            raise ValueError("CommandSink needs a command")
        if not any("{path}" in a for a in argv):
            argv.append("{path}")
        self.argv = argv

    def _argv_for(self, wav_path: Path) -> List[str]:
        return [a.replace("{path}", str(wav_path)) for a in self.argv]

    async def play(self, wav_path: Path, duration_seconds: float) -> None:
        proc = await asyncio.create_subprocess_exec(
            *self._argv_for(wav_path),
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.PIPE,
        )
        _, err = await proc.communicate()
        if proc.returncode != 0:
            raise RuntimeError(
                f"player exited {proc.returncode}: {err.decode('utf-8', errors='replace').strip()[:200]}"
            )

    async def ping(self) -> bool:
        return True

    def required_binaries(self) -> List[str]:
        return [self.argv[0]]


class NullSink:
    """Dry run: nothing is played, time passes as if it were (scaled by ``speed``)."""

    name = "null"

    def __init__(self, speed: float = 1.0) -> None:
        if speed <= 0:
            raise ValueError("speed must be > 0")
        self.speed = float(speed)
        self.played: List[Path] = []

    async def play(self, wav_path: Path, duration_seconds: float) -> None:
        self.played.append(Path(wav_path))
        await asyncio.sleep(max(0.0, duration_seconds) / self.speed)

    async def ping(self) -> bool:
        return True

    def required_binaries(self) -> List[str]:
        return []


def make_sink(kind: str, *, host: str = "127.0.0.1", port: int = 1234, queue: str = "forecast",
              command: Optional[str] = None, speed: float = 1.0) -> Sink:
    k = (kind or "null").strip().lower()
    if k == "liquidsoap":
        return LiquidsoapSink(host, port, queue=queue)
    if k == "command":
        if not command:
            raise ValueError("sink 'command' needs sink.command")
        return CommandSink(command)
    if k == "null":
        return NullSink(speed=speed)
    raise ValueError(f"Unknown sink: {kind!r}")
