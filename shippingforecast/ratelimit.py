from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from typing import Callable, Dict, Mapping, Optional, Protocol, Tuple

log = logging.getLogger("shippingforecast.ratelimit")

DEFAULT_THRESHOLD = 30
WINDOW_SECONDS = 60


class KVStore(Protocol):
    async def get(self, key: str) -> Optional[str]: ...

    async def put(self, key: str, value: str, ttl_seconds: int) -> None: ...


class MemoryKV:
    """Process-local key/value store with per-key expiry."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self.clock = clock
        self._data: Dict[str, Tuple[str, float]] = {}

    async def get(self, key: str) -> Optional[str]:
        item = self._data.get(key)
        if item is None:
            return None
        value, expires_at = item
        if self.clock() >= expires_at:
            del self._data[key]
            return None
        return value

    async def put(self, key: str, value: str, ttl_seconds: int) -> None:
        now = self.clock()
        self._data[key] = (value, now + ttl_seconds)
        if len(self._data) > 10_000:
            self._purge(now)

    def _purge(self, now: float) -> None:
        for k in [k for k, (_, exp) in self._data.items() if exp <= now]:
            del self._data[k]

    def __len__(self) -> int:
        return len(self._data)


def client_ip(headers: Mapping[str, str]) -> str:
    cf = headers.get("cf-connecting-ip")
    if cf:
        return cf.strip()
    xff = headers.get("x-forwarded-for")
    if xff:
        first = xff.split(",")[0].strip()
        if first:
            return first
    return "localhost"


@dataclass(frozen=True)
class RateDecision:
    allowed: bool
    count: int
    retry_after: int = 0


class RateLimiter:
    """
    Fixed one-minute window per client IP: the counter key carries the epoch
    minute, so a new minute starts from zero and old keys just expire.
    KV failures let the request through.
    """

    def __init__(
        self,
        kv: KVStore,
        threshold: int = DEFAULT_THRESHOLD,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.kv = kv
        self.threshold = int(threshold)
        self.clock = clock

    def key_for(self, ip: str, now: Optional[float] = None) -> str:
        t = self.clock() if now is None else now
        return f"ratelimit:{ip}:{int(t // WINDOW_SECONDS)}"

    def retry_after(self, now: Optional[float] = None) -> int:
        t = self.clock() if now is None else now
        next_minute = (math.floor(t / WINDOW_SECONDS) + 1) * WINDOW_SECONDS
        return int(math.ceil(next_minute - t))

    async def _read(self, key: str) -> int:
        try:
            value = await self.kv.get(key)
        except Exception as e:
            log.error("Rate limiter: KV read failed, allowing request: %s", e)
            return 0
        if value is None:
            return 0
        try:
            return int(value)
        except ValueError:
            return 0

    async def _write(self, key: str, count: int) -> None:
        try:
            await self.kv.put(key, str(count), WINDOW_SECONDS)
        except Exception as e:
            log.error("Rate limiter: KV write failed: %s", e)

    async def check(self, ip: str) -> RateDecision:
        now = self.clock()
        key = self.key_for(ip, now)
        current = await self._read(key)

        if current >= self.threshold:
            return RateDecision(allowed=False, count=current, retry_after=self.retry_after(now))

        await self._write(key, current + 1)
        return RateDecision(allowed=True, count=current + 1)
