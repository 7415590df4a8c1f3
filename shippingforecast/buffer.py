from __future__ import annotations

import logging
from collections import deque
from typing import Deque, Optional

from .report import WeatherReport

log = logging.getLogger("shippingforecast.buffer")


class ReportBuffer:
    """
    Bounded FIFO between generation and playback. Refill is wanted once the
    queue drops to ``min_size``; nothing is accepted beyond ``max_size``.
    """

    def __init__(self, min_size: int = 3, max_size: int = 5) -> None:
        if min_size < 0 or min_size >= max_size:
            raise ValueError(f"ReportBuffer needs 0 <= min_size < max_size (got {min_size}/{max_size})")
        self.min_size = int(min_size)
        self.max_size = int(max_size)
        self._queue: Deque[WeatherReport] = deque()

    def enqueue(self, report: WeatherReport) -> bool:
        if len(self._queue) >= self.max_size:
            log.debug("Buffer full (%d); dropped report for %s", self.max_size, report.area.name)
            return False
        self._queue.append(report)
        return True

    def dequeue(self) -> Optional[WeatherReport]:
        if not self._queue:
            return None
        return self._queue.popleft()

    def needs_refill(self) -> bool:
        return len(self._queue) <= self.min_size

    def size(self) -> int:
        return len(self._queue)

    def __len__(self) -> int:
        return len(self._queue)

    def capacity(self) -> int:
        return self.max_size - len(self._queue)

    def clear(self) -> None:
        self._queue.clear()

    def is_empty(self) -> bool:
        return not self._queue

    def is_full(self) -> bool:
        return len(self._queue) >= self.max_size
