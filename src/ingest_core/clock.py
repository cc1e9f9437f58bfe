"""Wall-clock and delay primitives shared by time-dependent components."""

from __future__ import annotations

import asyncio
import time
from datetime import UTC, datetime
from typing import Protocol


class Clock(Protocol):
    """Time source used for backoff delays, throttling, and reset windows."""

    def now(self) -> datetime:
        """Return the current UTC-aware wall-clock time."""

    def monotonic(self) -> float:
        """Return a monotonic reading in seconds for measuring durations."""

    async def sleep(self, seconds: float) -> None:
        """Suspend the caller for ``seconds``."""


class SystemClock:
    """Clock backed by the real system time and ``asyncio.sleep``."""

    def now(self) -> datetime:
        return datetime.now(UTC)

    def monotonic(self) -> float:
        return time.monotonic()

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(max(seconds, 0.0))
