"""
Request pacing for the rate-limited explorer API.

The explorer enforces a per-second call quota. Rather than sprinkling
sleeps at call sites, the client is handed a pacer and runs every call
through it.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar


logger = logging.getLogger(__name__)


T = TypeVar("T")

SleepFunc = Callable[[float], Awaitable[None]]


class FixedIntervalPacer:
    """
    Fixed-interval gate.

    `run()` holds a lock for the call and the pause after it, so callers
    sharing one pacer are serialized and spaced `interval_seconds` apart
    even when they are gathered concurrently.
    """

    def __init__(
        self,
        interval_seconds: float = 0.2,
        sleep: Optional[SleepFunc] = None,
    ) -> None:
        if interval_seconds < 0:
            raise ValueError("interval_seconds must be >= 0")
        self._interval = interval_seconds
        self._sleep = sleep or asyncio.sleep
        self._lock = asyncio.Lock()
        self._paced_calls = 0

    @property
    def interval_seconds(self) -> float:
        return self._interval

    @property
    def paced_calls(self) -> int:
        return self._paced_calls

    async def run(self, call: Callable[[], Awaitable[T]]) -> T:
        """
        Await `call()` inside the gate.

        The pause only follows a successful call; a failure releases the
        gate immediately so the caller can fall back without waiting.
        """
        async with self._lock:
            result = await call()
            self._paced_calls += 1
            if self._interval > 0:
                logger.debug(f"Pacing explorer call #{self._paced_calls} for {self._interval}s")
                await self._sleep(self._interval)
            return result

    def stats(self) -> dict[str, float]:
        return {
            "interval_seconds": self._interval,
            "paced_calls": self._paced_calls,
        }

    def __repr__(self) -> str:
        return f"<FixedIntervalPacer(interval={self._interval}s, calls={self._paced_calls})>"
