"""
Politeness Clock.

Gates request dispatch for a single crawl job. Two rules apply to every
dispatch:

- a randomized delay, sampled uniformly from [min_delay_ms, max_delay_ms],
  measured from the previous dispatch
- at most max_requests_per_minute dispatches in any trailing 60 second window

The clock, sleep function and random source are injectable so the behavior
can be driven by a fake clock in tests.
"""

import asyncio
import logging
import random
import time
from collections import deque
from dataclasses import dataclass
from typing import Awaitable, Callable, Deque, Optional

from sitecrawl.constants import (
    DEFAULT_MAX_DELAY_MS,
    DEFAULT_MAX_REQUESTS_PER_MINUTE,
    DEFAULT_MIN_DELAY_MS,
    ROLLING_WINDOW_SECONDS,
)

logger = logging.getLogger(__name__)


@dataclass
class PolitenessConfig:
    """Configuration for the politeness clock."""
    # Randomized delay window between dispatches (milliseconds)
    min_delay_ms: int = DEFAULT_MIN_DELAY_MS
    max_delay_ms: int = DEFAULT_MAX_DELAY_MS

    # Dispatch cap over the trailing window
    max_requests_per_minute: int = DEFAULT_MAX_REQUESTS_PER_MINUTE

    window_seconds: float = ROLLING_WINDOW_SECONDS

    def __post_init__(self):
        if self.max_delay_ms < self.min_delay_ms:
            self.max_delay_ms = self.min_delay_ms


@dataclass
class PolitenessMetrics:
    """Snapshot of politeness clock activity."""
    total_dispatches: int
    total_wait_time: float
    dispatches_in_window: int
    last_dispatch_time: Optional[float]
    min_delay_ms: int
    max_delay_ms: int


class PolitenessClock:
    """
    Per-job dispatch gate shared by all crawl workers.

    Callers are serialized on an asyncio.Lock so the delay measured from the
    previous dispatch holds across concurrent workers, not just per worker.
    """

    def __init__(
        self,
        config: PolitenessConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: random.Random | None = None,
    ):
        """
        Initialize politeness clock.

        Args:
            config: Delay window and per-minute cap
            clock: Monotonic time source in seconds
            sleep: Coroutine used to suspend the caller
            rng: Random source for delay sampling
        """
        self.config = config or PolitenessConfig()
        self._clock = clock
        self._sleep = sleep
        self._rng = rng or random.Random()

        self._last_dispatch: float | None = None
        self._dispatches: Deque[float] = deque()
        self._lock = asyncio.Lock()

        # Statistics
        self._total_dispatches = 0
        self._total_wait_time = 0.0

    def raise_min_delay(self, delay_ms: int) -> None:
        """Raise the minimum delay, e.g. to honor a robots.txt Crawl-delay.

        Args:
            delay_ms: Requested minimum delay in milliseconds
        """
        if delay_ms <= self.config.min_delay_ms:
            return
        logger.info(
            f"Raising minimum delay from {self.config.min_delay_ms}ms to {delay_ms}ms"
        )
        self.config.min_delay_ms = delay_ms
        if self.config.max_delay_ms < delay_ms:
            self.config.max_delay_ms = delay_ms

    def _sample_delay(self) -> float:
        """Sample the inter-request delay in seconds."""
        low = self.config.min_delay_ms
        high = self.config.max_delay_ms
        if high <= low:
            return low / 1000.0
        return self._rng.uniform(low, high) / 1000.0

    def _evict_expired(self, now: float) -> None:
        window = self.config.window_seconds
        while self._dispatches and now - self._dispatches[0] >= window:
            self._dispatches.popleft()

    async def wait_for_slot(self) -> float:
        """
        Wait until the caller may dispatch its next request.

        Returns:
            Total time waited (seconds)
        """
        async with self._lock:
            waited = 0.0
            now = self._clock()

            # Randomized delay since the previous dispatch
            if self._last_dispatch is not None:
                elapsed = now - self._last_dispatch
                wait_time = max(0.0, self._sample_delay() - elapsed)
                if wait_time > 0:
                    logger.debug(f"Politeness delay: {wait_time:.2f}s")
                    await self._sleep(wait_time)
                    waited += wait_time
                    now = self._clock()

            # Rolling per-minute cap
            self._evict_expired(now)
            while len(self._dispatches) >= self.config.max_requests_per_minute:
                oldest = self._dispatches[0]
                wait_time = max(0.0, oldest + self.config.window_seconds - now)
                logger.debug(
                    f"Rate cap reached ({len(self._dispatches)} in window), "
                    f"waiting {wait_time:.2f}s"
                )
                if wait_time > 0:
                    await self._sleep(wait_time)
                    waited += wait_time
                now = self._clock()
                self._evict_expired(now)

            self._dispatches.append(now)
            self._last_dispatch = now
            self._total_dispatches += 1
            self._total_wait_time += waited

            return waited

    def get_metrics(self) -> PolitenessMetrics:
        """Get current politeness metrics."""
        return PolitenessMetrics(
            total_dispatches=self._total_dispatches,
            total_wait_time=self._total_wait_time,
            dispatches_in_window=len(self._dispatches),
            last_dispatch_time=self._last_dispatch,
            min_delay_ms=self.config.min_delay_ms,
            max_delay_ms=self.config.max_delay_ms,
        )

    def reset(self) -> None:
        """Forget dispatch history (for a new job)."""
        self._last_dispatch = None
        self._dispatches.clear()
        self._total_dispatches = 0
        self._total_wait_time = 0.0
