"""Fixed-interval ticker with an explicit stop."""

from __future__ import annotations

import asyncio
import contextlib
import time
from collections.abc import Callable


class FlushTicker:
    """Fires once per interval on a fixed schedule until stopped.

    Ticks are scheduled at ``start + n * interval``. When a consumer falls
    behind, missed ticks are dropped rather than delivered in a burst, so
    consecutive ticks are always at least one interval apart.
    """

    def __init__(
        self, interval_seconds: float, clock: Callable[[], float] = time.monotonic
    ) -> None:
        """Initialize ticker.

        Args:
            interval_seconds: Seconds between ticks (must be > 0)
            clock: Monotonic clock used for scheduling

        Raises:
            ValueError: If interval_seconds <= 0
        """
        if not interval_seconds > 0:
            raise ValueError(f"interval_seconds must be > 0, got {interval_seconds}")
        self.interval_seconds = interval_seconds
        self._clock = clock
        self._next_tick = clock() + interval_seconds
        self._stopped = asyncio.Event()

    @property
    def stopped(self) -> bool:
        return self._stopped.is_set()

    def stop(self) -> None:
        """Stop the ticker; a pending ``wait()`` returns False immediately."""
        self._stopped.set()

    async def wait(self) -> bool:
        """Sleep until the next tick.

        Returns:
            True when the tick fired, False when the ticker was stopped
        """
        if self._stopped.is_set():
            return False

        delay = self._next_tick - self._clock()
        if delay > 0:
            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(self._stopped.wait(), timeout=delay)
            if self._stopped.is_set():
                return False

        now = self._clock()
        while self._next_tick <= now:
            self._next_tick += self.interval_seconds
        return True

    def __aiter__(self) -> FlushTicker:
        return self

    async def __anext__(self) -> None:
        if not await self.wait():
            raise StopAsyncIteration
