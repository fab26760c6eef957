"""Minimum-interval rate limiter for the tax-authority endpoint.

The limiter holds the one piece of state shared across requests: the
time the last call was granted. Callers serialize on a lock, so a second
caller cannot slip in while the first one is still waiting out its
window.

Example:
    >>> limiter = RateLimiter(interval_ms=1000)
    >>> await limiter.acquire()  # returns immediately
    >>> await limiter.acquire()  # returns 1000 ms after the first grant
"""

from __future__ import annotations

import asyncio

from .logging import log_debug
from .scheduler import AsyncioScheduler, Scheduler


class RateLimiter:
    """Grants calls no closer together than a fixed interval.

    Attributes:
        interval_ms: Minimum spacing between two grants, in milliseconds.
    """

    def __init__(
        self,
        interval_ms: int = 1000,
        *,
        scheduler: Scheduler | None = None,
    ) -> None:
        """Initialize the limiter.

        Args:
            interval_ms: Minimum spacing between two grants.
            scheduler: Clock and timer; defaults to the asyncio scheduler.
        """
        self.interval_ms = interval_ms
        self._scheduler = scheduler or AsyncioScheduler()
        self._lock = asyncio.Lock()
        self._last_granted: float | None = None

    @property
    def last_granted(self) -> float | None:
        """Scheduler time of the last grant, or None before the first."""
        return self._last_granted

    async def acquire(self) -> None:
        """Wait until the next call may be made.

        Never fails; at worst the caller waits for one full interval per
        caller queued ahead of it.
        """
        async with self._lock:
            if self._last_granted is not None:
                elapsed_ms = (self._scheduler.now() - self._last_granted) * 1000
                wait_ms = self.interval_ms - elapsed_ms
                if wait_ms > 0:
                    log_debug(
                        "Rate limiter waiting",
                        {"wait_ms": round(wait_ms)},
                    )
                    await self._scheduler.sleep(_ceil_ms(wait_ms))
            self._last_granted = self._scheduler.now()


def _ceil_ms(value: float) -> int:
    whole = int(value)
    return whole if whole == value else whole + 1


__all__ = ["RateLimiter"]
