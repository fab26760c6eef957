"""Timer abstraction used for backoff and rate limiting.

Waiting goes through a Scheduler so tests can swap in a virtual clock.
Waits can be cut short with a CancellationToken; work already running is
never interrupted.

Example:
    >>> scheduler = AsyncioScheduler()
    >>> token = CancellationToken()
    >>> completed = await scheduler.sleep(1000, token)
"""

from __future__ import annotations

import asyncio
import time
from abc import ABC, abstractmethod


class CancellationToken:
    """Signal that ends pending waits early."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()


class Scheduler(ABC):
    """Clock and timer used by the orchestrator and the rate limiter."""

    @abstractmethod
    def now(self) -> float:
        """Monotonic time in seconds."""
        ...

    @abstractmethod
    async def sleep(self, ms: int, token: CancellationToken | None = None) -> bool:
        """Suspend the calling task for ``ms`` milliseconds.

        Args:
            ms: Duration in milliseconds; values <= 0 return immediately.
            token: Optional token that ends the wait early.

        Returns:
            True if the full duration elapsed, False if cancelled.
        """
        ...


class AsyncioScheduler(Scheduler):
    """Scheduler backed by the running asyncio loop."""

    def now(self) -> float:
        return time.monotonic()

    async def sleep(self, ms: int, token: CancellationToken | None = None) -> bool:
        if token is not None and token.cancelled:
            return False
        if ms <= 0:
            return True
        if token is None:
            await asyncio.sleep(ms / 1000)
            return True

        waiter = asyncio.ensure_future(token.wait())
        try:
            done, _ = await asyncio.wait({waiter}, timeout=ms / 1000)
        finally:
            if not waiter.done():
                waiter.cancel()
        return waiter not in done


__all__ = ["AsyncioScheduler", "CancellationToken", "Scheduler"]
