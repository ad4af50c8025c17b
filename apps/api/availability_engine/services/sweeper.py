"""Background hold expiry: per-hold timers plus a periodic sweep."""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)


class HoldExpiryScheduler:
    """One sleeping task per active hold, cancelled when the hold ends early.

    Timers are best effort; the periodic sweep and the lazy checks on every
    read cover holds whose timer never fires (for example after a restart).
    """

    def __init__(self, expire: Callable[[str], Awaitable[object]]) -> None:
        self._expire = expire
        self._timers: dict[str, asyncio.Task[None]] = {}

    def __len__(self) -> int:
        return len(self._timers)

    def __contains__(self, hold_id: object) -> bool:
        return hold_id in self._timers

    def schedule(self, hold_id: str, delay: float) -> None:
        self.cancel(hold_id)
        self._timers[hold_id] = asyncio.create_task(self._fire(hold_id, max(0.0, delay)))

    def cancel(self, hold_id: str) -> bool:
        task = self._timers.pop(hold_id, None)
        if task is None:
            return False
        task.cancel()
        return True

    async def close(self) -> None:
        tasks = list(self._timers.values())
        self._timers.clear()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    async def _fire(self, hold_id: str, delay: float) -> None:
        try:
            await asyncio.sleep(delay)
            await self._expire(hold_id)
        except Exception:
            logger.exception("Expiry timer for hold %s failed", hold_id)
        finally:
            if self._timers.get(hold_id) is asyncio.current_task():
                del self._timers[hold_id]


async def expiry_loop(
    sweep: Callable[[], Awaitable[object]],
    stop_event: asyncio.Event,
    *,
    interval: float,
) -> None:
    """Run ``sweep`` every ``interval`` seconds until ``stop_event`` is set."""

    while not stop_event.is_set():
        try:
            await sweep()
        except Exception:
            logger.exception("Hold expiry sweep failed")
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=interval)
        except asyncio.TimeoutError:
            continue
