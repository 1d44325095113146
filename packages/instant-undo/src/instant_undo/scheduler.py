"""Deadline timers, one per pending action id."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)

FireCallback = Callable[[str], Awaitable[object]]


class TimerScheduler:
    """Owns at most one asyncio timer task per action id.

    The scheduler only guarantees that a live timer fires once. Whether the
    firing changes anything is decided by the store's atomic claim.
    """

    def __init__(self) -> None:
        self._timers: dict[str, asyncio.Task[None]] = {}

    def schedule(self, action_id: str, delay: float, on_fire: FireCallback) -> None:
        """Start the timer for action_id, replacing any timer already running."""
        self.cancel(action_id)
        self._timers[action_id] = asyncio.create_task(
            self._run(action_id, max(0.0, delay), on_fire),
            name=f"grace-timer:{action_id}",
        )

    async def _run(self, action_id: str, delay: float, on_fire: FireCallback) -> None:
        await asyncio.sleep(delay)
        # Past the deadline the timer can no longer be cancelled, so a cancel()
        # issued by the resolution it triggers must not hit this task.
        if self._timers.get(action_id) is asyncio.current_task():
            del self._timers[action_id]
        try:
            await on_fire(action_id)
        except Exception:
            logger.exception("Timer callback for %s failed", action_id)

    def cancel(self, action_id: str) -> bool:
        """Stop the timer for action_id. Returns False if there was none."""
        task = self._timers.pop(action_id, None)
        if task is None:
            return False
        task.cancel()
        return True

    def is_scheduled(self, action_id: str) -> bool:
        return action_id in self._timers

    def active_ids(self) -> list[str]:
        return list(self._timers)

    def __len__(self) -> int:
        return len(self._timers)

    async def shutdown(self) -> None:
        """Cancel every timer and wait for them to unwind."""
        tasks = list(self._timers.values())
        self._timers.clear()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
