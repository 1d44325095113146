"""Lifecycle controller, the single owner of pending action state.

Every intercepted action goes through `create`, and every way of ending one
(undo, commit, the grace timer running out) goes through `resolve`. Both
transports call these two methods and nothing else mutates action state.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator

from .exceptions import ActionNotFoundError, InvalidRequestError, PersistenceError
from .executor import ExecutorRegistry
from .models import (
    ActivityLogEntry,
    InterceptRequest,
    LogStatus,
    PendingAction,
    ResolveMode,
    ResolveResult,
    Stats,
    clamp_grace_window,
)
from .notifications import (
    ACTION_INTERCEPTED,
    ACTION_RESOLVED,
    LOGS_CLEARED,
    BroadcastHub,
)
from .scheduler import TimerScheduler
from .settings import SettingsStore
from .store import MemoryStore, Store

logger = logging.getLogger(__name__)

# Seconds before a deadline whose claim hit a storage error is tried again
CLAIM_RETRY_DELAY = 1.0


class _KeyedLocks:
    """One asyncio.Lock per key, dropped once nobody holds or waits on it."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._holders: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._holders[key] = self._holders.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._holders[key] -= 1
            if not self._holders[key]:
                del self._holders[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)


class LifecycleController:
    """Creates pending actions and resolves each of them exactly once."""

    def __init__(
        self,
        store: Store | None = None,
        executors: ExecutorRegistry | None = None,
        scheduler: TimerScheduler | None = None,
        hub: BroadcastHub | None = None,
    ) -> None:
        self.store = store if store is not None else MemoryStore()
        self.executors = executors if executors is not None else ExecutorRegistry.default()
        self.scheduler = scheduler if scheduler is not None else TimerScheduler()
        self.hub = hub if hub is not None else BroadcastHub(self.store)
        self.settings = SettingsStore(self.store)
        self._claims = _KeyedLocks()

    async def shutdown(self) -> None:
        """Stop every timer, then close the backing store."""
        await self.scheduler.shutdown()
        await self.store.close()

    # ── Creation ──

    async def create(self, request: InterceptRequest) -> PendingAction:
        """Hold an intercepted action pending for its grace window."""
        override = await self.settings.override_for(request.owner_id)
        grace_window = clamp_grace_window(override if override is not None else request.grace_window)

        action = PendingAction(
            category=request.category,
            label=request.label,
            metadata=request.metadata,
            platform_label=self.executors.display_name(request.category),
            grace_window_seconds=grace_window,
            owner_id=request.owner_id,
        )
        await self.store.put_pending(action)
        self.scheduler.schedule(action.id, action.grace_window_seconds, self._auto_commit)
        await self.hub.notify(action.owner_id, ACTION_INTERCEPTED, action)

        logger.info(
            "INTERCEPTED %s %s (%s) for user %s - %ss grace window",
            action.id,
            action.label,
            action.platform_label,
            action.owner_id or "anonymous",
            action.grace_window_seconds,
        )
        return action

    # ── Resolution ──

    async def resolve(self, action_id: str, mode: ResolveMode) -> ResolveResult:
        """Resolve a pending action.

        Raises ActionNotFoundError when the id is unknown or another resolution
        already claimed it; in that case nothing is logged or broadcast.
        PersistenceError means the store could not tell; the action stays pending.
        """
        async with self._claims.hold(action_id):
            action = await self.store.take_and_remove_pending(action_id)
        if action is None:
            raise ActionNotFoundError(action_id)

        self.scheduler.cancel(action_id)

        if mode is ResolveMode.UNDO:
            result = await self.executors.cancel(action)
            status = LogStatus.REVERSED
        else:
            result = await self.executors.execute(action)
            status = LogStatus.COMMITTED

        entry = await self.store.append_log(ActivityLogEntry.from_action(action, status, result))
        outcome = ResolveResult(
            action_id=action.id,
            status=status,
            log=entry,
            auto=mode is ResolveMode.AUTO_COMMIT,
        )
        await self.hub.notify(action.owner_id, ACTION_RESOLVED, outcome)

        if not result.success:
            logger.warning("%s %s with executor failure: %s", status.value, action.id, result.message)
        logger.info(
            "%s %s %s%s", status.value, action.id, action.label, " (auto)" if outcome.auto else ""
        )
        return outcome

    async def undo(self, action_id: str) -> ResolveResult:
        return await self.resolve(action_id, ResolveMode.UNDO)

    async def commit(self, action_id: str) -> ResolveResult:
        return await self.resolve(action_id, ResolveMode.COMMIT)

    async def _auto_commit(self, action_id: str) -> None:
        try:
            await self.resolve(action_id, ResolveMode.AUTO_COMMIT)
        except ActionNotFoundError:
            logger.debug("Auto-commit of %s skipped, already resolved", action_id)
        except PersistenceError as exc:
            logger.warning("Auto-commit of %s deferred: %s", action_id, exc)
            self.scheduler.schedule(action_id, CLAIM_RETRY_DELAY, self._auto_commit)

    async def recover_pending(self) -> int:
        """Re-arm timers for actions left pending by a previous process run."""
        now = datetime.now(timezone.utc)
        recovered = 0
        for action in await self.store.list_pending():
            if self.scheduler.is_scheduled(action.id):
                continue
            remaining = (action.deadline - now).total_seconds()
            self.scheduler.schedule(action.id, max(0.0, remaining), self._auto_commit)
            recovered += 1
        if recovered:
            logger.info("Re-armed %d pending action timer(s)", recovered)
        return recovered

    # ── Read surfaces ──

    async def list_pending(self, owner_id: str | None = None) -> list[PendingAction]:
        return await self.store.list_pending(owner_id)

    async def list_logs(self, owner_id: str | None) -> list[ActivityLogEntry]:
        return await self.store.list_logs(owner_id)

    async def stats(self, owner_id: str | None) -> Stats:
        return await self.store.compute_stats(owner_id)

    async def clear_logs(self, owner_id: str | None) -> None:
        if not owner_id:
            raise InvalidRequestError("userId required")
        await self.store.clear_logs(owner_id)
        await self.hub.notify(owner_id, LOGS_CLEARED, None)
        logger.info("Logs cleared for user %s", owner_id)
