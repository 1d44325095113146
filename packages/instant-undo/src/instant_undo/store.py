"""Persistence for pending actions, activity logs and per-user settings.

Two backends share one contract: a Redis document store and a process-local
in-memory store. The backend is picked once at startup by `open_store`.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Awaitable, TypeVar

from pydantic import BaseModel
from redis.asyncio import Redis
from redis.exceptions import RedisError

from .exceptions import PersistenceError
from .models import (
    ANONYMOUS_OWNER,
    LOG_LIMIT,
    ActivityLogEntry,
    LogStatus,
    PendingAction,
    Stats,
    UserSettings,
)

if TYPE_CHECKING:
    from .config import ServerConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _dump(model: BaseModel) -> str:
    return model.model_dump_json(by_alias=True)


def _newest_first(entries: list[ActivityLogEntry]) -> list[ActivityLogEntry]:
    return sorted(entries, key=lambda e: e.created_at, reverse=True)


class Store(ABC):
    """Storage contract shared by every backend."""

    name: str

    # ── Pending Actions ──

    @abstractmethod
    async def put_pending(self, action: PendingAction) -> None: ...

    @abstractmethod
    async def take_and_remove_pending(self, action_id: str) -> PendingAction | None:
        """Atomically claim a pending action. Only one caller ever gets it back.

        Returns None only when the action is known to be gone. Raises
        PersistenceError when the backend cannot tell.
        """
        ...

    @abstractmethod
    async def get_pending(self, action_id: str) -> PendingAction | None: ...

    @abstractmethod
    async def list_pending(self, owner_id: str | None = None) -> list[PendingAction]:
        """Return pending actions newest first; all of them when owner_id is None."""
        ...

    # ── Activity Logs ──

    @abstractmethod
    async def append_log(self, entry: ActivityLogEntry) -> ActivityLogEntry: ...

    @abstractmethod
    async def list_logs(self, owner_id: str | None) -> list[ActivityLogEntry]:
        """Return the owner's newest LOG_LIMIT entries. Logs are never listed globally."""
        ...

    @abstractmethod
    async def all_logs(self, owner_id: str) -> list[ActivityLogEntry]:
        """Return every entry of the owner, uncapped and unordered."""
        ...

    @abstractmethod
    async def clear_logs(self, owner_id: str | None) -> None: ...

    async def compute_stats(self, owner_id: str | None) -> Stats:
        if owner_id is None:
            return Stats()
        logs = await self.all_logs(owner_id)
        pending = await self.list_pending(owner_id)
        return Stats(
            total_actions=len(logs),
            mistakes_prevented=sum(1 for e in logs if e.status == LogStatus.REVERSED),
            actions_committed=sum(1 for e in logs if e.status == LogStatus.COMMITTED),
            pending_count=len(pending),
        )

    # ── Settings ──

    @abstractmethod
    async def get_settings(self, owner_id: str) -> UserSettings | None: ...

    @abstractmethod
    async def put_settings(self, settings: UserSettings) -> None: ...

    async def close(self) -> None:
        """Release backend resources."""


class MemoryStore(Store):
    """In-process storage. Data lives as long as the process."""

    name = "memory"

    def __init__(self) -> None:
        self._pending: dict[str, PendingAction] = {}
        self._logs: dict[str, dict[str, ActivityLogEntry]] = {}
        self._settings: dict[str, UserSettings] = {}

    async def put_pending(self, action: PendingAction) -> None:
        self._pending[action.id] = action

    async def take_and_remove_pending(self, action_id: str) -> PendingAction | None:
        return self._pending.pop(action_id, None)

    async def get_pending(self, action_id: str) -> PendingAction | None:
        return self._pending.get(action_id)

    async def list_pending(self, owner_id: str | None = None) -> list[PendingAction]:
        actions = [
            a for a in self._pending.values() if owner_id is None or a.owner_id == owner_id
        ]
        return sorted(actions, key=lambda a: a.created_at, reverse=True)

    async def append_log(self, entry: ActivityLogEntry) -> ActivityLogEntry:
        owner = entry.owner_id or ANONYMOUS_OWNER
        self._logs.setdefault(owner, {})[entry.id] = entry
        return entry

    async def list_logs(self, owner_id: str | None) -> list[ActivityLogEntry]:
        if owner_id is None:
            return []
        return _newest_first(await self.all_logs(owner_id))[:LOG_LIMIT]

    async def all_logs(self, owner_id: str) -> list[ActivityLogEntry]:
        return list(self._logs.get(owner_id, {}).values())

    async def clear_logs(self, owner_id: str | None) -> None:
        if owner_id is not None:
            self._logs.pop(owner_id, None)

    async def get_settings(self, owner_id: str) -> UserSettings | None:
        return self._settings.get(owner_id)

    async def put_settings(self, settings: UserSettings) -> None:
        self._settings[settings.owner_id] = settings

    def forget_settings(self, owner_id: str) -> None:
        self._settings.pop(owner_id, None)


class RedisStore(Store):
    """Redis document store with an in-memory fallback for failed calls.

    Layout:
      {prefix}:pending                       hash  action id -> action JSON
      {prefix}:users:{owner}:logs            hash  action id -> log entry JSON
      {prefix}:users:{owner}:log_index       zset  action id scored by creation time
      {prefix}:settings                      hash  owner id -> settings JSON

    A call that fails with a Redis error is applied to the fallback instead,
    and reads merge both sides, so nothing written during an outage is lost
    to later reads in this process.
    """

    name = "redis"

    def __init__(
        self,
        client: Redis,
        prefix: str = "instant_undo",
        fallback: MemoryStore | None = None,
    ) -> None:
        self._redis = client
        self._prefix = prefix
        self._fallback = fallback if fallback is not None else MemoryStore()
        self._pending_key = f"{prefix}:pending"
        self._settings_key = f"{prefix}:settings"

    def _log_key(self, owner_id: str | None) -> str:
        return f"{self._prefix}:users:{owner_id or ANONYMOUS_OWNER}:logs"

    def _index_key(self, owner_id: str | None) -> str:
        return f"{self._prefix}:users:{owner_id or ANONYMOUS_OWNER}:log_index"

    async def _call(self, operation: str, awaitable: Awaitable[T]) -> T:
        try:
            return await awaitable
        except RedisError as exc:
            raise PersistenceError(operation, str(exc)) from exc

    @staticmethod
    def _degraded(exc: PersistenceError) -> None:
        logger.warning("%s; using in-memory fallback", exc)

    # ── Pending Actions ──

    async def put_pending(self, action: PendingAction) -> None:
        try:
            await self._call(
                "put_pending", self._redis.hset(self._pending_key, action.id, _dump(action))
            )
        except PersistenceError as exc:
            self._degraded(exc)
            await self._fallback.put_pending(action)

    async def _claim(self, action_id: str) -> PendingAction | None:
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.hget(self._pending_key, action_id)
            pipe.hdel(self._pending_key, action_id)
            raw, removed = await pipe.execute()
        if not removed or raw is None:
            return None
        return PendingAction.model_validate_json(raw)

    async def take_and_remove_pending(self, action_id: str) -> PendingAction | None:
        try:
            action = await self._call("take_and_remove_pending", self._claim(action_id))
        except PersistenceError as exc:
            self._degraded(exc)
            local = await self._fallback.take_and_remove_pending(action_id)
            if local is None:
                # Redis may still hold the action; only it can say it is gone.
                raise
            return local
        if action is None:
            action = await self._fallback.take_and_remove_pending(action_id)
        return action

    async def get_pending(self, action_id: str) -> PendingAction | None:
        try:
            raw = await self._call("get_pending", self._redis.hget(self._pending_key, action_id))
        except PersistenceError as exc:
            self._degraded(exc)
            raw = None
        if raw is not None:
            return PendingAction.model_validate_json(raw)
        return await self._fallback.get_pending(action_id)

    async def list_pending(self, owner_id: str | None = None) -> list[PendingAction]:
        try:
            raws = await self._call("list_pending", self._redis.hvals(self._pending_key))
        except PersistenceError as exc:
            self._degraded(exc)
            raws = []
        merged = {a.id: a for a in await self._fallback.list_pending(owner_id)}
        for raw in raws:
            action = PendingAction.model_validate_json(raw)
            if owner_id is None or action.owner_id == owner_id:
                merged[action.id] = action
        return sorted(merged.values(), key=lambda a: a.created_at, reverse=True)

    # ── Activity Logs ──

    async def _write_log(self, entry: ActivityLogEntry) -> None:
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.hset(self._log_key(entry.owner_id), entry.id, _dump(entry))
            pipe.zadd(self._index_key(entry.owner_id), {entry.id: entry.created_at.timestamp()})
            await pipe.execute()

    async def append_log(self, entry: ActivityLogEntry) -> ActivityLogEntry:
        logger.debug("Saving log %s -> users/%s/logs", entry.id, entry.owner_id or ANONYMOUS_OWNER)
        try:
            await self._call("append_log", self._write_log(entry))
        except PersistenceError as exc:
            self._degraded(exc)
            await self._fallback.append_log(entry)
        return entry

    async def _read_logs(self, owner_id: str) -> list[ActivityLogEntry]:
        ids = await self._redis.zrevrange(self._index_key(owner_id), 0, LOG_LIMIT - 1)
        if not ids:
            return []
        raws = await self._redis.hmget(self._log_key(owner_id), ids)
        return [ActivityLogEntry.model_validate_json(raw) for raw in raws if raw is not None]

    async def list_logs(self, owner_id: str | None) -> list[ActivityLogEntry]:
        if owner_id is None:
            return []
        try:
            entries = await self._call("list_logs", self._read_logs(owner_id))
        except PersistenceError as exc:
            self._degraded(exc)
            entries = []
        entries += await self._fallback.list_logs(owner_id)
        return _newest_first(entries)[:LOG_LIMIT]

    async def all_logs(self, owner_id: str) -> list[ActivityLogEntry]:
        try:
            raws = await self._call("all_logs", self._redis.hvals(self._log_key(owner_id)))
        except PersistenceError as exc:
            self._degraded(exc)
            raws = []
        merged = {e.id: e for e in await self._fallback.all_logs(owner_id)}
        for raw in raws:
            entry = ActivityLogEntry.model_validate_json(raw)
            merged[entry.id] = entry
        return list(merged.values())

    async def clear_logs(self, owner_id: str | None) -> None:
        if owner_id is None:
            return
        await self._fallback.clear_logs(owner_id)
        try:
            await self._call(
                "clear_logs",
                self._redis.delete(self._log_key(owner_id), self._index_key(owner_id)),
            )
        except PersistenceError as exc:
            self._degraded(exc)

    # ── Settings ──

    async def get_settings(self, owner_id: str) -> UserSettings | None:
        local = await self._fallback.get_settings(owner_id)
        if local is not None:
            return local
        try:
            raw = await self._call("get_settings", self._redis.hget(self._settings_key, owner_id))
        except PersistenceError as exc:
            self._degraded(exc)
            return None
        return UserSettings.model_validate_json(raw) if raw is not None else None

    async def put_settings(self, settings: UserSettings) -> None:
        try:
            await self._call(
                "put_settings",
                self._redis.hset(self._settings_key, settings.owner_id, _dump(settings)),
            )
        except PersistenceError as exc:
            self._degraded(exc)
            await self._fallback.put_settings(settings)
        else:
            self._fallback.forget_settings(settings.owner_id)

    async def close(self) -> None:
        await self._redis.aclose()


async def open_store(config: ServerConfig) -> Store:
    """Pick the backend for this process run.

    The choice is made once; a Redis outage later on is absorbed by the
    RedisStore fallback rather than by switching backends.
    """
    if not config.redis_url:
        logger.warning("No Redis URL configured; using in-memory storage (data will not persist)")
        return MemoryStore()

    client = Redis.from_url(config.redis_url, decode_responses=True)
    try:
        await client.ping()
    except RedisError as exc:
        logger.error("Redis unreachable (%s); using in-memory storage for this run", exc)
        await client.aclose()
        return MemoryStore()

    logger.info("Connected to Redis (prefix %s)", config.redis_prefix)
    return RedisStore(client, prefix=config.redis_prefix)
