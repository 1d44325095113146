"""Owner-scoped fan-out of lifecycle events to connected sessions."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

from pydantic import BaseModel

from .store import Store

logger = logging.getLogger(__name__)

# Standard event names
INIT = "init"
ACTION_INTERCEPTED = "action:intercepted"
ACTION_RESOLVED = "action:resolved"
LOGS_CLEARED = "logs:cleared"


class Session(Protocol):
    """A connected client able to receive events."""

    async def send(self, event: str, data: Any) -> None: ...


def encode(value: Any) -> Any:
    """Turn models (and containers of them) into JSON-ready wire data."""
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=True)
    if isinstance(value, dict):
        return {key: encode(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [encode(item) for item in value]
    return value


@dataclass
class _Subscription:
    owner_id: str | None
    ready: bool = False
    backlog: list[tuple[str, Any]] = field(default_factory=list)


class BroadcastHub:
    """Tracks sessions by owner and delivers events to the right ones.

    A session joining receives an `init` snapshot first. Events raised while
    the snapshot is read are held back and delivered right after it, in order.
    """

    def __init__(self, store: Store) -> None:
        self._store = store
        self._sessions: dict[Session, _Subscription] = {}

    async def join(self, session: Session, owner_id: str | None) -> dict[str, Any]:
        """Register a session and send it the owner's current state."""
        subscription = _Subscription(owner_id)
        self._sessions[session] = subscription
        logger.info("Session joined (user: %s)", owner_id or "anonymous")

        try:
            pending, logs, stats = await asyncio.gather(
                self._store.list_pending(owner_id),
                self._store.list_logs(owner_id),
                self._store.compute_stats(owner_id),
            )
            snapshot = encode({"pending": pending, "logs": logs, "stats": stats})
            await session.send(INIT, snapshot)
            while subscription.backlog:
                event, data = subscription.backlog.pop(0)
                await session.send(event, data)
        except Exception:
            self.leave(session)
            raise
        subscription.ready = True
        return snapshot

    def leave(self, session: Session) -> None:
        subscription = self._sessions.pop(session, None)
        if subscription is not None:
            logger.info("Session left (user: %s)", subscription.owner_id or "anonymous")

    def session_count(self, owner_id: str | None = None) -> int:
        if owner_id is None:
            return len(self._sessions)
        return sum(1 for s in self._sessions.values() if s.owner_id == owner_id)

    async def notify(self, owner_id: str | None, event: str, payload: Any) -> int:
        """Deliver an event to the owner's sessions, or to all when owner_id is None.

        Returns the number of sessions the event was addressed to.
        """
        data = encode(payload)
        targets = [
            (session, sub)
            for session, sub in self._sessions.items()
            if owner_id is None or sub.owner_id == owner_id
        ]
        live: list[Session] = []
        for session, subscription in targets:
            if subscription.ready:
                live.append(session)
            else:
                subscription.backlog.append((event, data))

        results = await asyncio.gather(
            *(session.send(event, data) for session in live), return_exceptions=True
        )
        for session, result in zip(live, results):
            if isinstance(result, Exception):
                logger.warning("Dropping session after failed %s delivery: %s", event, result)
                self.leave(session)
        return len(targets)
