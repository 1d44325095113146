"""Shared fixtures: stores, a hand-driven scheduler and a recording session."""

from __future__ import annotations

from typing import Any

import pytest
from fakeredis import FakeServer, aioredis

from instant_undo import ExecutorRegistry, LifecycleController, MemoryStore, RedisStore
from instant_undo.scheduler import FireCallback, TimerScheduler


class ManualScheduler(TimerScheduler):
    """Records timers instead of sleeping; tests fire deadlines by hand."""

    def __init__(self) -> None:
        super().__init__()
        self.scheduled: dict[str, tuple[float, FireCallback]] = {}

    def schedule(self, action_id: str, delay: float, on_fire: FireCallback) -> None:
        self.scheduled[action_id] = (delay, on_fire)

    def cancel(self, action_id: str) -> bool:
        return self.scheduled.pop(action_id, None) is not None

    def is_scheduled(self, action_id: str) -> bool:
        return action_id in self.scheduled

    def active_ids(self) -> list[str]:
        return list(self.scheduled)

    def __len__(self) -> int:
        return len(self.scheduled)

    async def fire(self, action_id: str) -> None:
        """Run the deadline callback the way a real timer would."""
        _, on_fire = self.scheduled.pop(action_id)
        await on_fire(action_id)

    async def shutdown(self) -> None:
        self.scheduled.clear()


class RecordingSession:
    """A BroadcastHub session that keeps everything it is sent."""

    def __init__(self) -> None:
        self.events: list[tuple[str, Any]] = []

    async def send(self, event: str, data: Any) -> None:
        self.events.append((event, data))

    def names(self) -> list[str]:
        return [event for event, _ in self.events]

    def named(self, event: str) -> list[Any]:
        return [data for name, data in self.events if name == event]


@pytest.fixture
def fake_server() -> FakeServer:
    return FakeServer()


@pytest.fixture
def redis_client(fake_server):
    return aioredis.FakeRedis(server=fake_server, decode_responses=True)


@pytest.fixture
def redis_store(redis_client) -> RedisStore:
    return RedisStore(redis_client, prefix="test")


@pytest.fixture(params=["memory", "redis"])
def any_store(request, fake_server):
    if request.param == "memory":
        return MemoryStore()
    client = aioredis.FakeRedis(server=fake_server, decode_responses=True)
    return RedisStore(client, prefix="test")


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def controller(scheduler) -> LifecycleController:
    return LifecycleController(
        store=MemoryStore(),
        executors=ExecutorRegistry.default(simulate_latency=False),
        scheduler=scheduler,
    )
