"""Tests for the asyncio deadline timers."""

from __future__ import annotations

import asyncio
import logging

import pytest

from instant_undo.scheduler import TimerScheduler


class TestTimerScheduler:
    def setup_method(self) -> None:
        self.scheduler = TimerScheduler()
        self.fired: list[str] = []

    async def _record(self, action_id: str) -> None:
        self.fired.append(action_id)

    @pytest.mark.asyncio
    async def test_fires_once_after_delay(self):
        self.scheduler.schedule("A", 0.01, self._record)
        assert self.scheduler.is_scheduled("A")
        await asyncio.sleep(0.05)
        assert self.fired == ["A"]
        assert not self.scheduler.is_scheduled("A")
        assert len(self.scheduler) == 0

    @pytest.mark.asyncio
    async def test_reschedule_replaces(self):
        fired_second: list[str] = []

        async def second(action_id: str) -> None:
            fired_second.append(action_id)

        self.scheduler.schedule("A", 0.01, self._record)
        self.scheduler.schedule("A", 0.02, second)
        assert len(self.scheduler) == 1
        await asyncio.sleep(0.06)
        assert self.fired == []
        assert fired_second == ["A"]

    @pytest.mark.asyncio
    async def test_cancel(self):
        self.scheduler.schedule("A", 0.01, self._record)
        assert self.scheduler.cancel("A") is True
        assert self.scheduler.cancel("A") is False
        await asyncio.sleep(0.03)
        assert self.fired == []

    def test_cancel_unknown_is_noop(self):
        assert self.scheduler.cancel("missing") is False

    @pytest.mark.asyncio
    async def test_cancel_from_own_callback_is_noop(self):
        results: list[bool] = []

        async def resolve(action_id: str) -> None:
            await asyncio.sleep(0)
            results.append(self.scheduler.cancel(action_id))
            self.fired.append(action_id)

        self.scheduler.schedule("A", 0, resolve)
        await asyncio.sleep(0.02)
        assert results == [False]
        assert self.fired == ["A"]

    @pytest.mark.asyncio
    async def test_callback_errors_are_logged(self, caplog):
        async def boom(action_id: str) -> None:
            raise RuntimeError("boom")

        with caplog.at_level(logging.ERROR, logger="instant_undo.scheduler"):
            self.scheduler.schedule("A", 0, boom)
            await asyncio.sleep(0.02)
        assert "Timer callback for A failed" in caplog.text

    @pytest.mark.asyncio
    async def test_timers_are_independent(self):
        self.scheduler.schedule("A", 0.01, self._record)
        self.scheduler.schedule("B", 0.01, self._record)
        self.scheduler.cancel("A")
        await asyncio.sleep(0.04)
        assert self.fired == ["B"]

    @pytest.mark.asyncio
    async def test_shutdown_cancels_everything(self):
        self.scheduler.schedule("A", 10, self._record)
        self.scheduler.schedule("B", 10, self._record)
        assert sorted(self.scheduler.active_ids()) == ["A", "B"]
        await self.scheduler.shutdown()
        assert len(self.scheduler) == 0
        assert self.fired == []
