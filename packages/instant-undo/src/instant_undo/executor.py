"""Base class for executors and the category -> executor registry."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Iterable

from .models import ExecutionResult, PendingAction

logger = logging.getLogger(__name__)


class Category(Enum):
    EMAIL = "email"
    FILE = "file"
    GIT = "git"
    FORM = "form"

    @classmethod
    def parse(cls, raw: str | None) -> Category:
        """Map a client-supplied category string onto a known category.

        Anything unrecognised is treated as a generic form submission.
        """
        key = (raw or "").strip().lower()
        try:
            return cls(key)
        except ValueError:
            return _ALIASES.get(key, cls.FORM)


_ALIASES: dict[str, Category] = {
    "gmail": Category.EMAIL,
    "delete": Category.FILE,
    "github": Category.GIT,
    "push": Category.GIT,
    "submit": Category.FORM,
}


class Executor(ABC):
    """Base class for executors.

    Subclasses must define:
    - `category`: the Category they handle
    - `display_name`: human-readable platform label
    - `execute()`: commit the real-world effect

    `cancel()` defaults to acknowledging the prevention; nothing has happened
    yet at the infrastructure level, so there is nothing to roll back.
    """

    category: Category
    display_name: str
    latency: float = 0.0

    def __init__(self, latency: float | None = None) -> None:
        if latency is not None:
            self.latency = latency

    @abstractmethod
    async def execute(self, action: PendingAction) -> ExecutionResult:
        """Carry out the action. Return the result."""
        ...

    async def cancel(self, action: PendingAction) -> ExecutionResult:
        return ExecutionResult(success=True, message=f"{self.display_name} action prevented")

    async def _simulate(self) -> None:
        if self.latency > 0:
            await asyncio.sleep(self.latency)


class ExecutorRegistry:
    """Maps every Category to exactly one executor."""

    def __init__(self, executors: Iterable[Executor]) -> None:
        self._executors: dict[Category, Executor] = {}
        for executor in executors:
            self._executors[executor.category] = executor
        missing = [c.value for c in Category if c not in self._executors]
        if missing:
            raise ValueError(f"No executor registered for: {', '.join(missing)}")

    @classmethod
    def default(cls, simulate_latency: bool = True) -> ExecutorRegistry:
        from .executors import BUILTIN_EXECUTORS

        latency = None if simulate_latency else 0.0
        return cls(executor_cls(latency=latency) for executor_cls in BUILTIN_EXECUTORS)

    def get(self, category: str | None) -> Executor:
        return self._executors[Category.parse(category)]

    def display_name(self, category: str | None) -> str:
        return self.get(category).display_name

    def list_executors(self) -> list[Executor]:
        return list(self._executors.values())

    async def execute(self, action: PendingAction) -> ExecutionResult:
        """Run the executor for this action. Never raises."""
        executor = self.get(action.category)
        try:
            return await executor.execute(action)
        except Exception as exc:
            logger.warning("%s executor failed on %s: %s", executor.display_name, action.id, exc)
            return ExecutionResult(success=False, message=str(exc))

    async def cancel(self, action: PendingAction) -> ExecutionResult:
        """Acknowledge prevention of this action. Never raises."""
        executor = self.get(action.category)
        try:
            return await executor.cancel(action)
        except Exception as exc:
            logger.warning("%s executor failed to cancel %s: %s", executor.display_name, action.id, exc)
            return ExecutionResult(success=False, message=str(exc))
