"""Instant Undo: hold destructive actions in a grace window, then undo or commit them."""

from .core import LifecycleController
from .exceptions import (
    ActionNotFoundError,
    InstantUndoError,
    InvalidRequestError,
    PersistenceError,
)
from .executor import Category, Executor, ExecutorRegistry
from .models import (
    ActivityLogEntry,
    ExecutionResult,
    InterceptRequest,
    LogStatus,
    PendingAction,
    ResolveMode,
    ResolveResult,
    Stats,
    UserSettings,
)
from .notifications import (
    ACTION_INTERCEPTED,
    ACTION_RESOLVED,
    INIT,
    LOGS_CLEARED,
    BroadcastHub,
)
from .scheduler import TimerScheduler
from .store import MemoryStore, RedisStore, Store

__all__ = [
    "LifecycleController",
    "ActionNotFoundError",
    "InstantUndoError",
    "InvalidRequestError",
    "PersistenceError",
    "Category",
    "Executor",
    "ExecutorRegistry",
    "ActivityLogEntry",
    "ExecutionResult",
    "InterceptRequest",
    "LogStatus",
    "PendingAction",
    "ResolveMode",
    "ResolveResult",
    "Stats",
    "UserSettings",
    "ACTION_INTERCEPTED",
    "ACTION_RESOLVED",
    "INIT",
    "LOGS_CLEARED",
    "BroadcastHub",
    "TimerScheduler",
    "MemoryStore",
    "RedisStore",
    "Store",
]
