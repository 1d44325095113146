"""Data models for the grace-window server.

Field names are snake_case in Python; the wire format keeps the camelCase
names the browser extension and dashboard speak (``type``, ``graceWindow``,
``userId`` ...), so every model is dumped with ``by_alias=True``.
"""

from __future__ import annotations

import json
import uuid
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

MIN_GRACE_WINDOW = 5
MAX_GRACE_WINDOW = 30
DEFAULT_GRACE_WINDOW = 15

LOG_LIMIT = 100
ANONYMOUS_OWNER = "anonymous"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def clamp_grace_window(value: Any = None) -> int:
    """Return the effective grace window in whole seconds, within [5, 30].

    ``None`` and values that cannot be read as a number give the default.
    """
    if value is None:
        return DEFAULT_GRACE_WINDOW
    try:
        seconds = int(value)
    except (TypeError, ValueError, OverflowError):
        return DEFAULT_GRACE_WINDOW
    return max(MIN_GRACE_WINDOW, min(MAX_GRACE_WINDOW, seconds))


def generate_action_id() -> str:
    """Return a fresh 8-character uppercase id."""
    return uuid.uuid4().hex[:8].upper()


class ResolveMode(Enum):
    UNDO = "undo"
    COMMIT = "commit"
    AUTO_COMMIT = "auto_commit"


class LogStatus(Enum):
    REVERSED = "REVERSED"
    COMMITTED = "COMMITTED"


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class InterceptRequest(_WireModel):
    """An intercepted action as submitted over REST or the WebSocket."""

    category: str = Field(default="unknown", alias="type")
    label: str = "Unknown Action"
    metadata: dict[str, Any] = Field(default_factory=dict)
    grace_window: Any = Field(default=None, alias="graceWindow")
    owner_id: str | None = Field(default=None, alias="userId")

    @field_validator("category", mode="before")
    @classmethod
    def _default_category(cls, value: Any) -> Any:
        return value or "unknown"

    @field_validator("label", mode="before")
    @classmethod
    def _default_label(cls, value: Any) -> Any:
        return value or "Unknown Action"

    @field_validator("metadata", mode="before")
    @classmethod
    def _default_metadata(cls, value: Any) -> Any:
        return value or {}

    @field_validator("owner_id", mode="before")
    @classmethod
    def _blank_owner(cls, value: Any) -> Any:
        return value or None


class PendingAction(_WireModel):
    """An intercepted action waiting out its grace window."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str = Field(default_factory=generate_action_id)
    category: str = Field(default="unknown", alias="type")
    label: str = "Unknown Action"
    metadata: dict[str, Any] = Field(default_factory=dict)
    platform_label: str = Field(default="", alias="platform")
    grace_window_seconds: int = Field(default=DEFAULT_GRACE_WINDOW, alias="graceWindow")
    owner_id: str | None = Field(default=None, alias="userId")
    created_at: datetime = Field(default_factory=_utcnow, alias="createdAt")

    @property
    def deadline(self) -> datetime:
        return self.created_at + timedelta(seconds=self.grace_window_seconds)


class ExecutionResult(BaseModel):
    """Outcome reported by an executor. Failures are values, not exceptions."""

    success: bool
    message: str = ""
    at: datetime = Field(default_factory=_utcnow)


class ActivityLogEntry(_WireModel):
    """Immutable history record of a resolved action."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str
    label: str
    platform_label: str = Field(default="", alias="platform")
    meta: str = "{}"
    status: LogStatus
    timestamp: str = ""
    owner_id: str | None = Field(default=None, alias="userId")
    created_at: datetime = Field(default_factory=_utcnow, alias="createdAt")
    error: str | None = None

    @classmethod
    def from_action(
        cls,
        action: PendingAction,
        status: LogStatus,
        result: ExecutionResult | None = None,
    ) -> ActivityLogEntry:
        now = _utcnow()
        return cls(
            id=action.id,
            label=action.label,
            platform_label=action.platform_label,
            meta=json.dumps(action.metadata, default=str),
            status=status,
            timestamp=now.strftime("%H:%M:%S"),
            owner_id=action.owner_id,
            created_at=now,
            error=None if result is None or result.success else result.message,
        )


class UserSettings(_WireModel):
    owner_id: str = Field(alias="userId")
    grace_window_seconds: int = Field(default=DEFAULT_GRACE_WINDOW, alias="graceWindow")


class Stats(_WireModel):
    total_actions: int = Field(default=0, alias="totalActions")
    mistakes_prevented: int = Field(default=0, alias="mistakesPrevented")
    actions_committed: int = Field(default=0, alias="actionsCommitted")
    pending_count: int = Field(default=0, alias="pendingCount")


class ResolveResult(_WireModel):
    """What a resolution hands back to its caller and to the broadcast."""

    action_id: str = Field(alias="id")
    status: LogStatus
    log: ActivityLogEntry
    auto: bool = False
