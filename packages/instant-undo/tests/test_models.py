"""Tests for data models and protocol constants."""

from __future__ import annotations

import json

import pytest

from instant_undo.models import (
    DEFAULT_GRACE_WINDOW,
    ActivityLogEntry,
    ExecutionResult,
    InterceptRequest,
    LogStatus,
    PendingAction,
    ResolveResult,
    clamp_grace_window,
    generate_action_id,
)


@pytest.mark.parametrize(
    "requested, effective",
    [
        (None, 15),
        (2, 5),
        (5, 5),
        (10, 10),
        (30, 30),
        (45, 30),
        (-3, 5),
        ("20", 20),
        (12.9, 12),
        ("soon", 15),
        (float("inf"), 15),
    ],
)
def test_clamp_grace_window(requested, effective):
    assert clamp_grace_window(requested) == effective


def test_generated_ids_are_short_uppercase_tokens():
    ids = {generate_action_id() for _ in range(200)}
    assert len(ids) == 200
    for action_id in ids:
        assert len(action_id) == 8
        assert action_id.isalnum()
        assert action_id == action_id.upper()


class TestInterceptRequest:
    def test_reads_wire_names(self):
        request = InterceptRequest.model_validate(
            {"type": "email", "label": "Send", "graceWindow": 10, "userId": "alice"}
        )
        assert request.category == "email"
        assert request.grace_window == 10
        assert request.owner_id == "alice"

    def test_null_fields_fall_back_to_defaults(self):
        request = InterceptRequest.model_validate(
            {"type": None, "label": "", "metadata": None, "userId": ""}
        )
        assert request.category == "unknown"
        assert request.label == "Unknown Action"
        assert request.metadata == {}
        assert request.owner_id is None
        assert request.grace_window is None

    @pytest.mark.parametrize("raw", ["abc", [10], {"seconds": 10}])
    def test_unreadable_grace_window_is_accepted_and_defaults(self, raw):
        request = InterceptRequest.model_validate({"graceWindow": raw})
        assert request.grace_window == raw
        assert clamp_grace_window(request.grace_window) == DEFAULT_GRACE_WINDOW


class TestPendingAction:
    def test_wire_format_uses_camel_case(self):
        action = PendingAction(
            category="git",
            label="Force push",
            platform_label="GitHub",
            grace_window_seconds=20,
            owner_id="bob",
        )
        wire = action.to_wire()
        assert wire["type"] == "git"
        assert wire["platform"] == "GitHub"
        assert wire["graceWindow"] == 20
        assert wire["userId"] == "bob"
        assert "createdAt" in wire
        assert PendingAction.model_validate(wire) == action

    def test_deadline(self):
        action = PendingAction(grace_window_seconds=12)
        assert (action.deadline - action.created_at).total_seconds() == 12

    def test_is_immutable(self):
        action = PendingAction()
        with pytest.raises(Exception):
            action.label = "changed"  # type: ignore[misc]


class TestActivityLogEntry:
    def test_from_action_serializes_metadata(self):
        action = PendingAction(label="Delete", metadata={"path": "/tmp/a"}, owner_id="alice")
        entry = ActivityLogEntry.from_action(action, LogStatus.REVERSED, ExecutionResult(success=True))
        assert entry.id == action.id
        assert json.loads(entry.meta) == {"path": "/tmp/a"}
        assert entry.status == LogStatus.REVERSED
        assert entry.owner_id == "alice"
        assert len(entry.timestamp) == 8
        assert entry.error is None

    def test_failed_result_is_recorded(self):
        action = PendingAction()
        entry = ActivityLogEntry.from_action(
            action, LogStatus.COMMITTED, ExecutionResult(success=False, message="smtp down")
        )
        assert entry.status == LogStatus.COMMITTED
        assert entry.error == "smtp down"

    def test_resolve_result_wire(self):
        action = PendingAction()
        entry = ActivityLogEntry.from_action(action, LogStatus.COMMITTED)
        wire = ResolveResult(action_id=action.id, status=LogStatus.COMMITTED, log=entry, auto=True).to_wire()
        assert wire["id"] == action.id
        assert wire["status"] == "COMMITTED"
        assert wire["auto"] is True
        assert wire["log"]["platform"] == ""


def test_default_grace_window_constant():
    assert DEFAULT_GRACE_WINDOW == 15
