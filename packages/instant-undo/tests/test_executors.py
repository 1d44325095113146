"""Tests for executors and the category registry."""

from __future__ import annotations

import pytest

from instant_undo.exceptions import ExecutorError
from instant_undo.executor import Category, Executor, ExecutorRegistry
from instant_undo.executors import EmailExecutor, FileExecutor, FormExecutor, GitExecutor
from instant_undo.models import ExecutionResult, PendingAction


class BrokenEmailExecutor(Executor):
    category = Category.EMAIL
    display_name = "Broken Mail"

    async def execute(self, action: PendingAction) -> ExecutionResult:
        raise ExecutorError("email", "smtp unreachable")


def _registry_with(email: Executor) -> ExecutorRegistry:
    return ExecutorRegistry([email, FileExecutor(latency=0), GitExecutor(latency=0), FormExecutor(latency=0)])


class TestCategory:
    @pytest.mark.parametrize(
        "raw, category",
        [
            ("email", Category.EMAIL),
            ("GMAIL", Category.EMAIL),
            ("file", Category.FILE),
            ("delete", Category.FILE),
            ("git", Category.GIT),
            ("github", Category.GIT),
            ("push", Category.GIT),
            ("form", Category.FORM),
            ("submit", Category.FORM),
            ("unknown", Category.FORM),
            ("", Category.FORM),
            (None, Category.FORM),
        ],
    )
    def test_parse(self, raw, category):
        assert Category.parse(raw) == category


class TestExecutorRegistry:
    def setup_method(self) -> None:
        self.registry = ExecutorRegistry.default(simulate_latency=False)

    def test_display_names(self):
        assert self.registry.display_name("email") == "Gmail"
        assert self.registry.display_name("file") == "System"
        assert self.registry.display_name("github") == "GitHub"
        assert self.registry.display_name("form") == "WebForm"

    def test_unknown_category_uses_form_executor(self):
        assert isinstance(self.registry.get("calendar"), FormExecutor)
        assert self.registry.display_name(None) == "WebForm"

    def test_every_category_required(self):
        with pytest.raises(ValueError, match="git"):
            ExecutorRegistry([EmailExecutor(), FileExecutor(), FormExecutor()])

    def test_latency_disabled(self):
        assert all(e.latency == 0 for e in self.registry.list_executors())

    def test_default_latency_kept(self):
        registry = ExecutorRegistry.default()
        assert registry.get("git").latency == GitExecutor.latency

    @pytest.mark.asyncio
    async def test_execute(self):
        action = PendingAction(category="email", metadata={"to": "bob@example.com"})
        result = await self.registry.execute(action)
        assert result.success
        assert "bob@example.com" in result.message

    @pytest.mark.asyncio
    async def test_cancel_unknown_category_succeeds(self):
        result = await self.registry.cancel(PendingAction(category="mystery"))
        assert result.success
        assert result.message == "Form submission prevented"

    @pytest.mark.asyncio
    async def test_execute_failure_becomes_result(self):
        registry = _registry_with(BrokenEmailExecutor())
        result = await registry.execute(PendingAction(category="email"))
        assert not result.success
        assert "smtp unreachable" in result.message

    @pytest.mark.asyncio
    async def test_default_cancel_acknowledges(self):
        registry = _registry_with(BrokenEmailExecutor())
        result = await registry.cancel(PendingAction(category="gmail"))
        assert result.success
        assert result.message == "Broken Mail action prevented"
