"""Built-in executors. Effects are simulated; each waits out a short latency."""

from __future__ import annotations

import logging

from .executor import Category, Executor
from .models import ExecutionResult, PendingAction

logger = logging.getLogger(__name__)


class EmailExecutor(Executor):
    category = Category.EMAIL
    display_name = "Gmail"
    latency = 0.5

    async def execute(self, action: PendingAction) -> ExecutionResult:
        to = action.metadata.get("to", "Unknown")
        logger.info(
            "Sending email to %s (subject: %s)", to, action.metadata.get("subject", "No Subject")
        )
        await self._simulate()
        return ExecutionResult(success=True, message=f"Email sent to {to}")

    async def cancel(self, action: PendingAction) -> ExecutionResult:
        logger.info("Email to %s cancelled, not sent", action.metadata.get("to", "Unknown"))
        return ExecutionResult(success=True, message="Email sending prevented")


class FileExecutor(Executor):
    category = Category.FILE
    display_name = "System"
    latency = 0.3

    async def execute(self, action: PendingAction) -> ExecutionResult:
        path = action.metadata.get("path", "Unknown")
        logger.info("Deleting %s %s", action.metadata.get("type", "file"), path)
        await self._simulate()
        return ExecutionResult(success=True, message=f"File/Folder deleted: {path}")

    async def cancel(self, action: PendingAction) -> ExecutionResult:
        logger.info("Deletion cancelled, preserved %s", action.metadata.get("path", "Unknown"))
        return ExecutionResult(success=True, message="File deletion prevented - file preserved")


class GitExecutor(Executor):
    category = Category.GIT
    display_name = "GitHub"
    latency = 0.8

    async def execute(self, action: PendingAction) -> ExecutionResult:
        operation = action.metadata.get("type", "push")
        branch = action.metadata.get("branch", "Unknown")
        logger.info(
            "Running git %s on %s (force=%s)", operation, branch, bool(action.metadata.get("force"))
        )
        await self._simulate()
        return ExecutionResult(success=True, message=f"Git {operation} to {branch} completed")

    async def cancel(self, action: PendingAction) -> ExecutionResult:
        logger.info("Git operation cancelled, branch %s preserved", action.metadata.get("branch", "Unknown"))
        return ExecutionResult(success=True, message="Git operation prevented - no changes pushed")


class FormExecutor(Executor):
    """Generic form submission; also the fallback for unknown categories."""

    category = Category.FORM
    display_name = "WebForm"
    latency = 0.4

    async def execute(self, action: PendingAction) -> ExecutionResult:
        form_name = action.metadata.get("formName", "Unknown Form")
        logger.info("Submitting form %s to %s", form_name, action.metadata.get("url", "N/A"))
        await self._simulate()
        return ExecutionResult(success=True, message=f"Form submitted: {form_name}")

    async def cancel(self, action: PendingAction) -> ExecutionResult:
        logger.info("Form submission cancelled: %s", action.metadata.get("formName", "Unknown Form"))
        return ExecutionResult(success=True, message="Form submission prevented")


BUILTIN_EXECUTORS: tuple[type[Executor], ...] = (
    EmailExecutor,
    FileExecutor,
    GitExecutor,
    FormExecutor,
)
