"""Custom exceptions for the grace-window server."""


class InstantUndoError(Exception):
    """Base exception for instant undo errors."""


class ActionNotFoundError(InstantUndoError):
    """Raised when a pending action is unknown or has already been resolved.

    This is an expected outcome of two resolutions racing for the same id,
    not a server fault.
    """

    def __init__(self, action_id: str) -> None:
        super().__init__(f"Action not found or already processed: {action_id}")
        self.action_id = action_id


class InvalidRequestError(InstantUndoError):
    """Raised when a request is missing something it needs (e.g. an owner id)."""


class PersistenceError(InstantUndoError):
    """Raised when the durable backend cannot complete an operation."""

    def __init__(self, operation: str, reason: str) -> None:
        super().__init__(f"Persistence failure during {operation}: {reason}")
        self.operation = operation
        self.reason = reason


class ExecutorError(InstantUndoError):
    """Raised by an executor that fails to carry out an action.

    Custom executors raise this from `execute` or `cancel`; the registry logs it
    and turns it into a failed ExecutionResult, so the action is still logged.
    """

    def __init__(self, category: str, reason: str) -> None:
        super().__init__(f"Executor {category} failed: {reason}")
        self.category = category
        self.reason = reason
