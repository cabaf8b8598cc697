"""Exceptions raised by the workflow engine.

Only graph-structural errors (subclasses of WorkflowConfigurationError) escape a
workflow run. Everything that goes wrong inside a single task ends up in that
task's result.
"""

from __future__ import annotations

from collections.abc import Iterable


class WorkflowError(Exception):
    """Base class for engine errors."""


class WorkflowConfigurationError(WorkflowError):
    """The submitted task graph cannot be scheduled."""


class CycleDetected(WorkflowConfigurationError):
    """Raised when no batch can be formed while tasks remain unresolved."""

    def __init__(self, task_ids: Iterable[str]) -> None:
        self.task_ids: tuple[str, ...] = tuple(sorted(task_ids))
        super().__init__(
            "Circular dependency detected among tasks: " + ", ".join(self.task_ids)
        )


class UnknownDependency(WorkflowConfigurationError):
    """Raised when a task depends on an id that was not submitted."""

    def __init__(self, task_id: str, missing: Iterable[str]) -> None:
        self.task_id = task_id
        self.missing: tuple[str, ...] = tuple(sorted(missing))
        super().__init__(
            f"Task '{task_id}' depends on unknown task(s): " + ", ".join(self.missing)
        )


class DuplicateTaskId(WorkflowConfigurationError):
    def __init__(self, task_id: str) -> None:
        self.task_id = task_id
        super().__init__(f"Task id '{task_id}' is submitted more than once")


class TaskTimeout(WorkflowError):
    """A single attempt exceeded the task's timeout."""

    def __init__(self, task_id: str, timeout: float) -> None:
        self.task_id = task_id
        self.timeout = timeout
        super().__init__(f"Task '{task_id}' timed out after {timeout:g}s")


class TaskExecutionError(WorkflowError):
    """A single attempt raised. The message is the original error's message."""

    def __init__(self, task_id: str, attempt: int, cause: BaseException) -> None:
        self.task_id = task_id
        self.attempt = attempt
        self.cause = cause
        super().__init__(str(cause) or type(cause).__name__)


class AllRetriesExhausted(WorkflowError):
    def __init__(self, task_id: str, attempts: int, last_error: BaseException) -> None:
        self.task_id = task_id
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(str(last_error) or type(last_error).__name__)


class CacheIOError(WorkflowError):
    """The persistent cache tier could not be read or written."""

    def __init__(self, message: str, *, path: str | None = None) -> None:
        self.path = path
        super().__init__(message)
