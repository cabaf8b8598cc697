from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from workflow_engine.cache.keys import create_cache_key


@dataclass(frozen=True, slots=True)
class TaskContext:
    """What a task action receives when it runs.

    Keep this explicit. Dependency values are only present for dependencies
    that succeeded.
    """

    values: Mapping[str, Any]
    dependencies: Mapping[str, Any]
    attempt: int
    max_attempts: int


TaskAction = Callable[[TaskContext], Awaitable[Any] | Any]


@dataclass(frozen=True, slots=True)
class Task:
    """Immutable descriptor of one unit of work in a workflow.

    `timeout` and `max_retries` fall back to the workflow configuration when
    None; `cache_ttl` falls back to the configured default cache TTL.

    A plain (non-coroutine) action runs in a worker thread, and a timeout
    cannot stop that thread. It keeps running in the background while the
    next attempt starts, so a timed-out sync action may overlap its own retry
    and is not counted against the concurrency limit. Sync actions that can
    time out should be safe to run twice at once.
    """

    id: str
    name: str
    action: TaskAction
    dependencies: frozenset[str] = field(default_factory=frozenset)
    priority: int = 0
    timeout: float | None = None
    max_retries: int | None = None
    cache_key: str | None = None
    cache_ttl: float | None = None
    tags: frozenset[str] | None = None

    def __post_init__(self) -> None:
        # Accept any iterable for the set-valued fields.
        if not isinstance(self.dependencies, frozenset):
            object.__setattr__(self, "dependencies", frozenset(self.dependencies))
        if self.tags is not None and not isinstance(self.tags, frozenset):
            object.__setattr__(self, "tags", frozenset(self.tags))
        if self.max_retries is not None and self.max_retries < 0:
            raise ValueError(f"max_retries must be >= 0 for task '{self.id}'")
        if self.timeout is not None and self.timeout <= 0:
            raise ValueError(f"timeout must be > 0 for task '{self.id}'")
        if self.cache_ttl is not None and self.cache_ttl <= 0:
            raise ValueError(f"cache_ttl must be > 0 for task '{self.id}'")

    @property
    def effective_tags(self) -> frozenset[str]:
        return self.tags if self.tags is not None else frozenset({self.id})


def create_task(
    id: str,  # noqa: A002 (mirrors Task.id)
    name: str,
    action: TaskAction,
    *,
    dependencies: Iterable[str] = (),
    cache_key: str | None = None,
    **options: Any,
) -> Task:
    """Build a task that is cached under `task:<id>` unless a key is given."""
    return Task(
        id=id,
        name=name,
        action=action,
        dependencies=frozenset(dependencies),
        cache_key=cache_key or create_cache_key("task", id),
        **options,
    )


@dataclass(frozen=True, slots=True)
class TaskResult:
    task_id: str
    success: bool
    value: Any = None
    error_message: str | None = None
    duration: float = 0.0
    from_cache: bool = False

    @classmethod
    def ok(
        cls, task_id: str, value: Any, *, duration: float, from_cache: bool = False
    ) -> TaskResult:
        return cls(
            task_id=task_id,
            success=True,
            value=value,
            duration=duration,
            from_cache=from_cache,
        )

    @classmethod
    def failed(cls, task_id: str, error_message: str, *, duration: float) -> TaskResult:
        return cls(
            task_id=task_id,
            success=False,
            error_message=error_message,
            duration=duration,
        )


@dataclass(frozen=True, slots=True)
class WorkflowProgress:
    total_tasks: int
    completed_tasks: int
    failed_tasks: int
    currently_running: frozenset[str]
    percent_complete: float
    estimated_completion_time: datetime | None = None

    def to_json(self) -> dict[str, object]:
        out: dict[str, object] = {
            "total_tasks": self.total_tasks,
            "completed_tasks": self.completed_tasks,
            "failed_tasks": self.failed_tasks,
            "currently_running": sorted(self.currently_running),
            "percent_complete": self.percent_complete,
        }
        if self.estimated_completion_time is not None:
            out["estimated_completion_time"] = self.estimated_completion_time.isoformat()
        return out


@dataclass(frozen=True, slots=True)
class WorkflowStatistics:
    total_tasks: int
    completed_tasks: int
    failed_tasks: int
    average_duration: float
    total_duration: float
    cache_hit_rate: float
