"""Batch planning for task graphs.

A plan is a list of batches. Every task's dependencies lie in strictly earlier
batches, and each batch is as large as possible (topological leveling).
"""

from __future__ import annotations

from collections.abc import Sequence

from workflow_engine.core.errors import CycleDetected, DuplicateTaskId, UnknownDependency
from workflow_engine.scheduler.models import Task


def validate_tasks(tasks: Sequence[Task]) -> dict[str, Task]:
    """Check id uniqueness and dependency references.

    Returns:
        Tasks keyed by id, in submission order.

    Raises:
        DuplicateTaskId: If two tasks share an id.
        UnknownDependency: If a task depends on an id that was not submitted.
    """
    by_id: dict[str, Task] = {}
    for task in tasks:
        if task.id in by_id:
            raise DuplicateTaskId(task.id)
        by_id[task.id] = task

    for task in by_id.values():
        missing = task.dependencies - by_id.keys()
        if missing:
            raise UnknownDependency(task.id, missing)

    return by_id


def build_execution_plan(tasks: Sequence[Task]) -> list[list[Task]]:
    """Group tasks into batches that can run one after another.

    Within a batch, higher priority comes first; ties keep submission order.

    Raises:
        CycleDetected: If some tasks can never become ready. Nothing has run
            at that point, so the caller can reject the whole workflow.
    """
    by_id = validate_tasks(tasks)
    order = {task_id: index for index, task_id in enumerate(by_id)}

    resolved: set[str] = set()
    pending = dict(by_id)
    plan: list[list[Task]] = []

    while pending:
        ready = [task for task in pending.values() if task.dependencies <= resolved]
        if not ready:
            raise CycleDetected(pending.keys())

        ready.sort(key=lambda t: (-t.priority, order[t.id]))
        plan.append(ready)
        for task in ready:
            resolved.add(task.id)
            del pending[task.id]

    return plan


def plan_ids(plan: Sequence[Sequence[Task]]) -> list[list[str]]:
    return [[task.id for task in batch] for batch in plan]
