"""Dependency-aware workflow scheduler."""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections.abc import Iterable, Mapping
from typing import Any

from workflow_engine.cache.cache import Cache
from workflow_engine.core.config import WorkflowConfig
from workflow_engine.logging import log_context
from workflow_engine.scheduler.executor import TaskExecutor
from workflow_engine.scheduler.limiter import ConcurrencyLimiter, effective_concurrency
from workflow_engine.scheduler.models import Task, TaskResult, WorkflowStatistics
from workflow_engine.scheduler.planner import build_execution_plan
from workflow_engine.scheduler.progress import ProgressObserver, ProgressReporter

logger = logging.getLogger(__name__)


class DependencyScheduler:
    """Run a task graph batch by batch under a concurrency bound.

    Batch N+1 starts only after every task in batch N has a result. A failing
    task never aborts the run; only structural problems with the graph
    (cycles, unknown or duplicate ids) do, and those are raised before any
    task executes.

    Each call to `run` owns its own result accumulator and progress state, so
    one scheduler can serve several runs.
    """

    def __init__(
        self,
        config: WorkflowConfig | None = None,
        cache: Cache | None = None,
        *,
        executor: TaskExecutor | None = None,
        cpu_count: int | None = None,
    ) -> None:
        """Initialize the scheduler.

        Args:
            config: Workflow configuration. If None, loads from environment.
            cache: Cache for tasks with a cache key. Ignored if `executor` is given.
            executor: Task executor to use instead of a default one.
            cpu_count: Override for the adaptive concurrency heuristic.
        """
        self.config = config or WorkflowConfig()
        self.executor = executor or TaskExecutor(self.config, cache)
        self._cpu_count = cpu_count
        self._observers: list[ProgressObserver] = []

    def on_progress(self, observer: ProgressObserver) -> None:
        """Register a callback receiving a WorkflowProgress on every update."""
        self._observers.append(observer)

    async def run(
        self,
        tasks: Iterable[Task],
        context: Mapping[str, Any] | None = None,
    ) -> dict[str, TaskResult]:
        """Execute `tasks` respecting their dependencies.

        Args:
            tasks: Task descriptors with unique ids.
            context: Caller values exposed to every action as `TaskContext.values`.

        Returns:
            Exactly one result per submitted task, keyed by task id.

        Raises:
            CycleDetected: If the dependency graph has a cycle.
            UnknownDependency: If a task depends on an id that was not submitted.
            DuplicateTaskId: If two tasks share an id.
        """
        task_list = list(tasks)
        plan = build_execution_plan(task_list)

        with log_context(run_id=uuid.uuid4().hex[:12]):
            return await self._run_plan(plan, len(task_list), context)

    async def _run_plan(
        self,
        plan: list[list[Task]],
        total: int,
        context: Mapping[str, Any] | None,
    ) -> dict[str, TaskResult]:
        values: dict[str, Any] = {}
        results: dict[str, TaskResult] = {}
        reporter = ProgressReporter(self._observers)
        started = time.perf_counter()

        logger.info(
            f"Starting workflow with {total} tasks in {len(plan)} batches",
            extra={"task_count": total, "batch_count": len(plan)},
        )
        if self.config.enable_progress:
            reporter.notify(total, 0, 0, [t.id for t in plan[0]] if plan else [])

        for index, batch in enumerate(plan):
            concurrency = effective_concurrency(
                self.config.max_concurrency,
                len(batch),
                adaptive=self.config.adaptive_concurrency,
                cpu_count=self._cpu_count,
            )
            logger.debug(
                f"Executing batch {index + 1}/{len(plan)} with {len(batch)} tasks",
                extra={"concurrency": concurrency},
            )

            limiter = ConcurrencyLimiter(concurrency)
            batch_results = await asyncio.gather(
                *(self._run_task(task, limiter, values, results, context) for task in batch)
            )

            for task, result in zip(batch, batch_results, strict=True):
                results[task.id] = result
                if result.success:
                    values[task.id] = result.value
                reporter.record(result)

            if self.config.enable_progress:
                completed = sum(1 for r in results.values() if r.success)
                failed = len(results) - completed
                upcoming = [t.id for t in plan[index + 1]] if index + 1 < len(plan) else []
                reporter.notify(total, completed, failed, upcoming)

        stats = summarize_results(results)
        logger.info(
            "Workflow finished",
            extra={
                "completed_tasks": stats.completed_tasks,
                "failed_tasks": stats.failed_tasks,
                "elapsed_seconds": time.perf_counter() - started,
            },
        )
        return results

    async def _run_task(
        self,
        task: Task,
        limiter: ConcurrencyLimiter,
        values: Mapping[str, Any],
        results: Mapping[str, TaskResult],
        context: Mapping[str, Any] | None,
    ) -> TaskResult:
        failed_deps = sorted(d for d in task.dependencies if not results[d].success)
        if failed_deps and self.config.skip_dependents_on_failure:
            logger.warning(
                f"Skipping task {task.name}: dependency failed",
                extra={"task_id": task.id, "failed_dependencies": failed_deps},
            )
            return TaskResult.failed(
                task.id, "Dependency failed: " + ", ".join(failed_deps), duration=0.0
            )

        dependency_values = {d: values[d] for d in task.dependencies if d in values}
        async with limiter:
            return await self.executor.execute(task, dependency_values, context)


def summarize_results(results: Mapping[str, TaskResult]) -> WorkflowStatistics:
    """Aggregate counts, durations and cache hit rate for a finished run."""
    all_results = list(results.values())
    completed = [r for r in all_results if r.success]
    cached = [r for r in all_results if r.from_cache]

    return WorkflowStatistics(
        total_tasks=len(all_results),
        completed_tasks=len(completed),
        failed_tasks=len(all_results) - len(completed),
        average_duration=(
            sum(r.duration for r in completed) / len(completed) if completed else 0.0
        ),
        total_duration=sum(r.duration for r in all_results),
        cache_hit_rate=len(cached) / len(all_results) if all_results else 0.0,
    )
