"""Single-task execution: cache lookup, timeout, retry with backoff, caching."""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

from workflow_engine.batching import backoff_delay
from workflow_engine.cache.cache import Cache
from workflow_engine.core.config import WorkflowConfig
from workflow_engine.core.errors import TaskExecutionError, TaskTimeout, WorkflowError
from workflow_engine.scheduler.models import Task, TaskContext, TaskResult

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class TaskExecutor:
    """Run one task to a TaskResult.

    Task failures never escape `execute`: timeouts and errors raised by the
    action are retried per policy, and exhausting the retries yields a failed
    result carrying the last error's message. Failing to write a result to the
    cache is logged and does not fail the task.

    Only coroutine actions are cancelled when their attempt times out. A sync
    action keeps running in its worker thread after the timeout, so it can
    overlap the retry that follows and sits outside the scheduler's
    concurrency bound until it returns.
    """

    def __init__(
        self,
        config: WorkflowConfig | None = None,
        cache: Cache | None = None,
        *,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        """Initialize the executor.

        Args:
            config: Workflow configuration. If None, loads from environment.
            cache: Cache consulted for tasks with a cache key. None disables caching.
            sleep: Awaitable used for backoff delays.
        """
        self.config = config or WorkflowConfig()
        self.cache = cache
        self._sleep = sleep

    @property
    def caching_enabled(self) -> bool:
        return self.config.enable_caching and self.cache is not None

    async def execute(
        self,
        task: Task,
        dependencies: Mapping[str, Any] | None = None,
        context: Mapping[str, Any] | None = None,
    ) -> TaskResult:
        started = time.perf_counter()
        try:
            return await self._execute(task, dict(dependencies or {}), dict(context or {}), started)
        except Exception as e:
            # Anything outside the attempt loop (e.g. a broken cache) still
            # belongs to this task only.
            logger.exception("Task execution failed unexpectedly", extra={"task_id": task.id})
            return TaskResult.failed(
                task.id, str(e) or type(e).__name__, duration=time.perf_counter() - started
            )

    async def _execute(
        self,
        task: Task,
        dependencies: dict[str, Any],
        context: dict[str, Any],
        started: float,
    ) -> TaskResult:
        if self.caching_enabled and task.cache_key:
            assert self.cache is not None
            cached = await asyncio.to_thread(self.cache.get, task.cache_key)
            if cached is not None:
                logger.debug(f"Task {task.name} served from cache", extra={"task_id": task.id})
                return TaskResult.ok(
                    task.id, cached, duration=time.perf_counter() - started, from_cache=True
                )

        max_retries = task.max_retries if task.max_retries is not None else self.config.default_retries
        timeout = task.timeout if task.timeout is not None else self.config.default_timeout
        max_attempts = max_retries + 1

        last_error: WorkflowError | None = None
        for attempt in range(max_attempts):
            task_context = TaskContext(
                values=context,
                dependencies=dependencies,
                attempt=attempt + 1,
                max_attempts=max_attempts,
            )
            logger.debug(
                f"Executing task: {task.name} (attempt {attempt + 1})",
                extra={"task_id": task.id, "attempt": attempt + 1},
            )

            deadline = asyncio.timeout(timeout)
            try:
                async with deadline:
                    value = await self._invoke(task, task_context)
            except TimeoutError as e:
                # The action may raise TimeoutError itself (e.g. a socket read).
                if deadline.expired():
                    last_error = TaskTimeout(task.id, timeout)
                else:
                    last_error = TaskExecutionError(task.id, attempt + 1, e)
            except Exception as e:
                last_error = TaskExecutionError(task.id, attempt + 1, e)
            else:
                await self._store(task, value)
                logger.info(
                    f"Task {task.name} completed",
                    extra={"task_id": task.id, "attempt": attempt + 1},
                )
                return TaskResult.ok(task.id, value, duration=time.perf_counter() - started)

            logger.warning(
                f"Task {task.name} failed (attempt {attempt + 1}/{max_attempts}): {last_error}",
                extra={"task_id": task.id, "attempt": attempt + 1},
            )
            if attempt < max_retries:
                delay = backoff_delay(
                    attempt, self.config.retry_base_delay, self.config.retry_max_delay
                )
                logger.info(
                    f"Retrying task {task.name} in {delay:g}s",
                    extra={"task_id": task.id, "delay_seconds": delay},
                )
                await self._sleep(delay)

        assert last_error is not None
        logger.error(
            f"Task {task.name} failed after {max_attempts} attempt(s)",
            extra={"task_id": task.id, "error": str(last_error)},
        )
        return TaskResult.failed(task.id, str(last_error), duration=time.perf_counter() - started)

    async def _invoke(self, task: Task, context: TaskContext) -> Any:
        if inspect.iscoroutinefunction(task.action):
            return await task.action(context)

        # Plain callables run in a worker thread so the timeout still applies.
        # The thread itself cannot be interrupted and finishes in the background.
        result = await asyncio.to_thread(task.action, context)
        if inspect.isawaitable(result):
            return await result
        return result

    async def _store(self, task: Task, value: Any) -> None:
        if not (self.caching_enabled and task.cache_key) or value is None:
            return
        assert self.cache is not None
        ttl = task.cache_ttl if task.cache_ttl is not None else self.config.default_cache_ttl
        try:
            await asyncio.to_thread(
                self.cache.set, task.cache_key, value, ttl, sorted(task.effective_tags)
            )
        except Exception:
            logger.exception(
                f"Failed to cache result of task {task.name}",
                extra={"task_id": task.id, "cache_key": task.cache_key},
            )
