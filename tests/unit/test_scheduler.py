"""Unit tests for the dependency scheduler.

These tests intentionally avoid timing assertions beyond ordering; actions
record when they start and finish instead.
"""

from __future__ import annotations

import asyncio

import pytest

from workflow_engine.cache.cache import Cache
from workflow_engine.core.config import WorkflowConfig
from workflow_engine.core.errors import CycleDetected, UnknownDependency
from workflow_engine.scheduler.models import Task, TaskContext, TaskResult, WorkflowProgress
from workflow_engine.scheduler.scheduler import DependencyScheduler, summarize_results


class Recorder:
    """Action factory that logs start/finish events and tracks overlap."""

    def __init__(self) -> None:
        self.events: list[str] = []
        self.active = 0
        self.peak = 0

    def action(self, task_id: str, value: object = None, *, delay: float = 0.01, fail: bool = False):
        async def _run(ctx: TaskContext) -> object:
            self.events.append(f"start:{task_id}")
            self.active += 1
            self.peak = max(self.peak, self.active)
            try:
                await asyncio.sleep(delay)
                if fail:
                    raise RuntimeError(f"{task_id} exploded")
                return value if value is not None else f"{task_id}-done"
            finally:
                self.active -= 1
                self.events.append(f"end:{task_id}")

        return _run


def _task(recorder: Recorder, task_id: str, *deps: str, **kwargs: object) -> Task:
    fail = bool(kwargs.pop("fail", False))
    value = kwargs.pop("value", None)
    return Task(
        id=task_id,
        name=task_id.title(),
        action=recorder.action(task_id, value, fail=fail),
        dependencies=frozenset(deps),
        **kwargs,  # type: ignore[arg-type]
    )


@pytest.mark.asyncio
async def test_every_task_gets_exactly_one_result(workflow_config: WorkflowConfig) -> None:
    recorder = Recorder()
    tasks = [_task(recorder, f"t{i}") for i in range(6)] + [_task(recorder, "join", "t0", "t5")]

    results = await DependencyScheduler(workflow_config).run(tasks)

    assert set(results) == {t.id for t in tasks}
    assert all(results[t.id].task_id == t.id for t in tasks)
    assert all(r.success for r in results.values())


@pytest.mark.asyncio
async def test_cycle_raises_before_any_action_runs(workflow_config: WorkflowConfig) -> None:
    recorder = Recorder()
    tasks = [_task(recorder, "ok"), _task(recorder, "A", "B"), _task(recorder, "B", "A")]

    with pytest.raises(CycleDetected):
        await DependencyScheduler(workflow_config).run(tasks)

    assert recorder.events == []


@pytest.mark.asyncio
async def test_unknown_dependency_raises_before_any_action_runs(
    workflow_config: WorkflowConfig,
) -> None:
    recorder = Recorder()

    with pytest.raises(UnknownDependency):
        await DependencyScheduler(workflow_config).run(
            [_task(recorder, "ok"), _task(recorder, "A", "missing")]
        )

    assert recorder.events == []


@pytest.mark.asyncio
async def test_dependents_start_after_dependencies_finish(workflow_config: WorkflowConfig) -> None:
    recorder = Recorder()
    tasks = [
        _task(recorder, "research"),
        _task(recorder, "outline"),
        _task(recorder, "draft", "research", "outline"),
    ]

    await DependencyScheduler(workflow_config).run(tasks)

    draft_start = recorder.events.index("start:draft")
    assert recorder.events.index("end:research") < draft_start
    assert recorder.events.index("end:outline") < draft_start


@pytest.mark.asyncio
async def test_concurrency_never_exceeds_limit(workflow_config: WorkflowConfig) -> None:
    recorder = Recorder()
    tasks = [_task(recorder, f"t{i}") for i in range(10)]

    results = await DependencyScheduler(workflow_config).run(tasks)

    assert len(results) == 10
    assert recorder.peak == workflow_config.max_concurrency


@pytest.mark.asyncio
async def test_adaptive_concurrency_caps_by_cpu_hint() -> None:
    config = WorkflowConfig(max_concurrency=8, adaptive_concurrency=True, default_retries=0)
    recorder = Recorder()
    tasks = [_task(recorder, f"t{i}") for i in range(6)]

    await DependencyScheduler(config, cpu_count=2).run(tasks)

    assert recorder.peak == 2


@pytest.mark.asyncio
async def test_chain_reports_progress_to_completion(workflow_config: WorkflowConfig) -> None:
    recorder = Recorder()
    tasks = [
        _task(recorder, "A", value=1),
        _task(recorder, "B", "A", value=2),
        _task(recorder, "C", "A", "B", value=3),
    ]
    seen: list[WorkflowProgress] = []
    scheduler = DependencyScheduler(workflow_config)
    scheduler.on_progress(seen.append)

    results = await scheduler.run(tasks)

    assert [results[t].value for t in ("A", "B", "C")] == [1, 2, 3]
    assert recorder.events == ["start:A", "end:A", "start:B", "end:B", "start:C", "end:C"]
    assert seen[0].percent_complete == 0.0
    assert seen[0].currently_running == frozenset({"A"})
    assert seen[-1].percent_complete == 100.0
    assert seen[-1].completed_tasks == 3
    assert seen[-1].currently_running == frozenset()
    assert [p.percent_complete for p in seen] == sorted(p.percent_complete for p in seen)


@pytest.mark.asyncio
async def test_progress_can_be_disabled() -> None:
    config = WorkflowConfig(enable_progress=False, adaptive_concurrency=False, default_retries=0)
    seen: list[WorkflowProgress] = []
    scheduler = DependencyScheduler(config)
    scheduler.on_progress(seen.append)

    await scheduler.run([_task(Recorder(), "only")])

    assert seen == []


@pytest.mark.asyncio
async def test_failed_task_does_not_abort_siblings(workflow_config: WorkflowConfig) -> None:
    recorder = Recorder()
    tasks = [_task(recorder, "bad", fail=True), _task(recorder, "good")]

    results = await DependencyScheduler(workflow_config).run(tasks)

    assert results["bad"].success is False
    assert results["bad"].error_message == "bad exploded"
    assert results["good"].success is True


@pytest.mark.asyncio
async def test_dependent_of_failed_task_runs_without_its_value(
    workflow_config: WorkflowConfig,
) -> None:
    received: dict[str, object] = {}

    async def fails(_ctx: TaskContext) -> None:
        raise RuntimeError("upstream broke")

    async def ok(_ctx: TaskContext) -> str:
        return "fine"

    async def downstream(ctx: TaskContext) -> str:
        received.update(ctx.dependencies)
        return "ran anyway"

    tasks = [
        Task(id="bad", name="Bad", action=fails),
        Task(id="good", name="Good", action=ok),
        Task(id="down", name="Down", action=downstream, dependencies=frozenset({"bad", "good"})),
    ]

    results = await DependencyScheduler(workflow_config).run(tasks)

    assert results["down"].success is True
    assert received == {"good": "fine"}


@pytest.mark.asyncio
async def test_dependent_of_failed_task_is_skipped_when_configured() -> None:
    config = WorkflowConfig(
        skip_dependents_on_failure=True, adaptive_concurrency=False, default_retries=0
    )
    recorder = Recorder()
    tasks = [
        _task(recorder, "bad", fail=True),
        _task(recorder, "down", "bad"),
        _task(recorder, "further", "down"),
    ]

    results = await DependencyScheduler(config).run(tasks)

    assert "start:down" not in recorder.events
    assert results["down"].success is False
    assert results["down"].error_message == "Dependency failed: bad"
    assert results["further"].error_message == "Dependency failed: down"


@pytest.mark.asyncio
async def test_raising_observer_does_not_break_run(workflow_config: WorkflowConfig) -> None:
    seen: list[WorkflowProgress] = []

    def broken(_progress: WorkflowProgress) -> None:
        raise RuntimeError("observer bug")

    scheduler = DependencyScheduler(workflow_config)
    scheduler.on_progress(broken)
    scheduler.on_progress(seen.append)

    results = await scheduler.run([_task(Recorder(), "only")])

    assert results["only"].success is True
    assert seen[-1].percent_complete == 100.0


@pytest.mark.asyncio
async def test_context_and_dependency_values_reach_actions(workflow_config: WorkflowConfig) -> None:
    async def topic(ctx: TaskContext) -> str:
        return ctx.values["topic"]

    async def title(ctx: TaskContext) -> str:
        return ctx.dependencies["topic"].upper()

    tasks = [
        Task(id="topic", name="Topic", action=topic),
        Task(id="title", name="Title", action=title, dependencies=frozenset({"topic"})),
    ]

    results = await DependencyScheduler(workflow_config).run(tasks, {"topic": "caching"})

    assert results["title"].value == "CACHING"


@pytest.mark.asyncio
async def test_second_run_is_served_from_cache(
    workflow_config: WorkflowConfig, memory_cache: Cache
) -> None:
    calls = 0

    async def expensive(_ctx: TaskContext) -> int:
        nonlocal calls
        calls += 1
        return 7

    tasks = [Task(id="x", name="X", action=expensive, cache_key="task:x")]
    scheduler = DependencyScheduler(workflow_config, memory_cache)

    first = await scheduler.run(tasks)
    second = await scheduler.run(tasks)

    assert calls == 1
    assert first["x"].from_cache is False
    assert second["x"].from_cache is True
    assert summarize_results(second).cache_hit_rate == 1.0


@pytest.mark.asyncio
async def test_empty_workflow_reports_zero_percent(workflow_config: WorkflowConfig) -> None:
    seen: list[WorkflowProgress] = []
    scheduler = DependencyScheduler(workflow_config)
    scheduler.on_progress(seen.append)

    assert await scheduler.run([]) == {}
    assert seen[0].percent_complete == 0.0


def test_summarize_results_aggregates() -> None:
    results = {
        "a": TaskResult.ok("a", 1, duration=2.0),
        "b": TaskResult.ok("b", 2, duration=4.0, from_cache=True),
        "c": TaskResult.failed("c", "boom", duration=1.0),
        "d": TaskResult.ok("d", 3, duration=0.0, from_cache=True),
    }

    stats = summarize_results(results)

    assert stats.total_tasks == 4
    assert stats.completed_tasks == 3
    assert stats.failed_tasks == 1
    assert stats.average_duration == pytest.approx(2.0)
    assert stats.total_duration == pytest.approx(7.0)
    assert stats.cache_hit_rate == pytest.approx(0.5)


def test_summarize_empty_results() -> None:
    stats = summarize_results({})

    assert stats.total_tasks == 0
    assert stats.average_duration == 0.0
    assert stats.cache_hit_rate == 0.0
