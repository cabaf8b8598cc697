#!/usr/bin/env python3
"""Programmatic workflow example.

This demonstrates using the engine components directly:

* load settings from `.env`
* build a small research -> outline -> draft graph
* print progress snapshots and the final statistics

Run it twice: the second run is served from the cache directory.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import random
from typing import Sequence

from workflow_engine import Engine, EngineConfig, TaskContext, WorkflowProgress, create_task


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run a small content workflow.")
    parser.add_argument("--topic", required=True, help="Topic the workflow writes about")
    parser.add_argument(
        "--flaky",
        action="store_true",
        help="Make the research step fail randomly to exercise retries",
    )
    return parser.parse_args(argv)


async def research(ctx: TaskContext) -> dict[str, object]:
    if ctx.values.get("flaky") and random.random() < 0.5:
        raise ConnectionError(f"research source unavailable (attempt {ctx.attempt})")
    await asyncio.sleep(0.2)
    return {"topic": ctx.values["topic"], "sources": 3}


async def outline(ctx: TaskContext) -> list[str]:
    await asyncio.sleep(0.1)
    return ["Introduction", f"Why {ctx.values['topic']} matters", "Conclusion"]


def draft(ctx: TaskContext) -> str:
    # Sync actions run in a worker thread.
    sections = ctx.dependencies.get("outline", [])
    facts = ctx.dependencies.get("research", {})
    return f"{len(sections)} sections drawing on {facts.get('sources', 0)} sources"


def _print_progress(progress: WorkflowProgress) -> None:
    print(json.dumps(progress.to_json()))


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)

    engine = Engine(EngineConfig())
    engine.on_progress(_print_progress)

    tasks = [
        create_task("research", "Research", research, priority=10, max_retries=3),
        create_task("outline", "Outline", outline),
        create_task("draft", "Draft", draft, dependencies=["research", "outline"]),
    ]

    results = asyncio.run(engine.run(tasks, {"topic": args.topic, "flaky": args.flaky}))

    for task_id, result in results.items():
        status = "cached" if result.from_cache else ("ok" if result.success else "failed")
        print(f"{task_id}: {status} {result.value if result.success else result.error_message}")

    stats = engine.statistics(results)
    print(f"Completed {stats.completed_tasks}/{stats.total_tasks}, cache hit rate {stats.cache_hit_rate:.0%}")
    return 0 if stats.failed_tasks == 0 else 1


if __name__ == "__main__":
    raise SystemExit(main())
