"""Engine facade wiring configuration, cache and scheduler together."""

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from workflow_engine.cache.cache import Cache
from workflow_engine.core.config import EngineConfig
from workflow_engine.scheduler.models import Task, TaskResult, WorkflowStatistics
from workflow_engine.scheduler.progress import ProgressObserver
from workflow_engine.scheduler.scheduler import DependencyScheduler, summarize_results

logger = logging.getLogger(__name__)


class Engine:
    """Entry point for callers that build task graphs.

    The engine owns one cache and one scheduler built from the same
    configuration. Construct one per process (or per test) and pass it to
    whoever needs it; there is no module-level instance.
    """

    def __init__(self, config: EngineConfig | None = None, *, configure_logging: bool = True) -> None:
        """Initialize the engine.

        Args:
            config: Configuration object. If None, loads from environment.
            configure_logging: Install the JSON log handler on the root logger.
        """
        self.config = config or EngineConfig()
        if configure_logging:
            self.config.setup_logging()

        logger.info("Initializing workflow engine")

        self.cache: Cache = Cache(self.config.cache)
        self.scheduler: DependencyScheduler = DependencyScheduler(
            self.config.workflow, self.cache
        )

        logger.info(
            "Workflow engine initialized",
            extra={
                "max_concurrency": self.config.workflow.max_concurrency,
                "caching": self.config.workflow.enable_caching,
                "persistent_cache": self.cache.persistent_enabled,
            },
        )

    def on_progress(self, observer: ProgressObserver) -> None:
        self.scheduler.on_progress(observer)

    async def run(
        self,
        tasks: Iterable[Task],
        context: Mapping[str, Any] | None = None,
    ) -> dict[str, TaskResult]:
        """Run a task graph. See `DependencyScheduler.run`."""
        return await self.scheduler.run(tasks, context)

    @staticmethod
    def statistics(results: Mapping[str, TaskResult]) -> WorkflowStatistics:
        return summarize_results(results)
