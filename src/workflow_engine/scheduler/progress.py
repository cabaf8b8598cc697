"""Progress snapshots for running workflows."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable
from datetime import UTC, datetime

from workflow_engine.scheduler.models import TaskResult, WorkflowProgress

logger = logging.getLogger(__name__)

ProgressObserver = Callable[[WorkflowProgress], None]


class ProgressReporter:
    """Derive progress snapshots from running totals and fan them out.

    Observers are isolated from each other and from the scheduler: an
    observer that raises is logged and the remaining observers still run.
    """

    def __init__(
        self,
        observers: Iterable[ProgressObserver] | None = None,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._observers: list[ProgressObserver] = list(observers or [])
        self._clock = clock
        self._completed_durations: list[float] = []
        self.last: WorkflowProgress | None = None

    def subscribe(self, observer: ProgressObserver) -> None:
        self._observers.append(observer)

    def unsubscribe(self, observer: ProgressObserver) -> None:
        try:
            self._observers.remove(observer)
        except ValueError:
            pass

    def record(self, result: TaskResult) -> None:
        """Feed a finished task into the completion-time estimate."""
        if result.success:
            self._completed_durations.append(result.duration)

    def notify(
        self,
        total: int,
        completed: int,
        failed: int,
        running: Iterable[str] = (),
    ) -> WorkflowProgress:
        progress = WorkflowProgress(
            total_tasks=total,
            completed_tasks=completed,
            failed_tasks=failed,
            currently_running=frozenset(running),
            percent_complete=(completed + failed) / total * 100 if total > 0 else 0.0,
            estimated_completion_time=self._estimate_completion(total, completed, failed),
        )
        self.last = progress

        for observer in list(self._observers):
            try:
                observer(progress)
            except Exception:
                logger.exception(
                    "Progress observer failed",
                    extra={"observer": getattr(observer, "__qualname__", repr(observer))},
                )
        return progress

    def _estimate_completion(self, total: int, completed: int, failed: int) -> datetime | None:
        if not self._completed_durations:
            return None

        mean = sum(self._completed_durations) / len(self._completed_durations)
        remaining = max(0, total - completed - failed)
        return datetime.fromtimestamp(self._clock() + remaining * mean, tz=UTC)
