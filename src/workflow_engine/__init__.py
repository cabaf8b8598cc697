"""Workflow Engine.

Runs directed acyclic graphs of named, optionally cached, possibly failing
tasks:
- topological batching with bounded concurrency per batch
- per-task timeout and retry with exponential backoff
- a two-tier (memory + disk) cache with TTL and tag invalidation
- progress snapshots for streaming to clients
"""

__version__ = "0.1.0"

from workflow_engine.cache.cache import Cache
from workflow_engine.core.config import CacheConfig, EngineConfig, WorkflowConfig
from workflow_engine.core.engine import Engine
from workflow_engine.scheduler.models import Task, TaskContext, TaskResult, WorkflowProgress, create_task
from workflow_engine.scheduler.scheduler import DependencyScheduler

__all__ = [
    "__version__",
    "Cache",
    "CacheConfig",
    "DependencyScheduler",
    "Engine",
    "EngineConfig",
    "Task",
    "TaskContext",
    "TaskResult",
    "WorkflowConfig",
    "WorkflowProgress",
    "create_task",
]
