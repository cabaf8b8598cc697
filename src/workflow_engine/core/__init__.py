"""Core package initialization."""

from workflow_engine.core.config import CacheConfig, EngineConfig, WorkflowConfig
from workflow_engine.core.errors import (
    CacheIOError,
    CycleDetected,
    DuplicateTaskId,
    TaskExecutionError,
    TaskTimeout,
    UnknownDependency,
    WorkflowConfigurationError,
    WorkflowError,
)

__all__ = [
    "CacheConfig",
    "CacheIOError",
    "CycleDetected",
    "DuplicateTaskId",
    "EngineConfig",
    "TaskExecutionError",
    "TaskTimeout",
    "UnknownDependency",
    "WorkflowConfig",
    "WorkflowConfigurationError",
    "WorkflowError",
]
