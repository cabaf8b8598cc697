"""Core configuration for the workflow engine."""

import logging
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from workflow_engine.logging import configure_logging


class WorkflowConfig(BaseSettings):
    """Configuration for scheduling and executing task graphs."""

    max_concurrency: int = Field(
        default=5,
        gt=0,
        description="Upper bound on tasks running at once within a batch",
    )
    adaptive_concurrency: bool = Field(
        default=True,
        description="Cap batch concurrency by a hardware-parallelism heuristic",
    )
    enable_progress: bool = Field(
        default=True,
        description="Notify progress observers while a workflow runs",
    )
    enable_caching: bool = Field(
        default=True,
        description="Consult and populate the cache for tasks with a cache key",
    )

    default_timeout: float = Field(
        default=30.0,
        gt=0,
        description="Per-attempt timeout (seconds) for tasks that do not set one",
    )
    default_retries: int = Field(
        default=2,
        ge=0,
        description="Retries after the first attempt for tasks that do not set one",
    )
    retry_base_delay: float = Field(
        default=1.0,
        ge=0,
        description="Backoff before the first retry (seconds); doubles per attempt",
    )
    retry_max_delay: float = Field(
        default=10.0,
        ge=0,
        description="Upper bound for the backoff delay (seconds)",
    )
    default_cache_ttl: float = Field(
        default=300.0,
        gt=0,
        description="TTL (seconds) for cached task results without their own TTL",
    )

    skip_dependents_on_failure: bool = Field(
        default=False,
        description=(
            "If true, a task whose dependency failed is recorded as failed without running. "
            "If false, it runs and simply does not receive the failed dependency's value."
        ),
    )

    model_config = SettingsConfigDict(
        env_prefix="WORKFLOW_ENGINE_WORKFLOW_",
        env_file=".env",
        extra="ignore",
    )


class CacheConfig(BaseSettings):
    """Configuration for the two-tier cache."""

    memory_max_entries: int = Field(
        default=1000,
        gt=0,
        description="Capacity of the in-process tier (entries)",
    )
    default_ttl: float = Field(
        default=300.0,
        gt=0,
        description="TTL (seconds) for entries written without an explicit TTL",
    )

    persistent_enabled: bool = Field(
        default=True,
        description="Mirror entries to one file per key on disk",
    )
    directory: Path = Field(
        default=Path(".cache"),
        description="Directory holding the persistent tier",
    )
    persistent_max_mb: float = Field(
        default=100.0,
        gt=0,
        description="Disk budget (MB) for the persistent tier",
    )

    model_config = SettingsConfigDict(
        env_prefix="WORKFLOW_ENGINE_CACHE_",
        env_file=".env",
        extra="ignore",
    )

    @property
    def persistent_max_bytes(self) -> int:
        """Disk budget for the persistent tier in bytes."""

        return int(self.persistent_max_mb * 1024 * 1024)


class EngineConfig(BaseSettings):
    """Main configuration for the engine."""

    log_level: str = Field(
        default="INFO",
        description="Logging level",
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode",
    )

    workflow: WorkflowConfig = Field(
        default_factory=WorkflowConfig,
        description="Scheduler configuration",
    )
    cache: CacheConfig = Field(
        default_factory=CacheConfig,
        description="Cache configuration",
    )

    model_config = SettingsConfigDict(
        env_prefix="WORKFLOW_ENGINE_",
        env_file=".env",
        extra="ignore",
    )

    def setup_logging(self) -> None:
        """Configure logging based on settings."""
        level = self.log_level.upper()
        if not isinstance(getattr(logging, level, None), int):
            level = "INFO"
        configure_logging(level)

        if self.debug:
            logging.getLogger("workflow_engine").setLevel(logging.DEBUG)
