"""Test configuration and fixtures."""

from pathlib import Path

import pytest

from workflow_engine.cache.cache import Cache
from workflow_engine.core.config import CacheConfig, EngineConfig, WorkflowConfig


class FakeClock:
    """Manually advanced wall clock (epoch seconds)."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Keep a developer's .env or WORKFLOW_ENGINE_* variables out of tests."""
    import os

    for name in list(os.environ):
        if name.startswith("WORKFLOW_ENGINE_"):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache_dir(tmp_path: Path) -> Path:
    """Provide a temporary persistent cache directory."""
    path = tmp_path / ".cache"
    path.mkdir()
    return path


@pytest.fixture
def cache_config(cache_dir: Path) -> CacheConfig:
    """Provide a test cache configuration backed by a temp directory."""
    return CacheConfig(
        memory_max_entries=100,
        default_ttl=60.0,
        persistent_enabled=True,
        directory=cache_dir,
        persistent_max_mb=1.0,
    )


@pytest.fixture
def memory_cache_config() -> CacheConfig:
    """Provide a cache configuration without the persistent tier."""
    return CacheConfig(memory_max_entries=100, default_ttl=60.0, persistent_enabled=False)


@pytest.fixture
def cache(cache_config: CacheConfig, clock: FakeClock) -> Cache:
    return Cache(cache_config, clock=clock)


@pytest.fixture
def memory_cache(memory_cache_config: CacheConfig, clock: FakeClock) -> Cache:
    return Cache(memory_cache_config, clock=clock)


@pytest.fixture
def workflow_config() -> WorkflowConfig:
    """Provide a workflow configuration with fast retries."""
    return WorkflowConfig(
        max_concurrency=4,
        adaptive_concurrency=False,
        default_timeout=2.0,
        default_retries=0,
        retry_base_delay=0.0,
        retry_max_delay=0.0,
    )


@pytest.fixture
def engine_config(workflow_config: WorkflowConfig, cache_config: CacheConfig) -> EngineConfig:
    """Provide a test engine configuration."""
    return EngineConfig(
        log_level="DEBUG",
        debug=True,
        workflow=workflow_config,
        cache=cache_config,
    )
