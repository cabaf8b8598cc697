"""Unit tests for configuration."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from workflow_engine.core.config import CacheConfig, EngineConfig, WorkflowConfig


def test_workflow_config_defaults() -> None:
    """Test workflow config default values."""
    config = WorkflowConfig()

    assert config.max_concurrency == 5
    assert config.adaptive_concurrency is True
    assert config.enable_progress is True
    assert config.enable_caching is True
    assert config.default_timeout == 30.0
    assert config.default_retries == 2
    assert config.retry_base_delay == 1.0
    assert config.retry_max_delay == 10.0
    assert config.default_cache_ttl == 300.0
    assert config.skip_dependents_on_failure is False


def test_cache_config_defaults() -> None:
    """Test cache config default values."""
    config = CacheConfig()

    assert config.memory_max_entries == 1000
    assert config.default_ttl == 300.0
    assert config.persistent_enabled is True
    assert config.directory == Path(".cache")
    assert config.persistent_max_bytes == 100 * 1024 * 1024


def test_engine_config_composition() -> None:
    """Test engine config with nested configs."""
    config = EngineConfig(log_level="DEBUG", debug=True)

    assert config.log_level == "DEBUG"
    assert config.debug is True
    assert isinstance(config.workflow, WorkflowConfig)
    assert isinstance(config.cache, CacheConfig)


def test_workflow_config_rejects_non_positive_concurrency() -> None:
    with pytest.raises(ValidationError):
        WorkflowConfig(max_concurrency=0)


def test_workflow_config_rejects_negative_retries() -> None:
    with pytest.raises(ValidationError):
        WorkflowConfig(default_retries=-1)


def test_workflow_config_reads_prefixed_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("WORKFLOW_ENGINE_WORKFLOW_MAX_CONCURRENCY", "9")
    monkeypatch.setenv("WORKFLOW_ENGINE_WORKFLOW_ADAPTIVE_CONCURRENCY", "false")

    config = WorkflowConfig()

    assert config.max_concurrency == 9
    assert config.adaptive_concurrency is False


def test_cache_config_loads_from_dotenv(tmp_path: Path) -> None:
    (tmp_path / ".env").write_text(
        "\n".join(
            [
                "WORKFLOW_ENGINE_CACHE_MEMORY_MAX_ENTRIES=7",
                "WORKFLOW_ENGINE_CACHE_PERSISTENT_ENABLED=false",
                "",
            ]
        ),
        encoding="utf-8",
    )

    config = CacheConfig()

    assert config.memory_max_entries == 7
    assert config.persistent_enabled is False
