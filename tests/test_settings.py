import os
from unittest.mock import patch

import pytest

from background_jobs.config.settings import Settings, StorageBackend, get_settings
from background_jobs.worker.config import WorkerConfig


def test_default_settings():
    """Test default settings values."""
    with patch.dict(os.environ, {}, clear=True):
        settings = Settings(_env_file=None)

    assert settings.app_name == "Background Jobs"
    assert settings.version == "1.0.0"
    assert settings.environment == "development"
    assert settings.storage_backend == StorageBackend.DURABLE
    assert settings.worker_batch_size == 10
    assert settings.worker_poll_interval == 1.0
    assert settings.worker_max_backoff == 60.0
    assert settings.worker_task_timeout is None
    assert settings.metrics_port == 9100
    assert settings.retry_backoff_base == 0.0


def test_settings_from_environment():
    """Test the worker environment variables."""
    env = {
        "STORAGE_BACKEND": "memory",
        "WORKER_BATCH_SIZE": "25",
        "WORKER_POLL_INTERVAL": "0.5",
        "METRICS_PORT": "9200",
        "RETRY_BACKOFF_BASE": "5",
    }
    with patch.dict(os.environ, env, clear=True):
        settings = Settings(_env_file=None)

    assert settings.storage_backend == StorageBackend.MEMORY
    assert settings.worker_batch_size == 25
    assert settings.worker_poll_interval == 0.5
    assert settings.metrics_port == 9200
    assert settings.retry_backoff_base == 5.0


def test_invalid_batch_size_is_rejected():
    with pytest.raises(ValueError, match="WORKER_BATCH_SIZE"):
        Settings(_env_file=None, worker_batch_size=0)


def test_invalid_poll_interval_is_rejected():
    with pytest.raises(ValueError, match="WORKER_POLL_INTERVAL"):
        Settings(_env_file=None, worker_poll_interval=0)


def test_max_backoff_below_poll_interval_is_rejected():
    with pytest.raises(ValueError, match="WORKER_MAX_BACKOFF"):
        Settings(_env_file=None, worker_poll_interval=10, worker_max_backoff=5)


def test_invalid_task_timeout_is_rejected():
    with pytest.raises(ValueError, match="WORKER_TASK_TIMEOUT"):
        Settings(_env_file=None, worker_task_timeout=0)


def test_settings_dependency_injection():
    """Test the get_settings dependency function."""
    settings = get_settings()
    assert isinstance(settings, Settings)


def test_worker_config_defaults():
    config = WorkerConfig()

    assert config.batch_size == 10
    assert config.poll_interval == 1.0
    assert config.max_backoff == 60.0
    assert config.metrics_port == 9100


def test_worker_config_from_settings_with_overrides():
    """Test that explicit overrides win and None keeps the setting."""
    settings = Settings(_env_file=None, worker_batch_size=20, metrics_port=9300)

    config = WorkerConfig.from_settings(settings, batch_size=5, metrics_port=None)

    assert config.batch_size == 5
    assert config.metrics_port == 9300
    assert config.poll_interval == settings.worker_poll_interval
