"""
Configuration loading tests
"""

import pytest
from loguru import logger

from order_engine.config import EngineConfig, configure_logging

ENV_KEYS = [
    'DATABASE_URL', 'STORE_MAX_CONCURRENCY', 'ORDER_QUEUE_NAME', 'JOB_ATTEMPTS', 'JOB_BACKOFF_MS', 'JOB_KEEP_FINISHED',
    'WORKER_CONCURRENCY', 'TRANSITION_DELAY_MS', 'SUBSCRIBER_BUFFER', 'QUOTE_LATENCY_SCALE',
    'LOG_LEVEL', 'LOG_FILE',
]


@pytest.fixture
def clean_env(monkeypatch):
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    return monkeypatch


class TestEngineConfig:
    """EngineConfig.from_env"""

    def test_defaults(self, clean_env, tmp_path):
        config = EngineConfig.from_env(str(tmp_path / "missing.env"))

        assert config.store.database_url == "sqlite:///orders.db"
        assert config.queue.default_attempts == 3
        assert config.queue.default_backoff_ms == 500.0
        assert config.worker.concurrency == 10
        assert config.worker.transition_delay_ms == 0.0
        assert config.queue.keep_finished_jobs == 1000
        assert config.log_file is None

    def test_environment_overrides(self, clean_env, tmp_path):
        clean_env.setenv('WORKER_CONCURRENCY', '3')
        clean_env.setenv('JOB_BACKOFF_MS', '250')
        clean_env.setenv('TRANSITION_DELAY_MS', '1000')
        clean_env.setenv('JOB_KEEP_FINISHED', '50')

        config = EngineConfig.from_env(str(tmp_path / "missing.env"))

        assert config.worker.concurrency == 3
        assert config.queue.default_backoff_ms == 250.0
        assert config.worker.transition_delay_ms == 1000.0
        assert config.queue.keep_finished_jobs == 50

    def test_dotenv_file(self, clean_env, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text(
            "DATABASE_URL=sqlite:///from-dotenv.db\n"
            "JOB_ATTEMPTS=5\n"
            "ORDER_QUEUE_NAME=swaps\n"
        )
        # load_dotenv writes into os.environ; let monkeypatch restore it
        for key in ('DATABASE_URL', 'JOB_ATTEMPTS', 'ORDER_QUEUE_NAME'):
            clean_env.setenv(key, '')
            clean_env.delenv(key)

        config = EngineConfig.from_env(str(env_file))

        assert config.store.database_url == "sqlite:///from-dotenv.db"
        assert config.queue.default_attempts == 5
        assert config.queue.name == "swaps"


class TestLogging:

    def test_file_sink(self, tmp_path):
        log_file = tmp_path / "engine.log"
        try:
            configure_logging("debug", str(log_file))
            logger.debug("order engine started")
        finally:
            configure_logging("INFO")

        assert "order engine started" in log_file.read_text()
