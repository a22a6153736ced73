"""
Engine configuration

Dataclass configs for each service plus an environment loader. Values
can be supplied through a .env file (python-dotenv) or the process
environment.
"""

import os
import sys
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv
from loguru import logger


@dataclass
class StoreConfig:
    """Configuration for the order store"""

    database_url: str = "sqlite:///orders.db"
    max_concurrent_calls: int = 5          # Store calls in flight at once
    echo_sql: bool = False


@dataclass
class QueueConfig:
    """Configuration for the job queue"""

    name: str = "orders"
    default_attempts: int = 3              # Total attempts per job
    default_backoff_ms: float = 500.0      # Base delay for exponential backoff
    keep_finished_jobs: int = 1000         # Completed/failed jobs retained before eviction


@dataclass
class WorkerConfig:
    """Configuration for the worker pool and state machine"""

    concurrency: int = 10                  # Jobs processed simultaneously
    transition_delay_ms: float = 0.0       # Pause between lifecycle transitions


@dataclass
class BusConfig:
    """Configuration for the notification bus"""

    subscriber_buffer: int = 100           # Events buffered per stream before dropping


@dataclass
class EngineConfig:
    """Top-level configuration for the order engine"""

    store: StoreConfig = field(default_factory=StoreConfig)
    queue: QueueConfig = field(default_factory=QueueConfig)
    worker: WorkerConfig = field(default_factory=WorkerConfig)
    bus: BusConfig = field(default_factory=BusConfig)

    # Mock quote source latency multiplier (0 disables simulated latency)
    quote_latency_scale: float = 1.0

    log_level: str = "INFO"
    log_file: Optional[str] = None

    @classmethod
    def from_env(cls, dotenv_path: Optional[str] = None) -> 'EngineConfig':
        """Build a config from environment variables (and .env if present)"""
        load_dotenv(dotenv_path)

        return cls(
            store=StoreConfig(
                database_url=os.getenv('DATABASE_URL', StoreConfig.database_url),
                max_concurrent_calls=int(os.getenv('STORE_MAX_CONCURRENCY', StoreConfig.max_concurrent_calls)),
            ),
            queue=QueueConfig(
                name=os.getenv('ORDER_QUEUE_NAME', QueueConfig.name),
                default_attempts=int(os.getenv('JOB_ATTEMPTS', QueueConfig.default_attempts)),
                default_backoff_ms=float(os.getenv('JOB_BACKOFF_MS', QueueConfig.default_backoff_ms)),
                keep_finished_jobs=int(os.getenv('JOB_KEEP_FINISHED', QueueConfig.keep_finished_jobs)),
            ),
            worker=WorkerConfig(
                concurrency=int(os.getenv('WORKER_CONCURRENCY', WorkerConfig.concurrency)),
                transition_delay_ms=float(os.getenv('TRANSITION_DELAY_MS', WorkerConfig.transition_delay_ms)),
            ),
            bus=BusConfig(
                subscriber_buffer=int(os.getenv('SUBSCRIBER_BUFFER', BusConfig.subscriber_buffer)),
            ),
            quote_latency_scale=float(os.getenv('QUOTE_LATENCY_SCALE', 1.0)),
            log_level=os.getenv('LOG_LEVEL', 'INFO'),
            log_file=os.getenv('LOG_FILE') or None,
        )


def configure_logging(level: str = "INFO", log_file: Optional[str] = None) -> None:
    """Install loguru sinks: stderr always, a rotating file when requested"""
    logger.remove()
    logger.add(sys.stderr, level=level.upper())

    if log_file:
        logger.add(log_file, level=level.upper(), rotation="10 MB", retention=5)
