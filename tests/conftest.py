"""
Shared fixtures for the order engine tests
"""

import pytest
import pytest_asyncio

from order_engine.bus import LocalTransport, NotificationBus
from order_engine.config import EngineConfig, QueueConfig, StoreConfig, WorkerConfig
from order_engine.jobs import JobQueue
from order_engine.store import OrderStore


@pytest.fixture
def store_config(tmp_path):
    return StoreConfig(database_url=f"sqlite:///{tmp_path / 'orders.db'}")


@pytest.fixture
def engine_config(store_config):
    return EngineConfig(
        store=store_config,
        queue=QueueConfig(default_attempts=3, default_backoff_ms=10.0),
        worker=WorkerConfig(concurrency=4),
        quote_latency_scale=0.0,
    )


@pytest_asyncio.fixture
async def order_store(store_config):
    store = OrderStore(store_config)
    await store.initialize()
    yield store
    await store.close()


@pytest_asyncio.fixture
async def bus():
    notification_bus = NotificationBus(LocalTransport())
    await notification_bus.initialize()
    yield notification_bus
    await notification_bus.close()


@pytest_asyncio.fixture
async def job_queue():
    queue = JobQueue(QueueConfig(name="test-orders"))
    await queue.initialize()
    yield queue
    await queue.close()
