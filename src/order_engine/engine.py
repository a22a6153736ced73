"""
Order Engine - service container for the execution pipeline

Constructs the order store, notification bus, job queue and worker pool,
wires the state machine between them and owns their init/close lifecycle.
Exposes the two calls an ingress layer makes into the core: submitting an
order and subscribing to its status events.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Optional, Union

from loguru import logger

from .bus.notification_bus import NotificationBus, Subscription
from .config import EngineConfig
from .errors import OrderEngineError, StoreUnavailableError, ValidationError
from .execution.latency_monitor import LatencyMonitor
from .execution.quote_source import MockQuoteSource, QuoteSource
from .execution.state_machine import OrderStateMachine
from .jobs.job_queue import BackoffPolicy, JobHandle, JobOptions, JobQueue
from .jobs.job_store import JobStore
from .jobs.worker_pool import WorkerPool
from .orders.order_schemas import Order, OrderStatus
from .store.order_store import OrderStore


EXECUTE_JOB = 'execute'


@dataclass
class OrderSubmission:
    """Result of submitting an order"""

    order: Order
    job: JobHandle
    subscription: Optional[Subscription] = None

    @property
    def order_id(self) -> str:
        return self.order.order_id


class OrderEngine:
    """
    Main entry point of the order execution pipeline

    Usage:
        async with OrderEngine(config) as engine:
            submission = await engine.submit_order("SOL", "USDC", 10, subscribe=True)
            async for event in submission.subscription:
                ...
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        quote_source: Optional[QuoteSource] = None,
        store: Optional[OrderStore] = None,
        bus: Optional[NotificationBus] = None,
        queue: Optional[JobQueue] = None
    ):
        self.config = config or EngineConfig()

        self.quote_source = quote_source or MockQuoteSource(latency_scale=self.config.quote_latency_scale)
        self.store = store or OrderStore(self.config.store)
        self.bus = bus or NotificationBus(config=self.config.bus)
        self.queue = queue or JobQueue(self.config.queue, job_store=JobStore(self.store))
        self.latency_monitor = LatencyMonitor()

        self.state_machine = OrderStateMachine(
            store=self.store,
            bus=self.bus,
            quote_source=self.quote_source,
            config=self.config.worker,
            latency_monitor=self.latency_monitor,
        )
        self.workers = WorkerPool(self.queue, self.state_machine, self.config.worker)

        self.initialized = False
        self._jobs: Dict[str, JobHandle] = {}

    async def initialize(self) -> None:
        """Start all services, recover unfinished work, then start workers"""
        logger.info("Initializing Order Engine...")
        await self.store.initialize()
        await self.bus.initialize()
        for handle in await self.queue.initialize():
            self._track(handle)
        await self._requeue_orphaned_orders()
        await self.workers.start()
        self.initialized = True
        logger.info("Order Engine initialized")

    async def close(self) -> None:
        """Stop workers after their current jobs, then close services"""
        if not self.initialized:
            return
        await self.workers.stop()
        await self.queue.close()
        await self.bus.close()
        await self.store.close()
        self.initialized = False
        logger.info("Order Engine closed")

    async def __aenter__(self) -> 'OrderEngine':
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def submit_order(
        self,
        token_in: Any,
        token_out: Any,
        amount: Union[Decimal, float, int, str],
        subscribe: bool = False,
        attempts: Optional[int] = None,
        backoff_ms: Optional[float] = None
    ) -> OrderSubmission:
        """
        Validate, persist and enqueue a new order.

        With ``subscribe=True`` a status stream is opened before the job is
        enqueued, so it sees every event from PENDING on.

        Raises:
            ValidationError: malformed order or job options
            StoreUnavailableError: order or its job could not be persisted
        """
        if not self.initialized:
            raise OrderEngineError("Order Engine is not initialized")

        options = self._job_options(attempts, backoff_ms)
        order = Order.new(token_in, token_out, amount)
        await self.store.create_order(order)
        logger.info(f"Created order {order.order_id}: {order.amount} {order.token_in}->{order.token_out}")

        subscription = self.bus.stream(order.order_id) if subscribe else None

        try:
            handle = await self.queue.enqueue(EXECUTE_JOB, order.to_dict(), options)
        except OrderEngineError as e:
            if subscription is not None:
                subscription.close()
            await self._abandon(order, e)
            raise
        self._track(handle)

        return OrderSubmission(order=order, job=handle, subscription=subscription)

    def subscribe(self, order_id: str) -> Subscription:
        """Stream status events published for the order from now on"""
        return self.bus.stream(order_id)

    async def get_order(self, order_id: str) -> Optional[Order]:
        return await self.store.get_order(order_id)

    async def wait_for_order(self, order_id: str, timeout: Optional[float] = None) -> Optional[Order]:
        """Wait for the order's job to finish and return the stored order"""
        handle = self._jobs.get(order_id)
        if handle is not None:
            await handle.wait_until_finished(timeout)
        return await self.store.get_order(order_id)

    async def health_check(self) -> Dict[str, Any]:
        return {
            'store': await self.store.health_check(),
            'bus': self.bus.transport.available,
            'workers': self.workers.running,
            'queue': self.queue.counts(),
        }

    def get_stats(self) -> Dict[str, Any]:
        return {
            'workers': self.workers.get_stats(),
            'queue': self.queue.counts(),
            'events_published': self.bus.events_published,
            'events_dropped': self.bus.events_dropped,
            'latency': self.latency_monitor.get_summary(),
        }

    def _job_options(self, attempts: Optional[int] = None, backoff_ms: Optional[float] = None) -> JobOptions:
        try:
            return JobOptions(
                attempts=attempts if attempts is not None else self.config.queue.default_attempts,
                backoff=BackoffPolicy.exponential(
                    backoff_ms if backoff_ms is not None else self.config.queue.default_backoff_ms
                ),
            )
        except ValueError as e:
            raise ValidationError(str(e)) from e

    def _track(self, handle: JobHandle) -> None:
        """Remember the order's job until it finishes"""
        order_id = handle.job.payload.get('order_id')
        if order_id is None:
            return
        self._jobs[order_id] = handle

        def forget(done: JobHandle) -> None:
            if self._jobs.get(order_id) is done:
                del self._jobs[order_id]

        handle.add_done_callback(forget)

    async def _requeue_orphaned_orders(self) -> None:
        """Enqueue unfinished orders that have no job, e.g. after a crash between create and enqueue"""
        for order in await self.store.get_unfinished_orders():
            if order.order_id in self._jobs:
                continue
            self._track(await self.queue.enqueue(EXECUTE_JOB, order.to_dict(), self._job_options()))
            logger.warning(f"Re-enqueued order {order.order_id} found {order.status.value} without a job")

    async def _abandon(self, order: Order, error: Exception) -> None:
        """Fail an order whose job could not be enqueued"""
        try:
            await self.store.update_order_status(
                order.order_id, OrderStatus.FAILED, error=f"enqueue failed: {error}", attempts=0
            )
        except StoreUnavailableError as e:
            logger.error(f"Could not mark order {order.order_id} failed: {e}")
