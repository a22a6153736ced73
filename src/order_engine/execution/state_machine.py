"""
Order State Machine - drives one order job through its lifecycle

    PENDING -> ROUTING -> BUILDING -> SUBMITTED -> CONFIRMED
                        (any non-terminal) -> FAILED

Every transition first persists the new status to the order store and only
then publishes the matching status event, so a subscriber that sees status S
can read S or later from the store. A failed attempt raises back to the job
queue; each retry restarts from PENDING with the original payload. FAILED is
recorded only once the queue reports the job's attempts exhausted.
"""

import asyncio
from typing import Any, Dict, Optional

from loguru import logger

from ..bus.notification_bus import NotificationBus
from ..config import WorkerConfig
from ..errors import ExecutionError, ExhaustedRetriesError
from ..jobs.job_queue import Job
from ..jobs.worker_pool import JobProcessor
from ..orders.order_schemas import ExecutionReceipt, Order, Quote, Route, Venue
from ..orders.status_events import (
    BuildingEvent, ConfirmedEvent, FailedEvent, PendingEvent, RoutingEvent, StatusEvent, SubmittedEvent
)
from ..store.order_store import OrderStore
from .latency_monitor import END_TO_END, QUOTE_FETCH, SETTLEMENT, LatencyMonitor
from .quote_source import QuoteSource


class OrderStateMachine(JobProcessor):
    """Job processor that executes swap orders"""

    def __init__(
        self,
        store: OrderStore,
        bus: NotificationBus,
        quote_source: QuoteSource,
        config: Optional[WorkerConfig] = None,
        latency_monitor: Optional[LatencyMonitor] = None
    ):
        self.store = store
        self.bus = bus
        self.quote_source = quote_source
        self.config = config or WorkerConfig()
        self.latency_monitor = latency_monitor or LatencyMonitor()

    async def process(self, job: Job) -> Dict[str, Any]:
        order = Order.from_dict(job.payload)
        order_id = order.order_id

        current = await self.store.get_order(order_id)
        if current is not None and current.is_terminal():
            # Redelivered after the order already finished
            logger.info(f"Order {order_id} already {current.status.value}; skipping job {job.job_id}")
            return {'status': current.status.value}

        logger.debug(f"Processing order {order_id} (job {job.job_id}, attempt {job.attempts_made})")
        self.latency_monitor.start_timer(order_id, END_TO_END)
        try:
            await self._transition(PendingEvent(order_id), pace=False)

            route = await self.route(order)
            await self._transition(RoutingEvent(order_id, route))
            await self._transition(BuildingEvent(order_id, route))
            await self._transition(SubmittedEvent(order_id))

            receipt = await self.settle(order, route.chosen)
            await self._transition(
                ConfirmedEvent(order_id, tx_hash=receipt.tx_hash, executed_price=receipt.executed_price),
                tx_hash=receipt.tx_hash,
            )
        except Exception:
            self.latency_monitor.discard_timers(order_id)
            raise

        elapsed = self.latency_monitor.stop_timer(order_id, END_TO_END)
        quoted = route.quote_for(route.chosen)
        logger.info(f"Order {order_id} confirmed on {route.chosen.value} tx={receipt.tx_hash} "
                    f"price={receipt.executed_price:.4f} (quoted {quoted.price:.4f}, {elapsed:.1f}ms)")
        return {
            'chosen': route.chosen.value,
            'txHash': receipt.tx_hash,
            'executedPrice': receipt.executed_price,
        }

    async def on_exhausted(self, job: Job, error: ExhaustedRetriesError) -> None:
        order_id = job.payload['order_id']
        await self._transition(
            FailedEvent(order_id, error=error.message, attempts=error.attempts),
            error=error.message,
            attempts=error.attempts,
            pace=False,
        )
        logger.error(f"Order {order_id} failed after {error.attempts} attempts: {error.message}")

    async def route(self, order: Order) -> Route:
        """Fetch both venue quotes concurrently and pick the cheaper venue"""
        self.latency_monitor.start_timer(order.order_id, QUOTE_FETCH)
        raydium_quote, meteora_quote = await asyncio.gather(
            self._fetch_quote(Venue.RAYDIUM, order),
            self._fetch_quote(Venue.METEORA, order),
        )
        self.latency_monitor.stop_timer(order.order_id, QUOTE_FETCH)

        route = Route.select(raydium_quote, meteora_quote)
        logger.debug(f"Order {order.order_id} routed to {route.chosen.value} "
                     f"(raydium {raydium_quote.price:.4f}, meteora {meteora_quote.price:.4f})")
        return route

    async def settle(self, order: Order, venue: Venue) -> ExecutionReceipt:
        self.latency_monitor.start_timer(order.order_id, SETTLEMENT)
        try:
            receipt = await self.quote_source.execute(venue, order)
        except ExecutionError:
            raise
        except Exception as e:
            raise ExecutionError(f"{venue.value} execution failed: {e}") from e

        if not receipt.tx_hash or receipt.executed_price <= 0:
            raise ExecutionError(f"{venue.value} returned an invalid receipt: {receipt}")

        self.latency_monitor.stop_timer(order.order_id, SETTLEMENT)
        return receipt

    async def _fetch_quote(self, venue: Venue, order: Order) -> Quote:
        try:
            quote = await self.quote_source.get_quote(venue, order.token_in, order.token_out, order.amount)
        except ExecutionError:
            raise
        except Exception as e:
            raise ExecutionError(f"{venue.value} quote failed: {e}") from e

        if not quote.is_valid():
            raise ExecutionError(f"{venue.value} returned an invalid quote: {quote}")
        return quote

    async def _transition(
        self,
        event: StatusEvent,
        tx_hash: Optional[str] = None,
        error: Optional[str] = None,
        attempts: Optional[int] = None,
        pace: bool = True
    ) -> None:
        if pace and self.config.transition_delay_ms > 0:
            await asyncio.sleep(self.config.transition_delay_ms / 1000.0)

        # Store write happens-before publish
        await self.store.update_order_status(
            event.order_id, event.status, tx_hash=tx_hash, error=error, attempts=attempts
        )
        await self.bus.publish(event.order_id, event)
        logger.debug(f"Order {event.order_id} -> {event.status.value}")
