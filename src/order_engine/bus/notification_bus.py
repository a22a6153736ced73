"""
Notification Bus for live order status fan-out

Best-effort, per-order publish/subscribe. Each order has its own channel;
events published while nobody listens are dropped, and nothing is replayed to
late subscribers. When the transport is down, publish degrades to a no-op and
subscriptions simply receive nothing.

Consumers either register a callback with subscribe() or iterate a
Subscription returned by stream():

    async with bus.stream(order_id) as events:
        async for event in events:
            ...
"""

import asyncio
from typing import Callable, List, Optional, Set

from loguru import logger

from ..config import BusConfig
from ..errors import TransportUnavailableError
from ..orders.status_events import StatusEvent, decode_event
from .transport import LocalTransport, Transport


Unsubscribe = Callable[[], None]

_CLOSED = object()


def _noop() -> None:
    pass


class Subscription:
    """
    Cancellable stream of status events for one order.

    Events are buffered up to ``buffer_size``; when the consumer falls behind
    further events are dropped.
    """

    def __init__(self, order_id: str, buffer_size: int = 100):
        self.order_id = order_id
        self.dropped = 0
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=buffer_size)
        self._closed = False
        self._unsubscribe: Unsubscribe = _noop

    @property
    def closed(self) -> bool:
        return self._closed

    def _attach(self, unsubscribe: Unsubscribe) -> None:
        self._unsubscribe = unsubscribe

    def _deliver(self, event: StatusEvent) -> None:
        if self._closed:
            return
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning(f"Subscriber for order {self.order_id} is behind; dropped {event.status.value} event")

    def close(self) -> None:
        """Stop receiving events; pending buffered events can still be read"""
        if self._closed:
            return
        self._closed = True
        self._unsubscribe()
        try:
            self._queue.put_nowait(_CLOSED)
        except asyncio.QueueFull:
            pass

    async def get(self, timeout: Optional[float] = None) -> StatusEvent:
        """
        Next event.

        Raises:
            StopAsyncIteration: the subscription is closed and drained
            asyncio.TimeoutError: no event within timeout
        """
        if self._closed and self._queue.empty():
            raise StopAsyncIteration

        item = await asyncio.wait_for(self._queue.get(), timeout)
        if item is _CLOSED:
            raise StopAsyncIteration
        return item

    def __aiter__(self) -> 'Subscription':
        return self

    async def __anext__(self) -> StatusEvent:
        return await self.get()

    async def __aenter__(self) -> 'Subscription':
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


class NotificationBus:
    """Per-order status event fan-out over a pluggable transport"""

    def __init__(self, transport: Optional[Transport] = None, config: Optional[BusConfig] = None):
        self.transport = transport or LocalTransport()
        self.config = config or BusConfig()
        self._streams: Set[Subscription] = set()

        self.events_published = 0
        self.events_dropped = 0

    @staticmethod
    def channel_for(order_id: str) -> str:
        return f"order:{order_id}"

    async def initialize(self) -> None:
        await self.transport.connect()
        logger.info("NotificationBus connected")

    async def close(self) -> None:
        for subscription in list(self._streams):
            subscription.close()
        await self.transport.close()
        logger.info("NotificationBus closed")

    async def publish(self, order_id: str, event: StatusEvent) -> int:
        """
        Deliver an event to the order's current subscribers.

        Never raises: a transport failure is logged and the event dropped.
        Returns the number of subscribers reached.
        """
        channel = self.channel_for(order_id)
        try:
            receivers = await self.transport.publish(channel, event.to_json())
        except Exception as e:
            self.events_dropped += 1
            logger.warning(f"Dropped {event.status.value} event for order {order_id}: {e}")
            return 0

        self.events_published += 1
        if receivers == 0:
            logger.debug(f"No subscribers for {channel}; {event.status.value} event dropped")
        return receivers

    def subscribe(self, order_id: str, callback: Callable[[StatusEvent], None]) -> Unsubscribe:
        """
        Call ``callback`` for every event published on the order after now.

        Returns a function that removes the subscription. With the transport
        unavailable the returned function does nothing.
        """
        channel = self.channel_for(order_id)

        def handler(_channel: str, message: str) -> None:
            try:
                event = decode_event(order_id, message)
            except ValueError as e:
                logger.error(f"Invalid message on {channel}: {e}")
                return
            callback(event)

        try:
            self.transport.subscribe(channel, handler)
        except TransportUnavailableError as e:
            logger.warning(f"Subscription to {channel} unavailable: {e}")
            return _noop

        def unsubscribe() -> None:
            self.transport.unsubscribe(channel, handler)

        return unsubscribe

    def stream(self, order_id: str) -> Subscription:
        """Open a Subscription for the order; it is already closed if the transport is down"""
        subscription = Subscription(order_id, buffer_size=self.config.subscriber_buffer)
        unsubscribe = self.subscribe(order_id, subscription._deliver)

        if unsubscribe is _noop:
            subscription.close()
            return subscription

        def detach() -> None:
            unsubscribe()
            self._streams.discard(subscription)

        subscription._attach(detach)
        self._streams.add(subscription)
        return subscription

    def open_streams(self) -> List[Subscription]:
        return list(self._streams)
