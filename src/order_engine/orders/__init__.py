"""
Order data model: orders, quotes, routing decisions and status events.
"""

from .order_schemas import (
    Order, OrderStatus, Venue, Quote, Route, ExecutionReceipt, LIFECYCLE, PREFERRED_VENUE
)
from .status_events import (
    StatusEvent, PendingEvent, RoutingEvent, BuildingEvent, SubmittedEvent,
    ConfirmedEvent, FailedEvent, AnyStatusEvent, decode_event
)

__all__ = [
    'Order',
    'OrderStatus',
    'Venue',
    'Quote',
    'Route',
    'ExecutionReceipt',
    'LIFECYCLE',
    'PREFERRED_VENUE',

    'StatusEvent',
    'PendingEvent',
    'RoutingEvent',
    'BuildingEvent',
    'SubmittedEvent',
    'ConfirmedEvent',
    'FailedEvent',
    'AnyStatusEvent',
    'decode_event',
]
