"""
Status Events - one variant per lifecycle stage

Each variant carries exactly the fields valid for its stage and knows how to
render itself in the notification wire format: a JSON object with a required
``status`` key plus stage-specific keys (``chosen``, ``rQuote``, ``mQuote``,
``txHash``, ``executedPrice``, ``error``, ``attempts``).
"""

from dataclasses import dataclass
from typing import Any, ClassVar, Dict, Type, Union
import json

from .order_schemas import OrderStatus, Quote, Route, Venue


@dataclass(frozen=True)
class StatusEvent:
    """Base class for all status events"""

    order_id: str

    status: ClassVar[OrderStatus]

    def to_wire(self) -> Dict[str, Any]:
        return {'status': self.status.value}

    def to_json(self) -> str:
        return json.dumps(self.to_wire())

    @classmethod
    def from_wire(cls, order_id: str, data: Dict[str, Any]) -> 'StatusEvent':
        return cls(order_id=order_id)


@dataclass(frozen=True)
class PendingEvent(StatusEvent):
    status: ClassVar[OrderStatus] = OrderStatus.PENDING


@dataclass(frozen=True)
class _RouteEvent(StatusEvent):
    """Shared shape of the ROUTING and BUILDING events"""

    route: Route

    def to_wire(self) -> Dict[str, Any]:
        wire = super().to_wire()
        wire['chosen'] = self.route.chosen.value
        wire['rQuote'] = self.route.raydium_quote.to_dict()
        wire['mQuote'] = self.route.meteora_quote.to_dict()
        return wire

    @classmethod
    def from_wire(cls, order_id: str, data: Dict[str, Any]) -> 'StatusEvent':
        route = Route(
            chosen=Venue(data['chosen']),
            raydium_quote=Quote.from_dict(data['rQuote']),
            meteora_quote=Quote.from_dict(data['mQuote']),
        )
        return cls(order_id=order_id, route=route)


@dataclass(frozen=True)
class RoutingEvent(_RouteEvent):
    status: ClassVar[OrderStatus] = OrderStatus.ROUTING


@dataclass(frozen=True)
class BuildingEvent(_RouteEvent):
    status: ClassVar[OrderStatus] = OrderStatus.BUILDING


@dataclass(frozen=True)
class SubmittedEvent(StatusEvent):
    status: ClassVar[OrderStatus] = OrderStatus.SUBMITTED


@dataclass(frozen=True)
class ConfirmedEvent(StatusEvent):
    status: ClassVar[OrderStatus] = OrderStatus.CONFIRMED

    tx_hash: str
    executed_price: float

    def to_wire(self) -> Dict[str, Any]:
        wire = super().to_wire()
        wire['txHash'] = self.tx_hash
        wire['executedPrice'] = self.executed_price
        return wire

    @classmethod
    def from_wire(cls, order_id: str, data: Dict[str, Any]) -> 'StatusEvent':
        return cls(order_id=order_id, tx_hash=data['txHash'],
                   executed_price=float(data['executedPrice']))


@dataclass(frozen=True)
class FailedEvent(StatusEvent):
    status: ClassVar[OrderStatus] = OrderStatus.FAILED

    error: str
    attempts: int

    def to_wire(self) -> Dict[str, Any]:
        wire = super().to_wire()
        wire['error'] = self.error
        wire['attempts'] = self.attempts
        return wire

    @classmethod
    def from_wire(cls, order_id: str, data: Dict[str, Any]) -> 'StatusEvent':
        return cls(order_id=order_id, error=data['error'], attempts=int(data['attempts']))


AnyStatusEvent = Union[
    PendingEvent, RoutingEvent, BuildingEvent, SubmittedEvent, ConfirmedEvent, FailedEvent
]

_EVENT_TYPES: Dict[OrderStatus, Type[StatusEvent]] = {
    event_type.status: event_type
    for event_type in (PendingEvent, RoutingEvent, BuildingEvent,
                       SubmittedEvent, ConfirmedEvent, FailedEvent)
}


def decode_event(order_id: str, raw: Union[str, bytes, Dict[str, Any]]) -> StatusEvent:
    """
    Parse a wire message into its event variant.

    Raises:
        ValueError: malformed JSON, unknown status or missing stage fields
    """
    data = json.loads(raw) if isinstance(raw, (str, bytes)) else raw
    if not isinstance(data, dict) or 'status' not in data:
        raise ValueError(f"Not a status event: {raw!r}")

    event_type = _EVENT_TYPES[OrderStatus(data['status'])]
    try:
        return event_type.from_wire(order_id, data)
    except (KeyError, TypeError) as e:
        raise ValueError(f"Malformed {data['status']} event: {e}") from e
