"""
Order Schemas - Data structures for swap orders and routing decisions

Plain dataclasses shared by the store, the job queue payloads and the
state machine.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, Optional
import uuid

from ..errors import ValidationError


def utcnow() -> datetime:
    """Naive UTC timestamp, the form stored in the orders table"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class OrderStatus(Enum):
    """Order lifecycle status"""
    PENDING = "pending"         # Accepted, waiting for a worker
    ROUTING = "routing"         # Venue chosen from both quotes
    BUILDING = "building"       # Transaction assembly
    SUBMITTED = "submitted"     # Sent to the network
    CONFIRMED = "confirmed"     # Settled (terminal)
    FAILED = "failed"           # Retries exhausted (terminal)

    @property
    def rank(self) -> int:
        """Position in the lifecycle; terminal failure ranks above everything"""
        if self is OrderStatus.FAILED:
            return len(LIFECYCLE)
        return LIFECYCLE.index(self)

    def is_terminal(self) -> bool:
        return self in (OrderStatus.CONFIRMED, OrderStatus.FAILED)


LIFECYCLE = (
    OrderStatus.PENDING,
    OrderStatus.ROUTING,
    OrderStatus.BUILDING,
    OrderStatus.SUBMITTED,
    OrderStatus.CONFIRMED,
)


class Venue(Enum):
    """Execution venues"""
    RAYDIUM = "raydium"
    METEORA = "meteora"


# Wins price ties
PREFERRED_VENUE = Venue.RAYDIUM


@dataclass(frozen=True)
class Quote:
    """Price and fee estimate for a swap at one venue"""

    price: float
    fee: float

    def is_valid(self) -> bool:
        return self.price > 0 and 0 <= self.fee < 1

    def to_dict(self) -> Dict[str, float]:
        return {'price': self.price, 'fee': self.fee}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Quote':
        return cls(price=float(data['price']), fee=float(data['fee']))


@dataclass(frozen=True)
class Route:
    """Routing decision: the chosen venue and both raw quotes"""

    chosen: Venue
    raydium_quote: Quote
    meteora_quote: Quote

    @classmethod
    def select(cls, raydium_quote: Quote, meteora_quote: Quote) -> 'Route':
        """Pick the lower-priced venue, falling back to the preferred venue on ties"""
        if raydium_quote.price < meteora_quote.price:
            chosen = Venue.RAYDIUM
        elif meteora_quote.price < raydium_quote.price:
            chosen = Venue.METEORA
        else:
            chosen = PREFERRED_VENUE
        return cls(chosen=chosen, raydium_quote=raydium_quote, meteora_quote=meteora_quote)

    def quote_for(self, venue: Venue) -> Quote:
        return self.raydium_quote if venue is Venue.RAYDIUM else self.meteora_quote


@dataclass(frozen=True)
class ExecutionReceipt:
    """Result of a simulated settlement"""

    tx_hash: str
    executed_price: float


@dataclass
class Order:
    """
    A token swap tracked through its status lifecycle.

    The id is assigned once at creation; only the worker running the order's
    job mutates status, tx_hash and error afterwards.
    """

    order_id: str
    token_in: str
    token_out: str
    amount: Decimal

    status: OrderStatus = OrderStatus.PENDING
    tx_hash: Optional[str] = None     # Set only on success
    error: Optional[str] = None       # Set only on failure
    attempts: Optional[int] = None    # Attempts made, set on failure

    created_at: datetime = None
    updated_at: datetime = None

    def __post_init__(self):
        if not isinstance(self.amount, Decimal):
            self.amount = Decimal(str(self.amount))

        if self.created_at is None:
            self.created_at = utcnow()

        if self.updated_at is None:
            self.updated_at = self.created_at

    @classmethod
    def generate_order_id(cls) -> str:
        """Generate unique order ID"""
        return str(uuid.uuid4())

    @classmethod
    def new(cls, token_in: Any, token_out: Any, amount: Any) -> 'Order':
        """
        Validate a raw submission and build a PENDING order.

        Raises:
            ValidationError: missing tokens or a non-positive / non-numeric amount
        """
        if not token_in or not isinstance(token_in, str):
            raise ValidationError("tokenIn is required")
        if not token_out or not isinstance(token_out, str):
            raise ValidationError("tokenOut is required")
        if isinstance(amount, bool) or amount is None:
            raise ValidationError("amount is required")

        try:
            parsed = Decimal(str(amount))
        except InvalidOperation:
            raise ValidationError(f"amount is not a number: {amount!r}")

        if not parsed.is_finite() or parsed <= 0:
            raise ValidationError(f"amount must be positive: {amount!r}")

        return cls(
            order_id=cls.generate_order_id(),
            token_in=token_in,
            token_out=token_out,
            amount=parsed,
        )

    def is_terminal(self) -> bool:
        return self.status.is_terminal()

    def to_dict(self) -> Dict[str, Any]:
        """Convert order to dictionary for job payloads and logging"""
        return {
            'order_id': self.order_id,
            'token_in': self.token_in,
            'token_out': self.token_out,
            'amount': str(self.amount),
            'status': self.status.value,
            'tx_hash': self.tx_hash,
            'error': self.error,
            'attempts': self.attempts,
            'created_at': self.created_at.isoformat(),
            'updated_at': self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Order':
        """Rebuild an order from a to_dict() snapshot"""
        return cls(
            order_id=data['order_id'],
            token_in=data['token_in'],
            token_out=data['token_out'],
            amount=Decimal(data['amount']),
            status=OrderStatus(data.get('status', OrderStatus.PENDING.value)),
            tx_hash=data.get('tx_hash'),
            error=data.get('error'),
            attempts=data.get('attempts'),
            created_at=datetime.fromisoformat(data['created_at']) if data.get('created_at') else None,
            updated_at=datetime.fromisoformat(data['updated_at']) if data.get('updated_at') else None,
        )

    def __str__(self) -> str:
        return (f"Order({self.order_id}: {self.amount} {self.token_in}->{self.token_out} "
                f"- {self.status.value})")
