"""
Deterministic quote sources and a recording order store for the tests
"""

import asyncio
from decimal import Decimal
from typing import List, Optional, Tuple

from order_engine.config import StoreConfig
from order_engine.errors import ExecutionError, StoreUnavailableError
from order_engine.execution.quote_source import QuoteSource
from order_engine.orders import ExecutionReceipt, Order, OrderStatus, Quote, Venue
from order_engine.store import OrderStore


class FixedQuoteSource(QuoteSource):
    """Always quotes the same prices and settles successfully"""

    def __init__(self, raydium_price: float = 98.0, meteora_price: float = 99.0,
                 executed_price: float = 98.5, quote_delay: float = 0.0):
        self.prices = {Venue.RAYDIUM: raydium_price, Venue.METEORA: meteora_price}
        self.executed_price = executed_price
        self.quote_delay = quote_delay
        self.quote_calls: List[Venue] = []
        self.executions: List[Tuple[Venue, str]] = []

    async def get_quote(self, venue: Venue, token_in: str, token_out: str, amount: Decimal) -> Quote:
        self.quote_calls.append(venue)
        if self.quote_delay:
            await asyncio.sleep(self.quote_delay)
        return Quote(price=self.prices[venue], fee=0.003)

    async def execute(self, venue: Venue, order: Order) -> ExecutionReceipt:
        self.executions.append((venue, order.order_id))
        return ExecutionReceipt(tx_hash=f"tx-{order.order_id}-{len(self.executions)}",
                                executed_price=self.executed_price)


class FailingQuoteSource(QuoteSource):
    """Every call fails"""

    def __init__(self, message: str = "venue unavailable"):
        self.message = message
        self.quote_calls = 0

    async def get_quote(self, venue: Venue, token_in: str, token_out: str, amount: Decimal) -> Quote:
        self.quote_calls += 1
        raise ExecutionError(f"{self.message} (call {self.quote_calls})")

    async def execute(self, venue: Venue, order: Order) -> ExecutionReceipt:
        raise ExecutionError(self.message)


class RecordingOrderStore(OrderStore):
    """OrderStore that remembers every status written per order"""

    def __init__(self, config: StoreConfig, fail_writes: int = 0):
        super().__init__(config)
        self.history = {}
        self.fail_writes = fail_writes

    async def update_order_status(self, order_id: str, status: OrderStatus,
                                  tx_hash: Optional[str] = None, error: Optional[str] = None,
                                  attempts: Optional[int] = None) -> bool:
        if self.fail_writes > 0:
            self.fail_writes -= 1
            raise StoreUnavailableError("database is locked")
        updated = await super().update_order_status(
            order_id, status, tx_hash=tx_hash, error=error, attempts=attempts
        )
        self.history.setdefault(order_id, []).append(status)
        return updated


def make_order(amount: str = "10") -> Order:
    return Order.new("SOL", "USDC", amount)
