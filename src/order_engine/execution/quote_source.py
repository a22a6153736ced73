"""
Quote Source - pluggable venue quoting and settlement

QuoteSource is the interface the state machine depends on. MockQuoteSource
simulates both venues with randomized prices and latencies; tests swap in
deterministic implementations.
"""

import asyncio
import random
import uuid
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Dict, Optional, Tuple

from loguru import logger

from ..orders.order_schemas import ExecutionReceipt, Order, Quote, Venue


class QuoteSource(ABC):
    """Prices and settles swaps on the two venues"""

    @abstractmethod
    async def get_quote(self, venue: Venue, token_in: str, token_out: str, amount: Decimal) -> Quote:
        """Price and fee for swapping ``amount`` of token_in into token_out"""

    @abstractmethod
    async def execute(self, venue: Venue, order: Order) -> ExecutionReceipt:
        """Settle the order on the venue"""


class MockQuoteSource(QuoteSource):
    """
    Randomized venue simulator

    Prices drift around ``base_price``: raydium within 98-102%, meteora within
    97-102%. Quotes take 200-300ms and settlement 2-3s, multiplied by
    ``latency_scale`` (0 disables the delays).
    """

    # venue -> (low price factor, price factor span, fee)
    VENUE_PROFILES: Dict[Venue, Tuple[float, float, float]] = {
        Venue.RAYDIUM: (0.98, 0.04, 0.003),
        Venue.METEORA: (0.97, 0.05, 0.002),
    }

    QUOTE_LATENCY = (0.2, 0.1)          # seconds: base, random span
    EXECUTION_LATENCY = (2.0, 1.0)

    def __init__(self, base_price: float = 100.0, latency_scale: float = 1.0, seed: Optional[int] = None):
        self.base_price = base_price
        self.latency_scale = latency_scale
        self._rng = random.Random(seed)

    async def get_quote(self, venue: Venue, token_in: str, token_out: str, amount: Decimal) -> Quote:
        await self._simulate_latency(self.QUOTE_LATENCY)

        low, span, fee = self.VENUE_PROFILES[venue]
        price = self.base_price * (low + self._rng.random() * span)
        logger.debug(f"{venue.value} quote {token_in}->{token_out} x{amount}: {price:.4f} (fee {fee})")
        return Quote(price=price, fee=fee)

    async def execute(self, venue: Venue, order: Order) -> ExecutionReceipt:
        await self._simulate_latency(self.EXECUTION_LATENCY)

        executed_price = self.base_price * (0.98 + self._rng.random() * 0.04)
        return ExecutionReceipt(tx_hash=str(uuid.uuid4()), executed_price=executed_price)

    async def _simulate_latency(self, latency: Tuple[float, float]) -> None:
        if self.latency_scale <= 0:
            return
        base, span = latency
        await asyncio.sleep((base + self._rng.random() * span) * self.latency_scale)
