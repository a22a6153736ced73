"""
Order data model tests: validation, routing decisions and status events
"""

import json
from decimal import Decimal

import pytest

from order_engine.errors import ValidationError
from order_engine.orders import (
    LIFECYCLE, BuildingEvent, ConfirmedEvent, FailedEvent, Order, OrderStatus, PendingEvent, Quote,
    Route, RoutingEvent, SubmittedEvent, Venue, decode_event
)


class TestOrder:
    """Order creation and serialization"""

    def test_new_order_is_pending(self):
        order = Order.new("SOL", "USDC", 10)

        assert order.status == OrderStatus.PENDING
        assert order.amount == Decimal("10")
        assert order.tx_hash is None
        assert order.error is None
        assert order.created_at == order.updated_at

    def test_order_ids_are_unique(self):
        ids = {Order.new("SOL", "USDC", 1).order_id for _ in range(100)}
        assert len(ids) == 100

    @pytest.mark.parametrize("amount", [0, -5, "abc", None, "NaN", True])
    def test_rejects_invalid_amount(self, amount):
        with pytest.raises(ValidationError):
            Order.new("SOL", "USDC", amount)

    @pytest.mark.parametrize("token_in,token_out", [("", "USDC"), ("SOL", ""), (None, "USDC")])
    def test_rejects_missing_tokens(self, token_in, token_out):
        with pytest.raises(ValidationError):
            Order.new(token_in, token_out, 10)

    def test_snapshot_round_trip(self):
        order = Order.new("SOL", "USDC", "12.5")
        restored = Order.from_dict(order.to_dict())

        assert restored.order_id == order.order_id
        assert restored.amount == Decimal("12.5")
        assert restored.status == OrderStatus.PENDING
        assert restored.created_at == order.created_at


class TestOrderStatus:
    """Lifecycle ordering"""

    def test_lifecycle_ranks_increase(self):
        ranks = [status.rank for status in LIFECYCLE]
        assert ranks == sorted(ranks)
        assert len(set(ranks)) == len(ranks)

    def test_failed_ranks_above_lifecycle(self):
        assert OrderStatus.FAILED.rank > OrderStatus.CONFIRMED.rank

    def test_terminal_states(self):
        terminal = {status for status in OrderStatus if status.is_terminal()}
        assert terminal == {OrderStatus.CONFIRMED, OrderStatus.FAILED}


class TestRouteSelection:
    """Venue choice from two quotes"""

    def test_lower_price_wins(self):
        route = Route.select(Quote(price=98.0, fee=0.003), Quote(price=99.0, fee=0.002))
        assert route.chosen == Venue.RAYDIUM

    def test_meteora_chosen_when_cheaper(self):
        route = Route.select(Quote(price=101.0, fee=0.003), Quote(price=99.5, fee=0.002))
        assert route.chosen == Venue.METEORA

    def test_tie_goes_to_preferred_venue(self):
        for _ in range(10):
            route = Route.select(Quote(price=100.0, fee=0.003), Quote(price=100.0, fee=0.002))
            assert route.chosen == Venue.RAYDIUM

    def test_quote_validity(self):
        assert Quote(price=100.0, fee=0.0).is_valid()
        assert not Quote(price=0.0, fee=0.003).is_valid()
        assert not Quote(price=100.0, fee=1.0).is_valid()


class TestStatusEvents:
    """Wire format of each event variant"""

    def setup_method(self):
        self.route = Route.select(Quote(price=98.0, fee=0.003), Quote(price=99.0, fee=0.002))

    def test_pending_has_only_status(self):
        assert PendingEvent("o1").to_wire() == {'status': 'pending'}
        assert SubmittedEvent("o1").to_wire() == {'status': 'submitted'}

    def test_route_events_carry_quotes(self):
        wire = RoutingEvent("o1", self.route).to_wire()

        assert wire['status'] == 'routing'
        assert wire['chosen'] == 'raydium'
        assert wire['rQuote'] == {'price': 98.0, 'fee': 0.003}
        assert wire['mQuote'] == {'price': 99.0, 'fee': 0.002}
        assert BuildingEvent("o1", self.route).to_wire()['status'] == 'building'

    def test_confirmed_and_failed_fields(self):
        confirmed = ConfirmedEvent("o1", tx_hash="abc", executed_price=99.1).to_wire()
        assert confirmed == {'status': 'confirmed', 'txHash': 'abc', 'executedPrice': 99.1}

        failed = FailedEvent("o1", error="boom", attempts=3).to_wire()
        assert failed == {'status': 'failed', 'error': 'boom', 'attempts': 3}

    def test_decode_returns_matching_variant(self):
        event = decode_event("o1", RoutingEvent("o1", self.route).to_json())

        assert isinstance(event, RoutingEvent)
        assert event.route == self.route
        assert event.order_id == "o1"

    def test_decode_rejects_malformed_messages(self):
        with pytest.raises(ValueError):
            decode_event("o1", "not json")
        with pytest.raises(ValueError):
            decode_event("o1", json.dumps({'status': 'exploded'}))
        with pytest.raises(ValueError):
            decode_event("o1", json.dumps({'status': 'confirmed'}))
