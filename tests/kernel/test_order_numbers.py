"""
Tests for order number allocation.

Verifies:
- Format is PCO-<YYYY>-<NNNNN>
- Numbers increase strictly within a year
- The sequence restarts at 00001 in a new year
"""

from datetime import datetime, timezone
from uuid import uuid4

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from pco_kernel.domain.clock import DeterministicClock
from pco_kernel.domain.dtos import Order, OrderStatus
from pco_kernel.services.order_numbers import (
    OrderNumberGenerator,
    format_order_number,
    parse_order_number,
)
from pco_kernel.store.memory import InMemoryOrderStore
from pco_modules.private_client_orders import ClientInfo


def _persist(store, number, partner_id, created_at):
    with store.transaction():
        store.add_order(
            Order(
                id=uuid4(),
                order_number=number,
                status=OrderStatus.DRAFT,
                partner_id=partner_id,
                created_at=created_at,
                created_by=uuid4(),
            )
        )


class TestFormat:

    def test_zero_padded(self):
        assert format_order_number(2025, 1) == "PCO-2025-00001"
        assert format_order_number(2025, 123) == "PCO-2025-00123"

    def test_parse_round_trip(self):
        assert parse_order_number("PCO-2025-00042") == (2025, 42)

    def test_sequence_past_five_digits(self):
        """The width is a minimum, not a cap."""
        assert format_order_number(2025, 123456) == "PCO-2025-123456"

    @pytest.mark.parametrize("bad", ["", "PCO-25-00001", "ORD-2025-00001", "PCO-2025-"])
    def test_malformed_rejected(self, bad):
        with pytest.raises(ValueError):
            parse_order_number(bad)


class TestAllocation:

    def test_first_number_of_year(self, store, clock):
        assert OrderNumberGenerator(store, clock).next_number() == "PCO-2025-00001"

    def test_continues_from_highest(self, store, clock, wine_partner):
        _persist(store, "PCO-2025-00009", wine_partner.id, clock.now())
        _persist(store, "PCO-2025-00003", wine_partner.id, clock.now())

        assert OrderNumberGenerator(store, clock).next_number() == "PCO-2025-00010"

    def test_continues_past_five_digits(self, store, clock, wine_partner):
        generator = OrderNumberGenerator(store, clock)
        _persist(store, "PCO-2025-99999", wine_partner.id, clock.now())

        first = generator.next_number()
        _persist(store, first, wine_partner.id, clock.tick())
        second = generator.next_number()

        assert (first, second) == ("PCO-2025-100000", "PCO-2025-100001")

    def test_new_year_restarts_sequence(self, store, clock, wine_partner):
        _persist(store, "PCO-2025-00017", wine_partner.id, clock.now())
        clock.set_time(datetime(2026, 1, 1, 0, 0, 1, tzinfo=timezone.utc))

        assert OrderNumberGenerator(store, clock).next_number() == "PCO-2026-00001"

    @settings(max_examples=25, deadline=None)
    @given(count=st.integers(min_value=1, max_value=30))
    def test_strictly_increasing(self, count):
        """Allocating and persisting N numbers yields 1..N in order."""
        store = InMemoryOrderStore()
        clock = DeterministicClock()
        generator = OrderNumberGenerator(store, clock)
        partner_id = uuid4()

        numbers = []
        for _ in range(count):
            number = generator.next_number()
            _persist(store, number, partner_id, clock.tick())
            numbers.append(number)

        sequences = [parse_order_number(n)[1] for n in numbers]
        assert sequences == list(range(1, count + 1))

    def test_order_service_assigns_numbers(self, service, partner_user, client_record, clock):
        first = service.create_order(partner_user, client=ClientInfo(client_id=client_record.id))
        clock.tick()
        second = service.create_order(partner_user, client=ClientInfo(client_id=client_record.id))

        assert first.order_number == "PCO-2025-00001"
        assert second.order_number == "PCO-2025-00002"
