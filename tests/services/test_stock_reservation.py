"""
Tests for bonded-stock reservation against both inventory gateways.

Verifies:
- Exact LWIN matches win over prefix matches
- Allocation splits across lots, largest available first
- Shortfalls are reported, not raised
- Reserve and release are both idempotent
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from pco_kernel.domain.dtos import OrderLineItem, StockSource
from pco_services.stock_reservation import (
    InMemoryInventoryGateway,
    InventoryGateway,
    OrderType,
    ReservationStatus,
    SqlInventoryGateway,
    StockLot,
    StockReservationCoordinator,
)

LWIN18 = "101403320181200750"


@pytest.fixture(params=["memory", "sqlalchemy"])
def gateway(request):
    if request.param == "memory":
        return InMemoryInventoryGateway()
    return SqlInventoryGateway(request.getfixturevalue("db_session"))


@pytest.fixture
def coordinator(gateway, clock):
    return StockReservationCoordinator(gateway, clock)


def _lot(gateway, available, lwin18=LWIN18, name="Opus One 2018"):
    return gateway.add_lot(
        StockLot(id=uuid4(), lwin18=lwin18, product_name=name, available_cases=available)
    )


def _line(order_id, quantity, lwin="1014033", source=StockSource.CC_INVENTORY):
    return OrderLineItem(
        id=uuid4(),
        order_id=order_id,
        product_name="Opus One",
        quantity=quantity,
        unit_price_usd=Decimal("3600"),
        line_total_usd=Decimal("3600") * quantity,
        lwin=lwin,
        stock_source=source,
    )


class TestReserve:

    def test_gateways_satisfy_port(self, gateway):
        assert isinstance(gateway, InventoryGateway)

    def test_exact_match_preferred_over_prefix(self, gateway, coordinator):
        exact = _lot(gateway, 2)
        _lot(gateway, 10, lwin18=LWIN18[:7] + "20191200750")
        order_id = uuid4()

        result = coordinator.reserve(order_id, OrderType.PRIVATE_CLIENT, [_line(order_id, 2, lwin=LWIN18)])

        assert [(r.stock_lot_id, r.quantity_reserved) for r in result.reserved] == [(exact.id, 2)]
        assert gateway.get_lot(exact.id).available_cases == 0
        assert gateway.get_lot(exact.id).reserved_cases == 2

    def test_short_code_matches_by_prefix(self, gateway, coordinator):
        lot = _lot(gateway, 5)
        order_id = uuid4()

        result = coordinator.reserve(order_id, OrderType.PRIVATE_CLIENT, [_line(order_id, 3)])

        assert result.cases_reserved == 3
        assert result.reserved[0].lwin18 == LWIN18
        assert gateway.get_lot(lot.id).available_cases == 2

    def test_full_lwin18_never_prefix_matched(self, gateway, coordinator):
        _lot(gateway, 5, lwin18=LWIN18[:17] + "1")
        order_id = uuid4()

        result = coordinator.reserve(order_id, OrderType.PRIVATE_CLIENT, [_line(order_id, 1, lwin=LWIN18)])

        assert result.reserved == ()
        assert result.short[0].quantity_reserved == 0

    def test_split_across_lots_largest_first(self, gateway, coordinator):
        small = _lot(gateway, 2)
        large = _lot(gateway, 4)
        order_id = uuid4()

        result = coordinator.reserve(order_id, OrderType.PRIVATE_CLIENT, [_line(order_id, 5)])

        assert [(r.stock_lot_id, r.quantity_reserved) for r in result.reserved] == [
            (large.id, 4),
            (small.id, 1),
        ]
        assert result.short == ()
        assert len(gateway.reservations(order_id)) == 2

    def test_shortfall_reported(self, gateway, coordinator, captured_logs):
        _lot(gateway, 1)
        order_id = uuid4()
        item = _line(order_id, 3)

        result = coordinator.reserve(order_id, OrderType.PRIVATE_CLIENT, [item])

        assert result.cases_reserved == 1
        (short,) = result.short
        assert short.order_item_id == item.id
        assert short.short_quantity == 2
        assert any(r["message"] == "stock_reservation_short" for r in captured_logs())

    def test_ineligible_items_skipped(self, gateway, coordinator):
        _lot(gateway, 5)
        order_id = uuid4()
        airfreight = _line(order_id, 1, source=StockSource.PARTNER_AIRFREIGHT)
        no_code = _line(order_id, 1, lwin="  ")
        unsourced = _line(order_id, 1, source=None)

        result = coordinator.reserve(
            order_id, OrderType.PRIVATE_CLIENT, [airfreight, no_code, unsourced]
        )

        assert result.reserved == ()
        assert set(result.skipped_item_ids) == {airfreight.id, no_code.id, unsourced.id}

    def test_reserving_twice_does_not_double_count(self, gateway, coordinator):
        lot = _lot(gateway, 5)
        order_id = uuid4()
        item = _line(order_id, 2)

        coordinator.reserve(order_id, OrderType.PRIVATE_CLIENT, [item])
        again = coordinator.reserve(order_id, OrderType.PRIVATE_CLIENT, [item])

        assert again.reserved == ()
        assert again.skipped_item_ids == (item.id,)
        assert gateway.get_lot(lot.id).available_cases == 3


class TestRelease:

    def test_release_restores_lots(self, gateway, coordinator):
        small = _lot(gateway, 2)
        large = _lot(gateway, 4)
        order_id = uuid4()
        coordinator.reserve(order_id, OrderType.PRIVATE_CLIENT, [_line(order_id, 5)])

        released = coordinator.release(order_id, OrderType.PRIVATE_CLIENT, "order_cancelled")

        assert released == 2
        assert gateway.get_lot(small.id).available_cases == 2
        assert gateway.get_lot(large.id).available_cases == 4
        assert gateway.get_lot(large.id).reserved_cases == 0
        holds = gateway.reservations(order_id)
        assert {r.status for r in holds} == {ReservationStatus.RELEASED}
        assert {r.release_reason for r in holds} == {"order_cancelled"}

    def test_release_is_idempotent(self, gateway, coordinator):
        _lot(gateway, 2)
        order_id = uuid4()
        coordinator.reserve(order_id, OrderType.PRIVATE_CLIENT, [_line(order_id, 1)])

        assert coordinator.release(order_id, OrderType.PRIVATE_CLIENT, "order_cancelled") == 1
        assert coordinator.release(order_id, OrderType.PRIVATE_CLIENT, "order_cancelled") == 0

    def test_release_scoped_to_order_type(self, gateway, coordinator):
        lot = _lot(gateway, 2)
        order_id = uuid4()
        coordinator.reserve(order_id, OrderType.SALES_ORDER, [_line(order_id, 1)])

        assert coordinator.release(order_id, OrderType.PRIVATE_CLIENT, "order_cancelled") == 0
        assert gateway.get_lot(lot.id).available_cases == 1

    def test_released_item_can_reserve_again(self, gateway, coordinator):
        lot = _lot(gateway, 2)
        order_id = uuid4()
        item = _line(order_id, 2)
        coordinator.reserve(order_id, OrderType.PRIVATE_CLIENT, [item])
        coordinator.release(order_id, OrderType.PRIVATE_CLIENT, "order_cancelled")

        result = coordinator.reserve(order_id, OrderType.PRIVATE_CLIENT, [item])

        assert result.cases_reserved == 2
        assert gateway.get_lot(lot.id).available_cases == 0
