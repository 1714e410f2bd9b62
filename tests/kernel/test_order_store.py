"""
Tests for the OrderStore port against both implementations.

Verifies:
- Transactions roll back every write on an exception
- update_order is conditional on status and version
- Line items keep insertion order and activity reads oldest first
- Pricing items are replaced wholesale and listed by row index
"""

from dataclasses import replace
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from pco_kernel.domain.dtos import (
    ActivityLogEntry,
    Order,
    OrderLineItem,
    OrderStatus,
    PricingLineItem,
    PricingSession,
    SessionStatus,
)
from pco_kernel.exceptions import OptimisticLockError
from pco_kernel.store.base import OrderStore

T0 = datetime(2025, 3, 1, 9, 0, 0, tzinfo=timezone.utc)


@pytest.fixture(params=["memory", "sqlalchemy"])
def any_store(request):
    """Each test runs against the in-memory and the SQLite-backed store."""
    if request.param == "memory":
        return request.getfixturevalue("store")
    return request.getfixturevalue("sql_store")


@pytest.fixture
def draft(any_store, wine_partner, partner_user):
    order = Order(
        id=uuid4(),
        order_number="PCO-2025-00001",
        status=OrderStatus.DRAFT,
        partner_id=wine_partner.id,
        created_at=T0,
        created_by=partner_user.user_id,
    )
    with any_store.transaction():
        any_store.add_order(order)
    return order


def _item(order_id, name, quantity=1, price="100"):
    return OrderLineItem(
        id=uuid4(),
        order_id=order_id,
        product_name=name,
        quantity=quantity,
        unit_price_usd=Decimal(price),
        line_total_usd=Decimal(price) * quantity,
    )


def _pricing_item(session_id, row_index, name):
    zero = Decimal("0")
    return PricingLineItem(
        id=uuid4(),
        session_id=session_id,
        row_index=row_index,
        product_name=name,
        source_price=Decimal("100"),
        source_currency="USD",
        case_config=6,
        in_bond_case_usd=zero,
        in_bond_bottle_usd=zero,
        in_bond_case_aed=zero,
        in_bond_bottle_aed=zero,
        delivered_case_usd=zero,
        delivered_bottle_usd=zero,
        delivered_case_aed=zero,
        delivered_bottle_aed=zero,
    )


class TestProtocol:

    def test_both_stores_satisfy_port(self, any_store):
        assert isinstance(any_store, OrderStore)


class TestTransactions:

    def test_exception_discards_writes(self, any_store, draft):
        """Nothing written inside a failed transaction survives."""
        item = _item(draft.id, "Opus One")
        with pytest.raises(RuntimeError):
            with any_store.transaction():
                any_store.add_item(item)
                raise RuntimeError("boom")

        assert any_store.get_item(item.id) is None
        assert any_store.get_order(draft.id) is not None

    def test_nested_transaction_joins_outer(self, any_store, draft):
        """A failure in the outer block also discards the inner block's writes."""
        item = _item(draft.id, "Opus One")
        with pytest.raises(RuntimeError):
            with any_store.transaction():
                with any_store.transaction():
                    any_store.add_item(item)
                raise RuntimeError("boom")

        assert any_store.list_items(draft.id) == []

    def test_committed_writes_survive(self, any_store, draft):
        item = _item(draft.id, "Opus One")
        with any_store.transaction():
            any_store.add_item(item)

        assert any_store.get_item(item.id).product_name == "Opus One"


class TestConditionalUpdate:

    def test_update_bumps_version(self, any_store, draft):
        with any_store.transaction():
            written = any_store.update_order(
                replace(draft, status=OrderStatus.SUBMITTED), OrderStatus.DRAFT
            )

        assert written.version == draft.version + 1
        stored = any_store.get_order(draft.id)
        assert stored.status is OrderStatus.SUBMITTED
        assert stored.version == written.version

    def test_wrong_expected_status_rejected(self, any_store, draft):
        """The write is refused when the stored status differs."""
        with pytest.raises(OptimisticLockError) as exc_info:
            with any_store.transaction():
                any_store.update_order(
                    replace(draft, status=OrderStatus.CC_APPROVED), OrderStatus.SUBMITTED
                )

        assert exc_info.value.entity_id == str(draft.id)
        assert any_store.get_order(draft.id).status is OrderStatus.DRAFT

    def test_stale_version_rejected(self, any_store, draft):
        """A second writer holding the original version loses."""
        with any_store.transaction():
            any_store.update_order(replace(draft, notes="first"), OrderStatus.DRAFT)

        with pytest.raises(OptimisticLockError):
            with any_store.transaction():
                any_store.update_order(replace(draft, notes="second"), OrderStatus.DRAFT)

        assert any_store.get_order(draft.id).notes == "first"

    def test_lock_order_reads_current_row(self, any_store, draft):
        with any_store.transaction():
            locked = any_store.lock_order(draft.id)
        assert locked.id == draft.id
        assert any_store.lock_order(uuid4()) is None


class TestOrderNumbers:

    def test_max_order_number_scoped_by_prefix(self, any_store, draft):
        other = replace(draft, id=uuid4(), order_number="PCO-2024-00042")
        later = replace(draft, id=uuid4(), order_number="PCO-2025-00007")
        with any_store.transaction():
            any_store.add_order(other)
            any_store.add_order(later)

        assert any_store.max_order_number("PCO-2025-") == "PCO-2025-00007"
        assert any_store.max_order_number("PCO-2024-") == "PCO-2024-00042"
        assert any_store.max_order_number("PCO-2026-") is None

    def test_max_order_number_past_five_digits(self, any_store, draft):
        with any_store.transaction():
            for number in ("PCO-2025-99999", "PCO-2025-100000", "PCO-2025-09999"):
                any_store.add_order(replace(draft, id=uuid4(), order_number=number))

        assert any_store.max_order_number("PCO-2025-") == "PCO-2025-100000"

    def test_duplicate_order_number_rejected(self, store, wine_partner, partner_user):
        order = Order(
            id=uuid4(),
            order_number="PCO-2025-00001",
            status=OrderStatus.DRAFT,
            partner_id=wine_partner.id,
            created_at=T0,
            created_by=partner_user.user_id,
        )
        store.add_order(order)
        with pytest.raises(ValueError):
            store.add_order(replace(order, id=uuid4()))


class TestLineItemsAndActivity:

    def test_items_listed_in_insertion_order(self, any_store, draft):
        names = ["Petrus", "Opus One", "Krug"]
        with any_store.transaction():
            for name in names:
                any_store.add_item(_item(draft.id, name))

        assert [i.product_name for i in any_store.list_items(draft.id)] == names

    def test_update_and_delete_items(self, any_store, draft):
        first, second = _item(draft.id, "Petrus"), _item(draft.id, "Krug")
        with any_store.transaction():
            any_store.add_item(first)
            any_store.add_item(second)
            any_store.update_items([replace(first, quantity=4)])
            any_store.delete_item(second.id)

        items = any_store.list_items(draft.id)
        assert [(i.product_name, i.quantity) for i in items] == [("Petrus", 4)]

    def test_update_of_unknown_item_raises(self, any_store, draft):
        with pytest.raises(KeyError):
            with any_store.transaction():
                any_store.update_items([_item(draft.id, "Ghost")])

    def test_activity_oldest_first(self, any_store, draft, partner_user):
        actions = ["order_created", "item_added", "order_submitted"]
        with any_store.transaction():
            for offset, action in enumerate(actions):
                any_store.append_activity(
                    ActivityLogEntry(
                        id=uuid4(),
                        order_id=draft.id,
                        actor_id=partner_user.user_id,
                        action=action,
                        created_at=T0 + timedelta(seconds=offset),
                        metadata={"step": offset},
                    )
                )

        entries = any_store.list_activity(draft.id)
        assert [e.action for e in entries] == actions
        assert entries[2].metadata == {"step": 2}


class TestPricingSessions:

    @pytest.fixture
    def pricing_session(self, any_store, admin):
        session = PricingSession(
            id=uuid4(),
            name="Spring list",
            status=SessionStatus.UPLOADED,
            created_at=T0,
            created_by=admin.user_id,
            raw_data=({"Product": "Petrus", "Price": "100"},),
            detected_columns=("Product", "Price"),
        )
        with any_store.transaction():
            any_store.add_pricing_session(session)
        return session

    def test_update_bumps_version(self, any_store, pricing_session):
        with any_store.transaction():
            written = any_store.update_pricing_session(
                replace(pricing_session, status=SessionStatus.MAPPED)
            )

        stored = any_store.get_pricing_session(pricing_session.id)
        assert written.version == 2
        assert stored.status is SessionStatus.MAPPED
        assert list(stored.detected_columns) == ["Product", "Price"]

    def test_replace_items_discards_previous(self, any_store, pricing_session):
        with any_store.transaction():
            any_store.replace_pricing_items(
                pricing_session.id,
                [_pricing_item(pricing_session.id, 1, "B"), _pricing_item(pricing_session.id, 0, "A")],
            )
        with any_store.transaction():
            any_store.replace_pricing_items(
                pricing_session.id, [_pricing_item(pricing_session.id, 0, "C")]
            )

        assert [i.product_name for i in any_store.list_pricing_items(pricing_session.id)] == ["C"]

    def test_items_ordered_by_row_index(self, any_store, pricing_session):
        rows = [_pricing_item(pricing_session.id, idx, name) for idx, name in [(2, "C"), (0, "A"), (1, "B")]]
        with any_store.transaction():
            any_store.replace_pricing_items(pricing_session.id, rows)

        listed = any_store.list_pricing_items(pricing_session.id)
        assert [i.product_name for i in listed] == ["A", "B", "C"]
        assert any_store.get_pricing_item(rows[0].id).row_index == 2
