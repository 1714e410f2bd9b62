"""
In-memory implementation of the storage port.

Backs unit tests and local tooling.  DTOs are frozen, so a transaction
snapshot is a shallow copy of each table dict; rollback restores it.
A single re-entrant lock is held for the whole outermost transaction,
which gives ``lock_order`` its serializing guarantee.
"""

from __future__ import annotations

import threading
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import replace
from typing import Any
from uuid import UUID

from pco_kernel.domain.dtos import (
    ActivityLogEntry,
    Client,
    Order,
    OrderLineItem,
    OrderStatus,
    Partner,
    PricingLineItem,
    PricingSession,
)
from pco_kernel.exceptions import OptimisticLockError
from pco_kernel.logging_config import get_logger

logger = get_logger("store.memory")

_TABLES = (
    "_orders",
    "_items",
    "_activity",
    "_partners",
    "_clients",
    "_sessions",
    "_pricing_items",
)


class InMemoryOrderStore:
    """Dict-backed ``OrderStore``."""

    def __init__(self) -> None:
        self._orders: dict[UUID, Order] = {}
        self._items: dict[UUID, OrderLineItem] = {}
        self._activity: dict[UUID, ActivityLogEntry] = {}
        self._partners: dict[UUID, Partner] = {}
        self._clients: dict[UUID, Client] = {}
        self._sessions: dict[UUID, PricingSession] = {}
        self._pricing_items: dict[UUID, PricingLineItem] = {}
        self._lock = threading.RLock()
        self._depth = 0

    @contextmanager
    def transaction(self) -> Iterator[None]:
        with self._lock:
            outermost = self._depth == 0
            snapshot: dict[str, dict[UUID, Any]] = {}
            if outermost:
                snapshot = {name: dict(getattr(self, name)) for name in _TABLES}
            self._depth += 1
            try:
                yield
            except Exception:
                if outermost:
                    for name, table in snapshot.items():
                        setattr(self, name, table)
                    logger.debug("memory_transaction_rolled_back")
                raise
            finally:
                self._depth -= 1

    # -- seeding (not part of the port) -------------------------------------

    def add_partner(self, partner: Partner) -> Partner:
        self._partners[partner.id] = partner
        return partner

    def add_client(self, client: Client) -> Client:
        self._clients[client.id] = client
        return client

    # -- orders -------------------------------------------------------------

    def add_order(self, order: Order) -> Order:
        with self._lock:
            if any(o.order_number == order.order_number for o in self._orders.values()):
                raise ValueError(f"Duplicate order number: {order.order_number}")
            self._orders[order.id] = order
            return order

    def get_order(self, order_id: UUID) -> Order | None:
        return self._orders.get(order_id)

    def lock_order(self, order_id: UUID) -> Order | None:
        # The store-wide lock is already held by the enclosing transaction.
        return self._orders.get(order_id)

    def update_order(self, order: Order, expected_status: OrderStatus) -> Order:
        with self._lock:
            stored = self._orders.get(order.id)
            if (
                stored is None
                or stored.status is not expected_status
                or stored.version != order.version
            ):
                raise OptimisticLockError("Order", str(order.id), expected_status.value)
            written = replace(order, version=order.version + 1)
            self._orders[order.id] = written
            return written

    def max_order_number(self, prefix: str) -> str | None:
        numbers = [
            o.order_number for o in self._orders.values() if o.order_number.startswith(prefix)
        ]
        # Sequences are zero-padded to a minimum width, so a longer number is larger.
        return max(numbers, key=lambda n: (len(n), n)) if numbers else None

    # -- line items ---------------------------------------------------------

    def add_item(self, item: OrderLineItem) -> OrderLineItem:
        self._items[item.id] = item
        return item

    def get_item(self, item_id: UUID) -> OrderLineItem | None:
        return self._items.get(item_id)

    def list_items(self, order_id: UUID) -> list[OrderLineItem]:
        return [i for i in self._items.values() if i.order_id == order_id]

    def update_items(self, items: Sequence[OrderLineItem]) -> None:
        for item in items:
            if item.id not in self._items:
                raise KeyError(f"Line item not stored: {item.id}")
            self._items[item.id] = item

    def delete_item(self, item_id: UUID) -> None:
        self._items.pop(item_id, None)

    # -- activity -----------------------------------------------------------

    def append_activity(self, entry: ActivityLogEntry) -> ActivityLogEntry:
        if entry.id in self._activity:
            raise ValueError(f"Activity entry already recorded: {entry.id}")
        self._activity[entry.id] = entry
        return entry

    def list_activity(self, order_id: UUID) -> list[ActivityLogEntry]:
        entries = [e for e in self._activity.values() if e.order_id == order_id]
        return sorted(entries, key=lambda e: e.created_at)

    # -- parties ------------------------------------------------------------

    def get_partner(self, partner_id: UUID) -> Partner | None:
        return self._partners.get(partner_id)

    def get_client(self, client_id: UUID) -> Client | None:
        return self._clients.get(client_id)

    def update_client(self, client: Client) -> None:
        self._clients[client.id] = client

    # -- bulk pricing -------------------------------------------------------

    def add_pricing_session(self, session: PricingSession) -> PricingSession:
        self._sessions[session.id] = session
        return session

    def get_pricing_session(self, session_id: UUID) -> PricingSession | None:
        return self._sessions.get(session_id)

    def update_pricing_session(self, session: PricingSession) -> PricingSession:
        written = replace(session, version=session.version + 1)
        self._sessions[session.id] = written
        return written

    def replace_pricing_items(
        self, session_id: UUID, items: Sequence[PricingLineItem]
    ) -> None:
        self._pricing_items = {
            k: v for k, v in self._pricing_items.items() if v.session_id != session_id
        }
        for item in items:
            self._pricing_items[item.id] = item

    def list_pricing_items(self, session_id: UUID) -> list[PricingLineItem]:
        items = [i for i in self._pricing_items.values() if i.session_id == session_id]
        return sorted(items, key=lambda i: i.row_index)

    def get_pricing_item(self, item_id: UUID) -> PricingLineItem | None:
        return self._pricing_items.get(item_id)

    def update_pricing_item(self, item: PricingLineItem) -> None:
        self._pricing_items[item.id] = item
