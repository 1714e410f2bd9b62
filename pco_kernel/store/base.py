"""
Storage port (``pco_kernel.store.base``).

Responsibility
--------------
The single persistence interface injected into the order state machine,
the activity log, the order-number generator and the bulk pricing
session.  Two implementations ship with the kernel:

* ``InMemoryOrderStore`` -- dict-backed, used by unit tests and tooling.
* ``SqlAlchemyOrderStore`` -- wraps a SQLAlchemy ``Session``.

Architecture position
---------------------
**Kernel > Store** -- depends only on ``pco_kernel.domain``.

Invariants enforced
-------------------
* Every write happens inside ``transaction()``; leaving the block with an
  exception discards all writes made inside it.
* ``lock_order`` serializes writers of the same order for the rest of the
  enclosing transaction.
* ``update_order`` is a conditional write: it succeeds only when the stored
  row still has ``expected_status`` and the DTO's ``version``; otherwise it
  raises ``OptimisticLockError`` and writes nothing.
* Activity entries are append-only: the port has no update/delete for them.
"""

from __future__ import annotations

from collections.abc import Sequence
from contextlib import AbstractContextManager
from typing import Protocol, runtime_checkable
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


@runtime_checkable
class OrderStore(Protocol):
    """Create/read/update/delete on orders, items, activity and pricing sessions."""

    def transaction(self) -> AbstractContextManager[None]:
        """Atomic unit of work; nested calls join the outer transaction."""
        ...

    # -- orders -------------------------------------------------------------

    def add_order(self, order: Order) -> Order: ...

    def get_order(self, order_id: UUID) -> Order | None: ...

    def lock_order(self, order_id: UUID) -> Order | None:
        """Read an order and hold its row lock until the transaction ends."""
        ...

    def update_order(self, order: Order, expected_status: OrderStatus) -> Order:
        """Conditional write; returns the stored order with ``version + 1``."""
        ...

    def max_order_number(self, prefix: str) -> str | None:
        """Highest order number starting with ``prefix`` (e.g. ``PCO-2025-``).

        Compared by sequence value: ``PCO-2025-100000`` follows ``PCO-2025-99999``.
        """
        ...

    # -- line items ---------------------------------------------------------

    def add_item(self, item: OrderLineItem) -> OrderLineItem: ...

    def get_item(self, item_id: UUID) -> OrderLineItem | None: ...

    def list_items(self, order_id: UUID) -> list[OrderLineItem]:
        """Items in insertion order."""
        ...

    def update_items(self, items: Sequence[OrderLineItem]) -> None: ...

    def delete_item(self, item_id: UUID) -> None: ...

    # -- activity -----------------------------------------------------------

    def append_activity(self, entry: ActivityLogEntry) -> ActivityLogEntry: ...

    def list_activity(self, order_id: UUID) -> list[ActivityLogEntry]:
        """Entries oldest first."""
        ...

    # -- parties ------------------------------------------------------------

    def get_partner(self, partner_id: UUID) -> Partner | None: ...

    def get_client(self, client_id: UUID) -> Client | None: ...

    def update_client(self, client: Client) -> None: ...

    # -- bulk pricing -------------------------------------------------------

    def add_pricing_session(self, session: PricingSession) -> PricingSession: ...

    def get_pricing_session(self, session_id: UUID) -> PricingSession | None: ...

    def update_pricing_session(self, session: PricingSession) -> PricingSession: ...

    def replace_pricing_items(
        self, session_id: UUID, items: Sequence[PricingLineItem]
    ) -> None:
        """Delete every item of the session, then insert ``items``."""
        ...

    def list_pricing_items(self, session_id: UUID) -> list[PricingLineItem]:
        """Items ordered by ``row_index``."""
        ...

    def get_pricing_item(self, item_id: UUID) -> PricingLineItem | None: ...

    def update_pricing_item(self, item: PricingLineItem) -> None: ...

