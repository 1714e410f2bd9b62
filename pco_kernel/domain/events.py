"""
Domain events published after an order transaction commits.

Events are facts: they are built inside the transaction from the committed
snapshot and handed to ``pco_services.event_dispatcher.EventDispatcher``
only once the store transaction has succeeded.  Handlers (notifications,
invoice trigger) never run for a rolled-back transition.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, ClassVar
from uuid import UUID, uuid4

from pco_kernel.domain.dtos import OrderStatus


@dataclass(frozen=True)
class DomainEvent:
    """Base event: identity, time of occurrence and the aggregate it concerns."""

    event_type: ClassVar[str] = "domain_event"

    order_id: UUID
    occurred_at: datetime
    actor_id: UUID
    event_id: UUID = field(default_factory=uuid4, kw_only=True)

    def get_aggregate_id(self) -> str:
        return str(self.order_id)


@dataclass(frozen=True)
class OrderStatusChanged(DomainEvent):
    """An order moved from one status to another."""

    event_type: ClassVar[str] = "order_status_changed"

    order_number: str
    partner_id: UUID
    from_status: OrderStatus
    to_status: OrderStatus
    distributor_id: UUID | None = None
    payment_reference: str | None = None


@dataclass(frozen=True)
class StockReceivedAtDistributor(DomainEvent):
    """The assigned distributor confirmed physical receipt of line items."""

    event_type: ClassVar[str] = "stock_received_at_distributor"

    order_number: str
    partner_id: UUID
    distributor_id: UUID | None
    item_ids: tuple[UUID, ...]
    item_names: tuple[str, ...]
    metadata: dict[str, Any] = field(default_factory=dict)
