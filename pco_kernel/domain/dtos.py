"""
Domain Data Transfer Objects (``pco_kernel.domain.dtos``).

Responsibility
--------------
Immutable value objects passed between the storage port, the pricing
engines, the services and the modules.  Storage implementations convert
their rows into these types (ORM ``to_dto``) so upper layers never touch
persistence objects.

Architecture position
---------------------
**Kernel domain layer** -- pure data, ZERO I/O.

Invariants enforced
-------------------
* ``Order.status`` is always an ``OrderStatus`` member, never null.
* Milestone pairs (``<milestone>_at`` / ``<milestone>_by``) are written
  once through ``Order.with_milestone``; a second stamp is ignored.
  Only ``Order.clear_milestones`` (admin verification reset) unsets them.
* Money is ``Decimal`` everywhere; DTOs never round.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

ZERO = Decimal("0")


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class OrderStatus(str, Enum):
    """Commercial status of a private client order."""

    DRAFT = "draft"
    SUBMITTED = "submitted"
    UNDER_CC_REVIEW = "under_cc_review"
    REVISION_REQUESTED = "revision_requested"
    CC_APPROVED = "cc_approved"
    AWAITING_PARTNER_VERIFICATION = "awaiting_partner_verification"
    AWAITING_DISTRIBUTOR_VERIFICATION = "awaiting_distributor_verification"
    VERIFICATION_SUSPENDED = "verification_suspended"
    AWAITING_CLIENT_PAYMENT = "awaiting_client_payment"
    CLIENT_PAID = "client_paid"
    AWAITING_DISTRIBUTOR_PAYMENT = "awaiting_distributor_payment"
    DISTRIBUTOR_PAID = "distributor_paid"
    AWAITING_PARTNER_PAYMENT = "awaiting_partner_payment"
    PARTNER_PAID = "partner_paid"
    STOCK_IN_TRANSIT = "stock_in_transit"
    WITH_DISTRIBUTOR = "with_distributor"
    SCHEDULING_DELIVERY = "scheduling_delivery"
    DELIVERY_SCHEDULED = "delivery_scheduled"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class StockStatus(str, Enum):
    """Physical custody state of a line item, independent of order status."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    AT_CC_BONDED = "at_cc_bonded"
    IN_TRANSIT_TO_DISTRIBUTOR = "in_transit_to_distributor"
    AT_DISTRIBUTOR = "at_distributor"
    DELIVERED = "delivered"


class StockSource(str, Enum):
    """Where a line item's stock originates."""

    CC_INVENTORY = "cc_inventory"
    PARTNER_AIRFREIGHT = "partner_airfreight"
    PARTNER_LOCAL = "partner_local"
    MANUAL = "manual"


class ActorRole(str, Enum):
    ADMIN = "admin"
    PARTNER = "partner"
    DISTRIBUTOR = "distributor"


class PartnerKind(str, Enum):
    WINE_PARTNER = "wine_partner"
    DISTRIBUTOR = "distributor"


class SessionStatus(str, Enum):
    """Lifecycle of a bulk pricing session."""

    UPLOADED = "uploaded"
    MAPPED = "mapped"
    CONFIGURED = "configured"
    CALCULATED = "calculated"


class Milestone(str, Enum):
    """Significant order events that record a (timestamp, actor) pair."""

    SUBMITTED = "submitted"
    APPROVED = "approved"
    REVISION_REQUESTED = "revision_requested"
    DISTRIBUTOR_ASSIGNED = "distributor_assigned"
    PARTNER_VERIFICATION = "partner_verification"
    DISTRIBUTOR_VERIFICATION = "distributor_verification"
    CLIENT_PAID = "client_paid"
    DISTRIBUTOR_PAID = "distributor_paid"
    PARTNER_PAID = "partner_paid"
    STOCK_DISPATCHED = "stock_dispatched"
    STOCK_RECEIVED = "stock_received"
    DELIVERY_SCHEDULED = "delivery_scheduled"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


# ---------------------------------------------------------------------------
# Parties
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Actor:
    """The authenticated caller of an operation.

    ``partner_id`` is the partner or distributor organisation the user
    belongs to; admins have none.
    """

    user_id: UUID
    role: ActorRole
    partner_id: UUID | None = None

    @property
    def is_admin(self) -> bool:
        return self.role is ActorRole.ADMIN


@dataclass(frozen=True)
class Partner:
    id: UUID
    business_name: str
    kind: PartnerKind
    distributor_code: str | None = None
    requires_client_verification: bool = False


@dataclass(frozen=True)
class Client:
    """End client; ``external_verified_at`` is set once by the first delivery."""

    id: UUID
    name: str
    email: str | None = None
    external_verified_at: datetime | None = None
    external_verified_by: UUID | None = None


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Order:
    """Aggregate root of a single private client sale."""

    id: UUID
    order_number: str
    status: OrderStatus
    partner_id: UUID
    created_at: datetime
    created_by: UUID
    version: int = 1
    updated_at: datetime | None = None

    distributor_id: UUID | None = None
    client_id: UUID | None = None
    client_name: str | None = None
    client_email: str | None = None
    client_phone: str | None = None
    client_address: str | None = None
    notes: str | None = None

    # Rate configuration (percentages, e.g. 20 for 20%)
    duty_percent: Decimal = Decimal("20")
    vat_percent: Decimal = Decimal("5")
    logistics_percent: Decimal = Decimal("0.75")
    usd_to_aed: Decimal = Decimal("3.67")

    # Derived totals
    item_count: int = 0
    case_count: int = 0
    subtotal_usd: Decimal = ZERO
    duty_usd: Decimal = ZERO
    vat_usd: Decimal = ZERO
    logistics_usd: Decimal = ZERO
    total_usd: Decimal = ZERO

    # Workflow detail
    payment_reference: str | None = None
    client_payment_reference: str | None = None
    partner_verification_response: str | None = None
    distributor_verification_response: str | None = None
    distributor_verification_notes: str | None = None
    revision_reason: str | None = None
    cancellation_reason: str | None = None
    scheduled_delivery_date: date | None = None
    delivery_notes: str | None = None
    delivery_signature: str | None = None
    delivery_photo_url: str | None = None

    # Milestones
    submitted_at: datetime | None = None
    submitted_by: UUID | None = None
    approved_at: datetime | None = None
    approved_by: UUID | None = None
    revision_requested_at: datetime | None = None
    revision_requested_by: UUID | None = None
    distributor_assigned_at: datetime | None = None
    distributor_assigned_by: UUID | None = None
    partner_verification_at: datetime | None = None
    partner_verification_by: UUID | None = None
    distributor_verification_at: datetime | None = None
    distributor_verification_by: UUID | None = None
    client_paid_at: datetime | None = None
    client_paid_by: UUID | None = None
    distributor_paid_at: datetime | None = None
    distributor_paid_by: UUID | None = None
    partner_paid_at: datetime | None = None
    partner_paid_by: UUID | None = None
    stock_dispatched_at: datetime | None = None
    stock_dispatched_by: UUID | None = None
    stock_received_at: datetime | None = None
    stock_received_by: UUID | None = None
    delivery_scheduled_at: datetime | None = None
    delivery_scheduled_by: UUID | None = None
    out_for_delivery_at: datetime | None = None
    out_for_delivery_by: UUID | None = None
    delivered_at: datetime | None = None
    delivered_by: UUID | None = None
    cancelled_at: datetime | None = None
    cancelled_by: UUID | None = None

    def milestone(self, milestone: Milestone) -> tuple[datetime | None, UUID | None]:
        return (
            getattr(self, f"{milestone.value}_at"),
            getattr(self, f"{milestone.value}_by"),
        )

    def with_milestone(self, milestone: Milestone, at: datetime, by: UUID) -> Order:
        """Stamp a milestone; a milestone already stamped is left untouched."""
        if getattr(self, f"{milestone.value}_at") is not None:
            return self
        return replace(self, **{f"{milestone.value}_at": at, f"{milestone.value}_by": by})

    def clear_milestones(self, *milestones: Milestone) -> Order:
        """Admin correction path: unset the given milestones."""
        changes: dict[str, Any] = {}
        for m in milestones:
            changes[f"{m.value}_at"] = None
            changes[f"{m.value}_by"] = None
        return replace(self, **changes)

    @property
    def is_terminal(self) -> bool:
        return self.status in (OrderStatus.DELIVERED, OrderStatus.CANCELLED)


@dataclass(frozen=True)
class OrderLineItem:
    """A product line on an order. ``unit_price_usd`` is per case."""

    id: UUID
    order_id: UUID
    product_name: str
    quantity: int
    unit_price_usd: Decimal
    line_total_usd: Decimal
    case_config: int = 6
    producer: str | None = None
    vintage: str | None = None
    region: str | None = None
    lwin: str | None = None
    bottle_size: str | None = None
    stock_source: StockSource | None = None
    stock_status: StockStatus = StockStatus.PENDING
    stock_confirmed_at: datetime | None = None
    stock_expected_at: datetime | None = None
    stock_received_at: datetime | None = None
    stock_notes: str | None = None
    created_at: datetime | None = None


@dataclass(frozen=True)
class ActivityLogEntry:
    """One append-only audit record for an order."""

    id: UUID
    order_id: UUID
    actor_id: UUID
    action: str
    created_at: datetime
    previous_status: OrderStatus | None = None
    new_status: OrderStatus | None = None
    notes: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Bulk pricing
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PricingSession:
    """An uploaded product list awaiting (or holding) a bulk calculation.

    ``variables`` is the serialized ``CalculationVariables`` (see
    ``pco_engines.bulk_pricing``); ``None`` until configured.
    """

    id: UUID
    name: str
    status: SessionStatus
    created_at: datetime
    created_by: UUID
    raw_data: tuple[dict[str, Any], ...] = ()
    detected_columns: tuple[str, ...] = ()
    column_mapping: dict[str, str] = field(default_factory=dict)
    variables: dict[str, Any] | None = None
    source_filename: str | None = None
    item_count: int = 0
    calculated_at: datetime | None = None
    version: int = 1


@dataclass(frozen=True)
class PricingLineItem:
    """A calculated product row of a bulk pricing session."""

    id: UUID
    session_id: UUID
    row_index: int
    product_name: str
    source_price: Decimal
    source_currency: str
    case_config: int
    in_bond_case_usd: Decimal
    in_bond_bottle_usd: Decimal
    in_bond_case_aed: Decimal
    in_bond_bottle_aed: Decimal
    delivered_case_usd: Decimal
    delivered_bottle_usd: Decimal
    delivered_case_aed: Decimal
    delivered_bottle_aed: Decimal
    vintage: str | None = None
    producer: str | None = None
    region: str | None = None
    lwin: str | None = None
    bottle_size: str | None = None
