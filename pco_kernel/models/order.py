"""
Module: pco_kernel.models.order
Responsibility: ORM persistence for the Order aggregate and its line items.
Architecture position: Kernel > Models.  Inherits from TrackedBase.  Read and
    written only by ``pco_kernel.store.sqlalchemy_store``.

Invariants enforced:
    - Column names equal the DTO field names, so conversion is a field-wise
      copy (``to_dto`` / ``from_dto``) with enum and timezone coercion.
    - Enum fields stored as String(50).
    - ``order_number`` is unique; ``version`` backs the conditional status
      update that serializes concurrent transitions.
"""

from __future__ import annotations

import dataclasses
from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import Date, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from pco_kernel.db.base import TrackedBase, UUIDString
from pco_kernel.domain.dtos import (
    Order,
    OrderLineItem,
    OrderStatus,
    StockSource,
    StockStatus,
)


def as_utc(value: datetime | None) -> datetime | None:
    """SQLite drops tzinfo on the way back; stored values are always UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def dto_values(dto: Any) -> dict[str, Any]:
    """Column values for a DTO whose field names match the model's columns."""
    values: dict[str, Any] = {}
    for f in dataclasses.fields(dto):
        val = getattr(dto, f.name)
        if hasattr(val, "value") and isinstance(val, str):
            val = val.value
        values[f.name] = val
    return values


class OrderModel(TrackedBase):
    """A private client order row."""

    __tablename__ = "pco_orders"

    __table_args__ = (
        Index("idx_pco_order_partner", "partner_id"),
        Index("idx_pco_order_distributor", "distributor_id"),
        Index("idx_pco_order_status", "status"),
    )

    order_number: Mapped[str] = mapped_column(String(20), nullable=False, unique=True)
    status: Mapped[str] = mapped_column(String(50), nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    partner_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    created_by: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    distributor_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    client_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    client_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    client_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    client_phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    client_address: Mapped[str | None] = mapped_column(Text, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    duty_percent: Mapped[Decimal] = mapped_column(nullable=False)
    vat_percent: Mapped[Decimal] = mapped_column(nullable=False)
    logistics_percent: Mapped[Decimal] = mapped_column(nullable=False)
    usd_to_aed: Mapped[Decimal] = mapped_column(nullable=False)

    item_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    case_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    subtotal_usd: Mapped[Decimal] = mapped_column(nullable=False)
    duty_usd: Mapped[Decimal] = mapped_column(nullable=False)
    vat_usd: Mapped[Decimal] = mapped_column(nullable=False)
    logistics_usd: Mapped[Decimal] = mapped_column(nullable=False)
    total_usd: Mapped[Decimal] = mapped_column(nullable=False)

    payment_reference: Mapped[str | None] = mapped_column(String(100), nullable=True)
    client_payment_reference: Mapped[str | None] = mapped_column(String(100), nullable=True)
    partner_verification_response: Mapped[str | None] = mapped_column(String(50), nullable=True)
    distributor_verification_response: Mapped[str | None] = mapped_column(String(50), nullable=True)
    distributor_verification_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    revision_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    scheduled_delivery_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    delivery_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    delivery_signature: Mapped[str | None] = mapped_column(Text, nullable=True)
    delivery_photo_url: Mapped[str | None] = mapped_column(String(500), nullable=True)

    submitted_at: Mapped[datetime | None]
    submitted_by: Mapped[UUID | None]
    approved_at: Mapped[datetime | None]
    approved_by: Mapped[UUID | None]
    revision_requested_at: Mapped[datetime | None]
    revision_requested_by: Mapped[UUID | None]
    distributor_assigned_at: Mapped[datetime | None]
    distributor_assigned_by: Mapped[UUID | None]
    partner_verification_at: Mapped[datetime | None]
    partner_verification_by: Mapped[UUID | None]
    distributor_verification_at: Mapped[datetime | None]
    distributor_verification_by: Mapped[UUID | None]
    client_paid_at: Mapped[datetime | None]
    client_paid_by: Mapped[UUID | None]
    distributor_paid_at: Mapped[datetime | None]
    distributor_paid_by: Mapped[UUID | None]
    partner_paid_at: Mapped[datetime | None]
    partner_paid_by: Mapped[UUID | None]
    stock_dispatched_at: Mapped[datetime | None]
    stock_dispatched_by: Mapped[UUID | None]
    stock_received_at: Mapped[datetime | None]
    stock_received_by: Mapped[UUID | None]
    delivery_scheduled_at: Mapped[datetime | None]
    delivery_scheduled_by: Mapped[UUID | None]
    out_for_delivery_at: Mapped[datetime | None]
    out_for_delivery_by: Mapped[UUID | None]
    delivered_at: Mapped[datetime | None]
    delivered_by: Mapped[UUID | None]
    cancelled_at: Mapped[datetime | None]
    cancelled_by: Mapped[UUID | None]

    def to_dto(self) -> Order:
        """Convert ORM model to frozen Order DTO."""
        kwargs: dict[str, Any] = {}
        for f in dataclasses.fields(Order):
            val = getattr(self, f.name)
            if isinstance(val, datetime):
                val = as_utc(val)
            kwargs[f.name] = val
        kwargs["status"] = OrderStatus(self.status)
        return Order(**kwargs)

    @classmethod
    def from_dto(cls, dto: Order) -> OrderModel:
        """Create ORM model from frozen Order DTO."""
        return cls(**dto_values(dto))

    def __repr__(self) -> str:
        return f"<OrderModel {self.order_number} status={self.status} v{self.version}>"


class OrderLineItemModel(TrackedBase):
    """A product line of an order."""

    __tablename__ = "pco_order_items"

    __table_args__ = (
        Index("idx_pco_item_order", "order_id"),
        Index("idx_pco_item_lwin", "lwin"),
    )

    order_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("pco_orders.id", ondelete="CASCADE"), nullable=False
    )
    product_name: Mapped[str] = mapped_column(String(500), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price_usd: Mapped[Decimal] = mapped_column(nullable=False)
    line_total_usd: Mapped[Decimal] = mapped_column(nullable=False)
    case_config: Mapped[int] = mapped_column(Integer, nullable=False, default=6)
    producer: Mapped[str | None] = mapped_column(String(255), nullable=True)
    vintage: Mapped[str | None] = mapped_column(String(10), nullable=True)
    region: Mapped[str | None] = mapped_column(String(255), nullable=True)
    lwin: Mapped[str | None] = mapped_column(String(18), nullable=True)
    bottle_size: Mapped[str | None] = mapped_column(String(20), nullable=True)
    stock_source: Mapped[str | None] = mapped_column(String(50), nullable=True)
    stock_status: Mapped[str] = mapped_column(String(50), nullable=False)
    stock_confirmed_at: Mapped[datetime | None]
    stock_expected_at: Mapped[datetime | None]
    stock_received_at: Mapped[datetime | None]
    stock_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    line_number: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    def to_dto(self) -> OrderLineItem:
        """Convert ORM model to frozen OrderLineItem DTO."""
        return OrderLineItem(
            id=self.id,
            order_id=self.order_id,
            product_name=self.product_name,
            quantity=self.quantity,
            unit_price_usd=self.unit_price_usd,
            line_total_usd=self.line_total_usd,
            case_config=self.case_config,
            producer=self.producer,
            vintage=self.vintage,
            region=self.region,
            lwin=self.lwin,
            bottle_size=self.bottle_size,
            stock_source=StockSource(self.stock_source) if self.stock_source else None,
            stock_status=StockStatus(self.stock_status),
            stock_confirmed_at=as_utc(self.stock_confirmed_at),
            stock_expected_at=as_utc(self.stock_expected_at),
            stock_received_at=as_utc(self.stock_received_at),
            stock_notes=self.stock_notes,
            created_at=as_utc(self.created_at),
        )

    @classmethod
    def from_dto(cls, dto: OrderLineItem, line_number: int = 0) -> OrderLineItemModel:
        """Create ORM model from frozen OrderLineItem DTO."""
        values = dto_values(dto)
        values["line_number"] = line_number
        if values["created_at"] is None:
            values.pop("created_at")
        return cls(**values)

    def apply(self, dto: OrderLineItem) -> None:
        """Overwrite mutable columns from an updated DTO."""
        for key, val in dto_values(dto).items():
            if key not in ("id", "order_id", "created_at"):
                setattr(self, key, val)

    def __repr__(self) -> str:
        return f"<OrderLineItemModel {self.id} {self.product_name!r} qty={self.quantity}>"
