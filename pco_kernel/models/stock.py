"""
Module: pco_kernel.models.stock
Responsibility: Bonded-stock lots and the reservations held against them
    for private client orders.
Architecture position: Kernel > Models.  Used only by
    ``pco_services.stock_reservation.SqlInventoryGateway``.

Invariants enforced:
    - ``available_cases`` never goes negative: decrements are conditional
      (``WHERE available_cases >= :qty``).
    - At most one ACTIVE reservation per (order item, lot).
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from pco_kernel.db.base import Base, UUIDString


class StockLotModel(Base):
    """Cases of one wine held in the operating company's bonded stock."""

    __tablename__ = "pco_stock_lots"

    __table_args__ = (
        Index("idx_pco_stock_lwin", "lwin18"),
    )

    lwin18: Mapped[str] = mapped_column(String(18), nullable=False)
    product_name: Mapped[str] = mapped_column(String(500), nullable=False)
    available_cases: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    reserved_cases: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    received_at: Mapped[datetime | None]


class StockReservationModel(Base):
    """Cases of a lot held for an order line item."""

    __tablename__ = "pco_stock_reservations"

    __table_args__ = (
        Index("idx_pco_reservation_order", "order_id", "status"),
        Index("idx_pco_reservation_item", "order_item_id", "status"),
    )

    order_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    order_type: Mapped[str] = mapped_column(String(20), nullable=False)
    order_item_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    stock_lot_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    quantity_cases: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")
    reserved_at: Mapped[datetime] = mapped_column(nullable=False)
    released_at: Mapped[datetime | None]
    release_reason: Mapped[str | None] = mapped_column(String(255), nullable=True)
