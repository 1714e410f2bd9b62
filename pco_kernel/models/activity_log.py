"""
Module: pco_kernel.models.activity_log
Responsibility: Append-only ORM table backing the order activity log.
Architecture position: Kernel > Models.  Written only through
    ``SqlAlchemyOrderStore.append_activity``; no update or delete path exists.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from pco_kernel.db.base import Base, UUIDString
from pco_kernel.domain.dtos import ActivityLogEntry, OrderStatus
from pco_kernel.models.order import as_utc


class ActivityLogModel(Base):
    """One audit record per state change or commercial action on an order."""

    __tablename__ = "pco_order_activity_logs"

    __table_args__ = (
        Index("idx_pco_activity_order_seq", "order_id", "seq"),
    )

    order_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("pco_orders.id", ondelete="CASCADE"), nullable=False
    )
    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    action: Mapped[str] = mapped_column(String(100), nullable=False)
    previous_status: Mapped[str | None] = mapped_column(String(50), nullable=True)
    new_status: Mapped[str | None] = mapped_column(String(50), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    payload: Mapped[dict[str, Any]] = mapped_column("metadata", JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(nullable=False)
    seq: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    def to_dto(self) -> ActivityLogEntry:
        return ActivityLogEntry(
            id=self.id,
            order_id=self.order_id,
            actor_id=self.actor_id,
            action=self.action,
            created_at=as_utc(self.created_at),
            previous_status=OrderStatus(self.previous_status) if self.previous_status else None,
            new_status=OrderStatus(self.new_status) if self.new_status else None,
            notes=self.notes,
            metadata=dict(self.payload or {}),
        )

    @classmethod
    def from_dto(cls, dto: ActivityLogEntry, seq: int = 0) -> ActivityLogModel:
        return cls(
            seq=seq,
            id=dto.id,
            order_id=dto.order_id,
            actor_id=dto.actor_id,
            action=dto.action,
            previous_status=dto.previous_status.value if dto.previous_status else None,
            new_status=dto.new_status.value if dto.new_status else None,
            notes=dto.notes,
            payload=dict(dto.metadata),
            created_at=dto.created_at,
        )
