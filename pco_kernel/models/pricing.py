"""
Module: pco_kernel.models.pricing
Responsibility: ORM persistence for bulk pricing sessions and their
    calculated rows.
Architecture position: Kernel > Models.  Rows of ``pco_pricing_items`` are
    never patched by a full recalculation: the session's items are deleted
    and reinserted (``SqlAlchemyOrderStore.replace_pricing_items``).
"""

from __future__ import annotations

import dataclasses
from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from pco_kernel.db.base import Base, UUIDString
from pco_kernel.domain.dtos import PricingLineItem, PricingSession, SessionStatus
from pco_kernel.models.order import as_utc, dto_values


class PricingSessionModel(Base):
    __tablename__ = "pco_pricing_sessions"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False)
    created_at: Mapped[datetime] = mapped_column(nullable=False)
    created_by: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    raw_data: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    detected_columns: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    column_mapping: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    variables: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    source_filename: Mapped[str | None] = mapped_column(String(500), nullable=True)
    item_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    calculated_at: Mapped[datetime | None]
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    def to_dto(self) -> PricingSession:
        return PricingSession(
            id=self.id,
            name=self.name,
            status=SessionStatus(self.status),
            created_at=as_utc(self.created_at),
            created_by=self.created_by,
            raw_data=tuple(dict(row) for row in self.raw_data or ()),
            detected_columns=tuple(self.detected_columns or ()),
            column_mapping=dict(self.column_mapping or {}),
            variables=dict(self.variables) if self.variables is not None else None,
            source_filename=self.source_filename,
            item_count=self.item_count,
            calculated_at=as_utc(self.calculated_at),
            version=self.version,
        )

    def apply(self, dto: PricingSession) -> None:
        self.name = dto.name
        self.status = dto.status.value
        self.raw_data = [dict(row) for row in dto.raw_data]
        self.detected_columns = list(dto.detected_columns)
        self.column_mapping = dict(dto.column_mapping)
        self.variables = dict(dto.variables) if dto.variables is not None else None
        self.source_filename = dto.source_filename
        self.item_count = dto.item_count
        self.calculated_at = dto.calculated_at
        self.version = dto.version

    @classmethod
    def from_dto(cls, dto: PricingSession) -> PricingSessionModel:
        model = cls(id=dto.id, created_at=dto.created_at, created_by=dto.created_by)
        model.apply(dto)
        return model


class PricingLineItemModel(Base):
    __tablename__ = "pco_pricing_items"

    __table_args__ = (
        Index("idx_pco_pricing_item_session", "session_id", "row_index"),
    )

    session_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("pco_pricing_sessions.id", ondelete="CASCADE"), nullable=False
    )
    row_index: Mapped[int] = mapped_column(Integer, nullable=False)
    product_name: Mapped[str] = mapped_column(String(500), nullable=False)
    source_price: Mapped[Decimal] = mapped_column(nullable=False)
    source_currency: Mapped[str] = mapped_column(String(16), nullable=False)
    case_config: Mapped[int] = mapped_column(Integer, nullable=False)
    in_bond_case_usd: Mapped[Decimal] = mapped_column(nullable=False)
    in_bond_bottle_usd: Mapped[Decimal] = mapped_column(nullable=False)
    in_bond_case_aed: Mapped[Decimal] = mapped_column(nullable=False)
    in_bond_bottle_aed: Mapped[Decimal] = mapped_column(nullable=False)
    delivered_case_usd: Mapped[Decimal] = mapped_column(nullable=False)
    delivered_bottle_usd: Mapped[Decimal] = mapped_column(nullable=False)
    delivered_case_aed: Mapped[Decimal] = mapped_column(nullable=False)
    delivered_bottle_aed: Mapped[Decimal] = mapped_column(nullable=False)
    vintage: Mapped[str | None] = mapped_column(String(10), nullable=True)
    producer: Mapped[str | None] = mapped_column(String(255), nullable=True)
    region: Mapped[str | None] = mapped_column(String(255), nullable=True)
    lwin: Mapped[str | None] = mapped_column(String(18), nullable=True)
    bottle_size: Mapped[str | None] = mapped_column(String(20), nullable=True)

    def to_dto(self) -> PricingLineItem:
        return PricingLineItem(
            **{f.name: getattr(self, f.name) for f in dataclasses.fields(PricingLineItem)}
        )

    def apply(self, dto: PricingLineItem) -> None:
        for key, val in dto_values(dto).items():
            if key not in ("id", "session_id"):
                setattr(self, key, val)

    @classmethod
    def from_dto(cls, dto: PricingLineItem) -> PricingLineItemModel:
        return cls(**dto_values(dto))
