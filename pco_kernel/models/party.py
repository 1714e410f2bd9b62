"""
Module: pco_kernel.models.party
Responsibility: Reference rows for partners, distributors and end clients.
    Owned by the surrounding platform; the order module reads them and
    only writes ``ClientModel.external_verified_*`` (first delivery).
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column

from pco_kernel.db.base import Base
from pco_kernel.domain.dtos import Client, Partner, PartnerKind
from pco_kernel.models.order import as_utc


class PartnerModel(Base):
    __tablename__ = "pco_partners"

    business_name: Mapped[str] = mapped_column(String(255), nullable=False)
    kind: Mapped[str] = mapped_column(String(50), nullable=False)
    distributor_code: Mapped[str | None] = mapped_column(String(20), nullable=True)
    requires_client_verification: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )

    def to_dto(self) -> Partner:
        return Partner(
            id=self.id,
            business_name=self.business_name,
            kind=PartnerKind(self.kind),
            distributor_code=self.distributor_code,
            requires_client_verification=self.requires_client_verification,
        )

    @classmethod
    def from_dto(cls, dto: Partner) -> PartnerModel:
        return cls(
            id=dto.id,
            business_name=dto.business_name,
            kind=dto.kind.value,
            distributor_code=dto.distributor_code,
            requires_client_verification=dto.requires_client_verification,
        )


class ClientModel(Base):
    __tablename__ = "pco_clients"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    external_verified_at: Mapped[datetime | None]
    external_verified_by: Mapped[UUID | None]

    def to_dto(self) -> Client:
        return Client(
            id=self.id,
            name=self.name,
            email=self.email,
            external_verified_at=as_utc(self.external_verified_at),
            external_verified_by=self.external_verified_by,
        )

    @classmethod
    def from_dto(cls, dto: Client) -> ClientModel:
        return cls(
            id=dto.id,
            name=dto.name,
            email=dto.email,
            external_verified_at=dto.external_verified_at,
            external_verified_by=dto.external_verified_by,
        )
