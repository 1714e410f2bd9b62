"""
SQLAlchemy implementation of the storage port.

Wraps one ``Session``.  ``transaction()`` commits on success and rolls back
on any exception (nested calls join the outer unit of work).  Order rows
are locked with ``SELECT ... FOR UPDATE`` (a no-op on SQLite) and written
with a conditional ``UPDATE ... WHERE status = :expected AND version = :v``.
"""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import replace
from uuid import UUID

from sqlalchemy import delete, func, select, update
from sqlalchemy.orm import Session

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
from pco_kernel.models.activity_log import ActivityLogModel
from pco_kernel.models.order import OrderLineItemModel, OrderModel, dto_values
from pco_kernel.models.party import ClientModel, PartnerModel
from pco_kernel.models.pricing import PricingLineItemModel, PricingSessionModel

logger = get_logger("store.sqlalchemy")


class SqlAlchemyOrderStore:
    """``OrderStore`` over a SQLAlchemy session."""

    def __init__(self, session: Session):
        self._session = session
        self._depth = 0

    @property
    def session(self) -> Session:
        return self._session

    @contextmanager
    def transaction(self) -> Iterator[None]:
        outermost = self._depth == 0
        self._depth += 1
        try:
            yield
            if outermost:
                self._session.commit()
        except Exception:
            if outermost:
                self._session.rollback()
                logger.warning("transaction_rolled_back", exc_info=True)
            raise
        finally:
            self._depth -= 1

    # -- orders -------------------------------------------------------------

    def add_order(self, order: Order) -> Order:
        self._session.add(OrderModel.from_dto(order))
        self._session.flush()
        return order

    def get_order(self, order_id: UUID) -> Order | None:
        model = self._session.execute(
            select(OrderModel)
            .where(OrderModel.id == order_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        return model.to_dto() if model else None

    def lock_order(self, order_id: UUID) -> Order | None:
        model = self._session.execute(
            select(OrderModel)
            .where(OrderModel.id == order_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        return model.to_dto() if model else None

    def update_order(self, order: Order, expected_status: OrderStatus) -> Order:
        written = replace(order, version=order.version + 1)
        values = dto_values(written)
        values.pop("id")
        result = self._session.execute(
            update(OrderModel)
            .where(
                OrderModel.id == order.id,
                OrderModel.status == expected_status.value,
                OrderModel.version == order.version,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise OptimisticLockError("Order", str(order.id), expected_status.value)
        return written

    def max_order_number(self, prefix: str) -> str | None:
        return self._session.execute(
            select(OrderModel.order_number)
            .where(OrderModel.order_number.startswith(prefix))
            .order_by(func.length(OrderModel.order_number).desc(), OrderModel.order_number.desc())
            .limit(1)
        ).scalar_one_or_none()

    # -- line items ---------------------------------------------------------

    def add_item(self, item: OrderLineItem) -> OrderLineItem:
        line_number = self._next_position(
            OrderLineItemModel.line_number, OrderLineItemModel.order_id, item.order_id
        )
        self._session.add(OrderLineItemModel.from_dto(item, line_number=line_number))
        self._session.flush()
        return item

    def get_item(self, item_id: UUID) -> OrderLineItem | None:
        model = self._session.get(OrderLineItemModel, item_id)
        return model.to_dto() if model else None

    def list_items(self, order_id: UUID) -> list[OrderLineItem]:
        rows = self._session.execute(
            select(OrderLineItemModel)
            .where(OrderLineItemModel.order_id == order_id)
            .order_by(OrderLineItemModel.line_number)
        ).scalars()
        return [row.to_dto() for row in rows]

    def update_items(self, items: Sequence[OrderLineItem]) -> None:
        for item in items:
            model = self._session.get(OrderLineItemModel, item.id)
            if model is None:
                raise KeyError(f"Line item not stored: {item.id}")
            model.apply(item)
        self._session.flush()

    def _next_position(self, column, owner_column, owner_id: UUID) -> int:
        current = self._session.execute(
            select(func.max(column)).where(owner_column == owner_id)
        ).scalar_one_or_none()
        return (current or 0) + 1

    def delete_item(self, item_id: UUID) -> None:
        self._session.execute(
            delete(OrderLineItemModel).where(OrderLineItemModel.id == item_id)
        )

    # -- activity -----------------------------------------------------------

    def append_activity(self, entry: ActivityLogEntry) -> ActivityLogEntry:
        seq = self._next_position(
            ActivityLogModel.seq, ActivityLogModel.order_id, entry.order_id
        )
        self._session.add(ActivityLogModel.from_dto(entry, seq=seq))
        self._session.flush()
        return entry

    def list_activity(self, order_id: UUID) -> list[ActivityLogEntry]:
        rows = self._session.execute(
            select(ActivityLogModel)
            .where(ActivityLogModel.order_id == order_id)
            .order_by(ActivityLogModel.seq)
        ).scalars()
        return [row.to_dto() for row in rows]

    # -- parties ------------------------------------------------------------

    def add_partner(self, partner: Partner) -> Partner:
        self._session.add(PartnerModel.from_dto(partner))
        self._session.flush()
        return partner

    def add_client(self, client: Client) -> Client:
        self._session.add(ClientModel.from_dto(client))
        self._session.flush()
        return client

    def get_partner(self, partner_id: UUID) -> Partner | None:
        model = self._session.get(PartnerModel, partner_id)
        return model.to_dto() if model else None

    def get_client(self, client_id: UUID) -> Client | None:
        model = self._session.get(ClientModel, client_id, populate_existing=True)
        return model.to_dto() if model else None

    def update_client(self, client: Client) -> None:
        model = self._session.get(ClientModel, client.id)
        if model is None:
            raise KeyError(f"Client not stored: {client.id}")
        model.name = client.name
        model.email = client.email
        model.external_verified_at = client.external_verified_at
        model.external_verified_by = client.external_verified_by
        self._session.flush()

    # -- bulk pricing -------------------------------------------------------

    def add_pricing_session(self, session: PricingSession) -> PricingSession:
        self._session.add(PricingSessionModel.from_dto(session))
        self._session.flush()
        return session

    def get_pricing_session(self, session_id: UUID) -> PricingSession | None:
        model = self._session.get(PricingSessionModel, session_id)
        return model.to_dto() if model else None

    def update_pricing_session(self, session: PricingSession) -> PricingSession:
        model = self._session.get(PricingSessionModel, session.id)
        if model is None:
            raise KeyError(f"Pricing session not stored: {session.id}")
        written = replace(session, version=session.version + 1)
        model.apply(written)
        self._session.flush()
        return written

    def replace_pricing_items(
        self, session_id: UUID, items: Sequence[PricingLineItem]
    ) -> None:
        self._session.execute(
            delete(PricingLineItemModel).where(PricingLineItemModel.session_id == session_id)
        )
        self._session.add_all(PricingLineItemModel.from_dto(item) for item in items)
        self._session.flush()

    def list_pricing_items(self, session_id: UUID) -> list[PricingLineItem]:
        rows = self._session.execute(
            select(PricingLineItemModel)
            .where(PricingLineItemModel.session_id == session_id)
            .order_by(PricingLineItemModel.row_index)
        ).scalars()
        return [row.to_dto() for row in rows]

    def get_pricing_item(self, item_id: UUID) -> PricingLineItem | None:
        model = self._session.get(PricingLineItemModel, item_id)
        return model.to_dto() if model else None

    def update_pricing_item(self, item: PricingLineItem) -> None:
        model = self._session.get(PricingLineItemModel, item.id)
        if model is None:
            raise KeyError(f"Pricing item not stored: {item.id}")
        model.apply(item)
        self._session.flush()
