"""
StockReservationCoordinator -- bonded-stock holds for approved orders.

Responsibility:
    Reserves cases of the operating company's own inventory for order line
    items on approval, and releases them on cancellation.  Allocation
    strategy, per item:

        1. lots whose LWIN equals the item's code exactly;
        2. if none and the code is shorter than 18 characters (an LWIN7 or
           LWIN11), lots whose LWIN starts with it;
        3. take from the lots in descending ``available_cases`` order,
           splitting across lots until filled.  Unfilled quantity is
           reported as a shortfall, not an error.

Architecture position:
    Services -- glue over the ``InventoryGateway`` port.  Two gateways ship:
    ``InMemoryInventoryGateway`` (tests) and ``SqlInventoryGateway``, which
    shares the order store's SQLAlchemy session so holds commit or roll
    back with the approving transition.

Invariants enforced:
    - Eligibility: only ``cc_inventory`` items with a non-blank LWIN are
      reserved; others are skipped silently.
    - Idempotent reserve: an item that already holds an active reservation
      is skipped, so reserving twice never double-counts.
    - Idempotent release: releasing an order with nothing active returns 0.
    - Lot decrements are conditional (``available_cases >= qty``); a lot
      drained concurrently is skipped and the next lot is tried.

Failure modes:
    - None for business outcomes (shortfalls are data).  Gateway errors
      (database failures) propagate to the enclosing transaction.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Protocol, runtime_checkable
from uuid import UUID, uuid4

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from pco_kernel.domain.clock import Clock, SystemClock
from pco_kernel.domain.dtos import OrderLineItem, StockSource
from pco_kernel.logging_config import get_logger
from pco_kernel.models.order import as_utc
from pco_kernel.models.stock import StockLotModel, StockReservationModel

logger = get_logger("services.stock_reservation")

LWIN18_LENGTH = 18


class OrderType(str, Enum):
    PRIVATE_CLIENT = "pco"
    SALES_ORDER = "zoho"


class ReservationStatus(str, Enum):
    ACTIVE = "active"
    RELEASED = "released"


@dataclass(frozen=True)
class StockLot:
    id: UUID
    lwin18: str
    product_name: str
    available_cases: int
    reserved_cases: int = 0
    received_at: datetime | None = None


@dataclass(frozen=True)
class StockReservation:
    id: UUID
    order_id: UUID
    order_type: OrderType
    order_item_id: UUID
    stock_lot_id: UUID
    quantity_cases: int
    reserved_at: datetime
    status: ReservationStatus = ReservationStatus.ACTIVE
    released_at: datetime | None = None
    release_reason: str | None = None


@dataclass(frozen=True)
class ReservationRequest:
    order_item_id: UUID
    lwin: str
    product_name: str
    quantity_cases: int


@dataclass(frozen=True)
class ReservedAllocation:
    order_item_id: UUID
    stock_lot_id: UUID
    lwin18: str
    product_name: str
    quantity_reserved: int


@dataclass(frozen=True)
class Shortfall:
    order_item_id: UUID
    lwin: str
    product_name: str
    quantity_requested: int
    quantity_reserved: int

    @property
    def short_quantity(self) -> int:
        return self.quantity_requested - self.quantity_reserved


@dataclass(frozen=True)
class ReservationResult:
    reserved: tuple[ReservedAllocation, ...] = ()
    short: tuple[Shortfall, ...] = ()
    skipped_item_ids: tuple[UUID, ...] = ()

    @property
    def cases_reserved(self) -> int:
        return sum(r.quantity_reserved for r in self.reserved)


@runtime_checkable
class InventoryGateway(Protocol):
    """Storage boundary for lots and reservations."""

    def has_active_reservation(self, order_item_id: UUID) -> bool: ...

    def find_lots(self, lwin: str, *, prefix: bool) -> list[StockLot]:
        """Lots with stock available, most available first."""
        ...

    def take(self, lot_id: UUID, quantity: int) -> bool:
        """Move ``quantity`` from available to reserved; False if the lot ran short."""
        ...

    def add_reservation(self, reservation: StockReservation) -> None: ...

    def release_order(
        self, order_id: UUID, order_type: OrderType, reason: str, at: datetime
    ) -> int:
        """Release every active reservation of the order; returns how many."""
        ...


class StockReservationCoordinator:
    """Reserve / release bonded stock for order line items."""

    def __init__(self, gateway: InventoryGateway, clock: Clock | None = None):
        self._gateway = gateway
        self._clock = clock or SystemClock()

    @staticmethod
    def eligible(item: OrderLineItem) -> bool:
        return item.stock_source is StockSource.CC_INVENTORY and bool((item.lwin or "").strip())

    def reserve(
        self,
        order_id: UUID,
        order_type: OrderType,
        items: Sequence[OrderLineItem],
    ) -> ReservationResult:
        requests: list[ReservationRequest] = []
        skipped: list[UUID] = []
        for item in items:
            if self.eligible(item):
                requests.append(
                    ReservationRequest(
                        order_item_id=item.id,
                        lwin=(item.lwin or "").strip(),
                        product_name=item.product_name,
                        quantity_cases=item.quantity,
                    )
                )
            else:
                skipped.append(item.id)
        result = self.reserve_requests(order_id, order_type, requests)
        return replace(result, skipped_item_ids=result.skipped_item_ids + tuple(skipped))

    def reserve_requests(
        self,
        order_id: UUID,
        order_type: OrderType,
        requests: Sequence[ReservationRequest],
    ) -> ReservationResult:
        now = self._clock.now()
        reserved: list[ReservedAllocation] = []
        short: list[Shortfall] = []
        already: list[UUID] = []

        for request in requests:
            if self._gateway.has_active_reservation(request.order_item_id):
                already.append(request.order_item_id)
                continue

            lots = self._gateway.find_lots(request.lwin, prefix=False)
            if not lots and len(request.lwin) < LWIN18_LENGTH:
                lots = self._gateway.find_lots(request.lwin, prefix=True)

            remaining = request.quantity_cases
            for lot in lots:
                if remaining <= 0:
                    break
                quantity = min(remaining, lot.available_cases)
                if quantity <= 0 or not self._gateway.take(lot.id, quantity):
                    continue
                self._gateway.add_reservation(
                    StockReservation(
                        id=uuid4(),
                        order_id=order_id,
                        order_type=order_type,
                        order_item_id=request.order_item_id,
                        stock_lot_id=lot.id,
                        quantity_cases=quantity,
                        reserved_at=now,
                    )
                )
                reserved.append(
                    ReservedAllocation(
                        order_item_id=request.order_item_id,
                        stock_lot_id=lot.id,
                        lwin18=lot.lwin18,
                        product_name=request.product_name,
                        quantity_reserved=quantity,
                    )
                )
                remaining -= quantity

            if remaining > 0:
                short.append(
                    Shortfall(
                        order_item_id=request.order_item_id,
                        lwin=request.lwin,
                        product_name=request.product_name,
                        quantity_requested=request.quantity_cases,
                        quantity_reserved=request.quantity_cases - remaining,
                    )
                )

        result = ReservationResult(
            reserved=tuple(reserved), short=tuple(short), skipped_item_ids=tuple(already)
        )
        logger.info(
            "stock_reserved",
            extra={
                "order_id": str(order_id),
                "order_type": order_type.value,
                "cases_reserved": result.cases_reserved,
                "allocations": len(result.reserved),
                "short_items": len(result.short),
                "already_reserved": len(already),
            },
        )
        if short:
            logger.warning(
                "stock_reservation_short",
                extra={
                    "order_id": str(order_id),
                    "items": [
                        {"order_item_id": str(s.order_item_id), "short": s.short_quantity}
                        for s in short
                    ],
                },
            )
        return result

    def release(self, order_id: UUID, order_type: OrderType, reason: str) -> int:
        released = self._gateway.release_order(order_id, order_type, reason, self._clock.now())
        logger.info(
            "stock_released",
            extra={
                "order_id": str(order_id),
                "order_type": order_type.value,
                "reservations_released": released,
                "reason": reason,
            },
        )
        return released


class InMemoryInventoryGateway:
    """Dict-backed gateway for tests and local tooling."""

    def __init__(self) -> None:
        self._lots: dict[UUID, StockLot] = {}
        self._reservations: dict[UUID, StockReservation] = {}

    def add_lot(self, lot: StockLot) -> StockLot:
        self._lots[lot.id] = lot
        return lot

    def get_lot(self, lot_id: UUID) -> StockLot | None:
        return self._lots.get(lot_id)

    def reservations(self, order_id: UUID | None = None) -> list[StockReservation]:
        return [
            r for r in self._reservations.values()
            if order_id is None or r.order_id == order_id
        ]

    def has_active_reservation(self, order_item_id: UUID) -> bool:
        return any(
            r.order_item_id == order_item_id and r.status is ReservationStatus.ACTIVE
            for r in self._reservations.values()
        )

    def find_lots(self, lwin: str, *, prefix: bool) -> list[StockLot]:
        lots = [
            lot for lot in self._lots.values()
            if lot.available_cases > 0
            and (lot.lwin18.startswith(lwin) if prefix else lot.lwin18 == lwin)
        ]
        return sorted(lots, key=lambda lot: lot.available_cases, reverse=True)

    def take(self, lot_id: UUID, quantity: int) -> bool:
        lot = self._lots.get(lot_id)
        if lot is None or lot.available_cases < quantity:
            return False
        self._lots[lot_id] = replace(
            lot,
            available_cases=lot.available_cases - quantity,
            reserved_cases=lot.reserved_cases + quantity,
        )
        return True

    def add_reservation(self, reservation: StockReservation) -> None:
        self._reservations[reservation.id] = reservation

    def release_order(
        self, order_id: UUID, order_type: OrderType, reason: str, at: datetime
    ) -> int:
        released = 0
        for res in list(self._reservations.values()):
            if (
                res.order_id != order_id
                or res.order_type is not order_type
                or res.status is not ReservationStatus.ACTIVE
            ):
                continue
            lot = self._lots.get(res.stock_lot_id)
            if lot is not None:
                self._lots[lot.id] = replace(
                    lot,
                    available_cases=lot.available_cases + res.quantity_cases,
                    reserved_cases=max(lot.reserved_cases - res.quantity_cases, 0),
                )
            self._reservations[res.id] = replace(
                res,
                status=ReservationStatus.RELEASED,
                released_at=at,
                release_reason=reason,
            )
            released += 1
        return released


class SqlInventoryGateway:
    """Gateway over ``pco_stock_lots`` / ``pco_stock_reservations``."""

    def __init__(self, session: Session):
        self._session = session

    def add_lot(self, lot: StockLot) -> StockLot:
        self._session.add(
            StockLotModel(
                id=lot.id,
                lwin18=lot.lwin18,
                product_name=lot.product_name,
                available_cases=lot.available_cases,
                reserved_cases=lot.reserved_cases,
                received_at=lot.received_at,
            )
        )
        self._session.flush()
        return lot

    def get_lot(self, lot_id: UUID) -> StockLot | None:
        model = self._session.get(StockLotModel, lot_id, populate_existing=True)
        return _lot(model) if model else None

    def has_active_reservation(self, order_item_id: UUID) -> bool:
        found = self._session.execute(
            select(StockReservationModel.id)
            .where(
                StockReservationModel.order_item_id == order_item_id,
                StockReservationModel.status == ReservationStatus.ACTIVE.value,
            )
            .limit(1)
        ).scalar_one_or_none()
        return found is not None

    def find_lots(self, lwin: str, *, prefix: bool) -> list[StockLot]:
        match_clause = (
            StockLotModel.lwin18.startswith(lwin, autoescape=True)
            if prefix
            else StockLotModel.lwin18 == lwin
        )
        rows = self._session.execute(
            select(StockLotModel)
            .where(match_clause, StockLotModel.available_cases > 0)
            .order_by(StockLotModel.available_cases.desc())
            .execution_options(populate_existing=True)
        ).scalars()
        return [_lot(row) for row in rows]

    def take(self, lot_id: UUID, quantity: int) -> bool:
        result = self._session.execute(
            update(StockLotModel)
            .where(StockLotModel.id == lot_id, StockLotModel.available_cases >= quantity)
            .values(
                available_cases=StockLotModel.available_cases - quantity,
                reserved_cases=StockLotModel.reserved_cases + quantity,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def add_reservation(self, reservation: StockReservation) -> None:
        self._session.add(
            StockReservationModel(
                id=reservation.id,
                order_id=reservation.order_id,
                order_type=reservation.order_type.value,
                order_item_id=reservation.order_item_id,
                stock_lot_id=reservation.stock_lot_id,
                quantity_cases=reservation.quantity_cases,
                status=reservation.status.value,
                reserved_at=reservation.reserved_at,
            )
        )
        self._session.flush()

    def reservations(self, order_id: UUID) -> list[StockReservation]:
        rows = self._session.execute(
            select(StockReservationModel)
            .where(StockReservationModel.order_id == order_id)
            .execution_options(populate_existing=True)
        ).scalars()
        return [_reservation(row) for row in rows]

    def release_order(
        self, order_id: UUID, order_type: OrderType, reason: str, at: datetime
    ) -> int:
        active = self._session.execute(
            select(StockReservationModel)
            .where(
                StockReservationModel.order_id == order_id,
                StockReservationModel.order_type == order_type.value,
                StockReservationModel.status == ReservationStatus.ACTIVE.value,
            )
            .with_for_update()
        ).scalars().all()
        for res in active:
            self._session.execute(
                update(StockLotModel)
                .where(StockLotModel.id == res.stock_lot_id)
                .values(
                    available_cases=StockLotModel.available_cases + res.quantity_cases,
                    reserved_cases=StockLotModel.reserved_cases - res.quantity_cases,
                )
                .execution_options(synchronize_session=False)
            )
            res.status = ReservationStatus.RELEASED.value
            res.released_at = at
            res.release_reason = reason
        self._session.flush()
        return len(active)


def _lot(model: StockLotModel) -> StockLot:
    return StockLot(
        id=model.id,
        lwin18=model.lwin18,
        product_name=model.product_name,
        available_cases=model.available_cases,
        reserved_cases=model.reserved_cases,
        received_at=as_utc(model.received_at),
    )


def _reservation(model: StockReservationModel) -> StockReservation:
    return StockReservation(
        id=model.id,
        order_id=model.order_id,
        order_type=OrderType(model.order_type),
        order_item_id=model.order_item_id,
        stock_lot_id=model.stock_lot_id,
        quantity_cases=model.quantity_cases,
        reserved_at=as_utc(model.reserved_at),
        status=ReservationStatus(model.status),
        released_at=as_utc(model.released_at),
        release_reason=model.release_reason,
    )
