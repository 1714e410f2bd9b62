"""
PrivateClientOrderService -- the order status state machine.

Responsibility:
    Every operation a partner, the operating company (admin) or a
    distributor performs on a private client order: line-item editing with
    totals recomputation, the review / approval / verification / payment /
    delivery transitions, stock receipt, cancellation, and reads.

Architecture position:
    Modules -- orchestrates the kernel store port, the pricing engines
    (``compute_order_totals``, ``quote_order_lines``), the stock reservation
    coordinator and the post-commit event dispatcher.  Callers pass an
    authenticated ``Actor``; this service decides what that actor may do.

Invariants enforced:
    - Each transition runs in one ``store.transaction()``: conditional write
      of status + version + milestone, the domain mutation (items, client,
      reservations), then exactly one activity-log entry.  Any failure
      rolls all three back.
    - A dedicated action passes only if ``guard_statuses(action)`` contains
      the current status and ``can_transition`` allows the target.
    - Order totals always equal ``compute_order_totals(items, rates)``; they
      are recomputed in the same transaction as every item or rate change.
    - ``OrderStatusChanged`` is published only after commit.  Handler
      failures never reach the caller.
    - Cancellation is idempotent: cancelling a cancelled order returns it
      unchanged and releases nothing.

Failure modes:
    - OrderNotFoundError / LineItemNotFoundError / PartnerNotFoundError.
    - InvalidTransitionError (names current and required statuses),
      OrderNotEditableError, PaymentAlreadyConfirmedError.
    - ActorRoleError / NotOrderOwnerError / NotAssignedDistributorError.
    - InvalidInputError for malformed input.
    - StockNotReadyError / DistributorNotAssignedError.
    - OptimisticLockError when a concurrent writer changed the order.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, assert_never
from uuid import UUID, uuid4

from pco_engines import (
    DistributorMargin,
    OrderQuote,
    OrderRates,
    QuoteLine,
    compute_order_totals,
    line_total,
    quote_order_lines,
)
from pco_kernel.domain.clock import Clock, SystemClock
from pco_kernel.domain.dtos import (
    ActivityLogEntry,
    Actor,
    ActorRole,
    Client,
    Milestone,
    Order,
    OrderLineItem,
    OrderStatus,
    PartnerKind,
    StockSource,
    StockStatus,
)
from pco_kernel.domain.events import OrderStatusChanged, StockReceivedAtDistributor
from pco_kernel.exceptions import (
    ActorRoleError,
    DistributorNotAssignedError,
    InvalidInputError,
    InvalidTransitionError,
    LineItemNotFoundError,
    NotAssignedDistributorError,
    NotOrderOwnerError,
    OrderNotEditableError,
    OrderNotFoundError,
    PartnerNotFoundError,
    PaymentAlreadyConfirmedError,
    StockNotReadyError,
)
from pco_kernel.logging_config import LogContext, get_logger
from pco_kernel.services.activity_log import ActivityLogService
from pco_kernel.services.order_numbers import OrderNumberGenerator
from pco_kernel.store.base import OrderStore
from pco_modules.private_client_orders.config import PrivateClientOrderConfig
from pco_modules.private_client_orders.workflows import (
    DISTRIBUTOR_STATUS_MOVES,
    OrderAction,
    can_transition,
    guard_statuses,
    milestone_for,
)
from pco_services.event_dispatcher import EventDispatcher
from pco_services.stock_reservation import (
    OrderType,
    ReservationResult,
    StockReservationCoordinator,
)

logger = get_logger("modules.private_client_orders.service")

_EDITABLE_ITEM_FIELDS = frozenset({
    "product_name",
    "quantity",
    "unit_price_usd",
    "case_config",
    "producer",
    "vintage",
    "region",
    "lwin",
    "bottle_size",
    "stock_source",
})

_RESET_TARGETS = frozenset({
    OrderStatus.AWAITING_PARTNER_VERIFICATION,
    OrderStatus.AWAITING_DISTRIBUTOR_VERIFICATION,
    OrderStatus.AWAITING_CLIENT_PAYMENT,
})

_DISPATCHABLE_STOCK = frozenset({StockStatus.CONFIRMED, StockStatus.AT_CC_BONDED})
_DELIVERABLE_STOCK = frozenset({StockStatus.AT_DISTRIBUTOR, StockStatus.DELIVERED})


# -----------------------------------------------------------------------------
# Inputs and results
# -----------------------------------------------------------------------------


class PartnerVerificationAnswer(str, Enum):
    YES = "yes"
    NO = "no"
    DONT_KNOW = "dont_know"


class DistributorVerificationOutcome(str, Enum):
    VERIFIED = "verified"
    NOT_VERIFIED = "not_verified"


class PaymentStage(str, Enum):
    CLIENT = "client"
    DISTRIBUTOR = "distributor"
    PARTNER = "partner"


@dataclass(frozen=True)
class ClientInfo:
    """End client by reference (``client_id``) and/or inline contact fields."""

    client_id: UUID | None = None
    name: str | None = None
    email: str | None = None
    phone: str | None = None
    address: str | None = None


@dataclass(frozen=True)
class LineItemInput:
    product_name: str
    quantity: int
    unit_price_usd: Decimal
    case_config: int = 6
    producer: str | None = None
    vintage: str | None = None
    region: str | None = None
    lwin: str | None = None
    bottle_size: str | None = None
    stock_source: StockSource | None = None


@dataclass(frozen=True)
class StockAssignment:
    """Approval-time decision of where one line item's stock comes from."""

    item_id: UUID
    source: StockSource
    expected_at: datetime | None = None


@dataclass(frozen=True)
class PricingOverride:
    """Bespoke pricing applied at approval: new rates and/or per-item case prices."""

    rates: OrderRates | None = None
    unit_prices: Mapping[UUID, Decimal] = field(default_factory=dict)


@dataclass(frozen=True)
class TransitionResult:
    order: Order
    activity: ActivityLogEntry | None
    event: OrderStatusChanged | None = None
    reservation: ReservationResult | None = None
    released_reservations: int = 0


@dataclass(frozen=True)
class StockReceipt:
    order: Order
    items: tuple[OrderLineItem, ...]
    activity: ActivityLogEntry
    event: StockReceivedAtDistributor


# -----------------------------------------------------------------------------
# Service
# -----------------------------------------------------------------------------


class PrivateClientOrderService:
    """State machine and line-item editor for private client orders.

    Contract: every mutating method takes the acting ``Actor`` first and
    either commits fully or raises a ``PrivateClientOrderError``.
    Guarantees: events are published after commit only.
    """

    def __init__(
        self,
        store: OrderStore,
        events: EventDispatcher | None = None,
        reservations: StockReservationCoordinator | None = None,
        clock: Clock | None = None,
        config: PrivateClientOrderConfig | None = None,
    ):
        self._store = store
        self._events = events or EventDispatcher()
        self._reservations = reservations
        self._clock = clock or SystemClock()
        self._config = config or PrivateClientOrderConfig.from_settings()
        self._activity = ActivityLogService(store, self._clock)
        self._numbers = OrderNumberGenerator(store, self._clock)

    # -- reads ----------------------------------------------------------------

    def get_order(self, order_id: UUID) -> Order:
        order = self._store.get_order(order_id)
        if order is None:
            raise OrderNotFoundError(str(order_id))
        return order

    def list_items(self, order_id: UUID) -> list[OrderLineItem]:
        self.get_order(order_id)
        return self._store.list_items(order_id)

    def get_history(self, order_id: UUID) -> list[ActivityLogEntry]:
        self.get_order(order_id)
        return self._activity.history(order_id)

    def quote_order(
        self,
        order_id: UUID,
        *,
        transfer_cost_usd: Decimal | None = None,
        import_tax_percent: Decimal | None = None,
        margin: DistributorMargin | None = None,
        vat_percent: Decimal | None = None,
    ) -> OrderQuote:
        """Distributor B2B quote of the order's current line items."""
        defaults = self._config.quote
        items = self.list_items(order_id)
        return quote_order_lines(
            lines=[QuoteLine(quantity=i.quantity, line_total_usd=i.line_total_usd) for i in items],
            transfer_cost_usd=(
                defaults.transfer_cost_usd if transfer_cost_usd is None else transfer_cost_usd
            ),
            import_tax_percent=(
                defaults.import_tax_percent if import_tax_percent is None else import_tax_percent
            ),
            margin=margin or defaults.margin,
            vat_percent=defaults.vat_percent if vat_percent is None else vat_percent,
        )

    # -- creation and line items ----------------------------------------------

    def create_order(
        self,
        actor: Actor,
        *,
        partner_id: UUID | None = None,
        client: ClientInfo | None = None,
        notes: str | None = None,
    ) -> Order:
        if actor.role is ActorRole.DISTRIBUTOR:
            raise ActorRoleError(str(actor.user_id), actor.role.value, "create order")
        if actor.role is ActorRole.PARTNER:
            if partner_id is not None and partner_id != actor.partner_id:
                raise InvalidInputError("partner_id", "partners create orders for their own organisation")
            partner_id = actor.partner_id
        if partner_id is None:
            raise InvalidInputError("partner_id", "an order needs an originating partner")
        client = client or ClientInfo()

        with LogContext.bind(actor_id=actor.user_id):
            with self._store.transaction():
                partner = self._store.get_partner(partner_id)
                if partner is None:
                    raise PartnerNotFoundError(str(partner_id))
                linked = self._client(client.client_id)
                if client.client_id is not None and linked is None:
                    raise InvalidInputError("client_id", f"unknown client {client.client_id}")

                now = self._clock.now()
                order = Order(
                    id=uuid4(),
                    order_number=self._numbers.next_number(),
                    status=OrderStatus.DRAFT,
                    partner_id=partner_id,
                    created_at=now,
                    created_by=actor.user_id,
                    updated_at=now,
                    client_id=client.client_id,
                    client_name=client.name or (linked.name if linked else None),
                    client_email=client.email or (linked.email if linked else None),
                    client_phone=client.phone,
                    client_address=client.address,
                    notes=notes,
                    duty_percent=self._config.duty_percent,
                    vat_percent=self._config.vat_percent,
                    logistics_percent=self._config.logistics_percent,
                    usd_to_aed=self._config.usd_to_aed,
                )
                self._store.add_order(order)
                self._activity.record(
                    order.id,
                    actor.user_id,
                    "order_created",
                    new_status=OrderStatus.DRAFT,
                    notes=notes,
                    metadata={"orderNumber": order.order_number},
                )

            logger.info(
                "order_created",
                extra={
                    "order_id": str(order.id),
                    "order_number": order.order_number,
                    "partner_id": str(partner_id),
                },
            )
        return order

    def add_line_item(self, actor: Actor, order_id: UUID, item: LineItemInput) -> OrderLineItem:
        item = replace(
            item,
            **_coerce_item_changes({
                "quantity": item.quantity,
                "unit_price_usd": item.unit_price_usd,
                "case_config": item.case_config,
                "stock_source": item.stock_source,
            }),
        )
        self._validate_item_fields(
            product_name=item.product_name,
            quantity=item.quantity,
            unit_price_usd=item.unit_price_usd,
            case_config=item.case_config,
        )
        with LogContext.bind(order_id=order_id, actor_id=actor.user_id):
            with self._store.transaction():
                order = self._locked(order_id)
                self._require_owner_or_admin(actor, order, "add line item")
                self._require_editable(order)
                now = self._clock.now()
                created = OrderLineItem(
                    id=uuid4(),
                    order_id=order.id,
                    product_name=item.product_name.strip(),
                    quantity=item.quantity,
                    unit_price_usd=item.unit_price_usd,
                    line_total_usd=line_total(item.quantity, item.unit_price_usd),
                    case_config=item.case_config,
                    producer=item.producer,
                    vintage=item.vintage,
                    region=item.region,
                    lwin=item.lwin,
                    bottle_size=item.bottle_size,
                    stock_source=item.stock_source,
                    created_at=now,
                )
                self._store.add_item(created)
                self._write_totals(order, now)
                self._activity.record(
                    order.id,
                    actor.user_id,
                    "item_added",
                    notes=f"Added {created.quantity} x {created.product_name}",
                    metadata={"itemId": created.id, "lineTotalUsd": created.line_total_usd},
                )
        return created

    def update_line_item(
        self,
        actor: Actor,
        order_id: UUID,
        item_id: UUID,
        **changes: Any,
    ) -> OrderLineItem:
        unknown = set(changes) - _EDITABLE_ITEM_FIELDS
        if unknown:
            raise InvalidInputError(", ".join(sorted(unknown)), "not an editable line item field")
        with LogContext.bind(order_id=order_id, actor_id=actor.user_id):
            with self._store.transaction():
                order = self._locked(order_id)
                self._require_owner_or_admin(actor, order, "update line item")
                self._require_editable(order)
                current = self._item_of(order, item_id)
                updated = replace(current, **_coerce_item_changes(changes))
                self._validate_item_fields(
                    product_name=updated.product_name,
                    quantity=updated.quantity,
                    unit_price_usd=updated.unit_price_usd,
                    case_config=updated.case_config,
                )
                updated = replace(
                    updated,
                    line_total_usd=line_total(updated.quantity, updated.unit_price_usd),
                )
                now = self._clock.now()
                self._store.update_items([updated])
                self._write_totals(order, now)
                self._activity.record(
                    order.id,
                    actor.user_id,
                    "item_updated",
                    metadata={"itemId": item_id, "fields": sorted(changes)},
                )
        return updated

    def remove_line_item(self, actor: Actor, order_id: UUID, item_id: UUID) -> Order:
        with LogContext.bind(order_id=order_id, actor_id=actor.user_id):
            with self._store.transaction():
                order = self._locked(order_id)
                self._require_owner_or_admin(actor, order, "remove line item")
                self._require_editable(order)
                item = self._item_of(order, item_id)
                self._store.delete_item(item_id)
                stored = self._write_totals(order, self._clock.now())
                self._activity.record(
                    order.id,
                    actor.user_id,
                    "item_removed",
                    notes=f"Removed {item.product_name}",
                    metadata={"itemId": item_id},
                )
        return stored

    def update_order_rates(
        self,
        actor: Actor,
        order_id: UUID,
        *,
        duty_percent: Decimal | None = None,
        vat_percent: Decimal | None = None,
        logistics_percent: Decimal | None = None,
        usd_to_aed: Decimal | None = None,
    ) -> Order:
        """Admin correction of an order's rate configuration; totals follow."""
        self._require_admin(actor, "update order rates")
        if usd_to_aed is not None and usd_to_aed <= 0:
            raise InvalidInputError("usd_to_aed", "must be positive")
        with LogContext.bind(order_id=order_id, actor_id=actor.user_id):
            with self._store.transaction():
                order = self._locked(order_id)
                if order.is_terminal:
                    raise InvalidTransitionError(
                        str(order.id),
                        "update rates of",
                        order.status.value,
                        sorted(s.value for s in guard_statuses(OrderAction.UPDATE_STATUS)),
                    )
                try:
                    rates = OrderRates(
                        duty_percent=order.duty_percent if duty_percent is None else duty_percent,
                        vat_percent=order.vat_percent if vat_percent is None else vat_percent,
                        logistics_percent=(
                            order.logistics_percent
                            if logistics_percent is None
                            else logistics_percent
                        ),
                    )
                except ValueError as exc:
                    raise InvalidInputError("rates", str(exc)) from exc
                rated = replace(
                    order,
                    duty_percent=rates.duty_percent,
                    vat_percent=rates.vat_percent,
                    logistics_percent=rates.logistics_percent,
                    usd_to_aed=order.usd_to_aed if usd_to_aed is None else usd_to_aed,
                )
                stored = self._write_totals(rated, self._clock.now(), expected=order.status)
                self._activity.record(
                    order.id,
                    actor.user_id,
                    "rates_updated",
                    metadata={
                        "dutyPercent": stored.duty_percent,
                        "vatPercent": stored.vat_percent,
                        "logisticsPercent": stored.logistics_percent,
                        "usdToAed": stored.usd_to_aed,
                    },
                )
        return stored

    # -- review and approval --------------------------------------------------

    def submit_order(self, actor: Actor, order_id: UUID, notes: str | None = None) -> TransitionResult:
        with LogContext.bind(order_id=order_id, actor_id=actor.user_id):
            with self._store.transaction():
                order = self._locked(order_id)
                self._require_owner_or_admin(actor, order, "submit")
                self._check(order, OrderAction.SUBMIT, OrderStatus.SUBMITTED)
                items = self._store.list_items(order.id)
                if not items:
                    raise InvalidInputError("items", "an order needs at least one line item")
                result = self._commit(
                    order,
                    OrderStatus.SUBMITTED,
                    actor,
                    activity="order_submitted",
                    notes=notes,
                    metadata={"itemCount": len(items)},
                )
            self._publish(result)
        return result

    def start_review(self, actor: Actor, order_id: UUID, notes: str | None = None) -> TransitionResult:
        self._require_admin(actor, "start review")
        with LogContext.bind(order_id=order_id, actor_id=actor.user_id):
            with self._store.transaction():
                order = self._locked(order_id)
                self._check(order, OrderAction.START_REVIEW, OrderStatus.UNDER_CC_REVIEW)
                result = self._commit(
                    order, OrderStatus.UNDER_CC_REVIEW, actor, activity="review_started", notes=notes
                )
            self._publish(result)
        return result

    def request_revision(self, actor: Actor, order_id: UUID, reason: str) -> TransitionResult:
        self._require_admin(actor, "request revision")
        if not (reason or "").strip():
            raise InvalidInputError("reason", "a revision request needs a reason")
        with LogContext.bind(order_id=order_id, actor_id=actor.user_id):
            with self._store.transaction():
                order = self._locked(order_id)
                self._check(order, OrderAction.REQUEST_REVISION, OrderStatus.REVISION_REQUESTED)
                result = self._commit(
                    order,
                    OrderStatus.REVISION_REQUESTED,
                    actor,
                    activity="revision_requested",
                    notes=reason,
                    changes={"revision_reason": reason.strip()},
                )
            self._publish(result)
        return result

    def approve_order(
        self,
        actor: Actor,
        order_id: UUID,
        *,
        stock_assignments: Sequence[StockAssignment] = (),
        pricing_override: PricingOverride | None = None,
        notes: str | None = None,
    ) -> TransitionResult:
        self._require_admin(actor, "approve")
        with LogContext.bind(order_id=order_id, actor_id=actor.user_id):
            with self._store.transaction():
                order = self._locked(order_id)
                self._check(order, OrderAction.APPROVE, OrderStatus.CC_APPROVED)
                now = self._clock.now()
                items = {i.id: i for i in self._store.list_items(order.id)}
                for item_id in (a.item_id for a in stock_assignments):
                    if item_id not in items:
                        raise LineItemNotFoundError(str(item_id), str(order.id))

                for assignment in stock_assignments:
                    in_house = assignment.source is StockSource.CC_INVENTORY
                    items[assignment.item_id] = replace(
                        items[assignment.item_id],
                        stock_source=assignment.source,
                        stock_status=StockStatus.CONFIRMED if in_house else StockStatus.PENDING,
                        stock_confirmed_at=now if in_house else None,
                        stock_expected_at=assignment.expected_at,
                    )

                changes: dict[str, Any] = {}
                if pricing_override is not None:
                    items, changes = self._apply_override(order, items, pricing_override)

                changed = [
                    items[i.id] for i in self._store.list_items(order.id) if items[i.id] != i
                ]
                if changed:
                    self._store.update_items(changed)
                totals = self._totals(replace(order, **changes), list(items.values()))

                reservation = None
                if self._reservations is not None:
                    reservation = self._reservations.reserve(
                        order.id, OrderType.PRIVATE_CLIENT, list(items.values())
                    )

                result = self._commit(
                    order,
                    OrderStatus.CC_APPROVED,
                    actor,
                    activity="order_approved",
                    notes=notes,
                    changes={**changes, **totals},
                    metadata={
                        "lineItemsUpdated": len(stock_assignments),
                        "stockSources": {str(a.item_id): a.source.value for a in stock_assignments},
                        "pricingOverride": pricing_override is not None,
                        "reservedCases": reservation.cases_reserved if reservation else 0,
                        "shortItems": [str(s.order_item_id) for s in reservation.short]
                        if reservation
                        else [],
                    },
                )
                result = replace(result, reservation=reservation)
            self._publish(result)
        return result

    # -- distributor assignment and verification ------------------------------

    def assign_distributor(
        self,
        actor: Actor,
        order_id: UUID,
        distributor_id: UUID,
        notes: str | None = None,
    ) -> TransitionResult:
        """Assign a distributor; verification is skipped when not required.

        Distributors that require client verification send the order to the
        partner first, unless the client was already verified externally.
        Otherwise the order goes straight to client payment with a payment
        reference.
        """
        self._require_admin(actor, "assign distributor")
        with LogContext.bind(order_id=order_id, actor_id=actor.user_id):
            with self._store.transaction():
                order = self._locked(order_id)
                distributor = self._store.get_partner(distributor_id)
                if distributor is None:
                    raise PartnerNotFoundError(str(distributor_id))
                if distributor.kind is not PartnerKind.DISTRIBUTOR:
                    raise InvalidInputError("distributor_id", "partner is not a distributor")

                client = self._client(order.client_id)
                client_verified = client is not None and client.external_verified_at is not None
                needs_verification = (
                    distributor.requires_client_verification and not client_verified
                )
                target = (
                    OrderStatus.AWAITING_PARTNER_VERIFICATION
                    if needs_verification
                    else OrderStatus.AWAITING_CLIENT_PAYMENT
                )
                self._check(order, OrderAction.ASSIGN_DISTRIBUTOR, target)

                changes: dict[str, Any] = {"distributor_id": distributor.id}
                if not needs_verification:
                    changes["payment_reference"] = self._payment_reference(
                        order, distributor.distributor_code
                    )
                result = self._commit(
                    order,
                    target,
                    actor,
                    activity="distributor_assigned",
                    notes=notes,
                    changes=changes,
                    milestones=(Milestone.DISTRIBUTOR_ASSIGNED,),
                    metadata={
                        "distributorId": distributor.id,
                        "distributorName": distributor.business_name,
                        "requiresVerification": needs_verification,
                        "clientAlreadyVerified": client_verified,
                    },
                )
            self._publish(result)
        return result

    def partner_verification_response(
        self,
        actor: Actor,
        order_id: UUID,
        response: PartnerVerificationAnswer,
        notes: str | None = None,
    ) -> TransitionResult:
        with LogContext.bind(order_id=order_id, actor_id=actor.user_id):
            with self._store.transaction():
                order = self._locked(order_id)
                self._require_owner(actor, order, "respond to verification")
                if order.distributor_id is None:
                    raise DistributorNotAssignedError(str(order.id))
                target = (
                    OrderStatus.AWAITING_DISTRIBUTOR_VERIFICATION
                    if response is PartnerVerificationAnswer.YES
                    else OrderStatus.VERIFICATION_SUSPENDED
                )
                self._check(order, OrderAction.PARTNER_VERIFICATION, target)
                result = self._commit(
                    order,
                    target,
                    actor,
                    activity="partner_verification",
                    notes=notes,
                    changes={"partner_verification_response": response.value},
                    milestones=(Milestone.PARTNER_VERIFICATION,),
                    metadata={"response": response.value},
                )
            self._publish(result)
        return result

    def distributor_verification_response(
        self,
        actor: Actor,
        order_id: UUID,
        outcome: DistributorVerificationOutcome,
        notes: str | None = None,
    ) -> TransitionResult:
        with LogContext.bind(order_id=order_id, actor_id=actor.user_id):
            with self._store.transaction():
                order = self._locked(order_id)
                self._require_assigned_distributor(actor, order, "verify client", allow_admin=False)
                verified = outcome is DistributorVerificationOutcome.VERIFIED
                target = (
                    OrderStatus.AWAITING_CLIENT_PAYMENT
                    if verified
                    else OrderStatus.VERIFICATION_SUSPENDED
                )
                self._check(order, OrderAction.DISTRIBUTOR_VERIFICATION, target)
                result = self._commit(
                    order,
                    target,
                    actor,
                    activity="distributor_verification",
                    notes=notes,
                    changes={
                        "distributor_verification_response": outcome.value,
                        "distributor_verification_notes": notes,
                        "payment_reference": self._payment_reference(order) if verified else None,
                    },
                    milestones=(Milestone.DISTRIBUTOR_VERIFICATION,),
                    metadata={"response": outcome.value},
                )
            self._publish(result)
        return result

    def unlock_suspended(
        self,
        actor: Actor,
        order_id: UUID,
        notes: str | None = None,
    ) -> TransitionResult:
        """The assigned distributor verified the client after all."""
        with LogContext.bind(order_id=order_id, actor_id=actor.user_id):
            with self._store.transaction():
                order = self._locked(order_id)
                self._require_assigned_distributor(actor, order, "unlock verification", allow_admin=False)
                self._check(order, OrderAction.UNLOCK_SUSPENDED, OrderStatus.AWAITING_CLIENT_PAYMENT)
                note = notes or "Client verified after suspension"
                result = self._commit(
                    order,
                    OrderStatus.AWAITING_CLIENT_PAYMENT,
                    actor,
                    activity="verification_unlocked",
                    notes=note,
                    changes={
                        "distributor_verification_response": DistributorVerificationOutcome.VERIFIED.value,
                        "distributor_verification_notes": note,
                        "payment_reference": self._payment_reference(order),
                    },
                    milestones=(Milestone.DISTRIBUTOR_VERIFICATION,),
                )
            self._publish(result)
        return result

    def reset_verification(
        self,
        actor: Actor,
        order_id: UUID,
        target: OrderStatus,
        notes: str | None = None,
    ) -> TransitionResult:
        """Admin override of a suspended verification."""
        self._require_admin(actor, "reset verification")
        if target not in _RESET_TARGETS:
            raise InvalidInputError(
                "target_status",
                f"must be one of {', '.join(sorted(s.value for s in _RESET_TARGETS))}",
            )
        with LogContext.bind(order_id=order_id, actor_id=actor.user_id):
            with self._store.transaction():
                order = self._locked(order_id)
                self._check(order, OrderAction.RESET_VERIFICATION, target)

                changes: dict[str, Any]
                if target is OrderStatus.AWAITING_PARTNER_VERIFICATION:
                    cleared = order.clear_milestones(
                        Milestone.PARTNER_VERIFICATION, Milestone.DISTRIBUTOR_VERIFICATION
                    )
                    changes = {
                        "partner_verification_response": None,
                        "distributor_verification_response": None,
                        "distributor_verification_notes": None,
                    }
                elif target is OrderStatus.AWAITING_DISTRIBUTOR_VERIFICATION:
                    cleared = order.clear_milestones(Milestone.DISTRIBUTOR_VERIFICATION)
                    changes = {
                        "distributor_verification_response": None,
                        "distributor_verification_notes": None,
                    }
                else:
                    cleared = order
                    changes = {
                        "distributor_verification_response": DistributorVerificationOutcome.VERIFIED.value,
                        "distributor_verification_notes": "Admin override - verification bypassed",
                        "payment_reference": self._payment_reference(order),
                    }
                result = self._commit(
                    cleared,
                    target,
                    actor,
                    activity="admin_verification_reset",
                    notes=notes,
                    changes=changes,
                    expected=order.status,
                    metadata={"previousStatus": order.status.value, "targetStatus": target.value},
                )
            self._publish(result)
        return result

    # -- payments --------------------------------------------------------------

    def confirm_payment(
        self,
        actor: Actor,
        order_id: UUID,
        stage: PaymentStage,
        *,
        reference: str | None = None,
        notes: str | None = None,
    ) -> TransitionResult:
        action, target, milestone = _payment_step(stage)
        with LogContext.bind(order_id=order_id, actor_id=actor.user_id):
            with self._store.transaction():
                order = self._locked(order_id)
                if stage is PaymentStage.CLIENT:
                    self._require_client_payment_confirmer(actor, order)
                else:
                    self._require_admin(actor, f"confirm {stage.value} payment")
                if order.milestone(milestone)[0] is not None:
                    raise PaymentAlreadyConfirmedError(str(order.id), stage.value)
                self._check(order, action, target)
                changes: dict[str, Any] = {}
                if stage is PaymentStage.CLIENT and reference:
                    changes["client_payment_reference"] = reference
                result = self._commit(
                    order,
                    target,
                    actor,
                    activity="payment_confirmed",
                    notes=notes,
                    changes=changes,
                    metadata={"stage": stage.value, "reference": reference},
                )
            self._publish(result)
        return result

    # -- generic admin transition -----------------------------------------------

    def update_status(
        self,
        actor: Actor,
        order_id: UUID,
        target: OrderStatus,
        notes: str | None = None,
    ) -> TransitionResult:
        """Any graph-valid transition, with the target's domain mutation."""
        self._require_admin(actor, "update status")
        if target is OrderStatus.CANCELLED:
            return self.cancel_order(actor, order_id, reason=notes)
        with LogContext.bind(order_id=order_id, actor_id=actor.user_id):
            with self._store.transaction():
                order = self._locked(order_id)
                self._check(order, OrderAction.UPDATE_STATUS, target)
                changes: dict[str, Any] = {}
                metadata: dict[str, Any] = {}
                if target is OrderStatus.DELIVERED:
                    metadata = self._deliver_items(order, actor)
                elif target is OrderStatus.STOCK_IN_TRANSIT:
                    metadata = self._dispatch_items(order)
                elif (
                    target is OrderStatus.AWAITING_CLIENT_PAYMENT
                    and order.payment_reference is None
                    and order.distributor_id is not None
                ):
                    changes["payment_reference"] = self._payment_reference(order)
                result = self._commit(
                    order,
                    target,
                    actor,
                    activity="status_updated",
                    notes=notes,
                    changes=changes,
                    metadata=metadata,
                )
            self._publish(result)
        return result

    def distributor_update_status(
        self,
        actor: Actor,
        order_id: UUID,
        target: OrderStatus,
        notes: str | None = None,
    ) -> TransitionResult:
        """Payment and stock-arrival steps reported by the assigned distributor.

        Only the single next status in ``DISTRIBUTOR_STATUS_MOVES`` is
        accepted; every other move stays with the operating company.
        """
        with LogContext.bind(order_id=order_id, actor_id=actor.user_id):
            with self._store.transaction():
                order = self._locked(order_id)
                self._require_assigned_distributor(actor, order, "update status", allow_admin=False)
                if DISTRIBUTOR_STATUS_MOVES.get(order.status) is not target:
                    raise InvalidTransitionError(
                        str(order.id),
                        f"move to {target.value}",
                        order.status.value,
                        sorted(s.value for s, t in DISTRIBUTOR_STATUS_MOVES.items() if t is target),
                    )
                self._check(order, OrderAction.DISTRIBUTOR_UPDATE_STATUS, target)
                if (
                    target is OrderStatus.DISTRIBUTOR_PAID
                    and order.milestone(Milestone.DISTRIBUTOR_PAID)[0] is not None
                ):
                    raise PaymentAlreadyConfirmedError(str(order.id), PaymentStage.DISTRIBUTOR.value)
                result = self._commit(
                    order,
                    target,
                    actor,
                    activity="distributor_status_updated",
                    notes=notes,
                    metadata={"previousStatus": order.status.value, "targetStatus": target.value},
                )
            self._publish(result)
        return result

    # -- delivery ----------------------------------------------------------------

    def schedule_delivery(
        self,
        actor: Actor,
        order_id: UUID,
        scheduled_date: date,
        notes: str | None = None,
    ) -> TransitionResult:
        with LogContext.bind(order_id=order_id, actor_id=actor.user_id):
            with self._store.transaction():
                order = self._locked(order_id)
                self._require_assigned_distributor(actor, order, "schedule delivery")
                self._check(order, OrderAction.SCHEDULE_DELIVERY, OrderStatus.DELIVERY_SCHEDULED)
                rescheduled = order.status is OrderStatus.DELIVERY_SCHEDULED
                result = self._commit(
                    order,
                    OrderStatus.DELIVERY_SCHEDULED,
                    actor,
                    activity="delivery_rescheduled" if rescheduled else "delivery_scheduled",
                    notes=notes,
                    changes={
                        "scheduled_delivery_date": scheduled_date,
                        "delivery_notes": notes if notes is not None else order.delivery_notes,
                    },
                    metadata={
                        "scheduledDate": scheduled_date.isoformat(),
                        "previousDate": (
                            order.scheduled_delivery_date.isoformat()
                            if order.scheduled_delivery_date
                            else None
                        ),
                    },
                )
            self._publish(result)
        return result

    def mark_out_for_delivery(
        self, actor: Actor, order_id: UUID, notes: str | None = None
    ) -> TransitionResult:
        with LogContext.bind(order_id=order_id, actor_id=actor.user_id):
            with self._store.transaction():
                order = self._locked(order_id)
                self._require_assigned_distributor(actor, order, "dispatch delivery")
                self._check(order, OrderAction.MARK_OUT_FOR_DELIVERY, OrderStatus.OUT_FOR_DELIVERY)
                result = self._commit(
                    order, OrderStatus.OUT_FOR_DELIVERY, actor, activity="out_for_delivery", notes=notes
                )
            self._publish(result)
        return result

    def mark_delivered(
        self,
        actor: Actor,
        order_id: UUID,
        *,
        signature: str | None = None,
        photo_url: str | None = None,
        notes: str | None = None,
    ) -> TransitionResult:
        with LogContext.bind(order_id=order_id, actor_id=actor.user_id):
            with self._store.transaction():
                order = self._locked(order_id)
                self._require_assigned_distributor(actor, order, "mark delivered")
                self._check(order, OrderAction.MARK_DELIVERED, OrderStatus.DELIVERED)
                metadata = self._deliver_items(order, actor)
                metadata.update(hasSignature=signature is not None, hasPhoto=photo_url is not None)
                result = self._commit(
                    order,
                    OrderStatus.DELIVERED,
                    actor,
                    activity="order_delivered",
                    notes=notes,
                    changes={
                        "delivery_signature": signature,
                        "delivery_photo_url": photo_url,
                        "delivery_notes": notes if notes is not None else order.delivery_notes,
                    },
                    metadata=metadata,
                )
            self._publish(result)
        return result

    # -- stock -------------------------------------------------------------------

    def confirm_stock_receipt(
        self,
        actor: Actor,
        order_id: UUID,
        item_ids: Sequence[UUID],
        notes: str | None = None,
    ) -> StockReceipt:
        """The distributor physically received the given line items."""
        if not item_ids:
            raise InvalidInputError("item_ids", "at least one item is required")
        with LogContext.bind(order_id=order_id, actor_id=actor.user_id):
            with self._store.transaction():
                order = self._locked(order_id)
                self._require_assigned_distributor(actor, order, "confirm stock receipt")
                self._require_not_cancelled(order, "confirm stock receipt for")
                items = [self._item_of(order, item_id) for item_id in dict.fromkeys(item_ids)]
                eligible = self._config.stock_receipt_eligible_statuses
                blocked = {
                    str(i.id): i.stock_status.value for i in items if i.stock_status not in eligible
                }
                if blocked:
                    raise StockNotReadyError(
                        str(order.id),
                        "confirm stock receipt",
                        blocked,
                        sorted(s.value for s in eligible),
                    )
                now = self._clock.now()
                received = tuple(
                    replace(i, stock_status=StockStatus.AT_DISTRIBUTOR, stock_received_at=now)
                    for i in items
                )
                self._store.update_items(received)
                names = tuple(i.product_name for i in items)
                entry = self._activity.record(
                    order.id,
                    actor.user_id,
                    "stock_received_at_distributor",
                    notes=notes or f"Distributor confirmed receipt of {len(items)} items",
                    metadata={
                        "itemIds": [i.id for i in items],
                        "itemCount": len(items),
                        "itemNames": ", ".join(names),
                        "previousStatuses": [
                            {"itemId": i.id, "previousStatus": i.stock_status} for i in items
                        ],
                    },
                )
                event = StockReceivedAtDistributor(
                    order_id=order.id,
                    occurred_at=now,
                    actor_id=actor.user_id,
                    order_number=order.order_number,
                    partner_id=order.partner_id,
                    distributor_id=order.distributor_id,
                    item_ids=tuple(i.id for i in items),
                    item_names=names,
                )
            logger.info(
                "stock_receipt_confirmed",
                extra={"order_id": str(order.id), "item_count": len(items)},
            )
            self._events.publish(event)
        return StockReceipt(order=order, items=received, activity=entry, event=event)

    def update_item_stock_status(
        self,
        actor: Actor,
        order_id: UUID,
        item_ids: Sequence[UUID],
        stock_status: StockStatus,
        *,
        expected_at: datetime | None = None,
        notes: str | None = None,
    ) -> tuple[OrderLineItem, ...]:
        """Admin correction of line-item stock status."""
        self._require_admin(actor, "update stock status")
        if not item_ids:
            raise InvalidInputError("item_ids", "at least one item is required")
        with LogContext.bind(order_id=order_id, actor_id=actor.user_id):
            with self._store.transaction():
                order = self._locked(order_id)
                self._require_not_cancelled(order, "update stock status of")
                items = [self._item_of(order, item_id) for item_id in dict.fromkeys(item_ids)]
                now = self._clock.now()
                updated = tuple(
                    replace(
                        i,
                        stock_status=stock_status,
                        stock_confirmed_at=(
                            now if stock_status is StockStatus.CONFIRMED else i.stock_confirmed_at
                        ),
                        stock_expected_at=expected_at if expected_at is not None else i.stock_expected_at,
                        stock_notes=notes if notes is not None else i.stock_notes,
                    )
                    for i in items
                )
                self._store.update_items(updated)
                self._activity.record(
                    order.id,
                    actor.user_id,
                    "stock_status_bulk_updated",
                    notes=notes or f"Bulk updated {len(items)} items to {stock_status.value}",
                    metadata={
                        "itemIds": [i.id for i in items],
                        "itemCount": len(items),
                        "newStockStatus": stock_status,
                        "stockExpectedAt": expected_at.isoformat() if expected_at else None,
                    },
                )
        return updated

    # -- cancellation --------------------------------------------------------------

    def cancel_order(
        self,
        actor: Actor,
        order_id: UUID,
        reason: str | None = None,
    ) -> TransitionResult:
        """Cancel and release held stock.  Cancelling twice is a no-op."""
        with LogContext.bind(order_id=order_id, actor_id=actor.user_id):
            with self._store.transaction():
                order = self._locked(order_id)
                self._require_canceller(actor, order)
                if order.status is OrderStatus.CANCELLED:
                    logger.info("order_already_cancelled", extra={"order_id": str(order.id)})
                    return TransitionResult(order=order, activity=None)
                self._check(order, OrderAction.CANCEL, OrderStatus.CANCELLED)
                released = 0
                if self._reservations is not None:
                    released = self._reservations.release(
                        order.id, OrderType.PRIVATE_CLIENT, reason or "order_cancelled"
                    )
                result = self._commit(
                    order,
                    OrderStatus.CANCELLED,
                    actor,
                    activity="order_cancelled",
                    notes=reason,
                    changes={"cancellation_reason": reason},
                    metadata={"releasedReservations": released},
                )
                result = replace(result, released_reservations=released)
            self._publish(result)
        return result

    # -- internals ------------------------------------------------------------------

    def _locked(self, order_id: UUID) -> Order:
        order = self._store.lock_order(order_id)
        if order is None:
            raise OrderNotFoundError(str(order_id))
        return order

    def _client(self, client_id: UUID | None) -> Client | None:
        return self._store.get_client(client_id) if client_id is not None else None

    def _item_of(self, order: Order, item_id: UUID) -> OrderLineItem:
        item = self._store.get_item(item_id)
        if item is None or item.order_id != order.id:
            raise LineItemNotFoundError(str(item_id), str(order.id))
        return item

    def _check(self, order: Order, action: OrderAction, target: OrderStatus) -> None:
        allowed = guard_statuses(action)
        if order.status in allowed and can_transition(order.status, target):
            return
        required = sorted(s.value for s in allowed if can_transition(s, target))
        raise InvalidTransitionError(
            str(order.id), action.value.replace("_", " "), order.status.value, required
        )

    def _require_editable(self, order: Order) -> None:
        editable = guard_statuses(OrderAction.EDIT_ITEMS)
        if order.status not in editable:
            raise OrderNotEditableError(
                str(order.id), order.status.value, sorted(s.value for s in editable)
            )

    def _require_not_cancelled(self, order: Order, action: str) -> None:
        if order.status is OrderStatus.CANCELLED:
            raise InvalidTransitionError(
                str(order.id),
                action,
                order.status.value,
                sorted(s.value for s in OrderStatus if s is not OrderStatus.CANCELLED),
            )

    @staticmethod
    def _validate_item_fields(
        *,
        product_name: str,
        quantity: int,
        unit_price_usd: Decimal,
        case_config: int,
    ) -> None:
        if not (product_name or "").strip():
            raise InvalidInputError("product_name", "is required")
        if quantity <= 0:
            raise InvalidInputError("quantity", "must be a positive number of cases")
        if unit_price_usd < 0:
            raise InvalidInputError("unit_price_usd", "cannot be negative")
        if case_config <= 0:
            raise InvalidInputError("case_config", "must be a positive number of bottles")

    # -- authorization

    def _require_admin(self, actor: Actor, action: str) -> None:
        if not actor.is_admin:
            raise ActorRoleError(str(actor.user_id), actor.role.value, action)

    def _require_owner(self, actor: Actor, order: Order, action: str) -> None:
        if actor.role is not ActorRole.PARTNER:
            raise ActorRoleError(str(actor.user_id), actor.role.value, action)
        if actor.partner_id != order.partner_id:
            raise NotOrderOwnerError(str(order.id), str(actor.partner_id))

    def _require_owner_or_admin(self, actor: Actor, order: Order, action: str) -> None:
        if not actor.is_admin:
            self._require_owner(actor, order, action)

    def _require_assigned_distributor(
        self,
        actor: Actor,
        order: Order,
        action: str,
        *,
        allow_admin: bool = True,
    ) -> None:
        if actor.is_admin and allow_admin:
            return
        if actor.role is not ActorRole.DISTRIBUTOR:
            raise ActorRoleError(str(actor.user_id), actor.role.value, action)
        if order.distributor_id is None or actor.partner_id != order.distributor_id:
            raise NotAssignedDistributorError(str(order.id), str(actor.partner_id))

    def _require_client_payment_confirmer(self, actor: Actor, order: Order) -> None:
        match actor.role:
            case ActorRole.ADMIN:
                return
            case ActorRole.PARTNER:
                self._require_owner(actor, order, "confirm client payment")
            case ActorRole.DISTRIBUTOR:
                self._require_assigned_distributor(actor, order, "confirm client payment")
            case _:
                assert_never(actor.role)

    def _require_canceller(self, actor: Actor, order: Order) -> None:
        if actor.is_admin:
            return
        self._require_owner(actor, order, "cancel")
        if (
            order.status is not OrderStatus.CANCELLED
            and order.status not in self._config.partner_cancellable_statuses
        ):
            raise InvalidTransitionError(
                str(order.id),
                "cancel",
                order.status.value,
                sorted(s.value for s in self._config.partner_cancellable_statuses),
            )

    # -- pricing

    def _totals(self, order: Order, items: Iterable[OrderLineItem]) -> dict[str, Any]:
        totals = compute_order_totals(
            items=items,
            rates=OrderRates(
                duty_percent=order.duty_percent,
                vat_percent=order.vat_percent,
                logistics_percent=order.logistics_percent,
            ),
        )
        return {
            "item_count": totals.item_count,
            "case_count": totals.case_count,
            "subtotal_usd": totals.subtotal_usd,
            "duty_usd": totals.duty_usd,
            "vat_usd": totals.vat_usd,
            "logistics_usd": totals.logistics_usd,
            "total_usd": totals.total_usd,
        }

    def _write_totals(
        self,
        order: Order,
        now: datetime,
        expected: OrderStatus | None = None,
    ) -> Order:
        totals = self._totals(order, self._store.list_items(order.id))
        stored = self._store.update_order(
            replace(order, updated_at=now, **totals),
            expected_status=expected or order.status,
        )
        logger.debug(
            "order_totals_recomputed",
            extra={
                "order_id": str(order.id),
                "item_count": stored.item_count,
                "total_usd": str(stored.total_usd),
            },
        )
        return stored

    def _apply_override(
        self,
        order: Order,
        items: dict[UUID, OrderLineItem],
        override: PricingOverride,
    ) -> tuple[dict[UUID, OrderLineItem], dict[str, Any]]:
        changes: dict[str, Any] = {}
        if override.rates is not None:
            changes = {
                "duty_percent": override.rates.duty_percent,
                "vat_percent": override.rates.vat_percent,
                "logistics_percent": override.rates.logistics_percent,
            }
        priced = dict(items)
        for item_id, price in override.unit_prices.items():
            if item_id not in priced:
                raise LineItemNotFoundError(str(item_id), str(order.id))
            if price < 0:
                raise InvalidInputError("unit_price_usd", "cannot be negative")
            item = priced[item_id]
            priced[item_id] = replace(
                item,
                unit_price_usd=price,
                line_total_usd=line_total(item.quantity, price),
            )
        return priced, changes

    def _payment_reference(self, order: Order, distributor_code: str | None = None) -> str:
        code = distributor_code
        if code is None and order.distributor_id is not None:
            distributor = self._store.get_partner(order.distributor_id)
            code = distributor.distributor_code if distributor else None
        return f"{code or self._config.payment_reference_fallback_code}-{order.order_number}"

    # -- domain mutations

    def _deliver_items(self, order: Order, actor: Actor) -> dict[str, Any]:
        items = self._store.list_items(order.id)
        early = {
            str(i.id): i.stock_status.value for i in items if i.stock_status not in _DELIVERABLE_STOCK
        }
        if early:
            raise StockNotReadyError(
                str(order.id),
                "mark delivered",
                early,
                sorted(s.value for s in _DELIVERABLE_STOCK),
            )
        self._store.update_items([replace(i, stock_status=StockStatus.DELIVERED) for i in items])

        client_verified = False
        client = self._client(order.client_id)
        if client is not None and client.external_verified_at is None:
            self._store.update_client(
                replace(
                    client,
                    external_verified_at=self._clock.now(),
                    external_verified_by=actor.user_id,
                )
            )
            client_verified = True
        return {"itemsDelivered": len(items), "clientVerified": client_verified}

    def _dispatch_items(self, order: Order) -> dict[str, Any]:
        items = [i for i in self._store.list_items(order.id) if i.stock_status in _DISPATCHABLE_STOCK]
        self._store.update_items(
            [replace(i, stock_status=StockStatus.IN_TRANSIT_TO_DISTRIBUTOR) for i in items]
        )
        return {"itemsDispatched": len(items)}

    # -- commit and publish

    def _commit(
        self,
        order: Order,
        target: OrderStatus,
        actor: Actor,
        *,
        activity: str,
        notes: str | None = None,
        changes: Mapping[str, Any] | None = None,
        milestones: tuple[Milestone, ...] = (),
        metadata: Mapping[str, Any] | None = None,
        expected: OrderStatus | None = None,
    ) -> TransitionResult:
        now = self._clock.now()
        updated = replace(order, status=target, updated_at=now, **dict(changes or {}))
        stamp = milestone_for(target)
        for milestone in (*milestones, *((stamp,) if stamp else ())):
            updated = updated.with_milestone(milestone, now, actor.user_id)
        stored = self._store.update_order(updated, expected_status=expected or order.status)
        entry = self._activity.record(
            order.id,
            actor.user_id,
            activity,
            previous_status=order.status,
            new_status=target,
            notes=notes,
            metadata=metadata,
        )
        event = OrderStatusChanged(
            order_id=stored.id,
            occurred_at=now,
            actor_id=actor.user_id,
            order_number=stored.order_number,
            partner_id=stored.partner_id,
            from_status=order.status,
            to_status=target,
            distributor_id=stored.distributor_id,
            payment_reference=stored.payment_reference,
        )
        return TransitionResult(order=stored, activity=entry, event=event)

    def _publish(self, result: TransitionResult) -> None:
        if result.event is None:
            return
        logger.info(
            "order_status_changed",
            extra={
                "order_id": str(result.order.id),
                "order_number": result.order.order_number,
                "from_status": result.event.from_status.value,
                "to_status": result.event.to_status.value,
            },
        )
        self._events.publish(result.event)


def _payment_step(stage: PaymentStage) -> tuple[OrderAction, OrderStatus, Milestone]:
    match stage:
        case PaymentStage.CLIENT:
            return OrderAction.CONFIRM_CLIENT_PAYMENT, OrderStatus.CLIENT_PAID, Milestone.CLIENT_PAID
        case PaymentStage.DISTRIBUTOR:
            return (
                OrderAction.CONFIRM_DISTRIBUTOR_PAYMENT,
                OrderStatus.DISTRIBUTOR_PAID,
                Milestone.DISTRIBUTOR_PAID,
            )
        case PaymentStage.PARTNER:
            return (
                OrderAction.CONFIRM_PARTNER_PAYMENT,
                OrderStatus.PARTNER_PAID,
                Milestone.PARTNER_PAID,
            )
        case _:
            assert_never(stage)


def _coerce_item_changes(changes: Mapping[str, Any]) -> dict[str, Any]:
    """Line-item edits arrive from forms and JSON; bring them to the item's types."""
    coerced = dict(changes)
    if coerced.get("stock_source") is not None:
        try:
            coerced["stock_source"] = StockSource(coerced["stock_source"])
        except ValueError as exc:
            raise InvalidInputError("stock_source", f"unknown stock source {changes['stock_source']!r}") from exc
    if "unit_price_usd" in coerced:
        try:
            price = Decimal(str(coerced["unit_price_usd"]))
        except InvalidOperation as exc:
            raise InvalidInputError("unit_price_usd", "must be a number") from exc
        if not price.is_finite():
            raise InvalidInputError("unit_price_usd", "must be a finite number")
        coerced["unit_price_usd"] = price
    for name in ("quantity", "case_config"):
        if name not in coerced:
            continue
        value = coerced[name]
        if isinstance(value, bool):
            raise InvalidInputError(name, "must be a whole number")
        try:
            number = Decimal(str(value))
        except InvalidOperation as exc:
            raise InvalidInputError(name, "must be a whole number") from exc
        if not number.is_finite() or number != number.to_integral_value():
            raise InvalidInputError(name, "must be a whole number")
        coerced[name] = int(number)
    return coerced
