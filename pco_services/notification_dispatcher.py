"""
NotificationDispatcher -- partner notifications for order status changes.

Responsibility:
    Maps each committed ``OrderStatusChanged`` to zero or one partner
    notification (``notification_type_for``) and zero or one notification
    for the assigned distributor (``distributor_notification_type_for``),
    and hands them to a ``NotificationTransport``.  Also announces
    distributor stock receipts (``StockReceivedAtDistributor``).

Architecture position:
    Services -- subscribed to ``EventDispatcher`` by ``register``.  The
    transport is the boundary to the outbound email / in-app delivery
    system, which owns retries.

Invariants enforced:
    - ``notification_type_for`` is an exhaustive ``match`` over
      ``OrderStatus``; adding a status without deciding its notification
      fails type checking (``assert_never``).
    - Transport failures are logged as ``notification_dispatch_failed``
      and swallowed; a notification never fails a transition.

Failure modes:
    - None raised.  Missing order rows (deleted after commit) are logged
      and skipped.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Protocol, assert_never, runtime_checkable
from uuid import UUID

from pco_kernel.domain.dtos import Order, OrderStatus
from pco_kernel.domain.events import OrderStatusChanged, StockReceivedAtDistributor
from pco_kernel.logging_config import get_logger
from pco_kernel.store.base import OrderStore
from pco_services.event_dispatcher import EventDispatcher

logger = get_logger("services.notifications")


class NotificationType(str, Enum):
    APPROVED = "approved"
    REVISION_REQUESTED = "revision_requested"
    VERIFICATION_REQUIRED = "verification_required"
    CLIENT_VERIFIED = "client_verified"
    VERIFICATION_FAILED = "verification_failed"
    DELIVERY_SCHEDULED = "delivery_scheduled"
    DELIVERED = "delivered"
    STOCK_RECEIVED = "stock_received"
    ORDER_ASSIGNED = "order_assigned"
    DISTRIBUTOR_VERIFICATION_REQUIRED = "distributor_verification_required"


class InAppCategory(str, Enum):
    ACTION_REQUIRED = "action_required"
    STATUS_UPDATE = "status_update"
    PO_APPROVED = "po_approved"
    PO_ASSIGNED = "po_assigned"
    REVISION_REQUESTED = "revision_requested"


def notification_type_for(status: OrderStatus) -> NotificationType | None:
    """Partner notification sent when an order enters ``status``."""
    match status:
        case OrderStatus.CC_APPROVED:
            return NotificationType.APPROVED
        case OrderStatus.REVISION_REQUESTED:
            return NotificationType.REVISION_REQUESTED
        case OrderStatus.AWAITING_PARTNER_VERIFICATION:
            return NotificationType.VERIFICATION_REQUIRED
        case OrderStatus.AWAITING_CLIENT_PAYMENT:
            return NotificationType.CLIENT_VERIFIED
        case OrderStatus.VERIFICATION_SUSPENDED:
            return NotificationType.VERIFICATION_FAILED
        case OrderStatus.DELIVERY_SCHEDULED:
            return NotificationType.DELIVERY_SCHEDULED
        case OrderStatus.DELIVERED:
            return NotificationType.DELIVERED
        case (
            OrderStatus.DRAFT
            | OrderStatus.SUBMITTED
            | OrderStatus.UNDER_CC_REVIEW
            | OrderStatus.AWAITING_DISTRIBUTOR_VERIFICATION
            | OrderStatus.CLIENT_PAID
            | OrderStatus.AWAITING_DISTRIBUTOR_PAYMENT
            | OrderStatus.DISTRIBUTOR_PAID
            | OrderStatus.AWAITING_PARTNER_PAYMENT
            | OrderStatus.PARTNER_PAID
            | OrderStatus.STOCK_IN_TRANSIT
            | OrderStatus.WITH_DISTRIBUTOR
            | OrderStatus.SCHEDULING_DELIVERY
            | OrderStatus.OUT_FOR_DELIVERY
            | OrderStatus.CANCELLED
        ):
            return None
        case _:
            assert_never(status)


def distributor_notification_type_for(event: OrderStatusChanged) -> NotificationType | None:
    """Notification for the assigned distributor, if the change concerns it.

    A distributor assigned without client verification hears about the
    order at once; one that must verify hears when the partner hands the
    client over.
    """
    if event.distributor_id is None:
        return None
    if event.to_status is OrderStatus.AWAITING_DISTRIBUTOR_VERIFICATION:
        return NotificationType.DISTRIBUTOR_VERIFICATION_REQUIRED
    if (
        event.from_status is OrderStatus.CC_APPROVED
        and event.to_status is OrderStatus.AWAITING_CLIENT_PAYMENT
    ):
        return NotificationType.ORDER_ASSIGNED
    return None


def in_app_category(kind: NotificationType) -> InAppCategory:
    match kind:
        case NotificationType.APPROVED:
            return InAppCategory.PO_APPROVED
        case NotificationType.REVISION_REQUESTED:
            return InAppCategory.REVISION_REQUESTED
        case NotificationType.ORDER_ASSIGNED:
            return InAppCategory.PO_ASSIGNED
        case (
            NotificationType.VERIFICATION_REQUIRED
            | NotificationType.VERIFICATION_FAILED
            | NotificationType.DISTRIBUTOR_VERIFICATION_REQUIRED
        ):
            return InAppCategory.ACTION_REQUIRED
        case (
            NotificationType.CLIENT_VERIFIED
            | NotificationType.DELIVERY_SCHEDULED
            | NotificationType.DELIVERED
            | NotificationType.STOCK_RECEIVED
        ):
            return InAppCategory.STATUS_UPDATE
        case _:
            assert_never(kind)


_TITLES: dict[NotificationType, str] = {
    NotificationType.APPROVED: "Order Approved",
    NotificationType.REVISION_REQUESTED: "Changes Requested",
    NotificationType.VERIFICATION_REQUIRED: "Client Verification Required",
    NotificationType.CLIENT_VERIFIED: "Client Verified",
    NotificationType.VERIFICATION_FAILED: "Verification Failed",
    NotificationType.DELIVERY_SCHEDULED: "Delivery Scheduled",
    NotificationType.DELIVERED: "Order Delivered",
    NotificationType.STOCK_RECEIVED: "Stock Received at Distributor",
    NotificationType.ORDER_ASSIGNED: "New Order Assigned",
    NotificationType.DISTRIBUTOR_VERIFICATION_REQUIRED: "Client Verification Required",
}


@dataclass(frozen=True)
class PartnerNotification:
    """One message addressed to every member of a partner organisation."""

    partner_id: UUID
    order_id: UUID
    order_number: str
    type: NotificationType
    category: InAppCategory
    title: str
    message: str


@runtime_checkable
class NotificationTransport(Protocol):
    """Outbound delivery boundary (in-app + email)."""

    def send(self, notification: PartnerNotification) -> None: ...


class LoggingNotificationTransport:
    """Transport that only records deliveries in the structured log."""

    def send(self, notification: PartnerNotification) -> None:
        logger.info(
            "notification_sent",
            extra={
                "partner_id": str(notification.partner_id),
                "order_id": str(notification.order_id),
                "notification_type": notification.type.value,
                "title": notification.title,
            },
        )


class NotificationDispatcher:
    """Builds partner notifications from order events and sends them best-effort."""

    def __init__(self, store: OrderStore, transport: NotificationTransport):
        self._store = store
        self._transport = transport

    def register(self, events: EventDispatcher) -> None:
        events.subscribe(OrderStatusChanged, self.on_status_changed)
        events.subscribe(OrderStatusChanged, self.on_distributor_status_changed)
        events.subscribe(StockReceivedAtDistributor, self.on_stock_received)

    def on_status_changed(self, event: OrderStatusChanged) -> PartnerNotification | None:
        kind = notification_type_for(event.to_status)
        if kind is None:
            logger.debug(
                "notification_not_required",
                extra={"order_id": str(event.order_id), "to_status": event.to_status.value},
            )
            return None
        order = self._store.get_order(event.order_id)
        if order is None:
            logger.warning("notification_order_missing", extra={"order_id": str(event.order_id)})
            return None
        message = self._message(kind, order, event.payment_reference)
        return self._send(event.partner_id, order, kind, message)

    def on_distributor_status_changed(self, event: OrderStatusChanged) -> PartnerNotification | None:
        kind = distributor_notification_type_for(event)
        if kind is None or event.distributor_id is None:
            return None
        order = self._store.get_order(event.order_id)
        if order is None:
            logger.warning("notification_order_missing", extra={"order_id": str(event.order_id)})
            return None
        message = self._message(kind, order, event.payment_reference)
        return self._send(event.distributor_id, order, kind, message)

    def on_stock_received(self, event: StockReceivedAtDistributor) -> PartnerNotification | None:
        order = self._store.get_order(event.order_id)
        if order is None:
            logger.warning("notification_order_missing", extra={"order_id": str(event.order_id)})
            return None
        count = len(event.item_ids)
        message = (
            f"{count or 'All'} item(s) for order {order.order_number} "
            "arrived at distributor warehouse."
        )
        return self._send(event.partner_id, order, NotificationType.STOCK_RECEIVED, message)

    def _send(
        self,
        partner_id: UUID,
        order: Order,
        kind: NotificationType,
        message: str,
    ) -> PartnerNotification | None:
        notification = PartnerNotification(
            partner_id=partner_id,
            order_id=order.id,
            order_number=order.order_number,
            type=kind,
            category=in_app_category(kind),
            title=_TITLES[kind],
            message=message,
        )
        try:
            self._transport.send(notification)
        except Exception:
            logger.error(
                "notification_dispatch_failed",
                extra={
                    "order_id": str(order.id),
                    "partner_id": str(partner_id),
                    "notification_type": kind.value,
                },
                exc_info=True,
            )
            return None
        return notification

    def _distributor_name(self, order: Order) -> str:
        if order.distributor_id is None:
            return "the distributor"
        distributor = self._store.get_partner(order.distributor_id)
        return distributor.business_name if distributor else "the distributor"

    def _message(
        self,
        kind: NotificationType,
        order: Order,
        payment_reference: str | None,
    ) -> str:
        number = order.order_number
        match kind:
            case NotificationType.APPROVED:
                return f"Your order {number} has been approved. A distributor will be assigned shortly."
            case NotificationType.REVISION_REQUESTED:
                reason = f" Reason: {order.revision_reason}" if order.revision_reason else ""
                return f"Changes are needed for order {number}. Please review and resubmit.{reason}"
            case NotificationType.VERIFICATION_REQUIRED:
                return (
                    f"Please confirm if your client is verified with "
                    f"{self._distributor_name(order)} for order {number}."
                )
            case NotificationType.CLIENT_VERIFIED:
                reference = payment_reference or order.payment_reference
                return f"Client verified for order {number}. Payment reference: {reference}"
            case NotificationType.VERIFICATION_FAILED:
                return (
                    f"{self._distributor_name(order)} could not verify your client "
                    f"for order {number}. Please resolve."
                )
            case NotificationType.DELIVERY_SCHEDULED:
                when = (
                    order.scheduled_delivery_date.isoformat()
                    if order.scheduled_delivery_date
                    else "a date to be confirmed"
                )
                return f"Delivery for order {number} scheduled for {when}."
            case NotificationType.DELIVERED:
                return f"Order {number} has been delivered to your client."
            case NotificationType.STOCK_RECEIVED:
                return f"Stock for order {number} arrived at distributor warehouse."
            case NotificationType.ORDER_ASSIGNED:
                reference = payment_reference or order.payment_reference
                return f"Order {number} has been assigned to you. Payment reference: {reference}."
            case NotificationType.DISTRIBUTOR_VERIFICATION_REQUIRED:
                return (
                    f"Please verify client {order.client_name or 'unknown'} "
                    f"in your system for order {number}."
                )
            case _:
                assert_never(kind)
