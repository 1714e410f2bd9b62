"""
pco_services -- Package init and public API.

Responsibility:
    Stateful glue around the kernel: post-commit event fan-out, partner
    notifications, bonded-stock reservation and invoice-job enqueueing.
    Each service sits behind a port (``NotificationTransport``,
    ``InventoryGateway``, ``InvoiceJobQueue``) so the external system it
    talks to can be replaced by an in-memory fake.

Architecture position:
    Services -- may import pco_kernel and pco_engines.
        pco_engines/ -> pco_services/ (FORBIDDEN)
        pco_kernel/  -> pco_services/ (FORBIDDEN)

Failure modes:
    - Handler failures (notifications, invoices) are logged by the
      dispatcher and never propagate to the transition that published them.
"""

from pco_services.event_dispatcher import EventDispatcher
from pco_services.invoicing import (
    InMemoryInvoiceQueue,
    InvoiceJob,
    InvoiceJobQueue,
    InvoiceJobStatus,
    InvoiceTrigger,
)
from pco_services.notification_dispatcher import (
    InAppCategory,
    LoggingNotificationTransport,
    NotificationDispatcher,
    NotificationTransport,
    NotificationType,
    PartnerNotification,
    notification_type_for,
)
from pco_services.stock_reservation import (
    InMemoryInventoryGateway,
    InventoryGateway,
    OrderType,
    ReservationResult,
    SqlInventoryGateway,
    StockLot,
    StockReservationCoordinator,
)

__all__ = [
    "EventDispatcher",
    "InAppCategory",
    "InMemoryInventoryGateway",
    "InMemoryInvoiceQueue",
    "InventoryGateway",
    "InvoiceJob",
    "InvoiceJobQueue",
    "InvoiceJobStatus",
    "InvoiceTrigger",
    "LoggingNotificationTransport",
    "NotificationDispatcher",
    "NotificationTransport",
    "NotificationType",
    "OrderType",
    "PartnerNotification",
    "ReservationResult",
    "SqlInventoryGateway",
    "StockLot",
    "StockReservationCoordinator",
    "notification_type_for",
]
