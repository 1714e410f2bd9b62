"""
pco_services.invoicing -- enqueue accounting-system invoice creation.

When an order reaches ``client_paid`` the accounting integration must raise
an invoice.  The integration itself is external; this module only turns the
committed ``OrderStatusChanged`` event into an ``InvoiceJob`` on an
``InvoiceJobQueue``.

Invariants enforced:
    - One job per order: ``idempotency_key`` is ``invoice:<order_id>`` and
      re-enqueuing the same key returns the existing job.
    - Jobs are only created for ``to_status == client_paid``.
    - A queue failure is logged as ``invoice_enqueue_failed`` and never
      reaches the transition that produced the event.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Protocol, runtime_checkable
from uuid import UUID, uuid4

from pco_kernel.domain.dtos import OrderStatus
from pco_kernel.domain.events import OrderStatusChanged
from pco_kernel.logging_config import get_logger
from pco_services.event_dispatcher import EventDispatcher

logger = get_logger("services.invoicing")


class InvoiceJobStatus(str, Enum):
    PENDING = "pending"
    SUBMITTED = "submitted"
    FAILED = "failed"


@dataclass(frozen=True)
class InvoiceJob:
    job_id: UUID
    idempotency_key: str
    order_id: UUID
    order_number: str
    partner_id: UUID
    requested_at: datetime
    requested_by: UUID
    payment_reference: str | None = None
    status: InvoiceJobStatus = InvoiceJobStatus.PENDING


@runtime_checkable
class InvoiceJobQueue(Protocol):
    """Boundary to the accounting-sync worker."""

    def enqueue(self, job: InvoiceJob) -> InvoiceJob: ...


class InMemoryInvoiceQueue:
    """Queue that keeps jobs in a dict keyed by idempotency key."""

    def __init__(self) -> None:
        self._jobs: dict[str, InvoiceJob] = {}
        self._lock = threading.Lock()

    def enqueue(self, job: InvoiceJob) -> InvoiceJob:
        with self._lock:
            existing = self._jobs.get(job.idempotency_key)
            if existing is not None:
                return existing
            self._jobs[job.idempotency_key] = job
            return job

    @property
    def jobs(self) -> list[InvoiceJob]:
        with self._lock:
            return list(self._jobs.values())


def invoice_key(order_id: UUID) -> str:
    return f"invoice:{order_id}"


class InvoiceTrigger:
    """Subscribes to status changes and enqueues invoices for paid orders."""

    def __init__(self, queue: InvoiceJobQueue):
        self._queue = queue

    def register(self, events: EventDispatcher) -> None:
        events.subscribe(OrderStatusChanged, self.on_status_changed)

    def on_status_changed(self, event: OrderStatusChanged) -> InvoiceJob | None:
        if event.to_status is not OrderStatus.CLIENT_PAID:
            return None
        job = InvoiceJob(
            job_id=uuid4(),
            idempotency_key=invoice_key(event.order_id),
            order_id=event.order_id,
            order_number=event.order_number,
            partner_id=event.partner_id,
            requested_at=event.occurred_at,
            requested_by=event.actor_id,
            payment_reference=event.payment_reference,
        )
        try:
            stored = self._queue.enqueue(job)
        except Exception:
            logger.error(
                "invoice_enqueue_failed",
                extra={"order_id": str(event.order_id), "order_number": event.order_number},
                exc_info=True,
            )
            return None
        logger.info(
            "invoice_enqueued",
            extra={
                "order_id": str(event.order_id),
                "job_id": str(stored.job_id),
                "duplicate": stored.job_id != job.job_id,
            },
        )
        return stored
