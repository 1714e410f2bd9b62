"""
Private Client Order Workflow (``pco_modules.private_client_orders.workflows``).

Responsibility
--------------
Declares the order status graph, the status sets each dedicated action
requires, the moves an assigned distributor may make on its own, and the
milestone a status entry stamps.  The graph, guard sets and milestones are
exhaustive ``match`` statements over the enums, so adding a status or an
action without deciding its edges fails type checking (``assert_never``).

Architecture position
---------------------
**Modules layer** -- declarative workflow definitions.  The state machine
service (``service.py``) consults ``can_transition`` and
``guard_statuses`` before every write.

Invariants enforced
-------------------
* ``delivered`` and ``cancelled`` are terminal: no outgoing edges.
* ``cancelled`` is reachable from every non-terminal status.
* A dedicated action passes only if its guard set contains the current
  status AND the graph has the edge.
* Every ``DISTRIBUTOR_STATUS_MOVES`` entry is an edge of the graph.
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
from types import MappingProxyType
from typing import assert_never

from pco_kernel.domain.dtos import Milestone, OrderStatus

S = OrderStatus

TERMINAL_STATUSES: frozenset[OrderStatus] = frozenset({S.DELIVERED, S.CANCELLED})
NON_TERMINAL_STATUSES: frozenset[OrderStatus] = frozenset(OrderStatus) - TERMINAL_STATUSES


def _forward(status: OrderStatus) -> frozenset[OrderStatus]:
    match status:
        case S.DRAFT:
            return frozenset({S.SUBMITTED})
        case S.SUBMITTED:
            return frozenset({S.UNDER_CC_REVIEW, S.CC_APPROVED})
        case S.UNDER_CC_REVIEW:
            return frozenset({S.REVISION_REQUESTED, S.CC_APPROVED})
        case S.REVISION_REQUESTED:
            return frozenset({S.SUBMITTED})
        case S.CC_APPROVED:
            return frozenset({
                S.AWAITING_PARTNER_VERIFICATION,
                S.AWAITING_DISTRIBUTOR_VERIFICATION,
                S.AWAITING_CLIENT_PAYMENT,
            })
        case S.AWAITING_PARTNER_VERIFICATION:
            return frozenset({
                S.AWAITING_DISTRIBUTOR_VERIFICATION,
                S.VERIFICATION_SUSPENDED,
                S.AWAITING_CLIENT_PAYMENT,
            })
        case S.AWAITING_DISTRIBUTOR_VERIFICATION:
            return frozenset({S.VERIFICATION_SUSPENDED, S.AWAITING_CLIENT_PAYMENT})
        case S.VERIFICATION_SUSPENDED:
            return frozenset({
                S.AWAITING_PARTNER_VERIFICATION,
                S.AWAITING_DISTRIBUTOR_VERIFICATION,
                S.AWAITING_CLIENT_PAYMENT,
            })
        case S.AWAITING_CLIENT_PAYMENT:
            return frozenset({S.CLIENT_PAID})
        case S.CLIENT_PAID:
            return frozenset({
                S.AWAITING_DISTRIBUTOR_PAYMENT,
                S.STOCK_IN_TRANSIT,
                S.WITH_DISTRIBUTOR,
                S.SCHEDULING_DELIVERY,
                S.DELIVERY_SCHEDULED,
            })
        case S.AWAITING_DISTRIBUTOR_PAYMENT:
            return frozenset({S.DISTRIBUTOR_PAID, S.STOCK_IN_TRANSIT, S.WITH_DISTRIBUTOR})
        case S.DISTRIBUTOR_PAID:
            return frozenset({
                S.AWAITING_PARTNER_PAYMENT,
                S.STOCK_IN_TRANSIT,
                S.WITH_DISTRIBUTOR,
                S.SCHEDULING_DELIVERY,
            })
        case S.AWAITING_PARTNER_PAYMENT:
            return frozenset({S.PARTNER_PAID, S.STOCK_IN_TRANSIT, S.WITH_DISTRIBUTOR})
        case S.PARTNER_PAID:
            return frozenset({S.STOCK_IN_TRANSIT, S.WITH_DISTRIBUTOR, S.SCHEDULING_DELIVERY})
        case S.STOCK_IN_TRANSIT:
            return frozenset({S.WITH_DISTRIBUTOR})
        case S.WITH_DISTRIBUTOR:
            return frozenset({S.SCHEDULING_DELIVERY, S.OUT_FOR_DELIVERY})
        case S.SCHEDULING_DELIVERY:
            return frozenset({S.DELIVERY_SCHEDULED})
        case S.DELIVERY_SCHEDULED:
            # Re-scheduling keeps the status.
            return frozenset({S.DELIVERY_SCHEDULED, S.OUT_FOR_DELIVERY})
        case S.OUT_FOR_DELIVERY:
            return frozenset({S.DELIVERED})
        case S.DELIVERED | S.CANCELLED:
            return frozenset()
        case _:
            assert_never(status)


def next_statuses(status: OrderStatus) -> frozenset[OrderStatus]:
    """Statuses an order in ``status`` may move to (cancellation included)."""
    forward = _forward(status)
    if status in TERMINAL_STATUSES:
        return forward
    return forward | {S.CANCELLED}


def can_transition(from_status: OrderStatus, to_status: OrderStatus) -> bool:
    return to_status in next_statuses(from_status)


# Payment and stock-arrival steps the assigned distributor reports itself.
DISTRIBUTOR_STATUS_MOVES: Mapping[OrderStatus, OrderStatus] = MappingProxyType({
    S.CLIENT_PAID: S.AWAITING_DISTRIBUTOR_PAYMENT,
    S.AWAITING_DISTRIBUTOR_PAYMENT: S.DISTRIBUTOR_PAID,
    S.STOCK_IN_TRANSIT: S.WITH_DISTRIBUTOR,
    S.WITH_DISTRIBUTOR: S.OUT_FOR_DELIVERY,
})


class OrderAction(str, Enum):
    """Dedicated operations whose guard set narrows the graph."""

    EDIT_ITEMS = "edit_items"
    SUBMIT = "submit"
    START_REVIEW = "start_review"
    REQUEST_REVISION = "request_revision"
    APPROVE = "approve"
    ASSIGN_DISTRIBUTOR = "assign_distributor"
    PARTNER_VERIFICATION = "partner_verification"
    DISTRIBUTOR_VERIFICATION = "distributor_verification"
    UNLOCK_SUSPENDED = "unlock_suspended"
    RESET_VERIFICATION = "reset_verification"
    CONFIRM_CLIENT_PAYMENT = "confirm_client_payment"
    CONFIRM_DISTRIBUTOR_PAYMENT = "confirm_distributor_payment"
    CONFIRM_PARTNER_PAYMENT = "confirm_partner_payment"
    SCHEDULE_DELIVERY = "schedule_delivery"
    MARK_OUT_FOR_DELIVERY = "mark_out_for_delivery"
    MARK_DELIVERED = "mark_delivered"
    CANCEL = "cancel"
    UPDATE_STATUS = "update_status"
    DISTRIBUTOR_UPDATE_STATUS = "distributor_update_status"


def guard_statuses(action: OrderAction) -> frozenset[OrderStatus]:
    """Statuses in which ``action`` may run."""
    match action:
        case OrderAction.EDIT_ITEMS | OrderAction.SUBMIT:
            return frozenset({S.DRAFT, S.REVISION_REQUESTED})
        case OrderAction.START_REVIEW:
            return frozenset({S.SUBMITTED})
        case OrderAction.REQUEST_REVISION:
            return frozenset({S.UNDER_CC_REVIEW})
        case OrderAction.APPROVE:
            return frozenset({S.SUBMITTED, S.UNDER_CC_REVIEW})
        case OrderAction.ASSIGN_DISTRIBUTOR:
            return frozenset({S.CC_APPROVED})
        case OrderAction.PARTNER_VERIFICATION:
            return frozenset({S.AWAITING_PARTNER_VERIFICATION})
        case OrderAction.DISTRIBUTOR_VERIFICATION:
            return frozenset({S.AWAITING_DISTRIBUTOR_VERIFICATION})
        case OrderAction.UNLOCK_SUSPENDED | OrderAction.RESET_VERIFICATION:
            return frozenset({S.VERIFICATION_SUSPENDED})
        case OrderAction.CONFIRM_CLIENT_PAYMENT:
            return frozenset({S.AWAITING_CLIENT_PAYMENT})
        case OrderAction.CONFIRM_DISTRIBUTOR_PAYMENT:
            return frozenset({S.AWAITING_DISTRIBUTOR_PAYMENT})
        case OrderAction.CONFIRM_PARTNER_PAYMENT:
            return frozenset({S.AWAITING_PARTNER_PAYMENT})
        case OrderAction.SCHEDULE_DELIVERY:
            return frozenset({S.CLIENT_PAID, S.SCHEDULING_DELIVERY, S.DELIVERY_SCHEDULED})
        case OrderAction.MARK_OUT_FOR_DELIVERY:
            return frozenset({S.WITH_DISTRIBUTOR, S.DELIVERY_SCHEDULED})
        case OrderAction.MARK_DELIVERED:
            return frozenset({S.OUT_FOR_DELIVERY})
        case OrderAction.DISTRIBUTOR_UPDATE_STATUS:
            return frozenset(DISTRIBUTOR_STATUS_MOVES)
        case OrderAction.CANCEL | OrderAction.UPDATE_STATUS:
            return NON_TERMINAL_STATUSES
        case _:
            assert_never(action)


def milestone_for(status: OrderStatus) -> Milestone | None:
    """Milestone stamped when an order enters ``status``.

    Assignment and verification milestones are stamped by their actions,
    not by a status, because several statuses can follow them.
    """
    match status:
        case S.SUBMITTED:
            return Milestone.SUBMITTED
        case S.CC_APPROVED:
            return Milestone.APPROVED
        case S.REVISION_REQUESTED:
            return Milestone.REVISION_REQUESTED
        case S.CLIENT_PAID:
            return Milestone.CLIENT_PAID
        case S.DISTRIBUTOR_PAID:
            return Milestone.DISTRIBUTOR_PAID
        case S.PARTNER_PAID:
            return Milestone.PARTNER_PAID
        case S.STOCK_IN_TRANSIT:
            return Milestone.STOCK_DISPATCHED
        case S.WITH_DISTRIBUTOR:
            return Milestone.STOCK_RECEIVED
        case S.DELIVERY_SCHEDULED:
            return Milestone.DELIVERY_SCHEDULED
        case S.OUT_FOR_DELIVERY:
            return Milestone.OUT_FOR_DELIVERY
        case S.DELIVERED:
            return Milestone.DELIVERED
        case S.CANCELLED:
            return Milestone.CANCELLED
        case (
            S.DRAFT
            | S.UNDER_CC_REVIEW
            | S.AWAITING_PARTNER_VERIFICATION
            | S.AWAITING_DISTRIBUTOR_VERIFICATION
            | S.VERIFICATION_SUSPENDED
            | S.AWAITING_CLIENT_PAYMENT
            | S.AWAITING_DISTRIBUTOR_PAYMENT
            | S.AWAITING_PARTNER_PAYMENT
            | S.SCHEDULING_DELIVERY
        ):
            return None
        case _:
            assert_never(status)


