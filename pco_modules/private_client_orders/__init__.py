"""
Private Client Orders Module (``pco_modules.private_client_orders``).

Responsibility
--------------
Multi-party wine sale orders between a selling partner, the operating
company, a licensed distributor and an end client, from draft through
delivery and settlement.

Architecture position
---------------------
**Modules layer** -- status graph and guard sets (``workflows``), configuration
schema (``config``) and the state machine service facade (``service``).
Pricing arithmetic lives in ``pco_engines``; persistence behind the
``pco_kernel`` store port; side effects in ``pco_services``.
"""

from pco_modules.private_client_orders.config import PrivateClientOrderConfig, QuoteDefaults
from pco_modules.private_client_orders.service import (
    ClientInfo,
    DistributorVerificationOutcome,
    LineItemInput,
    PartnerVerificationAnswer,
    PaymentStage,
    PricingOverride,
    PrivateClientOrderService,
    StockAssignment,
    StockReceipt,
    TransitionResult,
)
from pco_modules.private_client_orders.workflows import (
    DISTRIBUTOR_STATUS_MOVES,
    OrderAction,
    can_transition,
    guard_statuses,
    milestone_for,
    next_statuses,
)

__all__ = [
    "ClientInfo",
    "DistributorVerificationOutcome",
    "LineItemInput",
    "DISTRIBUTOR_STATUS_MOVES",
    "OrderAction",
    "PartnerVerificationAnswer",
    "PaymentStage",
    "PricingOverride",
    "PrivateClientOrderConfig",
    "PrivateClientOrderService",
    "QuoteDefaults",
    "StockAssignment",
    "StockReceipt",
    "TransitionResult",
    "can_transition",
    "guard_statuses",
    "milestone_for",
    "next_statuses",
]
