"""
Private Client Order Configuration (``pco_modules.private_client_orders.config``).

Responsibility
--------------
Module-level settings of the order state machine: the rate configuration
stamped on new orders, the distributor quote defaults, the payment
reference fallback code, and the status sets used by stock receipt and
partner cancellation.

Architecture position
---------------------
**Modules layer** -- configuration schema only.  Built from
``pco_config.get_active_settings()`` by ``from_settings``; no component
reads YAML directly.

Invariants enforced
-------------------
* Percentages and rates are ``Decimal`` and non-negative; ``usd_to_aed``
  is positive.
* ``payment_reference_fallback_code`` is non-blank.
* Partner-cancellable statuses are all pre-approval statuses.

Failure modes
-------------
* ``ValueError`` at construction if any constraint is violated.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Self

from pco_config import PcoSettings, get_active_settings
from pco_engines import DistributorMargin, MarginType, OrderRates
from pco_kernel.domain.dtos import OrderStatus, StockStatus
from pco_kernel.logging_config import get_logger

logger = get_logger("modules.private_client_orders.config")

_PRE_APPROVAL = frozenset({
    OrderStatus.DRAFT,
    OrderStatus.SUBMITTED,
    OrderStatus.UNDER_CC_REVIEW,
    OrderStatus.REVISION_REQUESTED,
})


@dataclass
class QuoteDefaults:
    """Starting values of the per-order distributor quote.

    Contract: percentages in percent (20 means 20%).
    Non-goals: does not quote -- ``pco_engines.quote_order_lines`` does.
    """

    transfer_cost_usd: Decimal = Decimal("200")
    import_tax_percent: Decimal = Decimal("20")
    margin_type: MarginType = MarginType.PERCENTAGE
    margin_value: Decimal = Decimal("15")
    vat_percent: Decimal = Decimal("5")

    def __post_init__(self):
        for name in ("transfer_cost_usd", "import_tax_percent", "margin_value", "vat_percent"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} cannot be negative")

    @property
    def margin(self) -> DistributorMargin:
        return DistributorMargin(type=self.margin_type, value=self.margin_value)


@dataclass
class PrivateClientOrderConfig:
    """Settings of ``PrivateClientOrderService``.

    Contract: mutable dataclass with validated defaults.
    Guarantees: ``default_rates`` always yields a valid ``OrderRates``.
    """

    duty_percent: Decimal = Decimal("20")
    vat_percent: Decimal = Decimal("5")
    logistics_percent: Decimal = Decimal("0.75")
    usd_to_aed: Decimal = Decimal("3.67")
    payment_reference_fallback_code: str = "ORD"
    stock_receipt_eligible_statuses: frozenset[StockStatus] = frozenset({
        StockStatus.CONFIRMED,
        StockStatus.AT_CC_BONDED,
        StockStatus.IN_TRANSIT_TO_DISTRIBUTOR,
    })
    partner_cancellable_statuses: frozenset[OrderStatus] = _PRE_APPROVAL
    quote: QuoteDefaults = field(default_factory=QuoteDefaults)

    def __post_init__(self):
        for name in ("duty_percent", "vat_percent", "logistics_percent"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} cannot be negative")
        if self.usd_to_aed <= 0:
            raise ValueError("usd_to_aed must be positive")
        if not self.payment_reference_fallback_code.strip():
            raise ValueError("payment_reference_fallback_code cannot be blank")
        if not self.partner_cancellable_statuses <= _PRE_APPROVAL:
            raise ValueError("partners may only cancel orders before approval")
        logger.debug(
            "pco_config_initialized",
            extra={
                "duty_percent": str(self.duty_percent),
                "vat_percent": str(self.vat_percent),
                "logistics_percent": str(self.logistics_percent),
                "usd_to_aed": str(self.usd_to_aed),
            },
        )

    @property
    def default_rates(self) -> OrderRates:
        return OrderRates(
            duty_percent=self.duty_percent,
            vat_percent=self.vat_percent,
            logistics_percent=self.logistics_percent,
        )

    @classmethod
    def from_settings(cls, settings: PcoSettings | None = None) -> Self:
        settings = settings or get_active_settings()
        pricing = settings.order_pricing
        quote = settings.b2b_quote
        workflow = settings.workflow
        return cls(
            duty_percent=pricing.duty_percent,
            vat_percent=pricing.vat_percent,
            logistics_percent=pricing.logistics_percent,
            usd_to_aed=pricing.usd_to_aed,
            payment_reference_fallback_code=workflow.payment_reference_fallback_code,
            stock_receipt_eligible_statuses=frozenset(
                StockStatus(s) for s in workflow.stock_receipt_eligible_statuses
            ),
            partner_cancellable_statuses=frozenset(
                OrderStatus(s) for s in workflow.partner_cancellable_statuses
            ),
            quote=QuoteDefaults(
                transfer_cost_usd=quote.transfer_cost_usd,
                import_tax_percent=quote.import_tax_percent,
                margin_type=MarginType(quote.margin_type),
                margin_value=quote.margin_value,
                vat_percent=quote.vat_percent,
            ),
        )
