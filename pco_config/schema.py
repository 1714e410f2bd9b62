"""
Settings schema (``pco_config.schema``).

Typed, frozen view of ``defaults.yaml``.  The loader parses YAML into these
types; services and modules receive them through
``pco_config.get_active_settings()`` and translate them into their own
config objects (``PrivateClientOrderConfig``, ``CalculationVariables``).

This module deliberately knows nothing about engines or modules: it holds
plain values only.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any


@dataclass(frozen=True)
class OrderPricingDefaults:
    """Rate configuration stamped on every new order."""

    duty_percent: Decimal = Decimal("20")
    vat_percent: Decimal = Decimal("5")
    logistics_percent: Decimal = Decimal("0.75")
    usd_to_aed: Decimal = Decimal("3.67")


@dataclass(frozen=True)
class B2BQuoteDefaults:
    """Starting values of the distributor quote calculator."""

    transfer_cost_usd: Decimal = Decimal("200")
    import_tax_percent: Decimal = Decimal("20")
    margin_type: str = "percentage"
    margin_value: Decimal = Decimal("15")
    vat_percent: Decimal = Decimal("5")


@dataclass(frozen=True)
class BulkPricingDefaults:
    """Calculation variables a new bulk pricing session starts from."""

    input_currency: str = "GBP"
    gbp_to_usd: Decimal = Decimal("1.27")
    eur_to_usd: Decimal = Decimal("1.08")
    usd_to_aed: Decimal = Decimal("3.67")
    margin_type: str = "percentage"
    margin_percent: Decimal = Decimal("5")
    margin_absolute: Decimal = Decimal("0")
    freight_per_bottle: Decimal = Decimal("2")
    default_case_config: int = 6
    sales_advisor_margin_percent: Decimal = Decimal("10")
    import_duty_percent: Decimal = Decimal("50")
    local_costs: Decimal = Decimal("0")
    vat_percent: Decimal = Decimal("5")

    def as_variables(self) -> dict[str, Any]:
        """Field dict in the shape ``CalculationVariables.from_dict`` accepts."""
        return {
            name: str(value) if isinstance(value, Decimal) else value
            for name, value in self.__dict__.items()
        }


@dataclass(frozen=True)
class WorkflowDefaults:
    payment_reference_fallback_code: str = "ORD"
    stock_receipt_eligible_statuses: tuple[str, ...] = (
        "confirmed",
        "at_cc_bonded",
        "in_transit_to_distributor",
    )
    partner_cancellable_statuses: tuple[str, ...] = (
        "draft",
        "submitted",
        "under_cc_review",
        "revision_requested",
    )


@dataclass(frozen=True)
class PcoSettings:
    """Root settings object.

    ``checksum`` identifies the parsed source so a trace can tie behaviour
    back to the exact file that configured it.
    """

    version: int = 1
    order_pricing: OrderPricingDefaults = field(default_factory=OrderPricingDefaults)
    b2b_quote: B2BQuoteDefaults = field(default_factory=B2BQuoteDefaults)
    bulk_pricing: BulkPricingDefaults = field(default_factory=BulkPricingDefaults)
    workflow: WorkflowDefaults = field(default_factory=WorkflowDefaults)
    checksum: str = ""
