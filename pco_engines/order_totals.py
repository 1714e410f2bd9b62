"""
pco_engines.order_totals -- Aggregate totals of a private client order.

Responsibility:
    Derive an order's commercial totals from its line items and its rate
    configuration.  Totals are never authoritative on their own: the order
    module recomputes them with ``compute_order_totals`` whenever items or
    rates change, inside the same store transaction.

        subtotal  = sum(line_total)
        duty      = subtotal * duty% / 100
        vat       = (subtotal + duty) * vat% / 100
        logistics = subtotal * logistics% / 100
        total     = subtotal + duty + vat + logistics

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - ``subtotal + duty + vat + logistics == total`` exactly (Decimal).
    - ``line_total == quantity * unit_price``.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol

from pco_engines.tracer import traced_engine

ZERO = Decimal("0")
HUNDRED = Decimal("100")


class PricedLine(Protocol):
    quantity: int
    line_total_usd: Decimal


@dataclass(frozen=True)
class OrderRates:
    """Per-order rate configuration in percent (20 means 20%)."""

    duty_percent: Decimal = Decimal("20")
    vat_percent: Decimal = Decimal("5")
    logistics_percent: Decimal = Decimal("0.75")

    def __post_init__(self) -> None:
        for name in ("duty_percent", "vat_percent", "logistics_percent"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} cannot be negative")


@dataclass(frozen=True)
class OrderTotals:
    item_count: int
    case_count: int
    subtotal_usd: Decimal
    duty_usd: Decimal
    vat_usd: Decimal
    logistics_usd: Decimal
    total_usd: Decimal


def line_total(quantity: int, unit_price_usd: Decimal) -> Decimal:
    """Line total of ``quantity`` cases at ``unit_price_usd`` per case."""
    if quantity <= 0:
        raise ValueError(f"quantity must be positive, got {quantity}")
    if unit_price_usd < 0:
        raise ValueError("unit_price_usd cannot be negative")
    return Decimal(quantity) * unit_price_usd


@traced_engine("order_totals", "1.0", fingerprint_fields=("rates",))
def compute_order_totals(*, items: Iterable[PricedLine], rates: OrderRates) -> OrderTotals:
    item_list = list(items)
    subtotal = sum((i.line_total_usd for i in item_list), ZERO)
    duty = subtotal * rates.duty_percent / HUNDRED
    vat = (subtotal + duty) * rates.vat_percent / HUNDRED
    logistics = subtotal * rates.logistics_percent / HUNDRED
    return OrderTotals(
        item_count=len(item_list),
        case_count=sum(i.quantity for i in item_list),
        subtotal_usd=subtotal,
        duty_usd=duty,
        vat_usd=vat,
        logistics_usd=logistics,
        total_usd=subtotal + duty + vat + logistics,
    )
