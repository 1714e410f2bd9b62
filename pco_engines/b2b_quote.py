"""
pco_engines.b2b_quote -- Distributor-facing B2B quote for an order.

Responsibility:
    Turn an order's in-bond value into the customer quote a distributor
    presents.  Import tax and the transfer cost are both added to the
    in-bond base, the distributor margin is applied to the resulting landed
    price, and VAT is charged on the margin-inclusive price:

        import_tax   = in_bond * tax% / 100
        landed       = in_bond + import_tax + transfer
        after_margin = landed / (1 - m% / 100)   (percentage margin)
                     = landed + m                (fixed margin)
        vat          = after_margin * vat% / 100
        customer     = after_margin + vat

    Worked example: in_bond 5000, transfer 200, tax 20%, margin 15%
    -> import_tax 1000, landed 6200, after_margin 7294.1176...,
    vat 364.7059..., customer 7658.8235...

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - This composition is distinct from ``pco_engines.bulk_pricing`` and is
      kept as its own function.
    - A percentage margin whose divisor is not positive leaves the landed
      price unchanged.
    - Per-line quoting spreads the transfer cost evenly per case across the
      whole order (``transfer / total_quantity``).
    - No rounding.

Failure modes:
    - ValueError from ``quote_order_lines`` when any line has a
      non-positive quantity.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal

from pco_engines.bulk_pricing import MarginType
from pco_engines.tracer import traced_engine

ZERO = Decimal("0")
ONE = Decimal("1")
HUNDRED = Decimal("100")

DEFAULT_TRANSFER_COST_USD = Decimal("200")
DEFAULT_IMPORT_TAX_PERCENT = Decimal("20")
DEFAULT_MARGIN_PERCENT = Decimal("15")
DEFAULT_VAT_PERCENT = Decimal("5")


@dataclass(frozen=True)
class DistributorMargin:
    type: MarginType = MarginType.PERCENTAGE
    value: Decimal = DEFAULT_MARGIN_PERCENT

    def apply(self, landed: Decimal) -> Decimal:
        if self.type is MarginType.PERCENTAGE:
            divisor = ONE - self.value / HUNDRED
            return landed / divisor if divisor > 0 else landed
        return landed + self.value


@dataclass(frozen=True)
class B2BQuote:
    """Quote breakdown; amounts are totals for whatever base was quoted."""

    in_bond_price: Decimal
    import_tax: Decimal
    transfer_cost: Decimal
    landed_price: Decimal
    distributor_margin: Decimal
    price_after_margin: Decimal
    vat: Decimal
    customer_quote_price: Decimal


@dataclass(frozen=True)
class QuoteLine:
    """An order line to quote; ``margin`` overrides the order-level margin."""

    quantity: int
    line_total_usd: Decimal
    margin: DistributorMargin | None = None


@dataclass(frozen=True)
class LineQuote:
    """Per-case figures of one line (multiply by ``quantity`` for the line)."""

    quantity: int
    per_case: B2BQuote


@dataclass(frozen=True)
class OrderQuote:
    lines: tuple[LineQuote, ...]
    totals: B2BQuote


def _quote(
    in_bond: Decimal,
    transfer: Decimal,
    import_tax_percent: Decimal,
    margin: DistributorMargin,
    vat_percent: Decimal,
) -> B2BQuote:
    import_tax = in_bond * import_tax_percent / HUNDRED
    landed = in_bond + import_tax + transfer
    after_margin = margin.apply(landed)
    vat = after_margin * vat_percent / HUNDRED
    return B2BQuote(
        in_bond_price=in_bond,
        import_tax=import_tax,
        transfer_cost=transfer,
        landed_price=landed,
        distributor_margin=after_margin - landed,
        price_after_margin=after_margin,
        vat=vat,
        customer_quote_price=after_margin + vat,
    )


@traced_engine(
    "b2b_quote",
    "1.0",
    fingerprint_fields=("in_bond_usd", "transfer_cost_usd", "import_tax_percent", "margin"),
)
def calculate_b2b_quote(
    *,
    in_bond_usd: Decimal,
    transfer_cost_usd: Decimal = DEFAULT_TRANSFER_COST_USD,
    import_tax_percent: Decimal = DEFAULT_IMPORT_TAX_PERCENT,
    margin: DistributorMargin | None = None,
    vat_percent: Decimal = DEFAULT_VAT_PERCENT,
) -> B2BQuote:
    """Quote an order's aggregate in-bond value."""
    return _quote(
        in_bond_usd,
        transfer_cost_usd,
        import_tax_percent,
        margin or DistributorMargin(),
        vat_percent,
    )


@traced_engine(
    "b2b_quote",
    "1.0",
    fingerprint_fields=("lines", "transfer_cost_usd", "import_tax_percent", "margin"),
)
def quote_order_lines(
    *,
    lines: Sequence[QuoteLine],
    transfer_cost_usd: Decimal = DEFAULT_TRANSFER_COST_USD,
    import_tax_percent: Decimal = DEFAULT_IMPORT_TAX_PERCENT,
    margin: DistributorMargin | None = None,
    vat_percent: Decimal = DEFAULT_VAT_PERCENT,
) -> OrderQuote:
    """Quote each line per case, then sum ``per_case * quantity`` into totals.

    Lines may carry their own margin; the rest use ``margin``.  An empty
    order falls back to the aggregate quote of a zero in-bond value.
    """
    default_margin = margin or DistributorMargin()
    if not lines:
        empty = _quote(ZERO, transfer_cost_usd, import_tax_percent, default_margin, vat_percent)
        return OrderQuote(lines=(), totals=empty)

    for line in lines:
        if line.quantity <= 0:
            raise ValueError(f"Line quantity must be positive, got {line.quantity}")

    total_quantity = sum(line.quantity for line in lines)
    transfer_per_case = transfer_cost_usd / Decimal(total_quantity)

    quoted: list[LineQuote] = []
    sums = dict.fromkeys(
        ("in_bond", "import_tax", "transfer", "margin", "vat", "customer"), ZERO
    )
    for line in lines:
        qty = Decimal(line.quantity)
        per_case = _quote(
            line.line_total_usd / qty,
            transfer_per_case,
            import_tax_percent,
            line.margin or default_margin,
            vat_percent,
        )
        quoted.append(LineQuote(quantity=line.quantity, per_case=per_case))
        sums["in_bond"] += per_case.in_bond_price * qty
        sums["import_tax"] += per_case.import_tax * qty
        sums["transfer"] += per_case.transfer_cost * qty
        sums["margin"] += per_case.distributor_margin * qty
        sums["vat"] += per_case.vat * qty
        sums["customer"] += per_case.customer_quote_price * qty

    landed = sums["in_bond"] + sums["import_tax"] + sums["transfer"]
    totals = B2BQuote(
        in_bond_price=sums["in_bond"],
        import_tax=sums["import_tax"],
        transfer_cost=sums["transfer"],
        landed_price=landed,
        distributor_margin=sums["margin"],
        price_after_margin=landed + sums["margin"],
        vat=sums["vat"],
        customer_quote_price=sums["customer"],
    )
    return OrderQuote(lines=tuple(quoted), totals=totals)
