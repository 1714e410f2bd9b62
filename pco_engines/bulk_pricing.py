"""
pco_engines.bulk_pricing -- Catalogue repricing into B2B and D2C prices.

Responsibility:
    Price one uploaded catalogue row.  The pipeline is a fixed sequence:

    B2B (UAE in-bond):
        1. source price -> USD (GBP / EUR fixed rate, identity for USD)
        2. company margin: ``price / (1 - pct/100)`` or ``price + absolute``
        3. freight: ``freight_per_bottle * case_config`` added once per case
        4. in-bond case / bottle in USD, AED = USD * usd_to_aed

    D2C (delivered), layered on the B2B case price:
        5. sales advisor margin ``* (1 + pct/100)``
        6. import duty ``* (1 + pct/100)``
        7. local costs ``+ amount``
        8. VAT ``* (1 + pct/100)``

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Consumed by ``pco_modules.bulk_pricing.service``.

Invariants enforced:
    - Step order is literal; the per-order B2B quote
      (``pco_engines.b2b_quote``) composes tax, margin and VAT differently
      and the two must not be merged.
    - A percentage margin whose divisor ``1 - pct/100`` is not positive
      (100% or more) leaves the price unchanged instead of dividing by
      zero or flipping sign.
    - No rounding: results carry full Decimal precision.  Presentation
      rounding belongs to the export layer.

Failure modes:
    - ValueError from ``CalculationVariables`` on a non-positive rate or
      case configuration, or a negative percentage / cost.
    - ValueError from ``price_bulk_row`` on a non-positive case config.
    - An unrecognised currency code is priced as USD and logged as a
      warning.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from decimal import Decimal
from enum import Enum
from typing import Any, Self

from pco_engines.tracer import traced_engine
from pco_kernel.logging_config import get_logger

logger = get_logger("engines.bulk_pricing")

ONE = Decimal("1")
HUNDRED = Decimal("100")

SUPPORTED_CURRENCIES = ("GBP", "EUR", "USD")


class MarginType(str, Enum):
    """How the company margin is applied to the USD source price."""

    PERCENTAGE = "percentage"
    FIXED = "fixed"

    @classmethod
    def _missing_(cls, value: object) -> MarginType | None:
        # Stored sessions may carry the older "absolute" spelling.
        if value == "absolute":
            return cls.FIXED
        return None


@dataclass(frozen=True)
class CalculationVariables:
    """Rate and markup configuration of a bulk pricing run.

    Contract: immutable per calculation; a session replaces the whole
    object to trigger recomputation.
    Guarantees: rates and case configuration are positive, percentages
    and costs are non-negative.
    """

    input_currency: str = "GBP"
    gbp_to_usd: Decimal = Decimal("1.27")
    eur_to_usd: Decimal = Decimal("1.08")
    usd_to_aed: Decimal = Decimal("3.67")
    margin_type: MarginType = MarginType.PERCENTAGE
    margin_percent: Decimal = Decimal("5")
    margin_absolute: Decimal = Decimal("0")
    freight_per_bottle: Decimal = Decimal("2")
    default_case_config: int = 6
    sales_advisor_margin_percent: Decimal = Decimal("10")
    import_duty_percent: Decimal = Decimal("50")
    local_costs: Decimal = Decimal("0")
    vat_percent: Decimal = Decimal("5")

    def __post_init__(self) -> None:
        if not self.input_currency or not self.input_currency.strip():
            raise ValueError("input_currency cannot be empty")
        for name in ("gbp_to_usd", "eur_to_usd", "usd_to_aed"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")
        for name in (
            "margin_percent",
            "margin_absolute",
            "freight_per_bottle",
            "sales_advisor_margin_percent",
            "import_duty_percent",
            "local_costs",
            "vat_percent",
        ):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} cannot be negative")
        if self.default_case_config <= 0:
            raise ValueError("default_case_config must be positive")

    def to_dict(self) -> dict[str, Any]:
        """JSON-safe form for persistence (Decimals as strings)."""
        out: dict[str, Any] = {}
        for key, val in asdict(self).items():
            if isinstance(val, Decimal):
                out[key] = str(val)
            elif isinstance(val, Enum):
                out[key] = val.value
            else:
                out[key] = val
        return out

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        """Inverse of ``to_dict``; absent keys take their defaults, unknown keys are rejected."""
        known = {f.name: f for f in fields(cls)}
        unknown = set(data) - set(known)
        if unknown:
            raise ValueError(f"Unknown calculation variables: {sorted(unknown)}")
        kwargs: dict[str, Any] = {}
        for key, val in data.items():
            if val is None:
                continue
            if key == "margin_type":
                kwargs[key] = MarginType(val)
            elif key == "input_currency":
                kwargs[key] = str(val).upper()
            elif key == "default_case_config":
                kwargs[key] = int(val)
            else:
                kwargs[key] = Decimal(str(val))
        return cls(**kwargs)


@dataclass(frozen=True)
class BulkPrice:
    """Calculated prices of one catalogue row (full precision)."""

    source_currency: str
    case_config: int
    price_usd: Decimal
    margined_usd: Decimal
    freight_per_case_usd: Decimal
    in_bond_case_usd: Decimal
    in_bond_bottle_usd: Decimal
    in_bond_case_aed: Decimal
    in_bond_bottle_aed: Decimal
    delivered_case_usd: Decimal
    delivered_bottle_usd: Decimal
    delivered_case_aed: Decimal
    delivered_bottle_aed: Decimal


def convert_to_usd(amount: Decimal, currency: str, variables: CalculationVariables) -> Decimal:
    """Convert a source price to USD with the session's fixed rates."""
    code = currency.strip().upper()
    if code == "GBP":
        return amount * variables.gbp_to_usd
    if code == "EUR":
        return amount * variables.eur_to_usd
    if code != "USD":
        logger.warning(
            "unknown_currency_priced_as_usd",
            extra={"currency": currency},
        )
    return amount


def apply_company_margin(price_usd: Decimal, variables: CalculationVariables) -> Decimal:
    """Back-calculated percentage margin, or an absolute uplift."""
    if variables.margin_type is MarginType.PERCENTAGE:
        divisor = ONE - variables.margin_percent / HUNDRED
        return price_usd / divisor if divisor > 0 else price_usd
    return price_usd + variables.margin_absolute


@traced_engine(
    "bulk_pricing",
    "1.0",
    fingerprint_fields=("source_price", "currency", "case_config", "variables"),
)
def price_bulk_row(
    *,
    source_price: Decimal,
    currency: str | None,
    case_config: int,
    variables: CalculationVariables,
) -> BulkPrice:
    """Run the B2B then D2C pipeline for one row.

    Args:
        source_price: Per-case price in the row's currency.
        currency: Row currency; None or blank uses ``variables.input_currency``.
        case_config: Bottles per case (already parsed).
        variables: Session configuration.
    """
    if case_config <= 0:
        raise ValueError(f"case_config must be positive, got {case_config}")

    code = (currency or "").strip().upper() or variables.input_currency
    bottles = Decimal(case_config)

    price_usd = convert_to_usd(source_price, code, variables)
    margined = apply_company_margin(price_usd, variables)
    freight = variables.freight_per_bottle * bottles

    in_bond_case = margined + freight
    in_bond_bottle = in_bond_case / bottles

    adjusted = in_bond_case * (ONE + variables.sales_advisor_margin_percent / HUNDRED)
    with_duty = adjusted * (ONE + variables.import_duty_percent / HUNDRED)
    with_local = with_duty + variables.local_costs
    delivered_case = with_local * (ONE + variables.vat_percent / HUNDRED)
    delivered_bottle = delivered_case / bottles

    rate = variables.usd_to_aed
    return BulkPrice(
        source_currency=code,
        case_config=case_config,
        price_usd=price_usd,
        margined_usd=margined,
        freight_per_case_usd=freight,
        in_bond_case_usd=in_bond_case,
        in_bond_bottle_usd=in_bond_bottle,
        in_bond_case_aed=in_bond_case * rate,
        in_bond_bottle_aed=in_bond_bottle * rate,
        delivered_case_usd=delivered_case,
        delivered_bottle_usd=delivered_bottle,
        delivered_case_aed=delivered_case * rate,
        delivered_bottle_aed=delivered_bottle * rate,
    )
