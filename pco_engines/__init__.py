"""
Module: pco_engines
Responsibility:
    Package entrypoint that re-exports the public symbols of the pure
    pricing engines.  This is the canonical import surface for higher
    layers (pco_services, pco_modules).

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import pco_kernel logging (and sibling engine modules).
    MUST NOT import pco_services or pco_modules.

Invariants enforced:
    - Purity: engines never read a clock; callers pass every input.
    - Decimal-only arithmetic: monetary amounts are ``Decimal``; floats
      are converted at the parsing boundary.
    - Determinism: identical inputs always produce identical outputs.

Audit relevance:
    Engine invocations are traced via ``@traced_engine`` (see
    ``pco_engines.tracer``), emitting PRICING_ENGINE_TRACE records.
"""

from pco_engines.b2b_quote import (
    B2BQuote,
    DistributorMargin,
    LineQuote,
    OrderQuote,
    QuoteLine,
    calculate_b2b_quote,
    quote_order_lines,
)
from pco_engines.bulk_pricing import (
    BulkPrice,
    CalculationVariables,
    MarginType,
    apply_company_margin,
    convert_to_usd,
    price_bulk_row,
)
from pco_engines.order_totals import (
    OrderRates,
    OrderTotals,
    compute_order_totals,
    line_total,
)
from pco_engines.parsing import clean_text, parse_case_config, parse_price
from pco_engines.vintage import VintageExtraction, extract_vintage

__all__ = [
    "B2BQuote",
    "BulkPrice",
    "CalculationVariables",
    "DistributorMargin",
    "LineQuote",
    "MarginType",
    "OrderQuote",
    "OrderRates",
    "OrderTotals",
    "QuoteLine",
    "VintageExtraction",
    "apply_company_margin",
    "calculate_b2b_quote",
    "clean_text",
    "compute_order_totals",
    "convert_to_usd",
    "extract_vintage",
    "line_total",
    "parse_case_config",
    "parse_price",
    "price_bulk_row",
    "quote_order_lines",
]
