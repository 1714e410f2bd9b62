"""
Bulk Pricing Module (``pco_modules.bulk_pricing``).

Admin tool that reprices a supplier price list: upload rows, map columns,
configure rates and margins, then calculate in-bond and delivered prices
per case and per bottle in USD and AED.
"""

from pco_modules.bulk_pricing.export import EXPORT_COLUMNS, export_session_xlsx, round_price
from pco_modules.bulk_pricing.mapping import (
    REQUIRED_FIELDS,
    MappedField,
    MappedRow,
    map_row,
    normalize_mapping,
    suggest_column_mapping,
)
from pco_modules.bulk_pricing.service import BulkPricingService, CalculationSummary, default_variables

__all__ = [
    "BulkPricingService",
    "CalculationSummary",
    "EXPORT_COLUMNS",
    "MappedField",
    "MappedRow",
    "REQUIRED_FIELDS",
    "default_variables",
    "export_session_xlsx",
    "map_row",
    "normalize_mapping",
    "round_price",
    "suggest_column_mapping",
]
