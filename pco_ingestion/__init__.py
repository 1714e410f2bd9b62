"""
pco_ingestion -- file readers for uploaded pricing sheets.

Turns a CSV or XLSX price list into one dict per row keyed by the sheet's
header cells.  No database access and no pricing logic: the bulk pricing
session stores the rows verbatim and maps columns afterwards.
"""

from pco_ingestion.adapters import (
    CsvSourceAdapter,
    SourceAdapter,
    SourcePreview,
    XlsxSourceAdapter,
    adapter_for,
)

__all__ = [
    "CsvSourceAdapter",
    "SourceAdapter",
    "SourcePreview",
    "XlsxSourceAdapter",
    "adapter_for",
]
