"""
pco_engines.parsing -- Spreadsheet cell coercion for pricing inputs.

Uploaded price lists arrive as loosely typed cells: prices carry currency
symbols and thousands separators, case configurations are written as
``"6x75cl"`` or ``"12 x 37.5"``.  These helpers turn such cells into the
``Decimal`` / ``int`` values the pricing engine accepts, or ``None`` when the
cell cannot price a row.

Pure functions, no logging, no I/O.
"""

from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation
from typing import Any

_NON_NUMERIC = re.compile(r"[^0-9.\-]")
_LEADING_INT = re.compile(r"^\s*(\d+)")


def parse_price(value: Any) -> Decimal | None:
    """Parse a price cell into a positive ``Decimal``.

    Strings are stripped of every character except digits, ``.`` and
    ``-`` before parsing (``"£1,250.00"`` -> ``Decimal("1250.00")``).

    Returns:
        The price, or None when the cell is empty, unparseable, NaN,
        infinite, zero or negative.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        price = value
    elif isinstance(value, int):
        price = Decimal(value)
    elif isinstance(value, float):
        price = Decimal(str(value))
    else:
        cleaned = _NON_NUMERIC.sub("", str(value))
        if not cleaned:
            return None
        try:
            price = Decimal(cleaned)
        except InvalidOperation:
            return None
    if not price.is_finite() or price <= 0:
        return None
    return price


def parse_case_config(value: Any, default: int) -> int:
    """Bottles per case from a cell such as ``6``, ``"6"`` or ``"6x75cl"``.

    Takes the leading integer of the text.  Falls back to ``default`` when
    the cell is empty, has no leading integer, or yields a value <= 0.
    """
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value if value > 0 else default
    if isinstance(value, (float, Decimal)):
        try:
            parsed = int(value)
        except (ValueError, OverflowError):
            return default
        return parsed if parsed > 0 else default
    match = _LEADING_INT.match(str(value))
    if match is None:
        return default
    parsed = int(match.group(1))
    return parsed if parsed > 0 else default


def clean_text(value: Any) -> str | None:
    """Stripped string form of a cell, None when blank."""
    if value is None:
        return None
    text = str(value).strip()
    return text or None
