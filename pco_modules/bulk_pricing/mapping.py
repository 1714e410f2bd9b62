"""
Column mapping for uploaded price lists (``pco_modules.bulk_pricing.mapping``).

A column mapping says which spreadsheet column feeds which semantic field
(``product_name`` -> ``"Wine Name"``).  This module validates mappings,
suggests one from the header row, and turns one raw row into a
``MappedRow`` ready for ``pco_engines.price_bulk_row``.

Rows without a product name or a positive price are skipped (``None``),
never rejected: a price list routinely carries section headers, totals
and blank spacer rows.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, assert_never

from pco_engines import CalculationVariables, clean_text, extract_vintage, parse_case_config, parse_price


class MappedField(str, Enum):
    PRODUCT_NAME = "product_name"
    UK_IN_BOND_PRICE = "uk_in_bond_price"
    VINTAGE = "vintage"
    CURRENCY = "currency"
    CASE_CONFIG = "case_config"
    BOTTLE_SIZE = "bottle_size"
    LWIN = "lwin"
    PRODUCER = "producer"
    REGION = "region"


REQUIRED_FIELDS: tuple[MappedField, ...] = (MappedField.PRODUCT_NAME, MappedField.UK_IN_BOND_PRICE)

# Keys used by the upload screen's saved mappings.
_ALIASES: dict[str, MappedField] = {
    "productName": MappedField.PRODUCT_NAME,
    "ukInBondPrice": MappedField.UK_IN_BOND_PRICE,
    "caseConfig": MappedField.CASE_CONFIG,
    "bottleSize": MappedField.BOTTLE_SIZE,
}


@dataclass(frozen=True)
class MappedRow:
    row_index: int
    product_name: str
    source_price: Decimal
    currency: str
    case_config: int
    vintage: str | None = None
    producer: str | None = None
    region: str | None = None
    lwin: str | None = None
    bottle_size: str | None = None


def normalize_mapping(mapping: Mapping[str, Any]) -> dict[str, str]:
    """Canonical field names; blank columns dropped.  Raises ValueError on unknown fields."""
    normalized: dict[str, str] = {}
    for key, column in mapping.items():
        field = _ALIASES.get(key)
        if field is None:
            try:
                field = MappedField(key)
            except ValueError:
                raise ValueError(f"Unknown mapping field: {key}") from None
        text = clean_text(column)
        if text:
            normalized[field.value] = text
    return normalized


def missing_required(mapping: Mapping[str, str]) -> list[str]:
    return [f.value for f in REQUIRED_FIELDS if not mapping.get(f.value)]


def unknown_columns(mapping: Mapping[str, str], columns: Iterable[str]) -> list[str]:
    known = set(columns)
    return sorted({c for c in mapping.values() if c not in known})


def _matches(field: MappedField, lower: str) -> bool:
    match field:
        case MappedField.PRODUCT_NAME:
            # "Winery" and "Producer Name" belong to the producer.
            if _matches(MappedField.PRODUCER, lower):
                return False
            return any(w in lower for w in ("wine", "name", "product", "description"))
        case MappedField.VINTAGE:
            return "vintage" in lower or "year" in lower
        case MappedField.UK_IN_BOND_PRICE:
            return any(w in lower for w in ("price", "cost", "in-bond", "inbond"))
        case MappedField.CURRENCY:
            return "currency" in lower or lower == "ccy"
        case MappedField.CASE_CONFIG:
            return (
                ("case" in lower and any(w in lower for w in ("size", "qty", "config")))
                or "pack" in lower
                or "format" in lower
                or lower in ("qty", "quantity")
                or "btl" in lower
                or "bottles" in lower
            )
        case MappedField.BOTTLE_SIZE:
            return "bottle" in lower and "size" in lower
        case MappedField.LWIN:
            return "lwin" in lower
        case MappedField.PRODUCER:
            return any(w in lower for w in ("producer", "winery", "domaine", "chateau"))
        case MappedField.REGION:
            return "region" in lower or "appellation" in lower
        case _:
            assert_never(field)


def suggest_column_mapping(headers: Iterable[str]) -> dict[str, str]:
    """First header matching each field's keywords, in header order."""
    suggestion: dict[str, str] = {}
    for header in headers:
        lower = header.lower().strip()
        if not lower:
            continue
        for field in MappedField:
            if field.value not in suggestion and _matches(field, lower):
                suggestion[field.value] = header
    return suggestion


def map_row(
    row_index: int,
    row: Mapping[str, Any],
    mapping: Mapping[str, str],
    variables: CalculationVariables,
) -> MappedRow | None:
    """Semantic view of one raw row, or None when the row cannot be priced."""

    def cell(field: MappedField) -> Any:
        column = mapping.get(field.value)
        return row.get(column) if column else None

    name = clean_text(cell(MappedField.PRODUCT_NAME))
    price = parse_price(cell(MappedField.UK_IN_BOND_PRICE))
    if not name or price is None:
        return None

    if MappedField.VINTAGE.value in mapping:
        vintage = clean_text(cell(MappedField.VINTAGE))
    else:
        vintage, name = extract_vintage(name)

    currency = clean_text(cell(MappedField.CURRENCY))
    return MappedRow(
        row_index=row_index,
        product_name=name,
        source_price=price,
        currency=(currency or variables.input_currency).upper(),
        case_config=parse_case_config(cell(MappedField.CASE_CONFIG), variables.default_case_config),
        vintage=vintage,
        producer=clean_text(cell(MappedField.PRODUCER)),
        region=clean_text(cell(MappedField.REGION)),
        lwin=clean_text(cell(MappedField.LWIN)),
        bottle_size=clean_text(cell(MappedField.BOTTLE_SIZE)),
    )
