"""
XLSX export of a calculated pricing session.

Prices are kept at full precision everywhere else; this is the only place
they are rounded (half-up to two decimals, cents for USD and fils for AED).
"""

from __future__ import annotations

from collections.abc import Sequence
from decimal import ROUND_HALF_UP, Decimal
from pathlib import Path

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter

from pco_kernel.domain.dtos import PricingLineItem, PricingSession
from pco_kernel.logging_config import get_logger

logger = get_logger("modules.bulk_pricing.export")

CENT = Decimal("0.01")

EXPORT_COLUMNS: tuple[tuple[str, str], ...] = (
    ("Product", "product_name"),
    ("Producer", "producer"),
    ("Vintage", "vintage"),
    ("Region", "region"),
    ("LWIN", "lwin"),
    ("Bottle Size", "bottle_size"),
    ("Case Config", "case_config"),
    ("Source Price", "source_price"),
    ("Source Currency", "source_currency"),
    ("In-Bond Case (USD)", "in_bond_case_usd"),
    ("In-Bond Bottle (USD)", "in_bond_bottle_usd"),
    ("In-Bond Case (AED)", "in_bond_case_aed"),
    ("In-Bond Bottle (AED)", "in_bond_bottle_aed"),
    ("Delivered Case (USD)", "delivered_case_usd"),
    ("Delivered Bottle (USD)", "delivered_bottle_usd"),
    ("Delivered Case (AED)", "delivered_case_aed"),
    ("Delivered Bottle (AED)", "delivered_bottle_aed"),
)

_HEADER_FILL = PatternFill(start_color="366092", end_color="366092", fill_type="solid")
_HEADER_FONT = Font(bold=True, color="FFFFFF")
_MAX_WIDTH = 50


def round_price(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def export_row(item: PricingLineItem) -> list[object]:
    """Cell values of one item, prices rounded for presentation."""
    values: list[object] = []
    for _, attr in EXPORT_COLUMNS:
        value = getattr(item, attr)
        if isinstance(value, Decimal):
            values.append(float(round_price(value)))
        elif value is None:
            values.append("")
        else:
            values.append(value)
    return values


def export_session_xlsx(
    session: PricingSession,
    items: Sequence[PricingLineItem],
    target: Path,
) -> Path:
    """Write ``items`` to ``target`` as a single-sheet workbook."""
    wb = Workbook()
    ws = wb.active
    ws.title = (session.name or "Pricing")[:31]

    ws.append([header for header, _ in EXPORT_COLUMNS])
    for cell in ws[1]:
        cell.fill = _HEADER_FILL
        cell.font = _HEADER_FONT
        cell.alignment = Alignment(horizontal="center", vertical="center")

    for item in sorted(items, key=lambda i: i.row_index):
        ws.append(export_row(item))

    for column in ws.columns:
        longest = max(len(str(cell.value)) for cell in column if cell.value is not None)
        ws.column_dimensions[get_column_letter(column[0].column)].width = min(longest + 2, _MAX_WIDTH)
    ws.freeze_panes = "A2"

    target = Path(target)
    wb.save(target)
    logger.info(
        "pricing_session_exported",
        extra={"session_id": str(session.id), "item_count": len(items), "target": target.name},
    )
    return target
