"""
OrderNumberGenerator -- ``PCO-<YYYY>-<NNNNN>`` order numbers.

Responsibility:
    Allocates the next human-readable order number for the current
    calendar year.  The sequence is scoped per year and derived from the
    highest existing number with that year's prefix; crossing into a new
    year restarts at 00001.

Architecture position:
    Kernel > Services.  Must be called inside the store transaction that
    inserts the order; the store's unique constraint on ``order_number``
    rejects a number allocated concurrently by another writer.
"""

from __future__ import annotations

import re

from pco_kernel.domain.clock import Clock, SystemClock
from pco_kernel.logging_config import get_logger
from pco_kernel.store.base import OrderStore

logger = get_logger("services.order_numbers")

ORDER_NUMBER_PREFIX = "PCO"
SEQUENCE_WIDTH = 5

_ORDER_NUMBER_RE = re.compile(r"^PCO-(\d{4})-(\d+)$")


def format_order_number(year: int, sequence: int) -> str:
    return f"{ORDER_NUMBER_PREFIX}-{year:04d}-{sequence:0{SEQUENCE_WIDTH}d}"


def parse_order_number(order_number: str) -> tuple[int, int]:
    """Return ``(year, sequence)``; raises ValueError on a malformed number."""
    match = _ORDER_NUMBER_RE.match(order_number)
    if match is None:
        raise ValueError(f"Malformed order number: {order_number!r}")
    return int(match.group(1)), int(match.group(2))


class OrderNumberGenerator:
    """Derives the next order number from the store's current maximum."""

    def __init__(self, store: OrderStore, clock: Clock | None = None):
        self._store = store
        self._clock = clock or SystemClock()

    def next_number(self) -> str:
        year = self._clock.now().year
        prefix = f"{ORDER_NUMBER_PREFIX}-{year:04d}-"
        current = self._store.max_order_number(prefix)
        sequence = parse_order_number(current)[1] + 1 if current else 1
        number = format_order_number(year, sequence)
        logger.debug(
            "order_number_allocated",
            extra={"order_number": number, "year": year, "sequence": sequence},
        )
        return number
