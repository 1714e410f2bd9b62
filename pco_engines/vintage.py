"""
pco_engines.vintage -- Infer a vintage year from a product name.

Used by the bulk pricing session when no vintage column is mapped.  A
vintage is a four digit year in [1900, 2039] not embedded in a longer
number.  A year at the very start of the name (optionally behind an
opening bracket) wins; otherwise the last year in the name is taken.  The
year and the punctuation hugging it are removed from the returned name.

    >>> extract_vintage("Opus One 2018")
    VintageExtraction(vintage='2018', name='Opus One')
    >>> extract_vintage("2019 Screaming Eagle Cabernet")
    VintageExtraction(vintage='2019', name='Screaming Eagle Cabernet')
    >>> extract_vintage("Champagne NV")
    VintageExtraction(vintage=None, name='Champagne NV')
"""

from __future__ import annotations

import re
from typing import NamedTuple

_YEAR = r"(?:19\d{2}|20[0-3]\d)"
_YEAR_ANYWHERE = re.compile(rf"(?<!\d){_YEAR}(?!\d)")
_YEAR_LEADING = re.compile(rf"^\s*[\(\[]?({_YEAR})(?!\d)")
_WHITESPACE = re.compile(r"\s+")


class VintageExtraction(NamedTuple):
    vintage: str | None
    name: str


def extract_vintage(product_name: str) -> VintageExtraction:
    """Split ``product_name`` into ``(vintage, cleaned name)``.

    A name with no qualifying year is returned unchanged with a None
    vintage.  If stripping the year would leave nothing, the original
    name is kept.
    """
    leading = _YEAR_LEADING.match(product_name)
    if leading is not None:
        vintage = leading.group(1)
        rest = product_name[leading.end():].lstrip(" ,.-)]")
        name = _WHITESPACE.sub(" ", rest).strip()
        return VintageExtraction(vintage, name or product_name)

    matches = list(_YEAR_ANYWHERE.finditer(product_name))
    if not matches:
        return VintageExtraction(None, product_name)

    last = matches[-1]
    left = product_name[: last.start()].rstrip(" ,(-[")
    right = product_name[last.end():].lstrip(" ,)]")
    name = _WHITESPACE.sub(" ", f"{left} {right}").strip()
    return VintageExtraction(last.group(0), name or product_name)
