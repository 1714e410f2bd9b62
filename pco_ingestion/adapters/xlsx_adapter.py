"""
XLSX source adapter for supplier price lists.

Supports flexible layout:
  - sheet by index (0-based) or name
  - header row by index or auto-detect (scans the first rows for
    price-list-like column names, skipping title and logo rows)
  - skip_rows before header
  - normalizes cell values (strip, blank -> empty string, whole floats -> int)

Auto-detect picks the first row containing at least 2 of: product, wine,
name, description, price, vintage, lwin, producer, region, case, pack,
currency, size, format.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any, Iterator

import openpyxl

from pco_ingestion.adapters.base import SourcePreview
from pco_ingestion.adapters.csv_adapter import normalize_headers

_HEADER_KEYWORDS = frozenset({
    "product", "product name", "wine", "wine name", "name", "description",
    "price", "in bond", "in-bond", "ib price", "cost", "unit price",
    "vintage", "year", "lwin", "producer", "domaine", "chateau",
    "region", "appellation", "country",
    "case", "case size", "case config", "pack", "pack size",
    "currency", "ccy", "size", "bottle size", "format",
})

_MAX_HEADER_SEARCH = 15
_MIN_KEYWORDS = 2
_MAX_COLUMNS = 50


def _cell_value(row: Any, col_idx: int) -> Any:
    """Get cell value from openpyxl row (0-based column index)."""
    if col_idx >= len(row):
        return ""
    v = row[col_idx].value
    if v is None:
        return ""
    if isinstance(v, bool):
        return str(v)
    if isinstance(v, float):
        return int(v) if v.is_integer() else v
    if isinstance(v, int):
        return v
    return str(v).strip()


def _row_to_keywords(row: Any) -> set[str]:
    """Normalized header keywords found in a row."""
    keywords: set[str] = set()
    for c in range(min(len(row), _MAX_COLUMNS)):
        v = _cell_value(row, c)
        if not isinstance(v, str) or not v:
            continue
        v_lower = re.sub(r"\s+", " ", v.lower())
        for kw in _HEADER_KEYWORDS:
            if kw == v_lower or kw in v_lower.split(" ") or (len(kw) > 3 and kw in v_lower):
                keywords.add(kw)
    return keywords


def _detect_header_row(rows: list) -> int:
    """0-based index of the first row that looks like a price list header."""
    for i, row in enumerate(rows[:_MAX_HEADER_SEARCH]):
        if len(_row_to_keywords(row)) >= _MIN_KEYWORDS:
            return i
    return 0


def _column_count(row: Any) -> int:
    """Index after the last non-empty header cell."""
    n = 0
    for c in range(min(len(row), _MAX_COLUMNS)):
        if _cell_value(row, c) != "":
            n = c + 1
    return max(n, 1)


class XlsxSourceAdapter:
    """
    Read .xlsx price lists as one dict per row, keyed by the header row.

    source_options:
      sheet: 0-based sheet index (int) or sheet name (str). Default: active sheet.
      skip_rows: rows to skip at the top of the sheet. Default: 0.
      header_row: 0-based row index (after skip_rows) of the header; used
        when auto_detect_header is false.
      auto_detect_header: if true (default), scan the first 15 rows for a header.
    """

    def read(self, source_path: Path, options: dict[str, Any]) -> Iterator[dict[str, Any]]:
        wb = openpyxl.load_workbook(source_path, read_only=True, data_only=True)
        try:
            rows = self._load_rows(wb, options, max_row=100_000)
            if not rows:
                return
            hi, headers = self._headers(rows, options)
            ncols = len(headers)
            for row in rows[hi + 1:]:
                vals = [_cell_value(row, c) for c in range(ncols)]
                if not any(v != "" for v in vals):
                    continue
                yield dict(zip(headers, vals))
        finally:
            wb.close()

    def preview(self, source_path: Path, options: dict[str, Any]) -> SourcePreview:
        wb = openpyxl.load_workbook(source_path, read_only=True, data_only=True)
        try:
            rows = self._load_rows(wb, options, max_row=100_000)
            if not rows:
                return SourcePreview(row_count=0, columns=(), sample_rows=())
            hi, headers = self._headers(rows, options)
            ncols = len(headers)
            sample: list[dict[str, Any]] = []
            count = 0
            for row in rows[hi + 1:]:
                vals = [_cell_value(row, c) for c in range(ncols)]
                if not any(v != "" for v in vals):
                    continue
                count += 1
                if len(sample) < 5:
                    sample.append(dict(zip(headers, vals)))
            return SourcePreview(
                row_count=count,
                columns=tuple(headers),
                sample_rows=tuple(sample),
            )
        finally:
            wb.close()

    def _load_rows(self, wb: Any, options: dict[str, Any], max_row: int) -> list:
        sheet = self._get_sheet(wb, options)
        skip_rows = int(options.get("skip_rows", 0))
        return list(sheet.iter_rows(min_row=1 + skip_rows, max_row=max_row))

    def _headers(self, rows: list, options: dict[str, Any]) -> tuple[int, list[str]]:
        header_row_idx = options.get("header_row")
        auto_detect = options.get("auto_detect_header", True)
        if header_row_idx is not None and not auto_detect:
            hi = int(header_row_idx)
        elif auto_detect:
            hi = _detect_header_row(rows)
        else:
            hi = 0
        header_row = rows[hi]
        ncols = _column_count(header_row)
        raw = [_cell_value(header_row, c) for c in range(ncols)]
        return hi, normalize_headers(raw)

    def _get_sheet(self, wb: Any, options: dict[str, Any]) -> Any:
        sheet_ref = options.get("sheet")
        if sheet_ref is None:
            return wb.active
        if isinstance(sheet_ref, int):
            return wb.worksheets[sheet_ref]
        return wb[sheet_ref]
