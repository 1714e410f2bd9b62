"""
CSV source adapter for price lists.

Uses csv.DictReader. Configurable: delimiter, encoding, skip_rows.  Handles
BOM via utf-8-sig when encoding is utf-8.  Header cells are stripped, blank
headers become ``Column_<n>`` and duplicates get a numeric suffix, so the
keys match what the XLSX adapter produces for the same sheet.  Rows whose
cells are all blank are skipped.
"""

from __future__ import annotations

import csv
from pathlib import Path
from typing import Any, Iterator

from pco_ingestion.adapters.base import SourcePreview

_SAMPLE_SIZE = 5


def _get_encoding(options: dict[str, Any]) -> str:
    enc = options.get("encoding", "utf-8")
    if enc.lower() == "utf-8":
        return "utf-8-sig"  # Strip BOM if present
    return enc


def normalize_headers(raw: list[Any]) -> list[str]:
    """Stripped, non-empty, unique header names."""
    headers: list[str] = []
    for idx, cell in enumerate(raw):
        key = " ".join(str(cell or "").split()) or f"Column_{idx + 1}"
        base, count = key, 0
        while key in headers:
            count += 1
            key = f"{base}_{count}"
        headers.append(key)
    return headers


def _rows(source_path: Path, options: dict[str, Any]) -> Iterator[list[str]]:
    encoding = _get_encoding(options)
    delimiter = options.get("delimiter", ",")
    skip_rows = int(options.get("skip_rows", 0))
    with source_path.open("r", encoding=encoding, newline="") as f:
        for _ in range(skip_rows):
            next(f, None)
        yield from csv.reader(f, delimiter=delimiter)


class CsvSourceAdapter:
    """Read CSV price lists as one dict per row. Streams; does not load entire file."""

    def read(self, source_path: Path, options: dict[str, Any]) -> Iterator[dict[str, Any]]:
        rows = _rows(source_path, options)
        first = next(rows, None)
        if first is None:
            return
        headers = normalize_headers(first)
        for row in rows:
            cells = [c.strip() for c in row]
            if not any(cells):
                continue
            cells += [""] * (len(headers) - len(cells))
            yield dict(zip(headers, cells))

    def preview(self, source_path: Path, options: dict[str, Any]) -> SourcePreview:
        encoding = _get_encoding(options)
        delimiter = options.get("delimiter", ",")
        sample: list[dict[str, Any]] = []
        count = 0
        columns: tuple[str, ...] = ()

        rows = _rows(source_path, options)
        first = next(rows, None)
        if first is not None:
            columns = tuple(normalize_headers(first))
            for row in rows:
                cells = [c.strip() for c in row]
                if not any(cells):
                    continue
                count += 1
                if len(sample) < _SAMPLE_SIZE:
                    sample.append(dict(zip(columns, cells)))

        return SourcePreview(
            row_count=count,
            columns=columns,
            sample_rows=tuple(sample),
            encoding=encoding,
            detected_delimiter=delimiter,
        )
