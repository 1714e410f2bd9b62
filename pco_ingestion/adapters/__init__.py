"""Source adapters for uploaded price lists (file I/O only, no DB)."""

from pathlib import Path

from pco_ingestion.adapters.base import SourceAdapter, SourcePreview
from pco_ingestion.adapters.csv_adapter import CsvSourceAdapter
from pco_ingestion.adapters.xlsx_adapter import XlsxSourceAdapter

_BY_SUFFIX: dict[str, type] = {
    ".csv": CsvSourceAdapter,
    ".txt": CsvSourceAdapter,
    ".xlsx": XlsxSourceAdapter,
    ".xlsm": XlsxSourceAdapter,
}


def adapter_for(source_path: Path) -> SourceAdapter:
    """Adapter for a file, chosen by extension; ValueError if unsupported."""
    try:
        return _BY_SUFFIX[source_path.suffix.lower()]()
    except KeyError:
        raise ValueError(
            f"Unsupported price list format '{source_path.suffix}' "
            f"(expected one of {', '.join(sorted(_BY_SUFFIX))})"
        ) from None


__all__ = [
    "SourceAdapter",
    "SourcePreview",
    "CsvSourceAdapter",
    "XlsxSourceAdapter",
    "adapter_for",
]
