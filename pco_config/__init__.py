"""
pco_config -- single public entrypoint for commercial settings.

Responsibility:
    ``get_active_settings()`` returns the parsed ``defaults.yaml`` shipped
    with the package (cached for the process).  Services and modules take
    their defaults from it instead of reading files themselves.

Architecture position:
    Configuration -- sits above ``pco_kernel`` and below ``pco_services`` /
    ``pco_modules``.  The kernel never imports from ``pco_config``.

Failure modes:
    - ``FileNotFoundError`` / ``yaml.YAMLError`` / ``ValueError`` from the
      loader when the settings file is missing or malformed.

Audit relevance:
    Every uncached load emits a ``PCO_CONFIG_TRACE`` log record with the
    source path, version and checksum.
"""

from __future__ import annotations

import functools
import logging
from pathlib import Path

from pco_config.loader import load_settings
from pco_config.schema import (
    B2BQuoteDefaults,
    BulkPricingDefaults,
    OrderPricingDefaults,
    PcoSettings,
    WorkflowDefaults,
)

_logger = logging.getLogger("pco_kernel.config")

DEFAULT_SETTINGS_PATH = Path(__file__).parent / "defaults.yaml"


@functools.lru_cache(maxsize=1)
def get_active_settings() -> PcoSettings:
    """The process-wide settings parsed from ``defaults.yaml``."""
    settings = load_settings(DEFAULT_SETTINGS_PATH)
    _logger.info(
        "PCO_CONFIG_TRACE",
        extra={
            "trace_type": "PCO_CONFIG_TRACE",
            "source": str(DEFAULT_SETTINGS_PATH),
            "config_version": settings.version,
            "checksum": settings.checksum,
        },
    )
    return settings


__all__ = [
    "B2BQuoteDefaults",
    "BulkPricingDefaults",
    "DEFAULT_SETTINGS_PATH",
    "OrderPricingDefaults",
    "PcoSettings",
    "WorkflowDefaults",
    "get_active_settings",
    "load_settings",
]
