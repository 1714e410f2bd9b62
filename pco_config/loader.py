"""
Settings loader (``pco_config.loader``).

Responsibility
--------------
Loads a settings YAML file and parses it into the frozen dataclasses of
``pco_config.schema``.  Runtime callers go through
``pco_config.get_active_settings()``; ``load_settings`` is exposed for
tests and tooling that need an alternate file.

Invariants enforced
-------------------
* Money and percentages are parsed to ``Decimal`` from their string form;
  a YAML float is converted through ``str`` so ``0.75`` stays ``0.75``.
* Unknown keys in a section raise ``ValueError``; a typo never silently
  falls back to a default.
* ``compute_checksum`` is a deterministic SHA-256 of the canonical JSON
  form of the raw document.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown key or unparseable number  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import fields
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from pco_config.schema import (
    B2BQuoteDefaults,
    BulkPricingDefaults,
    OrderPricingDefaults,
    PcoSettings,
    WorkflowDefaults,
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_decimal(value: Any, key: str) -> Decimal:
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"{key}: cannot parse {value!r} as a decimal") from exc


def _parse_section(cls: type, data: dict[str, Any] | None, section: str) -> Any:
    """Build ``cls`` from a YAML mapping, coercing each value to the field's type."""
    data = data or {}
    known = {f.name: f for f in fields(cls)}
    unknown = set(data) - set(known)
    if unknown:
        raise ValueError(f"{section}: unknown keys {sorted(unknown)}")

    kwargs: dict[str, Any] = {}
    for key, value in data.items():
        default = getattr(cls(), key)
        if isinstance(default, Decimal):
            kwargs[key] = parse_decimal(value, f"{section}.{key}")
        elif isinstance(default, bool):
            kwargs[key] = bool(value)
        elif isinstance(default, int):
            kwargs[key] = int(value)
        elif isinstance(default, tuple):
            kwargs[key] = tuple(str(v) for v in value or ())
        else:
            kwargs[key] = str(value)
    return cls(**kwargs)


def parse_settings(data: dict[str, Any]) -> PcoSettings:
    """Parse a raw settings document."""
    sections = {"version", "order_pricing", "b2b_quote", "bulk_pricing", "workflow"}
    unknown = set(data) - sections
    if unknown:
        raise ValueError(f"settings: unknown sections {sorted(unknown)}")
    return PcoSettings(
        version=int(data.get("version", 1)),
        order_pricing=_parse_section(
            OrderPricingDefaults, data.get("order_pricing"), "order_pricing"
        ),
        b2b_quote=_parse_section(B2BQuoteDefaults, data.get("b2b_quote"), "b2b_quote"),
        bulk_pricing=_parse_section(
            BulkPricingDefaults, data.get("bulk_pricing"), "bulk_pricing"
        ),
        workflow=_parse_section(WorkflowDefaults, data.get("workflow"), "workflow"),
        checksum=compute_checksum(data),
    )


def load_settings(path: Path) -> PcoSettings:
    """Load and parse a settings file."""
    return parse_settings(load_yaml_file(path))


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
