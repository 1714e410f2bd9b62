"""
BulkPricingService -- spreadsheet-driven catalogue repricing sessions.

Responsibility:
    Holds an uploaded product list as raw rows, lets an admin map its
    columns and configure ``CalculationVariables``, then regenerates every
    ``PricingLineItem`` with ``pco_engines.price_bulk_row``.  Single items
    can be re-priced with a new case configuration.

Architecture position:
    Modules -- orchestrates ``pco_ingestion`` (file reading), the column
    mapping helpers, the bulk pricing engine and the kernel store port.
    Independent of orders.

Invariants enforced:
    - Items are regenerated by delete-and-reinsert on every calculation run;
      changing the mapping or the variables discards the previous items, so
      a session never shows prices computed from stale configuration.
    - Status follows the last configuration step: ``uploaded`` -> ``mapped``
      -> ``configured`` -> ``calculated``.
    - ``update_item_case_config`` recomputes that item only.

Failure modes:
    - PricingSessionNotFoundError / PricingItemNotFoundError.
    - MissingCalculationVariablesError, MissingColumnMappingError,
      NoRawDataError, NoValidPricedRowsError, InvalidInputError.
    - ActorRoleError for non-admin callers.
"""

from __future__ import annotations

import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, replace
from datetime import date, datetime, time
from decimal import Decimal
from pathlib import Path
from typing import Any
from uuid import UUID, uuid4

from pco_config import get_active_settings
from pco_engines import CalculationVariables, price_bulk_row
from pco_ingestion import adapter_for
from pco_kernel.domain.clock import Clock, SystemClock
from pco_kernel.domain.dtos import Actor, PricingLineItem, PricingSession, SessionStatus
from pco_kernel.exceptions import (
    ActorRoleError,
    InvalidInputError,
    MissingCalculationVariablesError,
    MissingColumnMappingError,
    NoRawDataError,
    NoValidPricedRowsError,
    PricingItemNotFoundError,
    PricingSessionNotFoundError,
)
from pco_kernel.logging_config import LogContext, get_logger
from pco_kernel.store.base import OrderStore
from pco_modules.bulk_pricing.export import export_session_xlsx
from pco_modules.bulk_pricing.mapping import (
    MappedRow,
    map_row,
    missing_required,
    normalize_mapping,
    suggest_column_mapping,
    unknown_columns,
)

logger = get_logger("modules.bulk_pricing.service")


@dataclass(frozen=True)
class CalculationSummary:
    session: PricingSession
    item_count: int
    skipped_rows: int


def _json_safe(value: Any) -> Any:
    """Cell value as stored in ``raw_data`` (JSON column)."""
    if value is None or isinstance(value, (str, bool, int)):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else None
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    return str(value)


def _detected_columns(rows: Sequence[Mapping[str, Any]]) -> tuple[str, ...]:
    seen: dict[str, None] = {}
    for row in rows:
        for key in row:
            seen.setdefault(str(key), None)
    return tuple(seen)


def default_variables() -> CalculationVariables:
    """Variables a new session is offered, from ``defaults.yaml``."""
    return CalculationVariables.from_dict(get_active_settings().bulk_pricing.as_variables())


class BulkPricingService:
    """Admin-only pricing session workflow."""

    def __init__(self, store: OrderStore, clock: Clock | None = None):
        self._store = store
        self._clock = clock or SystemClock()

    # -- reads --------------------------------------------------------------

    def get_session(self, session_id: UUID) -> PricingSession:
        session = self._store.get_pricing_session(session_id)
        if session is None:
            raise PricingSessionNotFoundError(str(session_id))
        return session

    def list_items(self, session_id: UUID) -> list[PricingLineItem]:
        self.get_session(session_id)
        return self._store.list_pricing_items(session_id)

    def variables_of(self, session: PricingSession) -> CalculationVariables:
        if session.variables is None:
            raise MissingCalculationVariablesError(str(session.id))
        return CalculationVariables.from_dict(session.variables)

    # -- session setup ------------------------------------------------------

    def create_session(
        self,
        actor: Actor,
        name: str,
        rows: Sequence[Mapping[str, Any]],
        *,
        columns: Sequence[str] | None = None,
        source_filename: str | None = None,
    ) -> PricingSession:
        self._require_admin(actor, "create pricing session")
        if not (name or "").strip():
            raise InvalidInputError("name", "is required")
        raw = tuple({str(k): _json_safe(v) for k, v in row.items()} for row in rows)
        detected = tuple(columns) if columns is not None else _detected_columns(raw)
        suggested = suggest_column_mapping(detected)
        session = PricingSession(
            id=uuid4(),
            name=name.strip(),
            status=SessionStatus.UPLOADED,
            created_at=self._clock.now(),
            created_by=actor.user_id,
            raw_data=raw,
            detected_columns=detected,
            column_mapping=suggested,
            source_filename=source_filename,
        )
        with LogContext.bind(session_id=session.id, actor_id=actor.user_id):
            with self._store.transaction():
                self._store.add_pricing_session(session)
            logger.info(
                "pricing_session_created",
                extra={
                    "session_id": str(session.id),
                    "row_count": len(raw),
                    "column_count": len(detected),
                    "suggested_fields": sorted(suggested),
                },
            )
        return session

    def import_sheet(
        self,
        actor: Actor,
        source_path: Path,
        *,
        name: str | None = None,
        options: Mapping[str, Any] | None = None,
    ) -> PricingSession:
        """Create a session from a CSV or XLSX price list."""
        self._require_admin(actor, "import pricing sheet")
        path = Path(source_path)
        try:
            adapter = adapter_for(path)
        except ValueError as exc:
            raise InvalidInputError("source_path", str(exc)) from exc
        opts = dict(options or {})
        preview = adapter.preview(path, opts)
        rows = list(adapter.read(path, opts))
        logger.info(
            "pricing_sheet_read",
            extra={"source": path.name, "row_count": len(rows), "columns": list(preview.columns)},
        )
        return self.create_session(
            actor,
            name or path.stem,
            rows,
            columns=preview.columns,
            source_filename=path.name,
        )

    def update_column_mapping(
        self,
        actor: Actor,
        session_id: UUID,
        mapping: Mapping[str, Any],
    ) -> PricingSession:
        self._require_admin(actor, "update column mapping")
        with LogContext.bind(session_id=session_id, actor_id=actor.user_id):
            with self._store.transaction():
                session = self.get_session(session_id)
                try:
                    normalized = normalize_mapping(mapping)
                except ValueError as exc:
                    raise InvalidInputError("column_mapping", str(exc)) from exc
                missing = missing_required(normalized)
                if missing:
                    raise MissingColumnMappingError(str(session_id), missing)
                unknown = unknown_columns(normalized, session.detected_columns)
                if session.detected_columns and unknown:
                    raise InvalidInputError(
                        "column_mapping", f"columns not in sheet: {', '.join(unknown)}"
                    )
                stored = self._reset(session, column_mapping=normalized, status=SessionStatus.MAPPED)
            logger.info(
                "pricing_mapping_updated",
                extra={"session_id": str(session_id), "fields": sorted(normalized)},
            )
        return stored

    def update_calculation_variables(
        self,
        actor: Actor,
        session_id: UUID,
        variables: CalculationVariables | Mapping[str, Any],
    ) -> PricingSession:
        self._require_admin(actor, "update calculation variables")
        if not isinstance(variables, CalculationVariables):
            try:
                variables = CalculationVariables.from_dict(dict(variables))
            except (ValueError, ArithmeticError) as exc:
                raise InvalidInputError("variables", str(exc)) from exc
        with LogContext.bind(session_id=session_id, actor_id=actor.user_id):
            with self._store.transaction():
                session = self.get_session(session_id)
                stored = self._reset(
                    session, variables=variables.to_dict(), status=SessionStatus.CONFIGURED
                )
            logger.info(
                "pricing_variables_updated",
                extra={"session_id": str(session_id), "variables": variables.to_dict()},
            )
        return stored

    # -- calculation --------------------------------------------------------

    def run_calculation(self, actor: Actor, session_id: UUID) -> CalculationSummary:
        """Regenerate every item of the session from its raw rows."""
        self._require_admin(actor, "run bulk calculation")
        with LogContext.bind(session_id=session_id, actor_id=actor.user_id):
            with self._store.transaction():
                session = self.get_session(session_id)
                variables = self.variables_of(session)
                if not session.raw_data:
                    raise NoRawDataError(str(session_id))
                missing = missing_required(session.column_mapping)
                if missing:
                    raise MissingColumnMappingError(str(session_id), missing)

                mapped = [
                    m
                    for index, row in enumerate(session.raw_data)
                    if (m := map_row(index, row, session.column_mapping, variables)) is not None
                ]
                if not mapped:
                    raise NoValidPricedRowsError(str(session_id), len(session.raw_data))

                items = [self._price(session.id, row, variables) for row in mapped]
                self._store.replace_pricing_items(session.id, items)
                stored = self._store.update_pricing_session(
                    replace(
                        session,
                        status=SessionStatus.CALCULATED,
                        item_count=len(items),
                        calculated_at=self._clock.now(),
                    )
                )
            skipped = len(session.raw_data) - len(items)
            logger.info(
                "bulk_calculation_completed",
                extra={
                    "session_id": str(session_id),
                    "item_count": len(items),
                    "skipped_rows": skipped,
                },
            )
        return CalculationSummary(session=stored, item_count=len(items), skipped_rows=skipped)

    def update_item_case_config(
        self,
        actor: Actor,
        item_id: UUID,
        case_config: int,
    ) -> PricingLineItem:
        """Re-price one item for a new bottles-per-case value."""
        self._require_admin(actor, "update item case config")
        if case_config <= 0:
            raise InvalidInputError("case_config", "must be a positive number of bottles")
        with self._store.transaction():
            item = self._store.get_pricing_item(item_id)
            if item is None:
                raise PricingItemNotFoundError(str(item_id))
            with LogContext.bind(session_id=item.session_id, actor_id=actor.user_id):
                session = self.get_session(item.session_id)
                variables = self.variables_of(session)
                price = price_bulk_row(
                    source_price=item.source_price,
                    currency=item.source_currency,
                    case_config=case_config,
                    variables=variables,
                )
                updated = replace(
                    item,
                    case_config=case_config,
                    in_bond_case_usd=price.in_bond_case_usd,
                    in_bond_bottle_usd=price.in_bond_bottle_usd,
                    in_bond_case_aed=price.in_bond_case_aed,
                    in_bond_bottle_aed=price.in_bond_bottle_aed,
                    delivered_case_usd=price.delivered_case_usd,
                    delivered_bottle_usd=price.delivered_bottle_usd,
                    delivered_case_aed=price.delivered_case_aed,
                    delivered_bottle_aed=price.delivered_bottle_aed,
                )
                self._store.update_pricing_item(updated)
                logger.info(
                    "pricing_item_case_config_updated",
                    extra={
                        "item_id": str(item_id),
                        "previous_case_config": item.case_config,
                        "case_config": case_config,
                    },
                )
        return updated

    def export_session_xlsx(self, actor: Actor, session_id: UUID, target: Path) -> Path:
        """Write the calculated items, rounded for presentation, to ``target``."""
        self._require_admin(actor, "export pricing session")
        session = self.get_session(session_id)
        if session.status is not SessionStatus.CALCULATED:
            raise InvalidInputError("session", "run the calculation before exporting")
        with LogContext.bind(session_id=session_id, actor_id=actor.user_id):
            return export_session_xlsx(session, self._store.list_pricing_items(session_id), target)

    # -- internals ------------------------------------------------------------

    def _require_admin(self, actor: Actor, action: str) -> None:
        if not actor.is_admin:
            raise ActorRoleError(str(actor.user_id), actor.role.value, action)

    def _reset(self, session: PricingSession, **changes: Any) -> PricingSession:
        """Apply a configuration change and drop items priced under the old one."""
        if session.item_count or session.status is SessionStatus.CALCULATED:
            self._store.replace_pricing_items(session.id, [])
        return self._store.update_pricing_session(
            replace(session, item_count=0, calculated_at=None, **changes)
        )

    @staticmethod
    def _price(
        session_id: UUID,
        row: MappedRow,
        variables: CalculationVariables,
    ) -> PricingLineItem:
        price = price_bulk_row(
            source_price=row.source_price,
            currency=row.currency,
            case_config=row.case_config,
            variables=variables,
        )
        return PricingLineItem(
            id=uuid4(),
            session_id=session_id,
            row_index=row.row_index,
            product_name=row.product_name,
            source_price=row.source_price,
            source_currency=price.source_currency,
            case_config=price.case_config,
            in_bond_case_usd=price.in_bond_case_usd,
            in_bond_bottle_usd=price.in_bond_bottle_usd,
            in_bond_case_aed=price.in_bond_case_aed,
            in_bond_bottle_aed=price.in_bond_bottle_aed,
            delivered_case_usd=price.delivered_case_usd,
            delivered_bottle_usd=price.delivered_bottle_usd,
            delivered_case_aed=price.delivered_case_aed,
            delivered_bottle_aed=price.delivered_bottle_aed,
            vintage=row.vintage,
            producer=row.producer,
            region=row.region,
            lwin=row.lwin,
            bottle_size=row.bottle_size,
        )
