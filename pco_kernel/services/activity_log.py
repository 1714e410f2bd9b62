"""
ActivityLogService -- append-only order history.

Responsibility:
    Records one ``ActivityLogEntry`` per state-machine transition and per
    item-level stock action, with enough structured metadata (previous and
    new status, actor, action payload) to rebuild an order's timeline
    without consulting its current state.

Architecture position:
    Kernel > Services.  Called by the order module inside the same store
    transaction as the status write, so an entry exists iff the change
    committed.

Invariants enforced:
    - Append-only: the service exposes no update or delete.
    - Metadata is copied on write; later mutation of the caller's dict
      cannot alter the record.
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from pco_kernel.domain.clock import Clock, SystemClock
from pco_kernel.domain.dtos import ActivityLogEntry, OrderStatus
from pco_kernel.logging_config import get_logger
from pco_kernel.store.base import OrderStore

logger = get_logger("services.activity_log")


class ActivityLogService:
    """Writes and reads the order activity log."""

    def __init__(self, store: OrderStore, clock: Clock | None = None):
        self._store = store
        self._clock = clock or SystemClock()

    def record(
        self,
        order_id: UUID,
        actor_id: UUID,
        action: str,
        *,
        previous_status: OrderStatus | None = None,
        new_status: OrderStatus | None = None,
        notes: str | None = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> ActivityLogEntry:
        entry = ActivityLogEntry(
            id=uuid4(),
            order_id=order_id,
            actor_id=actor_id,
            action=action,
            created_at=self._clock.now(),
            previous_status=previous_status,
            new_status=new_status,
            notes=notes,
            metadata=_plain(dict(metadata or {})),
        )
        self._store.append_activity(entry)
        logger.info(
            "activity_recorded",
            extra={
                "order_id": str(order_id),
                "activity_action": action,
                "previous_status": previous_status.value if previous_status else None,
                "new_status": new_status.value if new_status else None,
            },
        )
        return entry

    def history(self, order_id: UUID) -> list[ActivityLogEntry]:
        """All entries for the order, oldest first."""
        return self._store.list_activity(order_id)


def _plain(value: Any) -> Any:
    """JSON-safe copy of a metadata payload (UUIDs, enums and Decimals as strings)."""
    if isinstance(value, Mapping):
        return {str(k): _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_plain(v) for v in value]
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    return str(value)
