"""
Tests for the append-only activity log.
"""

from decimal import Decimal
from uuid import uuid4

from pco_kernel.domain.dtos import OrderStatus, StockStatus
from pco_kernel.services.activity_log import ActivityLogService


class TestRecord:

    def test_metadata_made_json_safe(self, store, clock):
        """UUIDs, Decimals and enums are stored as plain strings."""
        log = ActivityLogService(store, clock)
        item_id = uuid4()
        entry = log.record(
            uuid4(),
            uuid4(),
            "stock_received_at_distributor",
            metadata={
                "item_ids": (item_id,),
                "total": Decimal("7200.00"),
                "stock_status": StockStatus.AT_DISTRIBUTOR,
                "count": 1,
                "nested": {"ok": True},
            },
        )

        assert entry.metadata == {
            "item_ids": [str(item_id)],
            "total": "7200.00",
            "stock_status": "at_distributor",
            "count": 1,
            "nested": {"ok": True},
        }

    def test_metadata_copied_on_write(self, store, clock):
        log = ActivityLogService(store, clock)
        payload = {"reason": "price check"}
        entry = log.record(uuid4(), uuid4(), "revision_requested", metadata=payload)
        payload["reason"] = "changed"

        assert entry.metadata == {"reason": "price check"}

    def test_history_oldest_first(self, store, clock):
        log = ActivityLogService(store, clock)
        order_id = uuid4()
        log.record(order_id, uuid4(), "order_created", new_status=OrderStatus.DRAFT)
        clock.tick()
        log.record(
            order_id,
            uuid4(),
            "order_submitted",
            previous_status=OrderStatus.DRAFT,
            new_status=OrderStatus.SUBMITTED,
        )
        log.record(uuid4(), uuid4(), "order_created")

        history = log.history(order_id)
        assert [e.action for e in history] == ["order_created", "order_submitted"]
        assert history[1].previous_status is OrderStatus.DRAFT
        assert history[1].created_at > history[0].created_at

    def test_record_is_logged(self, store, clock, captured_logs):
        order_id = uuid4()
        ActivityLogService(store, clock).record(
            order_id, uuid4(), "order_cancelled", new_status=OrderStatus.CANCELLED
        )

        records = [r for r in captured_logs() if r["message"] == "activity_recorded"]
        assert records[-1]["order_id"] == str(order_id)
        assert records[-1]["activity_action"] == "order_cancelled"
        assert records[-1]["new_status"] == "cancelled"
