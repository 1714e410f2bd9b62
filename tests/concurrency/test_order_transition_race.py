"""
Concurrent writers on a single private client order.

Two admins acting on the same order at the same moment must never both
win: the store serializes the read-check-write of a transition, so the
second writer sees the first writer's status and is refused.

Expected Behavior:
- Exactly one concurrent transition commits
- Losers raise InvalidTransitionError or OptimisticLockError
- The stored version moves by exactly one and history records one transition
- Stock is reserved once however many approvals race
- A writer holding a stale snapshot is refused by the conditional update
- A refused status update leaves the stored order and its history untouched
"""

from concurrent.futures import ThreadPoolExecutor
from threading import Barrier
from uuid import uuid4

import pytest

from pco_kernel.domain.dtos import Actor, ActorRole, OrderStatus, StockSource
from pco_kernel.exceptions import InvalidTransitionError, OptimisticLockError
from pco_modules.private_client_orders import StockAssignment
from pco_services.stock_reservation import StockLot

S = OrderStatus
LOSING_ERRORS = (InvalidTransitionError, OptimisticLockError)


def _race(*calls):
    """Run each call on its own thread, released together by a barrier."""
    barrier = Barrier(len(calls))

    def _run(call):
        barrier.wait()
        try:
            return call(), None
        except LOSING_ERRORS as exc:
            return None, exc

    with ThreadPoolExecutor(max_workers=len(calls)) as pool:
        futures = [pool.submit(_run, call) for call in calls]
        return [f.result(timeout=10) for f in futures]


@pytest.fixture
def submitted(service, new_order, partner_user, opus_line):
    order, items = new_order(opus_line)
    service.submit_order(partner_user, order.id)
    return service.get_order(order.id), items


@pytest.fixture
def under_review(service, submitted, admin):
    order, items = submitted
    return service.start_review(admin, order.id).order, items


class TestConcurrentApproval:
    """Many admins approve the same submitted order at once."""

    THREADS = 8

    def test_single_approval_commits(self, service, submitted, admin, inventory):
        order, items = submitted
        lot = inventory.add_lot(
            StockLot(
                id=uuid4(),
                lwin18="101403320181200750",
                product_name="Opus One 2018",
                available_cases=5,
            )
        )
        assignment = [StockAssignment(items[0].id, StockSource.CC_INVENTORY)]

        outcomes = _race(
            *[
                (lambda: service.approve_order(admin, order.id, stock_assignments=assignment))
                for _ in range(self.THREADS)
            ]
        )

        winners = [result for result, error in outcomes if error is None]
        losers = [error for result, error in outcomes if error is not None]
        assert len(winners) == 1
        assert len(losers) == self.THREADS - 1
        assert all(isinstance(e, InvalidTransitionError) for e in losers)
        assert {e.current_status for e in losers} == {S.CC_APPROVED.value}

        stored = service.get_order(order.id)
        assert stored.status is S.CC_APPROVED
        assert stored.version == order.version + 1
        actions = [e.action for e in service.get_history(order.id)]
        assert actions.count("order_approved") == 1
        assert inventory.get_lot(lot.id).available_cases == 3


class TestReviewDecisionRace:
    """Approval and a revision request race on an order under review."""

    def test_one_decision_wins(self, service, under_review, admin):
        order, _ = under_review

        outcomes = _race(
            lambda: service.approve_order(admin, order.id),
            lambda: service.request_revision(admin, order.id, reason="Vintage unavailable"),
        )

        winners = [result for result, error in outcomes if error is None]
        losers = [error for result, error in outcomes if error is not None]
        assert len(winners) == 1
        assert len(losers) == 1
        assert isinstance(losers[0], LOSING_ERRORS)

        stored = service.get_order(order.id)
        assert stored.status is winners[0].order.status
        assert stored.version == order.version + 1
        actions = [e.action for e in service.get_history(order.id)]
        decisions = [a for a in actions if a in ("order_approved", "revision_requested")]
        assert decisions == [winners[0].activity.action]

    def test_same_target_from_two_admins(self, service, under_review, admin):
        other_admin = Actor(user_id=uuid4(), role=ActorRole.ADMIN)
        order, _ = under_review

        outcomes = _race(
            lambda: service.update_status(admin, order.id, S.REVISION_REQUESTED, notes="first"),
            lambda: service.update_status(
                other_admin, order.id, S.REVISION_REQUESTED, notes="second"
            ),
        )

        assert sum(error is None for _, error in outcomes) == 1
        stored = service.get_order(order.id)
        assert stored.status is S.REVISION_REQUESTED
        assert stored.version == order.version + 1
        actions = [e.action for e in service.get_history(order.id)]
        assert actions.count("status_updated") == 1


class TestStaleSnapshot:
    """A writer that read the order before another writer committed."""

    def test_stale_writer_refused(self, service, store, submitted, admin, monkeypatch):
        order, _ = submitted
        stale = store.get_order(order.id)
        service.start_review(admin, order.id)
        moved = service.get_order(order.id)
        history = service.get_history(order.id)

        monkeypatch.setattr(store, "lock_order", lambda order_id: stale)
        with pytest.raises(OptimisticLockError):
            service.update_status(admin, order.id, S.CC_APPROVED)

        assert service.get_order(order.id) == moved
        assert service.get_history(order.id) == history


class TestRejectedStatusUpdate:

    @pytest.mark.parametrize("target", [S.DELIVERED, S.CLIENT_PAID, S.DRAFT, S.SUBMITTED])
    def test_order_left_untouched(self, service, submitted, admin, clock, target):
        order, _ = submitted
        before = service.get_order(order.id)
        history = service.get_history(order.id)
        clock.tick()

        with pytest.raises(InvalidTransitionError) as exc_info:
            service.update_status(admin, order.id, target)

        assert exc_info.value.current_status == S.SUBMITTED.value
        after = service.get_order(order.id)
        assert after == before
        assert (after.status, after.version, after.updated_at) == (
            S.SUBMITTED,
            before.version,
            before.updated_at,
        )
        assert service.get_history(order.id) == history
