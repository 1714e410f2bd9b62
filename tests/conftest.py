"""
Pytest fixtures for the private client order test suite.

Provides:
- Structured logging configured once per session, with a ``captured_logs``
  fixture that returns the emitted JSON records
- An in-memory store seeded with a wine partner, two distributors and a client
- Actors for every role
- A SQLite-backed SQLAlchemy store (shared in-memory database)
"""

import json
import logging
from datetime import datetime, timezone
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from pco_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session,
    init_engine_from_url,
    reset_engine,
)
from pco_kernel.domain.clock import DeterministicClock
from pco_kernel.domain.dtos import Actor, ActorRole, Client, Partner, PartnerKind
from pco_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from pco_kernel.store.memory import InMemoryOrderStore
from pco_kernel.store.sqlalchemy_store import SqlAlchemyOrderStore
from pco_modules.private_client_orders import (
    ClientInfo,
    LineItemInput,
    PrivateClientOrderConfig,
    PrivateClientOrderService,
)
from pco_services.event_dispatcher import EventDispatcher
from pco_services.stock_reservation import InMemoryInventoryGateway, StockReservationCoordinator


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture pco_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, service):
            service.submit_order(...)
            logs = captured_logs()
            assert any(r["message"] == "order_status_changed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("pco_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Parties and actors
# =============================================================================


@pytest.fixture
def clock():
    return DeterministicClock(datetime(2025, 3, 1, 9, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def wine_partner():
    return Partner(id=uuid4(), business_name="Cellar Door Wines", kind=PartnerKind.WINE_PARTNER)


@pytest.fixture
def distributor():
    """Distributor that accepts clients without verification."""
    return Partner(
        id=uuid4(),
        business_name="Gulf Fine Wines",
        kind=PartnerKind.DISTRIBUTOR,
        distributor_code="GFW",
    )


@pytest.fixture
def verifying_distributor():
    """Distributor that must verify every new client."""
    return Partner(
        id=uuid4(),
        business_name="Emirates Cellars",
        kind=PartnerKind.DISTRIBUTOR,
        distributor_code="EMC",
        requires_client_verification=True,
    )


@pytest.fixture
def client_record():
    return Client(id=uuid4(), name="A. Collector", email="collector@example.com")


@pytest.fixture
def admin():
    return Actor(user_id=uuid4(), role=ActorRole.ADMIN)


@pytest.fixture
def partner_user(wine_partner):
    return Actor(user_id=uuid4(), role=ActorRole.PARTNER, partner_id=wine_partner.id)


@pytest.fixture
def other_partner_user():
    return Actor(user_id=uuid4(), role=ActorRole.PARTNER, partner_id=uuid4())


@pytest.fixture
def distributor_user(distributor):
    return Actor(user_id=uuid4(), role=ActorRole.DISTRIBUTOR, partner_id=distributor.id)


@pytest.fixture
def verifying_distributor_user(verifying_distributor):
    return Actor(user_id=uuid4(), role=ActorRole.DISTRIBUTOR, partner_id=verifying_distributor.id)


# =============================================================================
# Services over the in-memory store
# =============================================================================


@pytest.fixture
def store(wine_partner, distributor, verifying_distributor, client_record):
    store = InMemoryOrderStore()
    store.add_partner(wine_partner)
    store.add_partner(distributor)
    store.add_partner(verifying_distributor)
    store.add_client(client_record)
    return store


@pytest.fixture
def events():
    return EventDispatcher()


@pytest.fixture
def inventory():
    return InMemoryInventoryGateway()


@pytest.fixture
def reservations(inventory, clock):
    return StockReservationCoordinator(inventory, clock)


@pytest.fixture
def order_config():
    return PrivateClientOrderConfig()


@pytest.fixture
def service(store, events, reservations, clock, order_config):
    return PrivateClientOrderService(
        store,
        events=events,
        reservations=reservations,
        clock=clock,
        config=order_config,
    )


@pytest.fixture
def new_order(service, partner_user, client_record):
    """Factory: a draft order owned by ``partner_user`` with the given lines."""
    def _create(*lines: LineItemInput):
        order = service.create_order(
            partner_user, client=ClientInfo(client_id=client_record.id)
        )
        items = [service.add_line_item(partner_user, order.id, line) for line in lines]
        return service.get_order(order.id), items

    return _create


@pytest.fixture
def opus_line():
    return LineItemInput(
        product_name="Opus One",
        quantity=2,
        unit_price_usd=Decimal("3600"),
        vintage="2018",
        lwin="1014033",
    )


@pytest.fixture
def champagne_line():
    return LineItemInput(
        product_name="Krug Grande Cuvee",
        quantity=3,
        unit_price_usd=Decimal("1450.50"),
        case_config=6,
    )


# =============================================================================
# SQL store
# =============================================================================


@pytest.fixture
def db_session():
    """Session over a fresh shared in-memory SQLite database."""
    init_engine_from_url("sqlite://")
    create_tables()
    session = get_session()
    try:
        yield session
    finally:
        session.close()
        drop_tables()
        reset_engine()


@pytest.fixture
def sql_store(db_session, wine_partner, distributor, verifying_distributor, client_record):
    store = SqlAlchemyOrderStore(db_session)
    with store.transaction():
        store.add_partner(wine_partner)
        store.add_partner(distributor)
        store.add_partner(verifying_distributor)
        store.add_client(client_record)
    return store
