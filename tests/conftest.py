import os
from pathlib import Path

import pytest
from protean.integrations.pytest import DomainFixture


def pytest_addoption(parser):
    parser.addoption(
        "--env",
        action="store",
        default="test",
        help="Config environment to run tests on",
    )


def pytest_sessionstart(session):
    """Pytest hook to run before collecting tests.

    Select the protean config overlay before any domain is imported.
    """
    os.environ["PROTEAN_ENV"] = session.config.option.env


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their directory location."""
    for item in items:
        test_path = str(Path(item.fspath))

        if "/domain/" in test_path:
            item.add_marker(pytest.mark.domain)
        elif "/application/" in test_path:
            item.add_marker(pytest.mark.application)
        elif "/bdd/" in test_path:
            item.add_marker(pytest.mark.bdd)
        elif "/integration/" in test_path:
            item.add_marker(pytest.mark.integration)
            # Integration tests are often slower
            if not any(m.name == "fast" for m in item.iter_markers()):
                item.add_marker(pytest.mark.slow)


# ---------------------------------------------------------------------------
# Domains
# ---------------------------------------------------------------------------
# The order saga calls into payments, so every test bed needs both domains.
@pytest.fixture(scope="session")
def payments_bed():
    from payments.domain import payments

    bed = DomainFixture(payments)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(scope="session")
def ordering_bed(payments_bed):
    from ordering.domain import ordering

    bed = DomainFixture(ordering)
    bed.setup()
    yield bed
    bed.teardown()


def _reset_domain(domain):
    with domain.domain_context():
        for _, provider in domain.providers.items():
            provider._data_reset()

        for _, broker in domain.brokers.items():
            broker._data_reset()

        domain.event_store.store._data_reset()


def _reset_components():
    from inventory.ledger import reset_ledger
    from inventory.reservation import reset_coordinator
    from ordering.checkout import reset_saga
    from ordering.external import reset_collaborators
    from payments.gateway import reset_gateways
    from shared.db import reset_engine

    reset_saga()
    reset_coordinator()
    reset_ledger()
    reset_gateways()
    reset_collaborators()
    reset_engine()


@pytest.fixture(autouse=True)
def run_around_tests(payments_bed, ordering_bed):
    """Fixture to automatically cleanup infrastructure after every test"""
    _reset_components()

    yield

    from ordering.domain import ordering
    from payments.domain import payments

    _reset_domain(payments)
    _reset_domain(ordering)
    _reset_components()


# ---------------------------------------------------------------------------
# Components
# ---------------------------------------------------------------------------
@pytest.fixture()
def ledger():
    """A fast in-memory ledger, installed as the process-wide one."""
    from inventory.ledger import set_ledger
    from inventory.ledger.ledger import InventoryLedger
    from inventory.ledger.memory import MemoryLedgerStore

    ledger = InventoryLedger(MemoryLedgerStore(), max_attempts=5, backoff_seconds=0)
    set_ledger(ledger)
    return ledger


@pytest.fixture()
def coordinator(ledger):
    from inventory.reservation import set_coordinator
    from inventory.reservation.coordinator import ReservationCoordinator
    from inventory.reservation.memory import MemoryReservationStore
    from shared.idempotency import MemoryIdempotencyStore

    coordinator = ReservationCoordinator(
        ledger,
        MemoryReservationStore(),
        MemoryIdempotencyStore(),
        hold_minutes=15,
        max_attempts=5,
        backoff_seconds=0,
    )
    set_coordinator(coordinator)
    return coordinator


@pytest.fixture()
def gateway():
    from payments.gateway import register_gateway
    from payments.gateway.fake_adapter import FakeGateway

    gateway = FakeGateway(secret="test-webhook-secret")
    register_gateway("fake", gateway)
    return gateway


@pytest.fixture()
def catalogue():
    from ordering.external import set_catalogue
    from ordering.external.catalogue import MemoryCatalogue

    catalogue = MemoryCatalogue()
    catalogue.add_product("prod-001", "Widget", 10.0)
    catalogue.add_product("prod-002", "Gadget", 25.0)
    catalogue.add_product("prod-003", "Gizmo", 4.5)
    set_catalogue(catalogue)
    return catalogue


@pytest.fixture()
def cart():
    from ordering.external import set_cart
    from ordering.external.cart import MemoryCart

    cart = MemoryCart()
    set_cart(cart)
    return cart


@pytest.fixture()
def saga(coordinator, gateway, catalogue, cart):
    from ordering.checkout import set_saga
    from ordering.checkout.saga import OrderSaga
    from payments.adapter import PaymentGatewayAdapter
    from shared.idempotency import MemoryIdempotencyStore

    saga = OrderSaga(
        coordinator=coordinator,
        payments=PaymentGatewayAdapter(default_provider="fake"),
        idempotency=MemoryIdempotencyStore(),
        catalogue=catalogue,
        cart=cart,
        provider="fake",
    )
    set_saga(saga)
    return saga
