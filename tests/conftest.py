"""
Pytest fixtures for the billing engine test suite.

Provides:
- An in-memory SQLite database per test (``engine`` / ``session``)
- A deterministic clock pinned to 2024-01-31
- Tenant contexts, a fake client directory and a recording invoice sender
- ``captured_logs`` for asserting on structured log output

Environment Variables:
- DATABASE_URL: PostgreSQL connection URL for tests marked ``postgres``.
  They are skipped when it is not set.

SQLite ignores ``SELECT ... FOR UPDATE``; locking behaviour is only
exercised against PostgreSQL.
"""

import json
import logging
from datetime import date
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from billing_kernel.db.base import Base
from billing_kernel.domain.clock import DeterministicClock
from billing_kernel.domain.context import TenantContext
from billing_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from billing_modules._orm_registry import import_all_orm_models
from billing_modules.invoicing.models import LineItemInput
from billing_modules.invoicing.service import InvoiceService
from billing_modules.ports import ClientRecord
from billing_modules.proposals.service import ProposalService
from billing_modules.recurring.models import (
    Cadence,
    LineItemTemplate,
    RecurrenceFrequency,
    ScheduleRequest,
)
from billing_modules.recurring.service import RecurringInvoiceService

# Fixed "today" for the suite: the last day of a 31-day month in a leap year
TODAY = date(2024, 1, 31)


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
    Capture billing_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, recurring_service):
            recurring_service.generate(ctx, schedule.id)
            logs = captured_logs()
            assert any(r["message"] == "recurring_invoice_generated" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("billing_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def engine():
    """Fresh in-memory SQLite database with every table created."""
    eng = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    import_all_orm_models()
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session(engine):
    factory = sessionmaker(bind=engine, expire_on_commit=False)
    sess = factory()
    yield sess
    sess.rollback()
    sess.close()


# =============================================================================
# Context and clock
# =============================================================================


@pytest.fixture
def clock():
    return DeterministicClock.on(TODAY)


@pytest.fixture
def tenant_id():
    return uuid4()


@pytest.fixture
def actor_id():
    return uuid4()


@pytest.fixture
def ctx(tenant_id, actor_id):
    return TenantContext(tenant_id=tenant_id, actor_id=actor_id)


@pytest.fixture
def other_ctx():
    """A second, unrelated tenant."""
    return TenantContext(tenant_id=uuid4(), actor_id=uuid4())


# =============================================================================
# Ports
# =============================================================================


class FakeClientDirectory:
    """In-memory ClientDirectory keyed by (tenant_id, client_id)."""

    def __init__(self):
        self._clients = {}

    def add(self, tenant_id, name="Acme Ltd", email="billing@acme.test", is_active=True):
        record = ClientRecord(id=uuid4(), name=name, email=email, is_active=is_active)
        self._clients[(tenant_id, record.id)] = record
        return record

    def deactivate(self, tenant_id, client_id):
        record = self._clients[(tenant_id, client_id)]
        self._clients[(tenant_id, client_id)] = ClientRecord(
            id=record.id, name=record.name, email=record.email, is_active=False
        )

    def get_client(self, tenant_id, client_id):
        return self._clients.get((tenant_id, client_id))


class RecordingSender:
    """InvoiceSender that remembers what it was asked to send."""

    def __init__(self, fail=False):
        self.fail = fail
        self.sent = []

    def send_invoice(self, invoice, recipients):
        if self.fail:
            raise ConnectionError("smtp unavailable")
        self.sent.append((invoice, tuple(recipients)))


@pytest.fixture
def clients():
    return FakeClientDirectory()


@pytest.fixture
def client(clients, tenant_id):
    return clients.add(tenant_id)


@pytest.fixture
def sender():
    return RecordingSender()


# =============================================================================
# Services
# =============================================================================


@pytest.fixture
def invoice_service(session, clock):
    return InvoiceService(session, clock)


@pytest.fixture
def proposal_service(session, clock):
    return ProposalService(session, clock)


@pytest.fixture
def recurring_service(session, clock, clients, sender):
    return RecurringInvoiceService(session, clock, clients=clients, sender=sender)


# =============================================================================
# Builders
# =============================================================================


@pytest.fixture
def retainer_lines():
    return [
        LineItemInput("Monthly retainer", Decimal("1"), Decimal("100.00")),
    ]


@pytest.fixture
def make_schedule_request(client):
    """Build a ScheduleRequest for the default client; override any field."""

    def _make(**overrides):
        cadence = overrides.pop(
            "cadence",
            Cadence(RecurrenceFrequency.MONTHLY, 1, day_of_month=31),
        )
        fields = dict(
            client_id=client.id,
            title="Monthly retainer",
            cadence=cadence,
            start_date=TODAY,
            line_items=(
                LineItemTemplate("Retainer", Decimal("1"), Decimal("100.00")),
            ),
            tax_rate=Decimal("5"),
        )
        fields.update(overrides)
        return ScheduleRequest(**fields)

    return _make
