"""
End-to-end tests for scripts/generate_recurring_invoices.py against a
SQLite file database.
"""

import importlib.util
from datetime import date
from decimal import Decimal
from pathlib import Path
from uuid import uuid4

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from billing_kernel.db.base import Base
from billing_kernel.domain.clock import DeterministicClock
from billing_kernel.domain.context import TenantContext
from billing_modules._orm_registry import import_all_orm_models
from billing_modules.invoicing.service import InvoiceService
from billing_modules.recurring.models import (
    Cadence,
    LineItemTemplate,
    RecurrenceFrequency,
    ScheduleRequest,
)
from billing_modules.recurring.service import RecurringInvoiceService

SCRIPT = Path(__file__).resolve().parents[2] / "scripts" / "generate_recurring_invoices.py"


@pytest.fixture(scope="module")
def cli():
    spec = importlib.util.spec_from_file_location("generate_recurring_invoices", SCRIPT)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


@pytest.fixture
def db_url(tmp_path):
    return f"sqlite:///{tmp_path / 'billing.db'}"


@pytest.fixture
def seeded(db_url):
    """A tenant with one monthly schedule due on 2024-01-31."""
    engine = create_engine(db_url)
    import_all_orm_models()
    Base.metadata.create_all(engine)
    session = sessionmaker(bind=engine, expire_on_commit=False)()
    ctx = TenantContext(tenant_id=uuid4())
    service = RecurringInvoiceService(session, DeterministicClock.on(date(2024, 1, 31)))
    schedule = service.create_schedule(
        ctx,
        ScheduleRequest(
            client_id=uuid4(),
            title="Retainer",
            cadence=Cadence(RecurrenceFrequency.MONTHLY, day_of_month=31),
            start_date=date(2024, 1, 31),
            line_items=(LineItemTemplate("Retainer", Decimal("1"), Decimal("100.00")),),
        ),
    )
    session.close()
    engine.dispose()
    return ctx, schedule


def _invoices(db_url, ctx):
    engine = create_engine(db_url)
    session = sessionmaker(bind=engine)()
    try:
        return InvoiceService(session).list_invoices(ctx)
    finally:
        session.close()
        engine.dispose()


class TestGenerateCommand:
    def test_generates_due_invoices(self, cli, db_url, seeded, capsys):
        ctx, schedule = seeded
        code = cli.main(
            ["--tenant", str(ctx.tenant_id), "--as-of", "2024-01-31", "--database-url", db_url]
        )

        assert code == 0
        out = capsys.readouterr().out
        assert "processed=1 generated=1 skipped=0 failed=0" in out
        assert "INV-" in out
        invoices = _invoices(db_url, ctx)
        assert [i.recurring_schedule_id for i in invoices] == [schedule.id]

    def test_dry_run(self, cli, db_url, seeded, capsys):
        ctx, schedule = seeded
        code = cli.main(
            [
                "--tenant", str(ctx.tenant_id),
                "--as-of", "2024-01-31",
                "--database-url", db_url,
                "--dry-run",
            ]
        )

        assert code == 0
        out = capsys.readouterr().out
        assert "1 schedule(s) due" in out
        assert str(schedule.id) in out
        assert _invoices(db_url, ctx) == []

    def test_quiet_prints_nothing(self, cli, db_url, seeded, capsys):
        ctx, _ = seeded
        code = cli.main(
            ["--tenant", str(ctx.tenant_id), "--as-of", "2024-01-31", "--database-url", db_url, "--quiet"]
        )
        assert code == 0
        assert capsys.readouterr().out == ""

    def test_create_tables_on_empty_database(self, cli, db_url, capsys):
        code = cli.main(["--tenant", str(uuid4()), "--database-url", db_url, "--create-tables"])
        assert code == 0
        assert "processed=0" in capsys.readouterr().out

    def test_bad_config_path(self, cli, tmp_path, capsys):
        code = cli.main(["--tenant", str(uuid4()), "--config", str(tmp_path / "missing.yaml")])
        assert code == 1
        assert "Failed to load config" in capsys.readouterr().err

    def test_missing_tables_reported(self, cli, db_url, capsys):
        code = cli.main(["--tenant", str(uuid4()), "--database-url", db_url])
        assert code == 1
        assert "ERROR" in capsys.readouterr().err

    def test_tenant_is_required(self, cli):
        with pytest.raises(SystemExit):
            cli.main([])

    def test_tenant_must_be_uuid(self, cli):
        with pytest.raises(SystemExit):
            cli.main(["--tenant", "acme"])
