"""
Kernel tests: engine lifecycle, sequence numbering, activity log,
request context and the clock.
"""

from datetime import date, datetime, timezone
from uuid import uuid4

import pytest
from sqlalchemy import inspect

from billing_kernel.db import engine as db_engine
from billing_kernel.domain.clock import DeterministicClock, SystemClock
from billing_kernel.domain.context import SYSTEM_ACTOR_ID, TenantContext
from billing_kernel.exceptions import (
    BillingKernelError,
    InvalidTransitionError,
    InvoicePersistenceError,
    PersistenceError,
    ScheduleNotEligibleError,
)
from billing_kernel.logging_config import LogContext
from billing_kernel.models.activity_log import ActivityAction
from billing_kernel.models.sequence_counter import SequenceCounter
from billing_kernel.services.audit_service import AuditService
from billing_kernel.services.sequence_service import SequenceService
from billing_modules._orm_registry import create_all_tables


@pytest.fixture
def file_engine(tmp_path):
    db_engine.init_engine_from_url(f"sqlite:///{tmp_path / 'kernel.db'}")
    yield db_engine.get_engine()
    db_engine.reset_engine()


class TestEngine:
    def test_uninitialized(self):
        db_engine.reset_engine()
        with pytest.raises(RuntimeError, match="not initialized"):
            db_engine.get_session()
        assert not db_engine.is_postgres()

    def test_create_and_drop_tables(self, file_engine):
        create_all_tables()
        tables = set(inspect(file_engine).get_table_names())
        assert {"invoices", "recurring_schedules", "proposals", "activity_log"} <= tables
        db_engine.drop_tables()
        assert inspect(file_engine).get_table_names() == []

    def test_session_scope_commits(self, file_engine):
        create_all_tables()
        tenant = uuid4()
        with db_engine.session_scope() as session:
            session.add(SequenceCounter(tenant_id=tenant, name="invoice:2024", current_value=7))
        with db_engine.session_scope() as session:
            assert SequenceService(session).current_value(tenant, "invoice:2024") == 7

    def test_session_scope_rolls_back(self, file_engine):
        create_all_tables()
        tenant = uuid4()
        with pytest.raises(RuntimeError):
            with db_engine.session_scope() as session:
                session.add(SequenceCounter(tenant_id=tenant, name="invoice:2024", current_value=7))
                session.flush()
                raise RuntimeError("abort")
        with db_engine.session_scope() as session:
            assert SequenceService(session).current_value(tenant, "invoice:2024") is None


class TestSequenceService:
    def test_starts_at_one_and_increments(self, session, tenant_id):
        sequences = SequenceService(session)
        assert [sequences.next_value(tenant_id, "invoice:2024") for _ in range(3)] == [1, 2, 3]

    def test_sequences_are_independent(self, session, tenant_id):
        sequences = SequenceService(session)
        sequences.next_value(tenant_id, "invoice:2024")
        assert sequences.next_value(tenant_id, "invoice:2025") == 1
        assert sequences.next_value(uuid4(), "invoice:2024") == 1

    def test_document_number_format(self, session, tenant_id):
        sequences = SequenceService(session)
        assert sequences.next_document_number(tenant_id, "INV", 2024) == "INV-2024-0001"
        assert sequences.next_document_number(tenant_id, "INV", 2024, width=6) == "INV-2024-000002"

    def test_rollback_releases_number(self, session, tenant_id):
        sequences = SequenceService(session)
        sequences.next_value(tenant_id, "invoice:2024")
        session.commit()
        sequences.next_value(tenant_id, "invoice:2024")
        session.rollback()
        assert sequences.next_value(tenant_id, "invoice:2024") == 2


class TestAuditService:
    def test_entries_are_sequenced_per_tenant(self, session, clock, ctx, other_ctx):
        audit = AuditService(session, clock)
        entity = uuid4()
        first = audit.record(ctx, entity_type="invoice", entity_id=entity, action=ActivityAction.INVOICE_CREATED)
        second = audit.record(
            ctx,
            entity_type="invoice",
            entity_id=entity,
            action=ActivityAction.INVOICE_STATUS_CHANGED,
            old_values={"status": "draft"},
            new_values={"status": "sent", "sent_on": date(2024, 1, 31)},
        )
        foreign = audit.record(
            other_ctx, entity_type="invoice", entity_id=uuid4(), action=ActivityAction.INVOICE_CREATED
        )
        assert (first.seq, second.seq, foreign.seq) == (1, 2, 1)
        assert second.new_values == {"status": "sent", "sent_on": "2024-01-31"}

    def test_system_actor_recorded(self, session, clock, tenant_id):
        entry = AuditService(session, clock).record(
            TenantContext(tenant_id=tenant_id),
            entity_type="recurring_schedule",
            entity_id=uuid4(),
            action=ActivityAction.SCHEDULE_ADVANCED,
        )
        assert entry.actor_id == SYSTEM_ACTOR_ID

    def test_history_is_tenant_scoped(self, session, clock, ctx, other_ctx):
        audit = AuditService(session, clock)
        entity = uuid4()
        audit.record(ctx, entity_type="invoice", entity_id=entity, action=ActivityAction.INVOICE_CREATED)
        assert len(audit.history(ctx, "invoice", entity)) == 1
        assert audit.history(other_ctx, "invoice", entity) == []


class TestTenantContext:
    def test_tenant_must_be_uuid(self):
        with pytest.raises(ValueError, match="tenant_id"):
            TenantContext(tenant_id="acme")

    def test_effective_actor(self, tenant_id, actor_id):
        assert TenantContext(tenant_id).effective_actor_id == SYSTEM_ACTOR_ID
        assert TenantContext(tenant_id, actor_id).effective_actor_id == actor_id

    def test_correlation_ids_differ(self, tenant_id):
        assert TenantContext(tenant_id).correlation_id != TenantContext(tenant_id).correlation_id

    def test_log_scope(self, ctx):
        schedule_id = uuid4()
        with ctx.log_scope(schedule_id=schedule_id):
            fields = LogContext.get_all()
            assert fields["tenant_id"] == str(ctx.tenant_id)
            assert fields["schedule_id"] == str(schedule_id)
        assert LogContext.get_all() == {}


class TestClock:
    def test_deterministic_today(self):
        clock = DeterministicClock.on(date(2024, 2, 29))
        assert clock.today() == date(2024, 2, 29)
        clock.advance_days(1)
        assert clock.today() == date(2024, 3, 1)

    def test_set_today(self):
        clock = DeterministicClock()
        clock.set_today(date(2030, 12, 31))
        assert clock.now() == datetime(2030, 12, 31, 12, tzinfo=timezone.utc)

    def test_system_clock_is_aware(self):
        assert SystemClock().now().tzinfo is not None


class TestExceptions:
    def test_codes_are_unique(self):
        def subclasses(cls):
            for sub in cls.__subclasses__():
                yield sub
                yield from subclasses(sub)

        codes = [cls.code for cls in subclasses(BillingKernelError)]
        assert len(codes) == len(set(codes))

    def test_structured_fields(self):
        exc = ScheduleNotEligibleError("abc", "status is paused")
        assert exc.code == "SCHEDULE_NOT_ELIGIBLE"
        assert exc.reason == "status is paused"
        assert "status is paused" in str(exc)

    def test_hierarchy(self):
        assert issubclass(InvoicePersistenceError, PersistenceError)
        assert isinstance(InvalidTransitionError("invoice", "paid", "draft"), BillingKernelError)
