"""
Recurring Invoice ORM Models (``billing_modules.recurring.orm``).

Responsibility
--------------
SQLAlchemy persistence for recurring invoice schedules.  The line item
template is stored as a JSON list on the schedule row.

Concurrency
-----------
``version`` is the mapper's ``version_id_col``: every UPDATE is issued as
``... WHERE id = :id AND version = :old`` and bumps the counter, so a
writer holding a stale copy gets ``StaleDataError`` instead of silently
overwriting a concurrent generation.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import JSON, Boolean, Date, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from billing_kernel.db.base import TenantScopedMixin, TrackedBase


class RecurringScheduleModel(TenantScopedMixin, TrackedBase):
    """
    ORM model for recurring invoice schedules.

    Maps to the ``RecurrenceSchedule`` frozen dataclass.

    Guarantees:
        - (tenant_id, status, next_run_date) is indexed for the due query.
        - next_run_date is NULL only for completed/cancelled rows
          (maintained by RecurringInvoiceService).
    """

    __tablename__ = "recurring_schedules"

    __table_args__ = (
        Index("idx_recurring_schedules_due", "tenant_id", "status", "next_run_date"),
        Index("idx_recurring_schedules_client_id", "client_id"),
    )

    client_id: Mapped[UUID] = mapped_column(nullable=False)
    project_id: Mapped[UUID | None] = mapped_column(nullable=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Cadence
    frequency: Mapped[str] = mapped_column(String(20), nullable=False)
    interval_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    day_of_week: Mapped[int | None] = mapped_column(Integer, nullable=True)
    day_of_month: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Bounds
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    max_occurrences: Mapped[int | None] = mapped_column(Integer, nullable=True)
    invoice_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Runtime state
    next_run_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    last_run_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    last_invoice_id: Mapped[UUID | None] = mapped_column(nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")

    # Invoice template
    line_items: Mapped[list] = mapped_column(JSON, nullable=False)
    tax_rate: Mapped[Decimal] = mapped_column(Numeric(7, 4), nullable=False)
    discount_amount: Mapped[Decimal] = mapped_column(nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    payment_terms_days: Mapped[int] = mapped_column(Integer, nullable=False, default=30)
    auto_send: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    email_recipients: Mapped[list | None] = mapped_column(JSON, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    def to_dto(self):
        """Convert ORM model to frozen dataclass."""
        from billing_modules.recurring.models import (
            Cadence,
            LineItemTemplate,
            RecurrenceSchedule,
            ScheduleStatus,
        )

        return RecurrenceSchedule(
            id=self.id,
            tenant_id=self.tenant_id,
            client_id=self.client_id,
            title=self.title,
            cadence=Cadence(
                frequency=self.frequency,
                interval_count=self.interval_count,
                day_of_week=self.day_of_week,
                day_of_month=self.day_of_month,
            ),
            start_date=self.start_date,
            next_run_date=self.next_run_date,
            status=ScheduleStatus(self.status),
            line_items=tuple(LineItemTemplate.from_dict(item) for item in self.line_items),
            tax_rate=self.tax_rate,
            discount_amount=self.discount_amount,
            currency=self.currency,
            end_date=self.end_date,
            max_occurrences=self.max_occurrences,
            invoice_count=self.invoice_count,
            last_run_date=self.last_run_date,
            last_invoice_id=self.last_invoice_id,
            payment_terms_days=self.payment_terms_days,
            auto_send=self.auto_send,
            email_recipients=tuple(self.email_recipients or ()),
            project_id=self.project_id,
            description=self.description,
            notes=self.notes,
            version=self.version,
        )

    @classmethod
    def from_request(
        cls,
        request,
        *,
        schedule_id: UUID,
        tenant_id: UUID,
        next_run_date: date,
        created_by_id: UUID,
    ) -> "RecurringScheduleModel":
        """Create ORM model from a validated ``ScheduleRequest``."""
        return cls(
            id=schedule_id,
            tenant_id=tenant_id,
            client_id=request.client_id,
            project_id=request.project_id,
            title=request.title,
            description=request.description,
            frequency=request.cadence.frequency.value,
            interval_count=request.cadence.interval_count,
            day_of_week=request.cadence.day_of_week,
            day_of_month=request.cadence.day_of_month,
            start_date=request.start_date,
            end_date=request.end_date,
            max_occurrences=request.max_occurrences,
            invoice_count=0,
            next_run_date=next_run_date,
            status="active",
            line_items=[item.to_dict() for item in request.line_items],
            tax_rate=request.tax_rate,
            discount_amount=request.discount_amount,
            currency=request.currency,
            payment_terms_days=request.payment_terms_days,
            auto_send=request.auto_send,
            email_recipients=list(request.email_recipients),
            notes=request.notes,
            created_by_id=created_by_id,
        )

    def __repr__(self) -> str:
        return f"<RecurringScheduleModel {self.title} [{self.status}] next={self.next_run_date}>"
