"""
Recurring Invoice Service - schedules, generation and lifecycle.

Owns the transaction boundary for every public method.

Generation (``generate``) runs as one unit:

1. Claim the schedule row (``SELECT ... FOR UPDATE``, tenant-scoped) and
   re-check eligibility now that the lock is held.
2. Stage a draft invoice with lines copied from the template and totals
   recomputed (``InvoiceService.stage_invoice``).
3. Advance the schedule: count + 1, last run, next run; complete it when
   the occurrence cap or end date is reached.
4. Optionally move the invoice draft -> sent.
5. Commit.  Delivery to the ``InvoiceSender`` happens after the commit.

A failed write rolls everything back: no invoice, no line items, no
schedule change.  Calling ``generate`` again produces exactly one invoice.
Overlapping runs are kept apart by the row lock, the schedule's optimistic
``version`` column and the unique (schedule, occurrence date) constraint
on invoices.

Usage:
    service = RecurringInvoiceService(session, clock=clock)
    schedule = service.create_schedule(ctx, request)
    invoice = service.generate(ctx, schedule.id)   # Invoice | None
"""

from __future__ import annotations

from datetime import date, timedelta
from typing import Sequence
from uuid import UUID, uuid4

from sqlalchemy import or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from billing_kernel.domain.clock import Clock, SystemClock
from billing_kernel.domain.context import TenantContext
from billing_kernel.domain.workflow import require_transition
from billing_kernel.exceptions import (
    ClientNotFoundError,
    InvalidTransitionError,
    InvoicePersistenceError,
    ScheduleNotEligibleError,
    ScheduleNotFoundError,
)
from billing_kernel.logging_config import get_logger
from billing_kernel.models.activity_log import ActivityAction
from billing_kernel.services.audit_service import AuditService
from billing_modules.invoicing.config import InvoicingConfig
from billing_modules.invoicing.models import (
    Invoice,
    InvoiceStatus,
    LineItemInput,
    compute_totals,
    line_amount,
)
from billing_modules.invoicing.orm import InvoiceModel
from billing_modules.invoicing.service import InvoiceService
from billing_modules.ports import ClientDirectory, ClientRecord, InvoiceSender
from billing_modules.recurring.calculations import (
    advance,
    catch_up,
    eligibility_failure,
    first_run_date,
    reaches_bound,
)
from billing_modules.recurring.config import RecurringConfig
from billing_modules.recurring.models import (
    GenerationAttempt,
    InvoicePreview,
    PreviewLine,
    RecurrenceSchedule,
    ScheduleRequest,
    ScheduleStatus,
    UpcomingOccurrence,
)
from billing_modules.recurring.orm import RecurringScheduleModel
from billing_modules.recurring.workflows import SCHEDULE_WORKFLOW

logger = get_logger("modules.recurring.service")

ENTITY_TYPE = "recurring_schedule"


class RecurringInvoiceService:
    """
    Creates recurring schedules and generates invoices from them.

    Transaction boundary: this service commits on success, rolls back on
    failure.  The embedded InvoiceService shares the session and is only
    used for its flush-only staging methods.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        *,
        clients: ClientDirectory | None = None,
        sender: InvoiceSender | None = None,
        config: RecurringConfig | None = None,
        invoicing_config: InvoicingConfig | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._clients = clients
        self._sender = sender
        self._config = config or RecurringConfig()
        self._invoices = InvoiceService(session, self._clock, invoicing_config)
        self._audit = AuditService(session, self._clock)

    # =========================================================================
    # Queries
    # =========================================================================

    def _load(
        self,
        ctx: TenantContext,
        schedule_id: UUID,
        *,
        for_update: bool = False,
    ) -> RecurringScheduleModel:
        stmt = select(RecurringScheduleModel).where(
            RecurringScheduleModel.id == schedule_id,
            RecurringScheduleModel.tenant_id == ctx.tenant_id,
        )
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        model = self._session.execute(stmt).scalar_one_or_none()
        if model is None:
            raise ScheduleNotFoundError(str(schedule_id))
        return model

    def get_schedule(self, ctx: TenantContext, schedule_id: UUID) -> RecurrenceSchedule:
        """
        Raises:
            ScheduleNotFoundError: If the id is unknown for the tenant.
        """
        return self._load(ctx, schedule_id).to_dto()

    def list_schedules(
        self,
        ctx: TenantContext,
        *,
        status: ScheduleStatus | None = None,
        client_id: UUID | None = None,
    ) -> list[RecurrenceSchedule]:
        """Schedules for the tenant ordered by next run date."""
        stmt = select(RecurringScheduleModel).where(
            RecurringScheduleModel.tenant_id == ctx.tenant_id
        )
        if status is not None:
            stmt = stmt.where(RecurringScheduleModel.status == status.value)
        if client_id is not None:
            stmt = stmt.where(RecurringScheduleModel.client_id == client_id)
        stmt = stmt.order_by(RecurringScheduleModel.next_run_date, RecurringScheduleModel.title)
        return [m.to_dto() for m in self._session.execute(stmt).scalars()]

    def list_due(self, ctx: TenantContext, as_of: date | None = None) -> list[RecurrenceSchedule]:
        """
        Active schedules that should generate an invoice on ``as_of``.

        Matches the generation preconditions: next run on or before
        ``as_of``, not past the end date, and under the occurrence cap.
        """
        today = as_of or self._clock.today()
        stmt = (
            select(RecurringScheduleModel)
            .where(
                RecurringScheduleModel.tenant_id == ctx.tenant_id,
                RecurringScheduleModel.status == ScheduleStatus.ACTIVE.value,
                RecurringScheduleModel.next_run_date.is_not(None),
                RecurringScheduleModel.next_run_date <= today,
                or_(
                    RecurringScheduleModel.end_date.is_(None),
                    RecurringScheduleModel.next_run_date <= RecurringScheduleModel.end_date,
                ),
                or_(
                    RecurringScheduleModel.max_occurrences.is_(None),
                    RecurringScheduleModel.invoice_count < RecurringScheduleModel.max_occurrences,
                ),
            )
            .order_by(RecurringScheduleModel.next_run_date, RecurringScheduleModel.id)
        )
        return [m.to_dto() for m in self._session.execute(stmt).scalars()]

    def list_upcoming(self, ctx: TenantContext, days: int | None = None) -> list[UpcomingOccurrence]:
        """
        Every run of every active schedule within the next ``days`` days.

        Respects end dates and remaining occurrences.  Sorted by run date.
        """
        window = days if days is not None else self._config.upcoming_window_days
        if window < 0:
            raise ValueError(f"days cannot be negative, got {window}")
        horizon = self._clock.today() + timedelta(days=window)

        occurrences: list[UpcomingOccurrence] = []
        for schedule in self.list_schedules(ctx, status=ScheduleStatus.ACTIVE):
            total = self._template_totals(schedule).total
            run_date = schedule.next_run_date
            remaining = schedule.remaining_occurrences
            listed = 0
            while (
                run_date is not None
                and run_date <= horizon
                and (schedule.end_date is None or run_date <= schedule.end_date)
                and (remaining is None or listed < remaining)
                and listed < self._config.max_upcoming_per_schedule
            ):
                occurrences.append(
                    UpcomingOccurrence(
                        schedule_id=schedule.id,
                        client_id=schedule.client_id,
                        title=schedule.title,
                        run_date=run_date,
                        total=total,
                        currency=schedule.currency,
                    )
                )
                listed += 1
                run_date = advance(schedule.cadence, run_date)
        occurrences.sort(key=lambda o: (o.run_date, o.title))
        return occurrences

    def _template_totals(self, schedule: RecurrenceSchedule):
        return compute_totals(
            (line_amount(item.quantity, item.unit_price) for item in schedule.line_items),
            schedule.tax_rate,
            schedule.discount_amount,
        )

    def preview_next_invoice(self, ctx: TenantContext, schedule_id: UUID) -> InvoicePreview:
        """
        Show what the next generation would produce.  Persists nothing.

        Models the periodic run, which generates once the schedule falls due:
        the issue date is the later of the occurrence date and today.  A
        manual ``generate`` ahead of the occurrence issues on today instead.

        Raises:
            ScheduleNotFoundError: If the id is unknown for the tenant.
            ScheduleNotEligibleError: If the schedule will not generate again.
        """
        schedule = self.get_schedule(ctx, schedule_id)
        reason = eligibility_failure(schedule)
        if reason is not None and schedule.status is not ScheduleStatus.PAUSED:
            raise ScheduleNotEligibleError(str(schedule_id), reason)

        occurrence = schedule.next_run_date
        issue_date = max(occurrence, self._clock.today())
        totals = self._template_totals(schedule)
        return InvoicePreview(
            schedule_id=schedule.id,
            client_id=schedule.client_id,
            occurrence_date=occurrence,
            issue_date=issue_date,
            due_date=issue_date + timedelta(days=schedule.payment_terms_days),
            currency=schedule.currency,
            lines=tuple(
                PreviewLine(
                    description=item.description,
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                    amount=line_amount(item.quantity, item.unit_price),
                )
                for item in schedule.line_items
            ),
            subtotal=totals.subtotal,
            tax_rate=schedule.tax_rate,
            tax_amount=totals.tax_amount,
            discount_amount=totals.discount_amount,
            total=totals.total,
        )

    # =========================================================================
    # Creation
    # =========================================================================

    def _lookup_client(self, ctx: TenantContext, client_id: UUID) -> ClientRecord | None:
        if self._clients is None:
            return None
        client = self._clients.get_client(ctx.tenant_id, client_id)
        if client is None or not client.is_active:
            raise ClientNotFoundError(str(client_id))
        return client

    def create_schedule(self, ctx: TenantContext, request: ScheduleRequest) -> RecurrenceSchedule:
        """
        Persist a new active schedule.

        ``next_run_date`` is the start date when that is today or later;
        otherwise the start date stepped forward along the cadence to today.

        Raises:
            ClientNotFoundError: If a client directory is configured and the
                client is unknown or inactive.
            ValueError: If the first run would already be past the end date.
        """
        today = self._clock.today()
        try:
            self._lookup_client(ctx, request.client_id)
            next_run = first_run_date(request.cadence, request.start_date, today)
            if request.end_date is not None and next_run > request.end_date:
                raise ValueError(
                    f"Schedule would never run: first run {next_run} is after "
                    f"end date {request.end_date}"
                )
            model = RecurringScheduleModel.from_request(
                request,
                schedule_id=uuid4(),
                tenant_id=ctx.tenant_id,
                next_run_date=next_run,
                created_by_id=ctx.effective_actor_id,
            )
            self._session.add(model)
            self._session.flush()
            self._audit.record(
                ctx,
                entity_type=ENTITY_TYPE,
                entity_id=model.id,
                entity_name=model.title,
                action=ActivityAction.SCHEDULE_CREATED,
                new_values={
                    "frequency": model.frequency,
                    "interval_count": model.interval_count,
                    "next_run_date": next_run,
                },
            )
            self._session.commit()
        except Exception:
            self._session.rollback()
            raise
        logger.info(
            "schedule_created",
            extra={
                "schedule_id": str(model.id),
                "frequency": model.frequency,
                "next_run_date": next_run.isoformat(),
            },
        )
        return model.to_dto()

    # =========================================================================
    # Generation
    # =========================================================================

    def generate(
        self,
        ctx: TenantContext,
        schedule_id: UUID,
        *,
        as_of: date | None = None,
    ) -> Invoice | None:
        """
        Generate the next invoice for a schedule.

        Args:
            ctx: Tenant and actor.
            schedule_id: Schedule to generate from.
            as_of: When given, the schedule must also be due on this date.
                The periodic run passes its run date here.

        Returns:
            The new invoice, or None when the schedule was not eligible or the
            write failed.  Both cases are logged; neither leaves any change
            behind.

        Raises:
            ScheduleNotFoundError: If the id is unknown for the tenant.
        """
        return self.attempt_generation(ctx, schedule_id, as_of=as_of).invoice

    def attempt_generation(
        self,
        ctx: TenantContext,
        schedule_id: UUID,
        *,
        as_of: date | None = None,
    ) -> GenerationAttempt:
        """
        ``generate`` with the outcome spelled out: the invoice, the reason
        the schedule was skipped, or the persistence error.

        Raises:
            ScheduleNotFoundError: If the id is unknown for the tenant.
        """
        with ctx.log_scope(schedule_id=schedule_id):
            try:
                invoice_model, recipients = self._generate_locked(ctx, schedule_id, as_of)
                self._session.commit()
            except ScheduleNotEligibleError as exc:
                self._session.rollback()
                logger.info(
                    "schedule_not_eligible",
                    extra={"schedule_id": exc.schedule_id, "reason": exc.reason},
                )
                return GenerationAttempt(schedule_id, skipped_reason=exc.reason)
            except SQLAlchemyError as exc:
                self._session.rollback()
                failure = InvoicePersistenceError(str(schedule_id), type(exc).__name__)
                failure.__cause__ = exc
                logger.error("invoice_persistence_failed", exc_info=failure)
                return GenerationAttempt(schedule_id, error=failure)
            except Exception:
                self._session.rollback()
                raise

            invoice = invoice_model.to_dto()
            logger.info(
                "recurring_invoice_generated",
                extra={
                    "invoice_id": str(invoice.id),
                    "invoice_number": invoice.invoice_number,
                    "occurrence_date": invoice.occurrence_date.isoformat(),
                    "total": str(invoice.total),
                    "status": invoice.status.value,
                },
            )
            if invoice.status is InvoiceStatus.SENT:
                self._deliver(invoice, recipients)
            return GenerationAttempt(schedule_id, invoice=invoice)

    def _generate_locked(
        self,
        ctx: TenantContext,
        schedule_id: UUID,
        as_of: date | None,
    ) -> tuple[InvoiceModel, tuple[str, ...]]:
        model = self._load(ctx, schedule_id, for_update=True)
        schedule = model.to_dto()

        # Re-checked after the lock: a concurrent run may have advanced it
        reason = eligibility_failure(schedule, as_of)
        if reason is not None:
            raise ScheduleNotEligibleError(str(schedule_id), reason)

        try:
            client = self._lookup_client(ctx, schedule.client_id)
        except ClientNotFoundError:
            raise ScheduleNotEligibleError(str(schedule_id), "client not found") from None

        today = self._clock.today()
        invoice_model = self._invoices.stage_invoice(
            ctx,
            client_id=schedule.client_id,
            project_id=schedule.project_id,
            lines=[
                LineItemInput(item.description, item.quantity, item.unit_price)
                for item in schedule.line_items
            ],
            issue_date=today,
            payment_terms=schedule.payment_terms_days,
            tax_rate=schedule.tax_rate,
            discount_amount=schedule.discount_amount,
            currency=schedule.currency,
            notes=schedule.notes,
            recurring_schedule_id=schedule.id,
            occurrence_date=schedule.next_run_date,
        )

        self._advance_schedule(ctx, model, invoice_model, today)

        if schedule.auto_send:
            self._invoices.apply_status(ctx, invoice_model, InvoiceStatus.SENT)

        recipients = schedule.email_recipients
        if not recipients and client is not None and client.email:
            recipients = (client.email,)
        return invoice_model, recipients

    def _advance_schedule(
        self,
        ctx: TenantContext,
        model: RecurringScheduleModel,
        invoice_model: InvoiceModel,
        today: date,
    ) -> None:
        schedule = model.to_dto()
        old_values = {
            "invoice_count": model.invoice_count,
            "next_run_date": model.next_run_date,
            "status": model.status,
        }
        advanced_to = advance(schedule.cadence, model.next_run_date)

        model.invoice_count += 1
        model.last_run_date = today
        model.last_invoice_id = invoice_model.id
        model.next_run_date = advanced_to
        action = ActivityAction.SCHEDULE_ADVANCED

        if reaches_bound(model.invoice_count, advanced_to, model.max_occurrences, model.end_date):
            require_transition(SCHEDULE_WORKFLOW, model.status, ScheduleStatus.COMPLETED)
            model.status = ScheduleStatus.COMPLETED.value
            model.next_run_date = None
            action = ActivityAction.SCHEDULE_COMPLETED
            logger.info(
                "schedule_completed",
                extra={
                    "schedule_id": str(model.id),
                    "invoice_count": model.invoice_count,
                    "advanced_to": advanced_to.isoformat(),
                },
            )

        model.updated_by_id = ctx.effective_actor_id
        self._session.flush()
        self._audit.record(
            ctx,
            entity_type=ENTITY_TYPE,
            entity_id=model.id,
            entity_name=model.title,
            action=action,
            old_values=old_values,
            new_values={
                "invoice_count": model.invoice_count,
                "next_run_date": model.next_run_date,
                "status": model.status,
                "last_invoice_id": invoice_model.id,
            },
        )

    def _deliver(self, invoice: Invoice, recipients: Sequence[str]) -> None:
        if self._sender is None or not self._config.deliver_auto_sent:
            return
        try:
            self._sender.send_invoice(invoice, recipients)
        except Exception:
            # The invoice is committed; delivery is retried by hand
            logger.exception(
                "invoice_delivery_failed",
                extra={"invoice_id": str(invoice.id), "recipient_count": len(recipients)},
            )
        else:
            logger.info(
                "invoice_delivered",
                extra={"invoice_id": str(invoice.id), "recipient_count": len(recipients)},
            )

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def _change_status(
        self,
        ctx: TenantContext,
        schedule_id: UUID,
        target: ScheduleStatus,
        action: ActivityAction,
    ) -> RecurrenceSchedule:
        try:
            model = self._load(ctx, schedule_id, for_update=True)
            old_values = {"status": model.status, "next_run_date": model.next_run_date}
            require_transition(SCHEDULE_WORKFLOW, model.status, target)

            if target is ScheduleStatus.ACTIVE:
                schedule = model.to_dto()
                caught_up = catch_up(schedule.cadence, model.next_run_date, self._clock.today())
                if model.end_date is not None and caught_up > model.end_date:
                    require_transition(SCHEDULE_WORKFLOW, model.status, ScheduleStatus.COMPLETED)
                    target = ScheduleStatus.COMPLETED
                    action = ActivityAction.SCHEDULE_COMPLETED
                    model.next_run_date = None
                else:
                    model.next_run_date = caught_up
            elif target is ScheduleStatus.CANCELLED:
                model.next_run_date = None

            model.status = target.value
            model.updated_by_id = ctx.effective_actor_id
            self._session.flush()
            self._audit.record(
                ctx,
                entity_type=ENTITY_TYPE,
                entity_id=model.id,
                entity_name=model.title,
                action=action,
                old_values=old_values,
                new_values={"status": model.status, "next_run_date": model.next_run_date},
            )
            self._session.commit()
        except InvalidTransitionError as exc:
            self._session.rollback()
            logger.warning(
                "schedule_transition_rejected",
                extra={
                    "schedule_id": str(schedule_id),
                    "from_state": exc.from_state,
                    "to_state": exc.to_state,
                },
            )
            raise
        except Exception:
            self._session.rollback()
            raise
        logger.info(
            "schedule_status_changed",
            extra={
                "schedule_id": str(schedule_id),
                "from_state": old_values["status"],
                "to_state": model.status,
                "next_run_date": model.next_run_date.isoformat() if model.next_run_date else None,
            },
        )
        return model.to_dto()

    def pause(self, ctx: TenantContext, schedule_id: UUID) -> RecurrenceSchedule:
        """
        Pause an active schedule.  ``next_run_date`` is kept as-is.

        Raises:
            InvalidTransitionError: If the schedule is not active.
        """
        return self._change_status(
            ctx, schedule_id, ScheduleStatus.PAUSED, ActivityAction.SCHEDULE_PAUSED
        )

    def resume(self, ctx: TenantContext, schedule_id: UUID) -> RecurrenceSchedule:
        """
        Resume a paused schedule.

        A ``next_run_date`` left in the past while paused is stepped forward
        to today or later; missed occurrences are not invoiced.  If that
        passes the end date the schedule completes instead.

        Raises:
            InvalidTransitionError: If the schedule is not paused.
        """
        return self._change_status(
            ctx, schedule_id, ScheduleStatus.ACTIVE, ActivityAction.SCHEDULE_RESUMED
        )

    def cancel(self, ctx: TenantContext, schedule_id: UUID) -> RecurrenceSchedule:
        """
        Cancel an active or paused schedule and clear its next run date.

        Raises:
            InvalidTransitionError: If the schedule is already completed or
                cancelled.
        """
        return self._change_status(
            ctx, schedule_id, ScheduleStatus.CANCELLED, ActivityAction.SCHEDULE_CANCELLED
        )
