"""
Invoicing Module Service - invoice CRUD, line items, totals and status.

Every public method takes an explicit ``TenantContext``; every query filters
on ``ctx.tenant_id``.  Each public method owns its transaction: it commits
on success and rolls back on failure.

``stage_invoice`` is the one method that does NOT commit.  It builds and
flushes an invoice inside the caller's transaction so that the recurring
generator and proposal conversion can persist an invoice together with
their own changes atomically.

Usage:
    service = InvoiceService(session, clock=clock)
    invoice = service.create_invoice(
        ctx,
        client_id=client_id,
        lines=[LineItemInput("Retainer", Decimal("1"), Decimal("100.00"))],
        tax_rate=Decimal("10"),
    )
    invoice = service.update_status(ctx, invoice.id, InvoiceStatus.SENT)
"""

from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal
from typing import Sequence
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from billing_kernel.db.types import ZERO, to_decimal, validate_currency
from billing_kernel.domain.clock import Clock, SystemClock
from billing_kernel.domain.context import TenantContext
from billing_kernel.domain.workflow import require_transition
from billing_kernel.exceptions import (
    InvalidTransitionError,
    InvoiceImmutableError,
    InvoiceNotFoundError,
    LineItemNotFoundError,
)
from billing_kernel.logging_config import get_logger
from billing_kernel.models.activity_log import ActivityAction
from billing_kernel.services.audit_service import AuditService
from billing_kernel.services.sequence_service import SequenceService
from billing_modules.invoicing.config import InvoicingConfig, payment_terms_days
from billing_modules.invoicing.models import (
    Invoice,
    InvoiceStatus,
    LineItemInput,
    compute_totals,
    line_amount,
)
from billing_modules.invoicing.orm import InvoiceLineModel, InvoiceModel
from billing_modules.invoicing.workflows import INVOICE_WORKFLOW

logger = get_logger("modules.invoicing.service")

ENTITY_TYPE = "invoice"


class InvoiceService:
    """
    Manages invoices for one session.

    Transaction boundary: public methods commit on success, roll back on
    failure.  ``stage_invoice`` and ``apply_status`` flush only.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: InvoicingConfig | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._config = config or InvoicingConfig()
        self._sequences = SequenceService(session)
        self._audit = AuditService(session, self._clock)

    # =========================================================================
    # Queries
    # =========================================================================

    def _load(self, ctx: TenantContext, invoice_id: UUID, *, for_update: bool = False) -> InvoiceModel:
        stmt = select(InvoiceModel).where(
            InvoiceModel.id == invoice_id,
            InvoiceModel.tenant_id == ctx.tenant_id,
        )
        if for_update:
            stmt = stmt.with_for_update()
        model = self._session.execute(stmt).scalar_one_or_none()
        if model is None:
            raise InvoiceNotFoundError(str(invoice_id))
        return model

    def get_invoice(self, ctx: TenantContext, invoice_id: UUID) -> Invoice:
        """
        Fetch one invoice.

        Raises:
            InvoiceNotFoundError: If the id is unknown or belongs to another tenant.
        """
        return self._load(ctx, invoice_id).to_dto()

    def list_invoices(
        self,
        ctx: TenantContext,
        *,
        status: InvoiceStatus | None = None,
        client_id: UUID | None = None,
    ) -> list[Invoice]:
        """Invoices for the tenant, newest issue date first."""
        stmt = select(InvoiceModel).where(InvoiceModel.tenant_id == ctx.tenant_id)
        if status is not None:
            stmt = stmt.where(InvoiceModel.status == status.value)
        if client_id is not None:
            stmt = stmt.where(InvoiceModel.client_id == client_id)
        stmt = stmt.order_by(InvoiceModel.issue_date.desc(), InvoiceModel.invoice_number.desc())
        return [m.to_dto() for m in self._session.execute(stmt).scalars()]

    # =========================================================================
    # Creation
    # =========================================================================

    def stage_invoice(
        self,
        ctx: TenantContext,
        *,
        client_id: UUID,
        lines: Sequence[LineItemInput],
        issue_date: date | None = None,
        due_date: date | None = None,
        payment_terms: str | int | None = None,
        tax_rate: Decimal = ZERO,
        discount_amount: Decimal = ZERO,
        currency: str | None = None,
        project_id: UUID | None = None,
        notes: str | None = None,
        terms: str | None = None,
        recurring_schedule_id: UUID | None = None,
        occurrence_date: date | None = None,
    ) -> InvoiceModel:
        """
        Build a draft invoice with lines and totals and flush it.

        Does NOT commit.  The invoice number is allocated from the tenant's
        locked counter for the issue year.

        Raises:
            ValueError: On invalid amounts, rates or payment terms.
        """
        issue = issue_date or self._clock.today()
        if due_date is None:
            days = payment_terms_days(payment_terms, self._config.default_payment_terms_days)
            due_date = issue + timedelta(days=days)
        if due_date < issue:
            raise ValueError(f"due_date {due_date} is before issue_date {issue}")

        tax_rate = to_decimal(tax_rate)
        discount_amount = to_decimal(discount_amount)
        amounts = [line_amount(item.quantity, item.unit_price) for item in lines]
        totals = compute_totals(amounts, tax_rate, discount_amount)

        invoice_id = uuid4()
        actor_id = ctx.effective_actor_id
        model = InvoiceModel(
            id=invoice_id,
            tenant_id=ctx.tenant_id,
            client_id=client_id,
            project_id=project_id,
            invoice_number=self._sequences.next_document_number(
                ctx.tenant_id,
                self._config.invoice_number_prefix,
                issue.year,
                self._config.invoice_number_width,
            ),
            issue_date=issue,
            due_date=due_date,
            currency=validate_currency(currency or self._config.default_currency),
            subtotal=totals.subtotal,
            tax_rate=tax_rate,
            tax_amount=totals.tax_amount,
            discount_amount=totals.discount_amount,
            total=totals.total,
            status=INVOICE_WORKFLOW.initial_state,
            notes=notes,
            terms=terms if terms is not None else self._config.default_terms_text,
            recurring_schedule_id=recurring_schedule_id,
            occurrence_date=occurrence_date,
            created_by_id=actor_id,
        )
        for index, (item, amount) in enumerate(zip(lines, amounts)):
            model.lines.append(
                InvoiceLineModel(
                    id=uuid4(),
                    invoice_id=invoice_id,
                    sort_order=index,
                    description=item.description,
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                    amount=amount,
                    created_by_id=actor_id,
                )
            )
        self._session.add(model)
        self._session.flush()

        self._audit.record(
            ctx,
            entity_type=ENTITY_TYPE,
            entity_id=model.id,
            entity_name=model.invoice_number,
            action=ActivityAction.INVOICE_GENERATED if recurring_schedule_id else ActivityAction.INVOICE_CREATED,
            new_values={
                "invoice_number": model.invoice_number,
                "client_id": client_id,
                "total": totals.total,
                "line_count": len(amounts),
            },
        )
        logger.info(
            "invoice_staged",
            extra={
                "invoice_id": str(model.id),
                "invoice_number": model.invoice_number,
                "total": str(totals.total),
                "line_count": len(amounts),
            },
        )
        return model

    def create_invoice(self, ctx: TenantContext, **kwargs) -> Invoice:
        """
        Create and commit a draft invoice.

        Accepts the keyword arguments of ``stage_invoice``.
        """
        try:
            model = self.stage_invoice(ctx, **kwargs)
            self._session.commit()
        except Exception:
            self._session.rollback()
            raise
        logger.info(
            "invoice_created",
            extra={"invoice_id": str(model.id), "invoice_number": model.invoice_number},
        )
        return model.to_dto()

    # =========================================================================
    # Draft edits
    # =========================================================================

    def _require_draft(self, model: InvoiceModel) -> None:
        if model.status != InvoiceStatus.DRAFT.value:
            raise InvoiceImmutableError(str(model.id), model.status)

    def _recalculate(self, model: InvoiceModel) -> None:
        totals = compute_totals(
            (line.amount for line in model.lines),
            model.tax_rate,
            model.discount_amount,
        )
        model.subtotal = totals.subtotal
        model.tax_amount = totals.tax_amount
        model.discount_amount = totals.discount_amount
        model.total = totals.total

    def _find_line(self, model: InvoiceModel, line_id: UUID) -> InvoiceLineModel:
        for line in model.lines:
            if line.id == line_id:
                return line
        raise LineItemNotFoundError(str(model.id), str(line_id))

    def _commit_edit(
        self,
        ctx: TenantContext,
        model: InvoiceModel,
        action: ActivityAction,
        old_values: dict,
        new_values: dict,
    ) -> Invoice:
        model.updated_by_id = ctx.effective_actor_id
        self._session.flush()
        self._audit.record(
            ctx,
            entity_type=ENTITY_TYPE,
            entity_id=model.id,
            entity_name=model.invoice_number,
            action=action,
            old_values=old_values,
            new_values=new_values,
        )
        self._session.commit()
        return model.to_dto()

    def add_line(
        self,
        ctx: TenantContext,
        invoice_id: UUID,
        item: LineItemInput,
    ) -> Invoice:
        """
        Append a line item to a draft invoice and recompute totals.

        Raises:
            InvoiceImmutableError: If the invoice is not a draft.
        """
        try:
            model = self._load(ctx, invoice_id, for_update=True)
            self._require_draft(model)
            old_total = model.total
            next_order = max((line.sort_order for line in model.lines), default=-1) + 1
            line = InvoiceLineModel(
                id=uuid4(),
                invoice_id=model.id,
                sort_order=next_order,
                description=item.description,
                quantity=item.quantity,
                unit_price=item.unit_price,
                amount=line_amount(item.quantity, item.unit_price),
                created_by_id=ctx.effective_actor_id,
            )
            model.lines.append(line)
            self._recalculate(model)
            result = self._commit_edit(
                ctx,
                model,
                ActivityAction.INVOICE_LINE_ADDED,
                {"total": old_total},
                {"line_id": line.id, "description": line.description, "total": model.total},
            )
        except Exception:
            self._session.rollback()
            raise
        logger.info(
            "invoice_line_added",
            extra={"invoice_id": str(invoice_id), "total": str(result.total)},
        )
        return result

    def update_line(
        self,
        ctx: TenantContext,
        invoice_id: UUID,
        line_id: UUID,
        *,
        description: str | None = None,
        quantity: Decimal | None = None,
        unit_price: Decimal | None = None,
    ) -> Invoice:
        """
        Edit a line item on a draft invoice and recompute totals.

        Raises:
            InvoiceImmutableError: If the invoice is not a draft.
            LineItemNotFoundError: If the line is not on this invoice.
        """
        try:
            model = self._load(ctx, invoice_id, for_update=True)
            self._require_draft(model)
            line = self._find_line(model, line_id)
            old = {
                "description": line.description,
                "quantity": line.quantity,
                "unit_price": line.unit_price,
            }
            edited = LineItemInput(
                description=description if description is not None else line.description,
                quantity=quantity if quantity is not None else line.quantity,
                unit_price=unit_price if unit_price is not None else line.unit_price,
            )
            line.description = edited.description
            line.quantity = edited.quantity
            line.unit_price = edited.unit_price
            line.amount = line_amount(edited.quantity, edited.unit_price)
            line.updated_by_id = ctx.effective_actor_id
            self._recalculate(model)
            result = self._commit_edit(
                ctx,
                model,
                ActivityAction.INVOICE_LINE_UPDATED,
                old,
                {
                    "description": edited.description,
                    "quantity": edited.quantity,
                    "unit_price": edited.unit_price,
                },
            )
        except Exception:
            self._session.rollback()
            raise
        logger.info(
            "invoice_line_updated",
            extra={"invoice_id": str(invoice_id), "line_id": str(line_id)},
        )
        return result

    def remove_line(self, ctx: TenantContext, invoice_id: UUID, line_id: UUID) -> Invoice:
        """
        Delete a line item from a draft invoice and recompute totals.

        Raises:
            InvoiceImmutableError: If the invoice is not a draft.
            LineItemNotFoundError: If the line is not on this invoice.
        """
        try:
            model = self._load(ctx, invoice_id, for_update=True)
            self._require_draft(model)
            line = self._find_line(model, line_id)
            old = {"line_id": line.id, "description": line.description, "amount": line.amount}
            model.lines.remove(line)
            self._recalculate(model)
            result = self._commit_edit(
                ctx,
                model,
                ActivityAction.INVOICE_LINE_REMOVED,
                old,
                {"total": model.total},
            )
        except Exception:
            self._session.rollback()
            raise
        logger.info(
            "invoice_line_removed",
            extra={"invoice_id": str(invoice_id), "line_id": str(line_id)},
        )
        return result

    def update_draft(
        self,
        ctx: TenantContext,
        invoice_id: UUID,
        *,
        issue_date: date | None = None,
        due_date: date | None = None,
        tax_rate: Decimal | None = None,
        discount_amount: Decimal | None = None,
        notes: str | None = None,
        terms: str | None = None,
    ) -> Invoice:
        """
        Edit header fields of a draft invoice.  Totals are recomputed when the
        tax rate or discount changes.

        Raises:
            InvoiceImmutableError: If the invoice is not a draft.
            ValueError: If due_date would fall before issue_date.
        """
        try:
            model = self._load(ctx, invoice_id, for_update=True)
            self._require_draft(model)
            changes = {
                "issue_date": issue_date,
                "due_date": due_date,
                "tax_rate": to_decimal(tax_rate) if tax_rate is not None else None,
                "discount_amount": (
                    to_decimal(discount_amount) if discount_amount is not None else None
                ),
                "notes": notes,
                "terms": terms,
            }
            changes = {k: v for k, v in changes.items() if v is not None}
            old = {k: getattr(model, k) for k in changes}
            for key, value in changes.items():
                setattr(model, key, value)
            if model.due_date < model.issue_date:
                raise ValueError(
                    f"due_date {model.due_date} is before issue_date {model.issue_date}"
                )
            self._recalculate(model)
            result = self._commit_edit(
                ctx, model, ActivityAction.INVOICE_UPDATED, old, changes
            )
        except Exception:
            self._session.rollback()
            raise
        logger.info(
            "invoice_draft_updated",
            extra={"invoice_id": str(invoice_id), "fields": sorted(changes)},
        )
        return result

    # =========================================================================
    # Status
    # =========================================================================

    def apply_status(
        self,
        ctx: TenantContext,
        model: InvoiceModel,
        new_status: InvoiceStatus,
    ) -> None:
        """
        Validate and apply a status change in the caller's transaction.

        The model is left untouched when the transition is rejected.

        Raises:
            InvalidTransitionError: If the pair is not in INVOICE_WORKFLOW.
        """
        old_status = model.status
        transition = require_transition(INVOICE_WORKFLOW, old_status, new_status)
        model.status = new_status.value
        if transition.stamps is not None:
            setattr(model, transition.stamps, self._clock.now())
        model.updated_by_id = ctx.effective_actor_id
        self._session.flush()
        self._audit.record(
            ctx,
            entity_type=ENTITY_TYPE,
            entity_id=model.id,
            entity_name=model.invoice_number,
            action=ActivityAction.INVOICE_STATUS_CHANGED,
            description=f"{transition.action}: {old_status} -> {new_status.value}",
            old_values={"status": old_status},
            new_values={"status": new_status.value},
        )

    def update_status(
        self,
        ctx: TenantContext,
        invoice_id: UUID,
        new_status: InvoiceStatus,
    ) -> Invoice:
        """
        Move an invoice to ``new_status``.

        Sets ``sent_at`` / ``viewed_at`` / ``paid_at`` from the clock when
        entering sent / viewed / paid.

        Raises:
            InvoiceNotFoundError: If the invoice is unknown for the tenant.
            InvalidTransitionError: If the change is not allowed; nothing is
                modified.
        """
        try:
            model = self._load(ctx, invoice_id, for_update=True)
            old_status = model.status
            self.apply_status(ctx, model, new_status)
            self._session.commit()
        except InvalidTransitionError as exc:
            self._session.rollback()
            logger.warning(
                "invoice_transition_rejected",
                extra={
                    "invoice_id": str(invoice_id),
                    "from_state": exc.from_state,
                    "to_state": exc.to_state,
                },
            )
            raise
        except Exception:
            self._session.rollback()
            raise
        logger.info(
            "invoice_status_changed",
            extra={
                "invoice_id": str(invoice_id),
                "from_state": old_status,
                "to_state": new_status.value,
            },
        )
        return model.to_dto()

    def mark_overdue(self, ctx: TenantContext, as_of: date | None = None) -> list[Invoice]:
        """
        Move sent/viewed invoices whose due date has passed to overdue.

        Returns:
            The invoices that changed status.
        """
        today = as_of or self._clock.today()
        try:
            models = list(
                self._session.execute(
                    select(InvoiceModel)
                    .where(
                        InvoiceModel.tenant_id == ctx.tenant_id,
                        InvoiceModel.status.in_(self._config.overdue_from_statuses),
                        InvoiceModel.due_date < today,
                    )
                    .order_by(InvoiceModel.due_date)
                    .with_for_update()
                ).scalars()
            )
            for model in models:
                self.apply_status(ctx, model, InvoiceStatus.OVERDUE)
            self._session.commit()
        except Exception:
            self._session.rollback()
            raise
        logger.info(
            "invoices_marked_overdue",
            extra={"as_of": today.isoformat(), "count": len(models)},
        )
        return [m.to_dto() for m in models]
