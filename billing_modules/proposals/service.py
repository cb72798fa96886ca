"""
Proposal Service - proposals, signatures and conversion to invoices.

Transaction boundary: each public method commits on success and rolls
back on failure.  ``convert_to_invoice`` stages the invoice through
``InvoiceService.stage_invoice`` so the invoice and the proposal's
``converted_to_invoice_id`` are written in one transaction.
"""

from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal
from typing import Sequence
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from billing_kernel.db.types import ZERO, percent_of, to_decimal, validate_currency
from billing_kernel.domain.clock import Clock, SystemClock
from billing_kernel.domain.context import TenantContext
from billing_kernel.domain.workflow import require_transition
from billing_kernel.exceptions import (
    InvalidTransitionError,
    ProposalNotAcceptedError,
    ProposalNotFoundError,
)
from billing_kernel.logging_config import get_logger
from billing_kernel.models.activity_log import ActivityAction
from billing_kernel.services.audit_service import AuditService
from billing_kernel.services.sequence_service import SequenceService
from billing_modules.invoicing.config import InvoicingConfig
from billing_modules.invoicing.models import Invoice, LineItemInput, line_amount
from billing_modules.invoicing.service import InvoiceService
from billing_modules.proposals.config import ProposalConfig
from billing_modules.proposals.models import (
    Proposal,
    ProposalSectionInput,
    ProposalStatus,
    compute_proposal_totals,
)
from billing_modules.proposals.orm import ProposalModel, ProposalSectionModel
from billing_modules.proposals.workflows import PROPOSAL_WORKFLOW

logger = get_logger("modules.proposals.service")

ENTITY_TYPE = "proposal"


class ProposalService:
    """Manages proposals for one session."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: ProposalConfig | None = None,
        invoicing_config: InvoicingConfig | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._config = config or ProposalConfig()
        self._sequences = SequenceService(session)
        self._audit = AuditService(session, self._clock)
        self._invoices = InvoiceService(session, self._clock, invoicing_config)

    def _load(self, ctx: TenantContext, proposal_id: UUID, *, for_update: bool = False) -> ProposalModel:
        stmt = select(ProposalModel).where(
            ProposalModel.id == proposal_id,
            ProposalModel.tenant_id == ctx.tenant_id,
        )
        if for_update:
            stmt = stmt.with_for_update()
        model = self._session.execute(stmt).scalar_one_or_none()
        if model is None:
            raise ProposalNotFoundError(str(proposal_id))
        return model

    def get_proposal(self, ctx: TenantContext, proposal_id: UUID) -> Proposal:
        return self._load(ctx, proposal_id).to_dto()

    def list_proposals(
        self,
        ctx: TenantContext,
        *,
        status: ProposalStatus | None = None,
        client_id: UUID | None = None,
    ) -> list[Proposal]:
        stmt = select(ProposalModel).where(ProposalModel.tenant_id == ctx.tenant_id)
        if status is not None:
            stmt = stmt.where(ProposalModel.status == status.value)
        if client_id is not None:
            stmt = stmt.where(ProposalModel.client_id == client_id)
        stmt = stmt.order_by(ProposalModel.proposal_number.desc())
        return [m.to_dto() for m in self._session.execute(stmt).scalars()]

    def create_proposal(
        self,
        ctx: TenantContext,
        *,
        client_id: UUID,
        title: str,
        sections: Sequence[ProposalSectionInput],
        discount_percent: Decimal = ZERO,
        tax_rate: Decimal = ZERO,
        currency: str | None = None,
        valid_until: date | None = None,
        introduction: str | None = None,
        conclusion: str | None = None,
        terms_conditions: str | None = None,
    ) -> Proposal:
        """
        Create a draft proposal numbered ``PROP-YYYY-NNNN``.

        Totals come from the selected sections only.

        Raises:
            ValueError: On an empty title, no sections, or a percentage
                outside 0-100.
        """
        if not title or not title.strip():
            raise ValueError("Proposal title cannot be empty")
        if not sections:
            raise ValueError("A proposal needs at least one section")

        today = self._clock.today()
        discount_percent = to_decimal(discount_percent)
        tax_rate = to_decimal(tax_rate)
        amounts = [line_amount(s.quantity, s.unit_price) for s in sections]
        totals = compute_proposal_totals(
            (a for s, a in zip(sections, amounts) if s.is_selected),
            discount_percent,
            tax_rate,
        )

        try:
            proposal_id = uuid4()
            actor_id = ctx.effective_actor_id
            model = ProposalModel(
                id=proposal_id,
                tenant_id=ctx.tenant_id,
                client_id=client_id,
                proposal_number=self._sequences.next_document_number(
                    ctx.tenant_id,
                    self._config.proposal_number_prefix,
                    today.year,
                    self._config.proposal_number_width,
                ),
                title=title.strip(),
                introduction=introduction,
                conclusion=conclusion,
                terms_conditions=terms_conditions,
                currency=validate_currency(currency or self._config.default_currency),
                subtotal=totals.subtotal,
                discount_percent=discount_percent,
                discount_amount=totals.discount_amount,
                tax_rate=tax_rate,
                tax_amount=totals.tax_amount,
                total=totals.total,
                status=PROPOSAL_WORKFLOW.initial_state,
                valid_until=valid_until or today + timedelta(days=self._config.validity_days),
                created_by_id=actor_id,
            )
            for index, (section, amount) in enumerate(zip(sections, amounts)):
                model.sections.append(
                    ProposalSectionModel(
                        id=uuid4(),
                        proposal_id=proposal_id,
                        sort_order=index,
                        title=section.title,
                        description=section.description,
                        quantity=section.quantity,
                        unit_price=section.unit_price,
                        total_price=amount,
                        is_selected=section.is_selected,
                        created_by_id=actor_id,
                    )
                )
            self._session.add(model)
            self._session.flush()
            self._audit.record(
                ctx,
                entity_type=ENTITY_TYPE,
                entity_id=model.id,
                entity_name=model.proposal_number,
                action=ActivityAction.PROPOSAL_CREATED,
                new_values={"proposal_number": model.proposal_number, "total": totals.total},
            )
            self._session.commit()
        except Exception:
            self._session.rollback()
            raise
        logger.info(
            "proposal_created",
            extra={
                "proposal_id": str(model.id),
                "proposal_number": model.proposal_number,
                "total": str(totals.total),
            },
        )
        return model.to_dto()

    def _apply_status(
        self,
        ctx: TenantContext,
        model: ProposalModel,
        new_status: ProposalStatus,
        action: ActivityAction = ActivityAction.PROPOSAL_STATUS_CHANGED,
        extra_values: dict | None = None,
    ) -> None:
        old_status = model.status
        transition = require_transition(PROPOSAL_WORKFLOW, old_status, new_status)
        model.status = new_status.value
        if transition.stamps is not None:
            setattr(model, transition.stamps, self._clock.now())
        model.updated_by_id = ctx.effective_actor_id
        self._session.flush()
        self._audit.record(
            ctx,
            entity_type=ENTITY_TYPE,
            entity_id=model.id,
            entity_name=model.proposal_number,
            action=action,
            description=f"{transition.action}: {old_status} -> {new_status.value}",
            old_values={"status": old_status},
            new_values={"status": new_status.value, **(extra_values or {})},
        )

    def _run_transition(self, ctx: TenantContext, proposal_id: UUID, mutate) -> Proposal:
        try:
            model = self._load(ctx, proposal_id, for_update=True)
            old_status = model.status
            mutate(model)
            self._session.commit()
        except InvalidTransitionError as exc:
            self._session.rollback()
            logger.warning(
                "proposal_transition_rejected",
                extra={
                    "proposal_id": str(proposal_id),
                    "from_state": exc.from_state,
                    "to_state": exc.to_state,
                },
            )
            raise
        except Exception:
            self._session.rollback()
            raise
        logger.info(
            "proposal_status_changed",
            extra={
                "proposal_id": str(proposal_id),
                "from_state": old_status,
                "to_state": model.status,
            },
        )
        return model.to_dto()

    def update_status(
        self,
        ctx: TenantContext,
        proposal_id: UUID,
        new_status: ProposalStatus,
        *,
        rejection_reason: str | None = None,
    ) -> Proposal:
        """
        Move a proposal to ``new_status``, stamping the matching timestamp.

        Raises:
            ProposalNotFoundError: If the proposal is unknown for the tenant.
            InvalidTransitionError: If the change is not allowed; nothing is
                modified.
        """
        def mutate(model: ProposalModel) -> None:
            self._apply_status(ctx, model, new_status)
            if new_status is ProposalStatus.REJECTED:
                model.rejection_reason = rejection_reason

        return self._run_transition(ctx, proposal_id, mutate)

    def sign(self, ctx: TenantContext, proposal_id: UUID, *, name: str, email: str) -> Proposal:
        """
        Record the client's signature and accept the proposal.

        Raises:
            InvalidTransitionError: Unless the proposal is sent or viewed.
            ValueError: On an empty name or email.
        """
        if not name or not name.strip():
            raise ValueError("Signer name cannot be empty")
        if not email or "@" not in email:
            raise ValueError(f"Signer email is not valid: {email!r}")

        def mutate(model: ProposalModel) -> None:
            self._apply_status(
                ctx,
                model,
                ProposalStatus.ACCEPTED,
                action=ActivityAction.PROPOSAL_SIGNED,
                extra_values={"signed_name": name.strip(), "signed_email": email},
            )
            model.signed_name = name.strip()
            model.signed_email = email
            model.signed_at = self._clock.now()

        return self._run_transition(ctx, proposal_id, mutate)

    def convert_to_invoice(self, ctx: TenantContext, proposal_id: UUID) -> Invoice:
        """
        Create a draft invoice from the selected sections of an accepted
        proposal.  Converting twice returns the invoice from the first call.

        The invoice total equals the proposal total.

        Raises:
            ProposalNotAcceptedError: If the proposal is not accepted.
        """
        try:
            model = self._load(ctx, proposal_id, for_update=True)
            if model.status != ProposalStatus.ACCEPTED.value:
                raise ProposalNotAcceptedError(str(proposal_id), model.status)
            if model.converted_to_invoice_id is not None:
                existing = self._invoices.get_invoice(ctx, model.converted_to_invoice_id)
                self._session.rollback()
                logger.info(
                    "proposal_already_converted",
                    extra={"proposal_id": str(proposal_id), "invoice_id": str(existing.id)},
                )
                return existing

            proposal = model.to_dto()
            if not proposal.selected_sections:
                raise ValueError(f"Proposal {proposal.proposal_number} has no selected sections")
            # Invoices subtract a fixed discount after tax; fold the pre-tax
            # percentage discount into it so the accepted total carries over.
            invoice_tax = percent_of(proposal.subtotal, proposal.tax_rate)
            discount = max(proposal.subtotal + invoice_tax - proposal.total, ZERO)

            invoice_model = self._invoices.stage_invoice(
                ctx,
                client_id=proposal.client_id,
                lines=[
                    LineItemInput(
                        description=s.line_description,
                        quantity=s.quantity,
                        unit_price=s.unit_price,
                    )
                    for s in proposal.selected_sections
                ],
                payment_terms=self._config.invoice_payment_terms_days,
                tax_rate=proposal.tax_rate,
                discount_amount=discount,
                currency=proposal.currency,
                notes=f"Generated from Proposal: {proposal.proposal_number}",
                terms=proposal.terms_conditions,
            )
            model.converted_to_invoice_id = invoice_model.id
            model.updated_by_id = ctx.effective_actor_id
            self._session.flush()
            self._audit.record(
                ctx,
                entity_type=ENTITY_TYPE,
                entity_id=model.id,
                entity_name=model.proposal_number,
                action=ActivityAction.PROPOSAL_CONVERTED,
                new_values={
                    "invoice_id": invoice_model.id,
                    "invoice_number": invoice_model.invoice_number,
                },
            )
            self._session.commit()
        except Exception:
            self._session.rollback()
            raise
        logger.info(
            "proposal_converted",
            extra={
                "proposal_id": str(proposal_id),
                "invoice_id": str(invoice_model.id),
                "invoice_number": invoice_model.invoice_number,
            },
        )
        return invoice_model.to_dto()

    def expire_overdue(self, ctx: TenantContext, as_of: date | None = None) -> list[Proposal]:
        """Move sent/viewed proposals whose valid_until has passed to expired."""
        today = as_of or self._clock.today()
        try:
            models = list(
                self._session.execute(
                    select(ProposalModel)
                    .where(
                        ProposalModel.tenant_id == ctx.tenant_id,
                        ProposalModel.status.in_(
                            (ProposalStatus.SENT.value, ProposalStatus.VIEWED.value)
                        ),
                        ProposalModel.valid_until < today,
                    )
                    .order_by(ProposalModel.valid_until)
                    .with_for_update()
                ).scalars()
            )
            for model in models:
                self._apply_status(ctx, model, ProposalStatus.EXPIRED)
            self._session.commit()
        except Exception:
            self._session.rollback()
            raise
        logger.info(
            "proposals_expired",
            extra={"as_of": today.isoformat(), "count": len(models)},
        )
        return [m.to_dto() for m in models]
