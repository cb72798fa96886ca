"""
Tests for InvoiceService: creation, numbering, draft edits and status.
"""

from datetime import date, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from billing_kernel.exceptions import (
    InvalidTransitionError,
    InvoiceImmutableError,
    InvoiceNotFoundError,
    LineItemNotFoundError,
)
from billing_kernel.services.audit_service import AuditService
from billing_modules.invoicing.config import InvoicingConfig
from billing_modules.invoicing.models import InvoiceStatus, LineItemInput, compute_totals
from billing_modules.invoicing.service import InvoiceService


@pytest.fixture
def draft(invoice_service, ctx, client):
    return invoice_service.create_invoice(
        ctx,
        client_id=client.id,
        lines=[
            LineItemInput("Design", Decimal("2"), Decimal("50.00")),
            LineItemInput("Hosting", Decimal("1"), Decimal("25.50")),
        ],
        tax_rate=Decimal("10"),
        discount_amount=Decimal("5"),
    )


class TestComputeTotals:
    def test_formula(self):
        totals = compute_totals([Decimal("100.00"), Decimal("25.50")], Decimal("10"), Decimal("5"))
        assert totals.subtotal == Decimal("125.50")
        assert totals.tax_amount == Decimal("12.55")
        assert totals.total == Decimal("133.05")

    def test_tax_rounds_half_up(self):
        totals = compute_totals([Decimal("0.05")], Decimal("10"))
        assert totals.tax_amount == Decimal("0.01")

    def test_discount_larger_than_total(self):
        with pytest.raises(ValueError, match="exceeds"):
            compute_totals([Decimal("10")], Decimal("0"), Decimal("10.01"))

    @pytest.mark.parametrize("rate", [Decimal("-1"), Decimal("100.01")])
    def test_tax_rate_range(self, rate):
        with pytest.raises(ValueError, match="tax_rate"):
            compute_totals([Decimal("10")], rate)


class TestCreateInvoice:
    def test_totals_and_lines(self, draft):
        assert draft.status is InvoiceStatus.DRAFT
        assert draft.subtotal == Decimal("125.50")
        assert draft.tax_amount == Decimal("12.55")
        assert draft.discount_amount == Decimal("5.00")
        assert draft.total == Decimal("133.05")
        assert [line.amount for line in draft.lines] == [Decimal("100.00"), Decimal("25.50")]
        assert [line.sort_order for line in draft.lines] == [0, 1]

    def test_number_and_dates(self, draft):
        assert draft.invoice_number == "INV-2024-0001"
        assert draft.issue_date == date(2024, 1, 31)
        assert draft.due_date == date(2024, 3, 1)
        assert draft.currency == "USD"

    def test_numbers_increase_per_tenant(self, invoice_service, ctx, other_ctx, client, retainer_lines):
        second = invoice_service.create_invoice(ctx, client_id=client.id, lines=retainer_lines)
        third = invoice_service.create_invoice(ctx, client_id=client.id, lines=retainer_lines)
        foreign = invoice_service.create_invoice(other_ctx, client_id=uuid4(), lines=retainer_lines)
        assert (second.invoice_number, third.invoice_number) == ("INV-2024-0001", "INV-2024-0002")
        assert foreign.invoice_number == "INV-2024-0001"

    def test_named_payment_terms(self, invoice_service, ctx, client, retainer_lines):
        invoice = invoice_service.create_invoice(
            ctx, client_id=client.id, lines=retainer_lines, payment_terms="net_15"
        )
        assert invoice.due_date == invoice.issue_date + timedelta(days=15)

    def test_unknown_payment_terms_writes_nothing(self, invoice_service, ctx, client, retainer_lines):
        with pytest.raises(ValueError, match="Unknown payment terms"):
            invoice_service.create_invoice(
                ctx, client_id=client.id, lines=retainer_lines, payment_terms="net_7"
            )
        assert invoice_service.list_invoices(ctx) == []

    def test_configured_prefix_and_currency(self, session, clock, ctx, client, retainer_lines):
        service = InvoiceService(
            session, clock, InvoicingConfig(invoice_number_prefix="ACME", default_currency="eur")
        )
        invoice = service.create_invoice(ctx, client_id=client.id, lines=retainer_lines)
        assert invoice.invoice_number == "ACME-2024-0001"
        assert invoice.currency == "EUR"

    def test_float_tax_rate_rejected(self, invoice_service, ctx, client, retainer_lines):
        with pytest.raises(ValueError, match="float"):
            invoice_service.create_invoice(
                ctx, client_id=client.id, lines=retainer_lines, tax_rate=0.1
            )

    def test_audit_entry(self, session, clock, ctx, draft):
        history = AuditService(session, clock).history(ctx, "invoice", draft.id)
        assert [entry.action for entry in history] == ["invoice_created"]
        assert history[0].actor_id == ctx.actor_id
        assert history[0].correlation_id == ctx.correlation_id


class TestLineItemInput:
    def test_blank_description(self):
        with pytest.raises(ValueError, match="description"):
            LineItemInput("  ", Decimal("1"), Decimal("1"))

    def test_zero_quantity(self):
        with pytest.raises(ValueError, match="quantity"):
            LineItemInput("Work", Decimal("0"), Decimal("1"))

    def test_negative_price(self):
        with pytest.raises(ValueError, match="unit_price"):
            LineItemInput("Work", Decimal("1"), Decimal("-1"))


class TestDraftEdits:
    def test_add_line(self, invoice_service, ctx, draft):
        updated = invoice_service.add_line(
            ctx, draft.id, LineItemInput("Extra", Decimal("3"), Decimal("10.00"))
        )
        assert len(updated.lines) == 3
        assert updated.lines[-1].sort_order == 2
        assert updated.subtotal == Decimal("155.50")
        assert updated.total == Decimal("155.50") + Decimal("15.55") - Decimal("5.00")

    def test_update_line(self, invoice_service, ctx, draft):
        line = draft.lines[0]
        updated = invoice_service.update_line(ctx, draft.id, line.id, quantity=Decimal("1"))
        assert updated.lines[0].amount == Decimal("50.00")
        assert updated.subtotal == Decimal("75.50")

    def test_remove_line(self, invoice_service, ctx, draft):
        updated = invoice_service.remove_line(ctx, draft.id, draft.lines[1].id)
        assert [line.description for line in updated.lines] == ["Design"]
        assert updated.subtotal == Decimal("100.00")

    def test_unknown_line(self, invoice_service, ctx, draft):
        with pytest.raises(LineItemNotFoundError):
            invoice_service.remove_line(ctx, draft.id, uuid4())

    def test_update_draft_recomputes(self, invoice_service, ctx, draft):
        updated = invoice_service.update_draft(ctx, draft.id, tax_rate=Decimal("0"), notes="Thanks")
        assert updated.tax_amount == Decimal("0.00")
        assert updated.total == Decimal("120.50")
        assert updated.notes == "Thanks"

    def test_update_draft_rejects_due_before_issue(self, invoice_service, ctx, draft):
        with pytest.raises(ValueError, match="before issue_date"):
            invoice_service.update_draft(ctx, draft.id, due_date=date(2024, 1, 1))
        assert invoice_service.get_invoice(ctx, draft.id).due_date == draft.due_date

    def test_sent_invoice_is_immutable(self, invoice_service, ctx, draft):
        invoice_service.update_status(ctx, draft.id, InvoiceStatus.SENT)
        with pytest.raises(InvoiceImmutableError) as exc_info:
            invoice_service.add_line(
                ctx, draft.id, LineItemInput("Late", Decimal("1"), Decimal("1"))
            )
        assert exc_info.value.status == "sent"
        assert len(invoice_service.get_invoice(ctx, draft.id).lines) == 2


class TestUpdateStatus:
    def test_send_stamps_sent_at(self, invoice_service, ctx, draft):
        sent = invoice_service.update_status(ctx, draft.id, InvoiceStatus.SENT)
        assert sent.status is InvoiceStatus.SENT
        assert sent.sent_at is not None
        assert sent.paid_at is None

    def test_full_payment_path(self, invoice_service, ctx, draft):
        invoice_service.update_status(ctx, draft.id, InvoiceStatus.SENT)
        invoice_service.update_status(ctx, draft.id, InvoiceStatus.VIEWED)
        paid = invoice_service.update_status(ctx, draft.id, InvoiceStatus.PAID)
        assert paid.status is InvoiceStatus.PAID
        assert paid.viewed_at is not None
        assert paid.paid_at is not None

    def test_rejected_transition_mutates_nothing(self, invoice_service, ctx, draft, captured_logs):
        with pytest.raises(InvalidTransitionError) as exc_info:
            invoice_service.update_status(ctx, draft.id, InvoiceStatus.PAID)
        assert exc_info.value.code == "INVALID_TRANSITION"

        reloaded = invoice_service.get_invoice(ctx, draft.id)
        assert reloaded.status is InvoiceStatus.DRAFT
        assert reloaded.paid_at is None
        rejected = [r for r in captured_logs() if r["message"] == "invoice_transition_rejected"]
        assert rejected and rejected[0]["to_state"] == "paid"

    def test_paid_is_terminal(self, invoice_service, ctx, draft):
        invoice_service.update_status(ctx, draft.id, InvoiceStatus.SENT)
        invoice_service.update_status(ctx, draft.id, InvoiceStatus.PAID)
        with pytest.raises(InvalidTransitionError):
            invoice_service.update_status(ctx, draft.id, InvoiceStatus.CANCELLED)

    def test_status_change_is_audited(self, session, clock, invoice_service, ctx, draft):
        invoice_service.update_status(ctx, draft.id, InvoiceStatus.SENT)
        history = AuditService(session, clock).history(ctx, "invoice", draft.id)
        assert history[-1].action == "invoice_status_changed"
        assert history[-1].old_values == {"status": "draft"}
        assert history[-1].new_values == {"status": "sent"}


class TestMarkOverdue:
    def test_only_past_due_sent_invoices(self, invoice_service, ctx, client, retainer_lines, draft):
        invoice_service.update_status(ctx, draft.id, InvoiceStatus.SENT)
        untouched = invoice_service.create_invoice(ctx, client_id=client.id, lines=retainer_lines)

        assert invoice_service.mark_overdue(ctx, as_of=date(2024, 3, 1)) == []
        overdue = invoice_service.mark_overdue(ctx, as_of=date(2024, 3, 2))

        assert [i.id for i in overdue] == [draft.id]
        assert overdue[0].status is InvoiceStatus.OVERDUE
        assert invoice_service.get_invoice(ctx, untouched.id).status is InvoiceStatus.DRAFT


class TestTenantScoping:
    def test_other_tenant_cannot_read(self, invoice_service, other_ctx, draft):
        with pytest.raises(InvoiceNotFoundError):
            invoice_service.get_invoice(other_ctx, draft.id)

    def test_other_tenant_cannot_change_status(self, invoice_service, ctx, other_ctx, draft):
        with pytest.raises(InvoiceNotFoundError):
            invoice_service.update_status(other_ctx, draft.id, InvoiceStatus.SENT)
        assert invoice_service.get_invoice(ctx, draft.id).status is InvoiceStatus.DRAFT

    def test_list_is_scoped(self, invoice_service, ctx, other_ctx, draft):
        assert [i.id for i in invoice_service.list_invoices(ctx)] == [draft.id]
        assert invoice_service.list_invoices(other_ctx) == []
