"""
Invoicing Module.

Client invoices, line items, totals, numbering and the invoice status
workflow.  Recurring generation and proposal conversion both create
invoices through ``InvoiceService.stage_invoice``.
"""

from billing_modules.invoicing.config import InvoicingConfig
from billing_modules.invoicing.models import (
    Invoice,
    InvoiceLine,
    InvoiceStatus,
    InvoiceTotals,
    LineItemInput,
    compute_totals,
)
from billing_modules.invoicing.workflows import INVOICE_WORKFLOW

__all__ = [
    "Invoice",
    "InvoiceLine",
    "InvoiceStatus",
    "InvoiceTotals",
    "LineItemInput",
    "compute_totals",
    "INVOICE_WORKFLOW",
    "InvoicingConfig",
]
