"""
Invoicing Domain Models (``billing_modules.invoicing.models``).

Responsibility
--------------
Frozen dataclass value objects for invoices and their line items, plus the
pure totals calculation shared by manual invoicing, recurring generation
and proposal conversion.

Architecture position
---------------------
**Modules layer** -- pure data definitions with ZERO I/O.  Returned by
``InvoiceService`` and ``RecurringInvoiceService``.

Invariants enforced
-------------------
* All models are ``frozen=True``.
* All monetary fields use ``Decimal`` -- NEVER ``float``.
* ``total = subtotal + tax_amount - discount_amount`` and is never negative.
* Line ``amount = quantity * unit_price`` rounded to cents.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Iterable
from uuid import UUID

from billing_kernel.db.types import HUNDRED, ZERO, percent_of, round_money
from billing_kernel.logging_config import get_logger

logger = get_logger("modules.invoicing.models")


class InvoiceStatus(Enum):
    """Invoice lifecycle states."""
    DRAFT = "draft"
    SENT = "sent"
    VIEWED = "viewed"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class InvoiceLine:
    """A single line item on an invoice."""
    id: UUID
    invoice_id: UUID
    sort_order: int
    description: str
    quantity: Decimal
    unit_price: Decimal
    amount: Decimal


@dataclass(frozen=True)
class InvoiceTotals:
    """Result of a totals calculation."""
    subtotal: Decimal
    tax_amount: Decimal
    discount_amount: Decimal
    total: Decimal


@dataclass(frozen=True)
class Invoice:
    """A client invoice."""
    id: UUID
    tenant_id: UUID
    client_id: UUID
    invoice_number: str
    issue_date: date
    due_date: date
    currency: str
    subtotal: Decimal
    tax_rate: Decimal
    tax_amount: Decimal
    discount_amount: Decimal
    total: Decimal
    status: InvoiceStatus = InvoiceStatus.DRAFT
    lines: tuple[InvoiceLine, ...] = field(default_factory=tuple)
    project_id: UUID | None = None
    recurring_schedule_id: UUID | None = None
    occurrence_date: date | None = None
    notes: str | None = None
    terms: str | None = None
    sent_at: datetime | None = None
    viewed_at: datetime | None = None
    paid_at: datetime | None = None

    @property
    def is_editable(self) -> bool:
        return self.status is InvoiceStatus.DRAFT


def line_amount(quantity: Decimal, unit_price: Decimal) -> Decimal:
    """``quantity * unit_price`` rounded to cents."""
    return round_money(quantity * unit_price)


def compute_totals(
    line_amounts: Iterable[Decimal],
    tax_rate: Decimal,
    discount_amount: Decimal = ZERO,
) -> InvoiceTotals:
    """
    Compute invoice totals from line amounts.

    tax_amount = subtotal * tax_rate / 100
    total      = subtotal + tax_amount - discount_amount

    Raises:
        ValueError: On a rate outside 0-100, a negative discount, or a
            discount larger than subtotal + tax.
    """
    if tax_rate < ZERO or tax_rate > HUNDRED:
        raise ValueError(f"tax_rate must be between 0 and 100, got {tax_rate}")
    if discount_amount < ZERO:
        raise ValueError(f"discount_amount cannot be negative, got {discount_amount}")

    subtotal = round_money(sum(line_amounts, ZERO))
    tax_amount = percent_of(subtotal, tax_rate)
    discount = round_money(discount_amount)
    total = subtotal + tax_amount - discount
    if total < ZERO:
        logger.warning(
            "invoice_total_negative",
            extra={
                "subtotal": str(subtotal),
                "tax_amount": str(tax_amount),
                "discount_amount": str(discount),
            },
        )
        raise ValueError(
            f"Discount {discount} exceeds subtotal plus tax ({subtotal + tax_amount})"
        )
    return InvoiceTotals(
        subtotal=subtotal,
        tax_amount=tax_amount,
        discount_amount=discount,
        total=total,
    )


@dataclass(frozen=True)
class LineItemInput:
    """Caller-supplied line item for a new or edited invoice."""
    description: str
    quantity: Decimal
    unit_price: Decimal

    def __post_init__(self):
        if not self.description or not self.description.strip():
            raise ValueError("Line item description cannot be empty")
        if self.quantity <= 0:
            raise ValueError(f"Line item quantity must be positive, got {self.quantity}")
        if self.unit_price < 0:
            raise ValueError(f"Line item unit_price cannot be negative, got {self.unit_price}")
