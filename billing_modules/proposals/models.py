"""
Proposal Domain Models (``billing_modules.proposals.models``).

Frozen dataclasses for sales proposals and their priced sections, plus the
proposal totals calculation.  Proposals discount by percentage BEFORE tax,
unlike invoices which subtract a fixed discount after tax.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Iterable
from uuid import UUID

from billing_kernel.db.types import HUNDRED, ZERO, percent_of, round_money


class ProposalStatus(Enum):
    """Proposal lifecycle states."""
    DRAFT = "draft"
    SENT = "sent"
    VIEWED = "viewed"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    EXPIRED = "expired"


@dataclass(frozen=True)
class ProposalSectionInput:
    """Caller-supplied priced section."""
    title: str
    quantity: Decimal
    unit_price: Decimal
    description: str | None = None
    is_selected: bool = True

    def __post_init__(self):
        if not self.title or not self.title.strip():
            raise ValueError("Section title cannot be empty")
        if self.quantity <= 0:
            raise ValueError(f"Section quantity must be positive, got {self.quantity}")
        if self.unit_price < 0:
            raise ValueError(f"Section unit_price cannot be negative, got {self.unit_price}")


@dataclass(frozen=True)
class ProposalSection:
    id: UUID
    proposal_id: UUID
    sort_order: int
    title: str
    quantity: Decimal
    unit_price: Decimal
    total_price: Decimal
    description: str | None = None
    is_selected: bool = True

    @property
    def line_description(self) -> str:
        """Text used for the invoice line on conversion."""
        if self.description:
            return f"{self.title}\n{self.description}"
        return self.title


@dataclass(frozen=True)
class ProposalTotals:
    subtotal: Decimal
    discount_amount: Decimal
    tax_amount: Decimal
    total: Decimal


@dataclass(frozen=True)
class Proposal:
    """A sales proposal sent to a client for signature."""
    id: UUID
    tenant_id: UUID
    client_id: UUID
    proposal_number: str
    title: str
    currency: str
    subtotal: Decimal
    discount_percent: Decimal
    discount_amount: Decimal
    tax_rate: Decimal
    tax_amount: Decimal
    total: Decimal
    status: ProposalStatus = ProposalStatus.DRAFT
    sections: tuple[ProposalSection, ...] = field(default_factory=tuple)
    valid_until: date | None = None
    introduction: str | None = None
    conclusion: str | None = None
    terms_conditions: str | None = None
    sent_at: datetime | None = None
    viewed_at: datetime | None = None
    accepted_at: datetime | None = None
    rejected_at: datetime | None = None
    rejection_reason: str | None = None
    signed_name: str | None = None
    signed_email: str | None = None
    signed_at: datetime | None = None
    converted_to_invoice_id: UUID | None = None

    @property
    def selected_sections(self) -> tuple[ProposalSection, ...]:
        return tuple(s for s in self.sections if s.is_selected)


def compute_proposal_totals(
    selected_amounts: Iterable[Decimal],
    discount_percent: Decimal,
    tax_rate: Decimal,
) -> ProposalTotals:
    """
    subtotal = sum of selected sections
    discount = subtotal * discount_percent / 100
    tax      = (subtotal - discount) * tax_rate / 100
    total    = subtotal - discount + tax

    Raises:
        ValueError: If either percentage is outside 0-100.
    """
    if discount_percent < ZERO or discount_percent > HUNDRED:
        raise ValueError(f"discount_percent must be between 0 and 100, got {discount_percent}")
    if tax_rate < ZERO or tax_rate > HUNDRED:
        raise ValueError(f"tax_rate must be between 0 and 100, got {tax_rate}")

    subtotal = round_money(sum(selected_amounts, ZERO))
    discount = percent_of(subtotal, discount_percent)
    taxable = subtotal - discount
    tax_amount = percent_of(taxable, tax_rate)
    return ProposalTotals(
        subtotal=subtotal,
        discount_amount=discount,
        tax_amount=tax_amount,
        total=taxable + tax_amount,
    )
