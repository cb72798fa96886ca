"""
Recurring Invoice Domain Models (``billing_modules.recurring.models``).

Responsibility
--------------
Frozen dataclass value objects for recurring invoice schedules: the cadence,
the line item template, the schedule record itself, and the read-only
preview/upcoming views.

Architecture position
---------------------
**Modules layer** -- pure data definitions with ZERO I/O.

Invariants enforced
-------------------
* ``interval_count >= 1``; ``day_of_week`` in 1-7 (ISO, Monday = 1);
  ``day_of_month`` in 1-31.
* ``end_date`` (when set) is not before ``start_date``.
* ``max_occurrences`` (when set) is at least 1 and ``invoice_count`` never
  exceeds it.
* ``next_run_date`` is None only for completed or cancelled schedules.
* Template quantities are positive, unit prices non-negative, the tax rate
  is a percentage (0-100) and the discount is non-negative and no larger
  than subtotal plus tax.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from billing_kernel.db.types import ZERO
from billing_kernel.exceptions import InvoicePersistenceError, UnknownFrequencyError
from billing_kernel.logging_config import get_logger
from billing_modules.invoicing.models import Invoice, compute_totals, line_amount

logger = get_logger("modules.recurring.models")


class RecurrenceFrequency(str, Enum):
    """How often a schedule fires."""
    DAILY = "daily"
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"

    @classmethod
    def parse(cls, value: "RecurrenceFrequency | str") -> "RecurrenceFrequency":
        """
        Coerce a string to a frequency.

        Raises:
            UnknownFrequencyError: If the value is not a supported cadence.
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise UnknownFrequencyError(str(value)) from None


class ScheduleStatus(str, Enum):
    """Recurring schedule lifecycle states."""
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class Cadence:
    """Frequency plus its anchors."""
    frequency: RecurrenceFrequency
    interval_count: int = 1
    day_of_week: int | None = None
    day_of_month: int | None = None

    def __post_init__(self):
        object.__setattr__(self, "frequency", RecurrenceFrequency.parse(self.frequency))
        if isinstance(self.interval_count, bool) or not isinstance(self.interval_count, int):
            raise ValueError(f"interval_count must be an integer, got {self.interval_count!r}")
        if self.interval_count < 1:
            raise ValueError(f"interval_count must be at least 1, got {self.interval_count}")
        if self.day_of_week is not None and not 1 <= self.day_of_week <= 7:
            raise ValueError(f"day_of_week must be 1-7 (Monday=1), got {self.day_of_week}")
        if self.day_of_month is not None and not 1 <= self.day_of_month <= 31:
            raise ValueError(f"day_of_month must be 1-31, got {self.day_of_month}")


@dataclass(frozen=True)
class LineItemTemplate:
    """One line copied onto every generated invoice."""
    description: str
    quantity: Decimal
    unit_price: Decimal

    def __post_init__(self):
        if not self.description or not self.description.strip():
            raise ValueError("Template line description cannot be empty")
        if self.quantity <= 0:
            raise ValueError(f"Template line quantity must be positive, got {self.quantity}")
        if self.unit_price < 0:
            raise ValueError(f"Template line unit_price cannot be negative, got {self.unit_price}")

    def to_dict(self) -> dict[str, str]:
        return {
            "description": self.description,
            "quantity": str(self.quantity),
            "unit_price": str(self.unit_price),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "LineItemTemplate":
        return cls(
            description=data["description"],
            quantity=Decimal(str(data["quantity"])),
            unit_price=Decimal(str(data["unit_price"])),
        )


def _validate_template(
    line_items: tuple[LineItemTemplate, ...],
    tax_rate: Decimal,
    discount_amount: Decimal,
    currency: str,
) -> None:
    if not line_items:
        raise ValueError("A recurring schedule needs at least one line item")
    # Every invoice generated from the template must have a valid total
    compute_totals(
        (line_amount(item.quantity, item.unit_price) for item in line_items),
        tax_rate,
        discount_amount,
    )
    if not currency or len(currency) != 3:
        raise ValueError(f"currency must be a 3-letter code, got {currency!r}")


@dataclass(frozen=True)
class ScheduleRequest:
    """Input for creating a recurring schedule."""
    client_id: UUID
    title: str
    cadence: Cadence
    start_date: date
    line_items: tuple[LineItemTemplate, ...]
    tax_rate: Decimal = ZERO
    discount_amount: Decimal = ZERO
    currency: str = "USD"
    end_date: date | None = None
    max_occurrences: int | None = None
    payment_terms_days: int = 30
    auto_send: bool = False
    email_recipients: tuple[str, ...] = ()
    project_id: UUID | None = None
    description: str | None = None
    notes: str | None = None

    def __post_init__(self):
        if not self.title or not self.title.strip():
            raise ValueError("Schedule title cannot be empty")
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError(
                f"end_date {self.end_date} is before start_date {self.start_date}"
            )
        if self.max_occurrences is not None and self.max_occurrences < 1:
            raise ValueError(f"max_occurrences must be at least 1, got {self.max_occurrences}")
        if self.payment_terms_days < 0:
            raise ValueError("payment_terms_days cannot be negative")
        object.__setattr__(self, "line_items", tuple(self.line_items))
        _validate_template(self.line_items, self.tax_rate, self.discount_amount, self.currency)


@dataclass(frozen=True)
class RecurrenceSchedule:
    """A persisted recurring invoice schedule."""
    id: UUID
    tenant_id: UUID
    client_id: UUID
    title: str
    cadence: Cadence
    start_date: date
    next_run_date: date | None
    status: ScheduleStatus
    line_items: tuple[LineItemTemplate, ...]
    tax_rate: Decimal = ZERO
    discount_amount: Decimal = ZERO
    currency: str = "USD"
    end_date: date | None = None
    max_occurrences: int | None = None
    invoice_count: int = 0
    last_run_date: date | None = None
    last_invoice_id: UUID | None = None
    payment_terms_days: int = 30
    auto_send: bool = False
    email_recipients: tuple[str, ...] = field(default_factory=tuple)
    project_id: UUID | None = None
    description: str | None = None
    notes: str | None = None
    version: int = 1

    def __post_init__(self):
        if self.next_run_date is None and self.status in (
            ScheduleStatus.ACTIVE,
            ScheduleStatus.PAUSED,
        ):
            logger.warning(
                "schedule_missing_next_run_date",
                extra={"schedule_id": str(self.id), "status": self.status.value},
            )
            raise ValueError(f"{self.status.value} schedule must have a next_run_date")
        if self.invoice_count < 0:
            raise ValueError("invoice_count cannot be negative")
        if self.max_occurrences is not None and self.invoice_count > self.max_occurrences:
            raise ValueError(
                f"invoice_count {self.invoice_count} exceeds max_occurrences {self.max_occurrences}"
            )

    @property
    def frequency(self) -> RecurrenceFrequency:
        return self.cadence.frequency

    @property
    def remaining_occurrences(self) -> int | None:
        if self.max_occurrences is None:
            return None
        return self.max_occurrences - self.invoice_count


@dataclass(frozen=True)
class PreviewLine:
    """A template line with its computed amount."""
    description: str
    quantity: Decimal
    unit_price: Decimal
    amount: Decimal


@dataclass(frozen=True)
class InvoicePreview:
    """What the next generated invoice would contain.  Nothing is persisted."""
    schedule_id: UUID
    client_id: UUID
    occurrence_date: date
    issue_date: date
    due_date: date
    currency: str
    lines: tuple[PreviewLine, ...]
    subtotal: Decimal
    tax_rate: Decimal
    tax_amount: Decimal
    discount_amount: Decimal
    total: Decimal


@dataclass(frozen=True)
class UpcomingOccurrence:
    """One future run of a schedule inside a look-ahead window."""
    schedule_id: UUID
    client_id: UUID
    title: str
    run_date: date
    total: Decimal
    currency: str


@dataclass(frozen=True)
class GenerationAttempt:
    """Outcome of one generation attempt.

    Exactly one of ``invoice``, ``skipped_reason`` or ``error`` is set.
    """
    schedule_id: UUID
    invoice: Invoice | None = None
    skipped_reason: str | None = None
    error: InvoicePersistenceError | None = None

    @property
    def generated(self) -> bool:
        return self.invoice is not None

    @property
    def failed(self) -> bool:
        return self.error is not None
