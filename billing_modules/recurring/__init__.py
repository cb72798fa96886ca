"""
Recurring Invoices Module.

Recurrence schedules, the interval calculator and the invoice generator.
"""

from billing_modules.recurring.calculations import (
    advance,
    catch_up,
    coerce_date,
    eligibility_failure,
    first_run_date,
    is_due,
    next_occurrence,
)
from billing_modules.recurring.config import RecurringConfig
from billing_modules.recurring.models import (
    Cadence,
    InvoicePreview,
    LineItemTemplate,
    RecurrenceFrequency,
    RecurrenceSchedule,
    ScheduleRequest,
    ScheduleStatus,
    UpcomingOccurrence,
)
from billing_modules.recurring.workflows import SCHEDULE_WORKFLOW

__all__ = [
    "Cadence",
    "InvoicePreview",
    "LineItemTemplate",
    "RecurrenceFrequency",
    "RecurrenceSchedule",
    "ScheduleRequest",
    "ScheduleStatus",
    "UpcomingOccurrence",
    "RecurringConfig",
    "SCHEDULE_WORKFLOW",
    "advance",
    "catch_up",
    "coerce_date",
    "eligibility_failure",
    "first_run_date",
    "is_due",
    "next_occurrence",
]
