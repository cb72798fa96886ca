"""
Recurrence date arithmetic (``billing_modules.recurring.calculations``).

Pure functions: no clock, no database.  "Today" is always passed in.

    next_occurrence  one step of a cadence
    catch_up         step forward until on or after a date
    first_run_date   where a new schedule starts
    eligibility_failure / is_due   generation preconditions

Month arithmetic uses ``dateutil.relativedelta``, which clamps to the last
day of shorter months (Jan 31 + 1 month = Feb 29 in a leap year).  When a
``day_of_month`` anchor is given it is passed as relativedelta's absolute
``day``, so the anchor is clamped per month and recovers in longer months
(Jan 31 -> Feb 29 -> Mar 31).
"""

from __future__ import annotations

from datetime import date, datetime, timedelta

from dateutil.relativedelta import relativedelta

from billing_kernel.exceptions import InvalidScheduleDateError
from billing_modules.recurring.models import (
    Cadence,
    RecurrenceFrequency,
    RecurrenceSchedule,
    ScheduleStatus,
)


def coerce_date(value: object, field_name: str) -> date:
    """
    Accept a ``date``, a ``datetime`` (its date part) or an ISO string.

    Raises:
        InvalidScheduleDateError: On anything else, including malformed strings.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip())
        except ValueError:
            raise InvalidScheduleDateError(field_name, value) from None
    raise InvalidScheduleDateError(field_name, value)


def next_occurrence(
    frequency: RecurrenceFrequency | str,
    interval_count: int,
    from_date: date,
    day_of_week: int | None = None,
    day_of_month: int | None = None,
) -> date:
    """
    Compute the next run date after ``from_date``.

    Weekly with ``day_of_week`` (ISO, Monday=1): after stepping N weeks the
    date rolls forward to that weekday, wrapping into the following week only
    when the weekday has already passed.  A stepped date that already falls
    on the anchor weekday is kept, not pushed out another week.

    Monthly and quarterly with ``day_of_month``: the day is set to
    ``min(day_of_month, month length)``.

    The result is always strictly after ``from_date``.

    Raises:
        UnknownFrequencyError: If ``frequency`` is not a supported cadence.
        InvalidScheduleDateError: If ``from_date`` is not a valid date.
        ValueError: On an out-of-range interval or anchor.
    """
    cadence = Cadence(
        frequency=frequency,
        interval_count=interval_count,
        day_of_week=day_of_week,
        day_of_month=day_of_month,
    )
    return advance(cadence, coerce_date(from_date, "from_date"))


def advance(cadence: Cadence, from_date: date) -> date:
    """One step of a validated cadence."""
    n = cadence.interval_count
    freq = cadence.frequency

    if freq is RecurrenceFrequency.DAILY:
        return from_date + timedelta(days=n)

    if freq is RecurrenceFrequency.WEEKLY:
        result = from_date + timedelta(weeks=n)
        if cadence.day_of_week is not None:
            diff = cadence.day_of_week - result.isoweekday()
            if diff < 0:
                diff += 7
            result += timedelta(days=diff)
        return result

    if freq is RecurrenceFrequency.BIWEEKLY:
        return from_date + timedelta(weeks=2 * n)

    if freq is RecurrenceFrequency.MONTHLY:
        return from_date + relativedelta(months=n, day=cadence.day_of_month)

    if freq is RecurrenceFrequency.QUARTERLY:
        return from_date + relativedelta(months=3 * n, day=cadence.day_of_month)

    # YEARLY: Feb 29 clamps to Feb 28 in non-leap years
    return from_date + relativedelta(years=n)


def catch_up(cadence: Cadence, from_date: date, today: date) -> date:
    """
    Step ``from_date`` forward until it is on or after ``today``.

    Returns ``from_date`` unchanged when it is already on or after ``today``.
    """
    current = from_date
    while current < today:
        current = advance(cadence, current)
    return current


def first_run_date(cadence: Cadence, start_date: date, today: date) -> date:
    """
    Initial ``next_run_date`` for a new schedule.

    A start date today or later is used as-is; a start date in the past is
    stepped forward along the cadence until it reaches today.
    """
    return catch_up(cadence, coerce_date(start_date, "start_date"), today)


def eligibility_failure(schedule: RecurrenceSchedule, as_of: date | None = None) -> str | None:
    """
    Return why ``schedule`` cannot generate an invoice, or None if it can.

    When ``as_of`` is given the schedule must also be due
    (``next_run_date <= as_of``).
    """
    if schedule.status is not ScheduleStatus.ACTIVE:
        return f"status is {schedule.status.value}"
    if schedule.next_run_date is None:
        return "no next run date"
    if schedule.end_date is not None and schedule.next_run_date > schedule.end_date:
        return f"next run {schedule.next_run_date} is after end date {schedule.end_date}"
    if (
        schedule.max_occurrences is not None
        and schedule.invoice_count >= schedule.max_occurrences
    ):
        return f"reached max occurrences ({schedule.max_occurrences})"
    if as_of is not None and schedule.next_run_date > as_of:
        return f"not due until {schedule.next_run_date}"
    return None


def is_due(schedule: RecurrenceSchedule, as_of: date) -> bool:
    """True if the schedule can generate an invoice on ``as_of``."""
    return eligibility_failure(schedule, as_of) is None


def reaches_bound(
    invoice_count: int,
    next_run_date: date,
    max_occurrences: int | None,
    end_date: date | None,
) -> bool:
    """True when a schedule that just advanced should complete."""
    if max_occurrences is not None and invoice_count >= max_occurrences:
        return True
    return end_date is not None and next_run_date > end_date
