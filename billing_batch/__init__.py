"""
billing_batch -- Periodic recurring-invoice run.

Walks a tenant's due schedules and generates one invoice per schedule,
isolating each schedule's failure from the rest of the run.  Invoked by
``scripts/generate_recurring_invoices.py`` from cron.

Architecture:
    billing_batch/ is a top-level package.  Nothing in billing_kernel/ or
    billing_modules/ imports from it.
"""

from billing_batch.runner import RecurringBillingRun, RunFailure, RunSummary

__all__ = [
    "RecurringBillingRun",
    "RunFailure",
    "RunSummary",
]
