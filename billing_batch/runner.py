"""
RecurringBillingRun -- one pass of recurring invoice generation for a tenant.

Contract:
    ``run(ctx, as_of)`` lists the tenant's due schedules and calls
    ``RecurringInvoiceService.attempt_generation`` for each, in order.  Every schedule
    is its own transaction (the service commits or rolls back), so one
    failing schedule never undoes another's invoice.

    Schedules that turn out not to be eligible once locked (for example a
    concurrent run got there first) count as skipped; persistence failures
    and unexpected errors count as failed.

    ``dry_run=True`` returns previews and writes nothing.

Non-goals:
    - No retries.  The next scheduled run picks up whatever failed.
    - No threads.  Schedules are processed sequentially.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import date
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from billing_kernel.domain.clock import Clock, SystemClock
from billing_kernel.domain.context import TenantContext
from billing_kernel.logging_config import LogContext, get_logger
from billing_modules.invoicing.models import Invoice
from billing_modules.recurring.models import InvoicePreview
from billing_modules.recurring.service import RecurringInvoiceService

logger = get_logger("batch.runner")


@dataclass(frozen=True)
class RunFailure:
    """A schedule that was due but produced no invoice."""

    schedule_id: UUID
    error_code: str
    error_message: str


@dataclass(frozen=True)
class RunSummary:
    """Immutable result of one recurring run."""

    run_id: UUID
    as_of: date
    dry_run: bool
    processed: int
    generated: int
    skipped: int
    failed: int
    invoices: tuple[Invoice, ...] = ()
    previews: tuple[InvoicePreview, ...] = ()
    failures: tuple[RunFailure, ...] = ()
    duration_ms: int = 0

    @property
    def has_failures(self) -> bool:
        return self.failed > 0


class RecurringBillingRun:
    """Runs recurring generation over every due schedule of a tenant.

    Does NOT commit itself; each ``generate`` call owns its transaction.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        recurring_service: RecurringInvoiceService | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._service = recurring_service or RecurringInvoiceService(session, self._clock)

    def run(
        self,
        ctx: TenantContext,
        as_of: date | None = None,
        *,
        dry_run: bool = False,
    ) -> RunSummary:
        start_time = time.monotonic()
        run_id = uuid4()
        run_date = as_of or self._clock.today()

        with LogContext.bind(run_id=run_id, tenant_id=ctx.tenant_id, correlation_id=ctx.correlation_id):
            due = self._service.list_due(ctx, run_date)
            # list_due only reads; release the snapshot before per-schedule locking
            self._session.rollback()
            logger.info(
                "recurring_run_started",
                extra={
                    "as_of": run_date.isoformat(),
                    "due_count": len(due),
                    "dry_run": dry_run,
                },
            )

            invoices: list[Invoice] = []
            previews: list[InvoicePreview] = []
            failures: list[RunFailure] = []
            skipped = 0

            for schedule in due:
                try:
                    if dry_run:
                        previews.append(self._service.preview_next_invoice(ctx, schedule.id))
                        continue
                    attempt = self._service.attempt_generation(ctx, schedule.id, as_of=run_date)
                except Exception as exc:
                    logger.exception(
                        "recurring_run_schedule_failed",
                        extra={"schedule_id": str(schedule.id)},
                    )
                    failures.append(
                        RunFailure(
                            schedule_id=schedule.id,
                            error_code=getattr(exc, "code", "UNHANDLED_EXCEPTION"),
                            error_message=str(exc),
                        )
                    )
                    continue

                if attempt.generated:
                    invoices.append(attempt.invoice)
                elif attempt.failed:
                    failures.append(
                        RunFailure(
                            schedule_id=schedule.id,
                            error_code=attempt.error.code,
                            error_message=str(attempt.error),
                        )
                    )
                else:
                    skipped += 1

            summary = RunSummary(
                run_id=run_id,
                as_of=run_date,
                dry_run=dry_run,
                processed=len(due),
                generated=len(invoices),
                skipped=skipped,
                failed=len(failures),
                invoices=tuple(invoices),
                previews=tuple(previews),
                failures=tuple(failures),
                duration_ms=int((time.monotonic() - start_time) * 1000),
            )
            log = logger.warning if summary.has_failures else logger.info
            log(
                "recurring_run_completed",
                extra={
                    "as_of": run_date.isoformat(),
                    "processed": summary.processed,
                    "generated": summary.generated,
                    "skipped": summary.skipped,
                    "failed": summary.failed,
                    "dry_run": dry_run,
                    "duration_ms": summary.duration_ms,
                },
            )
            return summary

