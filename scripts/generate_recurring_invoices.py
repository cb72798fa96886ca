#!/usr/bin/env python3
"""
Generate invoices for every recurring schedule that is due.

Meant to run from cron once a day per tenant.  Each schedule is its own
transaction; a schedule that fails is reported and picked up again by the
next run.

Usage:
    python3 scripts/generate_recurring_invoices.py --tenant <uuid> [options]

Examples:
    # Generate everything due today
    python3 scripts/generate_recurring_invoices.py --tenant 6f1c...

    # Show what would be generated for a given date, write nothing
    python3 scripts/generate_recurring_invoices.py --tenant 6f1c... --as-of 2024-03-01 --dry-run

Exit status is 0 when no schedule failed and 1 otherwise.
"""

from __future__ import annotations

import argparse
import sys
from datetime import date
from pathlib import Path
from uuid import UUID

# Project root on sys.path
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Generate invoices from due recurring schedules.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--tenant",
        required=True,
        type=UUID,
        help="Tenant (agency) UUID whose schedules are processed.",
    )
    parser.add_argument(
        "--actor",
        type=UUID,
        default=None,
        help="Actor UUID recorded in the activity log (default: system actor).",
    )
    parser.add_argument(
        "--as-of",
        type=lambda s: date.fromisoformat(s),
        default=None,
        help="Run date (YYYY-MM-DD). Default: today.",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Preview the invoices that would be generated; write nothing.",
    )
    parser.add_argument(
        "--quiet",
        action="store_true",
        help="Print nothing on success; log warnings and errors only.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Settings YAML (default: $BILLING_CONFIG or packaged defaults).",
    )
    parser.add_argument(
        "--database-url",
        default=None,
        help="Database URL (overrides the settings file).",
    )
    parser.add_argument(
        "--create-tables",
        action="store_true",
        help="Create missing tables before running.",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)

    # Lazy imports so we fail fast on args first
    from billing_batch.runner import RecurringBillingRun
    from billing_config import get_active_config
    from billing_kernel.db.engine import get_session, init_engine_from_url, reset_engine
    from billing_kernel.domain.clock import SystemClock
    from billing_kernel.domain.context import TenantContext
    from billing_kernel.logging_config import configure_logging
    from billing_modules._orm_registry import create_all_tables
    from billing_modules.invoicing.config import InvoicingConfig
    from billing_modules.recurring.config import RecurringConfig
    from billing_modules.recurring.service import RecurringInvoiceService

    try:
        settings = get_active_config(args.config)
    except Exception as e:
        print(f"ERROR: Failed to load config: {e}", file=sys.stderr)
        return 1

    configure_logging(level="WARNING" if args.quiet else settings.log_level)

    try:
        init_engine_from_url(args.database_url or settings.database_url)
        if args.create_tables:
            create_all_tables()
    except Exception as e:
        print(f"ERROR: Database init failed: {e}", file=sys.stderr)
        reset_engine()
        return 1

    clock = SystemClock()
    ctx = TenantContext(tenant_id=args.tenant, actor_id=args.actor)
    session = get_session()
    try:
        service = RecurringInvoiceService(
            session,
            clock,
            config=RecurringConfig(
                upcoming_window_days=settings.upcoming_window_days,
                deliver_auto_sent=settings.deliver_auto_sent,
            ),
            invoicing_config=InvoicingConfig(
                invoice_number_prefix=settings.invoice_number_prefix,
                default_currency=settings.default_currency,
                default_payment_terms_days=settings.default_payment_terms_days,
            ),
        )
        summary = RecurringBillingRun(session, clock, service).run(
            ctx, args.as_of, dry_run=args.dry_run
        )
    except Exception as e:
        session.rollback()
        print(f"ERROR: {e}", file=sys.stderr)
        return 1
    finally:
        session.close()
        reset_engine()

    if not args.quiet:
        if summary.dry_run:
            print(f"Dry run for {summary.as_of}: {summary.processed} schedule(s) due")
            for preview in summary.previews:
                print(
                    f"  {preview.schedule_id}  {preview.occurrence_date}  "
                    f"{preview.total} {preview.currency}"
                )
        else:
            print(
                f"Run {summary.as_of}: processed={summary.processed} "
                f"generated={summary.generated} skipped={summary.skipped} "
                f"failed={summary.failed}"
            )
            for invoice in summary.invoices:
                print(f"  {invoice.invoice_number}  {invoice.total} {invoice.currency}")
    for failure in summary.failures:
        print(
            f"FAILED {failure.schedule_id}: [{failure.error_code}] {failure.error_message}",
            file=sys.stderr,
        )
    return 1 if summary.has_failures else 0


if __name__ == "__main__":
    sys.exit(main())
