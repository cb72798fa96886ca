"""
SequenceService -- monotonic per-tenant numbering via locked counter rows.

Responsibility:
    Hands out strictly increasing values for named sequences (invoice
    numbers per year, proposal numbers per year, activity log order).
    Uses a dedicated counter table with row-level locking
    (``SELECT ... FOR UPDATE``) so concurrent generators in the same tenant
    never reuse a number.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
    Called by InvoiceService, ProposalService, RecurringInvoiceService
    and AuditService.

Invariants enforced:
    - Monotonicity: the locked counter row is the sole source of truth.
      The aggregate-max-plus-one pattern is never used.
    - Transactional: an increment is only visible once the caller commits;
      a rollback returns the value.

Failure modes:
    - IntegrityError: two transactions creating the same counter row at
      once.  On PostgreSQL the loser retries inside a savepoint; elsewhere
      the error propagates and the caller's transaction rolls back.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from billing_kernel.logging_config import get_logger
from billing_kernel.models.sequence_counter import SequenceCounter

logger = get_logger("services.sequence")


class SequenceService:
    """
    Service for generating transactional sequence numbers.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.

    Usage:
        seq = SequenceService(session)
        number = seq.next_document_number(tenant_id, "INV", 2024)
        # "INV-2024-0001"
    """

    ACTIVITY_LOG = "activity_log"

    def __init__(self, session: Session):
        self._session = session

    def _locked_counter(self, tenant_id: UUID, sequence_name: str) -> SequenceCounter | None:
        return self._session.execute(
            select(SequenceCounter)
            .where(
                SequenceCounter.tenant_id == tenant_id,
                SequenceCounter.name == sequence_name,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def next_value(self, tenant_id: UUID, sequence_name: str) -> int:
        """
        Get the next value for a tenant's named sequence.

        Locks the counter row (creating it on first use), increments it,
        and returns the new value.  Values start at 1.

        Args:
            tenant_id: Owning tenant.
            sequence_name: Name of the sequence, e.g. ``"invoice:2024"``.

        Returns:
            The next sequence value (always > 0).
        """
        counter = self._locked_counter(tenant_id, sequence_name)

        if counter is None:
            created = self._create_counter(tenant_id, sequence_name)
            if created:
                return 1
            counter = self._locked_counter(tenant_id, sequence_name)

        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": counter.current_value},
        )
        return counter.current_value

    def _create_counter(self, tenant_id: UUID, sequence_name: str) -> bool:
        """Insert a counter starting at 1.  False if another writer won the race."""
        bind = self._session.get_bind()
        if bind.dialect.name != "postgresql":
            self._session.add(
                SequenceCounter(tenant_id=tenant_id, name=sequence_name, current_value=1)
            )
            self._session.flush()
            logger.debug(
                "sequence_allocated",
                extra={"sequence_name": sequence_name, "value": 1},
            )
            return True

        savepoint = self._session.begin_nested()
        try:
            self._session.add(
                SequenceCounter(tenant_id=tenant_id, name=sequence_name, current_value=1)
            )
            self._session.flush()
            savepoint.commit()
        except IntegrityError:
            logger.debug(
                "sequence_counter_race_retry",
                extra={"sequence_name": sequence_name},
            )
            savepoint.rollback()
            return False
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": 1},
        )
        return True

    def current_value(self, tenant_id: UUID, sequence_name: str) -> int | None:
        """Current value of a sequence without incrementing, or None."""
        counter = self._session.execute(
            select(SequenceCounter).where(
                SequenceCounter.tenant_id == tenant_id,
                SequenceCounter.name == sequence_name,
            )
        ).scalar_one_or_none()
        return counter.current_value if counter else None

    def next_document_number(self, tenant_id: UUID, prefix: str, year: int, width: int = 4) -> str:
        """
        Allocate the next ``PREFIX-YYYY-NNNN`` number for a tenant.

        Numbering restarts at 1 each calendar year.
        """
        value = self.next_value(tenant_id, f"{prefix.lower()}:{year}")
        return f"{prefix}-{year}-{value:0{width}d}"
