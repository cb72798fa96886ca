"""
AuditService -- explicit activity trail step.

Responsibility:
    Writes one ``ActivityLogEntry`` per business change.  Services call
    ``record`` as an ordinary step inside their own transaction; there are
    no ORM lifecycle hooks that write audit rows behind their back.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Invariants enforced:
    - Append-only: rows are only ever added.
    - Ordering: ``seq`` comes from SequenceService per tenant.
    - JSON safety: Decimal, UUID, date and Enum values in old/new payloads
      are converted to strings before they reach the JSON column.

Non-goals:
    - Does NOT call ``session.commit()`` -- caller controls boundaries.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from billing_kernel.domain.clock import Clock, SystemClock
from billing_kernel.domain.context import TenantContext
from billing_kernel.logging_config import get_logger
from billing_kernel.models.activity_log import ActivityAction, ActivityLogEntry
from billing_kernel.services.sequence_service import SequenceService

logger = get_logger("services.audit")


def _jsonable(value: Any) -> Any:
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (Decimal, UUID)):
        return str(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


class AuditService:
    """Records activity entries for a tenant."""

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()
        self._sequences = SequenceService(session)

    def record(
        self,
        ctx: TenantContext,
        *,
        entity_type: str,
        entity_id: UUID,
        action: ActivityAction,
        entity_name: str | None = None,
        description: str | None = None,
        old_values: dict[str, Any] | None = None,
        new_values: dict[str, Any] | None = None,
    ) -> ActivityLogEntry:
        """
        Append an activity entry in the caller's transaction.

        Returns:
            The flushed ActivityLogEntry.
        """
        seq = self._sequences.next_value(ctx.tenant_id, SequenceService.ACTIVITY_LOG)
        entry = ActivityLogEntry(
            id=uuid4(),
            tenant_id=ctx.tenant_id,
            seq=seq,
            actor_id=ctx.effective_actor_id,
            entity_type=entity_type,
            entity_id=entity_id,
            entity_name=entity_name,
            action=action.value,
            description=description,
            old_values=_jsonable(old_values) if old_values else None,
            new_values=_jsonable(new_values) if new_values else None,
            correlation_id=ctx.correlation_id,
            occurred_at=self._clock.now(),
        )
        self._session.add(entry)
        self._session.flush()

        logger.debug(
            "activity_recorded",
            extra={
                "entity_type": entity_type,
                "entity_id": str(entity_id),
                "action": action.value,
                "seq": seq,
            },
        )
        return entry

    def history(
        self,
        ctx: TenantContext,
        entity_type: str,
        entity_id: UUID,
    ) -> list[ActivityLogEntry]:
        """All entries for one entity, oldest first."""
        return list(
            self._session.execute(
                select(ActivityLogEntry)
                .where(
                    ActivityLogEntry.tenant_id == ctx.tenant_id,
                    ActivityLogEntry.entity_type == entity_type,
                    ActivityLogEntry.entity_id == entity_id,
                )
                .order_by(ActivityLogEntry.seq)
            ).scalars()
        )
