"""
Module: billing_kernel.models.activity_log
Responsibility: ORM persistence for the tenant activity trail.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Rows are append-only: AuditService only ever INSERTs.
    - Every row carries tenant_id and the acting actor_id.
    - seq is allocated per tenant from the locked counter row, so entries
      for one tenant have a strict order even when occurred_at ties.

Audit relevance:
    ActivityLogEntry IS the activity trail.  Invoice creation, line edits,
    status changes, schedule lifecycle changes, proposal signing and
    conversion each write one row in the same transaction as the change.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import JSON, DateTime, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from billing_kernel.db.base import Base, TenantScopedMixin, UUIDString


class ActivityAction(str, Enum):
    """Types of recorded activity."""

    # Invoices
    INVOICE_CREATED = "invoice_created"
    INVOICE_UPDATED = "invoice_updated"
    INVOICE_STATUS_CHANGED = "invoice_status_changed"
    INVOICE_LINE_ADDED = "invoice_line_added"
    INVOICE_LINE_UPDATED = "invoice_line_updated"
    INVOICE_LINE_REMOVED = "invoice_line_removed"
    INVOICE_GENERATED = "invoice_generated"

    # Recurring schedules
    SCHEDULE_CREATED = "schedule_created"
    SCHEDULE_ADVANCED = "schedule_advanced"
    SCHEDULE_PAUSED = "schedule_paused"
    SCHEDULE_RESUMED = "schedule_resumed"
    SCHEDULE_CANCELLED = "schedule_cancelled"
    SCHEDULE_COMPLETED = "schedule_completed"

    # Proposals
    PROPOSAL_CREATED = "proposal_created"
    PROPOSAL_STATUS_CHANGED = "proposal_status_changed"
    PROPOSAL_SIGNED = "proposal_signed"
    PROPOSAL_CONVERTED = "proposal_converted"


class ActivityLogEntry(TenantScopedMixin, Base):
    """
    One recorded change to a billing entity.

    Guarantees:
        - (tenant_id, seq) is unique.
        - old_values / new_values hold only the fields that changed.
    """

    __tablename__ = "activity_log"

    __table_args__ = (
        UniqueConstraint("tenant_id", "seq", name="uq_activity_log_tenant_seq"),
        Index("idx_activity_log_entity", "entity_type", "entity_id"),
        Index("idx_activity_log_action", "action"),
    )

    seq: Mapped[int] = mapped_column(nullable=False)

    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    # e.g. "invoice", "recurring_schedule", "proposal"
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    entity_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    action: Mapped[str] = mapped_column(String(50), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    old_values: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    new_values: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    correlation_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        return f"<ActivityLogEntry {self.seq} {self.action} {self.entity_type}:{self.entity_id}>"
