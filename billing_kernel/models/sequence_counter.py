"""
Module: billing_kernel.models.sequence_counter
Responsibility: Named counter rows backing document numbering.

Each row holds the last value handed out for one (tenant, sequence name)
pair, e.g. ("<tenant>", "invoice:2024").  SequenceService locks the row
with SELECT ... FOR UPDATE before incrementing it.
"""

from sqlalchemy import String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from billing_kernel.db.base import Base, TenantScopedMixin


class SequenceCounter(TenantScopedMixin, Base):
    """Per-tenant named sequence with its current value."""

    __tablename__ = "sequence_counters"

    __table_args__ = (
        UniqueConstraint("tenant_id", "name", name="uq_sequence_counters_tenant_name"),
    )

    name: Mapped[str] = mapped_column(String(100), nullable=False)

    current_value: Mapped[int] = mapped_column(nullable=False, default=0)
