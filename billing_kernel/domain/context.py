"""
Explicit request context (``billing_kernel.domain.context``).

Every service operation receives a ``TenantContext`` naming the tenant
whose data may be touched and the actor performing the change.  There is
no session-global "current agency" or "current user": queries filter on
``ctx.tenant_id`` and audit rows record ``ctx.actor_id``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from uuid import UUID, uuid4

from billing_kernel.logging_config import LogContext

# Fixed id recorded as the actor for scheduled/system work
SYSTEM_ACTOR_ID = UUID("00000000-0000-0000-0000-000000000000")


@dataclass(frozen=True)
class TenantContext:
    """Who is acting, on behalf of which tenant.

    ``actor_id`` is None for system-initiated work such as the nightly
    recurring run; audit rows then record ``SYSTEM_ACTOR_ID``.
    """
    tenant_id: UUID
    actor_id: UUID | None = None
    correlation_id: str = field(default_factory=lambda: str(uuid4()))

    def __post_init__(self):
        if not isinstance(self.tenant_id, UUID):
            raise ValueError(f"tenant_id must be a UUID, got {self.tenant_id!r}")

    @property
    def effective_actor_id(self) -> UUID:
        return self.actor_id or SYSTEM_ACTOR_ID

    def log_scope(self, **extra):
        """Bind this context (plus any extra ids) to LogContext."""
        return LogContext.bind(
            correlation_id=self.correlation_id,
            tenant_id=self.tenant_id,
            actor_id=self.actor_id,
            **extra,
        )
