"""
Pure domain layer.

Value objects and decision logic with NO dependencies on the ORM, the
database, or I/O (time is injected through ``Clock``).
"""

from billing_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from billing_kernel.domain.context import SYSTEM_ACTOR_ID, TenantContext
from billing_kernel.domain.workflow import (
    Guard,
    Transition,
    Workflow,
    can_transition,
    require_transition,
)

__all__ = [
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "TenantContext",
    "SYSTEM_ACTOR_ID",
    "Guard",
    "Transition",
    "Workflow",
    "can_transition",
    "require_transition",
]
