"""ORM models owned by the billing kernel."""

from billing_kernel.models.activity_log import ActivityAction, ActivityLogEntry
from billing_kernel.models.sequence_counter import SequenceCounter

__all__ = [
    "ActivityAction",
    "ActivityLogEntry",
    "SequenceCounter",
]
