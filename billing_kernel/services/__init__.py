"""Services for the billing kernel (write side)."""

from billing_kernel.services.audit_service import AuditService
from billing_kernel.services.sequence_service import SequenceService

__all__ = [
    "AuditService",
    "SequenceService",
]
