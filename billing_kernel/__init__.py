"""
Billing Kernel

Shared infrastructure for the agency billing engine:
- Structured logging with tenant-scoped context
- Typed exception hierarchy
- Declarative ORM base, money types, engine/session management
- Injectable clock, workflow state machines, explicit tenant context
- Locked-counter document numbering and the activity audit trail
"""

__version__ = "0.1.0"
