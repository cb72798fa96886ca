"""Database layer - engine, base classes, and money types."""

from billing_kernel.db.base import UUID, Base, TenantScopedMixin, TrackedBase, UUIDString
from billing_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    init_engine_from_url,
    session_scope,
)
from billing_kernel.db.types import round_money, validate_currency

__all__ = [
    "get_engine",
    "get_session",
    "init_engine_from_url",
    "session_scope",
    "create_tables",
    "Base",
    "TrackedBase",
    "TenantScopedMixin",
    "UUIDString",
    "UUID",
    "round_money",
    "validate_currency",
]
