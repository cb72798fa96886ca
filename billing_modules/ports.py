"""
Outbound ports used by the billing modules.

Client records and email delivery live outside this package.  Services
accept implementations of these protocols through their constructors;
both are optional.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, Sequence, runtime_checkable
from uuid import UUID


@dataclass(frozen=True)
class ClientRecord:
    """The slice of a client record the billing engine needs."""
    id: UUID
    name: str
    email: str | None = None
    is_active: bool = True


@runtime_checkable
class ClientDirectory(Protocol):
    """Looks up clients for a tenant."""

    def get_client(self, tenant_id: UUID, client_id: UUID) -> ClientRecord | None:
        ...


@runtime_checkable
class InvoiceSender(Protocol):
    """Delivers an issued invoice (email, portal notification, ...)."""

    def send_invoice(self, invoice, recipients: Sequence[str]) -> None:
        ...
