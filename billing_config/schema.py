"""
Billing settings schema.

``BillingSettings`` is the runtime artifact produced by
``billing_config.get_active_config()``: frozen, validated, and tagged with
the checksum of the data it was built from.
"""

from __future__ import annotations

from dataclasses import dataclass

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class BillingSettings:
    """Deployment settings for the billing engine."""

    database_url: str = "sqlite:///billing.db"
    log_level: str = "INFO"

    invoice_number_prefix: str = "INV"
    default_currency: str = "USD"
    default_payment_terms_days: int = 30

    proposal_number_prefix: str = "PROP"
    proposal_validity_days: int = 30

    upcoming_window_days: int = 30
    deliver_auto_sent: bool = True

    # SHA-256 of the merged source data (file + environment overrides)
    checksum: str = ""

    def __post_init__(self):
        if not self.database_url:
            raise ValueError("database_url cannot be empty")
        if self.log_level.upper() not in _LOG_LEVELS:
            raise ValueError(
                f"log_level must be one of {', '.join(_LOG_LEVELS)}, got {self.log_level!r}"
            )
        object.__setattr__(self, "log_level", self.log_level.upper())
        if self.default_payment_terms_days < 0:
            raise ValueError("default_payment_terms_days cannot be negative")
        if self.proposal_validity_days < 0:
            raise ValueError("proposal_validity_days cannot be negative")
        if self.upcoming_window_days < 1:
            raise ValueError("upcoming_window_days must be at least 1")
