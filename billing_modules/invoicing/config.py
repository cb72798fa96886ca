"""
Invoicing Configuration Schema.

Defines the structure and sensible defaults for invoice numbering, payment
terms and currency.  Actual values come from ``billing_config`` at runtime.
"""

from dataclasses import dataclass, field

from billing_kernel.db.types import validate_currency
from billing_kernel.logging_config import get_logger

logger = get_logger("modules.invoicing.config")

# Named payment terms accepted on invoices and schedules
PAYMENT_TERMS: dict[str, int] = {
    "due_on_receipt": 0,
    "net_15": 15,
    "net_30": 30,
    "net_45": 45,
    "net_60": 60,
}


def payment_terms_days(terms: str | int | None, default: int = 30) -> int:
    """
    Resolve payment terms to a number of days.

    Accepts a named term (``"net_30"``), a plain day count, or None for the
    default.

    Raises:
        ValueError: On an unknown name or a negative day count.
    """
    if terms is None:
        return default
    if isinstance(terms, int):
        if terms < 0:
            raise ValueError(f"payment terms cannot be negative, got {terms}")
        return terms
    try:
        return PAYMENT_TERMS[terms]
    except KeyError:
        raise ValueError(
            f"Unknown payment terms {terms!r}; expected one of {sorted(PAYMENT_TERMS)}"
        ) from None


@dataclass
class InvoicingConfig:
    """
    Configuration schema for the invoicing module.

        config = InvoicingConfig(default_payment_terms_days=45)
    """

    invoice_number_prefix: str = "INV"
    invoice_number_width: int = 4
    default_currency: str = "USD"
    default_payment_terms_days: int = 30
    default_terms_text: str | None = None

    # Statuses swept to overdue once due_date has passed
    overdue_from_statuses: tuple[str, ...] = field(default=("sent", "viewed"))

    def __post_init__(self):
        if not self.invoice_number_prefix or not self.invoice_number_prefix.strip():
            raise ValueError("invoice_number_prefix cannot be empty")
        if self.invoice_number_width < 1:
            raise ValueError("invoice_number_width must be at least 1")
        if self.default_payment_terms_days < 0:
            raise ValueError("default_payment_terms_days cannot be negative")
        self.default_currency = validate_currency(self.default_currency)
        logger.debug(
            "invoicing_config_initialized",
            extra={
                "invoice_number_prefix": self.invoice_number_prefix,
                "default_currency": self.default_currency,
                "default_payment_terms_days": self.default_payment_terms_days,
            },
        )
