"""
Proposal Configuration Schema.
"""

from dataclasses import dataclass

from billing_kernel.db.types import validate_currency
from billing_kernel.logging_config import get_logger

logger = get_logger("modules.proposals.config")


@dataclass
class ProposalConfig:
    """
    Configuration schema for proposals.

        config = ProposalConfig(validity_days=14)
    """

    proposal_number_prefix: str = "PROP"
    proposal_number_width: int = 4
    default_currency: str = "USD"

    # valid_until = creation date + validity_days when the caller gives none
    validity_days: int = 30

    # Due date of the invoice created by convert_to_invoice
    invoice_payment_terms_days: int = 30

    def __post_init__(self):
        if not self.proposal_number_prefix or not self.proposal_number_prefix.strip():
            raise ValueError("proposal_number_prefix cannot be empty")
        if self.proposal_number_width < 1:
            raise ValueError("proposal_number_width must be at least 1")
        if self.validity_days < 0:
            raise ValueError("validity_days cannot be negative")
        if self.invoice_payment_terms_days < 0:
            raise ValueError("invoice_payment_terms_days cannot be negative")
        self.default_currency = validate_currency(self.default_currency)
        logger.debug(
            "proposal_config_initialized",
            extra={
                "proposal_number_prefix": self.proposal_number_prefix,
                "validity_days": self.validity_days,
            },
        )
