"""
Recurring Invoice Configuration Schema.
"""

from dataclasses import dataclass

from billing_kernel.logging_config import get_logger

logger = get_logger("modules.recurring.config")


@dataclass
class RecurringConfig:
    """
    Configuration schema for recurring invoice generation.

        config = RecurringConfig(upcoming_window_days=14)
    """

    # Look-ahead window for list_upcoming when the caller gives none
    upcoming_window_days: int = 30

    # Safety cap on occurrences listed per schedule in one window
    max_upcoming_per_schedule: int = 60

    # Hand auto-sent invoices to the InvoiceSender after commit
    deliver_auto_sent: bool = True

    def __post_init__(self):
        if self.upcoming_window_days < 1:
            raise ValueError("upcoming_window_days must be at least 1")
        if self.max_upcoming_per_schedule < 1:
            raise ValueError("max_upcoming_per_schedule must be at least 1")
        logger.debug(
            "recurring_config_initialized",
            extra={
                "upcoming_window_days": self.upcoming_window_days,
                "max_upcoming_per_schedule": self.max_upcoming_per_schedule,
                "deliver_auto_sent": self.deliver_auto_sent,
            },
        )
