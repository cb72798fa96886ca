"""
billing_config -- deployment settings for the billing engine.

``get_active_config()`` is the one public entry point.  Scripts read
settings through it and pass the values into module configs
(``InvoicingConfig``, ``RecurringConfig``, ``ProposalConfig``); nothing
else reads settings files or ``BILLING_*`` environment variables.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Mapping

from billing_config.loader import apply_env_overrides, load_yaml_file, parse_settings
from billing_config.schema import BillingSettings

_logger = logging.getLogger("billing_kernel.config")

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"


def get_active_config(
    path: Path | str | None = None,
    environ: Mapping[str, str] | None = None,
) -> BillingSettings:
    """Load, override and validate the active settings.

    The file is ``path`` when given, else ``$BILLING_CONFIG``, else the
    packaged ``defaults.yaml``.

    Raises:
        FileNotFoundError: If the settings file does not exist.
        ValueError: If the settings are invalid.
    """
    env = os.environ if environ is None else environ
    config_path = Path(path or env.get("BILLING_CONFIG") or _DEFAULT_CONFIG_PATH)

    data = apply_env_overrides(load_yaml_file(config_path), env)
    settings = parse_settings(data)

    _logger.info(
        "billing_config_loaded",
        extra={
            "config_path": str(config_path),
            "checksum": settings.checksum,
            "log_level": settings.log_level,
            "default_currency": settings.default_currency,
        },
    )
    return settings


__all__ = [
    "BillingSettings",
    "get_active_config",
]
