"""
Configuration Loader (``billing_config.loader``).

Loads a YAML settings file, applies ``BILLING_*`` environment overrides and
parses the result into a frozen ``BillingSettings``.  Runtime code goes
through ``billing_config.get_active_config()`` instead of calling this
directly.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown section or key  -> ``ValueError`` naming it.
* Out-of-range values  -> ``ValueError`` from ``BillingSettings``.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any, Mapping

import yaml

from billing_config.schema import BillingSettings

# (section, key) -> BillingSettings field
_FIELD_MAP: dict[tuple[str, str], str] = {
    ("database", "url"): "database_url",
    ("logging", "level"): "log_level",
    ("invoicing", "number_prefix"): "invoice_number_prefix",
    ("invoicing", "default_currency"): "default_currency",
    ("invoicing", "default_payment_terms_days"): "default_payment_terms_days",
    ("proposals", "number_prefix"): "proposal_number_prefix",
    ("proposals", "validity_days"): "proposal_validity_days",
    ("recurring", "upcoming_window_days"): "upcoming_window_days",
    ("recurring", "deliver_auto_sent"): "deliver_auto_sent",
}

# Environment variable -> (section, key)
ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "BILLING_DATABASE_URL": ("database", "url"),
    "BILLING_LOG_LEVEL": ("logging", "level"),
}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def apply_env_overrides(
    data: dict[str, Any],
    environ: Mapping[str, str],
) -> dict[str, Any]:
    """Return a copy of ``data`` with ``BILLING_*`` variables applied."""
    merged = {section: dict(values or {}) for section, values in data.items()}
    for var, (section, key) in ENV_OVERRIDES.items():
        value = environ.get(var)
        if value:
            merged.setdefault(section, {})[key] = value
    return merged


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def parse_settings(data: dict[str, Any]) -> BillingSettings:
    """
    Parse a nested settings dict into ``BillingSettings``.

    Missing keys keep their defaults.

    Raises:
        ValueError: On an unknown section or key, or an invalid value.
    """
    known_sections = {section for section, _ in _FIELD_MAP}
    kwargs: dict[str, Any] = {}
    for section, values in data.items():
        if section not in known_sections:
            raise ValueError(f"Unknown settings section: {section!r}")
        if not isinstance(values, dict):
            raise ValueError(f"Settings section {section!r} must be a mapping")
        for key, value in values.items():
            field_name = _FIELD_MAP.get((section, key))
            if field_name is None:
                raise ValueError(f"Unknown setting: {section}.{key}")
            kwargs[field_name] = value

    for name in ("default_payment_terms_days", "proposal_validity_days", "upcoming_window_days"):
        if name in kwargs:
            kwargs[name] = int(kwargs[name])
    if isinstance(kwargs.get("deliver_auto_sent"), str):
        kwargs["deliver_auto_sent"] = kwargs["deliver_auto_sent"].lower() in ("1", "true", "yes")

    return BillingSettings(checksum=compute_checksum(data), **kwargs)
