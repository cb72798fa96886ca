"""
Tests for billing_config: YAML loading, environment overrides and
validation.
"""

import pytest
import yaml

from billing_config import get_active_config
from billing_config.loader import apply_env_overrides, compute_checksum, parse_settings
from billing_config.schema import BillingSettings


def _write(path, text):
    path.write_text(text)
    return path


class TestPackagedDefaults:
    def test_defaults_load(self):
        settings = get_active_config(environ={})
        assert settings == BillingSettings(checksum=settings.checksum)
        assert settings.database_url == "sqlite:///billing.db"
        assert settings.deliver_auto_sent is True
        assert len(settings.checksum) == 64

    def test_load_is_logged(self, captured_logs):
        settings = get_active_config(environ={})
        loaded = [r for r in captured_logs() if r["message"] == "billing_config_loaded"]
        assert loaded[0]["checksum"] == settings.checksum
        assert loaded[0]["logger"] == "billing_kernel.config"


class TestFileSelection:
    def test_explicit_path(self, tmp_path):
        path = _write(tmp_path / "billing.yaml", "invoicing:\n  number_prefix: ACME\n")
        settings = get_active_config(path, environ={})
        assert settings.invoice_number_prefix == "ACME"
        # Keys missing from the file keep their defaults
        assert settings.default_currency == "USD"

    def test_env_var_path(self, tmp_path):
        path = _write(tmp_path / "billing.yaml", "proposals:\n  validity_days: 14\n")
        settings = get_active_config(environ={"BILLING_CONFIG": str(path)})
        assert settings.proposal_validity_days == 14

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_config(tmp_path / "absent.yaml", environ={})

    def test_malformed_yaml(self, tmp_path):
        path = _write(tmp_path / "bad.yaml", "invoicing: [unclosed\n")
        with pytest.raises(yaml.YAMLError):
            get_active_config(path, environ={})

    def test_empty_file_uses_defaults(self, tmp_path):
        path = _write(tmp_path / "empty.yaml", "")
        assert get_active_config(path, environ={}).log_level == "INFO"


class TestEnvironmentOverrides:
    def test_database_url_and_level(self):
        settings = get_active_config(
            environ={
                "BILLING_DATABASE_URL": "postgresql://billing@db/billing",
                "BILLING_LOG_LEVEL": "debug",
            }
        )
        assert settings.database_url == "postgresql://billing@db/billing"
        assert settings.log_level == "DEBUG"

    def test_override_changes_checksum(self):
        base = get_active_config(environ={})
        overridden = get_active_config(environ={"BILLING_LOG_LEVEL": "WARNING"})
        assert base.checksum != overridden.checksum

    def test_does_not_mutate_input(self):
        data = {"logging": {"level": "INFO"}}
        merged = apply_env_overrides(data, {"BILLING_LOG_LEVEL": "ERROR"})
        assert merged["logging"]["level"] == "ERROR"
        assert data["logging"]["level"] == "INFO"

    def test_empty_value_ignored(self):
        merged = apply_env_overrides({}, {"BILLING_DATABASE_URL": ""})
        assert merged == {}


class TestParseSettings:
    def test_unknown_section(self):
        with pytest.raises(ValueError, match="Unknown settings section"):
            parse_settings({"payments": {"gateway": "stripe"}})

    def test_unknown_key(self):
        with pytest.raises(ValueError, match="invoicing.number_width"):
            parse_settings({"invoicing": {"number_width": 6}})

    def test_section_must_be_mapping(self):
        with pytest.raises(ValueError, match="must be a mapping"):
            parse_settings({"logging": "INFO"})

    def test_coerces_strings(self):
        settings = parse_settings(
            {
                "invoicing": {"default_payment_terms_days": "45"},
                "recurring": {"deliver_auto_sent": "no", "upcoming_window_days": "7"},
            }
        )
        assert settings.default_payment_terms_days == 45
        assert settings.upcoming_window_days == 7
        assert settings.deliver_auto_sent is False

    @pytest.mark.parametrize(
        "data, message",
        [
            ({"logging": {"level": "LOUD"}}, "log_level"),
            ({"invoicing": {"default_payment_terms_days": -1}}, "cannot be negative"),
            ({"recurring": {"upcoming_window_days": 0}}, "at least 1"),
            ({"database": {"url": ""}}, "database_url"),
        ],
    )
    def test_invalid_values(self, data, message):
        with pytest.raises(ValueError, match=message):
            parse_settings(data)

    def test_checksum_is_order_independent(self):
        a = {"logging": {"level": "INFO"}, "database": {"url": "sqlite://"}}
        b = {"database": {"url": "sqlite://"}, "logging": {"level": "INFO"}}
        assert compute_checksum(a) == compute_checksum(b)
