"""
Tests for ledger settings loading (ledger_config).

Covers:
- Shipped defaults
- Path resolution (argument, environment variable, defaults)
- Rejection of unknown keys and out-of-range values
- LEDGER_CONFIG_TRACE emission
"""

import pytest
from decimal import Decimal

import yaml

from ledger_config import DEFAULT_CONFIG_PATH, LedgerSettings, get_settings
from ledger_config.loader import compute_checksum, load_yaml_file, parse_settings
from ledger_kernel.exceptions import ConfigurationError


def write_yaml(path, data):
    path.write_text(yaml.safe_dump(data), encoding="utf-8")
    return path


class TestShippedDefaults:
    """The packaged defaults.yaml."""

    def test_defaults_file_exists(self):
        assert DEFAULT_CONFIG_PATH.exists()

    def test_defaults_match_schema_defaults(self, monkeypatch):
        monkeypatch.delenv("LEDGER_CONFIG_PATH", raising=False)

        settings = get_settings()

        assert settings.currency == "SYP"
        assert settings.timezone == "UTC"
        assert settings.business_day_start_hour == 8
        assert settings.on_time_days == 30
        assert settings.reliability_weights.payment_ratio == Decimal("0.7")
        assert settings.reliability_weights.on_time == Decimal("0.3")
        assert settings.checksum


class TestPathResolution:
    """Explicit path, then LEDGER_CONFIG_PATH, then defaults."""

    def test_explicit_path(self, tmp_path):
        path = write_yaml(tmp_path / "ledger.yaml", {"currency": "USD"})

        assert get_settings(path).currency == "USD"

    def test_environment_variable(self, tmp_path, monkeypatch):
        path = write_yaml(tmp_path / "ledger.yaml", {"on_time_days": 14})
        monkeypatch.setenv("LEDGER_CONFIG_PATH", str(path))

        assert get_settings().on_time_days == 14

    def test_explicit_path_wins_over_environment(self, tmp_path, monkeypatch):
        env_path = write_yaml(tmp_path / "env.yaml", {"on_time_days": 14})
        arg_path = write_yaml(tmp_path / "arg.yaml", {"on_time_days": 7})
        monkeypatch.setenv("LEDGER_CONFIG_PATH", str(env_path))

        assert get_settings(arg_path).on_time_days == 7

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_settings(tmp_path / "nope.yaml")

    def test_emits_config_trace(self, tmp_path, captured_logs):
        path = write_yaml(tmp_path / "ledger.yaml", {"currency": "SYP"})

        get_settings(path)

        traces = [r for r in captured_logs() if r["message"] == "LEDGER_CONFIG_TRACE"]
        assert traces[0]["source"] == str(path)
        assert traces[0]["currency"] == "SYP"


class TestParseSettings:
    """Validation of individual values."""

    def test_empty_mapping_gives_defaults(self):
        settings = parse_settings({})

        assert settings.currency == LedgerSettings().currency

    def test_currency_normalized(self):
        assert parse_settings({"currency": "usd"}).currency == "USD"

    def test_weights_from_strings(self):
        settings = parse_settings({"reliability_weights": {"payment_ratio": "0.6", "on_time": "0.4"}})

        assert settings.reliability_weights.payment_ratio == Decimal("0.6")

    @pytest.mark.parametrize("data", [
        {"colour": "blue"},
        {"currency": "ZZZ"},
        {"timezone": "Mars/Olympus"},
        {"timezone": 3},
        {"business_day_start_hour": 24},
        {"business_day_start_hour": "8"},
        {"business_day_start_hour": True},
        {"on_time_days": -1},
        {"reliability_weights": {"payment_ratio": "0.6", "on_time": "0.6"}},
        {"reliability_weights": {"payment_ratio": "1.5", "on_time": "-0.5"}},
        {"reliability_weights": {"speed": "1"}},
        {"reliability_weights": "equal"},
    ])
    def test_invalid_values_rejected(self, data):
        with pytest.raises(ConfigurationError) as exc_info:
            parse_settings(data, source="test.yaml")

        assert exc_info.value.source == "test.yaml"
        assert exc_info.value.code == "CONFIGURATION_ERROR"

    def test_non_mapping_document(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n", encoding="utf-8")

        with pytest.raises(ConfigurationError):
            load_yaml_file(path)

    def test_checksum_is_order_independent(self):
        assert compute_checksum({"a": 1, "b": 2}) == compute_checksum({"b": 2, "a": 1})

    def test_settings_money_helpers(self):
        settings = parse_settings({"currency": "JOD"})

        assert settings.money("1.5").currency.code == "JOD"
        assert settings.zero().is_zero
