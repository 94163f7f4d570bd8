"""
Configuration Loader (``ledger_config.loader``).

Responsibility
--------------
Loads a ledger settings YAML file and parses it into the typed
``ledger_config.schema`` dataclasses. The single public entry point for
runtime settings is ``ledger_config.get_settings()``.

Invariants enforced
-------------------
* Unknown keys are rejected, not ignored, so a typo never silently falls
  back to a default.
* Every parsed object is a frozen dataclass from ``schema.py``.
* ``compute_checksum`` produces a deterministic SHA-256 hash of the parsed
  data for change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Invalid or unknown values  -> ``ConfigurationError``.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from ledger_config.schema import LedgerSettings, ReliabilityWeights
from ledger_kernel.domain.calendar import resolve_timezone
from ledger_kernel.domain.currency import CurrencyRegistry
from ledger_kernel.exceptions import ConfigurationError

_TOP_LEVEL_KEYS = frozenset({
    "currency",
    "timezone",
    "business_day_start_hour",
    "on_time_days",
    "reliability_weights",
})
_WEIGHT_KEYS = frozenset({"payment_ratio", "on_time"})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ConfigurationError: if the document is not a mapping.
    """
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigurationError(str(path), "top-level document must be a mapping")
    return data


def compute_checksum(data: dict[str, Any]) -> str:
    """Deterministic SHA-256 of a settings mapping."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def _parse_int(data: dict[str, Any], key: str, default: int, source: str) -> int:
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigurationError(source, f"{key} must be an integer, got {value!r}")
    return value


def _parse_weight(data: dict[str, Any], key: str, default: Decimal, source: str) -> Decimal:
    value = data.get(key, default)
    try:
        weight = Decimal(str(value))
    except InvalidOperation as e:
        raise ConfigurationError(source, f"reliability_weights.{key} is not a number") from e
    if not weight.is_finite() or weight < 0 or weight > 1:
        raise ConfigurationError(source, f"reliability_weights.{key} must be within [0, 1]")
    return weight


def parse_weights(data: dict[str, Any] | None, source: str) -> ReliabilityWeights:
    """Parse ReliabilityWeights; the two weights must sum to exactly 1."""
    defaults = ReliabilityWeights()
    if data is None:
        return defaults
    if not isinstance(data, dict):
        raise ConfigurationError(source, "reliability_weights must be a mapping")
    unknown = set(data) - _WEIGHT_KEYS
    if unknown:
        raise ConfigurationError(source, f"unknown reliability_weights keys: {sorted(unknown)}")

    weights = ReliabilityWeights(
        payment_ratio=_parse_weight(data, "payment_ratio", defaults.payment_ratio, source),
        on_time=_parse_weight(data, "on_time", defaults.on_time, source),
    )
    if weights.payment_ratio + weights.on_time != Decimal("1"):
        raise ConfigurationError(source, "reliability_weights must sum to 1")
    return weights


def parse_settings(data: dict[str, Any], source: str = "<memory>") -> LedgerSettings:
    """
    Parse a LedgerSettings from a dict.

    Preconditions:
        - ``data`` is the mapping loaded from YAML (may be empty).
    Postconditions:
        - Returns a frozen ``LedgerSettings`` carrying the data's checksum.
    Raises:
        ConfigurationError: on unknown keys or invalid values.
    """
    unknown = set(data) - _TOP_LEVEL_KEYS
    if unknown:
        raise ConfigurationError(source, f"unknown keys: {sorted(unknown)}")

    defaults = LedgerSettings()

    currency = data.get("currency", defaults.currency)
    try:
        currency = CurrencyRegistry.validate(currency)
    except ValueError as e:
        raise ConfigurationError(source, str(e)) from e

    tz_name = data.get("timezone", defaults.timezone)
    if not isinstance(tz_name, str):
        raise ConfigurationError(source, f"timezone must be a string, got {tz_name!r}")
    try:
        resolve_timezone(tz_name)
    except (KeyError, ValueError) as e:
        raise ConfigurationError(source, f"unknown timezone {tz_name!r}") from e

    hour = _parse_int(data, "business_day_start_hour", defaults.business_day_start_hour, source)
    if not 0 <= hour <= 23:
        raise ConfigurationError(source, "business_day_start_hour must be within 0..23")

    on_time_days = _parse_int(data, "on_time_days", defaults.on_time_days, source)
    if on_time_days < 0:
        raise ConfigurationError(source, "on_time_days cannot be negative")

    return LedgerSettings(
        currency=currency,
        timezone=tz_name,
        business_day_start_hour=hour,
        on_time_days=on_time_days,
        reliability_weights=parse_weights(data.get("reliability_weights"), source),
        checksum=compute_checksum(data),
    )
