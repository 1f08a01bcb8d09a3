"""
Configuration Loader (``blood_config.loader``).

Responsibility
--------------
Loads a YAML configuration set and parses it into the frozen dataclasses
of ``blood_config.schema``.  The single public entry point for runtime
config is ``blood_config.get_active_config()``.

Invariants enforced
-------------------
* Every parse error raises ``ConfigurationError`` naming the offending key;
  there are no silent fallbacks for malformed values.
* Every parsed object is a frozen dataclass from ``schema.py``.
* ``compute_checksum`` produces a deterministic SHA-256 hash for
  configuration identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import replace
from pathlib import Path
from typing import Any

import yaml

from blood_config.schema import (
    AuditConfig,
    AuditFailureMode,
    BloodBankConfig,
    DatabaseConfig,
    ForecastConfig,
    InventoryConfig,
)
from blood_kernel.domain.rarity import DEFAULT_RARITY_WEIGHTS, RarityTable
from blood_kernel.exceptions import ConfigurationError


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ConfigurationError: if the top level is not a mapping.
    """
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigurationError(str(path), "top level must be a mapping")
    return data


def _section(data: dict[str, Any], key: str) -> dict[str, Any]:
    value = data.get(key) or {}
    if not isinstance(value, dict):
        raise ConfigurationError(key, "must be a mapping")
    return value


def _positive_int(section: str, data: dict[str, Any], key: str, default: int) -> int:
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ConfigurationError(f"{section}.{key}", "must be a positive integer")
    return value


def _positive_number(section: str, data: dict[str, Any], key: str, default: float) -> float:
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        raise ConfigurationError(f"{section}.{key}", "must be a positive number")
    return float(value)


def parse_database(data: dict[str, Any]) -> DatabaseConfig:
    url = data.get("url", DatabaseConfig.url)
    if not isinstance(url, str) or not url.strip():
        raise ConfigurationError("database.url", "must be a non-empty string")
    return DatabaseConfig(
        url=url.strip(),
        echo=bool(data.get("echo", False)),
        busy_timeout_seconds=_positive_number(
            "database", data, "busy_timeout_seconds", DatabaseConfig.busy_timeout_seconds
        ),
        pool_size=_positive_int("database", data, "pool_size", DatabaseConfig.pool_size),
        pool_timeout=_positive_number(
            "database", data, "pool_timeout", DatabaseConfig.pool_timeout
        ),
    )


def parse_failure_mode(value: Any) -> AuditFailureMode:
    text = str(value).strip().lower().replace("-", "_")
    try:
        return AuditFailureMode(text)
    except ValueError:
        raise ConfigurationError(
            "audit.failure_mode", f"must be fail_open or fail_closed, got {value!r}"
        ) from None


def parse_audit(data: dict[str, Any]) -> AuditConfig:
    pepper = data.get("pepper", AuditConfig.pepper)
    if not isinstance(pepper, str) or not pepper:
        raise ConfigurationError("audit.pepper", "must be a non-empty string")
    return AuditConfig(
        pepper=pepper,
        failure_mode=parse_failure_mode(data.get("failure_mode", "fail_open")),
    )


def parse_inventory(data: dict[str, Any]) -> InventoryConfig:
    source = data.get("default_donation_source", InventoryConfig.default_donation_source)
    if not isinstance(source, str) or not source.strip():
        raise ConfigurationError(
            "inventory.default_donation_source", "must be a non-empty string"
        )
    return InventoryConfig(
        default_donation_source=source.strip(),
        suggestion_limit=_positive_int(
            "inventory", data, "suggestion_limit", InventoryConfig.suggestion_limit
        ),
        listing_limit=_positive_int(
            "inventory", data, "listing_limit", InventoryConfig.listing_limit
        ),
    )


def parse_forecast(data: dict[str, Any]) -> ForecastConfig:
    threshold = data.get("eligibility_threshold", ForecastConfig.eligibility_threshold)
    if isinstance(threshold, bool) or not isinstance(threshold, (int, float)):
        raise ConfigurationError("forecast.eligibility_threshold", "must be a number")
    if not 0.0 <= threshold <= 1.0:
        raise ConfigurationError("forecast.eligibility_threshold", "must be within [0, 1]")
    return ForecastConfig(eligibility_threshold=float(threshold))


def parse_rarity_weights(data: Any) -> dict[str, float]:
    """Validated, normalised weights (compact type -> weight)."""
    if data is None:
        data = dict(DEFAULT_RARITY_WEIGHTS)
    if not isinstance(data, dict):
        raise ConfigurationError("rarity_weights", "must be a mapping")
    return dict(RarityTable({str(k): v for k, v in data.items()}).weights)


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def parse_config(data: dict[str, Any]) -> BloodBankConfig:
    """Parse a whole configuration set (already loaded from YAML)."""
    config = BloodBankConfig(
        config_id=str(data.get("config_id", "default")),
        version=int(data.get("version", 1)),
        database=parse_database(_section(data, "database")),
        audit=parse_audit(_section(data, "audit")),
        inventory=parse_inventory(_section(data, "inventory")),
        forecast=parse_forecast(_section(data, "forecast")),
        rarity_weights=parse_rarity_weights(data.get("rarity_weights")),
    )
    return replace(config, checksum=compute_checksum(config.to_dict()))


def load_config_file(path: Path) -> BloodBankConfig:
    return parse_config(load_yaml_file(path))
