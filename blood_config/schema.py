"""
BloodBankConfig schema.

Frozen dataclasses the YAML configuration set is parsed into.  Nothing in
this module reads files or the environment; that is the loader's job.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class AuditFailureMode(str, Enum):
    """What happens when an audit entry cannot be written."""

    # Business action commits; audit written afterwards, failures logged.
    FAIL_OPEN = "fail_open"
    # Audit written in the business transaction; failure rolls both back.
    FAIL_CLOSED = "fail_closed"


@dataclass(frozen=True)
class DatabaseConfig:
    url: str = "sqlite:///blood_bank.db"
    echo: bool = False
    busy_timeout_seconds: float = 30.0
    pool_size: int = 5
    pool_timeout: float = 30.0


@dataclass(frozen=True)
class AuditConfig:
    pepper: str = "CHANGE_ME"
    failure_mode: AuditFailureMode = AuditFailureMode.FAIL_OPEN


@dataclass(frozen=True)
class InventoryConfig:
    default_donation_source: str = "Soroka"
    suggestion_limit: int = 6
    listing_limit: int = 500


@dataclass(frozen=True)
class ForecastConfig:
    eligibility_threshold: float = 0.5


@dataclass(frozen=True)
class BloodBankConfig:
    """The complete runtime configuration."""

    config_id: str
    version: int
    database: DatabaseConfig
    audit: AuditConfig
    inventory: InventoryConfig
    forecast: ForecastConfig
    rarity_weights: dict[str, float] = field(default_factory=dict)
    checksum: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Plain form used for the checksum; the pepper is masked."""
        return {
            "config_id": self.config_id,
            "version": self.version,
            "database": {
                "url": self.database.url,
                "echo": self.database.echo,
                "busy_timeout_seconds": self.database.busy_timeout_seconds,
                "pool_size": self.database.pool_size,
                "pool_timeout": self.database.pool_timeout,
            },
            "audit": {
                "pepper_set": self.audit.pepper != "CHANGE_ME",
                "failure_mode": self.audit.failure_mode.value,
            },
            "inventory": {
                "default_donation_source": self.inventory.default_donation_source,
                "suggestion_limit": self.inventory.suggestion_limit,
                "listing_limit": self.inventory.listing_limit,
            },
            "forecast": {
                "eligibility_threshold": self.forecast.eligibility_threshold,
            },
            "rarity_weights": dict(sorted(self.rarity_weights.items())),
        }
