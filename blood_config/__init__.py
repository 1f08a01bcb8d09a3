"""
blood_config -- single public entrypoint for blood bank configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component may read configuration
    files or environment variables directly.

Architecture position:
    Configuration.  Sits above ``blood_kernel`` and below
    ``blood_services``.  The kernel MUST NEVER import from
    ``blood_config``; services receive plain values from the parsed config.

Environment overrides (read here and nowhere else):
    BLOOD_CONFIG_PATH    -- YAML file to load instead of sets/default.yaml
    BLOOD_DATABASE_URL   -- overrides database.url
    BLOOD_AUDIT_PEPPER   -- overrides audit.pepper

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``blood_config_loaded`` log entry carrying the config id, version and
    checksum, tying every audit entry to the configuration in force.
"""

from __future__ import annotations

import logging
import os
from dataclasses import replace
from pathlib import Path

from blood_config.loader import compute_checksum, load_config_file
from blood_config.schema import (
    AuditConfig,
    AuditFailureMode,
    BloodBankConfig,
    DatabaseConfig,
    ForecastConfig,
    InventoryConfig,
)

_logger = logging.getLogger("blood_kernel.config")

_DEFAULT_CONFIG_DIR = Path(__file__).parent / "sets"
DEFAULT_CONFIG_PATH = _DEFAULT_CONFIG_DIR / "default.yaml"

ENV_CONFIG_PATH = "BLOOD_CONFIG_PATH"
ENV_DATABASE_URL = "BLOOD_DATABASE_URL"
ENV_AUDIT_PEPPER = "BLOOD_AUDIT_PEPPER"


def get_active_config(config_path: Path | str | None = None) -> BloodBankConfig:
    """The ONLY public configuration entrypoint.

    Resolution order for the file: ``config_path`` argument, then
    ``BLOOD_CONFIG_PATH``, then the bundled default set.  Environment
    overrides for the database URL and the pepper are applied last.

    Raises:
        FileNotFoundError: If the configuration file does not exist.
        ConfigurationError: If a value is invalid.
    """
    path = Path(
        config_path
        or os.environ.get(ENV_CONFIG_PATH)
        or DEFAULT_CONFIG_PATH
    )
    config = load_config_file(path)

    db_url = os.environ.get(ENV_DATABASE_URL)
    if db_url:
        config = replace(config, database=replace(config.database, url=db_url))
    pepper = os.environ.get(ENV_AUDIT_PEPPER)
    if pepper:
        config = replace(config, audit=replace(config.audit, pepper=pepper))
    if db_url or pepper:
        config = replace(config, checksum=compute_checksum(config.to_dict()))

    if config.audit.pepper == "CHANGE_ME":
        _logger.warning("audit_pepper_default", extra={"config_id": config.config_id})

    _logger.info(
        "blood_config_loaded",
        extra={
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "config_path": str(path),
            "audit_failure_mode": config.audit.failure_mode.value,
        },
    )
    return config


__all__ = [
    "AuditConfig",
    "AuditFailureMode",
    "BloodBankConfig",
    "DatabaseConfig",
    "ForecastConfig",
    "InventoryConfig",
    "get_active_config",
]
