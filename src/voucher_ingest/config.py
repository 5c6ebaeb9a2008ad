"""
Configuration management (SSOT).

This module defines ALL configuration for the voucher ingestion pipeline.
All config keys are defined here; no other module should invent config keys.

Key invariants:
- header_offset counts non-empty rows, matching how the reader skips rows
- batch_size is the checkpoint interval; progress is durable at each multiple
- currency is stamped on every voucher; the export carries no currency column
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from .exceptions import IngestError

logger = logging.getLogger(__name__)


class ConfigValidationError(IngestError):
    """Raised when configuration validation fails."""

    pass


@dataclass
class ImporterConfig:
    """Import pipeline settings."""

    # Non-empty rows before the header row of the export
    header_offset: int = 8
    # Blocks handled between durable progress checkpoints
    batch_size: int = 10
    # Currency stamped on vouchers
    currency: str = "INR"
    # Send short all-caps tokens to unclassified instead of account
    strict_classification: bool = False
    # Find-or-create rounds per entity before the block fails
    resolver_max_attempts: int = 3
    # Where audit JSON copies go (None: next to the uploaded file)
    audit_dir: Path | None = None


@dataclass
class Config:
    """Application configuration (SSOT).

    All configuration is centralized here. No other module should define
    configuration keys or defaults.
    """

    importer: ImporterConfig = field(default_factory=ImporterConfig)
    state_db_path: Path = field(default_factory=lambda: Path("data/state.db"))
    # Seconds a connection waits on a locked database
    busy_timeout_seconds: float = 30.0

    def validate(self) -> list[str]:
        """Validate configuration consistency.

        Returns:
            List of validation errors (empty if valid)
        """
        errors: list[str] = []

        if self.importer.header_offset < 0:
            errors.append("importer.header_offset must be >= 0")
        if self.importer.batch_size < 1:
            errors.append("importer.batch_size must be >= 1")
        if self.importer.resolver_max_attempts < 1:
            errors.append("importer.resolver_max_attempts must be >= 1")
        if not self.importer.currency or len(self.importer.currency) != 3:
            errors.append("importer.currency must be a 3-letter code")
        if self.busy_timeout_seconds < 0:
            errors.append("busy_timeout_seconds must be >= 0")

        return errors


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name, "")
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning(f"Ignoring non-integer {name}={value!r}")
        return default


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name, "").lower()
    if value in ("true", "1", "yes"):
        return True
    if value in ("false", "0", "no"):
        return False
    return default


def load_config(config_path: Path) -> Config:
    """
    Load configuration from YAML file.

    A missing file yields the defaults. Environment variables override
    config values:
    - VOUCHER_INGEST_DB (state database path)
    - VOUCHER_INGEST_BATCH_SIZE
    - VOUCHER_INGEST_CURRENCY
    - VOUCHER_INGEST_STRICT (true/false)
    - VOUCHER_INGEST_AUDIT_DIR
    """
    config_path = Path(config_path)
    if config_path.exists():
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
    else:
        data = {}

    importer_data = data.get("importer") or {}
    audit_dir = os.environ.get("VOUCHER_INGEST_AUDIT_DIR", importer_data.get("audit_dir"))

    importer = ImporterConfig(
        header_offset=int(importer_data.get("header_offset", 8)),
        batch_size=_env_int("VOUCHER_INGEST_BATCH_SIZE", int(importer_data.get("batch_size", 10))),
        currency=os.environ.get("VOUCHER_INGEST_CURRENCY", importer_data.get("currency", "INR")),
        strict_classification=_env_bool(
            "VOUCHER_INGEST_STRICT", bool(importer_data.get("strict_classification", False))
        ),
        resolver_max_attempts=int(importer_data.get("resolver_max_attempts", 3)),
        audit_dir=Path(audit_dir) if audit_dir else None,
    )

    state_db = os.environ.get("VOUCHER_INGEST_DB", data.get("state_db_path", "data/state.db"))

    return Config(
        importer=importer,
        state_db_path=Path(state_db),
        busy_timeout_seconds=float(data.get("busy_timeout_seconds", 30.0)),
    )


def create_default_config(config_path: Path) -> None:
    """Create a default configuration file."""
    default_config = """# Voucher ingestion pipeline configuration
#
# Environment overrides: VOUCHER_INGEST_DB, VOUCHER_INGEST_BATCH_SIZE,
# VOUCHER_INGEST_CURRENCY, VOUCHER_INGEST_STRICT, VOUCHER_INGEST_AUDIT_DIR

importer:
  header_offset: 8              # Non-empty rows before the header row
  batch_size: 10                # Blocks per durable progress checkpoint
  currency: "INR"               # Currency stamped on every voucher
  strict_classification: false  # Short all-caps lines -> unclassified
  resolver_max_attempts: 3      # Find-or-create retries per entity
  audit_dir: null               # Audit JSON directory (null: next to the upload)

# State database path
state_db_path: "data/state.db"

# Seconds to wait on a locked database
busy_timeout_seconds: 30
"""

    config_path = Path(config_path)
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with open(config_path, "w") as f:
        f.write(default_config)
