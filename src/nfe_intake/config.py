"""
Configuration management (SSOT).

Every setting nfe-intake reads is declared here. Values come from a YAML
file, then NFE_INTAKE_* environment variables override them.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml


class ConfigValidationError(Exception):
    """Raised when configuration validation fails."""

    pass


@dataclass
class IngestionConfig:
    """NF-e ingestion settings."""

    # Upper bound of the active-catalog candidate set used for name matching.
    # A true match outside the bound is missed, so raise it for large catalogs.
    catalog_candidate_limit: int = 20
    # Confidence attached to lines matched by barcode (cEAN)
    barcode_confidence: float = 0.95
    # Confidence attached to lines matched by normalized name
    name_confidence: float = 0.90
    # source_type recorded on receivings created by this pipeline
    source_type: str = "nfe_import"
    # Emit an audit event per successful import
    audit_enabled: bool = True


@dataclass
class Config:
    """Application configuration (SSOT)."""

    ingestion: IngestionConfig = field(default_factory=IngestionConfig)
    state_db_path: Path = field(default_factory=lambda: Path("data/state.db"))

    def validate(self) -> list[str]:
        """Validate configuration completeness and consistency.

        Returns:
            List of validation errors (empty if valid)
        """
        errors: list[str] = []

        if self.ingestion.catalog_candidate_limit < 1:
            errors.append("ingestion.catalog_candidate_limit must be >= 1")

        for name in ("barcode_confidence", "name_confidence"):
            value = getattr(self.ingestion, name)
            if not 0.0 < value <= 1.0:
                errors.append(f"ingestion.{name} must be in (0, 1], got {value}")

        if not self.ingestion.source_type:
            errors.append("ingestion.source_type is required")

        return errors

    def validate_or_raise(self) -> None:
        """Raise ConfigValidationError listing every problem found."""
        errors = self.validate()
        if errors:
            raise ConfigValidationError("; ".join(errors))


def load_config(config_path: Path) -> Config:
    """
    Load configuration from YAML file.

    Environment variables can override config values:
    - NFE_INTAKE_DB_PATH
    - NFE_INTAKE_CATALOG_LIMIT
    - NFE_INTAKE_AUDIT_ENABLED (true/false)
    """
    if config_path.exists():
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
    else:
        data = {}

    ingestion_data = data.get("ingestion", {})

    limit_env = os.environ.get("NFE_INTAKE_CATALOG_LIMIT", "")
    catalog_limit = ingestion_data.get("catalog_candidate_limit", 20)
    if limit_env:
        try:
            catalog_limit = int(limit_env)
        except ValueError:
            raise ConfigValidationError(
                f"NFE_INTAKE_CATALOG_LIMIT must be an integer, got: {limit_env!r}"
            )

    audit_env = os.environ.get("NFE_INTAKE_AUDIT_ENABLED", "").lower()
    audit_enabled = ingestion_data.get("audit_enabled", True)
    if audit_env == "true":
        audit_enabled = True
    elif audit_env == "false":
        audit_enabled = False

    ingestion = IngestionConfig(
        catalog_candidate_limit=catalog_limit,
        barcode_confidence=float(ingestion_data.get("barcode_confidence", 0.95)),
        name_confidence=float(ingestion_data.get("name_confidence", 0.90)),
        source_type=ingestion_data.get("source_type", "nfe_import"),
        audit_enabled=audit_enabled,
    )

    state_db = os.environ.get("NFE_INTAKE_DB_PATH", data.get("state_db_path", "data/state.db"))

    return Config(
        ingestion=ingestion,
        state_db_path=Path(state_db),
    )


def create_default_config(config_path: Path) -> None:
    """Create a default configuration file."""
    default_config = """# nfe-intake configuration
#
# Environment overrides:
#   NFE_INTAKE_DB_PATH, NFE_INTAKE_CATALOG_LIMIT, NFE_INTAKE_AUDIT_ENABLED

ingestion:
  catalog_candidate_limit: 20   # Active catalog items compared by normalized name
  barcode_confidence: 0.95      # Confidence of a cEAN barcode match
  name_confidence: 0.90         # Confidence of a normalized-name match
  source_type: "nfe_import"     # Recorded on every receiving created
  audit_enabled: true           # Emit one audit event per import

# State database path
state_db_path: "data/state.db"
"""

    config_path.parent.mkdir(parents=True, exist_ok=True)
    with open(config_path, "w") as f:
        f.write(default_config)
