"""Configuration loader and validation for reconciliation settings."""

from pathlib import Path
from typing import Any, Optional
import logging

import yaml
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from .models.transaction import MatchFlavor
from .utils.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class ToleranceProfile(BaseModel):
    """
    How close two transactions must be to pair up, and how the pairing is scored.

    Ranges are checked by :meth:`validate_ranges` rather than by field
    constraints so that an invalid profile is reported as a
    ``ConfigurationError`` wherever it is used, never clamped.
    """

    max_days_difference: int = 7
    tolerance_percentage: float = 0.05
    date_weight: float = 0.3
    amount_weight: float = 0.3
    min_confidence: float = 0.0
    auto_apply: bool = False
    auto_apply_threshold: float = 0.9
    description_keywords: list[str] = Field(default_factory=list)

    def validate_ranges(self) -> "ToleranceProfile":
        """
        Check every numeric setting is in range.

        Returns:
            The profile itself, for chaining

        Raises:
            ConfigurationError: If any setting is out of range
        """
        if self.max_days_difference < 0:
            raise ConfigurationError(
                f"max_days_difference must be >= 0, got {self.max_days_difference}"
            )
        if not 0.0 <= self.tolerance_percentage <= 1.0:
            raise ConfigurationError(
                f"tolerance_percentage must be within [0, 1], got {self.tolerance_percentage}"
            )
        # Zero weights would let an inexact pair reach full confidence
        for name in ("date_weight", "amount_weight"):
            value = getattr(self, name)
            if not 0.0 < value <= 1.0:
                raise ConfigurationError(f"{name} must be within (0, 1], got {value}")
        for name in ("min_confidence", "auto_apply_threshold"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ConfigurationError(f"{name} must be within [0, 1], got {value}")
        return self


class FlavorProfiles(BaseModel):
    """Tolerance profile per reconciliation flavor."""

    reimbursement: ToleranceProfile = Field(
        default_factory=lambda: ToleranceProfile(
            max_days_difference=90,
            tolerance_percentage=0.05,
            date_weight=0.3,
            amount_weight=0.2,
        )
    )
    transfer: ToleranceProfile = Field(
        default_factory=lambda: ToleranceProfile(
            max_days_difference=7,
            tolerance_percentage=0.05,
            date_weight=0.3,
            amount_weight=0.3,
            auto_apply=True,
            auto_apply_threshold=0.9,
        )
    )
    duplicate: ToleranceProfile = Field(
        default_factory=lambda: ToleranceProfile(
            max_days_difference=3,
            tolerance_percentage=0.01,
            date_weight=0.2,
            amount_weight=0.2,
        )
    )

    # Relaxed profile for listing counterparts a user picks from by hand
    manual_search: ToleranceProfile = Field(
        default_factory=lambda: ToleranceProfile(
            max_days_difference=8,
            tolerance_percentage=0.12,
            date_weight=0.3,
            amount_weight=0.3,
        )
    )

    def for_flavor(self, flavor: MatchFlavor) -> ToleranceProfile:
        return getattr(self, flavor.value)


class ExcelOutputConfig(BaseModel):
    """Configuration for Excel output."""

    filename_template: str = "reconciliation_{flavor}_{date}_{time}.xlsx"


class SheetConfig(BaseModel):
    """Configuration for a report sheet."""

    enabled: bool = True
    name: str


class SheetsConfig(BaseModel):
    """Configuration for all report sheets."""

    summary: SheetConfig = Field(default_factory=lambda: SheetConfig(name="Summary"))
    candidates: SheetConfig = Field(default_factory=lambda: SheetConfig(name="Candidates"))
    applied: SheetConfig = Field(default_factory=lambda: SheetConfig(name="Applied Matches"))
    unmatched: SheetConfig = Field(default_factory=lambda: SheetConfig(name="Unmatched"))


class OutputConfig(BaseModel):
    """Configuration for output."""

    excel: ExcelOutputConfig = Field(default_factory=ExcelOutputConfig)
    sheets: SheetsConfig = Field(default_factory=SheetsConfig)


class LoggingConfig(BaseModel):
    """Configuration for logging."""

    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class ReconConfig(BaseModel):
    """Main configuration model for reconciliation."""

    profiles: FlavorProfiles = Field(default_factory=FlavorProfiles)
    output: OutputConfig = Field(default_factory=OutputConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    config_file_path: Optional[str] = None

    def profile(self, flavor: MatchFlavor) -> ToleranceProfile:
        """Tolerance profile configured for ``flavor``."""
        return self.profiles.for_flavor(flavor)

    def validate_profiles(self) -> "ReconConfig":
        named = [(flavor.value, self.profile(flavor)) for flavor in MatchFlavor]
        named.append(("manual_search", self.profiles.manual_search))
        for name, profile in named:
            try:
                profile.validate_ranges()
            except ConfigurationError as e:
                raise ConfigurationError(f"profiles.{name}: {e}") from e
        return self


def get_default_config() -> dict[str, Any]:
    """Return the default configuration as a dictionary."""
    return {
        "profiles": {
            "reimbursement": {
                "max_days_difference": 90,
                "tolerance_percentage": 0.05,
                "date_weight": 0.3,
                "amount_weight": 0.2,
                "min_confidence": 0.0,
                "auto_apply": False,
                "auto_apply_threshold": 0.9,
                "description_keywords": [],
            },
            "transfer": {
                "max_days_difference": 7,
                "tolerance_percentage": 0.05,
                "date_weight": 0.3,
                "amount_weight": 0.3,
                "min_confidence": 0.0,
                "auto_apply": True,
                "auto_apply_threshold": 0.9,
                "description_keywords": [],
            },
            "duplicate": {
                "max_days_difference": 3,
                "tolerance_percentage": 0.01,
                "date_weight": 0.2,
                "amount_weight": 0.2,
                "min_confidence": 0.0,
                "auto_apply": False,
                "auto_apply_threshold": 0.9,
                "description_keywords": [],
            },
            "manual_search": {
                "max_days_difference": 8,
                "tolerance_percentage": 0.12,
                "date_weight": 0.3,
                "amount_weight": 0.3,
                "min_confidence": 0.0,
                "auto_apply": False,
                "auto_apply_threshold": 0.9,
                "description_keywords": [],
            },
        },
        "output": {
            "excel": {
                "filename_template": "reconciliation_{flavor}_{date}_{time}.xlsx",
            },
            "sheets": {
                "summary": {"enabled": True, "name": "Summary"},
                "candidates": {"enabled": True, "name": "Candidates"},
                "applied": {"enabled": True, "name": "Applied Matches"},
                "unmatched": {"enabled": True, "name": "Unmatched"},
            },
        },
        "logging": {
            "level": "INFO",
            "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        },
    }


def load_config(config_path: Optional[Path] = None) -> ReconConfig:
    """
    Load configuration from a YAML file or use defaults.

    Args:
        config_path: Path to YAML configuration file (optional)

    Returns:
        ReconConfig object with loaded or default settings

    Raises:
        ConfigurationError: If the file is malformed or a profile is out of range
    """
    config_dict = get_default_config()

    if config_path and config_path.exists():
        logger.info(f"Loading configuration from: {config_path}")
        try:
            with open(config_path, "r") as f:
                user_config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {config_path}: {e}") from e

        if not isinstance(user_config, dict):
            raise ConfigurationError(f"Configuration root must be a mapping: {config_path}")

        config_dict = _deep_merge(config_dict, user_config)
        config_dict["config_file_path"] = str(config_path)
    else:
        logger.info("Using default configuration")

    try:
        config = ReconConfig(**config_dict)
    except PydanticValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e

    return config.validate_profiles()


def _deep_merge(base: dict, override: dict) -> dict:
    """
    Deep merge two dictionaries.

    Args:
        base: Base dictionary
        override: Dictionary to merge on top

    Returns:
        Merged dictionary
    """
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value

    return result


def generate_default_config(output_path: Path) -> None:
    """
    Write the default configuration to a YAML file.

    Args:
        output_path: Path to write the configuration file
    """
    yaml_content = """# Transaction reconciliation configuration
# Tolerance profiles are per flavor: reimbursement, transfer, duplicate;
# manual_search is the relaxed profile for picking counterparts by hand

"""
    yaml_content += yaml.dump(get_default_config(), default_flow_style=False, sort_keys=False)

    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w") as f:
        f.write(yaml_content)

    logger.info(f"Generated configuration file: {output_path}")
