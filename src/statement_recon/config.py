"""Configuration loader and validation for statement import settings."""

from pathlib import Path
from typing import Any, Optional
import logging

import yaml
from pydantic import BaseModel, Field, ValidationError

from .utils.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class InputConfig(BaseModel):
    """Configuration for reading statement files."""

    encoding: str = "utf-8-sig"
    delimiter: str = ","
    preview_rows: int = 10


class LedgerConfig(BaseModel):
    """Configuration for the ledger file used by the command line tool."""

    path: Optional[str] = None
    date_format: str = "%Y-%m-%d"


class ExcelOutputConfig(BaseModel):
    """Configuration for Excel output."""

    filename_template: str = "import_review_{date}_{time}.xlsx"
    include_timestamp: bool = True


class SheetConfig(BaseModel):
    """Configuration for a report sheet."""

    enabled: bool = True
    name: str


class SheetsConfig(BaseModel):
    """Configuration for all report sheets."""

    summary: SheetConfig = Field(default_factory=lambda: SheetConfig(name="Summary"))
    candidates: SheetConfig = Field(default_factory=lambda: SheetConfig(name="Candidates"))
    row_errors: SheetConfig = Field(default_factory=lambda: SheetConfig(name="Row Errors"))
    apply_results: SheetConfig = Field(
        default_factory=lambda: SheetConfig(name="Apply Results")
    )


class OutputConfig(BaseModel):
    """Configuration for output."""

    excel: ExcelOutputConfig = Field(default_factory=ExcelOutputConfig)
    sheets: SheetsConfig = Field(default_factory=SheetsConfig)


class LoggingConfig(BaseModel):
    """Configuration for logging."""

    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    file: Optional[str] = None


class StatementReconConfig(BaseModel):
    """Main configuration model for statement import."""

    input: InputConfig = Field(default_factory=InputConfig)
    # Extra bank presets as column-mapping data, keyed by preset name
    presets: dict[str, dict[str, Any]] = Field(default_factory=dict)
    ledger: LedgerConfig = Field(default_factory=LedgerConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    config_file_path: Optional[str] = None


def get_default_config() -> dict[str, Any]:
    """Return the default configuration as a dictionary."""
    return {
        "input": {
            "encoding": "utf-8-sig",
            "delimiter": ",",
            "preview_rows": 10,
        },
        "presets": {},
        "ledger": {
            "path": None,
            "date_format": "%Y-%m-%d",
        },
        "output": {
            "excel": {
                "filename_template": "import_review_{date}_{time}.xlsx",
                "include_timestamp": True,
            },
            "sheets": {
                "summary": {"enabled": True, "name": "Summary"},
                "candidates": {"enabled": True, "name": "Candidates"},
                "row_errors": {"enabled": True, "name": "Row Errors"},
                "apply_results": {"enabled": True, "name": "Apply Results"},
            },
        },
        "logging": {
            "level": "INFO",
            "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            "file": None,
        },
    }


def load_config(config_path: Optional[Path] = None) -> StatementReconConfig:
    """
    Load configuration from a YAML file or use defaults.

    Args:
        config_path: Path to YAML configuration file (optional)

    Returns:
        StatementReconConfig object with loaded or default settings

    Raises:
        ConfigurationError: If the file is not valid YAML or fails validation
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

        # Deep merge user config into defaults
        config_dict = _deep_merge(config_dict, user_config)
        config_dict["config_file_path"] = str(config_path)
    else:
        logger.info("Using default configuration")

    try:
        return StatementReconConfig(**config_dict)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e


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
    Generate a default configuration file.

    Args:
        output_path: Path to write the configuration file
    """
    config_dict = get_default_config()
    config_dict["presets"] = {
        "example-credit-union": {
            "date_column": "Posted",
            "description_column": "Payee",
            "amount_column": "Value",
            "date_format": "yyyy-MM-dd",
        },
    }

    yaml_content = """# Bank statement import configuration
# Generated configuration file - customize as needed
# Custom bank layouts go under "presets"; date formats use dd/MM/yyyy style patterns.

"""
    yaml_content += yaml.dump(config_dict, default_flow_style=False, sort_keys=False)

    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w") as f:
        f.write(yaml_content)

    logger.info(f"Generated configuration file: {output_path}")
