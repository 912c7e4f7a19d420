"""
Configuration management for tapkit.

Settings come from an optional YAML config file, overridden by TAPKIT_*
environment variables.
"""

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic_settings import BaseSettings

# Formulas shipped alongside the package
BUNDLED_FORMULA_DIR = Path(__file__).resolve().parent / "formulas"

DEFAULT_CONFIG_PATH = Path.home() / ".config" / "tapkit" / "config.yaml"


class Settings(BaseSettings):
    """Installer settings."""

    # Layout
    prefix: Path = Path.home() / ".tapkit"
    bin_dir: Path | None = None
    cache_dir: Path | None = None
    receipts_dir: Path | None = None
    formula_dir: Path = BUNDLED_FORMULA_DIR

    # Timeouts (seconds)
    download_timeout: int = 60
    self_test_timeout: int = 30

    # Refuse non-HTTPS or private-network download URLs
    validate_urls: bool = True

    model_config = {"env_prefix": "TAPKIT_"}

    @property
    def resolved_bin_dir(self) -> Path:
        return self.bin_dir or self.prefix / "bin"

    @property
    def resolved_cache_dir(self) -> Path:
        return self.cache_dir or self.prefix / "cache"

    @property
    def resolved_receipts_dir(self) -> Path:
        return self.receipts_dir or self.prefix / "receipts"


def load_config(config_path: Path) -> dict[str, Any]:
    """
    Load configuration from a YAML file.

    Returns:
        Configuration dictionary (empty for an empty file)

    Raises:
        FileNotFoundError: If the config file doesn't exist
        ValueError: If the file is not a YAML mapping
    """
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        config = yaml.safe_load(f) or {}

    if not isinstance(config, dict):
        raise ValueError(f"Config file must contain a mapping: {config_path}")

    return config


def get_settings(config_path: Path | None = None) -> Settings:
    """
    Build settings from the config file and environment.

    An explicit config_path must exist; the default path is optional.
    Environment variables take precedence over file values.
    """
    if config_path is not None:
        config = load_config(config_path)
    elif DEFAULT_CONFIG_PATH.exists():
        config = load_config(DEFAULT_CONFIG_PATH)
    else:
        config = {}

    # Drop file values that the environment overrides
    overrides = {
        key: value
        for key, value in config.items()
        if f"TAPKIT_{key.upper()}" not in os.environ
    }

    return Settings(**overrides)
