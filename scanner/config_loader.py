"""
Configuration loader for the scanner.

Loads and validates configuration from config.yaml file.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict

import yaml

from scanner.homography import SOLVERS

logger = logging.getLogger(__name__)

# Default configuration path (relative to this file)
DEFAULT_CONFIG_PATH = Path(__file__).parent / "config.yaml"


@dataclass
class EditorConfig:
    """Corner editor settings."""

    margin_px: float
    max_margin_fraction: float
    handle_size_px: float


@dataclass
class HomographyConfig:
    """Homography solver settings."""

    solver: str
    power_iterations: int


@dataclass
class OutputConfig:
    """Encoding settings for the flattened page."""

    jpeg_quality: int


@dataclass
class ScannerConfig:
    """Complete scanner configuration."""

    editor: EditorConfig
    homography: HomographyConfig
    output: OutputConfig


def load_config(config_path: Path = DEFAULT_CONFIG_PATH) -> ScannerConfig:
    """
    Load scanner configuration from YAML file.

    Args:
        config_path: Path to the configuration YAML file.

    Returns:
        Validated ScannerConfig object.

    Raises:
        FileNotFoundError: If config file doesn't exist.
        ValueError: If config is invalid or missing required fields.

    Example:
        >>> config = load_config()
        >>> config.editor.margin_px
        30.0
    """
    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    logger.debug(f"Loading scanner config from {config_path}")

    with open(config_path, "r", encoding="utf-8") as f:
        raw_config = yaml.safe_load(f)

    try:
        config = _parse_config(raw_config)
        _validate_config(config)
        logger.info("Successfully loaded scanner configuration")
        return config
    except (KeyError, TypeError, ValueError) as e:
        raise ValueError(f"Invalid configuration file: {e}") from e


def _parse_config(raw: Dict[str, Any]) -> ScannerConfig:
    """Parse raw dictionary into structured config objects."""
    return ScannerConfig(
        editor=EditorConfig(
            margin_px=float(raw["editor"]["margin_px"]),
            max_margin_fraction=float(raw["editor"]["max_margin_fraction"]),
            handle_size_px=float(raw["editor"]["handle_size_px"]),
        ),
        homography=HomographyConfig(
            solver=str(raw["homography"]["solver"]),
            power_iterations=int(raw["homography"]["power_iterations"]),
        ),
        output=OutputConfig(
            jpeg_quality=int(raw["output"]["jpeg_quality"]),
        ),
    )


def _validate_config(config: ScannerConfig) -> None:
    """
    Validate configuration values for logical consistency.

    Raises:
        ValueError: If any configuration value is invalid.
    """
    if config.editor.margin_px < 0:
        raise ValueError("margin_px cannot be negative")

    if not 0 < config.editor.max_margin_fraction < 0.5:
        raise ValueError(
            f"max_margin_fraction must be in (0, 0.5), got {config.editor.max_margin_fraction}"
        )

    if config.editor.handle_size_px < 1:
        raise ValueError("handle_size_px must be at least 1")

    if config.homography.solver not in SOLVERS:
        raise ValueError(
            f"Invalid solver: {config.homography.solver}. Must be one of {list(SOLVERS)}"
        )

    if config.homography.power_iterations < 1:
        raise ValueError("power_iterations must be at least 1")

    if not 1 <= config.output.jpeg_quality <= 100:
        raise ValueError("jpeg_quality must be between 1 and 100")

    logger.debug("Configuration validation passed")
