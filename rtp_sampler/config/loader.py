"""YAML configuration loader."""

from __future__ import annotations

from pathlib import Path

import yaml

from .schemas import GeneratorConfig


def load_config(config_path: str | Path) -> GeneratorConfig:
    """Load and validate the generator configuration from a YAML file.

    Args:
        config_path: Path to YAML configuration file

    Returns:
        Validated GeneratorConfig instance

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If the file is empty or not valid YAML
        pydantic.ValidationError: If the content fails schema validation
    """
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    try:
        with open(config_path) as f:
            config_dict = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ValueError(f"Malformed YAML in {config_path}: {e}") from e

    if config_dict is None:
        raise ValueError(f"Empty configuration file: {config_path}")
    if not isinstance(config_dict, dict):
        raise ValueError(f"Configuration root must be a mapping: {config_path}")

    return GeneratorConfig.model_validate(config_dict)
