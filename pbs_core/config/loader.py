"""
Configuration loader for PBS Admin core.

Layers, lowest precedence first: model defaults, an optional YAML file,
then PBS_* environment variables (a local .env file is read first).
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml
from dotenv import find_dotenv, load_dotenv

from pbs_core.models.config import AutomationConfig


logger = logging.getLogger(__name__)

ENV_PREFIX = "PBS_"


def _read_yaml(path: Path) -> Dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Configuration file {path} must contain a mapping")
    # Accept either a top-level mapping or one nested under "automation"
    section = data.get("automation", data)
    if not isinstance(section, dict):
        raise ValueError(f"'automation' section in {path} must be a mapping")
    return section


def _read_env() -> Dict[str, Any]:
    overrides = {}
    for name in AutomationConfig.model_fields:
        value = os.environ.get(f"{ENV_PREFIX}{name.upper()}")
        if value is not None:
            overrides[name] = value
    return overrides


def load_config(path: Optional[Union[str, Path]] = None) -> AutomationConfig:
    """Load configuration from YAML and environment."""
    load_dotenv(find_dotenv(usecwd=True))

    values: Dict[str, Any] = {}
    if path is not None:
        config_path = Path(path)
        if config_path.exists():
            values.update(_read_yaml(config_path))
            logger.info("Loaded configuration from %s", config_path)
        else:
            logger.warning("Configuration file %s not found, using defaults", config_path)

    env_values = _read_env()
    if env_values:
        logger.debug("Environment overrides: %s", sorted(env_values))
    values.update(env_values)

    return AutomationConfig.model_validate(values)
