from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import ValidationError

from repopackager.domain.models import ManagerConfig
from repopackager.exceptions import ConfigurationError
from repopackager.services.manager import PackageManager
from repopackager.storage.filesystem import FileSystem

logger = logging.getLogger(__name__)

CONFIG_PATH_ENV_VAR = "REPOPACKAGER_CONFIG"
LOG_LEVEL_ENV_VAR = "REPOPACKAGER_LOG_LEVEL"

# Resolve project root (not the Python package root)
_PROJECT_ROOT = Path(__file__).resolve().parents[2]
_DEFAULT_CONFIG_PATH = _PROJECT_ROOT / "repopackager.yaml"


def get_config_path() -> Path:
    """
    Determine the configuration file path.

    Priority:
    1. Environment variable REPOPACKAGER_CONFIG
    2. '<project root>/repopackager.yaml'
    """
    env_path = os.environ.get(CONFIG_PATH_ENV_VAR)
    if env_path:
        return Path(env_path).expanduser()
    return _DEFAULT_CONFIG_PATH


def get_log_level() -> str:
    return os.environ.get(LOG_LEVEL_ENV_VAR, "INFO").upper()


def load_config(path: Optional[Path] = None) -> ManagerConfig:
    """
    Load the manager configuration from a YAML or JSON file.

    A missing file yields an empty configuration (no repositories).

    Raises:
        ConfigurationError: If the file cannot be parsed or fails validation
    """
    if path is None:
        path = get_config_path()

    if not path.exists():
        logger.warning(f"Configuration file {path} not found; starting without repositories")
        return ManagerConfig()

    try:
        text = path.read_text(encoding="utf-8")
        if path.suffix.lower() == ".json":
            raw = json.loads(text)
        else:
            raw = yaml.safe_load(text)
    except (OSError, json.JSONDecodeError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Cannot read configuration file {path}: {e}") from e

    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigurationError(f"Configuration file {path} must contain a mapping at the top level")

    try:
        return ManagerConfig.model_validate(raw)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration in {path}: {e}") from e


def build_manager(config: ManagerConfig, fs: Optional[FileSystem] = None) -> PackageManager:
    """Create a manager with every configured repository registered."""
    manager = PackageManager(fs=fs)
    for settings in config.repositories:
        manager.add_repository(settings)
    return manager
