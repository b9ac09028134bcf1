"""Configuration module."""

from .parser import (
    POSSIBLE_CONFIG_PATHS,
    PartConfig,
    PartsConfig,
    find_config_file,
    load_config,
    parse_config_file,
    split_path_and_keys,
)
from .settings import DEFAULT_STATE_FILE, Settings

__all__ = [
    "DEFAULT_STATE_FILE",
    "POSSIBLE_CONFIG_PATHS",
    "PartConfig",
    "PartsConfig",
    "Settings",
    "find_config_file",
    "load_config",
    "parse_config_file",
    "split_path_and_keys",
]
