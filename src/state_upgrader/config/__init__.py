"""Configuration management module."""

from .loader import UpgraderConfig, find_config_file, load_config

__all__ = ["UpgraderConfig", "load_config", "find_config_file"]
