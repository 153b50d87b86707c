"""Configuration tooling for the item bank deduplication engine."""
from __future__ import annotations

from .config_manager import Config, ConfigError, load_config, save_config
from .config_schema import DEFAULT_CONFIG, iter_field_docs

__all__ = [
    "load_config",
    "save_config",
    "Config",
    "ConfigError",
    "DEFAULT_CONFIG",
    "iter_field_docs",
]
