"""Project configuration facade backed by itembank.config_manager."""
from __future__ import annotations

from pathlib import Path
from typing import Any, Dict

from itembank.config_manager import Config, ConfigError, load_config

CONFIG: Config = load_config()

BASE_DIR = Path(__file__).resolve().parent.parent
DATA_DIR = CONFIG.paths.data_dir
LOGS_DIR = CONFIG.paths.logs_dir

for directory in (DATA_DIR, LOGS_DIR):
    directory.mkdir(parents=True, exist_ok=True)

ENVIRONMENT = CONFIG.app.environment
DEBUG = CONFIG.app.debug
IS_PRODUCTION = ENVIRONMENT == "production"

DATABASE_CONFIG: Dict[str, Any] = CONFIG.database.model_dump(mode="python")
DATABASE_CONFIG["type"] = DATABASE_CONFIG.pop("driver")

DEDUP_CONFIG: Dict[str, Any] = CONFIG.dedup.model_dump(mode="python")

LOGGING_CONFIG: Dict[str, Any] = {
    "level": CONFIG.logging.level,
    "file_path": str(CONFIG.logging.file_path),
    "max_file_size": f"{CONFIG.logging.max_file_size_mb} MB",
    "retention": f"{CONFIG.logging.retention_days} days",
    "format": CONFIG.logging.format,
}


def validate_config(config: Config | None = None) -> None:
    """Execute cross-field checks the schema cannot express on its own."""

    cfg = config or CONFIG
    if cfg.database.driver == "sqlite" and not cfg.database.path:
        raise ConfigError("sqlite driver requires database.path")
    if cfg.database.driver == "postgresql":
        missing = [
            name
            for name in ("host", "port", "user", "password")
            if not getattr(cfg.database, name)
        ]
        if missing:
            raise ConfigError("postgresql configuration missing: " + ", ".join(missing))
    if cfg.dedup.ngram_size > cfg.dedup.min_content_length:
        raise ConfigError("dedup.ngram_size cannot exceed dedup.min_content_length")


__all__ = [
    "BASE_DIR",
    "CONFIG",
    "DATA_DIR",
    "LOGS_DIR",
    "ENVIRONMENT",
    "DEBUG",
    "IS_PRODUCTION",
    "DATABASE_CONFIG",
    "DEDUP_CONFIG",
    "LOGGING_CONFIG",
    "validate_config",
]
