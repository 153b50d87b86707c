# src/utils/logger.py
# Logging setup for the item bank deduplication engine
# ====================================================

"""
Central loguru configuration.

Console output is colourful and verbose in debug mode and compact otherwise;
the file sink rotates, retains and compresses according to ``LOGGING_CONFIG``.
Modules obtain a bound logger through ``create_module_logger`` so every record
carries the name of the component that produced it.
"""

import sys
import time
from functools import wraps
from pathlib import Path
from typing import Any, Dict, Optional

from loguru import logger

from config.settings import DEBUG, LOGGING_CONFIG


def _drop_sql_chatter(record: Dict[str, Any]) -> bool:
    # SQLAlchemy echoes every statement at INFO
    return not ("sqlalchemy" in record["name"] and record["level"].name == "INFO")


class ItemBankLogger:
    """Configures loguru once for the whole process."""

    def __init__(self):
        self.is_configured = False
        self.log_file_path: Optional[Path] = None

    def configure_logging(self, config: Optional[Dict[str, Any]] = None):
        """
        Install the console and file sinks.

        Args:
            config: Logging settings; defaults to ``LOGGING_CONFIG`` from
                config/settings.py
        """
        if self.is_configured:
            logger.debug("Logging already configured, skipping")
            return

        config = config or LOGGING_CONFIG

        logger.remove()
        self._configure_console_handler(config)
        if config.get("file_path"):
            self._configure_file_handler(config)

        self.is_configured = True
        logger.debug(f"Logging configured: {config}")

    def _configure_console_handler(self, config: Dict[str, Any]):
        if DEBUG:
            console_format = (
                "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
                "<level>{level: <8}</level> | "
                "<cyan>{name}</cyan>:<cyan>{line}</cyan> | "
                "<level>{message}</level>"
            )
            console_level = "DEBUG"
        else:
            console_format = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {message}"
            console_level = config.get("level", "INFO")

        logger.add(
            sys.stderr,
            format=console_format,
            level=console_level,
            colorize=True,
            filter=None if DEBUG else _drop_sql_chatter,
            backtrace=DEBUG,
            diagnose=DEBUG,
        )

    def _configure_file_handler(self, config: Dict[str, Any]):
        self.log_file_path = Path(config["file_path"])
        self.log_file_path.parent.mkdir(parents=True, exist_ok=True)

        file_format = config.get("format") or (
            "{time:YYYY-MM-DD HH:mm:ss.SSS} | "
            "{level: <8} | "
            "{process.id: <6} | "
            "{name}:{function}:{line} | "
            "{message}"
        )

        logger.add(
            str(self.log_file_path),
            format=file_format,
            level=config.get("level", "INFO"),
            rotation=config.get("max_file_size", "10 MB"),
            retention=config.get("retention", "30 days"),
            compression="gz",
            enqueue=True,
            backtrace=True,
            diagnose=False,
        )

    def create_module_logger(self, module_name: str) -> Any:
        """
        Logger bound to one component.

        Args:
            module_name: dotted component name, e.g. ``dedup.service``
        """
        if not self.is_configured:
            self.configure_logging()
        return logger.bind(module=module_name)

    def log_system_startup(
        self, version: str, config_summary: Optional[Dict[str, Any]] = None
    ):
        logger.info("=" * 60)
        logger.info(f"Item bank dedup engine {version} starting")
        logger.info(f"Debug mode: {DEBUG}")
        if config_summary:
            for key, value in config_summary.items():
                logger.info(f"  {key}: {value}")
        if self.log_file_path:
            logger.info(f"Log file: {self.log_file_path}")
        logger.info("=" * 60)

    def log_error_with_context(
        self, error: Exception, context: Optional[Dict[str, Any]] = None
    ):
        logger.error(f"ERROR: {error}")
        if context:
            for key, value in context.items():
                logger.error(f"  {key}: {value}")
        logger.opt(exception=error).error("Traceback:")


# Shared configurator
# ===================
_logger_instance: Optional[ItemBankLogger] = None


def get_logger() -> ItemBankLogger:
    """Process-wide configurator, configured on first use."""
    global _logger_instance
    if _logger_instance is None:
        _logger_instance = ItemBankLogger()
        _logger_instance.configure_logging()
    return _logger_instance


def setup_logging(config: Optional[Dict[str, Any]] = None) -> ItemBankLogger:
    """Configure logging at program start, optionally with explicit settings."""
    global _logger_instance
    if config and _logger_instance is None:
        _logger_instance = ItemBankLogger()
        _logger_instance.configure_logging(config)
    return get_logger()


def log_function_calls(logger_instance=None):
    """Decorator logging entry, duration and failures of a function."""

    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            func_logger = logger_instance or logger
            func_logger.debug(f"Running {func.__name__}")
            start_time = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception as exc:
                duration = time.perf_counter() - start_time
                func_logger.error(
                    f"{func.__name__} failed after {duration:.3f}s: {exc}"
                )
                raise
            duration = time.perf_counter() - start_time
            func_logger.debug(f"{func.__name__} finished in {duration:.3f}s")
            return result

        return wrapper

    return decorator
