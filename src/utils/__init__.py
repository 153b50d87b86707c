"""
Shared utilities for the item bank deduplication engine.
"""

from .logger import ItemBankLogger, get_logger, setup_logging

__all__ = [
    "ItemBankLogger",
    "get_logger",
    "setup_logging",
]
