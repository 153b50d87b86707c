"""
Exceptions raised by the deduplication engine.

Duplicate detection is advisory: only ``InvalidOptions`` is meant to reach the
caller. The other errors are caught inside the service and turned into a
degraded report.
"""

from typing import Any, Dict, Optional


class DeduplicationError(Exception):
    """Base exception for all deduplication engine errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class NormalizationError(DeduplicationError):
    """Input could not be coerced into text at all."""

    def __init__(self, value_type: str):
        super().__init__(
            f"Cannot normalize value of type '{value_type}'",
            {"value_type": value_type},
        )
        self.value_type = value_type


class StorageError(DeduplicationError):
    """Persistence-layer fault while reading or writing fingerprints."""

    def __init__(self, operation: str, cause: Optional[str] = None, item_id: Optional[str] = None):
        message = f"Fingerprint store error during {operation}"
        if item_id:
            message += f" for item '{item_id}'"
        if cause:
            message += f": {cause}"
        super().__init__(message, {"operation": operation, "item_id": item_id, "cause": cause})
        self.operation = operation
        self.item_id = item_id


class InvalidOptions(DeduplicationError, ValueError):
    """Detection options outside their allowed ranges."""

    def __init__(self, message: str, errors: Optional[list] = None):
        super().__init__(message, {"errors": errors or []})
        self.errors = errors or []
