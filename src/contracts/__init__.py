"""Shared contracts for validated deduplication payloads."""

from .dedup import (
    ABSOLUTE_MAX_LIMIT,
    DetectionOptions,
    DetectionOptionsPayload,
    DuplicateMatchModel,
    DuplicateMatchPayload,
    DuplicateReport,
    DuplicateReportPayload,
    ItemContent,
)

__all__ = [
    "ABSOLUTE_MAX_LIMIT",
    "DetectionOptions",
    "DetectionOptionsPayload",
    "DuplicateMatchModel",
    "DuplicateMatchPayload",
    "DuplicateReport",
    "DuplicateReportPayload",
    "ItemContent",
]
