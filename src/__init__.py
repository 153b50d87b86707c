"""
Main package of the item bank deduplication engine.

Holds the functional modules: normalization and similarity (dedup), the
fingerprint store (storage), request/report contracts and utilities.
"""

from config.version import PROJECT_VERSION, PYTHON_REQUIRES_SPECIFIER

from .dedup import DuplicateDetectionService, FingerprintGenerator, Normalizer
from .storage import FingerprintStore, get_fingerprint_store
from .utils import get_logger, setup_logging

__version__ = PROJECT_VERSION
__description__ = "Exact and near-duplicate detection for exam item content"

__package_info__ = {
    "name": "itembank-dedup",
    "version": __version__,
    "description": __description__,
    "license": "MIT",
    "python_requires": PYTHON_REQUIRES_SPECIFIER,
}

__all__ = [
    "DuplicateDetectionService",
    "FingerprintGenerator",
    "Normalizer",
    "FingerprintStore",
    "get_fingerprint_store",
    "get_logger",
    "setup_logging",
]
