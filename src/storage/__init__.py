"""
Storage package for the item bank deduplication engine.

Holds the fingerprint table, the store that reads and writes it, and the item
directory used to detect orphaned fingerprints.
"""

from .database import FingerprintStore, get_fingerprint_store
from .directory import ItemDirectory, StaticItemDirectory
from .models import Base, ContentFingerprint, FingerprintRecord, create_all_tables


def initialize_database():
    """Create the fingerprint table if needed and return the shared store."""
    return get_fingerprint_store()


__all__ = [
    "FingerprintStore",
    "get_fingerprint_store",
    "ItemDirectory",
    "StaticItemDirectory",
    "Base",
    "ContentFingerprint",
    "FingerprintRecord",
    "create_all_tables",
    "initialize_database",
]
