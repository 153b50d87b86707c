"""
Content deduplication for exam items.

Normalization, fingerprinting, similarity search and the service tying them
to the fingerprint store.
"""

from .errors import DeduplicationError, InvalidOptions, NormalizationError, StorageError
from .normalizer import Normalizer, coerce_text, normalize
from .fingerprint import (
    FingerprintGenerator,
    TextFingerprint,
    generate_similarity_tokens,
    sha256_hex,
)
from .similarity import (
    CandidatePool,
    SimilarityEngine,
    SimilarityMatch,
    StaticCandidatePool,
    StoreCandidatePool,
    find_similar,
    jaccard,
)
from .service import DuplicateDetectionService, compute_uniqueness_score

__all__ = [
    "CandidatePool",
    "DeduplicationError",
    "DuplicateDetectionService",
    "FingerprintGenerator",
    "InvalidOptions",
    "NormalizationError",
    "Normalizer",
    "SimilarityEngine",
    "SimilarityMatch",
    "StaticCandidatePool",
    "StorageError",
    "StoreCandidatePool",
    "TextFingerprint",
    "coerce_text",
    "compute_uniqueness_score",
    "find_similar",
    "generate_similarity_tokens",
    "jaccard",
    "normalize",
    "sha256_hex",
]
