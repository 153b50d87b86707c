"""Exact-match hashes and similarity token sets for normalized item text."""

from __future__ import annotations

import hashlib
from collections import Counter
from dataclasses import dataclass
from typing import Any, Iterator, List, Optional, Tuple

from .normalizer import Normalizer

HASH_ALGORITHM = "sha256"
NGRAM_SIZE = 3
MIN_CONTENT_LENGTH = 10
MAX_TOKENS = 1000
MIN_WORD_LENGTH = 2


def sha256_hex(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def _raw_tokens(normalized: str, ngram_size: int, min_word_length: int) -> Iterator[str]:
    # str indexing is per code point, so multi-byte characters stay intact
    for start in range(len(normalized) - ngram_size + 1):
        ngram = normalized[start : start + ngram_size]
        if ngram.strip():
            yield ngram
    for word in normalized.split():
        if len(word) >= min_word_length:
            yield word


def generate_similarity_tokens(
    normalized: str,
    *,
    ngram_size: int = NGRAM_SIZE,
    min_content_length: int = MIN_CONTENT_LENGTH,
    max_tokens: int = MAX_TOKENS,
    min_word_length: int = MIN_WORD_LENGTH,
) -> List[str]:
    """Return the deduplicated n-gram and word tokens in first-seen order.

    When more than ``max_tokens`` distinct tokens exist, the most frequent ones
    are kept; ties go to the token seen first.
    """
    if len(normalized) < min_content_length:
        return []

    counts = Counter(_raw_tokens(normalized, ngram_size, min_word_length))
    # Counter preserves insertion order, i.e. first-seen order
    tokens = list(counts)
    if len(tokens) <= max_tokens:
        return tokens

    ranked = sorted(range(len(tokens)), key=lambda index: -counts[tokens[index]])
    keep = sorted(ranked[:max_tokens])
    return [tokens[index] for index in keep]


@dataclass(frozen=True)
class TextFingerprint:
    """Normalized text together with its hash and similarity tokens."""

    normalized_content: str
    content_hash: str
    similarity_tokens: Tuple[str, ...]

    @property
    def token_count(self) -> int:
        return len(self.similarity_tokens)

    @property
    def content_length(self) -> int:
        return len(self.normalized_content)


class FingerprintGenerator:
    """Builds fingerprints with one fixed set of tokenization parameters."""

    def __init__(
        self,
        normalizer: Optional[Normalizer] = None,
        *,
        ngram_size: int = NGRAM_SIZE,
        min_content_length: int = MIN_CONTENT_LENGTH,
        max_tokens: int = MAX_TOKENS,
        min_word_length: int = MIN_WORD_LENGTH,
    ):
        if ngram_size < 1 or max_tokens < 1:
            raise ValueError("ngram_size and max_tokens must be positive")
        self.normalizer = normalizer or Normalizer()
        self.ngram_size = ngram_size
        self.min_content_length = min_content_length
        self.max_tokens = max_tokens
        self.min_word_length = min_word_length

    @classmethod
    def from_config(cls, dedup_config: dict) -> "FingerprintGenerator":
        return cls(
            Normalizer(dedup_config.get("digit_style", "arabic-indic")),
            ngram_size=dedup_config.get("ngram_size", NGRAM_SIZE),
            min_content_length=dedup_config.get("min_content_length", MIN_CONTENT_LENGTH),
            max_tokens=dedup_config.get("max_tokens", MAX_TOKENS),
            min_word_length=dedup_config.get("min_word_length", MIN_WORD_LENGTH),
        )

    def generate(self, normalized: str) -> Tuple[str, List[str]]:
        """Hash and tokenize text that has already been normalized."""
        tokens = generate_similarity_tokens(
            normalized,
            ngram_size=self.ngram_size,
            min_content_length=self.min_content_length,
            max_tokens=self.max_tokens,
            min_word_length=self.min_word_length,
        )
        return sha256_hex(normalized), tokens

    def fingerprint_text(self, raw_text: Any) -> TextFingerprint:
        normalized = self.normalizer.normalize(raw_text)
        content_hash, tokens = self.generate(normalized)
        return TextFingerprint(normalized, content_hash, tuple(tokens))

    def is_too_short(self, normalized: str) -> bool:
        return len(normalized) < self.min_content_length


__all__ = [
    "HASH_ALGORITHM",
    "NGRAM_SIZE",
    "MIN_CONTENT_LENGTH",
    "MAX_TOKENS",
    "FingerprintGenerator",
    "TextFingerprint",
    "generate_similarity_tokens",
    "sha256_hex",
]
