"""Near-duplicate search over similarity token sets."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import (
    AbstractSet,
    Any,
    Collection,
    Iterable,
    List,
    Optional,
    Protocol,
    Sequence,
    runtime_checkable,
)

from src.storage.models import FingerprintRecord

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 0.8


def jaccard(a: Iterable[str], b: Iterable[str]) -> float:
    """Jaccard index of two token collections, in [0, 1].

    Two empty sets count as identical (1.0); a single empty set scores 0.0.
    """
    set_a = a if isinstance(a, AbstractSet) else set(a)
    set_b = b if isinstance(b, AbstractSet) else set(b)
    if not set_a and not set_b:
        return 1.0
    if not set_a or not set_b:
        return 0.0
    intersection = len(set_a & set_b)
    return intersection / (len(set_a) + len(set_b) - intersection)


@dataclass(frozen=True)
class SimilarityMatch:
    item_id: str
    score: float
    sequence: int = 0


@runtime_checkable
class CandidatePool(Protocol):
    """Source of fingerprints to compare a query against."""

    def candidates(self, exclude_item_id: Optional[str] = None) -> Iterable[FingerprintRecord]:
        ...


class StoreCandidatePool:
    """Full scan over every tokenized fingerprint in a store."""

    def __init__(self, store: Any):
        self.store = store

    def candidates(self, exclude_item_id: Optional[str] = None) -> Iterable[FingerprintRecord]:
        return self.store.all_candidates(exclude_item_id=exclude_item_id)


class StaticCandidatePool:
    """In-memory pool, mostly for tests and batch jobs."""

    def __init__(self, records: Sequence[FingerprintRecord] = ()):
        self.records = list(records)

    def add(self, record: FingerprintRecord) -> None:
        self.records.append(record)

    def candidates(self, exclude_item_id: Optional[str] = None) -> Iterable[FingerprintRecord]:
        for record in self.records:
            if record.item_id != exclude_item_id and record.similarity_tokens:
                yield record


def find_similar(
    tokens: Iterable[str],
    threshold: float,
    candidate_pool: CandidatePool,
    exclude_item_ids: Collection[str] = (),
    limit: Optional[int] = None,
) -> List[SimilarityMatch]:
    """Candidates whose Jaccard score is at least ``threshold``.

    Results are sorted by score, highest first; equal scores keep the oldest
    fingerprint first. ``exclude_item_ids[0]``, if any, is also passed to the
    pool so it can skip the query item while scanning.
    """
    if not 0.0 <= threshold <= 1.0:
        raise ValueError(f"threshold must be within [0, 1], got {threshold}")

    query = frozenset(tokens)
    if not query:
        return []

    excluded = set(exclude_item_ids)
    pool_exclude = next(iter(exclude_item_ids), None)
    matches: List[SimilarityMatch] = []
    scanned = 0
    for record in candidate_pool.candidates(exclude_item_id=pool_exclude):
        scanned += 1
        if record.item_id in excluded or not record.similarity_tokens:
            continue
        score = jaccard(query, frozenset(record.similarity_tokens))
        if score >= threshold:
            matches.append(SimilarityMatch(record.item_id, score, record.sequence))

    matches.sort(key=lambda match: (-match.score, match.sequence))
    logger.debug(
        "Similarity scan: %s candidates, %s above %.2f", scanned, len(matches), threshold
    )
    if limit is not None:
        return matches[:limit]
    return matches


class SimilarityEngine:
    """``find_similar`` bound to a pool and a default threshold."""

    def __init__(self, candidate_pool: CandidatePool, threshold: float = DEFAULT_THRESHOLD):
        if not 0.0 <= threshold <= 1.0:
            raise ValueError(f"threshold must be within [0, 1], got {threshold}")
        self.candidate_pool = candidate_pool
        self.threshold = threshold

    def find_similar(
        self,
        tokens: Iterable[str],
        threshold: Optional[float] = None,
        exclude_item_ids: Collection[str] = (),
        limit: Optional[int] = None,
    ) -> List[SimilarityMatch]:
        return find_similar(
            tokens,
            self.threshold if threshold is None else threshold,
            self.candidate_pool,
            exclude_item_ids=exclude_item_ids,
            limit=limit,
        )

    @staticmethod
    def score(a: Iterable[str], b: Iterable[str]) -> float:
        return jaccard(a, b)


__all__ = [
    "CandidatePool",
    "DEFAULT_THRESHOLD",
    "SimilarityEngine",
    "SimilarityMatch",
    "StaticCandidatePool",
    "StoreCandidatePool",
    "find_similar",
    "jaccard",
]
