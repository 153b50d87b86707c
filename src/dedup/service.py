# src/dedup/service.py
# Duplicate detection for exam items
# ==================================

"""
Orchestrates normalization, fingerprinting, persistence and similarity search
for one item at a time.

Everything this service reports is advisory. Storage trouble is logged and
turned into a degraded report; the only exception that reaches callers is
``InvalidOptions``, raised before any work is done.
"""

import time
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional, Union

from config.settings import DEDUP_CONFIG
from src.contracts.dedup import (
    DetectionOptions,
    DuplicateMatchModel,
    DuplicateReport,
    ItemContent,
)
from src.utils.logger import get_logger

from .errors import NormalizationError, StorageError
from .fingerprint import FingerprintGenerator, TextFingerprint, sha256_hex
from .similarity import CandidatePool, SimilarityEngine, StoreCandidatePool

if TYPE_CHECKING:  # pragma: no cover - typing only
    from src.storage.database import FingerprintStore
    from src.storage.models import FingerprintRecord
    from src.utils.logger import ItemBankLogger

OptionsLike = Union[DetectionOptions, Mapping[str, Any], None]

SCORE_DECIMALS = 3


def compute_uniqueness_score(similar_count: int, corpus_size: int) -> float:
    """0-100, lower when more of the corpus looks like the item."""

    if corpus_size <= 1:
        return 100.0
    score = (1 - similar_count / max(1, corpus_size - 1)) * 100
    return round(min(100.0, max(0.0, score)), 2)


class DuplicateDetectionService:
    """
    Entry point used by item authoring: analyse, refresh and forget items.

    The store, similarity engine, fingerprint generator and candidate pool
    can all be injected; by default the shared store and a full-scan pool are
    used.
    """

    def __init__(
        self,
        store: Optional["FingerprintStore"] = None,
        engine: Optional[SimilarityEngine] = None,
        generator: Optional[FingerprintGenerator] = None,
        candidate_pool: Optional[CandidatePool] = None,
        logger_factory: Optional["ItemBankLogger"] = None,
    ) -> None:
        if store is None:
            from src.storage.database import get_fingerprint_store

            store = get_fingerprint_store()
        self.store = store
        self.generator = generator or FingerprintGenerator.from_config(DEDUP_CONFIG)

        if engine is None:
            engine = SimilarityEngine(
                candidate_pool or StoreCandidatePool(store),
                threshold=DEDUP_CONFIG.get("similarity_threshold", 0.8),
            )
        self.engine = engine

        self.logger_factory: "ItemBankLogger" = logger_factory or get_logger()
        self.module_logger = self.logger_factory.create_module_logger("dedup.service")

    # =====================================
    # ANALYSIS
    # =====================================

    def analyze(
        self, item_id: str, raw_text: Any, options: OptionsLike = None
    ) -> DuplicateReport:
        """
        Fingerprint ``raw_text``, store it under ``item_id`` and report exact
        and near duplicates with a uniqueness score.

        Raises:
            InvalidOptions: options out of range; nothing is stored.
        """
        opts = DetectionOptions.parse(options)
        item_id = str(item_id)
        started = time.perf_counter()

        fingerprint = self._fingerprint(item_id, raw_text)
        self._store_fingerprint(item_id, fingerprint)

        if len(fingerprint.normalized_content) < self.generator.min_content_length:
            report = self._build_report(item_id, fingerprint, [], [], 100.0)
            self._emit_log(
                "info",
                "dedup.analyze.too_short",
                item_id=item_id,
                latency=time.perf_counter() - started,
                details={"content_length": fingerprint.content_length},
            )
            return report

        try:
            exact, similar, uniqueness = self._search(item_id, fingerprint, opts)
        except StorageError as exc:
            self._emit_log(
                "warning",
                "dedup.analyze.degraded",
                item_id=item_id,
                latency=time.perf_counter() - started,
                details={"operation": exc.operation, "error": exc.message},
            )
            return self._build_report(item_id, fingerprint, [], [], 100.0, degraded=True)

        report = self._build_report(item_id, fingerprint, exact, similar, uniqueness)
        self._emit_log(
            "info",
            "dedup.analyze.completed",
            item_id=item_id,
            latency=time.perf_counter() - started,
            details={
                "exact_duplicates": len(report.exact_duplicates),
                "similar_items": len(report.similar_items),
                "uniqueness_score": report.uniqueness_score,
                "threshold": opts.threshold,
            },
        )
        return report

    def analyze_item(
        self, item: Union[ItemContent, Mapping[str, Any]], options: OptionsLike = None
    ) -> DuplicateReport:
        """Analyse an item's stem together with its answer options."""

        if not isinstance(item, ItemContent):
            item = ItemContent.model_validate(dict(item))
        return self.analyze(item.item_id, item.combined_text(), options)

    def _search(self, item_id: str, fingerprint: TextFingerprint, opts: DetectionOptions):
        exact_records = self.store.find_exact_duplicates(
            fingerprint.content_hash, exclude_item_id=item_id
        )
        exact_ids = [record.item_id for record in exact_records]

        similar_matches = self.engine.find_similar(
            fingerprint.similarity_tokens,
            threshold=opts.threshold,
            exclude_item_ids=[item_id, *exact_ids],
        )
        corpus_size = self.store.count()

        # every look-alike counts against uniqueness, whatever the caller asked to see
        uniqueness = compute_uniqueness_score(
            len(exact_ids) + len(similar_matches), corpus_size
        )

        exact: List[DuplicateMatchModel] = []
        if opts.include_exact:
            exact = [
                DuplicateMatchModel(item_id=other, similarity_score=1.0)
                for other in exact_ids[: opts.limit]
            ]
        similar: List[DuplicateMatchModel] = []
        if opts.include_similar:
            similar = [
                DuplicateMatchModel(
                    item_id=match.item_id,
                    similarity_score=round(match.score, SCORE_DECIMALS),
                )
                for match in similar_matches[: opts.limit]
            ]
        return exact, similar, uniqueness

    def _fingerprint(self, item_id: str, raw_text: Any) -> TextFingerprint:
        try:
            return self.generator.fingerprint_text(raw_text)
        except NormalizationError as exc:
            self._emit_log(
                "warning",
                "dedup.normalize.failed",
                item_id=item_id,
                details={"value_type": exc.value_type},
            )
            return TextFingerprint("", sha256_hex(""), ())

    def _store_fingerprint(
        self, item_id: str, fingerprint: TextFingerprint
    ) -> Optional["FingerprintRecord"]:
        try:
            return self.store.upsert(
                item_id,
                fingerprint.content_hash,
                fingerprint.normalized_content,
                fingerprint.similarity_tokens,
            )
        except StorageError as exc:
            self._emit_log(
                "error",
                "dedup.fingerprint.store_failed",
                item_id=item_id,
                details={"error": exc.message},
            )
            return None

    @staticmethod
    def _build_report(
        item_id: str,
        fingerprint: TextFingerprint,
        exact: List[DuplicateMatchModel],
        similar: List[DuplicateMatchModel],
        uniqueness: float,
        degraded: bool = False,
    ) -> DuplicateReport:
        return DuplicateReport(
            item_id=item_id,
            content_hash=fingerprint.content_hash,
            uniqueness_score=uniqueness,
            token_count=fingerprint.token_count,
            content_length=fingerprint.content_length,
            exact_duplicates=exact,
            similar_items=similar,
            degraded=degraded,
        )

    # =====================================
    # MAINTENANCE
    # =====================================

    def fingerprint_item(self, item_id: str, raw_text: Any) -> Optional["FingerprintRecord"]:
        """Refresh the stored fingerprint without searching. ``None`` on failure."""

        item_id = str(item_id)
        record = self._store_fingerprint(item_id, self._fingerprint(item_id, raw_text))
        if record is not None:
            self._emit_log(
                "debug",
                "dedup.fingerprint.stored",
                item_id=item_id,
                details={"token_count": record.token_count},
            )
        return record

    def remove_item(self, item_id: str) -> bool:
        item_id = str(item_id)
        try:
            removed = self.store.delete_item(item_id)
        except StorageError as exc:
            self._emit_log(
                "error",
                "dedup.fingerprint.delete_failed",
                item_id=item_id,
                details={"error": exc.message},
            )
            return False
        self._emit_log(
            "info",
            "dedup.fingerprint.deleted",
            item_id=item_id,
            details={"removed": removed},
        )
        return removed

    def cleanup_orphans(self) -> Dict[str, int]:
        started = time.perf_counter()
        try:
            summary = self.store.delete_orphans()
        except StorageError as exc:
            self._emit_log(
                "error",
                "dedup.cleanup.failed",
                latency=time.perf_counter() - started,
                details={"error": exc.message},
            )
            return {"checked": 0, "deleted": 0, "skipped": 0, "failed": 1}
        self._emit_log(
            "info",
            "dedup.cleanup.completed",
            latency=time.perf_counter() - started,
            details=summary,
        )
        return summary

    def duplicate_groups(
        self, min_size: int = 2, limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        """Items sharing an identical normalized text, largest groups first."""
        try:
            return self.store.duplicate_groups(min_size=min_size, limit=limit)
        except StorageError as exc:
            self._emit_log(
                "error", "dedup.groups.failed", details={"error": exc.message}
            )
            return []

    # =====================================
    # STRUCTURED LOGGING
    # =====================================

    def _build_log_payload(
        self,
        event: str,
        *,
        item_id: Optional[str] = None,
        latency: Optional[float] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "event": event,
            "item_id": item_id,
            "latency": round(latency, 4) if latency is not None else None,
        }
        if details:
            payload["details"] = details
        return {key: value for key, value in payload.items() if value is not None}

    def _emit_log(
        self,
        level: str,
        event: str,
        *,
        item_id: Optional[str] = None,
        latency: Optional[float] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        payload = self._build_log_payload(
            event, item_id=item_id, latency=latency, details=details
        )
        getattr(self.module_logger, level)(payload)
