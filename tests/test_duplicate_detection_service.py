"""Tests for the duplicate detection service."""

from __future__ import annotations

from typing import Any, Dict

import pytest

from src.contracts.dedup import DetectionOptions, ItemContent
from src.dedup.errors import InvalidOptions, StorageError
from src.dedup.service import DuplicateDetectionService, compute_uniqueness_score

FOX = "The quick brown fox jumps over the lazy dog near the quiet river bank today"
FOX_AGAIN = FOX + " again"
PLANTS = "Photosynthesis converts light energy into chemical energy in green plants"


class StubModuleLogger:
    """Captures structured log payloads for assertions."""

    def __init__(self) -> None:
        self.records: list[tuple[str, Dict[str, Any]]] = []

    def info(self, payload: Dict[str, Any]) -> None:
        self.records.append(("info", payload))

    def warning(self, payload: Dict[str, Any]) -> None:
        self.records.append(("warning", payload))

    def error(self, payload: Dict[str, Any]) -> None:
        self.records.append(("error", payload))

    def debug(self, payload: Dict[str, Any]) -> None:
        self.records.append(("debug", payload))

    def events(self) -> list[str]:
        return [payload["event"] for _, payload in self.records]


@pytest.fixture()
def service(fingerprint_store) -> DuplicateDetectionService:
    detection = DuplicateDetectionService(store=fingerprint_store)
    detection.module_logger = StubModuleLogger()
    return detection


def test_spacing_variants_share_a_hash(service):
    first = service.analyze("a", "2x + 5 = 13")
    second = service.analyze("b", "2x+5=13")
    assert first.content_hash == second.content_hash


def test_exact_duplicate_reported_with_full_score(service):
    service.analyze("original", "Solve 2x + 5 = 13 for x")
    report = service.analyze("copy", "solve   2x+5=13 for X")

    assert [match.model_dump() for match in report.exact_duplicates] == [
        {"item_id": "original", "similarity_score": 1.0}
    ]
    assert all(match.item_id != "original" for match in report.similar_items)
    assert report.uniqueness_score == 0.0


def test_short_text_has_no_tokens_and_full_uniqueness(service, fingerprint_store):
    report = service.analyze("tiny", "abcde")

    assert report.token_count == 0
    assert report.uniqueness_score == 100.0
    assert report.exact_duplicates == []
    assert report.similar_items == []
    assert fingerprint_store.get_by_item("tiny").similarity_tokens == ()


def test_near_duplicate_found_and_unrelated_item_ignored(service):
    service.analyze("item-2", FOX_AGAIN)
    service.analyze("item-3", PLANTS)

    report = service.analyze("item-1", FOX, {"threshold": 0.8})

    assert [match.item_id for match in report.similar_items] == ["item-2"]
    assert 0.8 <= report.similar_items[0].similarity_score < 1.0
    assert report.exact_duplicates == []
    assert report.uniqueness_score == 50.0


def test_reanalysing_an_item_does_not_match_itself(service, fingerprint_store):
    service.analyze("item-1", FOX)
    report = service.analyze("item-1", FOX)
    assert report.exact_duplicates == []
    assert report.similar_items == []
    assert fingerprint_store.count() == 1
    assert report.uniqueness_score == 100.0


def test_include_flags_and_limit(service):
    for index in range(3):
        service.analyze(f"copy-{index}", FOX)
    service.analyze("near", FOX_AGAIN)

    report = service.analyze(
        "query", FOX, {"include_exact": False, "include_similar": True, "limit": 1}
    )
    assert report.exact_duplicates == []
    assert [match.item_id for match in report.similar_items] == ["near"]
    # hidden matches still count against uniqueness
    assert report.uniqueness_score == 0.0

    capped = service.analyze("query", FOX, {"limit": 2})
    assert [match.item_id for match in capped.exact_duplicates] == ["copy-0", "copy-1"]


@pytest.mark.parametrize(
    "options",
    [
        {"threshold": 1.5},
        {"threshold": -0.1},
        {"threshold": "high"},
        {"threshold": True},
        {"limit": 0},
        {"limit": 51},
        {"limit": "5"},
        {"include_exact": "yes"},
        {"unexpected": 1},
    ],
)
def test_invalid_options_fail_fast(service, fingerprint_store, options):
    with pytest.raises(InvalidOptions):
        service.analyze("item-1", FOX, options)
    assert fingerprint_store.count() == 0


def test_invalid_options_are_value_errors(service):
    with pytest.raises(ValueError):
        service.analyze("item-1", FOX, {"limit": 100})


def test_storage_failure_during_search_degrades(service, monkeypatch):
    service.analyze("item-2", FOX_AGAIN)

    def broken(*args, **kwargs):
        raise StorageError("find_exact_duplicates", "connection reset")

    monkeypatch.setattr(service.store, "find_exact_duplicates", broken)

    report = service.analyze("item-1", FOX)
    assert report.degraded is True
    assert report.uniqueness_score == 100.0
    assert report.similar_items == []
    assert report.to_payload()["degraded"] is True
    assert "dedup.analyze.degraded" in service.module_logger.events()


def test_storage_failure_during_upsert_is_logged(service, monkeypatch):
    def broken(*args, **kwargs):
        raise StorageError("upsert", "disk full", item_id="item-1")

    monkeypatch.setattr(service.store, "upsert", broken)

    report = service.analyze("item-1", FOX)
    assert report.content_hash
    assert "dedup.fingerprint.store_failed" in service.module_logger.events()


def test_non_text_input_is_treated_as_empty(service):
    report = service.analyze("weird", 12345)
    assert report.content_length == 0
    assert report.uniqueness_score == 100.0
    assert "dedup.normalize.failed" in service.module_logger.events()


def test_bytes_input(service):
    report = service.analyze("bytes", FOX.encode("utf-8"))
    assert report.token_count > 0


def test_payload_shape(service):
    payload = service.analyze("item-1", FOX).to_payload()
    assert set(payload) == {
        "item_id",
        "content_hash",
        "uniqueness_score",
        "token_count",
        "content_length",
        "exact_duplicates",
        "similar_items",
        "degraded",
    }
    assert payload["degraded"] is False


def test_analyze_item_combines_stem_and_options(service, fingerprint_store):
    item = ItemContent(item_id="q-1", stem="Capital of France?", options=["Paris", "Lyon"])
    service.analyze_item(item)

    stored = fingerprint_store.get_by_item("q-1")
    assert "paris" in stored.normalized_content
    assert "lyon" in stored.normalized_content

    report = service.analyze_item(
        {"item_id": "q-2", "stem": "capital of france", "options": ["PARIS", "lyon"]}
    )
    assert [match.item_id for match in report.exact_duplicates] == ["q-1"]


def test_fingerprint_item_and_remove_item(service, fingerprint_store):
    record = service.fingerprint_item("item-1", FOX)
    assert record is not None
    assert record.token_count > 0

    assert service.remove_item("item-1") is True
    assert fingerprint_store.get_by_item("item-1") is None
    assert service.remove_item("item-1") is False


def test_fingerprint_item_returns_none_on_failure(service, monkeypatch):
    def broken(*args, **kwargs):
        raise StorageError("upsert", "disk full")

    monkeypatch.setattr(service.store, "upsert", broken)
    assert service.fingerprint_item("item-1", FOX) is None


def test_cleanup_orphans(service, item_directory):
    service.fingerprint_item("alive", FOX)
    service.fingerprint_item("dead", PLANTS)
    item_directory.add("alive")

    summary = service.cleanup_orphans()
    assert summary == {"checked": 2, "deleted": 1, "skipped": 0}
    assert "dedup.cleanup.completed" in service.module_logger.events()


def test_duplicate_groups(service):
    service.fingerprint_item("a", FOX)
    service.fingerprint_item("b", FOX)
    service.fingerprint_item("c", PLANTS)

    groups = service.duplicate_groups()
    assert [group["item_ids"] for group in groups] == [["a", "b"]]


def test_completed_analysis_is_logged_with_context(service):
    service.analyze("item-1", FOX)
    level, payload = service.module_logger.records[-1]
    assert level == "info"
    assert payload["event"] == "dedup.analyze.completed"
    assert payload["item_id"] == "item-1"
    assert "latency" in payload
    assert payload["details"]["uniqueness_score"] == 100.0


def test_explicit_options_object_is_accepted(service):
    options = DetectionOptions(threshold=0.5, limit=3)
    report = service.analyze("item-1", FOX, options)
    assert report.uniqueness_score == 100.0


@pytest.mark.parametrize(
    "similar, corpus, expected",
    [
        (0, 0, 100.0),
        (0, 1, 100.0),
        (1, 3, 50.0),
        (1, 4, 66.67),
        (5, 3, 0.0),
    ],
)
def test_compute_uniqueness_score(similar, corpus, expected):
    assert compute_uniqueness_score(similar, corpus) == expected
