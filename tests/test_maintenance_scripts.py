"""Tests for the backfill and orphan cleanup scripts."""
from __future__ import annotations

import json

import pytest
from loguru import logger

from src.dedup.service import DuplicateDetectionService
from src.utils.logger import get_logger


def test_backfill_fingerprints_from_jsonl(tmp_path, fingerprint_store):
    import scripts.backfill_fingerprints as backfill

    items = tmp_path / "items.jsonl"
    lines = [
        json.dumps({"item_id": "q-1", "stem": "ما عاصمة مصر؟", "options": ["القاهرة", "الإسكندرية"]}),
        "",
        json.dumps({"item_id": "q-2", "text": "Solve 2x + 5 = 13 for x"}),
        json.dumps({"stem": "missing id"}),
        "{not json",
    ]
    items.write_text("\n".join(lines) + "\n", encoding="utf-8")

    stats = backfill.backfill(items, DuplicateDetectionService(store=fingerprint_store))

    assert stats == {"stored": 2, "failed": 0, "invalid": 1}
    assert fingerprint_store.get_by_item("q-1") is not None
    assert "solve" in fingerprint_store.get_by_item("q-2").normalized_content


def test_cleanup_removes_items_missing_from_id_file(tmp_path, fingerprint_store):
    import scripts.cleanup_fingerprints as cleanup

    service = DuplicateDetectionService(store=fingerprint_store)
    service.fingerprint_item("alive", "Solve 2x + 5 = 13 for x")
    service.fingerprint_item("deleted", "What is the capital of Egypt")

    live_ids = tmp_path / "live.txt"
    live_ids.write_text("alive\n\n", encoding="utf-8")

    summary = cleanup.cleanup(live_ids, store=fingerprint_store)

    assert summary == {"checked": 2, "deleted": 1, "skipped": 0}
    assert fingerprint_store.get_by_item("deleted") is None
    assert fingerprint_store.get_by_item("alive") is not None


@pytest.fixture()
def captured_logs():
    """Collect loguru messages emitted after the shared configuration."""

    get_logger()
    messages: list[str] = []
    sink_id = logger.add(lambda message: messages.append(message.record["message"]))
    yield messages
    logger.remove(sink_id)


def test_backfill_main_reports_summary(
    tmp_path, monkeypatch, fingerprint_store, captured_logs, capsys
):
    import scripts.backfill_fingerprints as backfill

    items = tmp_path / "items.jsonl"
    record = {"item_id": "q-9", "text": "What is the capital of Egypt"}
    items.write_text(json.dumps(record) + "\n", encoding="utf-8")
    monkeypatch.setattr(
        backfill,
        "DuplicateDetectionService",
        lambda: DuplicateDetectionService(store=fingerprint_store),
    )

    assert backfill.main([str(items)]) == 0
    assert "Fingerprinted 1 items" in capsys.readouterr().out
    assert any("starting" in message for message in captured_logs)
    assert any("finished in" in message for message in captured_logs)


def test_cleanup_main_logs_missing_id_file(tmp_path, captured_logs):
    import scripts.cleanup_fingerprints as cleanup

    missing = tmp_path / "missing.txt"

    assert cleanup.main([str(missing)]) == 1
    assert any("cleanup failed after" in message for message in captured_logs)
    assert any(f"live_ids_file: {missing}" in message for message in captured_logs)
