"""Tests for the CLI healthcheck utility."""
from __future__ import annotations

import pytest

from src.dedup.fingerprint import sha256_hex


@pytest.fixture()
def populated_store(fingerprint_store):
    """Store holding one group of identical items and one unique item."""

    for item_id, content in (("a", "same stem"), ("b", "same stem"), ("c", "other")):
        fingerprint_store.upsert(item_id, sha256_hex(content), content, content.split())
    return fingerprint_store


def test_healthcheck_reports_summary(populated_store):
    import scripts.healthcheck as healthcheck

    result = healthcheck.perform_healthcheck(store=populated_store)

    assert result["healthy"] is True
    assert result["summary"]["fingerprints"] == 3
    assert result["summary"]["duplicate_groups"] == 1
    assert [check.name for check in result["checks"]] == [
        "configuration",
        "database",
        "duplicate_groups",
    ]
    assert [check.status for check in result["checks"]] == ["ok", "ok", "ok"]


def test_too_many_duplicate_groups_only_warns(monkeypatch, populated_store, capsys):
    import scripts.healthcheck as healthcheck

    monkeypatch.setattr(healthcheck, "initialize_database", lambda: populated_store)

    assert healthcheck.main(["--max-duplicate-groups", "0"]) == 0
    output = capsys.readouterr().out
    assert "duplicate_groups" in output


def test_healthcheck_failure_exit_code(monkeypatch, populated_store):
    import scripts.healthcheck as healthcheck

    monkeypatch.setattr(
        populated_store,
        "health_status",
        lambda: {"status": "error", "error": "database is locked"},
    )
    monkeypatch.setattr(healthcheck, "initialize_database", lambda: populated_store)

    assert healthcheck.main([]) == 1


def test_invalid_configuration_fails_before_touching_the_store(tmp_path, monkeypatch):
    import scripts.healthcheck as healthcheck
    from itembank.config_manager import load_config

    config = load_config(
        tmp_path / "config.toml", environ={"ITEMBANK__DEDUP__NGRAM_SIZE": "12"}
    )

    def _unexpected_store():
        raise AssertionError("store must not be opened for an invalid configuration")

    monkeypatch.setattr(healthcheck, "initialize_database", _unexpected_store)
    result = healthcheck.perform_healthcheck(config=config)

    assert result["healthy"] is False
    [check] = result["checks"]
    assert check.name == "configuration"
    assert check.status == "fail"
    assert "ngram_size" in check.summary()
