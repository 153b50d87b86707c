"""Shared fixtures for the deduplication test suite."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from src.storage.database import FingerprintStore
from src.storage.directory import StaticItemDirectory


@pytest.fixture()
def item_directory() -> StaticItemDirectory:
    return StaticItemDirectory()


@pytest.fixture()
def fingerprint_store(tmp_path, item_directory) -> FingerprintStore:
    """File-backed SQLite store with a small batch size to exercise paging."""

    return FingerprintStore(
        database_config={"type": "sqlite", "path": tmp_path / "fingerprints.db"},
        item_directory=item_directory,
        batch_size=2,
    )
