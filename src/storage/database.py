# src/storage/database.py
# Fingerprint store for the deduplication engine
# ==============================================

"""
Persistence for content fingerprints.

The store keeps exactly one fingerprint per item. Writes for the same item are
serialized with a per-item lock and applied in a single transaction, so two
concurrent refreshes of one item never interleave (last write wins). Reads are
allowed to lag behind writes: duplicate detection is advisory.

SQLite is the default backend; PostgreSQL is supported through the same
SQLAlchemy models.
"""

import json
import logging
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

from sqlalchemy import create_engine, func, inspect, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from config.settings import DATABASE_CONFIG, DEDUP_CONFIG

from ..dedup.errors import StorageError
from .directory import ItemDirectory
from .models import Base, ContentFingerprint, FingerprintRecord

logger = logging.getLogger(__name__)


class FingerprintStore:
    """
    Fingerprint table access: upserts, exact-hash lookups, candidate scans and
    orphan cleanup.

    Every persistence fault surfaces as ``StorageError``; callers decide whether
    to degrade. The store never blocks on anything but its own locks.
    """

    def __init__(
        self,
        database_config: Optional[Dict[str, Any]] = None,
        *,
        item_directory: Optional[ItemDirectory] = None,
        batch_size: Optional[int] = None,
    ):
        self.config = database_config or DATABASE_CONFIG
        self.item_directory = item_directory
        self.batch_size = batch_size or DEDUP_CONFIG.get("candidate_batch_size", 500)
        self.engine = None
        self.SessionLocal = None

        self._locks_guard = threading.Lock()
        self._item_locks: Dict[str, List[Any]] = {}
        self._orphan_cleanup_lock = threading.Lock()

        self._setup_database()

    # =====================================
    # CONNECTION SETUP
    # =====================================

    def _setup_database(self) -> None:
        db_type = self.config.get("type", "sqlite")
        try:
            if db_type == "sqlite":
                self.engine = self._create_sqlite_engine(self.config.get("path"))
            elif db_type == "postgresql":
                database_url = (
                    f"postgresql://{self.config['user']}:{self.config['password']}"
                    f"@{self.config['host']}:{self.config['port']}/{self.config['name']}"
                )
                self.engine = create_engine(
                    database_url,
                    echo=self.config.get("echo", False),
                    pool_size=5,
                    max_overflow=10,
                    pool_pre_ping=True,
                )
            else:
                raise ValueError(f"Unsupported database type: {db_type}")

            self.SessionLocal = sessionmaker(
                autocommit=False,
                autoflush=False,
                bind=self.engine,
                expire_on_commit=False,
            )
            Base.metadata.create_all(self.engine)
            self._run_schema_migrations()
            logger.info("Fingerprint store ready (%s)", db_type)
        except SQLAlchemyError as exc:
            logger.error("Could not set up fingerprint store: %s", exc)
            raise StorageError("setup", str(exc)) from exc

    def _create_sqlite_engine(self, path: Any):
        echo = self.config.get("echo", False)
        if path is None or str(path) == ":memory:":
            # one shared connection, otherwise every session sees an empty db
            return create_engine(
                "sqlite://",
                echo=echo,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        db_path = Path(path)
        db_path.parent.mkdir(parents=True, exist_ok=True)
        return create_engine(
            f"sqlite:///{db_path}",
            echo=echo,
            connect_args={"check_same_thread": False, "timeout": 20},
            pool_pre_ping=True,
        )

    def _run_schema_migrations(self) -> None:
        """Backfill columns added after the first release of the table."""

        inspector = inspect(self.engine)
        columns = {
            column["name"]
            for column in inspector.get_columns(ContentFingerprint.__tablename__)
        }
        if "token_count" in columns:
            return

        with self.engine.begin() as connection:
            connection.execute(
                text(
                    "ALTER TABLE content_fingerprints "
                    "ADD COLUMN token_count INTEGER NOT NULL DEFAULT 0"
                )
            )
            rows = connection.execute(
                text("SELECT id, similarity_tokens FROM content_fingerprints")
            ).fetchall()
            for row_id, tokens in rows:
                connection.execute(
                    text("UPDATE content_fingerprints SET token_count = :count WHERE id = :id"),
                    {"count": _json_len(tokens), "id": row_id},
                )
            connection.execute(
                text(
                    "CREATE INDEX IF NOT EXISTS idx_fingerprints_token_count "
                    "ON content_fingerprints (token_count)"
                )
            )
        logger.info("Column 'token_count' added to content_fingerprints")

    @contextmanager
    def get_session(self):
        """Session scope that commits on success and rolls back on error."""
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception as exc:
            session.rollback()
            logger.error("Fingerprint store operation failed: %s", exc)
            raise
        finally:
            session.close()

    @contextmanager
    def _item_lock(self, item_id: str):
        with self._locks_guard:
            entry = self._item_locks.get(item_id)
            if entry is None:
                entry = self._item_locks[item_id] = [threading.Lock(), 0]
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._locks_guard:
                entry[1] -= 1
                if entry[1] == 0:
                    self._item_locks.pop(item_id, None)

    # =====================================
    # WRITES
    # =====================================

    def upsert(
        self,
        item_id: str,
        content_hash: str,
        normalized_content: str,
        similarity_tokens: Iterable[str],
    ) -> FingerprintRecord:
        """Replace the fingerprint of ``item_id``. Idempotent."""

        tokens = list(similarity_tokens)
        with self._item_lock(item_id):
            try:
                try:
                    return self._write(item_id, content_hash, normalized_content, tokens)
                except IntegrityError:
                    # another writer inserted the row between our read and insert
                    logger.debug("Concurrent insert for item %s, retrying as update", item_id)
                    return self._write(item_id, content_hash, normalized_content, tokens)
            except SQLAlchemyError as exc:
                raise StorageError("upsert", str(exc), item_id=item_id) from exc

    def _write(
        self, item_id: str, content_hash: str, normalized_content: str, tokens: List[str]
    ) -> FingerprintRecord:
        with self.get_session() as session:
            row = session.query(ContentFingerprint).filter_by(item_id=item_id).one_or_none()
            if row is None:
                row = ContentFingerprint(item_id=item_id)
                session.add(row)
            row.content_hash = content_hash
            row.normalized_content = normalized_content
            row.similarity_tokens = tokens
            row.token_count = len(tokens)
            session.flush()
            return row.to_record()

    def delete_item(self, item_id: str) -> bool:
        """Drop the fingerprint of a deleted item. Returns whether one existed."""

        with self._item_lock(item_id):
            try:
                with self.get_session() as session:
                    deleted = (
                        session.query(ContentFingerprint)
                        .filter_by(item_id=item_id)
                        .delete(synchronize_session=False)
                    )
            except SQLAlchemyError as exc:
                raise StorageError("delete_item", str(exc), item_id=item_id) from exc
        if deleted:
            logger.info("Fingerprint removed for item %s", item_id)
        return bool(deleted)

    def delete_orphans(self) -> Dict[str, int]:
        """
        Remove fingerprints whose item no longer exists upstream.

        Single-flight: a call made while another cleanup is running returns
        immediately with ``skipped=1``.
        """
        if self.item_directory is None:
            logger.warning("Orphan cleanup requested but no item directory is configured")
            return {"checked": 0, "deleted": 0, "skipped": 1}

        if not self._orphan_cleanup_lock.acquire(blocking=False):
            logger.info("Orphan cleanup already running, skipping")
            return {"checked": 0, "deleted": 0, "skipped": 1}

        checked = deleted = 0
        try:
            last_id = 0
            while True:
                with self.get_session() as session:
                    batch: List[Tuple[int, str]] = (
                        session.query(ContentFingerprint.id, ContentFingerprint.item_id)
                        .filter(ContentFingerprint.id > last_id)
                        .order_by(ContentFingerprint.id.asc())
                        .limit(self.batch_size)
                        .all()
                    )
                    if not batch:
                        break
                    last_id = batch[-1][0]
                    checked += len(batch)
                    batch_ids = [item_id for _, item_id in batch]
                    alive = self.item_directory.existing_item_ids(batch_ids)
                    orphans = [item_id for item_id in batch_ids if item_id not in alive]
                    if orphans:
                        deleted += (
                            session.query(ContentFingerprint)
                            .filter(ContentFingerprint.item_id.in_(orphans))
                            .delete(synchronize_session=False)
                        )
        except SQLAlchemyError as exc:
            raise StorageError("delete_orphans", str(exc)) from exc
        finally:
            self._orphan_cleanup_lock.release()

        logger.info("Orphan cleanup: %s fingerprints checked, %s removed", checked, deleted)
        return {"checked": checked, "deleted": deleted, "skipped": 0}

    # =====================================
    # READS
    # =====================================

    def get_by_item(self, item_id: str) -> Optional[FingerprintRecord]:
        try:
            with self.get_session() as session:
                row = (
                    session.query(ContentFingerprint).filter_by(item_id=item_id).one_or_none()
                )
                return row.to_record() if row is not None else None
        except SQLAlchemyError as exc:
            raise StorageError("get_by_item", str(exc), item_id=item_id) from exc

    def find_exact_duplicates(
        self,
        content_hash: str,
        exclude_item_id: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[FingerprintRecord]:
        """Other fingerprints with the same hash, oldest first."""

        try:
            with self.get_session() as session:
                query = session.query(ContentFingerprint).filter(
                    ContentFingerprint.content_hash == content_hash
                )
                if exclude_item_id is not None:
                    query = query.filter(ContentFingerprint.item_id != exclude_item_id)
                query = query.order_by(ContentFingerprint.id.asc())
                if limit is not None:
                    query = query.limit(limit)
                return [row.to_record() for row in query.all()]
        except SQLAlchemyError as exc:
            raise StorageError("find_exact_duplicates", str(exc)) from exc

    def all_candidates(
        self, exclude_item_id: Optional[str] = None
    ) -> Iterator[FingerprintRecord]:
        """Stream every tokenized fingerprint, oldest first, in batches."""

        last_id = 0
        while True:
            try:
                with self.get_session() as session:
                    query = session.query(ContentFingerprint).filter(
                        ContentFingerprint.id > last_id,
                        ContentFingerprint.token_count > 0,
                    )
                    if exclude_item_id is not None:
                        query = query.filter(ContentFingerprint.item_id != exclude_item_id)
                    rows = (
                        query.order_by(ContentFingerprint.id.asc())
                        .limit(self.batch_size)
                        .all()
                    )
                    batch = [row.to_record() for row in rows]
            except SQLAlchemyError as exc:
                raise StorageError("all_candidates", str(exc)) from exc

            if not batch:
                return
            last_id = batch[-1].sequence
            yield from batch
            if len(batch) < self.batch_size:
                return

    def count(self) -> int:
        try:
            with self.get_session() as session:
                return session.query(func.count(ContentFingerprint.id)).scalar() or 0
        except SQLAlchemyError as exc:
            raise StorageError("count", str(exc)) from exc

    def duplicate_groups(
        self, min_size: int = 2, limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        """Hashes shared by at least ``min_size`` items, largest groups first."""

        try:
            with self.get_session() as session:
                size = func.count(ContentFingerprint.id).label("size")
                query = (
                    session.query(ContentFingerprint.content_hash, size)
                    .group_by(ContentFingerprint.content_hash)
                    .having(func.count(ContentFingerprint.id) >= min_size)
                    .order_by(size.desc(), ContentFingerprint.content_hash.asc())
                )
                if limit is not None:
                    query = query.limit(limit)
                groups = query.all()

                result = []
                for content_hash, group_size in groups:
                    item_ids = [
                        item_id
                        for (item_id,) in session.query(ContentFingerprint.item_id)
                        .filter(ContentFingerprint.content_hash == content_hash)
                        .order_by(ContentFingerprint.id.asc())
                        .all()
                    ]
                    result.append(
                        {
                            "content_hash": content_hash,
                            "duplicate_count": group_size - 1,
                            "item_ids": item_ids,
                        }
                    )
                return result
        except SQLAlchemyError as exc:
            raise StorageError("duplicate_groups", str(exc)) from exc

    def health_status(self) -> Dict[str, Any]:
        try:
            with self.get_session() as session:
                total = session.query(func.count(ContentFingerprint.id)).scalar() or 0
                tokenized = (
                    session.query(func.count(ContentFingerprint.id))
                    .filter(ContentFingerprint.token_count > 0)
                    .scalar()
                    or 0
                )
                last_update = session.query(func.max(ContentFingerprint.updated_at)).scalar()
            return {
                "status": "healthy",
                "database_type": self.config.get("type", "sqlite"),
                "fingerprints": total,
                "tokenized_fingerprints": tokenized,
                "last_update": _isoformat(last_update),
            }
        except SQLAlchemyError as exc:
            logger.error("Fingerprint store health check failed: %s", exc)
            return {"status": "error", "error": str(exc)}


def _json_len(value: Any) -> int:
    if isinstance(value, str):
        value = json.loads(value or "[]")
    return len(value or [])


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


# Shared store instance
# =====================
_store_instance: Optional[FingerprintStore] = None
_store_lock = threading.Lock()


def get_fingerprint_store() -> FingerprintStore:
    """Process-wide store built from ``DATABASE_CONFIG``."""
    global _store_instance
    with _store_lock:
        if _store_instance is None:
            _store_instance = FingerprintStore()
    return _store_instance
