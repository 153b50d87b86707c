# src/storage/models.py
# Data model for the fingerprint store
# ====================================

"""
One row per content-bearing item: the SHA-256 of its normalized text, the
normalized text itself (kept for audits and re-derivation) and the similarity
tokens used for near-duplicate search.

The owning item lives in the authoring system, so ``item_id`` is an opaque
string and not a foreign key.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

from sqlalchemy import JSON, Column, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import declarative_base

Base = declarative_base()

PREVIEW_LENGTH = 100


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class FingerprintRecord:
    """Detached, read-only view of a stored fingerprint."""

    item_id: str
    content_hash: str
    normalized_content: str
    similarity_tokens: Tuple[str, ...]
    sequence: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def token_count(self) -> int:
        return len(self.similarity_tokens)

    @property
    def content_length(self) -> int:
        return len(self.normalized_content)

    @property
    def hash_algorithm(self) -> str:
        return "sha256"

    @property
    def content_preview(self) -> str:
        if len(self.normalized_content) <= PREVIEW_LENGTH:
            return self.normalized_content
        return self.normalized_content[: PREVIEW_LENGTH - 3] + "..."

    def to_dict(self) -> Dict[str, Any]:
        return {
            "item_id": self.item_id,
            "content_hash": self.content_hash,
            "hash_algorithm": self.hash_algorithm,
            "token_count": self.token_count,
            "content_length": self.content_length,
            "content_preview": self.content_preview,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class ContentFingerprint(Base):
    """Stored fingerprint of one item's text."""

    __tablename__ = "content_fingerprints"

    # Autoincrement id doubles as insertion order for tie-breaks
    id = Column(Integer, primary_key=True, autoincrement=True)
    item_id = Column(String(255), nullable=False, unique=True)

    # Not unique: identical texts on two items are what we want to report
    content_hash = Column(String(64), nullable=False)
    normalized_content = Column(Text, nullable=False, default="")
    similarity_tokens = Column(JSON, nullable=False, default=list)
    token_count = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )

    __table_args__ = (
        Index("idx_fingerprints_content_hash", "content_hash"),
        Index("idx_fingerprints_token_count", "token_count"),
    )

    def __repr__(self):
        return (
            f"<ContentFingerprint(item_id='{self.item_id}', "
            f"hash='{self.content_hash[:12]}', tokens={self.token_count})>"
        )

    def to_record(self) -> FingerprintRecord:
        return FingerprintRecord(
            item_id=self.item_id,
            content_hash=self.content_hash,
            normalized_content=self.normalized_content or "",
            similarity_tokens=tuple(self.similarity_tokens or ()),
            sequence=self.id or 0,
            created_at=_as_utc(self.created_at),
            updated_at=_as_utc(self.updated_at),
        )


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite drops tzinfo on the way back
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def create_all_tables(engine) -> None:
    Base.metadata.create_all(engine)


__all__ = [
    "Base",
    "ContentFingerprint",
    "FingerprintRecord",
    "create_all_tables",
]
