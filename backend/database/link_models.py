"""
Record Sync - Link Store Database Models

Tables:
- reconciliation_sync_links: one row per resolved left/right correspondence

A link row is never deleted. When one side disappears the row moves to a
DELETED_* status and both ids stay reserved.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum as PyEnum
from typing import Dict, Any

from sqlalchemy import Column, String, Integer, DateTime, JSON, Index

from database.connection import Base


def generate_uuid() -> str:
    return str(uuid.uuid4())


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SyncStatus(str, PyEnum):
    """Lifecycle status of a sync link"""
    OK = "OK"                              # Matched or updated by a pass
    CREATED_BY_LEFT = "CREATED_BY_LEFT"    # Right record was created from a left orphan
    CREATED_BY_RIGHT = "CREATED_BY_RIGHT"  # Left record was created from a right orphan
    DELETED_BY_LEFT = "DELETED_BY_LEFT"    # Left record went inactive, right record deleted
    DELETED_BY_RIGHT = "DELETED_BY_RIGHT"  # Right record disappeared, left record deleted

    @property
    def is_deleted(self) -> bool:
        return self in (SyncStatus.DELETED_BY_LEFT, SyncStatus.DELETED_BY_RIGHT)


class SyncLinkDB(Base):
    """
    Persisted correspondence between a remote (right) and a local (left) record.

    Contains:
    - Both identifiers, scoped by entity type
    - Per-field fingerprints of the last synchronised right-side values
    - Last sync timestamp and status
    """
    __tablename__ = "reconciliation_sync_links"

    # No unique constraints: duplicate rows are tolerated and resolved on read.
    id = Column(String(36), primary_key=True, default=generate_uuid)
    entity_type = Column(String(30), nullable=False)
    right_id = Column(String(255), nullable=False)
    left_id = Column(Integer, nullable=False)
    fingerprints = Column(JSON, nullable=True, default=dict)
    last_sync_at = Column(DateTime(timezone=True), nullable=True)
    status = Column(String(30), nullable=False, default=SyncStatus.OK.value)
    created_at = Column(DateTime(timezone=True), default=utc_now)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)

    __table_args__ = (
        Index("idx_sync_links_entity_right", "entity_type", "right_id"),
        Index("idx_sync_links_entity_left", "entity_type", "left_id"),
    )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "entity_type": self.entity_type,
            "right_id": self.right_id,
            "left_id": self.left_id,
            "fingerprints": self.fingerprints or {},
            "last_sync_at": self.last_sync_at.isoformat() if self.last_sync_at else None,
            "status": self.status,
        }
