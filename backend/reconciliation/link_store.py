"""
Link Store

Persists which left and right records were already paired, together with
the per-field fingerprints of the last sync. Each upsert runs in its own
transaction, so a failing pair never rolls back the rest of a pass.
"""

import logging
from abc import ABC, abstractmethod
from typing import List, Optional

from sqlalchemy import select, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from database.link_models import SyncLinkDB, SyncStatus
from reconciliation.errors import (
    DuplicateLinkError,
    LinkStoreError,
    LinkStoreUnavailableError,
)
from reconciliation.models import SyncLink

logger = logging.getLogger(__name__)


class LinkStore(ABC):
    """Persisted right id <-> left id mapping of one entity type."""

    @abstractmethod
    def load_all(self) -> List[SyncLink]:
        """All links, deleted ones included. Raises LinkStoreUnavailableError."""

    @abstractmethod
    def find_by_right_id(self, right_id: str) -> Optional[SyncLink]:
        pass

    @abstractmethod
    def find_by_left_id(self, left_id: int) -> Optional[SyncLink]:
        pass

    @abstractmethod
    def upsert(self, link: SyncLink) -> SyncLink:
        """Insert or update the link for (right_id, left_id). Idempotent."""


class SqlAlchemyLinkStore(LinkStore):
    """
    Link store backed by the reconciliation_sync_links table.

    Rows are scoped by entity type, so several reconciled entity types share
    one table.
    """

    def __init__(self, session_factory: sessionmaker, entity_type: str):
        self.session_factory = session_factory
        self.entity_type = entity_type

    def load_all(self) -> List[SyncLink]:
        query = (
            select(SyncLinkDB)
            .where(SyncLinkDB.entity_type == self.entity_type)
            .order_by(SyncLinkDB.created_at, SyncLinkDB.id)
        )
        try:
            with self.session_factory() as session:
                rows = session.execute(query).scalars().all()
                return [self._to_link(row) for row in rows]
        except SQLAlchemyError as e:
            logger.error(f"Failed to load sync links for {self.entity_type}: {e}")
            raise LinkStoreUnavailableError(
                f"Sync links for {self.entity_type} could not be loaded"
            ) from e

    def find_by_right_id(self, right_id: str) -> Optional[SyncLink]:
        return self._find(right_id=right_id, left_id=None)

    def find_by_left_id(self, left_id: int) -> Optional[SyncLink]:
        return self._find(right_id=None, left_id=left_id)

    def find(self, right_id: str, left_id: int) -> Optional[SyncLink]:
        """Link matching the right id or the left id."""
        return self._find(right_id=right_id, left_id=left_id)

    def upsert(self, link: SyncLink) -> SyncLink:
        if link.right_id is None:
            raise LinkStoreError("Right id must be given for upsert of a sync link")
        if link.left_id is None:
            raise LinkStoreError("Left id must be given for upsert of a sync link")

        session = self.session_factory()
        try:
            rows = session.execute(self._query(link.right_id, link.left_id)).scalars().all()
            row = self._pick(rows, link.right_id, link.left_id)
            if row is not None:
                logger.info(
                    f"Updating sync link for left id #{link.left_id} and right id '{link.right_id}'"
                )
                # Normally a no-op for the ids
                row.right_id = link.right_id
                row.left_id = link.left_id
                row.fingerprints = dict(link.fingerprints) if link.fingerprints is not None else None
                row.last_sync_at = link.last_sync_at
                row.status = link.status.value
            else:
                logger.info(
                    f"Storing new sync link for left id #{link.left_id} and right id '{link.right_id}'"
                )
                session.add(SyncLinkDB(
                    entity_type=self.entity_type,
                    right_id=link.right_id,
                    left_id=link.left_id,
                    fingerprints=dict(link.fingerprints) if link.fingerprints is not None else None,
                    last_sync_at=link.last_sync_at,
                    status=link.status.value,
                ))
            session.commit()
            return link
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Failed to upsert sync link for right id '{link.right_id}': {e}")
            raise LinkStoreError(f"Upsert of sync link '{link.right_id}' failed") from e
        finally:
            session.close()

    # ==================== Private Methods ====================

    def _query(self, right_id: Optional[str], left_id: Optional[int]):
        conditions = []
        if right_id is not None:
            conditions.append(SyncLinkDB.right_id == right_id)
        if left_id is not None:
            conditions.append(SyncLinkDB.left_id == left_id)
        return (
            select(SyncLinkDB)
            .where(SyncLinkDB.entity_type == self.entity_type)
            .where(or_(*conditions))
            .order_by(SyncLinkDB.created_at, SyncLinkDB.id)
        )

    def _find(self, right_id: Optional[str], left_id: Optional[int]) -> Optional[SyncLink]:
        if right_id is None and left_id is None:
            return None
        try:
            with self.session_factory() as session:
                rows = session.execute(self._query(right_id, left_id)).scalars().all()
                row = self._pick(rows, right_id, left_id)
                return self._to_link(row) if row is not None else None
        except SQLAlchemyError as e:
            raise LinkStoreError(f"Lookup of sync link failed: {e}") from e

    def _pick(
        self,
        rows: List[SyncLinkDB],
        right_id: Optional[str],
        left_id: Optional[int]
    ) -> Optional[SyncLinkDB]:
        """
        Choose the row for a key; more than one row shouldn't occur.

        Preference: exact match of both ids, then match by left id, else fail.
        """
        if not rows:
            return None
        if len(rows) == 1:
            return rows[0]

        logger.warning(
            f"Sync link for right id '{right_id}' and left id #{left_id} not unique! "
            f"Found {len(rows)} entries",
            extra={"entity": self.entity_type, "row_ids": [r.id for r in rows]}
        )
        for row in rows:
            if row.right_id == right_id and row.left_id == left_id:
                return row
        if left_id is not None:
            for row in rows:
                if row.left_id == left_id:
                    return row
        raise DuplicateLinkError(right_id, left_id, len(rows))

    def _to_link(self, row: SyncLinkDB) -> SyncLink:
        return SyncLink(
            entity_type=row.entity_type,
            right_id=row.right_id,
            left_id=row.left_id,
            fingerprints=dict(row.fingerprints) if row.fingerprints is not None else None,
            last_sync_at=row.last_sync_at,
            status=SyncStatus(row.status),
        )
