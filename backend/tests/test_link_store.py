"""
Unit Tests for the SQLAlchemy Link Store

Run with: pytest backend/tests/test_link_store.py -v
"""

from datetime import datetime, timezone

import pytest

from database.connection import build_engine, build_session_factory
from database.link_models import SyncLinkDB, SyncStatus
from reconciliation.errors import DuplicateLinkError, LinkStoreError, LinkStoreUnavailableError
from reconciliation.link_store import SqlAlchemyLinkStore
from reconciliation.models import SyncLink

NOW = datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)


def link(right_id, left_id, **kwargs):
    return SyncLink(entity_type="CONTACT", right_id=right_id, left_id=left_id, **kwargs)


class TestSqlAlchemyLinkStore:
    """Test suite for SqlAlchemyLinkStore."""

    @pytest.fixture
    def add_rows(self, session_factory):
        """Insert raw rows, bypassing upsert, to simulate duplicates."""
        def _add(*pairs, entity_type="CONTACT"):
            with session_factory() as session:
                for i, (right_id, left_id) in enumerate(pairs):
                    session.add(SyncLinkDB(
                        id=f"row-{right_id}-{left_id}",
                        entity_type=entity_type,
                        right_id=right_id,
                        left_id=left_id,
                        fingerprints={},
                        created_at=datetime(2024, 1, 1 + i, tzinfo=timezone.utc),
                    ))
                session.commit()
        return _add

    # ==================== UPSERT TESTS ====================

    def test_upsert_inserts_new_link(self, contact_store):
        contact_store.upsert(link("c1", 1, fingerprints={"name": "abc"}, last_sync_at=NOW))

        found = contact_store.find_by_right_id("c1")
        assert found.left_id == 1
        assert found.fingerprints == {"name": "abc"}
        assert found.status == SyncStatus.OK

    def test_upsert_is_idempotent(self, contact_store, session_factory):
        contact_store.upsert(link("c1", 1, fingerprints={"name": "abc"}))
        contact_store.upsert(link("c1", 1, fingerprints={"name": "abc"}))

        with session_factory() as session:
            assert session.query(SyncLinkDB).count() == 1

    def test_upsert_updates_existing_link(self, contact_store):
        contact_store.upsert(link("c1", 1, fingerprints={"name": "abc"}))
        contact_store.upsert(link("c1", 1, fingerprints={"name": "def"}, status=SyncStatus.DELETED_BY_LEFT))

        found = contact_store.find_by_left_id(1)
        assert found.fingerprints == {"name": "def"}
        assert found.status == SyncStatus.DELETED_BY_LEFT
        assert found.is_deleted

    def test_upsert_keeps_missing_baseline(self, contact_store):
        contact_store.upsert(link("c1", 1, fingerprints=None))

        assert contact_store.find_by_right_id("c1").fingerprints is None

    def test_upsert_requires_both_ids(self, contact_store):
        with pytest.raises(LinkStoreError):
            contact_store.upsert(link(None, 1))
        with pytest.raises(LinkStoreError):
            contact_store.upsert(link("c1", None))

        assert contact_store.load_all() == []

    def test_entity_types_are_isolated(self, contact_store, bank_store):
        contact_store.upsert(link("x", 1))

        assert bank_store.find_by_right_id("x") is None
        assert bank_store.load_all() == []
        assert len(contact_store.load_all()) == 1

    # ==================== DUPLICATE RESOLUTION TESTS ====================

    def test_duplicate_prefers_exact_match(self, contact_store, add_rows):
        add_rows(("c1", 1), ("c1", 2))

        found = contact_store.find("c1", 2)

        assert (found.right_id, found.left_id) == ("c1", 2)

    def test_duplicate_prefers_left_id_match(self, contact_store, add_rows):
        add_rows(("c1", 1), ("c2", 2))

        found = contact_store.find("c1", 2)

        assert (found.right_id, found.left_id) == ("c2", 2)

    def test_duplicate_without_winner_raises(self, contact_store, add_rows):
        add_rows(("c1", 1), ("c1", 2))

        with pytest.raises(DuplicateLinkError) as exc_info:
            contact_store.find_by_right_id("c1")

        assert exc_info.value.count == 2

    def test_upsert_on_duplicates_updates_exact_row(self, contact_store, add_rows, session_factory):
        add_rows(("c1", 1), ("c1", 2))

        contact_store.upsert(link("c1", 2, fingerprints={"name": "x"}))

        with session_factory() as session:
            row = session.get(SyncLinkDB, "row-c1-2")
            assert row.fingerprints == {"name": "x"}
            assert session.query(SyncLinkDB).count() == 2

    def test_load_all_returns_rows_in_creation_order(self, contact_store, add_rows):
        add_rows(("c2", 2), ("c1", 1))

        assert [l.right_id for l in contact_store.load_all()] == ["c2", "c1"]

    # ==================== FAILURE TESTS ====================

    def test_load_all_unavailable(self):
        # No tables created on this engine
        store = SqlAlchemyLinkStore(build_session_factory(build_engine("sqlite://")), "CONTACT")

        with pytest.raises(LinkStoreUnavailableError):
            store.load_all()
