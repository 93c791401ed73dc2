"""
Shared fixtures for the reconciliation test suite.

The link store runs against an in-memory SQLite database; record sources
and the applier are in-memory fakes that apply every decision to their
own record lists so consecutive passes see the results.
"""

from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

import pytest

from config import get_settings
from database.connection import build_engine, build_session_factory, init_db
from reconciliation.errors import ApplyError
from reconciliation.interfaces import Applier, RecordSource
from reconciliation.link_store import SqlAlchemyLinkStore
from reconciliation.models import Record


FIXED_NOW = datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)


class InMemorySource(RecordSource):
    def __init__(self, records: Optional[List[Record]] = None):
        self.records = list(records or [])

    def load_all(self) -> List[Record]:
        return list(self.records)

    def get(self, record_id: Any) -> Optional[Record]:
        return next((r for r in self.records if r.id == record_id), None)

    def replace(self, record: Record):
        self.records = [record if r.id == record.id else r for r in self.records]

    def remove(self, record_id: Any):
        self.records = [r for r in self.records if r.id != record_id]


class FakeApplier(Applier):
    """
    Applies decisions to two in-memory sources and records every call.

    `fail_on` holds (action, record_id) tuples that raise ApplyError.
    """

    def __init__(self, left: InMemorySource, right: InMemorySource, fields=(), fail_on=()):
        self.left = left
        self.right = right
        self.fields = list(fields)
        self.fail_on = set(fail_on)
        self.calls: List[tuple] = []
        self._next_left_id = 1000
        self._next_right_id = 1

    def _call(self, action: str, record_id: Any, payload: Any = None):
        self.calls.append((action, record_id, payload))
        if (action, record_id) in self.fail_on:
            raise ApplyError(f"{action} failed for {record_id}")

    def create_on_right(self, record: Record) -> str:
        self._call("create_on_right", record.id)
        right_id = f"r-new-{self._next_right_id}"
        self._next_right_id += 1
        values: Dict[str, Any] = {}
        for f in self.fields:
            values.update(f.write_right(f.left_getter(record)))
        self.right.records.append(Record(right_id, values, record.group_key))
        return right_id

    def create_on_left(self, record: Record) -> int:
        self._call("create_on_left", record.id)
        left_id = self._next_left_id
        self._next_left_id += 1
        values: Dict[str, Any] = {}
        for f in self.fields:
            values.update(f.write_left(f.right_getter(record)))
        self.left.records.append(Record(left_id, values, record.group_key))
        return left_id

    def update_left(self, left_id: int, updates: Dict[str, Any]):
        self._call("update_left", left_id, updates)
        record = self.left.get(left_id)
        self.left.replace(Record(left_id, {**record.fields, **updates}, record.group_key, record.active))

    def update_right(self, right_id: str, updates: Dict[str, Any]):
        self._call("update_right", right_id, updates)
        record = self.right.get(right_id)
        self.right.replace(Record(right_id, {**record.fields, **updates}, record.group_key, record.active))

    def delete_left(self, left_id: int):
        self._call("delete_left", left_id)
        record = self.left.get(left_id)
        self.left.replace(Record(left_id, record.fields, record.group_key, active=False))

    def delete_right(self, right_id: str):
        self._call("delete_right", right_id)
        self.right.remove(right_id)

    def actions(self) -> List[tuple]:
        return [(action, record_id) for action, record_id, _ in self.calls]


def address(id: int, first_name: str, last_name: str, active: bool = True, **fields) -> Record:
    return Record(id, {"first_name": first_name, "last_name": last_name, **fields}, active=active)


def contact(id: str, name: str, **fields) -> Record:
    return Record(id, {"name": name, **fields})


def booking(id: Any, day: Optional[date], amount: str, **fields) -> Record:
    return Record(id, {"amount": amount, "booking_date": day, **fields}, group_key=day)


@pytest.fixture(autouse=True)
def clear_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def engine():
    engine = build_engine("sqlite://")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def contact_store(session_factory):
    return SqlAlchemyLinkStore(session_factory, "CONTACT")


@pytest.fixture
def bank_store(session_factory):
    return SqlAlchemyLinkStore(session_factory, "BANK_STATEMENT")
