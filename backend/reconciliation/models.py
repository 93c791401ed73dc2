"""
Reconciliation Data Model

Value types shared by the bucketer, matcher, field resolver and the
orchestrating service. Records are never mutated by the engine: every
decision is returned as data and applied by an external collaborator.
"""

from dataclasses import dataclass, field, replace
from datetime import date, datetime
from typing import Dict, Any, List, Optional, Tuple

from database.link_models import SyncStatus


@dataclass(frozen=True)
class Record:
    """
    One entity of either side.

    `id` is stable within its own source (local ids are integers, remote
    ids strings). `group_key` is the bucketing key (a booking date for
    bank lines, unset for contacts).
    """
    id: Any
    fields: Dict[str, Any] = field(default_factory=dict, hash=False)
    group_key: Optional[date] = None
    active: bool = True

    def get(self, name: str, default: Any = None) -> Any:
        return self.fields.get(name, default)


@dataclass(frozen=True)
class MatchCandidate:
    """A scored left/right pair considered during one matching pass."""
    left_id: Any
    right_id: Any
    score: int


@dataclass(frozen=True)
class MatchedPair:
    """
    A resolved correspondence, or an orphan when one side is missing.
    """
    left: Optional[Record] = None
    right: Optional[Record] = None

    def __post_init__(self):
        if self.left is None and self.right is None:
            raise ValueError("MatchedPair needs at least one record")

    @property
    def is_full(self) -> bool:
        return self.left is not None and self.right is not None

    @property
    def is_left_orphan(self) -> bool:
        return self.left is not None and self.right is None

    @property
    def is_right_orphan(self) -> bool:
        return self.left is None and self.right is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "left_id": self.left.id if self.left else None,
            "right_id": self.right.id if self.right else None,
        }


@dataclass(frozen=True)
class SyncLink:
    """
    Engine-side view of a persisted link.

    `fingerprints` maps field name to the hash of the right-side value at
    the last successful sync. `None` means no baseline is known yet.
    """
    entity_type: str
    right_id: str
    left_id: int
    fingerprints: Optional[Dict[str, Optional[str]]] = None
    last_sync_at: Optional[datetime] = None
    status: SyncStatus = SyncStatus.OK

    @property
    def is_deleted(self) -> bool:
        return self.status.is_deleted

    def synced(
        self,
        fingerprints: Dict[str, Optional[str]],
        now: datetime,
        status: Optional[SyncStatus] = None
    ) -> "SyncLink":
        """Copy of this link after a successful sync."""
        return replace(
            self,
            fingerprints=dict(fingerprints),
            last_sync_at=now,
            status=status or self.status,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entity_type": self.entity_type,
            "right_id": self.right_id,
            "left_id": self.left_id,
            "fingerprints": self.fingerprints,
            "last_sync_at": self.last_sync_at.isoformat() if self.last_sync_at else None,
            "status": self.status.value,
        }


@dataclass(frozen=True)
class Counters:
    """Per-side statistics of one pass."""
    inserted: int = 0
    updated: int = 0
    deleted: int = 0
    failed: int = 0
    unmodified: int = 0
    total: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "total": self.total,
            "inserted": self.inserted,
            "updated": self.updated,
            "deleted": self.deleted,
            "failed": self.failed,
            "unmodified": self.unmodified,
        }

    def __str__(self) -> str:
        return ", ".join(f"{k}={v}" for k, v in self.to_dict().items())


class CounterBuilder:
    """Pass-scoped accumulator; frozen into Counters at the end of a pass."""

    def __init__(self, total: int = 0):
        self._values = {
            "inserted": 0, "updated": 0, "deleted": 0,
            "failed": 0, "unmodified": 0, "total": total,
        }

    def add(self, name: str, amount: int = 1) -> "CounterBuilder":
        self._values[name] += amount
        return self

    def build(self) -> Counters:
        return Counters(**self._values)


@dataclass(frozen=True)
class FieldChange:
    """One field value to be written on one side."""
    field: str
    old_value: Any
    new_value: Any

    def __str__(self) -> str:
        return f"{self.field}: '{self.old_value}'->'{self.new_value}'"


@dataclass(frozen=True)
class SyncResult:
    """
    Outcome of resolving one linked pair field by field.

    `left_changes` are the writes needed on the left record (the left side
    is outdated), `right_changes` the writes needed on the right record.
    `left_updates`/`right_updates` are the raw field updates produced by
    the field setters, ready to be handed to an Applier.
    """
    left_changes: Tuple[FieldChange, ...] = ()
    right_changes: Tuple[FieldChange, ...] = ()
    left_updates: Dict[str, Any] = field(default_factory=dict)
    right_updates: Dict[str, Any] = field(default_factory=dict)

    @property
    def left_outdated(self) -> bool:
        return bool(self.left_changes)

    @property
    def right_outdated(self) -> bool:
        return bool(self.right_changes)

    @property
    def changed_fields(self) -> List[str]:
        return [c.field for c in self.left_changes + self.right_changes]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "left_outdated": self.left_outdated,
            "right_outdated": self.right_outdated,
            "left_changes": [str(c) for c in self.left_changes],
            "right_changes": [str(c) for c in self.right_changes],
        }

    def __str__(self) -> str:
        parts = [f"leftOutdated={self.left_outdated}"]
        if self.left_changes:
            parts.append("fields=[" + ", ".join(str(c) for c in self.left_changes) + "]")
        parts.append(f"rightOutdated={self.right_outdated}")
        if self.right_changes:
            parts.append("fields=[" + ", ".join(str(c) for c in self.right_changes) + "]")
        return " ".join(parts)


@dataclass(frozen=True)
class ResolvedPair:
    """A linked pair after field resolution and the apply step."""
    right_id: str
    left_id: int
    result: SyncResult
    applied: bool
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "right_id": self.right_id,
            "left_id": self.left_id,
            "applied": self.applied,
            "error": self.error,
            **self.result.to_dict(),
        }


@dataclass(frozen=True)
class SkippedRecord:
    """A record excluded from the pass because of an input defect."""
    side: str
    record_id: Any
    reason: str


@dataclass(frozen=True)
class PassResult:
    """Everything a caller needs to log, display or assert on after a pass."""
    run_id: str
    entity_type: str
    left_counter: Counters
    right_counter: Counters
    matched_pairs: Tuple[MatchedPair, ...] = ()
    resolved_results: Tuple[ResolvedPair, ...] = ()
    skipped: Tuple[SkippedRecord, ...] = ()
    buckets_processed: int = 0
    truncated: bool = False

    @property
    def new_links(self) -> List[MatchedPair]:
        return [p for p in self.matched_pairs if p.is_full]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "entity_type": self.entity_type,
            "left_counter": self.left_counter.to_dict(),
            "right_counter": self.right_counter.to_dict(),
            "matched_pairs": [p.to_dict() for p in self.matched_pairs],
            "resolved_results": [r.to_dict() for r in self.resolved_results],
            "skipped": [
                {"side": s.side, "record_id": s.record_id, "reason": s.reason}
                for s in self.skipped
            ],
            "buckets_processed": self.buckets_processed,
            "truncated": self.truncated,
        }
