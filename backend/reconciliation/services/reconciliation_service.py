"""
Reconciliation Service

Runs one reconciliation pass for one entity type:
- Loading links and both record collections
- Bucketing and matching records not yet linked
- Resolving every linked pair field by field
- Creating orphans and propagating deletions
- Audit logging

A pass never writes entities itself; all side effects go through the
Applier handed in by the host. Per-record failures are counted and logged,
only an unavailable link store aborts the pass.
"""

import uuid
import logging
from dataclasses import replace
from datetime import date, datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence, Set

from logging_config import set_pass_context, clear_pass_context
from sentry_integration import capture_exception
from database.link_models import SyncStatus
from reconciliation.bucketer import BucketPlan, DateBucketer, derive_range, single_bucket
from reconciliation.errors import ApplyError, LinkStoreError, LinkStoreUnavailableError
from reconciliation.field_sync import FieldSyncResolver
from reconciliation.interfaces import Applier, RecordSource
from reconciliation.link_store import LinkStore, SqlAlchemyLinkStore
from reconciliation.matcher import GreedyMatcher
from reconciliation.models import (
    CounterBuilder,
    MatchedPair,
    PassResult,
    Record,
    ResolvedPair,
    SkippedRecord,
    SyncLink,
)
from reconciliation.profile_registry import EntityProfile, profile_registry

logger = logging.getLogger(__name__)


class ReconciliationAuditEvent:
    """Audit event types for reconciliation operations."""
    PASS_STARTED = "reconciliation.pass_started"
    PASS_COMPLETED = "reconciliation.pass_completed"
    LINK_CREATED = "reconciliation.link_created"
    LINK_UPDATED = "reconciliation.link_updated"
    LINK_DELETED = "reconciliation.link_deleted"
    APPLY_FAILED = "reconciliation.apply_failed"


def log_reconciliation_event(
    event_type: str,
    entity_type: str,
    details: Dict[str, Any],
    actor: str = "system"
):
    """Log reconciliation event for audit trail."""
    log_entry = {
        "event": event_type,
        "entity": entity_type,
        "details": details,
        "actor": actor,
        "timestamp": datetime.now(timezone.utc).isoformat()
    }
    logger.info(f"Reconciliation event: {event_type}", extra=log_entry)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class _PassState:
    """Mutable bookkeeping of one pass. Frozen into a PassResult at the end."""

    def __init__(self, run_id: str, left_total: int, right_total: int):
        self.run_id = run_id
        self.left = CounterBuilder(total=left_total)
        self.right = CounterBuilder(total=right_total)
        self.matched_pairs: List[MatchedPair] = []
        self.resolved: List[ResolvedPair] = []
        self.skipped: List[SkippedRecord] = []
        self.unmatched_left: List[Record] = []
        self.unmatched_right: List[Record] = []


class ReconciliationService:
    """
    Orchestrates reconciliation passes of one entity profile.

    Left is the local side (ledger, address book), right the remote or
    imported side (bank statement, contact directory).
    """

    def __init__(
        self,
        profile: EntityProfile,
        left_source: RecordSource,
        right_source: RecordSource,
        link_store: LinkStore,
        applier: Applier,
        bucketer: Optional[DateBucketer] = None,
        clock: Optional[Callable[[], datetime]] = None,
        id_factory: Callable[[], Any] = uuid.uuid4
    ):
        self.profile = profile
        self.left_source = left_source
        self.right_source = right_source
        self.link_store = link_store
        self.applier = applier
        self.bucketer = bucketer or DateBucketer()
        self.matcher = GreedyMatcher(profile.score_function, profile.min_score)
        self.resolver = FieldSyncResolver(profile.fields)
        self.clock = clock or utc_now
        self.id_factory = id_factory

    @classmethod
    def for_entity_type(
        cls,
        entity_type: Any,
        left_source: RecordSource,
        right_source: RecordSource,
        applier: Applier,
        session_factory,
        **kwargs
    ) -> "ReconciliationService":
        """
        Build a service for a registered entity type with a SQLAlchemy link store.

        Raises:
            UnknownEntityTypeError: if the entity type has no profile
        """
        profile = profile_registry.get(entity_type)
        link_store = SqlAlchemyLinkStore(session_factory, profile.entity_type.value)
        return cls(profile, left_source, right_source, link_store, applier, **kwargs)

    @property
    def entity_type(self) -> str:
        return self.profile.entity_type.value

    def run_pass(
        self,
        date_from: Optional[date] = None,
        date_until: Optional[date] = None
    ) -> PassResult:
        """
        Run one reconciliation pass.

        Args:
            date_from: First booking date of the pass (bucketed profiles only)
            date_until: Last booking date of the pass, inclusive

        Returns:
            PassResult with counters, pairs and per-pair results

        Raises:
            LinkStoreUnavailableError: if the stored links could not be loaded
        """
        run_id = str(self.id_factory())
        set_pass_context(run_id, self.entity_type)
        try:
            return self._run(run_id, date_from, date_until)
        except LinkStoreUnavailableError as e:
            logger.error(f"Reconciliation pass aborted, link store unavailable: {e}")
            capture_exception(e, run_id=run_id, entity_type=self.entity_type)
            raise
        finally:
            clear_pass_context()

    # ==================== Pass Steps ====================

    def _run(
        self,
        run_id: str,
        date_from: Optional[date],
        date_until: Optional[date]
    ) -> PassResult:
        log_reconciliation_event(
            ReconciliationAuditEvent.PASS_STARTED,
            self.entity_type,
            {
                "run_id": run_id,
                "date_from": date_from.isoformat() if date_from else None,
                "date_until": date_until.isoformat() if date_until else None,
            }
        )

        # Links first: without them every record would look unlinked.
        links = self._load_links()

        left_loaded = self.left_source.load_all()
        right_loaded = self.right_source.load_all()
        state = _PassState(run_id, len(left_loaded), len(right_loaded))
        left_by_id = self._index_records("left", left_loaded, state)
        right_by_id = self._index_records("right", right_loaded, state)

        plan = self._plan(list(left_by_id.values()), list(right_by_id.values()), date_from, date_until, state)
        in_range_left = {r.id for b in plan.buckets for r in b.left}
        in_range_right = {r.id for b in plan.buckets for r in b.right}

        links = self._match(plan, links, state)
        self._process_links(links, left_by_id, right_by_id, in_range_left, in_range_right, state)
        self._create_orphans(state)

        result = PassResult(
            run_id=run_id,
            entity_type=self.entity_type,
            left_counter=state.left.build(),
            right_counter=state.right.build(),
            matched_pairs=tuple(state.matched_pairs),
            resolved_results=tuple(state.resolved),
            skipped=tuple(state.skipped),
            buckets_processed=len(plan.buckets),
            truncated=plan.truncated,
        )
        log_reconciliation_event(
            ReconciliationAuditEvent.PASS_COMPLETED,
            self.entity_type,
            {
                "run_id": run_id,
                "left": result.left_counter.to_dict(),
                "right": result.right_counter.to_dict(),
                "skipped": len(result.skipped),
                "buckets": result.buckets_processed,
                "truncated": result.truncated,
            }
        )
        logger.info(
            f"Reconciliation of {self.entity_type} done: left [{result.left_counter}], "
            f"right [{result.right_counter}]"
        )
        return result

    def _load_links(self) -> List[SyncLink]:
        """Stored links, at most one per right id and per left id."""
        links: List[SyncLink] = []
        seen_right: Set[str] = set()
        seen_left: Set[int] = set()
        for link in self.link_store.load_all():
            if link.right_id in seen_right or link.left_id in seen_left:
                logger.warning(
                    f"Ignoring duplicate sync link for right id '{link.right_id}' "
                    f"and left id #{link.left_id}"
                )
                continue
            seen_right.add(link.right_id)
            seen_left.add(link.left_id)
            links.append(link)
        return links

    def _index_records(
        self,
        side: str,
        records: Sequence[Record],
        state: _PassState
    ) -> Dict[Any, Record]:
        """
        Records by id. Right ids are stored as strings in the link store, so
        right records are re-keyed by their string id here.
        """
        by_id: Dict[Any, Record] = {}
        for record in records:
            if record.id is None:
                self._skip(state, side, None, "missing id")
                continue
            if side == "right" and not isinstance(record.id, str):
                record = replace(record, id=str(record.id))
            if record.id in by_id:
                self._skip(state, side, record.id, "duplicate id")
            else:
                by_id[record.id] = record
        return by_id

    def _plan(
        self,
        left: List[Record],
        right: List[Record],
        date_from: Optional[date],
        date_until: Optional[date],
        state: _PassState
    ) -> BucketPlan:
        if not self.profile.bucketed:
            return single_bucket(left, right)

        if date_from is None and date_until is None:
            date_from, date_until = derive_range(right)
            logger.info(f"Date range derived from right records: {date_from} - {date_until}")

        plan = self.bucketer.partition(left, right, date_from, date_until)
        for record in plan.unkeyed_left:
            self._skip(state, "left", record.id, "missing group key")
        for record in plan.unkeyed_right:
            self._skip(state, "right", record.id, "missing group key")
        return plan

    def _match(self, plan: BucketPlan, links: List[SyncLink], state: _PassState) -> List[SyncLink]:
        """Match unlinked records bucket by bucket and persist a link per new pair."""
        linked_left = {link.left_id for link in links}
        linked_right = {link.right_id for link in links}
        links = list(links)

        for bucket in plan.buckets:
            left = [r for r in bucket.left if r.id not in linked_left]
            right = [r for r in bucket.right if r.id not in linked_right]
            outcome = self.matcher.match(left, right)
            state.matched_pairs.extend(outcome.all_pairs)
            state.unmatched_left.extend(outcome.unmatched_left)
            state.unmatched_right.extend(outcome.unmatched_right)

            for pair in outcome.pairs:
                link = SyncLink(
                    entity_type=self.entity_type,
                    right_id=str(pair.right.id),
                    left_id=pair.left.id,
                    fingerprints=self.resolver.fingerprints_for(pair.right),
                    last_sync_at=self.clock(),
                    status=SyncStatus.OK,
                )
                if not self._persist(link):
                    state.left.add("failed")
                    state.right.add("failed")
                    continue
                linked_left.add(link.left_id)
                linked_right.add(link.right_id)
                links.append(link)
                log_reconciliation_event(
                    ReconciliationAuditEvent.LINK_CREATED,
                    self.entity_type,
                    {"run_id": state.run_id, "left_id": link.left_id, "right_id": link.right_id},
                )
        return links

    def _process_links(
        self,
        links: List[SyncLink],
        left_by_id: Dict[Any, Record],
        right_by_id: Dict[Any, Record],
        in_range_left: Set[Any],
        in_range_right: Set[Any],
        state: _PassState
    ):
        for link in links:
            if link.is_deleted:
                continue
            if self.profile.bucketed and link.left_id not in in_range_left \
                    and link.right_id not in in_range_right:
                continue

            left = left_by_id.get(link.left_id)
            right = right_by_id.get(link.right_id)
            if left is None and right is None:
                logger.debug(f"Both records of link '{link.right_id}'/#{link.left_id} are gone")
            elif right is None:
                if left.active:
                    self._delete_left(link, state)
            elif left is None or not left.active:
                self._delete_right(link, state)
            else:
                self._resolve(link, left, right, state)

    def _resolve(self, link: SyncLink, left: Record, right: Record, state: _PassState):
        repairs = self.profile.repair(left, right) if self.profile.repair else {}
        if repairs:
            logger.debug(f"Repairing right '{link.right_id}' before sync: {sorted(repairs)}")
            right = replace(right, fields={**right.fields, **repairs})
        result = self.resolver.resolve(left, right, link.fingerprints)
        if repairs and result.right_outdated:
            result = replace(result, right_updates={**repairs, **result.right_updates})

        if not result.left_outdated and not result.right_outdated:
            state.left.add("unmodified")
            state.right.add("unmodified")
            state.resolved.append(ResolvedPair(link.right_id, link.left_id, result, applied=True))
            fingerprints = self.resolver.fingerprints_for(right)
            if fingerprints != link.fingerprints:
                self._persist(link.synced(fingerprints, self.clock()))
            return

        logger.info(f"Syncing left #{link.left_id} and right '{link.right_id}': {result}")
        right_applied = False
        try:
            if result.right_outdated:
                self.applier.update_right(link.right_id, result.right_updates)
                right_applied = True
            if result.left_outdated:
                self.applier.update_left(link.left_id, result.left_updates)
        except Exception as e:
            logger.error(
                f"Failed to apply changes for left #{link.left_id} and right '{link.right_id}': {e}",
                exc_info=True
            )
            # The link keeps its old baseline, so the pair is retried next pass.
            if result.left_outdated:
                state.left.add("failed")
            if result.right_outdated:
                state.right.add("updated" if right_applied else "failed")
            state.resolved.append(
                ResolvedPair(link.right_id, link.left_id, result, applied=False, error=str(e))
            )
            self._log_apply_failed(state, "update", link, e)
            return

        state.left.add("updated" if result.left_outdated else "unmodified")
        state.right.add("updated" if result.right_outdated else "unmodified")
        state.resolved.append(ResolvedPair(link.right_id, link.left_id, result, applied=True))
        updated = link.synced(self.resolver.fingerprints_after(right, result), self.clock(), SyncStatus.OK)
        if self._persist(updated):
            log_reconciliation_event(
                ReconciliationAuditEvent.LINK_UPDATED,
                self.entity_type,
                {
                    "run_id": state.run_id,
                    "left_id": link.left_id,
                    "right_id": link.right_id,
                    "fields": result.changed_fields,
                },
            )

    def _delete_left(self, link: SyncLink, state: _PassState):
        """Right record vanished while the left one is still active."""
        if not self.profile.delete_on_left:
            logger.info(
                f"Right record '{link.right_id}' is gone, keeping left #{link.left_id} "
                f"(deleting on left is disabled for {self.entity_type})"
            )
            return
        try:
            self.applier.delete_left(link.left_id)
        except Exception as e:
            logger.error(f"Failed to delete left #{link.left_id}: {e}", exc_info=True)
            state.left.add("failed")
            self._log_apply_failed(state, "delete_left", link, e)
            return
        state.left.add("deleted")
        self._mark_deleted(link, SyncStatus.DELETED_BY_RIGHT, state)

    def _delete_right(self, link: SyncLink, state: _PassState):
        """Left record is gone or inactive while the right one still exists."""
        if not self.profile.delete_on_right:
            logger.info(
                f"Left #{link.left_id} is inactive, keeping right '{link.right_id}' "
                f"(deleting on right is disabled for {self.entity_type})"
            )
            return
        try:
            self.applier.delete_right(link.right_id)
        except Exception as e:
            logger.error(f"Failed to delete right '{link.right_id}': {e}", exc_info=True)
            state.right.add("failed")
            self._log_apply_failed(state, "delete_right", link, e)
            return
        state.right.add("deleted")
        self._mark_deleted(link, SyncStatus.DELETED_BY_LEFT, state)

    def _mark_deleted(self, link: SyncLink, status: SyncStatus, state: _PassState):
        if self._persist(link.synced(link.fingerprints or {}, self.clock(), status)):
            log_reconciliation_event(
                ReconciliationAuditEvent.LINK_DELETED,
                self.entity_type,
                {
                    "run_id": state.run_id,
                    "left_id": link.left_id,
                    "right_id": link.right_id,
                    "status": status.value,
                },
            )

    def _create_orphans(self, state: _PassState):
        for left in state.unmatched_left:
            if not left.active:
                continue
            if not self.profile.create_on_right:
                logger.debug(f"Left #{left.id} has no counterpart, creating on right is disabled")
                continue
            try:
                right_id = self.applier.create_on_right(left)
                if right_id is None:
                    raise ApplyError(f"No right id returned for left #{left.id}")
            except Exception as e:
                logger.error(f"Failed to create right record for left #{left.id}: {e}", exc_info=True)
                state.right.add("failed")
                self._log_apply_failed(state, "create_on_right", None, e, left_id=left.id)
                continue
            state.right.add("inserted")
            self._link_created(state, SyncLink(
                entity_type=self.entity_type,
                right_id=str(right_id),
                left_id=left.id,
                fingerprints=self.resolver.fingerprints_from_left(left),
                last_sync_at=self.clock(),
                status=SyncStatus.CREATED_BY_LEFT,
            ))

        for right in state.unmatched_right:
            if not self.profile.create_on_left:
                logger.debug(f"Right '{right.id}' has no counterpart, creating on left is disabled")
                continue
            try:
                left_id = self.applier.create_on_left(right)
                if left_id is None:
                    raise ApplyError(f"No left id returned for right '{right.id}'")
            except Exception as e:
                logger.error(f"Failed to create left record for right '{right.id}': {e}", exc_info=True)
                state.left.add("failed")
                self._log_apply_failed(state, "create_on_left", None, e, right_id=right.id)
                continue
            state.left.add("inserted")
            self._link_created(state, SyncLink(
                entity_type=self.entity_type,
                right_id=str(right.id),
                left_id=left_id,
                fingerprints=self.resolver.fingerprints_for(right),
                last_sync_at=self.clock(),
                status=SyncStatus.CREATED_BY_RIGHT,
            ))

    # ==================== Private Methods ====================

    def _link_created(self, state: _PassState, link: SyncLink):
        if self._persist(link):
            log_reconciliation_event(
                ReconciliationAuditEvent.LINK_CREATED,
                self.entity_type,
                {
                    "run_id": state.run_id,
                    "left_id": link.left_id,
                    "right_id": link.right_id,
                    "status": link.status.value,
                },
            )

    def _persist(self, link: SyncLink) -> bool:
        """Upsert a link; a failure is logged and affects this pair only."""
        try:
            self.link_store.upsert(link)
            return True
        except LinkStoreError as e:
            logger.error(
                f"Failed to store sync link for right '{link.right_id}' and left #{link.left_id}: {e}",
                exc_info=True
            )
            return False

    def _skip(self, state: _PassState, side: str, record_id: Any, reason: str):
        logger.warning(f"Skipping {side} record {record_id!r}: {reason}")
        state.skipped.append(SkippedRecord(side, record_id, reason))

    def _log_apply_failed(
        self,
        state: _PassState,
        action: str,
        link: Optional[SyncLink],
        error: Exception,
        **ids
    ):
        if link is not None:
            ids = {"left_id": link.left_id, "right_id": link.right_id}
        log_reconciliation_event(
            ReconciliationAuditEvent.APPLY_FAILED,
            self.entity_type,
            {"run_id": state.run_id, "action": action, "error": str(error), **ids},
        )
