"""
Reconciliation Engine Module

Keeps two sources of truth for the same entities in sync:
- Date bucketing and greedy best-score matching of unlinked records
- Persisted links with per-field fingerprints of the last sync
- Field-level direction inference (which side is outdated)
- Create, update and delete decisions handed to an external Applier
- Audit trail for all operations
"""

from reconciliation.errors import (
    ReconciliationError,
    UnknownEntityTypeError,
    LinkStoreError,
    LinkStoreUnavailableError,
    DuplicateLinkError,
    ApplyError
)
from reconciliation.models import (
    Record,
    MatchCandidate,
    MatchedPair,
    SyncLink,
    SyncStatus,
    Counters,
    FieldChange,
    SyncResult,
    PassResult
)
from reconciliation.bucketer import Bucket, BucketPlan, DateBucketer, derive_range, single_bucket
from reconciliation.matcher import GreedyMatcher, MatchOutcome, NO_MATCH_SCORE
from reconciliation.field_sync import FieldDescriptor, FieldSyncResolver, field_descriptor, fingerprint
from reconciliation.interfaces import RecordSource, Applier
from reconciliation.link_store import LinkStore, SqlAlchemyLinkStore
from reconciliation.profile_registry import (
    EntityType,
    EntityProfile,
    ProfileRegistry,
    profile_registry
)
from reconciliation.services.reconciliation_service import ReconciliationService

__all__ = [
    # Errors
    'ReconciliationError',
    'UnknownEntityTypeError',
    'LinkStoreError',
    'LinkStoreUnavailableError',
    'DuplicateLinkError',
    'ApplyError',
    # Models
    'Record',
    'MatchCandidate',
    'MatchedPair',
    'SyncLink',
    'SyncStatus',
    'Counters',
    'FieldChange',
    'SyncResult',
    'PassResult',
    # Engine
    'Bucket',
    'BucketPlan',
    'DateBucketer',
    'derive_range',
    'single_bucket',
    'GreedyMatcher',
    'MatchOutcome',
    'NO_MATCH_SCORE',
    'FieldDescriptor',
    'FieldSyncResolver',
    'field_descriptor',
    'fingerprint',
    # Collaborators
    'RecordSource',
    'Applier',
    'LinkStore',
    'SqlAlchemyLinkStore',
    # Profiles
    'EntityType',
    'EntityProfile',
    'ProfileRegistry',
    'profile_registry',
    # Service
    'ReconciliationService'
]
