"""
Reconciliation error taxonomy.

Per-record problems never raise out of a pass; they are counted and logged.
Only faults that remove the link baseline (LinkStoreUnavailableError) or
break the one-link-per-id rule beyond repair (DuplicateLinkError) propagate.
"""


class ReconciliationError(Exception):
    """Base class for reconciliation errors."""
    pass


class UnknownEntityTypeError(ReconciliationError):
    """No profile is registered for the requested entity type."""
    pass


class LinkStoreError(ReconciliationError):
    """A link store operation failed."""
    pass


class LinkStoreUnavailableError(LinkStoreError):
    """Links could not be loaded at all; the pass is aborted."""
    pass


class DuplicateLinkError(LinkStoreError):
    """More than one stored link for one key and no deterministic winner."""

    def __init__(self, right_id: str, left_id: int, count: int):
        self.right_id = right_id
        self.left_id = left_id
        self.count = count
        super().__init__(
            f"Sync link for right id '{right_id}' and left id #{left_id} not unique: "
            f"found {count} entries"
        )


class ApplyError(ReconciliationError):
    """An Applier could not create, update or delete a record."""
    pass
