"""
Collaborator interfaces of the reconciliation engine.

The engine reads both record collections through a RecordSource and never
writes entities itself: every create, update and delete goes through an
Applier supplied by the host.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List

from reconciliation.models import Record


class RecordSource(ABC):
    """One side of the reconciliation (ledger, bank import, address book, ...)."""

    @abstractmethod
    def load_all(self) -> List[Record]:
        """Load every record of this side for one pass."""


class Applier(ABC):
    """
    Side-effecting actions decided by a pass.

    Implementations raise ApplyError when an action fails; the pass counts
    the failure for that record and carries on.
    """

    @abstractmethod
    def create_on_right(self, record: Record) -> str:
        """Create a right record from a left orphan, return its right id."""

    @abstractmethod
    def create_on_left(self, record: Record) -> int:
        """Create a left record from a right orphan, return its left id."""

    @abstractmethod
    def update_left(self, left_id: int, updates: Dict[str, Any]) -> None:
        """Write raw field values to an outdated left record."""

    @abstractmethod
    def update_right(self, right_id: str, updates: Dict[str, Any]) -> None:
        """Write raw field values to an outdated right record."""

    @abstractmethod
    def delete_left(self, left_id: int) -> None:
        """Delete (or deactivate) a left record whose right record vanished."""

    @abstractmethod
    def delete_right(self, right_id: str) -> None:
        """Delete a right record whose left record went inactive."""
