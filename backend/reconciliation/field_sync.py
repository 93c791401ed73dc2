"""
Field Sync Resolver

Decides, per watched field of a linked pair, which side is stale.

Direction rule:
- Normalised values equal: nothing to do.
- Right value no longer matches its stored fingerprint: the right side
  changed since the last sync, so the left side is overwritten.
- Right value still matches its fingerprint: the left side changed, so
  the right side is overwritten.
- No fingerprint baseline at all: the left side wins.

This is a heuristic, not conflict detection. If both sides changed since
the last sync, the right side's edit wins.
"""

import hashlib
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence

from reconciliation.models import Record, FieldChange, SyncResult


def fingerprint(value: Any) -> Optional[str]:
    """SHA-256 hex digest of a raw value, None for None."""
    if value is None:
        return None
    return hashlib.sha256(str(value).encode("utf-8")).hexdigest()


def as_string(value: Any) -> str:
    return '' if value is None else str(value)


@dataclass(frozen=True)
class FieldDescriptor:
    """
    A watched field of one entity type.

    Getters read the raw value from each side. Setters turn a raw value into
    the field updates for that side (one logical field may span several
    stored fields, e.g. a display name split into first and last name).
    """
    name: str
    left_getter: Callable[[Record], Any]
    right_getter: Callable[[Record], Any]
    normalizer: Callable[[Any], Any] = as_string
    left_setter: Optional[Callable[[Any], Dict[str, Any]]] = None
    right_setter: Optional[Callable[[Any], Dict[str, Any]]] = None

    def write_left(self, value: Any) -> Dict[str, Any]:
        if self.left_setter:
            return self.left_setter(value)
        return {self.name: value}

    def write_right(self, value: Any) -> Dict[str, Any]:
        if self.right_setter:
            return self.right_setter(value)
        return {self.name: value}


def field_descriptor(
    name: str,
    left_field: Optional[str] = None,
    right_field: Optional[str] = None,
    normalizer: Callable[[Any], Any] = as_string
) -> FieldDescriptor:
    """Descriptor for a field stored under a plain key on both sides."""
    left_key = left_field or name
    right_key = right_field or name
    return FieldDescriptor(
        name=name,
        left_getter=lambda r: r.get(left_key),
        right_getter=lambda r: r.get(right_key),
        normalizer=normalizer,
        left_setter=lambda v: {left_key: v},
        right_setter=lambda v: {right_key: v},
    )


class FieldSyncResolver:
    """
    Resolves linked pairs over a fixed list of field descriptors.
    """

    def __init__(self, fields: Sequence[FieldDescriptor]):
        self.fields = list(fields)

    def resolve(
        self,
        left: Record,
        right: Record,
        fingerprints: Optional[Dict[str, Optional[str]]]
    ) -> SyncResult:
        """
        Compare both records field by field.

        Args:
            left: Current left record
            right: Current right record
            fingerprints: Stored right-side fingerprints of the link, None if unknown

        Returns:
            SyncResult with the changes to write on each side
        """
        left_changes: List[FieldChange] = []
        right_changes: List[FieldChange] = []
        left_updates: Dict[str, Any] = {}
        right_updates: Dict[str, Any] = {}

        for f in self.fields:
            left_value = f.left_getter(left)
            right_value = f.right_getter(right)
            if f.normalizer(left_value) == f.normalizer(right_value):
                continue
            if fingerprints is not None and fingerprints.get(f.name) != fingerprint(right_value):
                # Right side was modified, left side is outdated.
                left_changes.append(FieldChange(f.name, left_value, right_value))
                left_updates.update(f.write_left(right_value))
            else:
                # Left side was modified, right side is outdated.
                right_changes.append(FieldChange(f.name, right_value, left_value))
                right_updates.update(f.write_right(left_value))

        return SyncResult(
            left_changes=tuple(left_changes),
            right_changes=tuple(right_changes),
            left_updates=left_updates,
            right_updates=right_updates,
        )

    def fingerprints_for(self, right: Record) -> Dict[str, Optional[str]]:
        """Fingerprints of the right record as it is now."""
        return {f.name: fingerprint(f.right_getter(right)) for f in self.fields}

    def fingerprints_from_left(self, left: Record) -> Dict[str, Optional[str]]:
        """Fingerprints of a right record freshly created from `left`."""
        return {f.name: fingerprint(f.left_getter(left)) for f in self.fields}

    def fingerprints_after(self, right: Record, result: SyncResult) -> Dict[str, Optional[str]]:
        """Fingerprints of the right record once `result` has been applied."""
        written = {c.field: c.new_value for c in result.right_changes}
        prints = {}
        for f in self.fields:
            value = written[f.name] if f.name in written else f.right_getter(right)
            prints[f.name] = fingerprint(value)
        return prints
