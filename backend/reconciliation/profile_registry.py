"""
Reconciliation Profile Registry

Central registry of all reconciled entity types.
Each profile has:
- Unique entity type
- Display name
- Score function and watched fields
- Bucketing and create/delete permissions

Supported Entity Types:
- BANK_STATEMENT: ledger bookings vs. imported bank statement lines
- CONTACT: local address book vs. remote contact directory
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from config import get_settings
from reconciliation.errors import UnknownEntityTypeError
from reconciliation.field_sync import FieldDescriptor
from reconciliation.matcher import ScoreFunction
from reconciliation.matching_rules.bank_rules import BankStatementMatchingRules
from reconciliation.matching_rules.contact_rules import ContactMatchingRules
from reconciliation.models import Record


class EntityType(str, Enum):
    """
    Recognised entity types.
    """
    BANK_STATEMENT = "BANK_STATEMENT"
    CONTACT = "CONTACT"


@dataclass
class EntityProfile:
    """
    Configuration for one reconciled entity type.

    Left is the local side, right the remote/imported side.
    """
    entity_type: EntityType
    display_name: str
    score_function: ScoreFunction
    fields: List[FieldDescriptor]
    min_score: int = 1
    bucketed: bool = False  # Partition by Record.group_key (a date)
    create_on_left: bool = True  # Right orphans are created locally
    create_on_right: bool = True  # Active left orphans are created remotely
    delete_on_left: bool = True  # Left record is deleted when its right record vanished
    delete_on_right: bool = True  # Right record is deleted when its left record went inactive
    # Right-side field fixes applied before field resolution, e.g. a value kept
    # under another field on the right than on the left
    repair: Optional[Callable[[Record, Record], Dict[str, Any]]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entity_type": self.entity_type.value,
            "display_name": self.display_name,
            "fields": [f.name for f in self.fields],
            "min_score": self.min_score,
            "bucketed": self.bucketed,
            "create_on_left": self.create_on_left,
            "create_on_right": self.create_on_right,
            "delete_on_left": self.delete_on_left,
            "delete_on_right": self.delete_on_right,
        }


def bank_statement_profile() -> EntityProfile:
    """
    Bank statements only ever cover part of the account history, so a
    missing line is no reason to delete a booking and bookings are never
    pushed back to the bank.
    """
    rules = BankStatementMatchingRules()
    return EntityProfile(
        entity_type=EntityType.BANK_STATEMENT,
        display_name="Bank Statement Lines",
        score_function=rules.score,
        fields=rules.fields(),
        min_score=get_settings().BANK_MIN_SCORE,
        bucketed=True,
        create_on_left=True,
        create_on_right=False,
        delete_on_left=False,
        delete_on_right=False,
    )


def contact_profile() -> EntityProfile:
    rules = ContactMatchingRules()
    return EntityProfile(
        entity_type=EntityType.CONTACT,
        display_name="Contact Directory",
        score_function=rules.score,
        fields=rules.fields(),
        min_score=get_settings().CONTACT_MIN_SCORE,
        bucketed=False,
        repair=rules.repair,
    )


class ProfileRegistry:
    """
    Central registry for entity profiles.

    Profiles are built on first access so they pick up the current settings.
    """

    def __init__(self):
        self._profiles: Dict[EntityType, EntityProfile] = {}

    def _ensure_defaults(self):
        if not self._profiles:
            self._profiles = {
                EntityType.BANK_STATEMENT: bank_statement_profile(),
                EntityType.CONTACT: contact_profile(),
            }

    def get(self, entity_type: Any) -> EntityProfile:
        """
        Get the profile of an entity type.

        Raises:
            UnknownEntityTypeError: if no profile is registered
        """
        self._ensure_defaults()
        try:
            key = EntityType(entity_type)
        except ValueError:
            raise UnknownEntityTypeError(f"Unknown entity type: {entity_type}")
        profile = self._profiles.get(key)
        if profile is None:
            raise UnknownEntityTypeError(f"No profile registered for {key.value}")
        return profile

    def register(self, profile: EntityProfile):
        """Register or replace a profile."""
        self._ensure_defaults()
        self._profiles[profile.entity_type] = profile

    def get_all(self) -> List[EntityProfile]:
        self._ensure_defaults()
        return list(self._profiles.values())

    def reset(self, profiles: Optional[List[EntityProfile]] = None):
        """Drop all registered profiles; the defaults are rebuilt on next access."""
        self._profiles = {p.entity_type: p for p in (profiles or [])}

    def to_dict(self) -> Dict[str, Any]:
        """Export registry as dictionary."""
        self._ensure_defaults()
        return {
            entity_type.value: profile.to_dict()
            for entity_type, profile in self._profiles.items()
        }


# Global registry instance
profile_registry = ProfileRegistry()
