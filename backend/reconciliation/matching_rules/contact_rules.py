"""
Contact Matching Rules

Matches a remote contact directory (right) against local address records
(left). No date partitioning: the whole directory is one bucket.

Primary Match Key:
- display name ("first last"), trimmed and case-insensitive

Secondary Heuristics (+1 each):
- every remote phone number equal to one of the local phone numbers
- every remote e-mail equal to the local business or private e-mail
- every remote postal code equal to the local business or private zip code
- equal division
- equal organization

Repair:
- a remote organization equal to the local division (local organization
  empty) is moved to the remote division before the fields are synced
"""

from typing import Any, Dict, List, Optional

from config import get_settings
from reconciliation.field_sync import FieldDescriptor, field_descriptor
from reconciliation.matcher import NO_MATCH_SCORE
from reconciliation.models import Record
from reconciliation.normalizers import (
    extract_phone_number,
    full_name,
    normalize_email,
    normalize_name,
    normalize_phone,
    split_name,
)

# Local phone fields and the remote number type each one is synced with
PHONE_FIELDS = [
    ("business_phone", "work"),
    ("private_phone", "home"),
    ("mobile_phone", "cell"),
    ("private_mobile_phone", "other"),
    ("fax", "fax_work"),
]

ACTIVE_STATUS = "ACTIVE"


def local_name(record: Record) -> str:
    return full_name(record.get("first_name"), record.get("last_name"))


def _write_local_name(value: Optional[str]) -> Dict[str, Any]:
    first_name, last_name = split_name(value)
    return {"first_name": first_name, "last_name": last_name}


class ContactMatchingRules:
    """
    Scoring and watched fields for contact synchronisation.
    """

    def __init__(self, country_prefix: Optional[str] = None):
        self.country_prefix = (
            country_prefix if country_prefix is not None
            else get_settings().DEFAULT_COUNTRY_PREFIX
        )

    # ==================== Records ====================

    @staticmethod
    def to_left_record(row: Dict[str, Any]) -> Record:
        """Local address row -> Record. Deleted or non-active addresses are inactive."""
        active = (
            not row.get("deleted", False)
            and (row.get("contact_status") or ACTIVE_STATUS) == ACTIVE_STATUS
        )
        return Record(id=int(row["id"]), fields=dict(row), active=active)

    @staticmethod
    def to_right_record(row: Dict[str, Any]) -> Record:
        """Remote contact row -> Record."""
        return Record(id=str(row["id"]), fields=dict(row))

    # ==================== Scoring ====================

    def score(self, left: Record, right: Record) -> int:
        """
        Score a local address against a remote contact.

        Returns:
            NO_MATCH_SCORE if the names differ, else 1 plus one per matching detail
        """
        if normalize_name(right.get("name")) != normalize_name(local_name(left)):
            return NO_MATCH_SCORE

        counter = 1

        local_numbers = [
            self._number(left.get(local_field)) for local_field, _ in PHONE_FIELDS
        ]
        for number in self._remote_numbers(right):
            extracted = self._number(number)
            counter += sum(1 for n in local_numbers if n is not None and n == extracted)

        local_emails = {
            normalize_email(left.get("email")),
            normalize_email(left.get("private_email")),
        } - {''}
        for email in self._remote_emails(right):
            if normalize_email(email) in local_emails:
                counter += 1

        local_zip_codes = {
            (left.get("zip_code") or '').strip(),
            (left.get("private_zip_code") or '').strip(),
        } - {''}
        for postal_code in right.get("postal_codes") or []:
            if (postal_code or '').strip() in local_zip_codes:
                counter += 1

        for key in ("division", "organization"):
            if left.get(key) is not None and normalize_name(left.get(key)) == normalize_name(right.get(key)):
                counter += 1

        return counter

    # ==================== Watched Fields ====================

    def fields(self) -> List[FieldDescriptor]:
        """Fields compared for every linked address/contact pair, in sync order."""
        phone = lambda value: normalize_phone(value, self.country_prefix)
        descriptors = [
            FieldDescriptor(
                name="name",
                left_getter=local_name,
                right_getter=lambda r: r.get("name"),
                left_setter=_write_local_name,
                right_setter=lambda v: {"name": v},
            ),
            field_descriptor("organization"),
            field_descriptor("division"),
            field_descriptor("email"),
            field_descriptor("private_email"),
        ]
        for local_field, remote_field in PHONE_FIELDS:
            descriptors.append(field_descriptor(local_field, local_field, remote_field, normalizer=phone))
        return descriptors

    @staticmethod
    def repair(left: Record, right: Record) -> Dict[str, Any]:
        """
        Remote contact holds as organization what the local address keeps as
        division: move it to division on the remote side.

        Returns:
            Right-side field updates, empty if nothing needs repairing
        """
        organization = right.get("organization")
        division = (left.get("division") or '').strip()
        if organization is None or right.get("division") is not None:
            return {}
        if (left.get("organization") or '').strip() or not division:
            return {}
        if organization.strip() != division:
            return {}
        # organization: 'PEV'->None, division: None->'PEV'
        return {"organization": None, "division": left.get("division")}

    # ==================== Private Methods ====================

    def _number(self, value: Optional[str]) -> Optional[str]:
        return extract_phone_number(value, self.country_prefix)

    @staticmethod
    def _remote_numbers(right: Record) -> List[str]:
        numbers = right.get("numbers")
        if numbers is None:
            numbers = [right.get(remote_field) for _, remote_field in PHONE_FIELDS]
        return [n for n in numbers if n]

    @staticmethod
    def _remote_emails(right: Record) -> List[str]:
        emails = right.get("emails")
        if emails is None:
            emails = [right.get("email"), right.get("private_email")]
        return [e for e in emails if e]


# Global rules instance
contact_rules = ContactMatchingRules()
