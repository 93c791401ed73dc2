"""
Bank Statement Matching Rules

Matches imported bank statement lines (right) against ledger bookings
(left). Both sides are bucketed by booking date, so only lines and
bookings of the same day are ever scored against each other.

Primary Match Key:
- amount, equal to the cent

Secondary Heuristics (+1 each):
- booking text (punctuation and case insensitive)
- counterparty IBAN
- counterparty name
- end-to-end reference
"""

from typing import Any, Dict, List

from reconciliation.field_sync import FieldDescriptor, field_descriptor
from reconciliation.matcher import NO_MATCH_SCORE
from reconciliation.models import Record
from reconciliation.normalizers import (
    normalize_amount,
    normalize_iban,
    normalize_name,
    normalize_text,
    parse_date,
)


def _amount_key(value: Any) -> str:
    amount = normalize_amount(value)
    return '' if amount is None else str(amount)


class BankStatementMatchingRules:
    """
    Scoring and watched fields for bank statement reconciliation.
    """

    # Secondary fields and the normaliser each is compared with
    SECONDARY_FIELDS = [
        ("text", normalize_text),
        ("counterparty_iban", normalize_iban),
        ("counterparty_name", normalize_name),
        ("reference", normalize_text),
    ]

    # ==================== Records ====================

    @staticmethod
    def to_left_record(row: Dict[str, Any]) -> Record:
        """Ledger booking row -> Record, keyed by booking date."""
        return Record(
            id=int(row["id"]),
            fields=dict(row),
            group_key=parse_date(row.get("booking_date")),
            active=not row.get("cancelled", False),
        )

    @staticmethod
    def to_right_record(row: Dict[str, Any]) -> Record:
        """Statement line row -> Record, keyed by booking date."""
        return Record(
            id=str(row["id"]),
            fields=dict(row),
            group_key=parse_date(row.get("booking_date")),
        )

    # ==================== Scoring ====================

    def score(self, left: Record, right: Record) -> int:
        """
        Score a ledger booking against a statement line of the same day.

        Returns:
            NO_MATCH_SCORE if the amounts differ, else 1 plus one per equal
            secondary field
        """
        left_amount = normalize_amount(left.get("amount"))
        if left_amount is None or left_amount != normalize_amount(right.get("amount")):
            return NO_MATCH_SCORE

        counter = 1
        for key, normalizer in self.SECONDARY_FIELDS:
            left_value = normalizer(left.get(key))
            if left_value and left_value == normalizer(right.get(key)):
                counter += 1
        return counter

    # ==================== Watched Fields ====================

    def fields(self) -> List[FieldDescriptor]:
        """Fields compared for every linked booking/line pair."""
        return [
            field_descriptor("amount", normalizer=_amount_key),
            field_descriptor("text", normalizer=normalize_text),
            field_descriptor("counterparty_name", normalizer=normalize_name),
            field_descriptor("counterparty_iban", normalizer=normalize_iban),
            field_descriptor("reference", normalizer=normalize_text),
            field_descriptor("currency", normalizer=normalize_name),
        ]


# Global rules instance
bank_rules = BankStatementMatchingRules()
