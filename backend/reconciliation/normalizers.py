"""
Value normalisation used for scoring and field comparison.

Normalised values are only ever compared; the raw value is what gets written.
"""

import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Optional, Tuple

_PUNCTUATION_RE = re.compile(r'[^\w\s]')
_WHITESPACE_RE = re.compile(r'\s+')
_PHONE_CHARS_RE = re.compile(r'[^0-9+]')

CENT = Decimal("0.01")


def normalize_text(value: Optional[str]) -> str:
    """Lower-case, strip punctuation and collapse whitespace."""
    if not value:
        return ''
    s = _PUNCTUATION_RE.sub(' ', str(value).lower())
    return _WHITESPACE_RE.sub(' ', s).strip()


def normalize_name(value: Optional[str]) -> str:
    """Trimmed, lower-cased name; internal spacing is kept."""
    if not value:
        return ''
    return str(value).strip().lower()


def normalize_email(value: Optional[str]) -> str:
    return normalize_name(value)


def normalize_iban(value: Optional[str]) -> str:
    if not value:
        return ''
    return _WHITESPACE_RE.sub('', str(value)).upper()


def extract_phone_number(value: Optional[str], country_prefix: str = "+49") -> Optional[str]:
    """
    Reduce a phone number to a comparable digit sequence.

    "+49 561 316793-0" and "0561 3167930" both become "05613167930";
    any other international prefix "+xx" becomes "00xx".
    """
    if not value:
        return None
    s = _PHONE_CHARS_RE.sub('', str(value))
    if not s:
        return None
    if country_prefix and s.startswith(country_prefix):
        s = '0' + s[len(country_prefix):]
    elif s.startswith('+'):
        s = '00' + s[1:]
    s = s.replace('+', '')
    return s or None


def normalize_phone(value: Optional[str], country_prefix: str = "+49") -> str:
    return extract_phone_number(value, country_prefix) or ''


def normalize_amount(value: Any) -> Optional[Decimal]:
    """Amount rounded to the cent, None if not a number."""
    if value is None or value == '':
        return None
    try:
        return Decimal(str(value)).quantize(CENT)
    except (InvalidOperation, ValueError, TypeError):
        return None


def parse_date(value: Any) -> Optional[date]:
    """Date from a date, datetime or ISO string; None if missing or malformed."""
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip()[:10])
    except ValueError:
        return None


def full_name(first_name: Optional[str], last_name: Optional[str]) -> str:
    """Display name as the remote directory stores it: "first last"."""
    parts = [p.strip() for p in (first_name, last_name) if p and p.strip()]
    return " ".join(parts)


def split_name(name: Optional[str]) -> Tuple[Optional[str], Optional[str]]:
    """
    Split a display name into (first_name, last_name).

    The last word is the family name, everything before it the given names.
    """
    if not name or not name.strip():
        return None, None
    names = name.strip().split(" ")
    last_name = names[-1].strip()
    first_name = " ".join(names[:-1]).strip()
    return (first_name or None), last_name
