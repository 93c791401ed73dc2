"""
Date Bucketer

Partitions both record collections into per-day buckets so that matching
only compares records of the same booking date.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from config import get_settings
from reconciliation.models import Record

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Bucket:
    """Left and right records sharing one grouping key."""
    key: Optional[date]
    left: Tuple[Record, ...]
    right: Tuple[Record, ...]


@dataclass(frozen=True)
class BucketPlan:
    """
    Result of partitioning.

    Every input record ends up in exactly one place: a bucket, the unkeyed
    lists (no grouping key) or the out-of-range lists.
    """
    buckets: Tuple[Bucket, ...] = ()
    unkeyed_left: Tuple[Record, ...] = ()
    unkeyed_right: Tuple[Record, ...] = ()
    out_of_range_left: Tuple[Record, ...] = ()
    out_of_range_right: Tuple[Record, ...] = ()
    truncated: bool = False


def derive_range(records: Iterable[Record]) -> Tuple[Optional[date], Optional[date]]:
    """First and last grouping key of the given records, (None, None) if none is keyed."""
    keys = [r.group_key for r in records if r.group_key is not None]
    if not keys:
        return None, None
    return min(keys), max(keys)


def single_bucket(left: Sequence[Record], right: Sequence[Record]) -> BucketPlan:
    """Pass-through plan for entity types without a natural partition key."""
    return BucketPlan(buckets=(Bucket(None, tuple(left), tuple(right)),))


class DateBucketer:
    """
    Groups records by `Record.group_key` (a date), one bucket per day of
    the inclusive range [date_from, date_until].
    """

    def __init__(self, max_iterations: Optional[int] = None):
        self.max_iterations = max_iterations or get_settings().BUCKET_MAX_ITERATIONS

    def partition(
        self,
        left: Sequence[Record],
        right: Sequence[Record],
        date_from: Optional[date],
        date_until: Optional[date]
    ) -> BucketPlan:
        """
        Partition both collections into day buckets.

        An unset or inverted range yields no buckets. Days without any
        record are not emitted as buckets.
        """
        left_by_day, unkeyed_left = self._group(left)
        right_by_day, unkeyed_right = self._group(right)

        if date_from is None or date_until is None or date_from > date_until:
            logger.info(f"No valid date range ({date_from} - {date_until}), nothing to bucket")
            return BucketPlan(
                unkeyed_left=tuple(unkeyed_left),
                unkeyed_right=tuple(unkeyed_right),
                out_of_range_left=self._flatten(left_by_day),
                out_of_range_right=self._flatten(right_by_day),
            )

        buckets: List[Bucket] = []
        truncated = False
        day = date_from
        for i in range(self.max_iterations + 1):
            if i == self.max_iterations:
                logger.error(
                    f"Bucket limit of {self.max_iterations} days reached at {day}, "
                    f"stopping before {date_until}"
                )
                truncated = True
                break
            left_of_day = left_by_day.pop(day, [])
            right_of_day = right_by_day.pop(day, [])
            if left_of_day or right_of_day:
                buckets.append(Bucket(day, tuple(left_of_day), tuple(right_of_day)))
            if day >= date_until:
                break
            day += timedelta(days=1)

        return BucketPlan(
            buckets=tuple(buckets),
            unkeyed_left=tuple(unkeyed_left),
            unkeyed_right=tuple(unkeyed_right),
            out_of_range_left=self._flatten(left_by_day),
            out_of_range_right=self._flatten(right_by_day),
            truncated=truncated,
        )

    @staticmethod
    def _group(records: Sequence[Record]) -> Tuple[Dict[date, List[Record]], List[Record]]:
        by_day: Dict[date, List[Record]] = defaultdict(list)
        unkeyed: List[Record] = []
        for record in records:
            if record.group_key is None:
                unkeyed.append(record)
            else:
                by_day[record.group_key].append(record)
        return by_day, unkeyed

    @staticmethod
    def _flatten(by_day: Dict[date, List[Record]]) -> Tuple[Record, ...]:
        return tuple(r for day in sorted(by_day) for r in by_day[day])
