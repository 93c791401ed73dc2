"""
Unit Tests for the Date Bucketer

Run with: pytest backend/tests/test_bucketer.py -v
"""

from datetime import date

import pytest

from reconciliation.bucketer import DateBucketer, derive_range, single_bucket
from reconciliation.models import Record


def rec(id, day):
    return Record(id, group_key=day)


class TestDateBucketer:
    """Test suite for DateBucketer."""

    @pytest.fixture
    def bucketer(self):
        return DateBucketer()

    # ==================== RANGE TESTS ====================

    def test_one_bucket_per_day_with_records(self, bucketer):
        left = [rec(1, date(2024, 3, 1)), rec(2, date(2024, 3, 3))]
        right = [rec("a", date(2024, 3, 1)), rec("b", date(2024, 3, 2))]

        plan = bucketer.partition(left, right, date(2024, 3, 1), date(2024, 3, 5))

        assert [b.key for b in plan.buckets] == [date(2024, 3, 1), date(2024, 3, 2), date(2024, 3, 3)]
        first = plan.buckets[0]
        assert [r.id for r in first.left] == [1]
        assert [r.id for r in first.right] == ["a"]
        assert plan.truncated is False

    def test_range_is_inclusive(self, bucketer):
        left = [rec(1, date(2024, 3, 1)), rec(2, date(2024, 3, 2))]

        plan = bucketer.partition(left, [], date(2024, 3, 1), date(2024, 3, 2))

        assert len(plan.buckets) == 2

    def test_inverted_range_yields_zero_buckets(self, bucketer):
        left = [rec(1, date(2024, 3, 1))]

        plan = bucketer.partition(left, [], date(2024, 3, 5), date(2024, 3, 1))

        assert plan.buckets == ()
        assert [r.id for r in plan.out_of_range_left] == [1]

    @pytest.mark.parametrize("date_from,date_until", [
        (None, None),
        (date(2024, 3, 1), None),
        (None, date(2024, 3, 1)),
    ])
    def test_unset_range_yields_zero_buckets(self, bucketer, date_from, date_until):
        plan = bucketer.partition([rec(1, date(2024, 3, 1))], [], date_from, date_until)

        assert plan.buckets == ()

    def test_records_outside_range_are_reported(self, bucketer):
        right = [rec("a", date(2024, 2, 28)), rec("b", date(2024, 3, 1))]

        plan = bucketer.partition([], right, date(2024, 3, 1), date(2024, 3, 1))

        assert [r.id for b in plan.buckets for r in b.right] == ["b"]
        assert [r.id for r in plan.out_of_range_right] == ["a"]

    def test_unkeyed_records_kept_apart(self, bucketer):
        plan = bucketer.partition([rec(1, None)], [rec("a", None)], date(2024, 3, 1), date(2024, 3, 2))

        assert plan.buckets == ()
        assert [r.id for r in plan.unkeyed_left] == [1]
        assert [r.id for r in plan.unkeyed_right] == ["a"]

    # ==================== ITERATION CAP TESTS ====================

    def test_iteration_cap_truncates(self):
        bucketer = DateBucketer(max_iterations=3)
        left = [rec(1, date(2024, 3, 1)), rec(2, date(2024, 3, 5))]

        plan = bucketer.partition(left, [], date(2024, 3, 1), date(2024, 3, 10))

        assert plan.truncated is True
        assert [b.key for b in plan.buckets] == [date(2024, 3, 1)]
        assert [r.id for r in plan.out_of_range_left] == [2]

    def test_cap_defaults_to_settings(self, monkeypatch):
        monkeypatch.setenv("BUCKET_MAX_ITERATIONS", "7")

        assert DateBucketer().max_iterations == 7


class TestRangeHelpers:
    """Test suite for derive_range and single_bucket."""

    def test_derive_range(self):
        records = [rec(1, date(2024, 3, 4)), rec(2, None), rec(3, date(2024, 3, 1))]

        assert derive_range(records) == (date(2024, 3, 1), date(2024, 3, 4))

    def test_derive_range_without_keys(self):
        assert derive_range([rec(1, None)]) == (None, None)

    def test_single_bucket_passes_everything_through(self):
        plan = single_bucket([rec(1, None)], [rec("a", None), rec("b", None)])

        assert len(plan.buckets) == 1
        assert len(plan.buckets[0].right) == 2
        assert plan.buckets[0].key is None
