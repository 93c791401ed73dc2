"""
Unit Tests for the Greedy Matcher

Run with: pytest backend/tests/test_matcher.py -v
"""

import pytest

from reconciliation.matcher import GreedyMatcher, NO_MATCH_SCORE
from reconciliation.models import Record, MatchedPair


def table_score(scores):
    """Score function backed by a {(left_id, right_id): score} table."""
    def score(left, right):
        return scores.get((left.id, right.id), NO_MATCH_SCORE)
    return score


class TestGreedyMatcher:
    """Test suite for GreedyMatcher."""

    @pytest.fixture
    def left(self):
        return [Record("A"), Record("B")]

    @pytest.fixture
    def right(self):
        return [Record("X"), Record("Y")]

    # ==================== MATCHING TESTS ====================

    def test_highest_score_wins(self, left, right):
        """A<->X scores 3, A<->Y only 1: A is paired with X."""
        matcher = GreedyMatcher(table_score({
            ("A", "X"): 3,
            ("A", "Y"): 1,
            ("B", "X"): 1,
        }))

        outcome = matcher.match(left, right)

        assert [(p.left.id, p.right.id) for p in outcome.pairs] == [("A", "X")]
        assert [r.id for r in outcome.unmatched_left] == ["B"]
        assert [r.id for r in outcome.unmatched_right] == ["Y"]

    def test_greedy_is_not_globally_optimal(self, left, right):
        """The best single pair is claimed first even if it blocks two weaker pairs."""
        matcher = GreedyMatcher(table_score({
            ("A", "X"): 5,
            ("A", "Y"): 4,
            ("B", "X"): 4,
        }))

        outcome = matcher.match(left, right)

        assert [(p.left.id, p.right.id) for p in outcome.pairs] == [("A", "X")]

    def test_tie_goes_to_lower_scan_index(self, left, right):
        """Equal scores everywhere: left-major scan claims (A, X) then (B, Y)."""
        matcher = GreedyMatcher(lambda l, r: 2)

        outcome = matcher.match(left, right)

        assert [(p.left.id, p.right.id) for p in outcome.pairs] == [("A", "X"), ("B", "Y")]

    def test_right_orphan_always_reported(self):
        matcher = GreedyMatcher(table_score({("A", "X"): 1}))

        outcome = matcher.match([Record("A")], [Record("X"), Record("Z")])

        assert outcome.unmatched_right == (Record("Z"),)
        assert MatchedPair(right=Record("Z")) in outcome.orphans

    def test_scores_below_min_score_never_match(self, left, right):
        matcher = GreedyMatcher(table_score({("A", "X"): 2, ("B", "Y"): 1}), min_score=2)

        outcome = matcher.match(left, right)

        assert [(p.left.id, p.right.id) for p in outcome.pairs] == [("A", "X")]
        assert [r.id for r in outcome.unmatched_left] == ["B"]
        assert [r.id for r in outcome.unmatched_right] == ["Y"]

    def test_zero_score_never_matches_with_low_min_score(self, left, right):
        matcher = GreedyMatcher(table_score({("A", "X"): 0, ("B", "Y"): 1}), min_score=0)

        outcome = matcher.match(left, right)

        assert [(p.left.id, p.right.id) for p in outcome.pairs] == [("B", "Y")]
        assert [r.id for r in outcome.unmatched_left] == ["A"]
        assert all(c.score >= 1 for c in outcome.candidates)

    def test_each_record_in_at_most_one_pair(self):
        matcher = GreedyMatcher(lambda l, r: 1)
        left = [Record(i) for i in range(3)]
        right = [Record(f"r{i}") for i in range(5)]

        outcome = matcher.match(left, right)

        assert len(outcome.pairs) == 3
        assert len({p.left.id for p in outcome.pairs}) == 3
        assert len({p.right.id for p in outcome.pairs}) == 3
        assert len(outcome.unmatched_right) == 2

    # ==================== EMPTY SIDE TESTS ====================

    def test_empty_side_performs_no_scoring(self):
        calls = []

        def score(l, r):
            calls.append((l.id, r.id))
            return 1

        outcome = GreedyMatcher(score).match([], [Record("X")])

        assert calls == []
        assert outcome.pairs == ()
        assert [p.right.id for p in outcome.orphans] == ["X"]

    def test_candidates_contain_matchable_scores_only(self, left, right):
        matcher = GreedyMatcher(table_score({("A", "X"): 3, ("B", "Y"): 1}))

        outcome = matcher.match(left, right)

        assert {(c.left_id, c.right_id, c.score) for c in outcome.candidates} == {
            ("A", "X", 3),
            ("B", "Y", 1),
        }


class TestMatchedPair:
    """Test suite for MatchedPair."""

    def test_both_sides_missing_rejected(self):
        with pytest.raises(ValueError):
            MatchedPair()

    def test_orphan_flags(self):
        assert MatchedPair(left=Record(1)).is_left_orphan
        assert MatchedPair(right=Record("x")).is_right_orphan
        assert MatchedPair(Record(1), Record("x")).is_full
