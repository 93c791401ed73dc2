"""
Greedy Matcher

Pairs the left and right records of one bucket by repeatedly claiming the
highest-scoring unclaimed pair. Buckets are small (one booking day, or one
contact directory), so the O(n*m) rescans are acceptable.
"""

import logging
from dataclasses import dataclass
from typing import Callable, List, Sequence, Tuple

from reconciliation.models import Record, MatchCandidate, MatchedPair

logger = logging.getLogger(__name__)

# Score returned when the primary identity fields differ.
NO_MATCH_SCORE = -1

ScoreFunction = Callable[[Record, Record], int]


@dataclass(frozen=True)
class MatchOutcome:
    """Pairs and leftovers of one bucket."""
    pairs: Tuple[MatchedPair, ...] = ()
    unmatched_left: Tuple[Record, ...] = ()
    unmatched_right: Tuple[Record, ...] = ()
    candidates: Tuple[MatchCandidate, ...] = ()

    @property
    def orphans(self) -> Tuple[MatchedPair, ...]:
        return tuple(
            [MatchedPair(left=r) for r in self.unmatched_left] +
            [MatchedPair(right=r) for r in self.unmatched_right]
        )

    @property
    def all_pairs(self) -> Tuple[MatchedPair, ...]:
        return self.pairs + self.orphans


class GreedyMatcher:
    """
    Highest score first; ties go to the pair found first in a left-major
    scan by ascending index.
    """

    def __init__(self, score_function: ScoreFunction, min_score: int = 1):
        self.score_function = score_function
        # A score of zero or less is never a candidate
        self.min_score = max(min_score, 1)

    def match(self, left: Sequence[Record], right: Sequence[Record]) -> MatchOutcome:
        if not left or not right:
            # Nothing to compare: every record is an orphan.
            return MatchOutcome(unmatched_left=tuple(left), unmatched_right=tuple(right))

        score_matrix = [[self.score_function(l, r) for r in right] for l in left]
        candidates = [
            MatchCandidate(left[k].id, right[l].id, score_matrix[k][l])
            for k in range(len(left))
            for l in range(len(right))
            if score_matrix[k][l] >= self.min_score
        ]

        taken_left = set()
        taken_right = set()
        pairs: List[MatchedPair] = []
        for _ in range(len(left) + len(right) + 1):  # Paranoia counter
            max_score = self.min_score - 1
            max_k = max_l = -1
            for k in range(len(left)):
                if k in taken_left:
                    continue
                for l in range(len(right)):
                    if l in taken_right:
                        continue
                    if score_matrix[k][l] > max_score:
                        max_score = score_matrix[k][l]
                        max_k, max_l = k, l
            if max_k < 0:
                break  # No matching pair left.
            taken_left.add(max_k)
            taken_right.add(max_l)
            pairs.append(MatchedPair(left[max_k], right[max_l]))

        unmatched_left = tuple(r for k, r in enumerate(left) if k not in taken_left)
        unmatched_right = tuple(r for l, r in enumerate(right) if l not in taken_right)
        logger.debug(
            f"Matched {len(pairs)} pairs, {len(unmatched_left)} left and "
            f"{len(unmatched_right)} right orphans"
        )
        return MatchOutcome(
            pairs=tuple(pairs),
            unmatched_left=unmatched_left,
            unmatched_right=unmatched_right,
            candidates=tuple(candidates),
        )
