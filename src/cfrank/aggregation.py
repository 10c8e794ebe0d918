"""
Per-user aggregation of neighbor contributions into predicted scores.

Each contribution pairs one preference value with a similarity column
(item index -> similarity weight). For a given user all contributions are
consumed in one pass and turned into a single prediction vector:

- boolean data: prediction[i] = sum of similarity weights at i
- rated data:   prediction[i] = sum(p * s[i]) / sum(|s[i]|), emitted only
  when at least two contributions touched i
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Hashable, Iterable, Iterator

from . import config
from .vectors import SparseVector

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WeightedContribution:
    """One neighbor's preference value and its similarity column."""

    pref_value: float
    similarity_column: SparseVector


@dataclass
class _PredictionAccumulator:
    """Numerator, denominator and contributor count per item index."""

    numerators: dict[int, float] = field(default_factory=dict)
    denominators: dict[int, float] = field(default_factory=dict)
    counts: dict[int, int] = field(default_factory=dict)

    def add(self, contribution: WeightedContribution) -> None:
        pref = contribution.pref_value
        for index, weight in contribution.similarity_column.nonzeroes():
            self.numerators[index] = self.numerators.get(index, 0.0) + pref * weight
            self.denominators[index] = self.denominators.get(index, 0.0) + abs(weight)
            self.counts[index] = self.counts.get(index, 0) + 1

    def predictions(self, min_contributions: int) -> tuple[SparseVector, int]:
        """Return the prediction vector and how many indices were dropped as non-finite."""
        vector = SparseVector()
        suppressed = 0
        for index, numerator in self.numerators.items():
            if self.counts[index] < min_contributions:
                continue
            denominator = self.denominators[index]
            if denominator == 0.0 or not math.isfinite(denominator) or not math.isfinite(numerator):
                suppressed += 1
                continue
            prediction = numerator / denominator
            if not math.isfinite(prediction):
                suppressed += 1
                continue
            vector.set(index, prediction)
        return vector, suppressed


def _finite_only(sums: dict[int, float]) -> tuple[SparseVector, int]:
    vector = SparseVector()
    suppressed = 0
    for index, value in sums.items():
        if not math.isfinite(value):
            suppressed += 1
            continue
        vector.set(index, value)
    return vector, suppressed


def reduce_boolean_data(contributions: Iterable[WeightedContribution]) -> SparseVector | None:
    """
    Sum the similarity columns.

    With boolean data every estimated preference would be 1, which cannot
    rank anything, so the summed similarity is used as the score.
    """
    sums: dict[int, float] | None = None
    for contribution in contributions:
        if sums is None:
            sums = {}
        for index, weight in contribution.similarity_column.nonzeroes():
            sums[index] = sums.get(index, 0.0) + weight

    if sums is None:
        return None

    vector, suppressed = _finite_only(sums)
    if suppressed:
        logger.debug(f"Dropped {suppressed} non-finite boolean scores")
    return vector or None


def reduce_non_boolean_data(
    contributions: Iterable[WeightedContribution],
    min_contributions: int = config.MIN_CONTRIBUTIONS_PER_PREDICTION,
) -> SparseVector | None:
    """Similarity-weighted average of preference values per item index."""
    state = _PredictionAccumulator()
    for contribution in contributions:
        state.add(contribution)

    if not state.numerators:
        return None

    vector, suppressed = state.predictions(min_contributions)
    if suppressed:
        logger.debug(f"Dropped {suppressed} non-finite weighted-average scores")
    return vector or None


class PreferenceAggregator:
    """Turns a user's grouped contribution stream into one prediction vector."""

    def __init__(self, boolean_data: bool = False):
        self.boolean_data = boolean_data

    def aggregate(
        self,
        user_key: Hashable,
        contributions: Iterable[WeightedContribution],
    ) -> SparseVector | None:
        """
        Aggregate all contributions for ``user_key``.

        Returns None when no prediction is possible for this user.
        """
        if self.boolean_data:
            vector = reduce_boolean_data(contributions)
        else:
            vector = reduce_non_boolean_data(contributions)

        if vector is None:
            logger.debug(f"No predictions for user {user_key}")
        return vector

    def aggregate_all(
        self,
        grouped: Iterable[tuple[Hashable, Iterable[WeightedContribution]]],
    ) -> Iterator[tuple[Hashable, SparseVector]]:
        """Aggregate every (user_key, contributions) group, skipping users without output."""
        for user_key, contributions in grouped:
            vector = self.aggregate(user_key, contributions)
            if vector is not None:
                yield user_key, vector
