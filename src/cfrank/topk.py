"""
Top-K selection of recommended items from a predicted-score vector.
"""

from __future__ import annotations

import heapq
import itertools
import logging
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Generic, Hashable, Iterable, TypeVar

from .index_map import IndexIDMap
from .job_config import RecommenderConfig, validate_num_recommendations
from .vectors import SparseVector

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RecommendedItem:
    item_id: int
    score: float


def by_score(item: RecommendedItem) -> float:
    return item.score


class BoundedTopKQueue(Generic[T]):
    """
    Min-heap holding at most ``capacity`` elements.

    Once full, a new element is admitted only if its key is strictly greater
    than the current minimum, which is then evicted. Among equal keys the
    earlier-inserted element is treated as smaller.
    """

    def __init__(self, capacity: int, key: Callable[[T], float]):
        self.capacity = validate_num_recommendations(capacity)
        self._key = key
        self._heap: list[tuple[float, int, T]] = []
        self._counter = itertools.count()

    def __len__(self) -> int:
        return len(self._heap)

    def add(self, element: T) -> bool:
        """Offer an element; returns True if it was retained."""
        entry = (self._key(element), next(self._counter), element)
        if len(self._heap) < self.capacity:
            heapq.heappush(self._heap, entry)
            return True
        if entry[0] > self._heap[0][0]:
            heapq.heapreplace(self._heap, entry)
            return True
        return False

    def peek(self) -> T | None:
        return self._heap[0][2] if self._heap else None

    def pop(self) -> T:
        """Remove and return the current minimum."""
        return heapq.heappop(self._heap)[2]

    def drain_descending(self) -> list[T]:
        """Empty the queue, returning elements from highest to lowest key."""
        ordered: list[T] = []
        while self._heap:
            ordered.append(self.pop())
        ordered.reverse()
        return ordered


class TopKSelector:
    """Maps a user's prediction vector to at most K recommended items."""

    def __init__(
        self,
        num_recommendations: int,
        items_to_recommend_for: Iterable[int] | None = None,
        item_index_map: IndexIDMap | None = None,
        strict_index_lookup: bool = True,
    ):
        self.num_recommendations = validate_num_recommendations(num_recommendations)
        allowed = frozenset(items_to_recommend_for) if items_to_recommend_for is not None else None
        # An empty allow-list means no filtering
        self.items_to_recommend_for = allowed or None
        self.item_index_map = item_index_map
        self.strict_index_lookup = strict_index_lookup

    @classmethod
    def from_config(cls, cfg: RecommenderConfig) -> "TopKSelector":
        return cls(
            cfg.num_recommendations,
            items_to_recommend_for=cfg.items_to_recommend_for,
            item_index_map=cfg.item_index_map,
            strict_index_lookup=cfg.strict_index_lookup,
        )

    def _item_id(self, index: int) -> int:
        if self.item_index_map:
            return self.item_index_map.resolve(index, strict=self.strict_index_lookup)
        # No mappings, so the index is the ID
        return index

    def top_items(self, vector: SparseVector) -> BoundedTopKQueue[RecommendedItem]:
        """Fill a bounded queue with the eligible, non-NaN entries of ``vector``."""
        queue: BoundedTopKQueue[RecommendedItem] = BoundedTopKQueue(self.num_recommendations, key=by_score)
        for index, score in vector.nonzeroes():
            if math.isnan(score):
                continue
            item_id = self._item_id(index)
            if self.items_to_recommend_for is not None and item_id not in self.items_to_recommend_for:
                continue
            queue.add(RecommendedItem(item_id, float(score)))
        return queue

    def select(self, user_key: Hashable, vector: SparseVector) -> list[RecommendedItem] | None:
        """
        Return up to K items in descending score order.

        Returns None (no record) when no entry qualifies.
        """
        queue = self.top_items(vector)
        if not len(queue):
            logger.debug(f"No eligible items for user {user_key}")
            return None
        return queue.drain_descending()

    def select_merged(
        self,
        user_key: Hashable,
        partial_vectors: Iterable[SparseVector],
    ) -> list[RecommendedItem] | None:
        """Merge partial vectors delivered for the same user, then select."""
        return self.select(user_key, SparseVector.merge(partial_vectors))


def load_item_allowlist(path: str | Path) -> frozenset[int]:
    """
    Read item IDs, one per line.

    Blank lines are skipped; lines that are not integers are logged and
    ignored.
    """
    items: set[int] = set()
    with open(path, encoding="utf-8") as handle:
        for line in handle:
            stripped = line.strip()
            if not stripped:
                continue
            try:
                items.add(int(stripped))
            except ValueError:
                logger.warning(f"Items file line ignored: {stripped}")
    return frozenset(items)
