"""
In-process grouped-stream harness.

Stands in for the distributed engine: builds per-user contribution
streams from a preference matrix and a precomputed similarity matrix,
delivers each user's stream to the aggregator in one call, merges the
resulting partial vectors per user and hands them to the top-K selector.
It also runs a row statistics pass with its initialize/flush lifecycle.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Iterable, Iterator

import numpy as np
from scipy.sparse import csr_matrix
from tqdm import tqdm

from . import config
from .aggregation import PreferenceAggregator, WeightedContribution
from .errors import ConfigurationError, MalformedInputError
from .index_map import IndexIDMap
from .job_config import RecommenderConfig
from .row_stats import Record, RowStatisticsCollector
from .topk import RecommendedItem, TopKSelector
from .vectors import SparseVector

logger = logging.getLogger(__name__)


def build_preference_matrix(
    triples: Iterable[tuple[int, int, float]],
) -> tuple[csr_matrix, IndexIDMap, IndexIDMap]:
    """
    Build a users x items CSR matrix from (user_id, item_id, value) triples.

    IDs are mapped to dense indices in sorted order. Returns the matrix and
    the user and item index maps.
    """
    rows = list(triples)
    user_map = IndexIDMap.from_ids(user_id for user_id, _, _ in rows)
    item_map = IndexIDMap.from_ids(item_id for _, item_id, _ in rows)

    row_indices = [user_map.index_for(int(u)) for u, _, _ in rows]
    col_indices = [item_map.index_for(int(i)) for _, i, _ in rows]
    values = [float(v) for _, _, v in rows]

    matrix = csr_matrix(
        (np.asarray(values, dtype=np.float64), (row_indices, col_indices)),
        shape=(len(user_map), len(item_map)),
        dtype=np.float64,
    )
    logger.debug(f"Built preference matrix: {len(user_map)} users x {len(item_map)} items, {matrix.nnz} values")
    return matrix, user_map, item_map


def build_similarity_matrix(
    triples: Iterable[tuple[int, int, float]],
    index_map: IndexIDMap,
) -> csr_matrix:
    """
    Build a square similarity matrix from (id_a, id_b, similarity) triples.

    Each pair is stored in both directions; the diagonal is left empty.
    Pairs naming an ID absent from ``index_map`` are skipped.
    """
    entries: dict[tuple[int, int], float] = {}
    skipped = 0
    for id_a, id_b, similarity in triples:
        try:
            a, b = index_map.index_for(int(id_a)), index_map.index_for(int(id_b))
        except KeyError:
            skipped += 1
            continue
        if a == b:
            continue
        entries[(a, b)] = float(similarity)
        entries[(b, a)] = float(similarity)

    if skipped:
        logger.warning(f"Skipped {skipped} similarity pairs with unknown IDs")
    n = len(index_map)
    if not entries:
        return csr_matrix((n, n), dtype=np.float64)
    keys = list(entries)
    return csr_matrix(
        ([entries[k] for k in keys], ([a for a, _ in keys], [b for _, b in keys])),
        shape=(n, n),
        dtype=np.float64,
    )


def _row(matrix: csr_matrix, index: int) -> tuple[np.ndarray, np.ndarray]:
    start, end = matrix.indptr[index], matrix.indptr[index + 1]
    return matrix.indices[start:end], matrix.data[start:end]


def user_based_contributions(
    preferences: csr_matrix,
    similarity: csr_matrix,
    user: int,
    boolean_data: bool = False,
) -> Iterator[WeightedContribution]:
    """
    One contribution per (neighbor, item the user has not rated).

    The column holds a single entry: the item index weighted by the
    user-user similarity.
    """
    rated_items, _ = _row(preferences, user)
    rated = set(rated_items.tolist())
    neighbors, weights = _row(similarity, user)
    for neighbor, weight in zip(neighbors.tolist(), weights.tolist()):
        if neighbor == user or weight == 0.0:
            continue
        items, values = _row(preferences, neighbor)
        for item, value in zip(items.tolist(), values.tolist()):
            if item in rated:
                continue
            pref = config.BOOLEAN_PREF_VALUE if boolean_data else value
            yield WeightedContribution(pref, SparseVector({item: weight}))


def item_based_contributions(
    preferences: csr_matrix,
    similarity: csr_matrix,
    user: int,
    boolean_data: bool = False,
) -> Iterator[WeightedContribution]:
    """
    One contribution per item the user rated.

    The column is that item's row of the item-item similarity matrix,
    restricted to items the user has not rated yet.
    """
    rated_items, values = _row(preferences, user)
    rated = set(rated_items.tolist())
    for item, value in zip(rated_items.tolist(), values.tolist()):
        others, weights = _row(similarity, item)
        column = SparseVector(
            (other, weight)
            for other, weight in zip(others.tolist(), weights.tolist())
            if other not in rated
        )
        pref = config.BOOLEAN_PREF_VALUE if boolean_data else value
        yield WeightedContribution(pref, column)


def group_contributions(
    preferences: csr_matrix,
    similarity: csr_matrix,
    item_based: bool = False,
    boolean_data: bool = False,
    users: Iterable[int] | None = None,
) -> Iterator[tuple[int, Iterator[WeightedContribution]]]:
    """Yield (user_index, lazy contribution stream), one group per user."""
    build = item_based_contributions if item_based else user_based_contributions
    for user in users if users is not None else range(preferences.shape[0]):
        yield user, build(preferences, similarity, user, boolean_data)


def partition_keys(keys: Iterable[int], num_partitions: int) -> list[list[int]]:
    """Split keys into disjoint partitions by key modulo partition count."""
    if num_partitions <= 0:
        raise ConfigurationError(f"num_partitions must be positive, got {num_partitions}")
    partitions: list[list[int]] = [[] for _ in range(num_partitions)]
    for key in keys:
        partitions[key % num_partitions].append(key)
    return partitions


def recommend(
    preferences: csr_matrix,
    similarity: csr_matrix,
    cfg: RecommenderConfig | None = None,
    item_based: bool = False,
    user_index_map: IndexIDMap | None = None,
    num_partitions: int = 1,
    show_progress: bool | None = None,
) -> dict[int, list[RecommendedItem]]:
    """
    Run aggregation and top-K selection for every user.

    Users are split into ``num_partitions`` partitions that are processed
    one after another, each with its own aggregator. Users without any
    qualifying item are absent from the result. Keys are original user IDs
    when ``user_index_map`` is given, else user indices.
    """
    cfg = cfg or RecommenderConfig()
    show_progress = config.SHOW_PROGRESS if show_progress is None else show_progress
    selector = TopKSelector.from_config(cfg)

    partial_vectors: dict[int, list[SparseVector]] = defaultdict(list)
    partitions = partition_keys(range(preferences.shape[0]), num_partitions)
    for partition_id, users in enumerate(partitions):
        aggregator = PreferenceAggregator(boolean_data=cfg.boolean_data)
        grouped = group_contributions(
            preferences, similarity, item_based=item_based, boolean_data=cfg.boolean_data, users=users
        )
        for user, vector in aggregator.aggregate_all(
            tqdm(grouped, total=len(users), desc=f"Partition {partition_id}", disable=not show_progress)
        ):
            partial_vectors[user].append(vector)

    results: dict[int, list[RecommendedItem]] = {}
    for user, partials in partial_vectors.items():
        items = selector.select_merged(user, partials)
        if items is None:
            continue
        user_id = user_index_map.id_for(user) if user_index_map else user
        results[user_id] = items

    logger.info(f"Produced recommendations for {len(results)} of {preferences.shape[0]} users")
    return results


def collect_row_statistics(
    rows: Iterable[tuple[int, SparseVector]],
    measure,
    cfg: RecommenderConfig | None = None,
) -> tuple[list[Record], list[Record]]:
    """
    Run one row statistics pass with ``cfg.threshold``.

    Returns the transposed column records and the three statistics records.
    Rows with non-finite values are logged and skipped; the statistics are
    flushed after the last row either way.
    """
    cfg = cfg or RecommenderConfig()
    collector = RowStatisticsCollector(measure, threshold=cfg.threshold)
    collector.initialize()

    column_records: list[Record] = []
    skipped = 0
    for row_index, row in rows:
        try:
            column_records.extend(collector.process(row_index, row))
        except MalformedInputError as exc:
            skipped += 1
            logger.warning(f"Skipping row {row_index}: {exc}")

    stats_records = collector.flush()
    logger.debug(f"Row statistics pass: {collector.rows_processed} rows, {skipped} skipped")
    return column_records, stats_records


def rows_of(matrix: csr_matrix) -> Iterator[tuple[int, SparseVector]]:
    for index in range(matrix.shape[0]):
        yield index, SparseVector.from_scipy(matrix, index)


def combine_by_key(records: Iterable[Record]) -> dict[int, SparseVector]:
    """Sum record vectors sharing a key (the reduce side of the transpose)."""
    combined: dict[int, SparseVector] = {}
    for key, vector in records:
        combined[key] = combined[key].plus(vector) if key in combined else vector.copy()
    return combined
