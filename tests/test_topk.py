import logging
import math

import pytest

from cfrank.errors import ConfigurationError, IndexLookupError
from cfrank.index_map import IndexIDMap
from cfrank.job_config import RecommenderConfig
from cfrank.topk import (
    BoundedTopKQueue,
    RecommendedItem,
    TopKSelector,
    by_score,
    load_item_allowlist,
)
from cfrank.vectors import SparseVector

SCORES = SparseVector({0: 2.5, 1: 4.0, 2: 1.0, 3: 3.5, 4: 5.0, 5: 0.5})


def test_queue_never_exceeds_capacity():
    queue = BoundedTopKQueue(3, key=by_score)
    for i, score in enumerate([1.0, 5.0, 2.0, 4.0, 3.0, 0.5]):
        queue.add(RecommendedItem(i, score))
        assert len(queue) <= 3

    assert [item.score for item in queue.drain_descending()] == [5.0, 4.0, 3.0]
    assert len(queue) == 0


def test_queue_admits_only_strictly_greater_when_full():
    queue = BoundedTopKQueue(2, key=by_score)
    queue.add(RecommendedItem(1, 2.0))
    queue.add(RecommendedItem(2, 3.0))

    assert queue.add(RecommendedItem(3, 2.0)) is False
    assert queue.peek() == RecommendedItem(1, 2.0)
    assert queue.add(RecommendedItem(4, 2.5)) is True
    assert queue.pop() == RecommendedItem(4, 2.5)


def test_queue_rejects_zero_capacity():
    with pytest.raises(ConfigurationError):
        BoundedTopKQueue(0, key=by_score)


def test_select_returns_descending_top_k():
    items = TopKSelector(3).select(1, SCORES)

    assert [(i.item_id, i.score) for i in items] == [(4, 5.0), (1, 4.0), (3, 3.5)]


def test_select_returns_fewer_than_k_when_vector_is_small():
    items = TopKSelector(10).select(1, SCORES)

    assert len(items) == 6
    scores = [i.score for i in items]
    assert scores == sorted(scores, reverse=True)


@pytest.mark.parametrize("k", [2, 3, 4, 5, 6])
def test_truncation_with_smaller_k_drops_only_the_last_item(k):
    longer = TopKSelector(k).select(1, SCORES)
    shorter = TopKSelector(k - 1).select(1, SCORES)

    assert shorter == longer[:-1]


def test_nan_scores_are_skipped():
    items = TopKSelector(5).select(1, SparseVector({0: math.nan, 1: 1.0}))

    assert items == [RecommendedItem(1, 1.0)]


def test_empty_vector_produces_no_record():
    assert TopKSelector(5).select(1, SparseVector()) is None
    assert TopKSelector(5).select(1, SparseVector({0: math.nan})) is None


def test_zero_k_is_a_configuration_error():
    with pytest.raises(ConfigurationError):
        TopKSelector(0)


def test_allow_list_filters_item_ids():
    selector = TopKSelector(5, items_to_recommend_for={0, 2, 99})

    items = selector.select(1, SCORES)

    assert [i.item_id for i in items] == [0, 2]


def test_empty_allow_list_means_no_filtering():
    assert len(TopKSelector(10, items_to_recommend_for=set()).select(1, SCORES)) == 6


def test_index_map_translates_indices_before_filtering():
    index_map = IndexIDMap({0: 100, 1: 101, 2: 102})
    selector = TopKSelector(5, items_to_recommend_for={100, 102}, item_index_map=index_map)

    items = selector.select(1, SparseVector({0: 1.0, 1: 9.0, 2: 2.0}))

    assert items == [RecommendedItem(102, 2.0), RecommendedItem(100, 1.0)]


def test_empty_index_map_uses_raw_indices():
    items = TopKSelector(1, item_index_map=IndexIDMap()).select(1, SparseVector({42: 1.0}))

    assert items == [RecommendedItem(42, 1.0)]


def test_partial_index_map_fails_closed():
    selector = TopKSelector(5, item_index_map=IndexIDMap({0: 100}))

    with pytest.raises(IndexLookupError) as exc:
        selector.select(1, SparseVector({0: 1.0, 7: 2.0}))

    assert exc.value.index == 7


def test_nan_score_at_unmapped_index_is_skipped_before_lookup():
    selector = TopKSelector(5, item_index_map=IndexIDMap({0: 100}))

    items = selector.select(1, SparseVector({0: 1.0, 7: math.nan}))

    assert items == [RecommendedItem(100, 1.0)]


def test_partial_index_map_can_fall_back_to_raw_index(caplog):
    selector = TopKSelector(5, item_index_map=IndexIDMap({0: 100}), strict_index_lookup=False)

    with caplog.at_level(logging.WARNING):
        items = selector.select(1, SparseVector({0: 1.0, 7: 2.0}))

    assert items == [RecommendedItem(7, 2.0), RecommendedItem(100, 1.0)]
    assert "Index 7 missing" in caplog.text


def test_select_merged_combines_partial_vectors():
    selector = TopKSelector(3)

    items = selector.select_merged(1, [SparseVector({0: 1.0, 1: 2.0}), SparseVector({1: 4.0, 2: 3.0})])

    assert [(i.item_id, i.score) for i in items] == [(1, 4.0), (2, 3.0), (0, 1.0)]


def test_from_config_carries_settings():
    cfg = RecommenderConfig(
        num_recommendations=2,
        items_to_recommend_for=[5],
        item_index_map=IndexIDMap({0: 5}),
        strict_index_lookup=False,
    )

    selector = TopKSelector.from_config(cfg)

    assert selector.num_recommendations == 2
    assert selector.items_to_recommend_for == frozenset({5})
    assert selector.strict_index_lookup is False


def test_load_item_allowlist_ignores_bad_lines(tmp_path, caplog):
    path = tmp_path / "items.txt"
    path.write_text("1\n\n 22 \nnot-an-id\n3\n")

    with caplog.at_level(logging.WARNING):
        items = load_item_allowlist(path)

    assert items == frozenset({1, 22, 3})
    assert "not-an-id" in caplog.text
