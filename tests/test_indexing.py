from __future__ import annotations

import numpy as np
import pytest

from embedrec.data import InteractionRecord, ItemRecord
from embedrec.errors import UnknownIdentifier
from embedrec.indexing import (
    attach_titles,
    build_index,
    build_rated_sets,
    qualified_users,
    to_dense,
    user_history,
)


def _records(rows):
    return [InteractionRecord(user_id=u, item_id=i, rating=r, timestamp=t) for u, i, r, t in rows]


def test_index_round_trips_and_is_contiguous() -> None:
    records = _records([(196, 242, 3, 1), (186, 302, 3, 2), (22, 377, 1, 3), (196, 377, 4, 4), (244, 51, 2, 5)])
    index_map = build_index(records)

    user_ids = {r.user_id for r in records}
    item_ids = {r.item_id for r in records}
    assert sorted(index_map.user2idx.values()) == list(range(len(user_ids)))
    assert sorted(index_map.item2idx.values()) == list(range(len(item_ids)))
    for uid in user_ids:
        assert index_map.user_id(index_map.user_index(uid)) == uid
    for iid in item_ids:
        assert index_map.item_id(index_map.item_index(iid)) == iid


def test_index_assigns_in_first_encounter_order() -> None:
    records = _records([(9, 100, 5, 0), (3, 50, 4, 0), (9, 50, 1, 0), (1, 7, 2, 0)])
    index_map = build_index(records)

    assert index_map.idx2user == (9, 3, 1)
    assert index_map.idx2item == (100, 50, 7)


def test_to_dense_aligns_rows(scenario_records) -> None:
    index_map = build_index(scenario_records)
    dense = to_dense(scenario_records, index_map)

    assert len(dense) == len(scenario_records)
    assert dense.user_idx.dtype == np.int64
    assert dense.rating.dtype == np.float32
    for row, r in enumerate(scenario_records):
        assert index_map.user_id(int(dense.user_idx[row])) == r.user_id
        assert index_map.item_id(int(dense.item_idx[row])) == r.item_id
        assert float(dense.rating[row]) == pytest.approx(r.rating)


def test_to_dense_rejects_ids_outside_map(scenario_records) -> None:
    index_map = build_index(scenario_records)
    stranger = InteractionRecord(user_id=0, item_id=999, rating=3.0)

    with pytest.raises(UnknownIdentifier) as excinfo:
        to_dense([*scenario_records, stranger], index_map)
    assert excinfo.value.kind == "item"
    assert excinfo.value.identifier == 999
    # Still a KeyError for callers that only know the builtin.
    assert isinstance(excinfo.value, KeyError)


def test_dense_index_lookup_out_of_range(scenario_records) -> None:
    index_map = build_index(scenario_records)
    with pytest.raises(UnknownIdentifier):
        index_map.user_id(index_map.n_users)
    with pytest.raises(UnknownIdentifier):
        index_map.item_id(-1)


def test_rated_sets(scenario_dense) -> None:
    rated = build_rated_sets(scenario_dense)
    assert rated == {0: frozenset({0, 1}), 1: frozenset({1, 2}), 2: frozenset({0, 2})}


def test_user_history_orders_by_rating_then_recency() -> None:
    records = _records([(1, 10, 4, 100), (1, 11, 5, 50), (1, 12, 4, 300), (2, 10, 5, 1), (1, 13, 1, 999)])

    history = user_history(records, 1)
    assert [r.item_id for r in history] == [11, 12, 10, 13]
    assert [r.item_id for r in user_history(records, 1, limit=2)] == [11, 12]


def test_qualified_users_threshold() -> None:
    records = _records([(1, i, 3, 0) for i in range(20)] + [(2, i, 3, 0) for i in range(19)] + [(3, 0, 1, 0)])
    assert qualified_users(records, min_ratings=20) == [1]
    assert qualified_users(records, min_ratings=1) == [1, 2, 3]


def test_attach_titles_falls_back_for_missing_catalog_rows(scenario_records) -> None:
    index_map = build_index(scenario_records)
    titles = attach_titles([ItemRecord(item_id=1, title="GoldenEye", year=1995)], index_map)

    assert titles[index_map.item_index(1)] == "GoldenEye"
    assert titles[index_map.item_index(0)] == "Item 0"
