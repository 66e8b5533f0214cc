"""Identifier indexing: sparse external user/item ids <-> dense contiguous indices."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Iterable, Mapping, Optional, Sequence

import numpy as np

from .data import InteractionRecord, ItemRecord
from .errors import UnknownIdentifier


@dataclass(frozen=True)
class IndexMap:
    """Bijection between external ids and dense indices in `[0, N)`.

    `idx2user[user2idx[u]] == u` for every mapped user (same for items).
    """

    idx2user: tuple[int, ...]
    idx2item: tuple[int, ...]
    user2idx: Mapping[int, int] = field(repr=False)
    item2idx: Mapping[int, int] = field(repr=False)

    @classmethod
    def from_id_lists(cls, user_ids: Sequence[int], item_ids: Sequence[int]) -> "IndexMap":
        idx2user = tuple(int(u) for u in user_ids)
        idx2item = tuple(int(i) for i in item_ids)
        user2idx = {u: idx for idx, u in enumerate(idx2user)}
        item2idx = {i: idx for idx, i in enumerate(idx2item)}
        if len(user2idx) != len(idx2user) or len(item2idx) != len(idx2item):
            raise ValueError("id lists must not contain duplicates")
        return cls(idx2user=idx2user, idx2item=idx2item, user2idx=user2idx, item2idx=item2idx)

    @property
    def n_users(self) -> int:
        return len(self.idx2user)

    @property
    def n_items(self) -> int:
        return len(self.idx2item)

    def user_index(self, user_id: int) -> int:
        try:
            return self.user2idx[int(user_id)]
        except KeyError:
            raise UnknownIdentifier("user", user_id) from None

    def item_index(self, item_id: int) -> int:
        try:
            return self.item2idx[int(item_id)]
        except KeyError:
            raise UnknownIdentifier("item", item_id) from None

    def user_id(self, user_idx: int) -> int:
        if not 0 <= int(user_idx) < self.n_users:
            raise UnknownIdentifier("user index", user_idx)
        return self.idx2user[int(user_idx)]

    def item_id(self, item_idx: int) -> int:
        if not 0 <= int(item_idx) < self.n_items:
            raise UnknownIdentifier("item index", item_idx)
        return self.idx2item[int(item_idx)]


@dataclass(frozen=True)
class DenseInteractions:
    """Row-aligned dense arrays for a record set."""

    user_idx: np.ndarray
    item_idx: np.ndarray
    rating: np.ndarray

    def __len__(self) -> int:
        return int(self.rating.shape[0])

    def subset(self, rows: np.ndarray) -> "DenseInteractions":
        return DenseInteractions(
            user_idx=self.user_idx[rows],
            item_idx=self.item_idx[rows],
            rating=self.rating[rows],
        )


def build_index(records: Iterable[InteractionRecord]) -> IndexMap:
    """Assign dense indices to users and items in order of first encounter."""
    users: dict[int, None] = {}
    items: dict[int, None] = {}
    for r in records:
        users.setdefault(int(r.user_id), None)
        items.setdefault(int(r.item_id), None)
    return IndexMap.from_id_lists(list(users), list(items))


def to_dense(records: Sequence[InteractionRecord], index_map: IndexMap) -> DenseInteractions:
    """Map records onto dense index arrays.

    Raises `UnknownIdentifier` if a record references an id outside `index_map`;
    build the map from the same records being converted.
    """
    n = len(records)
    user_idx = np.empty(n, dtype=np.int64)
    item_idx = np.empty(n, dtype=np.int64)
    rating = np.empty(n, dtype=np.float32)
    for row, r in enumerate(records):
        user_idx[row] = index_map.user_index(r.user_id)
        item_idx[row] = index_map.item_index(r.item_id)
        rating[row] = r.rating
    return DenseInteractions(user_idx=user_idx, item_idx=item_idx, rating=rating)


def build_rated_sets(dense: DenseInteractions) -> dict[int, frozenset[int]]:
    """Per-user set of already-interacted item indices."""
    rated: dict[int, set[int]] = defaultdict(set)
    for u, i in zip(dense.user_idx.tolist(), dense.item_idx.tolist()):
        rated[int(u)].add(int(i))
    return {u: frozenset(items) for u, items in rated.items()}


def user_history(
    records: Iterable[InteractionRecord],
    user_id: int,
    *,
    limit: Optional[int] = None,
) -> list[InteractionRecord]:
    """A user's records, highest rating first, newest first among ties."""
    uid = int(user_id)
    own = [r for r in records if r.user_id == uid]
    own.sort(key=lambda r: (-r.rating, -r.timestamp))
    return own if limit is None else own[: int(limit)]


def qualified_users(records: Iterable[InteractionRecord], *, min_ratings: int = 20) -> list[int]:
    """User ids with at least `min_ratings` interactions, in first-encounter order."""
    counts: dict[int, int] = {}
    for r in records:
        counts[r.user_id] = counts.get(r.user_id, 0) + 1
    return [u for u, c in counts.items() if c >= int(min_ratings)]


def attach_titles(items: Iterable[ItemRecord], index_map: IndexMap) -> list[str]:
    """Item titles aligned with dense item indices."""
    by_id = {it.item_id: it.title for it in items}
    return [by_id.get(item_id, f"Item {item_id}") for item_id in index_map.idx2item]
