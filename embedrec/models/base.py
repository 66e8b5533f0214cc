from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import ClassVar

import numpy as np
import torch
import torch.nn as nn
from torch.utils.data import DataLoader, TensorDataset

from ..errors import UnknownIdentifier
from ..indexing import DenseInteractions
from .store import EmbeddingStore


class ModelKind(str, enum.Enum):
    RATING = "rating"
    RETRIEVAL = "retrieval"


@dataclass(frozen=True)
class PredictionBreakdown:
    """Additive decomposition of a single prediction.

    `raw = dot + user_bias + item_bias + global_bias`; `clamped` is for display only.
    """

    dot: float
    user_bias: float
    item_bias: float
    global_bias: float
    raw: float
    clamped: float


class LatentFactorModel(nn.Module):
    """Common scoring surface: `score(u, i)` over a shared `EmbeddingStore`.

    Subclasses define the scoring formula, the per-batch training loss and the
    per-epoch evaluation metric.
    """

    kind: ClassVar[ModelKind]
    metric_name: ClassVar[str]

    def __init__(self, store: EmbeddingStore) -> None:
        super().__init__()
        self.store = store
        # Completed training epochs; inference requires at least one.
        self.epochs_trained = 0

    @property
    def n_users(self) -> int:
        return self.store.n_users

    @property
    def n_items(self) -> int:
        return self.store.n_items

    @property
    def is_trained(self) -> bool:
        return self.epochs_trained > 0

    def _check_user(self, user_idx: int) -> int:
        if not 0 <= int(user_idx) < self.n_users:
            raise UnknownIdentifier("user index", user_idx)
        return int(user_idx)

    def _check_item(self, item_idx: int) -> int:
        if not 0 <= int(item_idx) < self.n_items:
            raise UnknownIdentifier("item index", item_idx)
        return int(item_idx)

    def forward(self, user_idx: torch.Tensor, item_idx: torch.Tensor) -> torch.Tensor:  # pragma: no cover
        raise NotImplementedError

    def score_offsets(self, user_idx: int) -> torch.Tensor | float:
        """Additive term on top of the dot products when scoring one user against all items."""
        return 0.0

    def batch_loss(
        self,
        user_idx: torch.Tensor,
        item_idx: torch.Tensor,
        ratings: torch.Tensor,
    ) -> torch.Tensor:  # pragma: no cover
        raise NotImplementedError

    def evaluate(self, data: DenseInteractions, *, batch_size: int) -> float:  # pragma: no cover
        raise NotImplementedError

    def prepare(self, train: DenseInteractions) -> None:
        """Hook run once before the first epoch of a training run."""

    @torch.no_grad()
    def score(self, user_idx: int, item_idx: int) -> float:
        u = torch.tensor([self._check_user(user_idx)], dtype=torch.long)
        i = torch.tensor([self._check_item(item_idx)], dtype=torch.long)
        return float(self(u, i)[0])

    @torch.no_grad()
    def score_all(self, user_idx: int) -> np.ndarray:
        """Scores of one user against every item, in item-index order."""
        uidx = self._check_user(user_idx)
        u = self.store.user_vectors.weight[uidx]
        scores = self.store.item_vectors.weight @ u + self.score_offsets(uidx)
        return scores.detach().cpu().numpy().astype(np.float64)

    @torch.no_grad()
    def breakdown(
        self,
        user_idx: int,
        item_idx: int,
        *,
        rating_min: float = 1.0,
        rating_max: float = 5.0,
    ) -> PredictionBreakdown:
        u = self._check_user(user_idx)
        i = self._check_item(item_idx)
        dot = float(self.store.user_vectors.weight[u] @ self.store.item_vectors.weight[i])
        ub = ib = gb = 0.0
        if self.store.with_biases:
            ub = float(self.store.user_bias.weight[u, 0])
            ib = float(self.store.item_bias.weight[i, 0])
            gb = float(self.store.global_bias)
        raw = dot + ub + ib + gb
        clamped = min(max(raw, float(rating_min)), float(rating_max))
        return PredictionBreakdown(dot=dot, user_bias=ub, item_bias=ib, global_bias=gb, raw=raw, clamped=clamped)

    def user_vector(self, user_idx: int) -> np.ndarray:
        return self.store.user_vectors.weight[self._check_user(user_idx)].detach().cpu().numpy().copy()

    def item_vector(self, item_idx: int) -> np.ndarray:
        return self.store.item_vectors.weight[self._check_item(item_idx)].detach().cpu().numpy().copy()

    def item_matrix(self) -> np.ndarray:
        return self.store.item_vectors.weight.detach().cpu().numpy().copy()


def ratings_dataset(data: DenseInteractions) -> TensorDataset:
    """`(users, items, ratings)` rows as a torch dataset."""
    return TensorDataset(
        torch.as_tensor(data.user_idx, dtype=torch.long),
        torch.as_tensor(data.item_idx, dtype=torch.long),
        torch.as_tensor(data.rating, dtype=torch.float32),
    )


def make_loader(
    data: DenseInteractions,
    batch_size: int,
    *,
    shuffle: bool = False,
    generator: torch.Generator | None = None,
) -> DataLoader:
    """Fixed-size batches over `data`; the last one may be smaller."""
    return DataLoader(
        ratings_dataset(data),
        batch_size=int(batch_size),
        shuffle=shuffle,
        generator=generator,
        num_workers=0,
    )
