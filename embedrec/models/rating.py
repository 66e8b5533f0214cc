"""Explicit-rating matrix factorization: dot(p_u, q_i) + b_u + b_i + mu."""

from __future__ import annotations

import math

import torch
import torch.nn.functional as F

from ..indexing import DenseInteractions
from .base import LatentFactorModel, ModelKind, make_loader
from .store import EmbeddingStore


class RatingPredictor(LatentFactorModel):
    """Biased MF trained on MSE + reg * (sum(U^2) + sum(V^2)).

    Predictions are not clamped; the loss sees the raw value.
    """

    kind = ModelKind.RATING
    metric_name = "rmse"

    def __init__(self, n_users: int, n_items: int, *, embed_dim: int = 32, reg: float = 1e-3) -> None:
        super().__init__(EmbeddingStore(n_users, n_items, embed_dim=embed_dim, with_biases=True))
        self.reg = float(reg)

    def forward(self, user_idx: torch.Tensor, item_idx: torch.Tensor) -> torch.Tensor:
        s = self.store
        dot = (s.users(user_idx) * s.items(item_idx)).sum(dim=1)
        return dot + s.user_bias(user_idx).squeeze(-1) + s.item_bias(item_idx).squeeze(-1) + s.global_bias

    def score_offsets(self, user_idx: int) -> torch.Tensor:
        s = self.store
        return s.item_bias.weight.squeeze(-1) + s.user_bias.weight[user_idx, 0] + s.global_bias

    def batch_loss(self, user_idx: torch.Tensor, item_idx: torch.Tensor, ratings: torch.Tensor) -> torch.Tensor:
        preds = self(user_idx, item_idx)
        mse = F.mse_loss(preds, ratings)
        return mse + self.reg * self.store.l2_penalty()

    def prepare(self, train: DenseInteractions) -> None:
        mean_rating = float(train.rating.mean()) if len(train) else 0.0
        self.store.set_global_bias(mean_rating)

    @torch.no_grad()
    def rmse(self, data: DenseInteractions, *, batch_size: int = 4096) -> float:
        """sqrt(mean((pred - actual)^2)) over a full pass, without the reg term."""
        if len(data) == 0:
            return float("nan")
        total = 0.0
        for users, items, ratings in make_loader(data, batch_size):
            total += float(((self(users, items) - ratings) ** 2).sum())
        return math.sqrt(total / len(data))

    def evaluate(self, data: DenseInteractions, *, batch_size: int) -> float:
        return self.rmse(data, batch_size=max(int(batch_size), 1))
