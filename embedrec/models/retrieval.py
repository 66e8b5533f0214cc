"""Two-tower retrieval model trained with in-batch negatives."""

from __future__ import annotations

import torch
import torch.nn.functional as F

from ..indexing import DenseInteractions
from .base import LatentFactorModel, ModelKind, make_loader
from .store import EmbeddingStore


def in_batch_softmax_loss(user_embs: torch.Tensor, item_embs: torch.Tensor) -> torch.Tensor:
    """Softmax cross-entropy over S = U' I'^T with the diagonal as the positive.

    Every other item in the batch is a negative for the row's user, so batch
    size and composition shape the negative distribution. Repeated items are
    not de-duplicated: an item can be one row's positive and another row's
    negative in the same batch.
    """
    logits = user_embs @ item_embs.T
    labels = torch.arange(logits.shape[0], device=logits.device)
    return F.cross_entropy(logits, labels)


class RetrievalModel(LatentFactorModel):
    """Plain dot-product scorer, no biases and no explicit regularization."""

    kind = ModelKind.RETRIEVAL
    metric_name = "loss"

    def __init__(self, n_users: int, n_items: int, *, embed_dim: int = 32) -> None:
        super().__init__(EmbeddingStore(n_users, n_items, embed_dim=embed_dim, with_biases=False))

    def forward(self, user_idx: torch.Tensor, item_idx: torch.Tensor) -> torch.Tensor:
        return (self.store.users(user_idx) * self.store.items(item_idx)).sum(dim=1)

    def batch_loss(self, user_idx: torch.Tensor, item_idx: torch.Tensor, ratings: torch.Tensor) -> torch.Tensor:
        # Ratings are ignored: every record is an implicit positive.
        return in_batch_softmax_loss(self.store.users(user_idx), self.store.items(item_idx))

    @torch.no_grad()
    def evaluate(self, data: DenseInteractions, *, batch_size: int) -> float:
        """Mean in-batch loss over consecutive batches of `data`, weighted by batch size."""
        if len(data) == 0:
            return float("nan")
        total = 0.0
        for users, items, ratings in make_loader(data, batch_size):
            total += float(self.batch_loss(users, items, ratings)) * len(users)
        return total / len(data)
