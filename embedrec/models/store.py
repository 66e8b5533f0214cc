from __future__ import annotations

import torch
import torch.nn as nn


class EmbeddingStore(nn.Module):
    """Learnable user/item tables (plus optional biases) shared by both models.

    User and item vectors start as N(0, init_std). Biases start at zero; the
    global bias is set from the training mean by the trainer.
    """

    def __init__(
        self,
        n_users: int,
        n_items: int,
        *,
        embed_dim: int = 32,
        with_biases: bool = False,
        init_std: float = 0.05,
    ) -> None:
        super().__init__()
        self.n_users = int(n_users)
        self.n_items = int(n_items)
        self.embed_dim = int(embed_dim)
        self.with_biases = bool(with_biases)

        self.user_vectors = nn.Embedding(self.n_users, self.embed_dim)
        self.item_vectors = nn.Embedding(self.n_items, self.embed_dim)
        nn.init.normal_(self.user_vectors.weight, mean=0.0, std=float(init_std))
        nn.init.normal_(self.item_vectors.weight, mean=0.0, std=float(init_std))

        if self.with_biases:
            self.user_bias = nn.Embedding(self.n_users, 1)
            self.item_bias = nn.Embedding(self.n_items, 1)
            self.global_bias = nn.Parameter(torch.zeros(()))
            nn.init.zeros_(self.user_bias.weight)
            nn.init.zeros_(self.item_bias.weight)

    def users(self, user_idx: torch.Tensor) -> torch.Tensor:
        return self.user_vectors(user_idx)

    def items(self, item_idx: torch.Tensor) -> torch.Tensor:
        return self.item_vectors(item_idx)

    def l2_penalty(self) -> torch.Tensor:
        """sum(U^2) + sum(V^2); biases are not regularized."""
        return self.user_vectors.weight.pow(2).sum() + self.item_vectors.weight.pow(2).sum()

    @torch.no_grad()
    def set_global_bias(self, value: float) -> None:
        if not self.with_biases:
            raise AttributeError("this store has no bias terms")
        self.global_bias.fill_(float(value))

    @torch.no_grad()
    def is_finite(self) -> bool:
        return all(bool(torch.isfinite(p).all()) for p in self.parameters())
