"""Latent-factor models sharing one embedding store.

- `RatingPredictor`: explicit ratings, biased dot product, regularized MSE.
- `RetrievalModel`: implicit two-tower scoring, in-batch softmax loss.
"""
from __future__ import annotations

from .base import LatentFactorModel, ModelKind, PredictionBreakdown
from .rating import RatingPredictor
from .retrieval import RetrievalModel
from .store import EmbeddingStore


def build_model(kind: ModelKind | str, n_users: int, n_items: int, *, embed_dim: int = 32, reg: float = 1e-3) -> LatentFactorModel:
    """Construct the model for `kind` (`"rating"` or `"retrieval"`)."""
    kind = ModelKind(kind)
    if kind is ModelKind.RATING:
        return RatingPredictor(n_users, n_items, embed_dim=embed_dim, reg=reg)
    return RetrievalModel(n_users, n_items, embed_dim=embed_dim)


__all__ = [
    "EmbeddingStore",
    "LatentFactorModel",
    "ModelKind",
    "PredictionBreakdown",
    "RatingPredictor",
    "RetrievalModel",
    "build_model",
]
