"""Latent-factor recommendation engine.

Learns user/item embeddings from (user, item, rating) interactions with either
an explicit-rating matrix factorization or an implicit two-tower retrieval
model, ranks unseen items per user, and projects item embeddings to 2D.
"""

from .errors import (
    InvalidConfiguration,
    ModelNotTrained,
    NumericInstability,
    RecommenderError,
    UnknownIdentifier,
)
from .session import RecommenderSession
from .train import TrainConfig, Trainer, TrainerState

__all__ = [
    "InvalidConfiguration",
    "ModelNotTrained",
    "NumericInstability",
    "RecommenderError",
    "RecommenderSession",
    "TrainConfig",
    "Trainer",
    "TrainerState",
    "UnknownIdentifier",
]
