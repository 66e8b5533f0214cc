"""Exception taxonomy shared by the indexer, models, trainer and ranker."""

from __future__ import annotations

from typing import Any


class RecommenderError(Exception):
    """Base class for all recommender errors."""


class UnknownIdentifier(RecommenderError, KeyError):
    """An external user/item id (or dense index) is not part of the index map."""

    def __init__(self, kind: str, identifier: Any) -> None:
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"Unknown {kind} id: {identifier!r}")

    def __str__(self) -> str:
        # KeyError quotes its message otherwise.
        return str(self.args[0])


class ModelNotTrained(RecommenderError, RuntimeError):
    """Inference was requested before any training epoch completed."""


class InvalidConfiguration(RecommenderError, ValueError):
    """Training configuration rejected before training starts."""


class NumericInstability(RecommenderError, ArithmeticError):
    """Training loss became NaN or infinite."""

    def __init__(self, loss: float, *, epoch: int, batch: int) -> None:
        self.loss = loss
        self.epoch = epoch
        self.batch = batch
        super().__init__(f"Non-finite loss {loss!r} at epoch={epoch} batch={batch}")
