from __future__ import annotations

from dataclasses import dataclass
from typing import AbstractSet, Optional

import numpy as np

from .errors import ModelNotTrained
from .models.base import LatentFactorModel


@dataclass(frozen=True)
class ScoredItem:
    item_idx: int
    score: float


class Ranker:
    """Top-N item ranking for one user over a trained model."""

    def __init__(self, model: LatentFactorModel) -> None:
        self.model = model

    def recommend(
        self,
        user_idx: int,
        top_n: int,
        rated: Optional[AbstractSet[int]] = None,
    ) -> list[ScoredItem]:
        """Score every item, drop `rated`, return the best `top_n`.

        Ordering is by score descending, then item index ascending, so repeated
        calls with the same inputs return the same list. Fewer than `top_n`
        results come back when fewer unrated items exist.
        """
        if isinstance(top_n, bool) or int(top_n) != top_n or int(top_n) <= 0:
            raise ValueError(f"top_n must be a positive integer, got {top_n!r}")
        if not self.model.is_trained:
            raise ModelNotTrained("Train the model for at least one epoch before ranking.")

        scores = self.model.score_all(user_idx)
        candidates = np.arange(scores.shape[0], dtype=np.int64)
        if rated:
            keep = ~np.isin(candidates, np.fromiter(rated, dtype=np.int64, count=len(rated)))
            candidates = candidates[keep]
        cand_scores = scores[candidates]

        # lexsort: last key is primary.
        order = np.lexsort((candidates, -cand_scores))[: int(top_n)]
        return [ScoredItem(item_idx=int(candidates[j]), score=float(cand_scores[j])) for j in order]
