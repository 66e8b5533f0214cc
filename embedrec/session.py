"""Single-user in-process session: data, index map, model and trainer in one place."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from .data import InteractionRecord, ItemRecord, MovieLensData
from .errors import ModelNotTrained
from .indexing import (
    DenseInteractions,
    IndexMap,
    attach_titles,
    build_index,
    build_rated_sets,
    qualified_users,
    to_dense,
    user_history,
)
from .models import LatentFactorModel, ModelKind, PredictionBreakdown, build_model
from .projection import ProjectedPoint, project_item_embeddings
from .ranking import Ranker
from .train import BatchEvent, EpochReport, TrainConfig, Trainer, TrainerState, TrainingResult
from .utils import ReproducibilityConfig, set_global_seed


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Recommendation:
    item_idx: int
    item_id: int
    title: str
    score: float
    # Display rating in [rating_min, rating_max]; None for the retrieval model.
    clamped: Optional[float] = None


class RecommenderSession:
    """Owns the `IndexMap`, dense data, rated sets, model and trainer.

    Loading new data replaces everything wholesale, including any trained model.
    At most one trainer drives the model at a time; callers serialize sessions.
    """

    def __init__(self, *, rating_min: float = 1.0, rating_max: float = 5.0) -> None:
        self.rating_min = float(rating_min)
        self.rating_max = float(rating_max)
        self._reset()

    def _reset(self) -> None:
        self.interactions: tuple[InteractionRecord, ...] = ()
        self.items: tuple[ItemRecord, ...] = ()
        self.index_map: Optional[IndexMap] = None
        self.dense: Optional[DenseInteractions] = None
        self.rated: dict[int, frozenset[int]] = {}
        self.titles: list[str] = []
        self.model: Optional[LatentFactorModel] = None
        self.trainer: Optional[Trainer] = None

    @classmethod
    def from_data(cls, data: MovieLensData, **kwargs: float) -> "RecommenderSession":
        session = cls(**kwargs)
        session.load(data.interactions, data.items)
        return session

    # ----- data -----

    def load(self, interactions: Sequence[InteractionRecord], items: Sequence[ItemRecord] = ()) -> None:
        if not interactions:
            raise ValueError("cannot load an empty interaction set")
        self._reset()
        self.interactions = tuple(interactions)
        self.items = tuple(items)
        self.index_map = build_index(self.interactions)
        self.dense = to_dense(self.interactions, self.index_map)
        self.rated = build_rated_sets(self.dense)
        self.titles = attach_titles(self.items, self.index_map)
        logger.info(
            "Session loaded: users=%d items=%d ratings=%d",
            self.index_map.n_users,
            self.index_map.n_items,
            len(self.dense),
        )

    def _require_data(self) -> tuple[IndexMap, DenseInteractions]:
        if self.index_map is None or self.dense is None:
            raise RuntimeError("No data loaded; call load() first")
        return self.index_map, self.dense

    def _require_trained(self) -> LatentFactorModel:
        if self.model is None or not self.model.is_trained:
            raise ModelNotTrained("Train the model for at least one epoch first.")
        return self.model

    # ----- training -----

    def train(
        self,
        config: TrainConfig,
        *,
        kind: ModelKind | str = ModelKind.RATING,
        on_epoch: Optional[Callable[[EpochReport], None]] = None,
        on_batch_end: Optional[Callable[[BatchEvent], None]] = None,
    ) -> TrainingResult:
        """Train a fresh model of `kind` on the loaded interactions."""
        index_map, dense = self._require_data()
        config.validate()
        if self.trainer is not None and self.trainer.state in (TrainerState.INITIALIZING, TrainerState.RUNNING):
            raise RuntimeError("A training run is already in progress for this session")

        if config.seed is not None:
            # Weight init draws from the global torch RNG.
            set_global_seed(ReproducibilityConfig(seed=int(config.seed)))

        self.model = build_model(
            kind,
            index_map.n_users,
            index_map.n_items,
            embed_dim=int(config.embed_dim),
            reg=float(config.reg),
        )
        self.trainer = Trainer(self.model, config, on_epoch=on_epoch, on_batch_end=on_batch_end)
        return self.trainer.run(dense)

    def request_stop(self) -> None:
        if self.trainer is not None:
            self.trainer.request_stop()

    # ----- inference -----

    def recommend(self, user_id: int, *, top_n: int = 10) -> list[Recommendation]:
        index_map, _ = self._require_data()
        model = self._require_trained()
        uidx = index_map.user_index(user_id)
        ranked = Ranker(model).recommend(uidx, top_n, self.rated.get(uidx, frozenset()))
        return [
            Recommendation(
                item_idx=r.item_idx,
                item_id=index_map.item_id(r.item_idx),
                title=self.titles[r.item_idx],
                score=r.score,
                clamped=(
                    min(max(r.score, self.rating_min), self.rating_max)
                    if model.kind is ModelKind.RATING
                    else None
                ),
            )
            for r in ranked
        ]

    def predict(self, user_id: int, item_id: int) -> PredictionBreakdown:
        index_map, _ = self._require_data()
        model = self._require_trained()
        return model.breakdown(
            index_map.user_index(user_id),
            index_map.item_index(item_id),
            rating_min=self.rating_min,
            rating_max=self.rating_max,
        )

    def history(self, user_id: int, *, limit: Optional[int] = 10) -> list[InteractionRecord]:
        index_map, _ = self._require_data()
        index_map.user_index(user_id)
        return user_history(self.interactions, user_id, limit=limit)

    def qualified_users(self, *, min_ratings: int = 20) -> list[int]:
        return qualified_users(self.interactions, min_ratings=min_ratings)

    def project_items(self, *, max_points: Optional[int] = None, n_iter: int = 10) -> list[ProjectedPoint]:
        return project_item_embeddings(self._require_trained(), max_points=max_points, n_iter=n_iter)
