from __future__ import annotations

import enum
import logging
import math
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field, fields
from typing import Any, Callable, Iterator, Mapping, Optional

import numpy as np
import torch
from sklearn.utils import shuffle as sk_shuffle

from .errors import InvalidConfiguration, NumericInstability
from .indexing import DenseInteractions
from .models.base import LatentFactorModel, ModelKind, make_loader
from .utils import ReproducibilityConfig, set_global_seed


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TrainConfig:
    embed_dim: int = 32
    reg: float = 1e-3
    epochs: int = 10
    batch_size: int = 256
    lr: float = 1e-2
    train_fraction: float = 0.8
    seed: Optional[int] = None
    shuffle_each_epoch: bool = True

    def validate(self) -> None:
        """Reject unusable values before any training state is touched."""
        if int(self.embed_dim) <= 0:
            raise InvalidConfiguration(f"embed_dim must be > 0, got {self.embed_dim}")
        if int(self.batch_size) <= 0:
            raise InvalidConfiguration(f"batch_size must be > 0, got {self.batch_size}")
        if int(self.epochs) <= 0:
            raise InvalidConfiguration(f"epochs must be > 0, got {self.epochs}")
        if not float(self.lr) > 0.0:
            raise InvalidConfiguration(f"lr must be > 0, got {self.lr}")
        if not float(self.reg) >= 0.0:
            raise InvalidConfiguration(f"reg must be >= 0, got {self.reg}")
        if not 0.0 < float(self.train_fraction) <= 1.0:
            raise InvalidConfiguration(f"train_fraction must be in (0, 1], got {self.train_fraction}")

    @classmethod
    def from_mapping(cls, raw: Optional[Mapping[str, Any]] = None, **overrides: Any) -> "TrainConfig":
        """Build from the `training:` section of config.yaml; `None` overrides are ignored."""
        known = {f.name for f in fields(cls)}
        values = dict(raw or {})
        values.update({k: v for k, v in overrides.items() if v is not None})
        unknown = sorted(set(values) - known)
        if unknown:
            raise InvalidConfiguration(f"unknown training options: {unknown}")
        cfg = cls(**values)
        cfg.validate()
        return cfg


class TrainerState(str, enum.Enum):
    IDLE = "idle"
    INITIALIZING = "initializing"
    RUNNING = "running"
    COMPLETED = "completed"
    STOPPED = "stopped"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (TrainerState.COMPLETED, TrainerState.STOPPED, TrainerState.FAILED)


@dataclass(frozen=True)
class BatchEvent:
    epoch: int
    batch: int
    n_batches: int
    loss: float


@dataclass(frozen=True)
class EpochReport:
    """Per-epoch progress event.

    For the rating model both metrics are RMSE; for the retrieval model the
    train metric is the epoch's mean batch loss and the validation metric is
    the mean in-batch loss on the held-out split, both weighted by batch size.
    `completed` is False for an epoch cut short by a stop request.
    """

    epoch: int
    metric: str
    train_metric: float
    validation_metric: Optional[float]
    mean_batch_loss: float
    batches: int
    completed: bool = True


@dataclass(frozen=True)
class TrainingSplit:
    train_rows: np.ndarray
    validation_rows: np.ndarray


@dataclass
class TrainingResult:
    state: TrainerState
    history: list[EpochReport] = field(default_factory=list)
    error: Optional[BaseException] = None

    @property
    def epochs_completed(self) -> int:
        return sum(1 for r in self.history if r.completed)


def make_split(n: int, train_fraction: float, *, seed: Optional[int] = None) -> TrainingSplit:
    """Shuffle row indices once and cut them at `floor(train_fraction * n)`."""
    rows = sk_shuffle(np.arange(int(n), dtype=np.int64), random_state=seed)
    n_train = int(math.floor(float(train_fraction) * int(n)))
    if n_train == 0:
        raise InvalidConfiguration(f"train_fraction={train_fraction} leaves no training rows out of {n}")
    return TrainingSplit(train_rows=rows[:n_train], validation_rows=rows[n_train:])


class Trainer:
    """Epoch/batch driver for a single training run over one model.

    States: idle -> initializing -> running -> completed | stopped | failed.
    `request_stop()` is honoured at batch boundaries: the batch in flight
    finishes, no further batches run, and the parameters trained so far are kept.
    """

    def __init__(
        self,
        model: LatentFactorModel,
        config: TrainConfig,
        *,
        on_epoch: Optional[Callable[[EpochReport], None]] = None,
        on_batch_end: Optional[Callable[[BatchEvent], None]] = None,
    ) -> None:
        config.validate()
        self.model = model
        self.config = config
        self.on_epoch = on_epoch
        self.on_batch_end = on_batch_end

        self.state = TrainerState.IDLE
        self.history: list[EpochReport] = []
        self.error: Optional[BaseException] = None
        self.split: Optional[TrainingSplit] = None
        self._stop = threading.Event()

    @property
    def stop_requested(self) -> bool:
        return self._stop.is_set()

    def request_stop(self) -> None:
        self._stop.set()

    def _set_state(self, state: TrainerState) -> None:
        logger.debug("Trainer state %s -> %s", self.state.value, state.value)
        self.state = state

    def run(self, data: DenseInteractions) -> TrainingResult:
        if self.state is not TrainerState.IDLE:
            raise RuntimeError(f"Trainer already used (state={self.state.value}); create a new one")

        try:
            self._set_state(TrainerState.INITIALIZING)
            train, validation, optimizer = self._initialize(data)

            self._set_state(TrainerState.RUNNING)
            stopped = self._run_epochs(train, validation, optimizer)
        except Exception as exc:
            self.error = exc
            self._set_state(TrainerState.FAILED)
            if isinstance(exc, NumericInstability):
                logger.error("Training failed: %s", exc)
            else:
                logger.exception("Training failed")
            raise

        if stopped:
            self._set_state(TrainerState.STOPPED)
            logger.warning("Training stopped after %d completed epoch(s)", self.model.epochs_trained)
        else:
            self._set_state(TrainerState.COMPLETED)
            logger.info("Training completed: epochs=%d", self.model.epochs_trained)
        return TrainingResult(state=self.state, history=list(self.history))

    def _initialize(
        self, data: DenseInteractions
    ) -> tuple[DenseInteractions, DenseInteractions, torch.optim.Optimizer]:
        cfg = self.config
        if cfg.seed is not None:
            set_global_seed(ReproducibilityConfig(seed=int(cfg.seed)))

        self.split = make_split(len(data), cfg.train_fraction, seed=cfg.seed)
        train = data.subset(self.split.train_rows)
        validation = data.subset(self.split.validation_rows)

        self.model.prepare(train)
        self.model.train()
        optimizer = torch.optim.Adam(self.model.parameters(), lr=float(cfg.lr))

        logger.info(
            "Training %s model: train=%d validation=%d epochs=%d batch_size=%d embed_dim=%d",
            self.model.kind.value,
            len(train),
            len(validation),
            int(cfg.epochs),
            int(cfg.batch_size),
            self.model.store.embed_dim,
        )
        return train, validation, optimizer

    @contextmanager
    def _batch_scope(self, optimizer: torch.optim.Optimizer) -> Iterator[None]:
        """Clears gradients when the batch ends, even if the step raised."""
        try:
            yield
        finally:
            optimizer.zero_grad(set_to_none=True)

    def _run_epochs(
        self,
        train: DenseInteractions,
        validation: DenseInteractions,
        optimizer: torch.optim.Optimizer,
    ) -> bool:
        """Returns True if a stop request ended the run."""
        cfg = self.config
        generator = None
        if cfg.seed is not None:
            generator = torch.Generator().manual_seed(int(cfg.seed))
        loader = make_loader(train, cfg.batch_size, shuffle=cfg.shuffle_each_epoch, generator=generator)
        n_batches = len(loader)

        for epoch in range(1, int(cfg.epochs) + 1):
            if self.stop_requested:
                return True

            loss_sum = 0.0
            rows_run = 0
            batches_run = 0
            for batch, (users, items, ratings) in enumerate(loader):
                if self.stop_requested:
                    break
                size = int(users.shape[0])
                with self._batch_scope(optimizer):
                    loss = self.model.batch_loss(users, items, ratings)
                    loss_value = float(loss.detach())
                    if not math.isfinite(loss_value):
                        raise NumericInstability(loss_value, epoch=epoch, batch=batch)
                    loss.backward()
                    optimizer.step()
                del users, items, ratings, loss

                loss_sum += loss_value * size
                rows_run += size
                batches_run += 1
                if self.on_batch_end is not None:
                    self.on_batch_end(BatchEvent(epoch=epoch, batch=batch, n_batches=n_batches, loss=loss_value))

            completed = batches_run == n_batches
            if batches_run:
                report = self._epoch_report(epoch, train, validation, loss_sum / rows_run, batches_run, completed)
                self.history.append(report)
                if self.on_epoch is not None:
                    self.on_epoch(report)
            if not completed:
                return True
        return False

    def _epoch_report(
        self,
        epoch: int,
        train: DenseInteractions,
        validation: DenseInteractions,
        mean_batch_loss: float,
        batches: int,
        completed: bool,
    ) -> EpochReport:
        model = self.model
        if completed:
            model.epochs_trained += 1

        model.eval()
        try:
            if model.kind is ModelKind.RATING:
                train_metric = model.evaluate(train, batch_size=self.config.batch_size)
            else:
                train_metric = mean_batch_loss
            validation_metric = (
                model.evaluate(validation, batch_size=self.config.batch_size) if len(validation) else None
            )
        finally:
            model.train()

        report = EpochReport(
            epoch=epoch,
            metric=model.metric_name,
            train_metric=float(train_metric),
            validation_metric=None if validation_metric is None else float(validation_metric),
            mean_batch_loss=float(mean_batch_loss),
            batches=batches,
            completed=completed,
        )
        logger.info(
            "epoch=%d/%d train_%s=%.4f val_%s=%s%s",
            epoch,
            int(self.config.epochs),
            report.metric,
            report.train_metric,
            report.metric,
            "n/a" if report.validation_metric is None else f"{report.validation_metric:.4f}",
            "" if completed else " (partial)",
        )
        return report
