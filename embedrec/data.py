"""MovieLens 100K record loading (`u.data` ratings, `u.item` catalog).

The loader turns raw files into immutable records; everything downstream
(indexing, training, ranking) only ever sees these records.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

import pandas as pd


logger = logging.getLogger(__name__)

_TITLE_YEAR = re.compile(r"^(.+?)\s*\((\d{4})\)\s*$")

RATINGS_COLUMNS = ("user_id", "item_id", "rating", "timestamp")


@dataclass(frozen=True)
class InteractionRecord:
    user_id: int
    item_id: int
    rating: float
    timestamp: int = 0


@dataclass(frozen=True)
class ItemRecord:
    item_id: int
    title: str
    year: Optional[int] = None


@dataclass(frozen=True)
class MovieLensData:
    interactions: tuple[InteractionRecord, ...]
    items: tuple[ItemRecord, ...]

    @property
    def n_users(self) -> int:
        return len({r.user_id for r in self.interactions})

    @property
    def n_items(self) -> int:
        return len({r.item_id for r in self.interactions})


def parse_title(raw: str) -> tuple[str, Optional[int]]:
    """Split `"Toy Story (1995)"` into `("Toy Story", 1995)`."""
    text = str(raw).strip()
    match = _TITLE_YEAR.match(text)
    if match is None:
        return text, None
    return match.group(1).strip(), int(match.group(2))


def load_interactions(path: Path, *, max_interactions: Optional[int] = None) -> list[InteractionRecord]:
    """Read a tab-separated `u.data` file, keeping file order.

    `max_interactions` keeps only the first N rows.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Ratings file not found: {path}")

    df = pd.read_csv(
        path,
        sep="\t",
        header=None,
        names=list(RATINGS_COLUMNS),
        dtype={"user_id": "int64", "item_id": "int64", "rating": "float64", "timestamp": "int64"},
        nrows=max_interactions,
    )
    return records_from_frame(df)


def records_from_frame(df: pd.DataFrame) -> list[InteractionRecord]:
    """Convert a `user_id, item_id, rating[, timestamp]` frame into records."""
    required = {"user_id", "item_id", "rating"}
    missing = required - set(df.columns)
    if missing:
        raise ValueError(f"ratings missing required columns: {sorted(missing)}")

    if df[["user_id", "item_id", "rating"]].isna().any().any():
        raise ValueError("ratings contain missing values")

    timestamps = df["timestamp"] if "timestamp" in df.columns else pd.Series(0, index=df.index)
    return [
        InteractionRecord(user_id=int(u), item_id=int(i), rating=float(r), timestamp=int(t))
        for u, i, r, t in zip(df["user_id"], df["item_id"], df["rating"], timestamps)
    ]


def load_items(path: Path) -> list[ItemRecord]:
    """Read a pipe-separated, latin-1 encoded `u.item` catalog."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Items file not found: {path}")

    # u.item carries 24 columns (genre flags etc.); only id and title matter here.
    df = pd.read_csv(
        path,
        sep="|",
        header=None,
        usecols=[0, 1],
        names=["item_id", "title"],
        dtype={"item_id": "int64", "title": "string"},
        encoding="latin-1",
    )
    items: list[ItemRecord] = []
    for item_id, raw_title in zip(df["item_id"], df["title"]):
        title, year = parse_title("" if pd.isna(raw_title) else raw_title)
        items.append(ItemRecord(item_id=int(item_id), title=title, year=year))
    return items


def validate_records(interactions: Sequence[InteractionRecord], items: Sequence[ItemRecord]) -> None:
    """Basic sanity checks on loaded records."""
    if not interactions:
        raise ValueError("no interaction records loaded")

    bad = [r for r in interactions if not math.isfinite(r.rating)]
    if bad:
        raise ValueError(f"{len(bad)} interaction records have non-finite ratings")

    item_ids = [it.item_id for it in items]
    if len(item_ids) != len(set(item_ids)):
        raise ValueError("item catalog has duplicate item_id values")


def load_movielens(raw_dir: Path, *, max_interactions: Optional[int] = None) -> MovieLensData:
    """Load `u.data` + `u.item` from `raw_dir`."""
    raw_dir = Path(raw_dir)
    interactions = load_interactions(raw_dir / "u.data", max_interactions=max_interactions)
    items = load_items(raw_dir / "u.item")
    validate_records(interactions, items)

    data = MovieLensData(interactions=tuple(interactions), items=tuple(items))
    logger.info(
        "Loaded MovieLens: users=%d items=%d ratings=%d catalog=%d",
        data.n_users,
        data.n_items,
        len(data.interactions),
        len(data.items),
    )
    return data


def sample_dataset() -> MovieLensData:
    """Tiny built-in dataset: 3 users x 3 items with opposing tastes."""
    ratings = [
        (1, 10, 5.0, 881250949),
        (1, 20, 1.0, 881250950),
        (2, 20, 5.0, 881250951),
        (2, 30, 1.0, 881250952),
        (3, 10, 4.0, 881250953),
        (3, 30, 2.0, 881250954),
    ]
    items = [
        ItemRecord(item_id=10, title="Toy Story", year=1995),
        ItemRecord(item_id=20, title="GoldenEye", year=1995),
        ItemRecord(item_id=30, title="Four Rooms", year=1995),
    ]
    return MovieLensData(
        interactions=tuple(InteractionRecord(u, i, r, t) for u, i, r, t in ratings),
        items=tuple(items),
    )
