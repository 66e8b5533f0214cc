from __future__ import annotations

from pathlib import Path

import pandas as pd
import pytest

from embedrec.data import (
    InteractionRecord,
    ItemRecord,
    load_interactions,
    load_items,
    load_movielens,
    parse_title,
    records_from_frame,
    sample_dataset,
    validate_records,
)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("Toy Story (1995)", ("Toy Story", 1995)),
        ("Seven (Se7en) (1995)", ("Seven (Se7en)", 1995)),
        ("unknown", ("unknown", None)),
        ("  Heat (1995)  ", ("Heat", 1995)),
    ],
)
def test_parse_title(raw: str, expected) -> None:
    assert parse_title(raw) == expected


@pytest.fixture
def raw_dir(tmp_path: Path) -> Path:
    (tmp_path / "u.data").write_text("196\t242\t3\t881250949\n186\t302\t3\t891717742\n22\t377\t1\t878887116\n")
    (tmp_path / "u.item").write_bytes(
        "242|Kolya (1996)|24-Jan-1997||http://x|0|0\n"
        "302|L.A. Confidential (1997)|01-Jan-1997||http://x|0|0\n"
        "377|Heavyweights (1994)|01-Jan-1994||http://x|0|0\n"
        "1|Café au lait|01-Jan-1994||http://x|0|0\n".encode("latin-1")
    )
    return tmp_path


def test_load_movielens(raw_dir: Path) -> None:
    data = load_movielens(raw_dir)

    assert data.interactions[0] == InteractionRecord(user_id=196, item_id=242, rating=3.0, timestamp=881250949)
    assert data.n_users == 3 and data.n_items == 3
    assert ItemRecord(item_id=302, title="L.A. Confidential", year=1997) in data.items
    assert ItemRecord(item_id=1, title="Café au lait", year=None) in data.items


def test_max_interactions_keeps_file_order(raw_dir: Path) -> None:
    records = load_interactions(raw_dir / "u.data", max_interactions=2)
    assert [r.user_id for r in records] == [196, 186]


def test_missing_files(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_interactions(tmp_path / "u.data")
    with pytest.raises(FileNotFoundError):
        load_items(tmp_path / "u.item")


def test_records_from_frame_requires_columns() -> None:
    with pytest.raises(ValueError):
        records_from_frame(pd.DataFrame({"user_id": [1], "rating": [3.0]}))

    records = records_from_frame(pd.DataFrame({"user_id": [1], "item_id": [2], "rating": [3.5]}))
    assert records == [InteractionRecord(user_id=1, item_id=2, rating=3.5, timestamp=0)]


def test_validate_records() -> None:
    ok = [InteractionRecord(1, 2, 3.0)]
    with pytest.raises(ValueError):
        validate_records([], [])
    with pytest.raises(ValueError):
        validate_records([InteractionRecord(1, 2, float("nan"))], [])
    with pytest.raises(ValueError):
        validate_records(ok, [ItemRecord(2, "a"), ItemRecord(2, "b")])


def test_records_are_immutable() -> None:
    record = sample_dataset().interactions[0]
    with pytest.raises(AttributeError):
        record.rating = 1.0  # type: ignore[misc]
