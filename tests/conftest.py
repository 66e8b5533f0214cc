from __future__ import annotations

import sys
from pathlib import Path

import pytest

# Ensure `import embedrec...` works when pytest uses importlib import mode.
REPO_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(REPO_ROOT))

from embedrec.data import InteractionRecord, sample_dataset  # noqa: E402
from embedrec.indexing import build_index, to_dense  # noqa: E402


# (u0,i0,5) (u0,i1,1) (u1,i1,5) (u1,i2,1) (u2,i0,4) (u2,i2,2)
SCENARIO = [(0, 0, 5.0), (0, 1, 1.0), (1, 1, 5.0), (1, 2, 1.0), (2, 0, 4.0), (2, 2, 2.0)]


@pytest.fixture
def scenario_records() -> list[InteractionRecord]:
    return [InteractionRecord(user_id=u, item_id=i, rating=r, timestamp=t) for t, (u, i, r) in enumerate(SCENARIO)]


@pytest.fixture
def scenario_dense(scenario_records):
    return to_dense(scenario_records, build_index(scenario_records))


@pytest.fixture
def sample_data():
    return sample_dataset()
