from __future__ import annotations

from pathlib import Path

import pytest

from embedrec.config import load_config, section
from embedrec.paths import ProjectPaths, resolve_path


def test_load_config_sections(tmp_path: Path) -> None:
    path = tmp_path / "config.yaml"
    path.write_text("training:\n  epochs: 3\n  lr: 0.05\nranking: 7\n")

    config = load_config(path)
    assert section(config, "training") == {"epochs": 3, "lr": 0.05}
    # Non-mapping and missing sections both read as empty.
    assert section(config, "ranking") == {}
    assert section(config, "projection") == {}


def test_load_config_empty_and_invalid(tmp_path: Path) -> None:
    empty = tmp_path / "empty.yaml"
    empty.write_text("")
    assert load_config(empty) == {}

    listing = tmp_path / "list.yaml"
    listing.write_text("- a\n- b\n")
    with pytest.raises(ValueError):
        load_config(listing)

    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "missing.yaml")


def test_project_paths_resolve_against_root(tmp_path: Path) -> None:
    paths = ProjectPaths.from_repo_root(tmp_path, raw_dir="ml-100k")
    assert paths.raw_dir == (tmp_path / "ml-100k").resolve()
    assert paths.config_path == (tmp_path / "config.yaml").resolve()
    assert resolve_path(tmp_path, tmp_path / "abs") == (tmp_path / "abs").resolve()
