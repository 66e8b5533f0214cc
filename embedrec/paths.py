from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class ProjectPaths:
    raw_dir: Path
    output_dir: Path
    config_path: Path

    @classmethod
    def from_repo_root(
        cls,
        repo_root: Path,
        *,
        raw_dir: Path | str = "data/raw",
        output_dir: Path | str = "outputs",
        config_path: Path | str = "config.yaml",
    ) -> "ProjectPaths":
        return cls(
            raw_dir=resolve_path(repo_root, raw_dir),
            output_dir=resolve_path(repo_root, output_dir),
            config_path=resolve_path(repo_root, config_path),
        )


def resolve_path(repo_root: Path, path: Path | str) -> Path:
    p = Path(path)
    if not p.is_absolute():
        p = repo_root / p
    return p.resolve()


def get_repo_root() -> Path:
    """Return repo root by searching upwards for `config.yaml` or `.git`.

    Starts from the working directory, then falls back to the package location.
    """
    for start in (Path.cwd().resolve(), Path(__file__).resolve().parent):
        for candidate in (start, *start.parents):
            if (candidate / "config.yaml").is_file() or (candidate / ".git").exists():
                return candidate

    raise FileNotFoundError("Could not locate repo root (expected `config.yaml` or `.git`).")
