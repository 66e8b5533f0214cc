from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml


def load_config(path: Path) -> dict[str, Any]:
    """Read config.yaml; the top level must be a mapping."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config not found: {path}")
    obj = yaml.safe_load(path.read_text())
    if obj is None:
        return {}
    if not isinstance(obj, dict):
        raise ValueError(f"Expected YAML mapping at {path}, got {type(obj)}")
    return obj


def section(config: dict[str, Any], name: str) -> dict[str, Any]:
    """Return `config[name]` if it is a mapping, else an empty dict."""
    value = config.get(name, {})
    return value if isinstance(value, dict) else {}
