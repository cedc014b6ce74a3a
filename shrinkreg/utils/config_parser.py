"""YAML configuration loader with command-line style overrides."""
from __future__ import annotations

from functools import reduce
from pathlib import Path
from typing import Any, Dict, Mapping

import yaml

from shrinkreg.errors import InvalidConfiguration


def load_config(path: Path) -> dict[str, Any]:
    """Load a YAML config file into a dictionary."""
    data = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise InvalidConfiguration(f"Config {path} must be a YAML mapping at top-level.")
    return data


def _cast(value: Any) -> Any:
    if not isinstance(value, str):
        return value
    low = value.lower()
    if low in {"true", "false"}:
        return low == "true"
    if low in {"null", "none"}:
        return None
    try:
        if "." in value or "e" in low:
            return float(value)
        return int(value)
    except ValueError:
        return value


def merge_overrides(config: Mapping[str, Any], overrides: Mapping[str, Any]) -> dict[str, Any]:
    """
    Merge flat dotted overrides into a copy of a nested config, e.g.
    ``{"inference.nuts.num_chains": "2", "model.tau": "0.1"}``.
    """
    merged: Dict[str, Any] = _deep_copy(config)
    for key, value in overrides.items():
        keys = str(key).split(".")
        parent = reduce(lambda acc, kk: _child_section(acc, kk, key), keys[:-1], merged)
        parent[keys[-1]] = _cast(value)
    return merged


def _child_section(parent: Dict[str, Any], name: str, key: str) -> Dict[str, Any]:
    child = parent.setdefault(name, {})
    if not isinstance(child, dict):
        raise InvalidConfiguration(f"Key path conflict at '{key}': '{name}' holds {child!r}, not a section.")
    return child


def _deep_copy(d: Mapping[str, Any]) -> Dict[str, Any]:
    return {k: _deep_copy(v) if isinstance(v, Mapping) else v for k, v in d.items()}
