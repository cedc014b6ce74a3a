"""I/O utilities for sampler artifacts."""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import numpy as np

from shrinkreg.inference.results import PosteriorSamples


def ensure_dir(path: Path) -> Path:
    """Create directory if missing and return the path."""
    path.mkdir(parents=True, exist_ok=True)
    return path


def save_json(data: Any, path: Path) -> None:
    """Write JSON with UTF-8 encoding."""
    ensure_dir(path.parent)
    path.write_text(json.dumps(data, indent=2), encoding="utf-8")


def save_posterior(posterior: PosteriorSamples, out_dir: Path) -> None:
    """Write draws and sampler statistics to ``posterior_samples.npz`` and diagnostics to ``convergence.json``."""
    ensure_dir(out_dir)
    arrays = {f"draw_{k}": v for k, v in posterior.draws.items()}
    arrays.update({f"stat_{k}": v for k, v in posterior.stats.items()})
    np.savez_compressed(out_dir / "posterior_samples.npz", **arrays)
    save_json(posterior.diagnostics().as_dict(), out_dir / "convergence.json")
