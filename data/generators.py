"""Synthetic linear-regression datasets with known coefficients."""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional, Sequence

import numpy as np

from .preprocess import standardize_X

__all__ = [
    "SyntheticConfig",
    "SyntheticDataset",
    "generate_synthetic",
    "synthetic_config_from_dict",
]


class GeneratorError(ValueError):
    """Raised when an invalid synthetic configuration is provided."""


@dataclass
class SyntheticConfig:
    """Parameters of one synthetic regression scenario."""

    n: int
    beta: Sequence[float]
    noise_sigma: float = 1.0
    intercept: float = 0.0
    correlation: Mapping[str, object] = field(default_factory=dict)
    standardize: bool = True
    seed: Optional[int] = None


@dataclass
class SyntheticDataset:
    """Generated dataset together with the generating coefficients."""

    X: np.ndarray
    y: np.ndarray
    beta: np.ndarray
    intercept: float
    noise_sigma: float
    info: Dict[str, object] = field(default_factory=dict)


def _draw_design(rng: np.random.Generator, n: int, p: int, corr_cfg: Mapping[str, object]) -> np.ndarray:
    corr_type = str(corr_cfg.get("type", "independent")).lower()
    rho = float(corr_cfg.get("rho", 0.0))

    if corr_type in {"independent", "none"} or abs(rho) < 1e-12:
        return rng.standard_normal((n, p))

    if corr_type == "ar1":
        if not (-0.999 <= rho <= 0.999):
            raise GeneratorError("AR1 correlation requires rho in [-0.999, 0.999].")
        eps = rng.standard_normal((n, p))
        design = np.empty((n, p), dtype=float)
        design[:, 0] = eps[:, 0]
        scale = math.sqrt(max(1.0 - rho * rho, 1e-8))
        for j in range(1, p):
            design[:, j] = rho * design[:, j - 1] + scale * eps[:, j]
        return design

    if corr_type in {"cs", "compound_symmetry"}:
        if not (0.0 <= rho < 1.0):
            raise GeneratorError("Compound symmetry requires rho in [0, 1).")
        shared = rng.standard_normal((n, 1))
        noise = rng.standard_normal((n, p))
        return math.sqrt(rho) * shared + math.sqrt(1.0 - rho) * noise

    raise GeneratorError(f"Unsupported correlation type '{corr_type}'.")


def generate_synthetic(config: SyntheticConfig) -> SyntheticDataset:
    """
    Draw ``y = intercept + X beta + noise`` with Gaussian noise.

    With ``standardize=True`` the columns of ``X`` are centered and scaled to
    unit variance *before* the response is generated, so ``beta`` is the true
    coefficient vector on the standardized design.
    """
    beta = np.asarray(config.beta, dtype=float).reshape(-1)
    if config.n <= 0:
        raise GeneratorError("n must be positive.")
    if beta.size == 0:
        raise GeneratorError("beta must contain at least one coefficient.")
    if config.noise_sigma < 0:
        raise GeneratorError("noise_sigma must be non-negative.")

    rng = np.random.default_rng(config.seed)
    X = _draw_design(rng, int(config.n), beta.size, config.correlation)
    if config.standardize:
        X, _, _ = standardize_X(X, "unit_variance")
    noise = config.noise_sigma * rng.standard_normal(int(config.n))
    y = config.intercept + X @ beta + noise
    return SyntheticDataset(
        X=X,
        y=y,
        beta=beta,
        intercept=float(config.intercept),
        noise_sigma=float(config.noise_sigma),
        info={"correlation": dict(config.correlation), "seed": config.seed},
    )


def synthetic_config_from_dict(cfg: Mapping[str, object]) -> SyntheticConfig:
    """Build a :class:`SyntheticConfig` from the ``data`` section of a config."""
    if "beta" not in cfg:
        raise GeneratorError("Synthetic config requires 'beta'.")
    return SyntheticConfig(
        n=int(cfg.get("n", 100)),
        beta=[float(b) for b in cfg["beta"]],  # type: ignore[union-attr]
        noise_sigma=float(cfg.get("noise_sigma", 1.0)),
        intercept=float(cfg.get("intercept", 0.0)),
        correlation=dict(cfg.get("correlation", {}) or {}),  # type: ignore[arg-type]
        standardize=bool(cfg.get("standardize", True)),
        seed=None if cfg.get("seed") is None else int(cfg["seed"]),  # type: ignore[arg-type]
    )
