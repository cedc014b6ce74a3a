"""Column standardization for regression design matrices."""
from __future__ import annotations

from typing import Optional

import numpy as np

__all__ = [
    "standardize_X",
    "center_y",
]

_EPS = 1e-8


def standardize_X(
    X: np.ndarray,
    method: str = "unit_variance",
    eps: float = _EPS,
) -> tuple[np.ndarray, Optional[np.ndarray], Optional[np.ndarray]]:
    """Standardize feature matrix according to the requested method."""

    arr = np.asarray(X, dtype=float)
    if method is None or str(method).lower() == "none":
        return arr.copy(), None, None

    method_l = str(method).lower()
    mean = arr.mean(axis=0, keepdims=True) if arr.size else np.zeros((1, arr.shape[1]))
    centered = arr - mean

    if method_l == "unit_variance":
        scale = np.std(centered, axis=0, keepdims=True)
    elif method_l == "unit_l2":
        scale = np.linalg.norm(centered, axis=0, keepdims=True)
    else:
        raise ValueError(f"Unknown standardization method '{method}'.")
    scale = np.maximum(scale, eps)

    standardized = centered / scale
    return standardized, mean.squeeze(0), scale.squeeze(0)


def center_y(y: np.ndarray) -> tuple[np.ndarray, float]:
    """Center response vector to zero mean."""

    arr = np.asarray(y, dtype=float).reshape(-1)
    mean = float(arr.mean()) if arr.size else 0.0
    return arr - mean, mean
