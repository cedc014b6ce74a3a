"""Dataset, model variants and the unconstrained parameter layout."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

import numpy as np

from shrinkreg.errors import InvalidConfiguration

Array = np.ndarray


class Prior(str, Enum):
    """Prior family on the regression coefficients."""

    RIDGE = "ridge"
    LASSO = "lasso"
    HORSESHOE = "horseshoe"

    @classmethod
    def parse(cls, value: Any) -> "Prior":
        if isinstance(value, cls):
            return value
        key = str(value).strip().lower()
        aliases = {"normal": "ridge", "gaussian": "ridge", "laplace": "lasso", "hs": "horseshoe"}
        key = aliases.get(key, key)
        try:
            return cls(key)
        except ValueError as exc:
            raise InvalidConfiguration(
                f"Unknown prior '{value}'. Use one of {[p.value for p in cls]}."
            ) from exc


@dataclass(frozen=True, eq=False)
class Dataset:
    """Read-only regression data: response ``y`` (N,) and design matrix ``X`` (N, K)."""

    X: Array
    y: Array
    N: int
    K: int

    def __post_init__(self) -> None:
        X = np.asarray(self.X)
        y = np.asarray(self.y)
        if X.ndim != 2:
            raise InvalidConfiguration(f"X must be a 2D array; got shape {X.shape}.")
        if y.ndim != 1:
            raise InvalidConfiguration(f"y must be a 1D array; got shape {y.shape}.")
        if X.shape[0] != self.N or y.shape[0] != self.N:
            raise InvalidConfiguration(
                f"N={self.N} does not match rows of X ({X.shape[0]}) and length of y ({y.shape[0]})."
            )
        if X.shape[1] != self.K:
            raise InvalidConfiguration(f"K={self.K} does not match columns of X ({X.shape[1]}).")
        if self.N < 1 or self.K < 1:
            raise InvalidConfiguration("Dataset needs at least one row and one predictor.")
        if not (np.all(np.isfinite(X)) and np.all(np.isfinite(y))):
            raise InvalidConfiguration("X and y must contain only finite values.")

    @classmethod
    def from_arrays(cls, X: Any, y: Any) -> "Dataset":
        """Copy ``X`` and ``y`` into float64 read-only arrays and validate them."""
        X_arr = np.array(X, dtype=np.float64)
        y_arr = np.array(y, dtype=np.float64)
        if X_arr.ndim == 1:
            X_arr = X_arr.reshape(-1, 1)
        if X_arr.ndim != 2:
            raise InvalidConfiguration(f"X must be a 2D array; got shape {X_arr.shape}.")
        y_arr = y_arr.reshape(-1) if y_arr.ndim == 2 and 1 in y_arr.shape else y_arr
        X_arr.setflags(write=False)
        y_arr.setflags(write=False)
        n = y_arr.shape[0] if y_arr.ndim == 1 else -1
        return cls(X=X_arr, y=y_arr, N=n, K=X_arr.shape[1])


@dataclass(frozen=True)
class ModelSpec:
    """
    One model variant: prior family x (fixed tau | estimated tau).

    ``tau=None`` means the global scale is sampled with a half-Cauchy(0, tau_scale)
    hyperprior. ``sigma`` always gets half-Cauchy(0, sigma_scale) and the intercept
    Normal(0, intercept_scale).
    """

    prior: Prior = Prior.RIDGE
    tau: Optional[float] = None
    tau_scale: float = 1.0
    sigma_scale: float = 5.0
    intercept_scale: float = 10.0

    def __post_init__(self) -> None:
        object.__setattr__(self, "prior", Prior.parse(self.prior))
        if self.tau is not None:
            if not np.isfinite(self.tau) or self.tau <= 0:
                raise InvalidConfiguration(f"tau must be positive when fixed; got {self.tau}.")
            object.__setattr__(self, "tau", float(self.tau))
        for name in ("tau_scale", "sigma_scale", "intercept_scale"):
            value = getattr(self, name)
            if not np.isfinite(value) or value <= 0:
                raise InvalidConfiguration(f"{name} must be positive; got {value}.")

    @property
    def estimate_tau(self) -> bool:
        return self.tau is None

    @property
    def label(self) -> str:
        tau_part = "tau~HC" if self.estimate_tau else f"tau={self.tau:g}"
        return f"{self.prior.value}({tau_part})"


@dataclass(frozen=True)
class ParameterLayout:
    """
    Position of each named block inside the unconstrained parameter vector.

    Order: ``[a, b[1..K], log sigma, (log tau), (log lambda[1..K])]``.
    """

    K: int
    estimate_tau: bool
    horseshoe: bool
    slices: Dict[str, slice] = field(init=False, repr=False)
    dim: int = field(init=False)

    def __post_init__(self) -> None:
        slices: Dict[str, slice] = {}
        cursor = 0

        def _take(name: str, size: int) -> None:
            nonlocal cursor
            slices[name] = slice(cursor, cursor + size)
            cursor += size

        _take("a", 1)
        _take("b", self.K)
        _take("sigma", 1)
        if self.estimate_tau:
            _take("tau", 1)
        if self.horseshoe:
            _take("lambda", self.K)
        object.__setattr__(self, "slices", slices)
        object.__setattr__(self, "dim", cursor)

    @classmethod
    def for_model(cls, spec: ModelSpec, K: int) -> "ParameterLayout":
        return cls(K=int(K), estimate_tau=spec.estimate_tau, horseshoe=spec.prior is Prior.HORSESHOE)

    @property
    def blocks(self) -> List[str]:
        return list(self.slices.keys())

    @property
    def positive_blocks(self) -> Tuple[str, ...]:
        return tuple(name for name in self.slices if name in {"sigma", "tau", "lambda"})

    @property
    def names(self) -> List[str]:
        """Flat scalar names, e.g. ``['a', 'b[1]', 'b[2]', 'sigma']``."""
        out: List[str] = []
        for block, sl in self.slices.items():
            size = sl.stop - sl.start
            if block in {"b", "lambda"}:
                out.extend(f"{block}[{k + 1}]" for k in range(size))
            else:
                out.append(block)
        return out

    def constrain(self, q: Array) -> Dict[str, Any]:
        """Map one unconstrained vector to named constrained values."""
        q = np.asarray(q, dtype=float)
        if q.shape != (self.dim,):
            raise ValueError(f"q must have shape ({self.dim},); got {q.shape}.")
        values: Dict[str, Any] = {}
        for block, sl in self.slices.items():
            part = q[sl]
            if block in self.positive_blocks:
                part = np.exp(part)
            values[block] = float(part[0]) if block in {"a", "sigma", "tau"} else part.copy()
        return values

    def unconstrain(self, values: Mapping[str, Any]) -> Array:
        """Inverse of :meth:`constrain`; positive blocks are log-transformed."""
        q = np.empty(self.dim, dtype=float)
        for block, sl in self.slices.items():
            if block not in values:
                raise KeyError(f"Missing value for parameter block '{block}'.")
            part = np.atleast_1d(np.asarray(values[block], dtype=float))
            if part.shape != (sl.stop - sl.start,):
                raise ValueError(f"Block '{block}' expects {sl.stop - sl.start} values; got {part.shape}.")
            if block in self.positive_blocks:
                if np.any(part <= 0):
                    raise ValueError(f"Block '{block}' must be strictly positive.")
                part = np.log(part)
            q[sl] = part
        return q

    def constrain_draws(self, Q: Array) -> Dict[str, Array]:
        """Vectorized :meth:`constrain` over leading axes, e.g. (chains, draws, dim)."""
        Q = np.asarray(Q, dtype=float)
        if Q.shape[-1] != self.dim:
            raise ValueError(f"last axis must have length {self.dim}; got {Q.shape}.")
        out: Dict[str, Array] = {}
        for block, sl in self.slices.items():
            part = Q[..., sl]
            if block in self.positive_blocks:
                part = np.exp(part)
            out[block] = part[..., 0] if block in {"a", "sigma", "tau"} else part
        return out
