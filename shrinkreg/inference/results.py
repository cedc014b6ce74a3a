"""Containers for sampler output: per-iteration draws, chains and the full run."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd

from shrinkreg.diagnostics.convergence import (
    SamplerDiagnostics,
    effective_sample_size,
    sampler_diagnostics,
    split_rhat,
)
from shrinkreg.models.spec import ModelSpec, ParameterLayout

Array = np.ndarray

STAT_FIELDS = (
    "log_density",
    "grad_norm",
    "step_size",
    "tree_depth",
    "n_leapfrog",
    "divergent",
    "max_depth_hit",
    "accept_stat",
    "energy",
)


@dataclass(frozen=True, eq=False)
class Draw:
    """One retained NUTS iteration: unconstrained position plus bookkeeping."""

    q: Array
    log_density: float
    grad_norm: float
    step_size: float
    tree_depth: int
    n_leapfrog: int
    divergent: bool
    max_depth_hit: bool
    accept_stat: float
    energy: float


@dataclass
class ChainResult:
    """Draws of one chain together with its frozen adaptation output."""

    chain_id: int
    seed: int
    step_size: float
    inv_mass: Array
    draws: List[Draw] = field(default_factory=list)
    warmup_divergences: int = 0
    elapsed: float = 0.0

    def append(self, draw: Draw) -> None:
        self.draws.append(draw)

    def __len__(self) -> int:
        return len(self.draws)

    @property
    def positions(self) -> Array:
        if not self.draws:
            return np.zeros((0, self.inv_mass.shape[0]))
        return np.stack([d.q for d in self.draws])

    def stat(self, name: str) -> Array:
        if name not in STAT_FIELDS:
            raise KeyError(f"Unknown sampler statistic '{name}'. Available: {list(STAT_FIELDS)}")
        return np.asarray([getattr(d, name) for d in self.draws])


@dataclass
class PosteriorSamples:
    """
    Output of a multi-chain run.

    ``draws`` maps parameter blocks to constrained arrays shaped
    ``(chains, draws)`` for scalars and ``(chains, draws, K)`` for ``b`` and
    ``lambda``.
    """

    spec: ModelSpec
    layout: ParameterLayout
    chains: List[ChainResult]
    config: Optional[Any] = None
    _draws: Optional[Dict[str, Array]] = field(default=None, init=False, repr=False)

    @property
    def num_chains(self) -> int:
        return len(self.chains)

    @property
    def num_samples(self) -> int:
        return len(self.chains[0]) if self.chains else 0

    @property
    def positions(self) -> Array:
        """Unconstrained draws, shape ``(chains, draws, dim)``."""
        return np.stack([c.positions for c in self.chains])

    @property
    def draws(self) -> Dict[str, Array]:
        if self._draws is None:
            self._draws = self.layout.constrain_draws(self.positions)
        return self._draws

    @property
    def stats(self) -> Dict[str, Array]:
        return {name: np.stack([c.stat(name) for c in self.chains]) for name in STAT_FIELDS}

    def flat_draws(self) -> Dict[str, Array]:
        """Scalar parameter name -> ``(chains, draws)`` constrained array."""
        out: Dict[str, Array] = {}
        for block, values in self.draws.items():
            if values.ndim == 2:
                out[block] = values
            else:
                for k in range(values.shape[-1]):
                    out[f"{block}[{k + 1}]"] = values[..., k]
        return out

    def pooled(self, block: str) -> Array:
        """Draws of one block with chains concatenated."""
        values = self.draws[block]
        return values.reshape((-1,) + values.shape[2:])

    def posterior_mean(self, block: str) -> Any:
        mean = self.pooled(block).mean(axis=0)
        return float(mean) if np.ndim(mean) == 0 else mean

    def diagnostics(self) -> SamplerDiagnostics:
        return sampler_diagnostics(self.stats, self.flat_draws())

    def summary(self, quantiles=(0.05, 0.5, 0.95)) -> pd.DataFrame:
        """Per-parameter mean, sd, quantiles, ESS and split R-hat."""
        rows = []
        for name, values in self.flat_draws().items():
            pooled = values.reshape(-1)
            row: Dict[str, Any] = {
                "parameter": name,
                "mean": float(pooled.mean()),
                "sd": float(pooled.std(ddof=1)) if pooled.size > 1 else float("nan"),
            }
            for q in quantiles:
                row[f"q{int(round(q * 100))}"] = float(np.quantile(pooled, q))
            if values.shape[1] >= 4:
                row["ess"] = float(effective_sample_size(values[:, :, None])[0])
                row["rhat"] = float(split_rhat(values[:, :, None])[0])
            else:
                row["ess"] = float("nan")
                row["rhat"] = float("nan")
            rows.append(row)
        return pd.DataFrame(rows).set_index("parameter")
