"""Posterior convergence diagnostics (R-hat, ESS) and sampler health checks."""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional, Tuple

import numpy as np

Array = np.ndarray


def _reshape_samples(samples: Array) -> Tuple[Array, Tuple[int, ...]]:
    arr = np.asarray(samples, dtype=float)
    if arr.ndim == 0:
        raise ValueError("samples must have at least one dimension (draws)")

    if arr.ndim == 1:
        arr = arr.reshape(1, arr.shape[0], 1)
        param_shape: Tuple[int, ...] = ()
    elif arr.ndim == 2:
        # interpret as (draws, parameters)
        arr = arr.reshape(1, arr.shape[0], arr.shape[1])
        param_shape = (arr.shape[2],)
    else:
        # expect (chains, draws, ...)
        if arr.shape[0] < 1:
            raise ValueError("expected chain axis with length >= 1")
        param_shape = arr.shape[2:]
    draws = arr.shape[1]
    if draws < 4:
        raise ValueError("need at least 4 draws for convergence diagnostics")
    # ensure even draws for splitting
    if draws % 2 == 1:
        arr = arr[:, 1:]
    return arr, param_shape


def _split_chains(chains: Array) -> Array:
    half = chains.shape[1] // 2
    return np.concatenate([chains[:, :half], chains[:, half:]], axis=0)


def _rhat_from_chains(chains: Array) -> Array:
    C, N = chains.shape[:2]
    if C < 2:
        raise ValueError("split R-hat requires at least two chains after splitting")
    chain_means = chains.mean(axis=1)
    chain_vars = chains.var(axis=1, ddof=1)
    W = chain_vars.mean(axis=0)
    B = N * chain_means.var(axis=0, ddof=1)
    var_hat = ((N - 1) / N) * W + B / N
    # frozen chains: identical values give 1, chains stuck at different values give inf
    with np.errstate(divide="ignore", invalid="ignore"):
        ratio = np.where(W > 0, var_hat / W, np.where(B > 0, np.inf, 1.0))
    return np.sqrt(ratio)


def split_rhat(samples: Array) -> Array:
    """
    Split potential scale reduction factor.

    ``samples`` is ``(draws,)``, ``(draws, params)`` or ``(chains, draws, ...)``.
    Each chain is cut in half so that a single chain still yields a
    between-half comparison.
    """
    arr, param_shape = _reshape_samples(samples)
    rhat = _rhat_from_chains(_split_chains(arr))
    if param_shape:
        return rhat.reshape(param_shape)
    return np.squeeze(rhat)


def _autocovariance(x: Array) -> Array:
    """Biased autocovariance along axis 1 of a ``(chains, draws, params)`` array."""
    n = x.shape[1]
    centered = x - x.mean(axis=1, keepdims=True)
    size = 2 ** int(math.ceil(math.log2(2 * n - 1)))
    spec = np.fft.rfft(centered, n=size, axis=1)
    acov = np.fft.irfft(spec * np.conjugate(spec), n=size, axis=1)[:, :n]
    return acov / n


def _ess_from_chains(chains: Array) -> Array:
    C, N = chains.shape[:2]
    x = chains.reshape(C, N, -1)
    acov = _autocovariance(x)
    chain_means = x.mean(axis=1)
    mean_var = acov[:, 0].mean(axis=0) * N / (N - 1.0)
    var_plus = mean_var * (N - 1.0) / N
    if C > 1:
        var_plus = var_plus + chain_means.var(axis=0, ddof=1)
    mean_acov = acov.mean(axis=0)

    total = float(C * N)
    ess = np.full(x.shape[2], total)
    for j in range(x.shape[2]):
        if not var_plus[j] > 1e-300:
            continue
        rho = 1.0 - (mean_var[j] - mean_acov[:, j]) / var_plus[j]
        rho[0] = 1.0
        # Geyer initial positive sequence over pairs of lags
        t = 1
        max_t = 1
        while t < N - 2 and rho[t - 1] + rho[t] > 0.0:
            max_t = t
            t += 2
        pairs = rho[: max_t + 1]
        if pairs.shape[0] % 2 == 1:
            pairs = pairs[:-1]
        pair_sums = pairs.reshape(-1, 2).sum(axis=1)
        # initial monotone sequence
        pair_sums = np.minimum.accumulate(np.maximum(pair_sums, 0.0))
        tau = -1.0 + 2.0 * float(pair_sums.sum())
        tau = max(tau, 1.0 / math.log10(total))
        ess[j] = total / tau
    return ess.reshape(chains.shape[2:])


def effective_sample_size(samples: Array) -> Array:
    """Effective sample size from split chains, pooling within- and between-chain variance."""
    arr, param_shape = _reshape_samples(samples)
    ess = _ess_from_chains(_split_chains(arr))
    if param_shape:
        return ess.reshape(param_shape)
    return np.squeeze(ess)


def summarize_convergence(samples: Mapping[str, Array]) -> Dict[str, Dict[str, float]]:
    """Per-block R-hat / ESS extremes; blocks are ``(chains, draws, ...)`` arrays."""
    summary: Dict[str, Dict[str, float]] = {}
    for name, arr in samples.items():
        try:
            flat_rhat = np.asarray(split_rhat(arr)).ravel()
            flat_ess = np.asarray(effective_sample_size(arr)).ravel()
            summary[name] = {
                "rhat_max": float(np.max(flat_rhat)),
                "rhat_median": float(np.median(flat_rhat)),
                "ess_min": float(np.min(flat_ess)),
                "ess_median": float(np.median(flat_ess)),
            }
        except ValueError as exc:
            summary[name] = {"error": str(exc)}
    return summary


def e_bfmi(energy: Array) -> Array:
    """Energy Bayesian fraction of missing information, one value per chain."""
    energy = np.atleast_2d(np.asarray(energy, dtype=float))
    num = np.mean(np.diff(energy, axis=1) ** 2, axis=1)
    den = np.var(energy, axis=1)
    with np.errstate(divide="ignore", invalid="ignore"):
        return np.where(den > 0, num / den, np.nan)


@dataclass
class SamplerDiagnostics:
    """Counts of in-run anomalies and per-parameter convergence measures."""

    num_chains: int
    num_samples: int
    divergences: int
    divergences_per_chain: Array
    max_depth_hits: int
    max_depth_hits_per_chain: Array
    mean_accept_stat: float
    e_bfmi: Array
    step_size: Array
    rhat: Dict[str, float] = field(default_factory=dict)
    ess: Dict[str, float] = field(default_factory=dict)

    @property
    def max_rhat(self) -> float:
        return max(self.rhat.values()) if self.rhat else float("nan")

    @property
    def min_ess(self) -> float:
        return min(self.ess.values()) if self.ess else float("nan")

    def as_dict(self) -> Dict[str, object]:
        return {
            "num_chains": self.num_chains,
            "num_samples": self.num_samples,
            "divergences": int(self.divergences),
            "divergences_per_chain": [int(v) for v in self.divergences_per_chain],
            "max_depth_hits": int(self.max_depth_hits),
            "max_depth_hits_per_chain": [int(v) for v in self.max_depth_hits_per_chain],
            "mean_accept_stat": float(self.mean_accept_stat),
            "e_bfmi": [float(v) for v in self.e_bfmi],
            "step_size": [float(v) for v in self.step_size],
            "rhat": {k: float(v) for k, v in self.rhat.items()},
            "ess": {k: float(v) for k, v in self.ess.items()},
        }


def sampler_diagnostics(
    stats: Mapping[str, Array],
    flat_samples: Optional[Mapping[str, Array]] = None,
) -> SamplerDiagnostics:
    """
    Summarize per-iteration sampler statistics.

    ``stats`` holds ``(chains, draws)`` arrays named ``divergent``,
    ``max_depth_hit``, ``accept_stat``, ``energy`` and ``step_size``.
    ``flat_samples`` maps scalar parameter names to ``(chains, draws)`` arrays
    for R-hat and ESS.
    """
    divergent = np.atleast_2d(np.asarray(stats["divergent"], dtype=bool))
    saturated = np.atleast_2d(np.asarray(stats["max_depth_hit"], dtype=bool))
    accept = np.atleast_2d(np.asarray(stats["accept_stat"], dtype=float))
    energy = np.atleast_2d(np.asarray(stats["energy"], dtype=float))
    step = np.atleast_2d(np.asarray(stats["step_size"], dtype=float))

    rhat: Dict[str, float] = {}
    ess: Dict[str, float] = {}
    if flat_samples:
        for name, arr in flat_samples.items():
            arr = np.atleast_2d(np.asarray(arr, dtype=float))
            if arr.shape[1] < 4:
                continue
            rhat[name] = float(split_rhat(arr[:, :, None])[0])
            ess[name] = float(effective_sample_size(arr[:, :, None])[0])

    return SamplerDiagnostics(
        num_chains=divergent.shape[0],
        num_samples=divergent.shape[1],
        divergences=int(divergent.sum()),
        divergences_per_chain=divergent.sum(axis=1),
        max_depth_hits=int(saturated.sum()),
        max_depth_hits_per_chain=saturated.sum(axis=1),
        mean_accept_stat=float(accept.mean()) if accept.size else float("nan"),
        e_bfmi=e_bfmi(energy) if energy.shape[1] > 1 else np.full(energy.shape[0], np.nan),
        step_size=step[:, 0] if step.shape[1] else np.full(step.shape[0], np.nan),
        rhat=rhat,
        ess=ess,
    )
