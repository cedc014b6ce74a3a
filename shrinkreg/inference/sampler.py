"""Multi-chain NUTS driver: warmup adaptation followed by fixed-kernel sampling."""
from __future__ import annotations

import logging
import math
import numbers
import time
from concurrent.futures import ProcessPoolExecutor
from dataclasses import asdict, dataclass, fields
from typing import Any, Dict, List, Mapping, Optional

import numpy as np
from numpy.random import SeedSequence, default_rng

from shrinkreg.errors import InitializationError, InvalidConfiguration, NonFiniteDensity
from shrinkreg.models.density import LogDensity
from shrinkreg.models.spec import Dataset, ModelSpec
from shrinkreg.utils.logging_utils import Timer, progress
from .adaptation import WarmupAdapter
from .integrator import DensityFn, PhaseState
from .nuts import DEFAULT_MAX_ENERGY_ERROR, DEFAULT_MAX_TREE_DEPTH, find_reasonable_step_size, nuts_transition
from .results import ChainResult, Draw, PosteriorSamples

logger = logging.getLogger(__name__)

_MAX_INIT_ATTEMPTS = 100


def _as_real(name: str, value: Any) -> float:
    """Finite real number; numeric strings (e.g. from dotted config overrides) are parsed."""
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError as exc:
            raise InvalidConfiguration(f"{name} must be a number; got {value!r}.") from exc
    if isinstance(value, bool) or not isinstance(value, numbers.Real) or not math.isfinite(value):
        raise InvalidConfiguration(f"{name} must be a finite number; got {value!r}.")
    return float(value)


def _as_count(name: str, value: Any, minimum: int = 1) -> int:
    """Integral value ``>= minimum``; ``10.0`` is accepted, ``10.5`` and booleans are not."""
    if isinstance(value, numbers.Integral) and not isinstance(value, bool):
        count = int(value)
    else:
        number = _as_real(name, value)
        if not number.is_integer():
            raise InvalidConfiguration(f"{name} must be an integer; got {value!r}.")
        count = int(number)
    if count < minimum:
        raise InvalidConfiguration(f"{name} must be an integer >= {minimum}; got {value!r}.")
    return count


@dataclass(frozen=True)
class SamplerConfig:
    """Run settings shared by every chain."""

    num_warmup: int = 1000
    num_samples: int = 1000
    num_chains: int = 4
    num_workers: int = 1
    target_accept: float = 0.8
    max_tree_depth: int = DEFAULT_MAX_TREE_DEPTH
    max_energy_error: float = DEFAULT_MAX_ENERGY_ERROR
    init_radius: float = 2.0
    init_step_size: Optional[float] = None
    adapt_mass: bool = True
    seed: Optional[int] = None
    progress: bool = False

    def __post_init__(self) -> None:
        for name in ("num_warmup", "num_samples", "num_chains", "num_workers", "max_tree_depth"):
            object.__setattr__(self, name, _as_count(name, getattr(self, name), minimum=1))
        if self.seed is not None:
            object.__setattr__(self, "seed", _as_count("seed", self.seed, minimum=0))
        for name in ("target_accept", "max_energy_error", "init_radius"):
            object.__setattr__(self, name, _as_real(name, getattr(self, name)))
        if self.init_step_size is not None:
            object.__setattr__(self, "init_step_size", _as_real("init_step_size", self.init_step_size))
        for name in ("adapt_mass", "progress"):
            if not isinstance(getattr(self, name), (bool, np.bool_)):
                raise InvalidConfiguration(f"{name} must be a boolean; got {getattr(self, name)!r}.")

        if not 0.0 < self.target_accept < 1.0:
            raise InvalidConfiguration(f"target_accept must lie in (0, 1); got {self.target_accept}.")
        if not self.max_energy_error > 0:
            raise InvalidConfiguration(f"max_energy_error must be positive; got {self.max_energy_error}.")
        if not self.init_radius >= 0:
            raise InvalidConfiguration(f"init_radius must be non-negative; got {self.init_radius}.")
        if self.init_step_size is not None and not self.init_step_size > 0:
            raise InvalidConfiguration(f"init_step_size must be positive; got {self.init_step_size}.")

    @classmethod
    def from_dict(cls, cfg: Mapping[str, Any]) -> "SamplerConfig":
        """Build from a flat mapping; ``adapt_delta`` is accepted for ``target_accept``."""
        known = {f.name for f in fields(cls)}
        values: Dict[str, Any] = {}
        for key, value in cfg.items():
            name = "target_accept" if key in {"adapt_delta", "target_accept_prob"} else key
            if name not in known:
                raise InvalidConfiguration(f"Unknown sampler setting '{key}'. Available: {sorted(known)}")
            values[name] = value
        return cls(**values)

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


def chain_seeds(seed: Optional[int], num_chains: int) -> List[int]:
    """Independent per-chain seeds derived from one run seed."""
    children = SeedSequence(seed).spawn(num_chains)
    return [int(child.generate_state(1, dtype=np.uint64)[0]) for child in children]


def _initial_state(density: LogDensity, rng: np.random.Generator, radius: float) -> PhaseState:
    """Uniform draw in ``[-radius, radius]^dim`` with a finite log density."""
    dim = density.dim
    for _ in range(_MAX_INIT_ATTEMPTS):
        q = rng.uniform(-radius, radius, size=dim)
        try:
            logp, grad = density(q)
        except NonFiniteDensity:
            continue
        return PhaseState(q=q, p=np.zeros(dim), log_density=logp, grad=grad)
    raise InitializationError(
        f"No finite log density found after {_MAX_INIT_ATTEMPTS} attempts in [-{radius}, {radius}]^{dim}."
    )


def _retune_step_size(density: DensityFn, state: PhaseState, inv_mass: np.ndarray,
                      rng: np.random.Generator, step_size: float) -> float:
    return find_reasonable_step_size(density, state, inv_mass, rng, init_step_size=step_size)


def run_chain(density: LogDensity, config: SamplerConfig, chain_id: int, seed: int) -> ChainResult:
    """Run warmup then sampling for a single chain; owns its RNG and adaptation state."""
    rng = default_rng(seed)
    start = time.perf_counter()
    state = _initial_state(density, rng, config.init_radius)
    inv_mass = np.ones(density.dim)

    if config.init_step_size is None:
        step_size = _retune_step_size(density, state, inv_mass, rng, 1.0)
    else:
        step_size = float(config.init_step_size)

    adapter = WarmupAdapter(
        num_warmup=config.num_warmup,
        dim=density.dim,
        target_accept=config.target_accept,
        initial_step_size=step_size,
        adapt_mass=config.adapt_mass,
    )
    warmup_divergences = 0
    iterator = progress(range(config.num_warmup), total=config.num_warmup,
                        desc=f"chain {chain_id} warmup", enabled=config.progress)
    for _ in iterator:
        tr = nuts_transition(
            density, state, step_size, adapter.inv_mass, rng,
            max_tree_depth=config.max_tree_depth,
            max_energy_error=config.max_energy_error,
        )
        state = tr.state
        warmup_divergences += int(tr.divergent)
        step_size, mass_updated = adapter.observe(tr.accept_stat, state.q)
        if mass_updated:
            step_size = _retune_step_size(density, state, adapter.inv_mass, rng, step_size)
            adapter.restart(step_size)
            logger.debug("chain %d: inverse mass updated, step size reset to %.4g", chain_id, step_size)

    step_size, inv_mass = adapter.finalize()
    logger.debug("chain %d: warmup done, step size %.4g", chain_id, step_size)

    result = ChainResult(
        chain_id=chain_id,
        seed=seed,
        step_size=step_size,
        inv_mass=inv_mass,
        warmup_divergences=warmup_divergences,
    )
    iterator = progress(range(config.num_samples), total=config.num_samples,
                        desc=f"chain {chain_id} sampling", enabled=config.progress)
    for _ in iterator:
        tr = nuts_transition(
            density, state, step_size, inv_mass, rng,
            max_tree_depth=config.max_tree_depth,
            max_energy_error=config.max_energy_error,
        )
        state = tr.state
        result.append(Draw(
            q=state.q.copy(),
            log_density=state.log_density,
            grad_norm=float(np.linalg.norm(state.grad)),
            step_size=tr.step_size,
            tree_depth=tr.tree_depth,
            n_leapfrog=tr.n_leapfrog,
            divergent=tr.divergent,
            max_depth_hit=tr.max_depth_hit,
            accept_stat=tr.accept_stat,
            energy=tr.energy,
        ))
    result.elapsed = time.perf_counter() - start

    divergences = int(result.stat("divergent").sum())
    saturated = int(result.stat("max_depth_hit").sum())
    if divergences:
        logger.warning(
            "chain %d: %d of %d transitions after warmup were divergent; consider raising target_accept.",
            chain_id, divergences, config.num_samples,
        )
    if saturated:
        logger.warning(
            "chain %d: %d of %d transitions hit the maximum tree depth of %d.",
            chain_id, saturated, config.num_samples, config.max_tree_depth,
        )
    return result


def _as_dataset(dataset: Any) -> Dataset:
    if isinstance(dataset, Dataset):
        return dataset
    if isinstance(dataset, tuple) and len(dataset) == 2:
        return Dataset.from_arrays(*dataset)
    raise InvalidConfiguration(f"dataset must be a Dataset or an (X, y) pair; got {type(dataset).__name__}.")


def sample(spec: ModelSpec, dataset: Any, config: Optional[SamplerConfig] = None) -> PosteriorSamples:
    """
    Draw posterior samples for ``spec`` on ``dataset``.

    ``dataset`` is a :class:`Dataset` or a raw ``(X, y)`` pair, validated via
    :meth:`Dataset.from_arrays`.  Chains are independent.  With
    ``num_workers > 1`` they run in a process pool; per-chain seeds are fixed
    up front, so results do not depend on the number of workers.
    """
    config = config or SamplerConfig()
    dataset = _as_dataset(dataset)
    if not isinstance(spec, ModelSpec):
        raise InvalidConfiguration(f"spec must be a ModelSpec; got {type(spec).__name__}.")

    density = LogDensity(spec, dataset)
    seeds = chain_seeds(config.seed, config.num_chains)
    logger.info(
        "Sampling %s: N=%d, K=%d, dim=%d, chains=%d, warmup=%d, samples=%d, target_accept=%.3g",
        spec.label, dataset.N, dataset.K, density.dim, config.num_chains,
        config.num_warmup, config.num_samples, config.target_accept,
    )

    with Timer(name=f"nuts {spec.label}", logger=logger):
        workers = min(config.num_workers, config.num_chains)
        if workers > 1:
            with ProcessPoolExecutor(max_workers=workers) as pool:
                futures = [
                    pool.submit(run_chain, density, config, chain_id, seed)
                    for chain_id, seed in enumerate(seeds)
                ]
                chains = [f.result() for f in futures]
        else:
            chains = [run_chain(density, config, chain_id, seed) for chain_id, seed in enumerate(seeds)]

    return PosteriorSamples(spec=spec, layout=density.layout, chains=chains, config=config)
