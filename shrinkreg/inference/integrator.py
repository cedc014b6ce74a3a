"""Leapfrog integration of Hamiltonian dynamics with a diagonal mass matrix.

    H(q, p) = -log p(q) + 0.5 * p^T M^{-1} p

One step with step size eps:

    p_{1/2} = p + (eps / 2) * grad log p(q)
    q'      = q + eps * M^{-1} p_{1/2}
    p'      = p_{1/2} + (eps / 2) * grad log p(q')

A negative step size integrates backwards in time.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Tuple

import numpy as np

Array = np.ndarray
DensityFn = Callable[[Array], Tuple[float, Array]]


@dataclass(frozen=True, eq=False)
class PhaseState:
    """A point in phase space with its cached log density and gradient."""

    q: Array
    p: Array
    log_density: float
    grad: Array

    def with_momentum(self, p: Array) -> "PhaseState":
        return PhaseState(q=self.q, p=p, log_density=self.log_density, grad=self.grad)


def kinetic_energy(p: Array, inv_mass: Array) -> float:
    return 0.5 * float(np.sum(p * p * inv_mass))


def hamiltonian(state: PhaseState, inv_mass: Array) -> float:
    return -state.log_density + kinetic_energy(state.p, inv_mass)


def sample_momentum(rng: np.random.Generator, inv_mass: Array) -> Array:
    """Draw p ~ Normal(0, M) for M = diag(1 / inv_mass)."""
    return rng.standard_normal(inv_mass.shape[0]) / np.sqrt(inv_mass)


def initial_state(density: DensityFn, q: Array, p: Array) -> PhaseState:
    logp, grad = density(q)
    return PhaseState(q=np.asarray(q, dtype=float), p=np.asarray(p, dtype=float), log_density=logp, grad=grad)


def leapfrog(
    density: DensityFn,
    state: PhaseState,
    step_size: float,
    inv_mass: Array,
    n_steps: int = 1,
) -> PhaseState:
    """
    Advance ``state`` by ``n_steps`` leapfrog steps.

    Raises ``NonFiniteDensity`` (from the density) when a step lands on a point
    with a non-finite log density; the caller decides how to treat it.
    """
    if n_steps < 1:
        raise ValueError(f"n_steps must be >= 1; got {n_steps}.")
    q, p, grad = state.q, state.p, state.grad
    logp = state.log_density
    half = 0.5 * step_size
    for _ in range(n_steps):
        p = p + half * grad
        q = q + step_size * (inv_mass * p)
        logp, grad = density(q)
        p = p + half * grad
    return PhaseState(q=q, p=p, log_density=logp, grad=grad)
