from __future__ import annotations

import numpy as np
import numpy.testing as npt
import pytest

from shrinkreg.inference.integrator import PhaseState, hamiltonian, initial_state, leapfrog, sample_momentum
from shrinkreg.models.density import LogDensity
from shrinkreg.models.spec import Dataset, ModelSpec


def _ridge_density(seed: int = 0) -> LogDensity:
    rng = np.random.default_rng(seed)
    X = rng.normal(size=(30, 3))
    y = X @ np.array([1.0, -0.5, 0.0]) + 0.5 * rng.normal(size=30)
    return LogDensity(ModelSpec(prior="ridge", tau=1.0), Dataset.from_arrays(X, y))


def _start(density: LogDensity, seed: int = 1) -> PhaseState:
    rng = np.random.default_rng(seed)
    q = rng.uniform(-0.5, 0.5, size=density.dim)
    p = rng.standard_normal(density.dim)
    return initial_state(density, q, p)


def test_leapfrog_is_reversible():
    density = _ridge_density()
    inv_mass = np.ones(density.dim)
    start = _start(density)

    forward = leapfrog(density, start, 0.01, inv_mass, n_steps=25)
    back = leapfrog(density, forward.with_momentum(-forward.p), 0.01, inv_mass, n_steps=25)

    npt.assert_allclose(back.q, start.q, atol=1e-8)
    npt.assert_allclose(-back.p, start.p, atol=1e-8)


def test_negative_step_size_runs_backwards():
    density = _ridge_density()
    inv_mass = np.full(density.dim, 0.5)
    start = _start(density, seed=2)

    forward = leapfrog(density, start, 0.01, inv_mass, n_steps=10)
    back = leapfrog(density, forward, -0.01, inv_mass, n_steps=10)

    npt.assert_allclose(back.q, start.q, atol=1e-8)
    npt.assert_allclose(back.p, start.p, atol=1e-8)


def test_small_steps_conserve_energy():
    density = _ridge_density(seed=3)
    inv_mass = np.ones(density.dim)
    start = _start(density, seed=4)

    end = leapfrog(density, start, 1e-3, inv_mass, n_steps=50)

    assert abs(hamiltonian(end, inv_mass) - hamiltonian(start, inv_mass)) < 1e-2


def test_sampled_momentum_has_mass_matrix_covariance():
    rng = np.random.default_rng(5)
    inv_mass = np.array([4.0, 0.25])
    draws = np.stack([sample_momentum(rng, inv_mass) for _ in range(20000)])
    npt.assert_allclose(draws.var(axis=0), 1.0 / inv_mass, rtol=0.05)


def test_leapfrog_rejects_non_positive_step_count():
    density = _ridge_density()
    with pytest.raises(ValueError):
        leapfrog(density, _start(density), 0.1, np.ones(density.dim), n_steps=0)
