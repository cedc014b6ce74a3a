from __future__ import annotations

import numpy as np
import numpy.testing as npt
import pytest
from scipy.stats import halfcauchy, laplace, norm

from shrinkreg.errors import InvalidConfiguration, NonFiniteDensity
from shrinkreg.models.density import LogDensity
from shrinkreg.models.spec import Dataset, ModelSpec, ParameterLayout, Prior


def _dataset(seed: int = 0, n: int = 25, k: int = 3) -> Dataset:
    rng = np.random.default_rng(seed)
    X = rng.normal(size=(n, k))
    y = 0.5 + X @ np.linspace(1.0, -1.0, k) + 0.3 * rng.normal(size=n)
    return Dataset.from_arrays(X, y)


def _random_point(layout: ParameterLayout, seed: int = 1) -> np.ndarray:
    rng = np.random.default_rng(seed)
    q = rng.uniform(-1.0, 1.0, size=layout.dim)
    # keep lasso coefficients away from the kink at zero
    b = q[layout.slices["b"]]
    q[layout.slices["b"]] = np.where(np.abs(b) < 0.1, 0.3, b)
    return q


def _likelihood_and_shared(data: Dataset, values: dict, spec: ModelSpec) -> float:
    a, b, sigma = values["a"], values["b"], values["sigma"]
    total = norm.logpdf(data.y, loc=a + data.X @ b, scale=sigma).sum()
    total += norm.logpdf(a, 0.0, spec.intercept_scale)
    total += halfcauchy.logpdf(sigma, scale=spec.sigma_scale) + np.log(sigma)
    return float(total)


def test_ridge_fixed_tau_matches_scipy():
    data = _dataset()
    spec = ModelSpec(prior="ridge", tau=0.7)
    density = LogDensity(spec, data)
    q = _random_point(density.layout)
    values = density.layout.constrain(q)

    expected = _likelihood_and_shared(data, values, spec)
    expected += norm.logpdf(values["b"], 0.0, 0.7).sum()

    npt.assert_allclose(density.log_prob(q), expected, rtol=1e-10)


def test_lasso_estimated_tau_matches_scipy():
    data = _dataset(seed=3)
    spec = ModelSpec(prior="lasso", tau=None, tau_scale=2.0)
    density = LogDensity(spec, data)
    q = _random_point(density.layout, seed=4)
    values = density.layout.constrain(q)
    tau = values["tau"]

    expected = _likelihood_and_shared(data, values, spec)
    expected += laplace.logpdf(values["b"], 0.0, tau).sum()
    expected += halfcauchy.logpdf(tau, scale=2.0) + np.log(tau)

    npt.assert_allclose(density.log_prob(q), expected, rtol=1e-10)


def test_horseshoe_estimated_tau_matches_scipy():
    data = _dataset(seed=5, k=4)
    spec = ModelSpec(prior="horseshoe", tau=None)
    density = LogDensity(spec, data)
    q = _random_point(density.layout, seed=6)
    values = density.layout.constrain(q)
    tau, lam = values["tau"], values["lambda"]

    expected = _likelihood_and_shared(data, values, spec)
    expected += norm.logpdf(values["b"], 0.0, lam * tau).sum()
    expected += (halfcauchy.logpdf(lam, scale=1.0) + np.log(lam)).sum()
    expected += halfcauchy.logpdf(tau, scale=1.0) + np.log(tau)

    npt.assert_allclose(density.log_prob(q), expected, rtol=1e-10)


@pytest.mark.parametrize("prior", ["ridge", "lasso", "horseshoe"])
@pytest.mark.parametrize("tau", [None, 0.4])
def test_gradient_matches_finite_differences(prior, tau):
    data = _dataset(seed=7, k=3)
    density = LogDensity(ModelSpec(prior=prior, tau=tau), data)
    q = _random_point(density.layout, seed=8)
    _, grad = density(q)

    h = 1e-6
    numeric = np.empty_like(q)
    for i in range(q.size):
        step = np.zeros_like(q)
        step[i] = h
        numeric[i] = (density.log_prob(q + step) - density.log_prob(q - step)) / (2 * h)

    npt.assert_allclose(grad, numeric, rtol=1e-5, atol=1e-5)


def test_overflowing_scale_raises_non_finite_density():
    data = _dataset()
    density = LogDensity(ModelSpec(prior="ridge", tau=1.0), data)
    q = np.zeros(density.dim)
    q[density.layout.slices["sigma"]] = -800.0
    with pytest.raises(NonFiniteDensity):
        density(q)

    q = np.zeros(density.dim)
    q[density.layout.slices["b"]] = 1e200
    with pytest.raises(NonFiniteDensity):
        density(q)


def test_horseshoe_tiny_local_scale_raises_non_finite_density():
    data = _dataset()
    density = LogDensity(ModelSpec(prior="horseshoe", tau=1e-3), data)
    q = np.zeros(density.dim)
    q[density.layout.slices["lambda"]] = -400.0
    with pytest.raises(NonFiniteDensity):
        density(q)


def test_layout_names_and_constrain_round_trip():
    layout = ParameterLayout.for_model(ModelSpec(prior=Prior.HORSESHOE, tau=None), K=2)
    assert layout.dim == 1 + 2 + 1 + 1 + 2
    assert layout.names == ["a", "b[1]", "b[2]", "sigma", "tau", "lambda[1]", "lambda[2]"]

    values = {"a": 0.3, "b": [1.0, -2.0], "sigma": 0.5, "tau": 0.1, "lambda": [2.0, 0.25]}
    q = layout.unconstrain(values)
    back = layout.constrain(q)
    assert back["sigma"] == pytest.approx(0.5)
    npt.assert_allclose(back["lambda"], [2.0, 0.25])
    npt.assert_allclose(q[layout.slices["sigma"]], np.log(0.5))


def test_ridge_fixed_tau_layout_has_no_scale_blocks():
    layout = ParameterLayout.for_model(ModelSpec(prior="ridge", tau=2.0), K=3)
    assert layout.blocks == ["a", "b", "sigma"]
    assert layout.dim == 5


def test_dataset_validation_fails_fast():
    X = np.ones((5, 2))
    with pytest.raises(InvalidConfiguration):
        Dataset.from_arrays(X, np.ones(4))
    with pytest.raises(InvalidConfiguration):
        Dataset(X=X, y=np.ones(5), N=5, K=3)
    with pytest.raises(InvalidConfiguration):
        Dataset.from_arrays(np.full((3, 1), np.nan), np.ones(3))


def test_model_spec_validation():
    with pytest.raises(InvalidConfiguration):
        ModelSpec(prior="elastic", tau=1.0)
    with pytest.raises(InvalidConfiguration):
        ModelSpec(prior="ridge", tau=-1.0)
    with pytest.raises(InvalidConfiguration):
        ModelSpec(prior="lasso", sigma_scale=0.0)
    assert ModelSpec(prior="hs").prior is Prior.HORSESHOE
    assert ModelSpec(prior="laplace", tau=None).estimate_tau
