"""End-to-end behaviour of the sampler on small regression problems."""
from __future__ import annotations

import numpy as np
import pytest
from sklearn.linear_model import LinearRegression

from data.generators import SyntheticConfig, generate_synthetic
from shrinkreg.inference.sampler import SamplerConfig, sample
from shrinkreg.models.spec import Dataset, ModelSpec


@pytest.fixture(scope="module")
def three_feature_data() -> Dataset:
    synth = generate_synthetic(
        SyntheticConfig(n=100, beta=[1.0, -0.5, 0.0], noise_sigma=0.2, standardize=True, seed=7)
    )
    return Dataset.from_arrays(synth.X, synth.y)


@pytest.fixture(scope="module")
def ridge_posterior(three_feature_data):
    config = SamplerConfig(num_warmup=500, num_samples=500, num_chains=4, seed=2024)
    return sample(ModelSpec(prior="ridge", tau=1.0), three_feature_data, config)


def test_ridge_recovers_coefficients(ridge_posterior):
    b_mean = ridge_posterior.posterior_mean("b")
    assert np.all(np.abs(b_mean - np.array([1.0, -0.5, 0.0])) < 0.15)
    assert abs(ridge_posterior.posterior_mean("sigma") - 0.2) < 0.1


def test_ridge_run_converges_without_divergences(ridge_posterior):
    diag = ridge_posterior.diagnostics()
    assert diag.divergences == 0
    assert diag.max_rhat < 1.1
    assert diag.min_ess > 100
    assert set(diag.rhat) == {"a", "b[1]", "b[2]", "b[3]", "sigma"}


def test_wide_prior_matches_least_squares(three_feature_data):
    config = SamplerConfig(num_warmup=400, num_samples=400, num_chains=2, seed=5)
    post = sample(ModelSpec(prior="ridge", tau=1000.0), three_feature_data, config)

    ols = LinearRegression().fit(three_feature_data.X, three_feature_data.y)
    np.testing.assert_allclose(post.posterior_mean("b"), ols.coef_, atol=0.02)
    assert abs(post.posterior_mean("a") - ols.intercept_) < 0.02


def test_smaller_tau_shrinks_coefficients(three_feature_data):
    config = SamplerConfig(num_warmup=300, num_samples=300, num_chains=2, seed=9)
    tight = sample(ModelSpec(prior="ridge", tau=0.01), three_feature_data, config).posterior_mean("b")
    loose = sample(ModelSpec(prior="ridge", tau=100.0), three_feature_data, config).posterior_mean("b")

    assert np.all(np.abs(tight) <= np.abs(loose) + 0.01)
    assert np.linalg.norm(tight) < 0.5 * np.linalg.norm(loose)


def test_higher_target_accept_trades_step_size_for_fewer_divergences():
    synth = generate_synthetic(
        SyntheticConfig(n=30, beta=[1.0, 0.0, 0.0, 0.0, 0.0], noise_sigma=1.0, seed=17)
    )
    data = Dataset.from_arrays(synth.X, synth.y)
    spec = ModelSpec(prior="horseshoe", tau=0.05)

    def run(target):
        config = SamplerConfig(
            num_warmup=300, num_samples=300, num_chains=2, target_accept=target, max_tree_depth=8, seed=31
        )
        return sample(spec, data, config).diagnostics()

    loose = run(0.5)
    strict = run(0.99)

    assert np.all(strict.step_size < loose.step_size)
    assert strict.divergences < loose.divergences
