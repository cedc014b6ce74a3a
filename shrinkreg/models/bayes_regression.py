"""Bayesian shrinkage regression estimators backed by the NUTS sampler."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import numpy as np

from shrinkreg.diagnostics.convergence import SamplerDiagnostics
from shrinkreg.errors import InvalidConfiguration
from shrinkreg.inference.results import PosteriorSamples
from shrinkreg.inference.sampler import SamplerConfig, sample
from .spec import Dataset, ModelSpec, Prior

ArrayLike = Any


def _ensure_2d(array: ArrayLike, name: str) -> np.ndarray:
    """Coerce input to (n, p) float64 array."""
    arr = np.asarray(array, dtype=np.float64)
    if arr.ndim != 2:
        raise InvalidConfiguration(f"{name} must be a 2D array; got shape {arr.shape}.")
    return arr


def _ensure_1d(array: ArrayLike, name: str) -> np.ndarray:
    """Coerce input to (n,) float64 array."""
    arr = np.asarray(array, dtype=np.float64)
    if arr.ndim != 1:
        raise InvalidConfiguration(f"{name} must be a 1D array; got shape {arr.shape}.")
    return arr


def _pool(arr: Optional[np.ndarray]) -> Optional[np.ndarray]:
    if arr is None:
        return None
    return arr.reshape((-1,) + arr.shape[2:])


@dataclass
class BayesianShrinkageRegression:
    """
    Linear regression with a ridge, lasso or horseshoe prior on the coefficients.

    ``tau=None`` samples the global scale under a half-Cauchy(0, tau_scale)
    hyperprior; a number fixes it.  Posterior draws are pooled over chains in
    the ``*_samples_`` attributes; per-chain output stays on ``posterior_``.
    """

    prior: str = "ridge"
    tau: Optional[float] = None
    tau_scale: float = 1.0
    sigma_scale: float = 5.0
    intercept_scale: float = 10.0
    num_warmup: int = 1000
    num_samples: int = 1000
    num_chains: int = 4
    num_workers: int = 1
    target_accept_prob: float = 0.8
    max_tree_depth: int = 10
    max_energy_error: float = 1000.0
    init_radius: float = 2.0
    init_step_size: Optional[float] = None
    adapt_mass: bool = True
    seed: Optional[int] = None
    progress_bar: bool = False

    coef_samples_: Optional[np.ndarray] = field(default=None, init=False)
    intercept_samples_: Optional[np.ndarray] = field(default=None, init=False)
    sigma_samples_: Optional[np.ndarray] = field(default=None, init=False)
    tau_samples_: Optional[np.ndarray] = field(default=None, init=False)
    lambda_samples_: Optional[np.ndarray] = field(default=None, init=False)
    coef_: Optional[np.ndarray] = field(default=None, init=False)
    intercept_: Optional[float] = field(default=None, init=False)
    posterior_: Optional[PosteriorSamples] = field(default=None, init=False, repr=False)
    diagnostics_: Optional[SamplerDiagnostics] = field(default=None, init=False, repr=False)

    def __post_init__(self) -> None:
        # validates prior/tau/scales early
        self.model_spec()
        self.sampler_config()

    def model_spec(self) -> ModelSpec:
        return ModelSpec(
            prior=Prior.parse(self.prior),
            tau=self.tau,
            tau_scale=self.tau_scale,
            sigma_scale=self.sigma_scale,
            intercept_scale=self.intercept_scale,
        )

    def sampler_config(self) -> SamplerConfig:
        return SamplerConfig(
            num_warmup=self.num_warmup,
            num_samples=self.num_samples,
            num_chains=self.num_chains,
            num_workers=self.num_workers,
            target_accept=self.target_accept_prob,
            max_tree_depth=self.max_tree_depth,
            max_energy_error=self.max_energy_error,
            init_radius=self.init_radius,
            init_step_size=self.init_step_size,
            adapt_mass=self.adapt_mass,
            seed=self.seed,
            progress=bool(self.progress_bar),
        )

    def fit(self, X: ArrayLike, y: ArrayLike) -> "BayesianShrinkageRegression":
        X_arr = _ensure_2d(X, "X")
        y_arr = _ensure_1d(y, "y")
        if X_arr.shape[0] != y_arr.shape[0]:
            raise InvalidConfiguration("X and y must have matching number of rows.")

        dataset = Dataset.from_arrays(X_arr, y_arr)
        posterior = sample(self.model_spec(), dataset, self.sampler_config())
        self._store_samples(posterior)
        return self

    def _store_samples(self, posterior: PosteriorSamples) -> None:
        draws = posterior.draws
        self.posterior_ = posterior
        self.coef_samples_ = _pool(draws["b"])
        self.intercept_samples_ = _pool(draws["a"])
        self.sigma_samples_ = _pool(draws["sigma"])
        self.tau_samples_ = _pool(draws.get("tau"))
        self.lambda_samples_ = _pool(draws.get("lambda"))

        self.coef_ = self.coef_samples_.mean(axis=0)
        self.intercept_ = float(self.intercept_samples_.mean())
        self.diagnostics_ = posterior.diagnostics()

    def predict(self, X: ArrayLike) -> np.ndarray:
        if self.coef_ is None:
            raise RuntimeError("Model must be fitted before calling predict().")
        X_arr = _ensure_2d(X, "X")
        if X_arr.shape[1] != self.coef_.shape[0]:
            raise InvalidConfiguration(
                f"X has {X_arr.shape[1]} columns; model was fitted with {self.coef_.shape[0]}."
            )
        return X_arr @ self.coef_ + float(self.intercept_ or 0.0)

    def get_posterior_summaries(self) -> Dict[str, Any]:
        if self.coef_samples_ is None:
            raise RuntimeError("Model must be fitted before requesting summaries.")
        summaries: Dict[str, Any] = {
            "coef_mean": self.coef_samples_.mean(axis=0),
            "coef_median": np.median(self.coef_samples_, axis=0),
            "coef_ci95": np.quantile(self.coef_samples_, [0.025, 0.975], axis=0),
            "intercept_mean": float(self.intercept_samples_.mean()),
        }
        if self.sigma_samples_ is not None:
            summaries["sigma_mean"] = float(self.sigma_samples_.mean())
        if self.tau_samples_ is not None:
            summaries["tau_mean"] = float(self.tau_samples_.mean())
        if self.lambda_samples_ is not None:
            summaries["lambda_mean"] = self.lambda_samples_.mean(axis=0)
        if self.diagnostics_ is not None:
            summaries["divergences"] = self.diagnostics_.divergences
            summaries["max_depth_hits"] = self.diagnostics_.max_depth_hits
            summaries["rhat_max"] = self.diagnostics_.max_rhat
            summaries["ess_min"] = self.diagnostics_.min_ess
        return summaries


@dataclass
class BayesianRidge(BayesianShrinkageRegression):
    """Independent normal prior on each coefficient."""

    prior: str = "ridge"


@dataclass
class BayesianLasso(BayesianShrinkageRegression):
    """Independent Laplace prior on each coefficient."""

    prior: str = "lasso"


@dataclass
class HorseshoeRegression(BayesianShrinkageRegression):
    """Horseshoe prior: per-coefficient half-Cauchy local scales times a global tau."""

    prior: str = "horseshoe"
