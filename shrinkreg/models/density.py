"""Log posterior density and closed-form gradient for shrinkage regression.

All positive parameters live on the log scale.  For a positive parameter
``s = exp(u)`` the log-Jacobian ``u`` is added to the log density, so the
gradient of each prior term with respect to ``u`` is ``s * d/ds log p(s) + 1``.

Model (``r = y - a - X b``):

    y      ~ Normal(a + X b, sigma)
    a      ~ Normal(0, intercept_scale)
    sigma  ~ HalfCauchy(0, sigma_scale)
    ridge:      b_k ~ Normal(0, tau)
    lasso:      b_k ~ Laplace(0, tau)
    horseshoe:  b_k ~ Normal(0, lambda_k * tau),  lambda_k ~ HalfCauchy(0, 1)
    tau    ~ HalfCauchy(0, tau_scale)   (only when tau is estimated)
"""
from __future__ import annotations

import math
from typing import Tuple

import numpy as np

from shrinkreg.errors import NonFiniteDensity
from .spec import Dataset, ModelSpec, ParameterLayout, Prior

Array = np.ndarray

_LOG_2PI = math.log(2.0 * math.pi)
_LOG_2_OVER_PI = math.log(2.0 / math.pi)
# exp(2 * x) overflows float64 beyond this
_MAX_LOG_SCALE = 350.0


def _half_cauchy_log_scale(u: Array, scale: float) -> Tuple[Array, Array]:
    """
    log HalfCauchy(exp(u) | 0, scale) + u and its derivative in ``u``.

    Written in terms of ``z = u - log(scale)`` so that large ``u`` does not
    square an overflowing value.
    """
    z = u - math.log(scale)
    # log(1 + exp(2z)) and its derivative 2 * sigmoid(2z)
    log1p_term = np.logaddexp(0.0, 2.0 * z)
    sig = 0.5 * (1.0 + np.tanh(z))
    logp = _LOG_2_OVER_PI - math.log(scale) - log1p_term + u
    grad = 1.0 - 2.0 * sig
    return logp, grad


class LogDensity:
    """
    Callable evaluating ``(log p(q | data), grad)`` on the unconstrained space.

    The evaluator is generic over the three priors; the sampler only ever sees
    the flat vector ``q`` and never the model internals.
    """

    def __init__(self, spec: ModelSpec, dataset: Dataset) -> None:
        self.spec = spec
        self.dataset = dataset
        self.layout = ParameterLayout.for_model(spec, dataset.K)
        self._X = np.asarray(dataset.X, dtype=float)
        self._y = np.asarray(dataset.y, dtype=float)
        self._log_tau_fixed = None if spec.tau is None else math.log(spec.tau)

    @property
    def dim(self) -> int:
        return self.layout.dim

    def __call__(self, q: Array) -> Tuple[float, Array]:
        q = np.asarray(q, dtype=float)
        if q.shape != (self.layout.dim,):
            raise ValueError(f"q must have shape ({self.layout.dim},); got {q.shape}.")
        with np.errstate(over="ignore", invalid="ignore", divide="ignore"):
            logp, grad = self._evaluate(q)
        if not math.isfinite(logp) or not np.all(np.isfinite(grad)):
            raise NonFiniteDensity(f"log density is not finite (logp={logp}).")
        return logp, grad

    def log_prob(self, q: Array) -> float:
        return self(q)[0]

    def _evaluate(self, q: Array) -> Tuple[float, Array]:
        spec = self.spec
        sl = self.layout.slices
        X, y = self._X, self._y
        N, K = X.shape
        grad = np.zeros_like(q)

        a = q[sl["a"]][0]
        b = q[sl["b"]]
        u_sigma = q[sl["sigma"]][0]
        if u_sigma > _MAX_LOG_SCALE or u_sigma < -_MAX_LOG_SCALE:
            raise NonFiniteDensity(f"log sigma={u_sigma:.3g} is outside the representable range.")
        inv_sigma2 = math.exp(-2.0 * u_sigma)

        # likelihood
        resid = y - a - X @ b
        ssr = float(resid @ resid)
        logp = -0.5 * N * _LOG_2PI - N * u_sigma - 0.5 * ssr * inv_sigma2
        grad[sl["a"]] += resid.sum() * inv_sigma2
        grad[sl["b"]] += (X.T @ resid) * inv_sigma2
        grad[sl["sigma"]] += -N + ssr * inv_sigma2

        # intercept
        s_a = spec.intercept_scale
        logp += -0.5 * _LOG_2PI - math.log(s_a) - 0.5 * (a / s_a) ** 2
        grad[sl["a"]] += -a / s_a ** 2

        # sigma
        lp, g = _half_cauchy_log_scale(np.array([u_sigma]), spec.sigma_scale)
        logp += float(lp[0])
        grad[sl["sigma"]] += g

        # tau
        if spec.estimate_tau:
            u_tau = q[sl["tau"]][0]
            lp, g = _half_cauchy_log_scale(np.array([u_tau]), spec.tau_scale)
            logp += float(lp[0])
            grad[sl["tau"]] += g
        else:
            u_tau = self._log_tau_fixed
        if abs(u_tau) > _MAX_LOG_SCALE:
            raise NonFiniteDensity(f"log tau={u_tau:.3g} is outside the representable range.")

        # coefficients
        if spec.prior is Prior.RIDGE:
            inv_tau2 = math.exp(-2.0 * u_tau)
            bb = float(b @ b)
            logp += -0.5 * K * _LOG_2PI - K * u_tau - 0.5 * bb * inv_tau2
            grad[sl["b"]] += -b * inv_tau2
            if spec.estimate_tau:
                grad[sl["tau"]] += -K + bb * inv_tau2
        elif spec.prior is Prior.LASSO:
            inv_tau = math.exp(-u_tau)
            abs_sum = float(np.abs(b).sum())
            logp += -K * (math.log(2.0) + u_tau) - abs_sum * inv_tau
            grad[sl["b"]] += -np.sign(b) * inv_tau
            if spec.estimate_tau:
                grad[sl["tau"]] += -K + abs_sum * inv_tau
        else:
            w = q[sl["lambda"]]
            log_scale = w + u_tau
            if np.any(np.abs(log_scale) > _MAX_LOG_SCALE):
                raise NonFiniteDensity("horseshoe scale lambda * tau is outside the representable range.")
            z2 = (b * np.exp(-log_scale)) ** 2
            logp += float(-0.5 * K * _LOG_2PI - log_scale.sum() - 0.5 * z2.sum())
            grad[sl["b"]] += -b * np.exp(-2.0 * log_scale)
            grad[sl["lambda"]] += -1.0 + z2
            if spec.estimate_tau:
                grad[sl["tau"]] += float(np.sum(-1.0 + z2))
            lp, g = _half_cauchy_log_scale(w, 1.0)
            logp += float(lp.sum())
            grad[sl["lambda"]] += g

        return float(logp), grad
