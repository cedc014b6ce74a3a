from __future__ import annotations
"""Model registry and builders for experiments.

Models are constructed from nested config dicts such as::

    model:
      name: horseshoe
      tau: null          # or a positive number to fix the global scale
      sigma_scale: 5.0
    inference:
      nuts:
        num_warmup: 1000
        num_samples: 1000
        num_chains: 4
        target_accept_prob: 0.95
"""

from typing import Any, Callable, Dict, Optional

from shrinkreg.errors import InvalidConfiguration
from shrinkreg.inference.sampler import SamplerConfig
from shrinkreg.models.bayes_regression import (
    BayesianLasso,
    BayesianRidge,
    BayesianShrinkageRegression,
    HorseshoeRegression,
)
from shrinkreg.models.spec import ModelSpec

# ------------------------------
# Registry and decorator
# ------------------------------
REGISTRY: Dict[str, Callable[[Dict[str, Any]], Any]] = {}


def register(name: str) -> Callable[[Callable[[Dict[str, Any]], Any]], Callable[[Dict[str, Any]], Any]]:
    """Register a builder via @register('model_name')."""

    def deco(fn: Callable[[Dict[str, Any]], Any]) -> Callable[[Dict[str, Any]], Any]:
        key = name.strip().lower()
        if key in REGISTRY:
            raise ValueError(f"Model '{key}' already registered.")
        REGISTRY[key] = fn
        return fn

    return deco


def _get(cfg: Dict[str, Any], path: str, default: Any = None) -> Any:
    """Safe getter: _get(cfg, 'model.tau', None)."""
    cur: Any = cfg
    for seg in path.split("."):
        if not isinstance(cur, dict) or seg not in cur:
            return default
        cur = cur[seg]
    return cur


# ------------------------------
# Helpers
# ------------------------------


def _resolve_tau(cfg: Dict[str, Any]) -> Optional[float]:
    """``model.tau``: a positive number fixes tau; null / 'estimate' samples it."""
    raw = _get(cfg, "model.tau", None)
    if raw is None:
        return None
    if isinstance(raw, str):
        if raw.strip().lower() in {"estimate", "estimated", "auto", "none", "null"}:
            return None
        try:
            return float(raw)
        except ValueError as exc:
            raise InvalidConfiguration(f"model.tau must be a number or 'estimate'; got '{raw}'.") from exc
    return float(raw)


def _nuts_common_kwargs(cfg: Dict[str, Any]) -> Dict[str, Any]:
    """
    Extract kwargs shared by all NUTS-backed regressions.

    Sampler values are passed through unconverted; ``SamplerConfig`` validates
    them and raises ``InvalidConfiguration`` for malformed entries.
    """
    num_warmup = _get(cfg, "inference.nuts.num_warmup", _get(cfg, "model.num_warmup", 1000))
    num_samples = _get(cfg, "inference.nuts.num_samples", _get(cfg, "model.num_samples", 1000))
    num_chains = _get(cfg, "inference.nuts.num_chains", _get(cfg, "model.num_chains", 4))
    num_workers = _get(cfg, "inference.nuts.num_workers", _get(cfg, "runtime.num_workers", 1))
    max_tree_depth = _get(cfg, "inference.nuts.max_tree_depth", 10)
    target_accept = _get(
        cfg,
        "inference.nuts.target_accept_prob",
        _get(cfg, "inference.nuts.adapt_delta", _get(cfg, "model.target_accept_prob", 0.8)),
    )
    progress_bar = bool(_get(cfg, "model.progress_bar", _get(cfg, "runtime.progress_bar", False)))
    seed_val = None
    for path in ("model.seed", "inference.nuts.seed", "inference.seed", "runtime.seed", "seed"):
        seed_val = _get(cfg, path, None)
        if seed_val is not None:
            break

    kwargs: Dict[str, Any] = {
        "tau": _resolve_tau(cfg),
        "tau_scale": float(_get(cfg, "model.tau_scale", 1.0)),
        "sigma_scale": float(_get(cfg, "model.sigma_scale", 5.0)),
        "intercept_scale": float(_get(cfg, "model.intercept_scale", 10.0)),
        "num_warmup": num_warmup,
        "num_samples": num_samples,
        "num_chains": num_chains,
        "num_workers": num_workers,
        "target_accept_prob": 0.8 if target_accept is None else target_accept,
        "max_tree_depth": max_tree_depth,
        "max_energy_error": _get(cfg, "inference.nuts.max_energy_error", 1000.0),
        "init_radius": _get(cfg, "inference.nuts.init_radius", 2.0),
        "init_step_size": _get(cfg, "inference.nuts.init_step_size", None),
        "adapt_mass": _get(cfg, "inference.nuts.adapt_mass", True),
        "progress_bar": progress_bar,
    }
    if seed_val is not None:
        kwargs["seed"] = seed_val
    return kwargs


# ------------------------------
# Builders
# ------------------------------


@register("bayes_ridge")
@register("ridge")
@register("normal")
def _build_ridge(cfg: Dict[str, Any]) -> BayesianShrinkageRegression:
    return BayesianRidge(**_nuts_common_kwargs(cfg))


@register("bayes_lasso")
@register("lasso")
@register("laplace")
def _build_lasso(cfg: Dict[str, Any]) -> BayesianShrinkageRegression:
    return BayesianLasso(**_nuts_common_kwargs(cfg))


@register("horseshoe")
@register("hs")
def _build_horseshoe(cfg: Dict[str, Any]) -> BayesianShrinkageRegression:
    return HorseshoeRegression(**_nuts_common_kwargs(cfg))


# ------------------------------
# Public API
# ------------------------------


def get_available_models() -> Dict[str, Callable[[Dict[str, Any]], Any]]:
    """Return a copy of registered model builder mapping."""
    return dict(REGISTRY)


def get_builder(name: str) -> Callable[[Dict[str, Any]], Any]:
    """Get builder by name (case-insensitive, supports aliases)."""
    key = (name or "").strip().lower()
    if key not in REGISTRY:
        raise KeyError(f"Unknown model '{name}'. Available: {sorted(REGISTRY.keys())}")
    return REGISTRY[key]


def get_model_name_from_config(cfg: Dict[str, Any]) -> str:
    """Support both 'model.name' and 'model.type' keys."""
    name = _get(cfg, "model.name", None)
    if name is None:
        name = _get(cfg, "model.type", None)
    if name is None:
        raise KeyError("Config requires 'model.name' (or 'model.type').")
    return str(name)


def build_from_config(cfg: Dict[str, Any]) -> BayesianShrinkageRegression:
    """Instantiate model from config dict."""
    name = get_model_name_from_config(cfg)
    builder = get_builder(name)
    return builder(cfg)


def model_spec_from_config(cfg: Dict[str, Any]) -> ModelSpec:
    """The :class:`ModelSpec` a config describes, without building an estimator."""
    return build_from_config(cfg).model_spec()


def sampler_config_from_config(cfg: Dict[str, Any]) -> SamplerConfig:
    """The :class:`SamplerConfig` a config describes."""
    return build_from_config(cfg).sampler_config()
