from __future__ import annotations

from pathlib import Path

import pytest

from shrinkreg.errors import InvalidConfiguration
from shrinkreg.experiments.registry import (
    build_from_config,
    get_available_models,
    model_spec_from_config,
    sampler_config_from_config,
)
from shrinkreg.models.bayes_regression import BayesianLasso, HorseshoeRegression
from shrinkreg.models.spec import Prior
from shrinkreg.utils.config_parser import load_config, merge_overrides

CONFIGS = Path(__file__).resolve().parents[1] / "configs"


def test_registry_exposes_priors_and_aliases():
    names = get_available_models()
    for key in ("ridge", "lasso", "horseshoe", "hs", "bayes_ridge", "laplace"):
        assert key in names


def test_horseshoe_config_estimates_tau():
    cfg = load_config(CONFIGS / "horseshoe_estimated_tau.yaml")
    model = build_from_config(cfg)

    assert isinstance(model, HorseshoeRegression)
    assert model.tau is None
    assert model.seed == 11
    spec = model_spec_from_config(cfg)
    assert spec.prior is Prior.HORSESHOE
    assert spec.estimate_tau
    sampler = sampler_config_from_config(cfg)
    assert sampler.target_accept == pytest.approx(0.99)
    assert sampler.max_tree_depth == 12
    assert sampler.num_workers == 4


def test_lasso_config_fixes_tau():
    cfg = load_config(CONFIGS / "lasso_fixed_tau.yaml")
    model = build_from_config(cfg)
    assert isinstance(model, BayesianLasso)
    assert model.tau == pytest.approx(0.5)
    assert model.target_accept_prob == pytest.approx(0.9)


def test_overrides_are_cast_and_nested():
    cfg = load_config(CONFIGS / "synthetic_ridge.yaml")
    merged = merge_overrides(cfg, {"inference.nuts.num_chains": "2", "model.tau": "0.1", "model.name": "lasso"})

    assert merged["inference"]["nuts"]["num_chains"] == 2
    assert cfg["inference"]["nuts"]["num_chains"] == 4
    model = build_from_config(merged)
    assert isinstance(model, BayesianLasso)
    assert model.tau == pytest.approx(0.1)
    assert model.num_chains == 2


def test_unknown_model_and_bad_tau_are_rejected():
    with pytest.raises(KeyError):
        build_from_config({"model": {"name": "elastic_net"}})
    with pytest.raises(KeyError):
        build_from_config({"model": {}})
    with pytest.raises(InvalidConfiguration):
        build_from_config({"model": {"name": "ridge", "tau": "wide"}})
    with pytest.raises(InvalidConfiguration):
        build_from_config({"model": {"name": "ridge", "tau": 1.0}, "inference": {"nuts": {"num_samples": 0}}})


def test_non_mapping_yaml_is_rejected(tmp_path):
    path = tmp_path / "bad.yaml"
    path.write_text("- a\n- b\n", encoding="utf-8")
    with pytest.raises(InvalidConfiguration):
        load_config(path)


def test_override_through_scalar_value_is_a_config_error():
    cfg = load_config(CONFIGS / "lasso_fixed_tau.yaml")
    with pytest.raises(InvalidConfiguration):
        merge_overrides(cfg, {"model.tau.x": "1"})


def test_sampler_tuning_keys_reach_sampler_config():
    cfg = load_config(CONFIGS / "synthetic_ridge.yaml")
    merged = merge_overrides(
        cfg,
        {
            "inference.nuts.max_energy_error": "500.0",
            "inference.nuts.init_radius": "0.5",
            "inference.nuts.init_step_size": "0.05",
            "inference.nuts.adapt_mass": "false",
        },
    )
    sampler = sampler_config_from_config(merged)
    assert sampler.max_energy_error == pytest.approx(500.0)
    assert sampler.init_radius == pytest.approx(0.5)
    assert sampler.init_step_size == pytest.approx(0.05)
    assert sampler.adapt_mass is False

    defaults = sampler_config_from_config(cfg)
    assert defaults.max_energy_error == pytest.approx(1000.0)
    assert defaults.init_step_size is None
    assert defaults.adapt_mass is True


def test_malformed_sampler_values_in_config_fail_fast():
    cfg = load_config(CONFIGS / "synthetic_ridge.yaml")
    with pytest.raises(InvalidConfiguration):
        build_from_config(merge_overrides(cfg, {"inference.nuts.num_warmup": "10.5"}))
    with pytest.raises(InvalidConfiguration):
        build_from_config(merge_overrides(cfg, {"inference.nuts.adapt_mass": "maybe"}))
