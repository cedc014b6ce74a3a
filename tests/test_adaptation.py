from __future__ import annotations

import math

import numpy as np
import numpy.testing as npt

from shrinkreg.inference.adaptation import DualAveraging, RunningVariance, WarmupAdapter, make_warmup_windows


def test_windows_for_default_warmup():
    assert make_warmup_windows(1000) == [(75, 100), (100, 150), (150, 250), (250, 450), (450, 950)]


def test_windows_for_short_warmup():
    assert make_warmup_windows(100) == [(15, 90)]
    assert make_warmup_windows(20) == []


def test_windows_cover_middle_of_warmup_without_gaps():
    for n in (150, 300, 777, 2000):
        windows = make_warmup_windows(n)
        assert windows[0][0] == 75
        assert windows[-1][1] == n - 50
        for (_, end), (start, _) in zip(windows[:-1], windows[1:]):
            assert end == start


def test_running_variance_matches_numpy():
    rng = np.random.default_rng(0)
    xs = rng.normal(scale=[1.0, 3.0], size=(500, 2))
    acc = RunningVariance(2)
    for x in xs:
        acc.update(x)
    npt.assert_allclose(acc.variance(), xs.var(axis=0, ddof=1))
    npt.assert_allclose(acc.regularized_variance(), (500 / 505) * xs.var(axis=0, ddof=1) + 1e-3 * 5 / 505)


def test_dual_averaging_finds_target_step():
    # acceptance falls off as exp(-step); target 0.8 sits at step = -log(0.8)
    da = DualAveraging.start(1.0, target=0.8)
    step = 1.0
    for _ in range(3000):
        step = da.update(math.exp(-step))
    assert abs(da.final_step_size() - (-math.log(0.8))) < 0.03


def test_dual_averaging_larger_target_gives_smaller_step():
    steps = {}
    for target in (0.6, 0.95):
        da = DualAveraging.start(1.0, target=target)
        step = 1.0
        for _ in range(2000):
            step = da.update(math.exp(-step))
        steps[target] = da.final_step_size()
    assert steps[0.95] < steps[0.6]


def test_warmup_adapter_estimates_inverse_mass():
    rng = np.random.default_rng(1)
    adapter = WarmupAdapter(num_warmup=1000, dim=2, target_accept=0.8, initial_step_size=0.5)
    updates = 0
    for _ in range(1000):
        q = rng.normal(scale=[2.0, 0.5])
        _, updated = adapter.observe(0.8, q)
        updates += int(updated)
        if updated:
            adapter.restart(0.5)

    step, inv_mass = adapter.finalize()
    assert updates == 5
    assert step > 0
    npt.assert_allclose(inv_mass, [4.0, 0.25], rtol=0.3)


def test_warmup_adapter_without_mass_adaptation_keeps_unit_metric():
    adapter = WarmupAdapter(num_warmup=200, dim=3, adapt_mass=False)
    for _ in range(200):
        _, updated = adapter.observe(0.9, np.full(3, 5.0))
        assert not updated
    _, inv_mass = adapter.finalize()
    npt.assert_array_equal(inv_mass, np.ones(3))
