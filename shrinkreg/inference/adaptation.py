"""Warmup adaptation: dual-averaging step size and windowed diagonal mass matrix.

Step size (Nesterov dual averaging, as in Hoffman & Gelman 2014):

    h_bar_t   = (1 - 1/(t + t0)) h_bar_{t-1} + (target - alpha_t) / (t + t0)
    log eps_t = mu - sqrt(t) / gamma * h_bar_t
    log eps_bar_t = t^-kappa log eps_t + (1 - t^-kappa) log eps_bar_{t-1}

Mass matrix: warmup is split into an initial buffer, a sequence of doubling
slow windows and a terminal buffer.  Draws inside a slow window feed a
running variance; at the end of each window the inverse mass diagonal is set
to the regularized variance and the step size search starts over.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

import numpy as np

Array = np.ndarray


@dataclass
class DualAveraging:
    """Stochastic-approximation tuner for ``log(step_size)``."""

    mu: float
    target: float = 0.8
    gamma: float = 0.05
    t0: float = 10.0
    kappa: float = 0.75
    log_eps: float = 0.0
    log_eps_bar: float = 0.0
    h_bar: float = 0.0
    t: int = 0

    @classmethod
    def start(cls, step_size: float, target: float = 0.8, **kwargs) -> "DualAveraging":
        """Begin averaging around ``mu = log(10 * step_size)``."""
        return cls(
            mu=math.log(10.0 * step_size),
            target=target,
            log_eps=math.log(step_size),
            log_eps_bar=0.0,
            **kwargs,
        )

    def update(self, accept_stat: float) -> float:
        """Feed one acceptance statistic and return the next step size."""
        accept_stat = min(1.0, max(0.0, float(accept_stat))) if math.isfinite(accept_stat) else 0.0
        self.t += 1
        eta = 1.0 / (self.t + self.t0)
        self.h_bar = (1.0 - eta) * self.h_bar + eta * (self.target - accept_stat)
        self.log_eps = self.mu - (math.sqrt(self.t) / self.gamma) * self.h_bar
        w = self.t ** (-self.kappa)
        self.log_eps_bar = w * self.log_eps + (1.0 - w) * self.log_eps_bar
        return math.exp(self.log_eps)

    @property
    def step_size(self) -> float:
        return math.exp(self.log_eps)

    def final_step_size(self) -> float:
        """Averaged step size used once warmup is over."""
        return math.exp(self.log_eps_bar) if self.t > 0 else math.exp(self.log_eps)


class RunningVariance:
    """Welford accumulator for per-coordinate variance."""

    def __init__(self, dim: int) -> None:
        self.n = 0
        self.mean = np.zeros(dim)
        self.m2 = np.zeros(dim)

    def update(self, x: Array) -> None:
        self.n += 1
        delta = x - self.mean
        self.mean = self.mean + delta / self.n
        self.m2 = self.m2 + delta * (x - self.mean)

    def variance(self) -> Array:
        if self.n < 2:
            return np.ones_like(self.mean)
        return self.m2 / (self.n - 1)

    def regularized_variance(self, shrink_to: float = 1e-3, weight: float = 5.0) -> Array:
        """Shrink the sample variance toward ``shrink_to`` while few draws are available."""
        n = float(self.n)
        return (n / (n + weight)) * self.variance() + shrink_to * (weight / (n + weight))


def make_warmup_windows(
    num_warmup: int,
    *,
    min_no_window: int = 20,
    large_threshold: int = 150,
    large_init_buffer: int = 75,
    large_term_buffer: int = 50,
    large_base_window: int = 25,
    init_buffer_ratio: float = 0.15,
    term_buffer_ratio: float = 0.10,
) -> List[Tuple[int, int]]:
    """
    Slow adaptation windows ``[start, end)`` over warmup iterations.

    Each window doubles the previous one; the last window is stretched to
    reach the terminal buffer.
    """
    if num_warmup <= min_no_window:
        return []

    if num_warmup >= large_threshold:
        init_buffer = large_init_buffer
        term_buffer = large_term_buffer
        base_window = large_base_window
    else:
        init_buffer = max(1, int(init_buffer_ratio * num_warmup))
        term_buffer = max(1, int(term_buffer_ratio * num_warmup))
        base_window = max(1, num_warmup - init_buffer - term_buffer)

    end_middle = num_warmup - term_buffer
    windows: List[Tuple[int, int]] = []
    start = init_buffer
    size = base_window
    while start < end_middle:
        end = start + size
        # fold a remainder smaller than the next window into this one
        if end + 2 * size > end_middle:
            end = end_middle
        windows.append((start, min(end, end_middle)))
        start = end
        size *= 2
    return windows


@dataclass
class WarmupAdapter:
    """
    Combined adaptation state for one chain.

    ``observe`` is called once per warmup iteration with the iteration's
    acceptance statistic and the new position; it returns the step size for
    the next iteration and, when a mass window closes, the new inverse mass.
    """

    num_warmup: int
    dim: int
    target_accept: float = 0.8
    initial_step_size: float = 1.0
    adapt_mass: bool = True
    dual_averaging: DualAveraging = field(init=False)
    windows: List[Tuple[int, int]] = field(init=False)
    inv_mass: Array = field(init=False)
    _variance: Optional[RunningVariance] = field(default=None, init=False, repr=False)
    _iteration: int = field(default=0, init=False)

    def __post_init__(self) -> None:
        self.dual_averaging = DualAveraging.start(self.initial_step_size, target=self.target_accept)
        self.windows = make_warmup_windows(self.num_warmup) if self.adapt_mass else []
        self.inv_mass = np.ones(self.dim)

    @property
    def step_size(self) -> float:
        return self.dual_averaging.step_size

    def _window_at(self, iteration: int) -> Optional[Tuple[int, int]]:
        for window in self.windows:
            if window[0] <= iteration < window[1]:
                return window
        return None

    def observe(self, accept_stat: float, q: Array) -> Tuple[float, bool]:
        """Record one warmup iteration; returns ``(next_step_size, mass_updated)``."""
        it = self._iteration
        self._iteration += 1
        step_size = self.dual_averaging.update(accept_stat)

        window = self._window_at(it)
        if window is None:
            return step_size, False
        if self._variance is None:
            self._variance = RunningVariance(self.dim)
        self._variance.update(np.asarray(q, dtype=float))
        if it + 1 == window[1]:
            self.inv_mass = self._variance.regularized_variance()
            self._variance = None
            return step_size, True
        return step_size, False

    def restart(self, step_size: float) -> None:
        """Restart dual averaging from a fresh step size (after a mass update)."""
        self.dual_averaging = DualAveraging.start(step_size, target=self.target_accept)

    def finalize(self) -> Tuple[float, Array]:
        """Freeze and return ``(step_size, inv_mass)`` for the sampling phase."""
        return self.dual_averaging.final_step_size(), self.inv_mass.copy()
