"""No-U-Turn Sampler transition with multinomial trajectory sampling.

Each transition resamples momentum and grows a trajectory by repeated
doubling in a random direction.  At doubling ``j`` a subtree of ``2**j``
leapfrog steps is built recursively; it is discarded if any of its own
subtrees turns back on itself or diverges.

Within a subtree a proposal is drawn with probability proportional to
``exp(-H)`` (multinomial sampling).  When a fresh subtree is joined to the
existing trajectory its proposal replaces the current one with probability
``min(1, w_new / w_old)``, which favours states far from the start while
keeping detailed balance (biased progressive sampling).

U-turn criterion (diagonal metric, ``p_sharp = M^{-1} p``): with ``rho`` the
sum of momenta over a trajectory, keep going while

    p_sharp_minus . rho > 0  and  p_sharp_plus . rho > 0

The criterion is also checked across the join of every merged pair of
subtrees, which catches U-turns that fall between the two halves.

A state whose energy error ``H - H0`` exceeds ``max_energy_error``, or whose
log density cannot be evaluated, is a divergence.  Divergences and reaching
the maximum depth are recorded on the returned :class:`Transition`; neither
stops the chain.
"""
from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np
from numpy.random import Generator

from shrinkreg.errors import NonFiniteDensity
from .integrator import DensityFn, PhaseState, hamiltonian, leapfrog, sample_momentum

Array = np.ndarray

DEFAULT_MAX_TREE_DEPTH = 10
DEFAULT_MAX_ENERGY_ERROR = 1000.0


@dataclass(frozen=True, eq=False)
class Transition:
    """Outcome of one NUTS iteration."""

    state: PhaseState
    step_size: float
    accept_stat: float
    tree_depth: int
    n_leapfrog: int
    divergent: bool
    max_depth_hit: bool
    energy: float


@dataclass(eq=False)
class _Tree:
    left: PhaseState
    right: PhaseState
    proposal: PhaseState
    log_weight: float
    rho: Array
    turning: bool = False
    diverging: bool = False
    n_leapfrog: int = 0
    sum_accept: float = 0.0


def _is_turning(p_sharp_minus: Array, p_sharp_plus: Array, rho: Array) -> bool:
    return not (float(p_sharp_minus @ rho) > 0.0 and float(p_sharp_plus @ rho) > 0.0)


def _merge(
    old: _Tree,
    new: _Tree,
    direction: int,
    inv_mass: Array,
    rng: Generator,
    biased: bool,
) -> _Tree:
    """Join ``new`` onto the ``direction`` end of ``old`` and pick the proposal."""
    log_weight = float(np.logaddexp(old.log_weight, new.log_weight))
    if biased:
        log_accept = min(0.0, new.log_weight - old.log_weight)
    else:
        log_accept = new.log_weight - log_weight
    proposal = new.proposal if rng.uniform() < math.exp(log_accept) else old.proposal

    left_tree, right_tree = (old, new) if direction > 0 else (new, old)
    rho = old.rho + new.rho
    left, right = left_tree.left, right_tree.right

    turning = _is_turning(inv_mass * left.p, inv_mass * right.p, rho)
    if not turning:
        rho_ext = left_tree.rho + right_tree.left.p
        turning = _is_turning(inv_mass * left.p, inv_mass * right_tree.left.p, rho_ext)
    if not turning:
        rho_ext = right_tree.rho + left_tree.right.p
        turning = _is_turning(inv_mass * left_tree.right.p, inv_mass * right.p, rho_ext)

    return _Tree(
        left=left,
        right=right,
        proposal=proposal,
        log_weight=log_weight,
        rho=rho,
        turning=turning,
        diverging=False,
        n_leapfrog=old.n_leapfrog + new.n_leapfrog,
        sum_accept=old.sum_accept + new.sum_accept,
    )


def _leaf(
    density: DensityFn,
    start: PhaseState,
    direction: int,
    step_size: float,
    inv_mass: Array,
    H0: float,
    max_energy_error: float,
) -> _Tree:
    try:
        state = leapfrog(density, start, direction * step_size, inv_mass)
        H = hamiltonian(state, inv_mass)
    except NonFiniteDensity:
        H = math.inf
        state = start
    if not math.isfinite(H):
        return _Tree(
            left=start,
            right=start,
            proposal=start,
            log_weight=-math.inf,
            rho=np.zeros_like(start.p),
            diverging=True,
            n_leapfrog=1,
            sum_accept=0.0,
        )
    energy_error = H - H0
    return _Tree(
        left=state,
        right=state,
        proposal=state,
        log_weight=-energy_error,
        rho=state.p.copy(),
        diverging=energy_error > max_energy_error,
        n_leapfrog=1,
        sum_accept=math.exp(min(0.0, -energy_error)),
    )


def build_tree(
    density: DensityFn,
    start: PhaseState,
    depth: int,
    direction: int,
    step_size: float,
    inv_mass: Array,
    H0: float,
    max_energy_error: float,
    rng: Generator,
) -> _Tree:
    """Build a subtree of ``2**depth`` leapfrog steps starting just past ``start``."""
    if depth == 0:
        return _leaf(density, start, direction, step_size, inv_mass, H0, max_energy_error)

    first = build_tree(density, start, depth - 1, direction, step_size, inv_mass, H0, max_energy_error, rng)
    if first.turning or first.diverging:
        return first

    outer = first.right if direction > 0 else first.left
    second = build_tree(density, outer, depth - 1, direction, step_size, inv_mass, H0, max_energy_error, rng)
    if second.turning or second.diverging:
        first.turning = second.turning
        first.diverging = second.diverging
        first.n_leapfrog += second.n_leapfrog
        first.sum_accept += second.sum_accept
        return first

    return _merge(first, second, direction, inv_mass, rng, biased=False)


def nuts_transition(
    density: DensityFn,
    current: PhaseState,
    step_size: float,
    inv_mass: Array,
    rng: Generator,
    max_tree_depth: int = DEFAULT_MAX_TREE_DEPTH,
    max_energy_error: float = DEFAULT_MAX_ENERGY_ERROR,
) -> Transition:
    """Run one NUTS iteration from ``current`` (its momentum is ignored)."""
    state = current.with_momentum(sample_momentum(rng, inv_mass))
    H0 = hamiltonian(state, inv_mass)
    tree = _Tree(left=state, right=state, proposal=state, log_weight=0.0, rho=state.p.copy())

    depth = 0
    n_leapfrog = 0
    sum_accept = 0.0
    divergent = False
    turning = False
    while depth < max_tree_depth:
        direction = 1 if rng.uniform() < 0.5 else -1
        outer = tree.right if direction > 0 else tree.left
        subtree = build_tree(
            density, outer, depth, direction, step_size, inv_mass, H0, max_energy_error, rng
        )
        n_leapfrog += subtree.n_leapfrog
        sum_accept += subtree.sum_accept
        depth += 1
        if subtree.diverging:
            divergent = True
            break
        if subtree.turning:
            turning = True
            break
        tree = _merge(tree, subtree, direction, inv_mass, rng, biased=True)
        if tree.turning:
            turning = True
            break

    chosen = tree.proposal
    return Transition(
        state=chosen,
        step_size=float(step_size),
        accept_stat=sum_accept / max(1, n_leapfrog),
        tree_depth=depth,
        n_leapfrog=n_leapfrog,
        divergent=divergent,
        max_depth_hit=(depth >= max_tree_depth) and not (divergent or turning),
        energy=hamiltonian(chosen, inv_mass),
    )


def find_reasonable_step_size(
    density: DensityFn,
    current: PhaseState,
    inv_mass: Array,
    rng: Generator,
    init_step_size: float = 1.0,
    target_accept: float = 0.8,
    min_step_size: float = 1e-8,
    max_step_size: float = 1e3,
) -> float:
    """
    Double or halve a trial step size until a single leapfrog step crosses the
    acceptance level ``target_accept``.
    """
    eps = float(init_step_size)
    state = current.with_momentum(sample_momentum(rng, inv_mass))
    H0 = hamiltonian(state, inv_mass)

    def _log_accept(eps_: float) -> float:
        try:
            nxt = leapfrog(density, state, eps_, inv_mass)
            H1 = hamiltonian(nxt, inv_mass)
        except NonFiniteDensity:
            return -math.inf
        if not math.isfinite(H1):
            return -math.inf
        return H0 - H1

    log_target = math.log(target_accept)
    direction = 1 if _log_accept(eps) > log_target else -1
    while True:
        eps = eps * 2.0 if direction > 0 else eps * 0.5
        if eps < min_step_size or eps > max_step_size:
            return float(min(max(eps, min_step_size), max_step_size))
        la = _log_accept(eps)
        if direction > 0 and not la > log_target:
            return eps
        if direction < 0 and la > log_target:
            return eps
