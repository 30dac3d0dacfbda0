"""
Quartic backtracking line search, independent per cell.

We minimize f(s) = 0.5 |F(P + s ΔP)|² along the Newton direction using
    f0      = f(0)
    f'(0)   = -2 f0       (exact slope for a Newton step)
    f1      = f(s0)
to reconstruct
    f(s) = (f1 - f0 - f'(0) s0) (s/s0)² + f'(0) s + f0
whose minimum gives the next trial
    s = -f'(0) s0² / (2 (f1 - f0 - f'(0) s0)).

A cell stops backtracking once
    f1 <= f0 (1 - α s) + EPS
and keeps that step length for the rest of the search. The loop ends when
no cell anywhere needs backtracking, or at the iteration cap; cells still
failing the test at the cap get a zero step.
"""

from typing import NamedTuple, Optional

from loguru import logger

from ..physics.jax_config import jax, jnp
from .reductions import GlobalReductions, LOCAL
from .residual import ResidualEvaluator, ResidualMode, checked_evaluate

# Smallest |denominator| the quartic fit will divide by
_DENOM_TINY = 1e-300

# Step reduction when the residual is undefined at the trial point
_NONFINITE_SHRINK = 0.5


class LineSearchResult(NamedTuple):
    """Outcome of one line search.

    Attributes
    ----------
    step_length : jnp.ndarray
        Accepted step per cell, in [0, 1].
    iterations : int
        Residual evaluations performed.
    f0 : jnp.ndarray
        Merit at step 0.
    f1 : jnp.ndarray
        Merit at the accepted step (f0 where the step is zero).
    accepted : jnp.ndarray
        True where the sufficient-decrease test passed.
    """
    step_length: jnp.ndarray
    iterations: int
    f0: jnp.ndarray
    f1: jnp.ndarray
    accepted: jnp.ndarray


@jax.jit
def merit(residual: jnp.ndarray) -> jnp.ndarray:
    """f = 0.5 Σ_components F², per cell."""
    return 0.5 * jnp.sum(residual * residual, axis=-1)


@jax.jit
def sufficient_decrease(f0, f1, step_length, alpha, eps):
    """Armijo test; non-finite f1 never passes."""
    return f1 <= f0 * (1.0 - alpha * step_length) + eps


@jax.jit
def quartic_step_length(f0, f1, fprime0, step_length, pending):
    """Minimizer of the quartic model for pending cells.

    Cells whose trial merit is non-finite halve their step. Cells whose
    model is otherwise degenerate (vanishing denominator) keep their
    current step length.
    """
    trial_failed = ~jnp.isfinite(f1)
    denom = f1 - f0 - fprime0 * step_length
    degenerate = ~jnp.isfinite(denom) | (jnp.abs(denom) <= _DENOM_TINY)
    safe_denom = jnp.where(degenerate, 1.0, denom)
    next_step = -fprime0 * step_length * step_length / (2.0 * safe_denom)

    update = pending & ~degenerate & jnp.isfinite(next_step) & (next_step > 0.0)
    next_step = jnp.where(update, next_step, step_length)
    return jnp.where(pending & trial_failed, _NONFINITE_SHRINK * step_length, next_step)


def backtrack(
    prim: jnp.ndarray,
    delta: jnp.ndarray,
    evaluator: ResidualEvaluator,
    f0: jnp.ndarray,
    active: Optional[jnp.ndarray] = None,
    max_iters: int = 3,
    alpha: float = 1e-4,
    eps: float = 1e-30,
    reductions: GlobalReductions = LOCAL,
) -> LineSearchResult:
    """Select a per-cell step length along `delta`.

    Parameters
    ----------
    prim : jnp.ndarray
        Current primitives, shape (..., D).
    delta : jnp.ndarray
        Full Newton correction, shape (..., D).
    evaluator : ResidualEvaluator
        Residual callback; FULL mode is used.
    f0 : jnp.ndarray
        Merit at `prim`, shape (...).
    active : jnp.ndarray, optional
        Cells with a usable correction. Inactive cells get step 0 and are
        never backtracked.
    max_iters : int
        Maximum residual evaluations.
    alpha : float
        Armijo constant.
    eps : float
        Floor added to the decrease test to avoid stalling at round-off.
    reductions : GlobalReductions
        Supplies the global "any cell pending" test.

    Returns
    -------
    LineSearchResult
    """
    if active is None:
        active = jnp.ones(f0.shape, dtype=bool)

    fprime0 = -2.0 * f0
    step_length = jnp.where(active, 1.0, 0.0)
    accepted = ~active
    f1 = f0

    iteration = 0
    for iteration in range(1, max_iters + 1):
        trial = prim + step_length[..., None] * delta
        f1 = merit(checked_evaluate(evaluator, trial, ResidualMode.FULL))

        accepted = accepted | sufficient_decrease(f0, f1, step_length, alpha, eps)
        pending = ~accepted

        if not reductions.any_true(pending) or iteration == max_iters:
            break

        step_length = quartic_step_length(f0, f1, fprime0, step_length, pending)

    rejected = ~accepted
    n_rejected = int(jnp.sum(rejected))
    if n_rejected > 0:
        logger.debug(f"Line search: {n_rejected} cells without sufficient decrease after "
                     f"{iteration} iterations, step rejected")

    step_length = jnp.where(accepted, step_length, 0.0)
    f1 = jnp.where(accepted & active, f1, f0)

    return LineSearchResult(
        step_length=step_length,
        iterations=iteration,
        f0=f0,
        f1=f1,
        accepted=accepted & active,
    )
