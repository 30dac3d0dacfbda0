"""
Per-cell Jacobian assembly for cell-local residuals.

J[..., i, j] = ∂F_i/∂P_j, one D×D block per cell.

Every cell is perturbed at once in the same component, so assembly costs
D residual evaluations regardless of grid size. This is exact for
residuals whose value at a cell depends only on that cell's primitives
(implicit terms of an IMEX split).

Two assemblers:
    - assemble_jacobian:     one-sided finite differences of the FAST residual
    - assemble_jacobian_jvp: forward-mode AD (requires a JAX-traceable residual)
"""

from typing import Optional, Tuple

from ..physics.jax_config import jax, jnp
from .residual import ResidualEvaluator, ResidualMode, checked_evaluate


@jax.jit
def perturb_component(prim: jnp.ndarray, row: int, epsilon: float) -> Tuple[jnp.ndarray, jnp.ndarray]:
    """Perturb component `row` of every cell.

    Components with |P| >= ε/2 are scaled by (1 + ε); smaller ones are
    shifted by +ε so the step never collapses near zero.

    Returns
    -------
    perturbed : jnp.ndarray
        Copy of `prim` with component `row` perturbed.
    step : jnp.ndarray
        Actual perturbation applied per cell, shape prim.shape[:-1].
    """
    value = prim[..., row]
    small = jnp.abs(value) < 0.5 * epsilon
    value_eps = jnp.where(small, value + epsilon, (1.0 + epsilon) * value)
    return prim.at[..., row].set(value_eps), value_eps - value


def assemble_jacobian(
    prim: jnp.ndarray,
    evaluator: ResidualEvaluator,
    base_residual: Optional[jnp.ndarray] = None,
    epsilon: float = 4e-8,
) -> jnp.ndarray:
    """Assemble per-cell Jacobians by finite differencing the FAST residual.

    Parameters
    ----------
    prim : jnp.ndarray
        Primitives on the active domain, shape (..., D).
    evaluator : ResidualEvaluator
        Residual callback.
    base_residual : jnp.ndarray, optional
        FAST residual at `prim`, evaluated just before this call. Computed
        here when omitted.
    epsilon : float
        Relative perturbation.

    Returns
    -------
    jnp.ndarray
        Jacobian blocks, shape (..., D, D).
    """
    if base_residual is None:
        base_residual = checked_evaluate(evaluator, prim, ResidualMode.FAST)

    dof = prim.shape[-1]
    columns = []
    for row in range(dof):
        prim_eps, step = perturb_component(prim, row, epsilon)
        residual_eps = checked_evaluate(evaluator, prim_eps, ResidualMode.FAST)
        columns.append((residual_eps - base_residual) / step[..., None])

    return jnp.stack(columns, axis=-1)


def assemble_jacobian_jvp(prim: jnp.ndarray, evaluator: ResidualEvaluator) -> jnp.ndarray:
    """Assemble per-cell Jacobians with forward-mode AD (exact, for reference).

    All D unit tangents are pushed through the FAST residual in parallel
    using vmap.
    """
    dof = prim.shape[-1]

    def residual_fn(p):
        return evaluator(p, ResidualMode.FAST)

    def make_tangent(k):
        return jnp.zeros_like(prim).at[..., k].set(1.0)

    def single_jvp(tangent):
        _, jvp_result = jax.jvp(residual_fn, (prim,), (tangent,))
        return jvp_result

    tangents = jax.vmap(make_tangent)(jnp.arange(dof))   # (D, ..., D)
    columns = jax.vmap(single_jvp)(tangents)             # (D, ..., D residual)

    # (D vars, ..., D residual) -> (..., D residual, D vars)
    return jnp.moveaxis(columns, 0, -1)
