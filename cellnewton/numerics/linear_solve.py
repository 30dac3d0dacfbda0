"""
Batched dense solve of one small linear system per cell.

Solves A[c] x[c] = b[c] for every cell c with LU and partial pivoting
(jnp.linalg.solve vmapped over the flattened cell axis). A singular or
numerically broken block yields non-finite output for that cell only;
those cells are flagged and their correction is zeroed so nothing
non-finite reaches the state.
"""

from typing import NamedTuple

from ..physics.jax_config import jax, jnp


class LinearSolveResult(NamedTuple):
    """Per-cell solution and status.

    Attributes
    ----------
    x : jnp.ndarray
        Solution, shape (..., D). Zero where `ok` is False.
    ok : jnp.ndarray
        Boolean mask, shape (...), True where the solve produced finite values.
    """
    x: jnp.ndarray
    ok: jnp.ndarray


@jax.jit
def batched_solve(A: jnp.ndarray, b: jnp.ndarray) -> LinearSolveResult:
    """Solve A x = b independently per cell.

    Parameters
    ----------
    A : jnp.ndarray
        Matrices, shape (..., D, D).
    b : jnp.ndarray
        Right-hand sides, shape (..., D).

    Returns
    -------
    LinearSolveResult
    """
    batch_shape = b.shape[:-1]
    dof = b.shape[-1]

    A_flat = A.reshape(-1, dof, dof)
    b_flat = b.reshape(-1, dof)
    x_flat = jax.vmap(jnp.linalg.solve)(A_flat, b_flat)

    x = x_flat.reshape(batch_shape + (dof,))
    ok = jnp.all(jnp.isfinite(x), axis=-1)
    x = jnp.where(ok[..., None], x, 0.0)

    return LinearSolveResult(x=x, ok=ok)
