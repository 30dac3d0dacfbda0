"""
Residual callback contract.

The solver only sees F(P) through a callable taking the active-domain
primitives and an evaluation mode:

    FULL : every term, including previous-time-level and explicit sources.
           Used for the convergence test and the line search.
    FAST : drops terms that barely change within a Newton iteration.
           Used for the D extra evaluations of Jacobian assembly.
"""

from enum import Enum
from typing import Callable, Optional, Protocol

from ..physics.jax_config import jnp


class ResidualMode(Enum):
    FULL = "full"
    FAST = "fast"


class ResidualShapeError(ValueError):
    """Residual returned by a callback does not match the state shape."""


class ResidualEvaluator(Protocol):
    def __call__(self, prim: jnp.ndarray, mode: ResidualMode) -> jnp.ndarray:
        ...


class SplitResidual:
    """Adapter from one or two plain functions of the primitives.

    Parameters
    ----------
    full_fn : callable
        prim -> residual, all terms.
    fast_fn : callable, optional
        prim -> residual without slowly-varying terms. Falls back to
        `full_fn` when omitted.
    """

    def __init__(self, full_fn: Callable[[jnp.ndarray], jnp.ndarray],
                 fast_fn: Optional[Callable[[jnp.ndarray], jnp.ndarray]] = None):
        self.full_fn = full_fn
        self.fast_fn = fast_fn if fast_fn is not None else full_fn

    def __call__(self, prim: jnp.ndarray, mode: ResidualMode) -> jnp.ndarray:
        if mode is ResidualMode.FAST:
            return self.fast_fn(prim)
        return self.full_fn(prim)


def checked_evaluate(evaluator: ResidualEvaluator, prim: jnp.ndarray,
                     mode: ResidualMode) -> jnp.ndarray:
    """Evaluate the residual and enforce the same-shape contract."""
    residual = jnp.asarray(evaluator(prim, mode))
    if residual.shape != prim.shape:
        raise ResidualShapeError(
            f"Residual ({mode.value}) has shape {residual.shape}, state has shape {prim.shape}")
    return residual
