"""
Global reductions used by the nonlinear solve.

Only two collective operations exist per Newton iteration:
    - the squared L2 norm of the full residual (sum)
    - whether any cell still needs backtracking (logical or)

In a multi-worker run each hook wraps the worker-local value in an
allreduce; the default keeps everything on this process.
"""

from dataclasses import dataclass
from typing import Callable

from ..physics.jax_config import jnp


def _local_sum(value: float) -> float:
    return value


def _local_any(flag: bool) -> bool:
    return flag


@dataclass(frozen=True)
class GlobalReductions:
    """Cross-worker combination of worker-local scalars.

    Attributes
    ----------
    sum : callable
        float -> float, sums the worker-local value over all workers.
    any : callable
        bool -> bool, logical or over all workers.
    """
    sum: Callable[[float], float] = _local_sum
    any: Callable[[bool], bool] = _local_any

    def l2_norm(self, residual: jnp.ndarray) -> float:
        """Global L2 norm of a residual flattened over cells and components."""
        return float(jnp.sqrt(self.sum(float(jnp.sum(residual * residual)))))

    def any_true(self, mask: jnp.ndarray) -> bool:
        return bool(self.any(bool(jnp.any(mask))))


LOCAL = GlobalReductions()
