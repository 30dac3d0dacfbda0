"""
Numerical kernels for the batched implicit solve.

This module provides:
- Residual callback contract (FULL / FAST modes)
- Finite-difference and JVP per-cell Jacobian assembly
- Batched dense linear solves with per-cell failure flags
- Quartic backtracking line search
- Admissibility projection (floors)
"""

from .residual import (
    ResidualMode,
    ResidualEvaluator,
    ResidualShapeError,
    SplitResidual,
    checked_evaluate,
)

from .jacobian import (
    assemble_jacobian,
    assemble_jacobian_jvp,
    perturb_component,
)

from .linear_solve import (
    batched_solve,
    LinearSolveResult,
)

from .line_search import (
    backtrack,
    merit,
    quartic_step_length,
    sufficient_decrease,
    LineSearchResult,
)

from .reductions import GlobalReductions, LOCAL

from .floors import (
    ValidityProjector,
    FloorResult,
    floor_profiles,
)

__all__ = [
    # Residual contract
    'ResidualMode',
    'ResidualEvaluator',
    'ResidualShapeError',
    'SplitResidual',
    'checked_evaluate',
    # Jacobian
    'assemble_jacobian',
    'assemble_jacobian_jvp',
    'perturb_component',
    # Linear solve
    'batched_solve',
    'LinearSolveResult',
    # Line search
    'backtrack',
    'merit',
    'quartic_step_length',
    'sufficient_decrease',
    'LineSearchResult',
    # Reductions
    'GlobalReductions',
    'LOCAL',
    # Floors
    'ValidityProjector',
    'FloorResult',
    'floor_profiles',
]
