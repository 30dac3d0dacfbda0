"""
Solver drivers for the implicit step.

This package provides:
    - Batched Newton iteration with global convergence test
    - Implicit step orchestration (Newton solve followed by floors)
"""

from .newton import (
    NewtonDriver,
    NewtonResult,
    SolveStatus,
)

from .stepper import (
    ImplicitStepper,
    StepResult,
)

__all__ = [
    'NewtonDriver',
    'NewtonResult',
    'SolveStatus',
    'ImplicitStepper',
    'StepResult',
]
