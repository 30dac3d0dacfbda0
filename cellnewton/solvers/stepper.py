"""
One implicit step on a StateGrid: nonlinear solve, then floors.

The caller owns the StateGrid for the whole step; it enters holding the
guess (previous time level or an explicit predictor) and leaves holding
the converged or best-effort solution, projected onto the admissible set.
Whether an EXHAUSTED solve is fatal is left to the caller.
"""

from dataclasses import dataclass
from typing import Optional

from loguru import logger

from ..config.schema import SimulationConfig
from ..grid.state import StateGrid
from ..physics.geometry import Geometry
from ..physics.jax_config import jnp
from ..numerics.floors import ElementFn, FloorResult, ValidityProjector
from ..numerics.reductions import GlobalReductions, LOCAL
from ..numerics.residual import ResidualEvaluator
from .newton import NewtonDriver, NewtonResult, SolveStatus


@dataclass
class StepResult:
    """Status of one implicit step.

    Attributes
    ----------
    status : SolveStatus
        CONVERGED or EXHAUSTED, from the nonlinear solve.
    iterations : int
        Newton iterations used.
    residual_norm : float
        Global L2 norm of the FULL residual before floors.
    use_floor : jnp.ndarray
        Per-cell floor mask from the projection.
    lorentz_capped : jnp.ndarray
        Per-cell Lorentz-cap mask from the projection.
    newton : NewtonResult
        Full solver report.
    """
    status: SolveStatus
    iterations: int
    residual_norm: float
    use_floor: jnp.ndarray
    lorentz_capped: jnp.ndarray
    newton: NewtonResult


class ImplicitStepper:
    """Newton solve followed by the validity projection.

    Parameters
    ----------
    config : SimulationConfig
        Validated on construction.
    geometry : Geometry, optional
        Metric on the active domain; built from `config.grid` when omitted.
    reductions : GlobalReductions, optional
        Cross-worker reductions for the solve.
    element_fn : callable, optional
        Derived-quantity callback for the projector.
    """

    def __init__(self, config: SimulationConfig,
                 geometry: Optional[Geometry] = None,
                 reductions: GlobalReductions = LOCAL,
                 element_fn: Optional[ElementFn] = None):
        self.config = config.validate()
        self.geometry = geometry if geometry is not None else Geometry.from_config(config.grid)
        self.driver = NewtonDriver(config.newton, reductions)
        self.projector = ValidityProjector(config.floors, config.fluid, element_fn)

    def step(self, state: StateGrid, evaluator: ResidualEvaluator) -> StepResult:
        """Advance `state` in place through one implicit solve plus floors."""
        self._check_shape(state)

        newton = self.driver.solve(state, evaluator)
        floors = self.projector.apply_state(state, self.geometry)

        logger.info(f"Implicit step {newton.status.value} after {newton.iterations} iterations, "
                    f"error = {newton.residual_norm:.6e}, floored cells = {int(jnp.sum(floors.use_floor))}")

        return StepResult(
            status=newton.status,
            iterations=newton.iterations,
            residual_norm=newton.residual_norm,
            use_floor=floors.use_floor,
            lorentz_capped=floors.lorentz_capped,
            newton=newton,
        )

    def project(self, state: StateGrid) -> FloorResult:
        """Apply floors alone, e.g. after boundary extrapolation or a half step."""
        self._check_shape(state)
        return self.projector.apply_state(state, self.geometry)

    def _check_shape(self, state: StateGrid) -> None:
        if tuple(state.interior_shape[:3]) != tuple(self.geometry.shape):
            raise ValueError(f"State interior {state.interior_shape[:3]} does not match "
                             f"geometry {self.geometry.shape}")
