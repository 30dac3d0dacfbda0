"""
Batched Newton iteration for independent per-cell nonlinear systems.

Each outer iteration:
    1. FULL residual -> global L2 norm, convergence test
    2. FAST residual -> finite-difference Jacobian (D extra FAST evaluations)
    3. Batched direct solve  J ΔP = -F_full
    4. Quartic backtracking line search along ΔP
    5. P <- P + s ΔP

Termination is global: CONVERGED once the L2 norm over all cells and
components drops below the tolerance, EXHAUSTED at the iteration cap.
Both return the best available state.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

from loguru import logger

from ..config.schema import NewtonConfig
from ..grid.state import StateGrid
from ..physics.jax_config import jnp
from ..numerics.jacobian import assemble_jacobian, assemble_jacobian_jvp
from ..numerics.line_search import backtrack, merit
from ..numerics.linear_solve import batched_solve
from ..numerics.reductions import GlobalReductions, LOCAL
from ..numerics.residual import ResidualEvaluator, ResidualMode, checked_evaluate


class SolveStatus(Enum):
    CONVERGED = "converged"
    EXHAUSTED = "exhausted"


@dataclass
class NewtonResult:
    """Outcome of a nonlinear solve.

    Attributes
    ----------
    status : SolveStatus
        CONVERGED or EXHAUSTED.
    iterations : int
        Newton updates applied to the state.
    residual_norm : float
        Global L2 norm of the FULL residual at the returned state.
    norm_history : list of float
        Norm at the start of every iteration, plus the final one.
    singular_cells : int
        Cell solves flagged non-finite, summed over iterations.
    line_search_iterations : list of int
        Residual evaluations used by each line search.
    """
    status: SolveStatus
    iterations: int
    residual_norm: float
    norm_history: List[float] = field(default_factory=list)
    singular_cells: int = 0
    line_search_iterations: List[int] = field(default_factory=list)

    @property
    def converged(self) -> bool:
        return self.status is SolveStatus.CONVERGED


class NewtonDriver:
    """Outer Newton loop over a grid of independent cells.

    Parameters
    ----------
    config : NewtonConfig
        Iteration caps, tolerance and Jacobian settings.
    reductions : GlobalReductions, optional
        Cross-worker reductions; worker-local by default.
    """

    def __init__(self, config: Optional[NewtonConfig] = None, reductions: GlobalReductions = LOCAL):
        self.config = config if config is not None else NewtonConfig()
        self.reductions = reductions

    def solve(self, state: StateGrid, evaluator: ResidualEvaluator) -> NewtonResult:
        """Solve on the active domain of `state`, updating it in place."""
        prim, result = self.solve_array(state.interior, evaluator)
        state.set_interior(prim)
        return result

    def solve_array(self, prim: jnp.ndarray,
                    evaluator: ResidualEvaluator) -> Tuple[jnp.ndarray, NewtonResult]:
        """Solve starting from `prim` (shape (..., D)); returns the new array and status."""
        cfg = self.config
        prim = jnp.asarray(prim)

        history = []
        ls_iterations = []
        singular_cells = 0

        for iteration in range(cfg.max_nonlinear_iter):
            residual = checked_evaluate(evaluator, prim, ResidualMode.FULL)
            norm = self.reductions.l2_norm(residual)
            history.append(norm)
            logger.info(f"Nonlinear iter = {iteration}, error = {norm:.6e}")

            if norm < cfg.nonlinear_atol:
                return prim, NewtonResult(
                    status=SolveStatus.CONVERGED,
                    iterations=iteration,
                    residual_norm=norm,
                    norm_history=history,
                    singular_cells=singular_cells,
                    line_search_iterations=ls_iterations,
                )

            jacobian = self._assemble(prim, evaluator)
            solution = batched_solve(jacobian, -residual)

            n_singular = int(jnp.sum(~solution.ok))
            if n_singular > 0:
                logger.debug(f"  {n_singular} cells with singular Jacobian, correction rejected")
            singular_cells += n_singular

            search = backtrack(
                prim, solution.x, evaluator, merit(residual),
                active=solution.ok,
                max_iters=cfg.max_line_search_iters,
                alpha=cfg.linesearch_alpha,
                eps=cfg.linesearch_floor,
                reductions=self.reductions,
            )
            ls_iterations.append(search.iterations)
            logger.debug(f"  Line search stopped after {search.iterations} iterations")

            prim = prim + search.step_length[..., None] * solution.x

        # Check the state produced by the last update
        residual = checked_evaluate(evaluator, prim, ResidualMode.FULL)
        norm = self.reductions.l2_norm(residual)
        history.append(norm)

        if norm < cfg.nonlinear_atol:
            status = SolveStatus.CONVERGED
        else:
            status = SolveStatus.EXHAUSTED
            logger.warning(f"Newton solve exhausted {cfg.max_nonlinear_iter} iterations, "
                           f"error = {norm:.6e}")

        return prim, NewtonResult(
            status=status,
            iterations=cfg.max_nonlinear_iter,
            residual_norm=norm,
            norm_history=history,
            singular_cells=singular_cells,
            line_search_iterations=ls_iterations,
        )

    def _assemble(self, prim: jnp.ndarray, evaluator: ResidualEvaluator) -> jnp.ndarray:
        if self.config.jacobian_mode == "ad":
            return assemble_jacobian_jvp(prim, evaluator)
        # The base of the differences must be the FAST residual at this state
        residual_fast = checked_evaluate(evaluator, prim, ResidualMode.FAST)
        return assemble_jacobian(prim, evaluator, residual_fast, self.config.jacobian_epsilon)
