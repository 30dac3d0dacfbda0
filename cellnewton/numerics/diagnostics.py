"""Diagnostic quantities for implicit-step monitoring."""

import numpy as np
import numpy.typing as npt
from typing import NamedTuple, Dict, Any, Sequence

from ..physics.fluid_element import FluidElement

NDArrayFloat = npt.NDArray[np.floating]


class FloorUsage(NamedTuple):
    """Fraction of cells touched by the projection."""
    n_cells: int
    n_floored: int
    n_lorentz_capped: int
    floored_fraction: float


def compute_residual_statistics(residual, names: Sequence[str]) -> Dict[str, Any]:
    """Compute RMS and max residual statistics for each variable."""
    R: NDArrayFloat = np.asarray(residual)
    if R.shape[-1] != len(names):
        raise ValueError(f"Residual has {R.shape[-1]} components, got {len(names)} names")

    R_flat = R.reshape(-1, R.shape[-1])
    n_cells = R_flat.shape[0]

    stats: Dict[str, Any] = {}
    for i, name in enumerate(names):
        stats[f'rms_{name}'] = float(np.sqrt(np.sum(R_flat[:, i]**2) / n_cells))
        stats[f'max_{name}'] = float(np.max(np.abs(R_flat[:, i])))

    stats['l2_total'] = float(np.sqrt(np.sum(R_flat**2)))
    worst = np.unravel_index(np.argmax(np.sum(R**2, axis=-1)), R.shape[:-1])
    stats['max_loc'] = tuple(int(x) for x in worst)
    return stats


def compute_floor_usage(use_floor, lorentz_capped) -> FloorUsage:
    """Count cells flagged by the floor and Lorentz-cap masks."""
    use_floor = np.asarray(use_floor)
    n_cells = int(use_floor.size)
    n_floored = int(np.sum(use_floor))
    return FloorUsage(
        n_cells=n_cells,
        n_floored=n_floored,
        n_lorentz_capped=int(np.sum(np.asarray(lorentz_capped))),
        floored_fraction=n_floored / n_cells if n_cells else 0.0,
    )


def compute_solution_bounds(prim, elem: FluidElement) -> Dict[str, Any]:
    """Check the solution for physical bounds and anomalies."""
    P: NDArrayFloat = np.asarray(prim)
    gamma: NDArrayFloat = np.asarray(elem.gamma)
    pressure: NDArrayFloat = np.asarray(elem.pressure)
    bsqr: NDArrayFloat = np.asarray(elem.bsqr)

    # Plasma beta 2p/b², regularized as in the output diagnostics
    beta: NDArrayFloat = 2.0 * (pressure + 1e-13) / (bsqr + 1e-18)

    return {
        'has_nan': bool(np.any(np.isnan(P))),
        'has_inf': bool(np.any(np.isinf(P))),
        'rho_min': float(P[..., 0].min()),
        'u_min': float(P[..., 1].min()),
        'gamma_max': float(gamma.max()),
        'gamma_max_loc': tuple(int(x) for x in np.unravel_index(np.argmax(gamma), gamma.shape)),
        'plasma_beta_min': float(beta.min()),
        'sigma_max': float((bsqr / np.maximum(P[..., 0], 1e-300)).max()),
    }
