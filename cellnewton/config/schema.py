"""
Configuration schema for the implicit cell solver.

Dataclass-based configuration that can be loaded from YAML or constructed programmatically.
"""

from dataclasses import dataclass, field, asdict


@dataclass
class NewtonConfig:
    """Nonlinear solve settings."""

    max_nonlinear_iter: int = 3        # Outer Newton iterations per solve
    max_line_search_iters: int = 3     # Backtracking iterations per Newton step
    nonlinear_atol: float = 1e-10      # Global L2 norm of the full residual
    jacobian_epsilon: float = 4e-8     # Relative finite-difference perturbation
    linesearch_floor: float = 1e-30    # EPS added to the sufficient-decrease test
    linesearch_alpha: float = 1e-4     # Armijo constant

    # Jacobian assembly: "fd" (finite differences of the fast residual)
    #                    "ad" (forward-mode JVP, exact reference)
    jacobian_mode: str = "fd"


@dataclass
class FloorConfig:
    """Physical admissibility bounds enforced after each solve."""

    # Floor profiles: rho_min = rho_floor_ampl * r**rho_floor_slope
    rho_floor_ampl: float = 1e-4
    rho_floor_slope: float = -1.5
    u_floor_ampl: float = 1e-6
    u_floor_slope: float = -2.5

    # Magnetization caps
    bsqr_over_rho_max: float = 10.0
    bsqr_over_u_max: float = 500.0

    max_lorentz_factor: float = 10.0

    # Floors used inside the fluid element itself
    bsqr_floor: float = 1e-20
    rho_floor_in_element: float = 1e-20
    u_floor_in_element: float = 1e-20

    # Closure bounds (extended variables only)
    conduction_closure_factor: float = 1.0
    viscosity_closure_factor: float = 1.0


@dataclass
class FluidConfig:
    """Equation of state and closure switches."""

    adiabatic_index: float = 4.0 / 3.0
    conduction: bool = False
    viscosity: bool = False


@dataclass
class GridConfig:
    """Active-domain size and coordinates."""

    n1: int = 64
    n2: int = 64
    n3: int = 1
    dim: int = 2
    num_ghost: int = 3

    x1_start: float = 0.0
    x1_end: float = 1.0
    x2_start: float = 0.0
    x2_end: float = 1.0
    x3_start: float = 0.0
    x3_end: float = 1.0

    # "minkowski" or "modified_kerr_schild"
    metric: str = "minkowski"
    black_hole_spin: float = 0.0
    h_slope: float = 0.3


@dataclass
class LoggingConfig:
    """Log output settings."""

    level: str = "INFO"
    show_time: bool = True


@dataclass
class DeviceConfig:
    """Device/GPU configuration."""

    # Device selection: "auto", "cpu", or GPU index ("0", "1", "cuda:0", etc.)
    device: str = "auto"


@dataclass
class SimulationConfig:
    """Complete solver configuration."""

    newton: NewtonConfig = field(default_factory=NewtonConfig)
    floors: FloorConfig = field(default_factory=FloorConfig)
    fluid: FluidConfig = field(default_factory=FluidConfig)
    grid: GridConfig = field(default_factory=GridConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    device: DeviceConfig = field(default_factory=DeviceConfig)

    def validate(self) -> 'SimulationConfig':
        """Reject values the solver cannot work with.

        Raises
        ------
        ValueError
            On the first invalid setting found.
        """
        n = self.newton
        if n.max_nonlinear_iter < 1:
            raise ValueError(f"max_nonlinear_iter must be >= 1, got {n.max_nonlinear_iter}")
        if n.max_line_search_iters < 1:
            raise ValueError(f"max_line_search_iters must be >= 1, got {n.max_line_search_iters}")
        if n.nonlinear_atol <= 0:
            raise ValueError(f"nonlinear_atol must be positive, got {n.nonlinear_atol}")
        if n.jacobian_epsilon <= 0:
            raise ValueError(f"jacobian_epsilon must be positive, got {n.jacobian_epsilon}")
        if n.linesearch_floor < 0:
            raise ValueError(f"linesearch_floor must be >= 0, got {n.linesearch_floor}")
        if not 0 < n.linesearch_alpha < 1:
            raise ValueError(f"linesearch_alpha must lie in (0, 1), got {n.linesearch_alpha}")
        if n.jacobian_mode not in ("fd", "ad"):
            raise ValueError(f"jacobian_mode must be 'fd' or 'ad', got {n.jacobian_mode!r}")

        f = self.floors
        if f.max_lorentz_factor <= 1:
            raise ValueError(f"max_lorentz_factor must exceed 1, got {f.max_lorentz_factor}")
        if f.bsqr_over_rho_max <= 0 or f.bsqr_over_u_max <= 0:
            raise ValueError("Magnetization caps must be positive")
        if f.rho_floor_ampl < 0 or f.u_floor_ampl < 0:
            raise ValueError("Floor amplitudes must be non-negative")
        if f.bsqr_floor <= 0:
            raise ValueError(f"bsqr_floor must be positive, got {f.bsqr_floor}")

        if self.fluid.adiabatic_index <= 1:
            raise ValueError(f"adiabatic_index must exceed 1, got {self.fluid.adiabatic_index}")

        g = self.grid
        if g.dim not in (1, 2, 3):
            raise ValueError(f"grid.dim must be 1, 2 or 3, got {g.dim}")
        if min(g.n1, g.n2, g.n3) < 1:
            raise ValueError("Grid sizes must be >= 1")
        if g.metric not in ("minkowski", "modified_kerr_schild"):
            raise ValueError(f"Unknown metric {g.metric!r}")
        return self

    def to_dict(self) -> dict:
        """Convert to nested dictionary."""
        return asdict(self)


# Preset configurations
def fast_preset() -> NewtonConfig:
    """Loose tolerances for quick experiments and tests."""
    return NewtonConfig(
        max_nonlinear_iter=10,
        max_line_search_iters=5,
        nonlinear_atol=1e-8,
    )


def production_preset() -> NewtonConfig:
    """Tight tolerances for production time steps."""
    return NewtonConfig(
        max_nonlinear_iter=20,
        max_line_search_iters=8,
        nonlinear_atol=1e-12,
    )
