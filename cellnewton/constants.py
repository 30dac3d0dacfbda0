"""
Global constants for the implicit cell solver.

Defines the fixed index mapping of the primitive variables and the
spacetime dimension used by the geometry and fluid-element helpers.
"""

from dataclasses import dataclass
from typing import Optional, Tuple

# Spacetime dimension (t, x1, x2, x3)
NDIM = 4

# Number of ghost cell layers kept by collaborators (reconstruction stencils)
NGHOST = 3

# Primitive variable components, always addressed by these indices
RHO = 0   # Rest-mass density
U = 1     # Internal energy density
U1 = 2    # Velocity components (u-tilde^i)
U2 = 3
U3 = 4
B1 = 5    # Magnetic field components (B^i)
B2 = 6
B3 = 7
N_IDEAL_VARS = 8

IDEAL_NAMES = ('rho', 'u', 'u1', 'u2', 'u3', 'B1', 'B2', 'B3')


@dataclass(frozen=True)
class VariableLayout:
    """Index mapping for the primitive vector, including closure variables.

    Attributes
    ----------
    dof : int
        Number of components per cell.
    q : int or None
        Index of the heat flux variable (conduction closure).
    dp : int or None
        Index of the pressure anisotropy variable (viscosity closure).
    """
    dof: int = N_IDEAL_VARS
    q: Optional[int] = None
    dp: Optional[int] = None

    @classmethod
    def from_closures(cls, conduction: bool = False, viscosity: bool = False) -> 'VariableLayout':
        """Append Q then DP after the ideal variables, as enabled."""
        dof = N_IDEAL_VARS
        q = dp = None
        if conduction:
            q = dof
            dof += 1
        if viscosity:
            dp = dof
            dof += 1
        return cls(dof=dof, q=q, dp=dp)

    @property
    def names(self) -> Tuple[str, ...]:
        extra = ()
        if self.q is not None:
            extra += ('q',)
        if self.dp is not None:
            extra += ('deltaP',)
        return IDEAL_NAMES + extra
