"""
Dense container of per-cell primitive vectors.

Layout: vars.shape = (N1 + 2*g1, N2 + 2*g2, N3 + 2*g3, D)

Ghost layers g are only present along the active dimensions (dim = 1, 2
or 3). The solver core works on the interior (active domain) only; the
ghost margin belongs to collaborators such as reconstruction and boundary
exchange.
"""

from dataclasses import dataclass
from typing import Tuple

from ..constants import NGHOST
from ..physics.jax_config import jnp


def ghost_widths(dim: int, num_ghost: int) -> Tuple[int, int, int]:
    """Ghost width per axis for a `dim`-dimensional problem."""
    if dim not in (1, 2, 3):
        raise ValueError(f"dim must be 1, 2 or 3, got {dim}")
    return tuple(num_ghost if axis < dim else 0 for axis in range(3))


@dataclass
class StateGrid:
    """Primitive variables on a 3D block of cells.

    Attributes
    ----------
    vars : jnp.ndarray
        Full array including ghost cells, shape (N1+2g1, N2+2g2, N3+2g3, D).
    dim : int
        Number of active dimensions.
    num_ghost : int
        Ghost layers on each side of an active dimension.
    """
    vars: jnp.ndarray
    dim: int = 3
    num_ghost: int = NGHOST

    def __post_init__(self):
        self.vars = jnp.asarray(self.vars)
        if self.vars.ndim != 4:
            raise ValueError(f"StateGrid expects a 4D array (N1, N2, N3, D), got shape {self.vars.shape}")
        for axis, g in enumerate(self.ghosts):
            if self.vars.shape[axis] <= 2 * g:
                raise ValueError(
                    f"Axis {axis} has {self.vars.shape[axis]} cells, too few for {g} ghost layers")

    @classmethod
    def zeros(cls, n1: int, n2: int, n3: int, dof: int,
              dim: int = 3, num_ghost: int = NGHOST) -> 'StateGrid':
        """Allocate a zero state with ghost margins on the active axes."""
        g = ghost_widths(dim, num_ghost)
        shape = (n1 + 2 * g[0], n2 + 2 * g[1], n3 + 2 * g[2], dof)
        return cls(jnp.zeros(shape), dim=dim, num_ghost=num_ghost)

    @classmethod
    def from_interior(cls, interior: jnp.ndarray,
                      dim: int = 3, num_ghost: int = NGHOST) -> 'StateGrid':
        """Wrap an active-domain array, padding ghosts by edge extension."""
        interior = jnp.asarray(interior)
        if interior.ndim != 4:
            raise ValueError(f"Interior must have shape (N1, N2, N3, D), got {interior.shape}")
        g = ghost_widths(dim, num_ghost)
        padded = jnp.pad(interior, ((g[0], g[0]), (g[1], g[1]), (g[2], g[2]), (0, 0)), mode='edge')
        return cls(padded, dim=dim, num_ghost=num_ghost)

    @property
    def ghosts(self) -> Tuple[int, int, int]:
        return ghost_widths(self.dim, self.num_ghost)

    @property
    def interior_slice(self) -> Tuple[slice, slice, slice]:
        return tuple(slice(g, n - g) for g, n in zip(self.ghosts, self.vars.shape[:3]))

    @property
    def interior(self) -> jnp.ndarray:
        """Active-domain view, shape (N1, N2, N3, D)."""
        return self.vars[self.interior_slice]

    def set_interior(self, values: jnp.ndarray) -> None:
        """Overwrite the active domain, leaving ghost cells untouched."""
        values = jnp.asarray(values)
        if values.shape != self.interior_shape:
            raise ValueError(f"Interior update has shape {values.shape}, expected {self.interior_shape}")
        self.vars = self.vars.at[self.interior_slice].set(values)

    @property
    def interior_shape(self) -> Tuple[int, int, int, int]:
        return tuple(n - 2 * g for n, g in zip(self.vars.shape[:3], self.ghosts)) + (self.dof,)

    @property
    def dof(self) -> int:
        return self.vars.shape[-1]

    @property
    def n_cells(self) -> int:
        n1, n2, n3, _ = self.interior_shape
        return n1 * n2 * n3

    def component(self, index: int) -> jnp.ndarray:
        """Interior values of one primitive component, shape (N1, N2, N3)."""
        return self.interior[..., index]

    def copy(self) -> 'StateGrid':
        return StateGrid(jnp.array(self.vars, copy=True), dim=self.dim, num_ghost=self.num_ghost)
