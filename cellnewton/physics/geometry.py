"""
Metric evaluation at cell centers.

Provides the covariant/contravariant metric per cell, the lapse, the
volume element and the physical coordinates used by the floor profiles.

Two spacetimes are supported:
    - Minkowski in Cartesian coordinates
    - Modified Kerr-Schild: r = exp(X1), θ = πX2 + (1-h)/2 sin(2πX2), φ = X3

Reference: McKinney & Gammie (2004), ApJ 611, 977 (HARM coordinates).
"""

from dataclasses import dataclass
from typing import Tuple

import numpy as np

from ..constants import NDIM
from .jax_config import jnp


@dataclass
class Geometry:
    """Per-cell metric data on the active domain.

    Attributes
    ----------
    gcov : jnp.ndarray
        Covariant metric g_{μν}, shape (N1, N2, N3, 4, 4).
    gcon : jnp.ndarray
        Contravariant metric g^{μν}, shape (N1, N2, N3, 4, 4).
    xcoords : jnp.ndarray
        Physical coordinates, shape (3, N1, N2, N3). (x, y, z) for
        Minkowski, (r, θ, φ) for Kerr-Schild.
    radius : jnp.ndarray
        Radial coordinate used by position-dependent floors, (N1, N2, N3).
    """
    gcov: jnp.ndarray
    gcon: jnp.ndarray
    xcoords: jnp.ndarray
    radius: jnp.ndarray

    @property
    def alpha(self) -> jnp.ndarray:
        """Lapse α = 1/sqrt(-g^{00})."""
        return 1.0 / jnp.sqrt(-self.gcon[..., 0, 0])

    @property
    def sqrt_g(self) -> jnp.ndarray:
        """Volume element sqrt(-det g)."""
        return jnp.sqrt(-jnp.linalg.det(self.gcov))

    @property
    def shape(self) -> Tuple[int, ...]:
        return self.radius.shape

    @classmethod
    def minkowski(cls, x1, x2, x3) -> 'Geometry':
        """Flat spacetime, signature (-,+,+,+), Cartesian coordinates."""
        x1, x2, x3 = jnp.broadcast_arrays(jnp.asarray(x1, dtype=jnp.float64),
                                          jnp.asarray(x2, dtype=jnp.float64),
                                          jnp.asarray(x3, dtype=jnp.float64))
        eta = jnp.diag(jnp.array([-1.0, 1.0, 1.0, 1.0]))
        gcov = jnp.broadcast_to(eta, x1.shape + (NDIM, NDIM))
        radius = jnp.sqrt(x1**2 + x2**2 + x3**2)
        return cls(gcov=gcov, gcon=gcov, xcoords=jnp.stack([x1, x2, x3]), radius=radius)

    @classmethod
    def modified_kerr_schild(cls, X1, X2, X3, spin: float = 0.0,
                             h_slope: float = 0.3) -> 'Geometry':
        """Kerr-Schild metric in log-radial, polar-compressed coordinates (M = 1)."""
        X1, X2, X3 = jnp.broadcast_arrays(jnp.asarray(X1, dtype=jnp.float64),
                                          jnp.asarray(X2, dtype=jnp.float64),
                                          jnp.asarray(X3, dtype=jnp.float64))
        r = jnp.exp(X1)
        theta = jnp.pi * X2 + 0.5 * (1.0 - h_slope) * jnp.sin(2.0 * jnp.pi * X2)

        # Jacobian factors dr/dX1, dθ/dX2
        rfac = r
        hfac = jnp.pi + (1.0 - h_slope) * jnp.pi * jnp.cos(2.0 * jnp.pi * X2)

        gcov = _kerr_schild_gcov(r, theta, rfac, hfac, spin)
        gcon = jnp.linalg.inv(gcov)
        return cls(gcov=gcov, gcon=gcon, xcoords=jnp.stack([r, theta, X3]), radius=r)

    @classmethod
    def from_config(cls, grid_cfg) -> 'Geometry':
        """Build geometry at the cell centers described by a GridConfig."""
        X1, X2, X3 = cell_centers(grid_cfg)
        if grid_cfg.metric == "minkowski":
            return cls.minkowski(X1, X2, X3)
        if grid_cfg.metric == "modified_kerr_schild":
            return cls.modified_kerr_schild(X1, X2, X3, grid_cfg.black_hole_spin, grid_cfg.h_slope)
        raise ValueError(f"Unknown metric {grid_cfg.metric!r}")


def cell_centers(grid_cfg) -> Tuple[jnp.ndarray, jnp.ndarray, jnp.ndarray]:
    """Code coordinates of the active-domain cell centers, each (N1, N2, N3)."""
    axes = []
    for n, start, end in ((grid_cfg.n1, grid_cfg.x1_start, grid_cfg.x1_end),
                          (grid_cfg.n2, grid_cfg.x2_start, grid_cfg.x2_end),
                          (grid_cfg.n3, grid_cfg.x3_start, grid_cfg.x3_end)):
        dx = (end - start) / n
        axes.append(start + (np.arange(n) + 0.5) * dx)
    X1, X2, X3 = np.meshgrid(*axes, indexing='ij')
    return jnp.asarray(X1), jnp.asarray(X2), jnp.asarray(X3)


def _kerr_schild_gcov(r, theta, rfac, hfac, a):
    """Covariant Kerr-Schild metric with coordinate stretch factors applied."""
    cth = jnp.cos(theta)
    sth = jnp.abs(jnp.sin(theta))
    sth = jnp.maximum(sth, 1e-20)   # regular at the poles
    s2 = sth * sth
    rho2 = r * r + a * a * cth * cth
    zero = jnp.zeros_like(r)

    g00 = -1.0 + 2.0 * r / rho2
    g01 = 2.0 * r / rho2 * rfac
    g03 = -2.0 * a * r * s2 / rho2
    g11 = (1.0 + 2.0 * r / rho2) * rfac * rfac
    g13 = -a * s2 * (1.0 + 2.0 * r / rho2) * rfac
    g22 = rho2 * hfac * hfac
    g33 = s2 * (rho2 + a * a * s2 * (1.0 + 2.0 * r / rho2))

    rows = [
        [g00, g01, zero, g03],
        [g01, g11, zero, g13],
        [zero, zero, g22, zero],
        [g03, g13, zero, g33],
    ]
    return jnp.stack([jnp.stack(row, axis=-1) for row in rows], axis=-2)
