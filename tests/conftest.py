"""
Shared pytest fixtures for the test suite.

Small Minkowski patches, admissible primitive states and simple
cell-local residuals with known roots.
"""

import sys
from pathlib import Path

import pytest
import numpy as np

# Project root directory
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from cellnewton.physics.jax_config import jnp
from cellnewton.physics.geometry import Geometry
from cellnewton.config.schema import FloorConfig, FluidConfig, NewtonConfig
from cellnewton.numerics.residual import SplitResidual


# =============================================================================
# Geometry Fixtures
# =============================================================================

@pytest.fixture
def flat_geometry():
    """Minkowski patch of 3×2×1 cells away from the origin (r in [1.4, 2.9])."""
    x = np.array([1.0, 1.5, 2.0])
    y = np.array([1.0, 2.0])
    z = np.array([0.0])
    X, Y, Z = np.meshgrid(x, y, z, indexing='ij')
    return Geometry.minkowski(X, Y, Z)


@pytest.fixture
def kerr_geometry():
    """Modified Kerr-Schild patch of 4×3×2 cells around a spinning hole."""
    X1 = np.log(np.linspace(2.0, 20.0, 4))
    X2 = np.linspace(0.1, 0.9, 3)
    X3 = np.linspace(0.0, 1.0, 2)
    X1, X2, X3 = np.meshgrid(X1, X2, X3, indexing='ij')
    return Geometry.modified_kerr_schild(X1, X2, X3, spin=0.9, h_slope=0.3)


# =============================================================================
# Primitive State Fixtures
# =============================================================================

def make_prim(shape, rho=1.0, u=1.0, utilde=(0.0, 0.0, 0.0), bfield=(0.01, 0.0, 0.0), extra=()):
    """Uniform primitives [ρ, u, ũ^1..3, B^1..3, extra...] on `shape` cells."""
    values = [rho, u, *utilde, *bfield, *extra]
    return jnp.broadcast_to(jnp.array(values, dtype=jnp.float64), tuple(shape) + (len(values),))


@pytest.fixture
def valid_prim(flat_geometry):
    """Admissible fluid at rest with a weak field, on the flat patch."""
    return make_prim(flat_geometry.shape)


@pytest.fixture
def floors():
    return FloorConfig()


@pytest.fixture
def fluid():
    return FluidConfig()


# =============================================================================
# Residual Fixtures
# =============================================================================

@pytest.fixture
def quadratic_residual():
    """F = [x² - 4, y - 2] in every cell; root (2, 2)."""
    def residual_fn(P):
        x = P[..., 0]
        y = P[..., 1]
        return jnp.stack([x * x - 4.0, y - 2.0], axis=-1)
    return SplitResidual(residual_fn)


@pytest.fixture
def tight_newton():
    """Newton settings with enough iterations for quadratic convergence to 1e-10."""
    return NewtonConfig(max_nonlinear_iter=20, max_line_search_iters=3, nonlinear_atol=1e-10)


@pytest.fixture
def prim_factory():
    """Access to make_prim from tests."""
    return make_prim
