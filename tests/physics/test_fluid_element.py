"""
Tests for derived fluid quantities.

Tests cover:
1. Normalization u·u = -1 and orthogonality u·b = 0
2. Flat-space Lorentz factor and field strength
3. Equation of state and sound speed
4. Element-level floors and closure variables
"""

import pytest
import numpy as np
from numpy.testing import assert_allclose

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from cellnewton.physics.jax_config import jnp
from cellnewton.physics.fluid_element import FluidElement, compute_fluid_element
from cellnewton.config.schema import FloorConfig, FluidConfig
from cellnewton.constants import RHO, U, U1, U3, B1, VariableLayout


# =============================================================================
# Test fixtures
# =============================================================================

def moving_prim(shape, seed=3):
    rng = np.random.default_rng(seed)
    n = int(np.prod(shape))
    prim = np.empty((n, 8))
    prim[:, RHO] = rng.uniform(0.5, 2.0, n)
    prim[:, U] = rng.uniform(0.1, 1.0, n)
    prim[:, U1:U3 + 1] = rng.normal(scale=0.5, size=(n, 3))
    prim[:, B1:] = rng.normal(scale=0.3, size=(n, 3))
    return jnp.asarray(prim.reshape(tuple(shape) + (8,)))


# =============================================================================
# Four-vector identities
# =============================================================================

class TestFourVectors:

    @pytest.mark.parametrize("geometry_name", ["flat", "kerr"])
    def test_normalization(self, geometry_name, flat_geometry, kerr_geometry, floors, fluid):
        geometry = flat_geometry if geometry_name == "flat" else kerr_geometry
        elem = compute_fluid_element(moving_prim(geometry.shape), geometry, floors, fluid)
        udotu = np.einsum('...m,...m->...', np.asarray(elem.ucon), np.asarray(elem.ucov))
        assert_allclose(udotu, -1.0, rtol=1e-10)

    @pytest.mark.parametrize("geometry_name", ["flat", "kerr"])
    def test_field_orthogonal_to_velocity(self, geometry_name, flat_geometry, kerr_geometry,
                                          floors, fluid):
        geometry = flat_geometry if geometry_name == "flat" else kerr_geometry
        elem = compute_fluid_element(moving_prim(geometry.shape), geometry, floors, fluid)
        udotb = np.einsum('...m,...m->...', np.asarray(elem.ucon), np.asarray(elem.bcov))
        assert_allclose(udotb, 0.0, atol=1e-10)

    def test_bsqr_positive(self, kerr_geometry, floors, fluid):
        elem = compute_fluid_element(moving_prim(kerr_geometry.shape), kerr_geometry, floors, fluid)
        assert np.all(np.asarray(elem.bsqr) > 0.0)


# =============================================================================
# Flat space
# =============================================================================

class TestFlatSpace:

    def test_lorentz_factor(self, flat_geometry, prim_factory, floors, fluid):
        prim = prim_factory(flat_geometry.shape, utilde=(0.6, 0.0, 0.8))
        elem = compute_fluid_element(prim, flat_geometry, floors, fluid)
        assert_allclose(np.asarray(elem.gamma), np.sqrt(2.0))
        assert_allclose(np.asarray(elem.ucon[..., 0]), np.sqrt(2.0))
        assert_allclose(np.asarray(elem.ucon[..., 1]), 0.6)

    def test_field_at_rest(self, flat_geometry, prim_factory, floors, fluid):
        prim = prim_factory(flat_geometry.shape, bfield=(0.3, 0.4, 0.0))
        elem = compute_fluid_element(prim, flat_geometry, floors, fluid)
        assert_allclose(np.asarray(elem.bcon[..., 0]), 0.0, atol=1e-15)
        assert_allclose(np.asarray(elem.bsqr), 0.25, rtol=1e-12)


# =============================================================================
# Thermodynamics
# =============================================================================

class TestThermodynamics:

    def test_ideal_gas(self, flat_geometry, prim_factory, floors):
        fluid = FluidConfig(adiabatic_index=5.0 / 3.0)
        prim = prim_factory(flat_geometry.shape, rho=2.0, u=3.0)
        elem = compute_fluid_element(prim, flat_geometry, floors, fluid)

        assert_allclose(np.asarray(elem.pressure), 2.0)
        assert_allclose(np.asarray(elem.temperature), 1.0)
        # c_s² = Γp / (ρ + Γu) = (10/3) / 7
        assert_allclose(np.asarray(elem.sound_speed), np.sqrt(10.0 / 21.0))

    def test_element_floors(self, flat_geometry, prim_factory, fluid):
        floors = FloorConfig(rho_floor_in_element=1e-8, u_floor_in_element=1e-9)
        prim = prim_factory(flat_geometry.shape, rho=-1.0, u=0.0)
        elem = compute_fluid_element(prim, flat_geometry, floors, fluid)

        assert_allclose(np.asarray(elem.rho), 1e-8)
        assert_allclose(np.asarray(elem.u), 1e-9)
        assert np.all(np.isfinite(np.asarray(elem.sound_speed)))

    def test_closure_variables(self, flat_geometry, prim_factory, floors):
        fluid = FluidConfig(conduction=True, viscosity=True)
        prim = prim_factory(flat_geometry.shape, extra=(0.2, -0.1))
        elem = compute_fluid_element(prim, flat_geometry, floors, fluid)

        assert isinstance(elem, FluidElement)
        assert_allclose(np.asarray(elem.q), 0.2)
        assert_allclose(np.asarray(elem.delta_p), -0.1)

    def test_ideal_has_no_closures(self, flat_geometry, valid_prim, floors, fluid):
        elem = compute_fluid_element(valid_prim, flat_geometry, floors, fluid,
                                     layout=VariableLayout())
        assert elem.q is None
        assert elem.delta_p is None


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
