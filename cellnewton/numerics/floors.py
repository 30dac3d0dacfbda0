"""
Physical admissibility projection ("floors") for GRMHD primitives.

Applied after every accepted nonlinear solve, and whenever admissibility
must be restored (e.g. after boundary extrapolation). The steps run in a
fixed order, each one working on the quantities corrected by the previous:

    1. Density / internal-energy floors: ρ >= A_ρ r^s_ρ, u >= A_u r^s_u
    2. Magnetization caps: b²/ρ <= σ_ρ, b²/u <= σ_u (raise ρ, u)
    3. Velocity repair in floored cells: keep the field-aligned momentum of
       the pre-floor state, rebuild ũ^i from the normalization u·u = -1
    4. Lorentz factor cap: γ <= γ_max by uniform rescaling of ũ^i, after
       which the magnetization caps are re-checked on the final b²
    5. Closure clamps on q and ΔP (extended closures only)

Derived quantities are re-evaluated after every step that changes the
primitives they depend on.
"""

from functools import partial
from typing import Callable, NamedTuple, Optional, Tuple

from loguru import logger

from ..config.schema import FloorConfig, FluidConfig
from ..constants import RHO, U, U1, U3, B1, B3, VariableLayout
from ..physics.fluid_element import FluidElement, compute_fluid_element
from ..physics.geometry import Geometry
from ..physics.jax_config import jnp

ElementFn = Callable[[jnp.ndarray, Geometry], FluidElement]

# Lower clamp on the normal-observer velocity squared in the velocity repair;
# the upper clamp 1 - 1/γ_max² depends on FloorConfig
_V2_MIN = 1e-13

# γ² within this relative distance of γ_max² counts as already capped
_GAMMA_SQR_RTOL = 1e-12


class FloorResult(NamedTuple):
    """Projected primitives and per-cell diagnostics.

    Attributes
    ----------
    prim : jnp.ndarray
        Admissible primitives, shape (..., D).
    use_floor : jnp.ndarray
        True where a density/energy floor or magnetization cap was applied.
    lorentz_capped : jnp.ndarray
        True where the Lorentz factor cap rescaled the velocity.
    """
    prim: jnp.ndarray
    use_floor: jnp.ndarray
    lorentz_capped: jnp.ndarray


def floor_profiles(radius: jnp.ndarray, floors: FloorConfig) -> Tuple[jnp.ndarray, jnp.ndarray]:
    """Minimum density and internal energy as power laws in radius."""
    min_rho = floors.rho_floor_ampl * jnp.power(radius, floors.rho_floor_slope)
    min_u = floors.u_floor_ampl * jnp.power(radius, floors.u_floor_slope)
    return min_rho, min_u


class ValidityProjector:
    """Repair primitives that violate the admissibility bounds.

    Parameters
    ----------
    floors : FloorConfig
        Floor profiles, caps and closure factors.
    fluid : FluidConfig
        Adiabatic index and closure switches.
    element_fn : callable, optional
        (prim, geometry) -> FluidElement. Defaults to the ideal/extended
        GRMHD element built from `floors` and `fluid`.
    """

    def __init__(self, floors: Optional[FloorConfig] = None,
                 fluid: Optional[FluidConfig] = None,
                 element_fn: Optional[ElementFn] = None):
        self.floors = floors if floors is not None else FloorConfig()
        self.fluid = fluid if fluid is not None else FluidConfig()
        self.layout = VariableLayout.from_closures(self.fluid.conduction, self.fluid.viscosity)
        if element_fn is None:
            element_fn = partial(compute_fluid_element, floors=self.floors,
                                 fluid=self.fluid, layout=self.layout)
        self.element_fn = element_fn

    def apply_state(self, state, geometry: Geometry) -> FloorResult:
        """Project the active domain of a StateGrid in place."""
        result = self.apply(state.interior, geometry)
        state.set_interior(result.prim)
        return result

    def apply(self, prim: jnp.ndarray, geometry: Geometry) -> FloorResult:
        """Return admissible primitives and the floor masks."""
        prim = jnp.asarray(prim)
        rho_prefloor = prim[..., RHO]
        u_prefloor = prim[..., U]

        prim, use_floor = self._density_energy_floors(prim, geometry)
        elem = self.element_fn(prim, geometry)

        prim, use_floor = self._magnetization_caps(prim, elem, use_floor)

        prim = self._repair_velocity(prim, elem, geometry, use_floor, rho_prefloor, u_prefloor)

        elem = self.element_fn(prim, geometry)
        prim, lorentz_capped = self._cap_lorentz_factor(prim, elem)

        # b² depends on ũ only, so one more pass on the final velocity is enough
        elem = self.element_fn(prim, geometry)
        prim, use_floor = self._magnetization_caps(prim, elem, use_floor)

        if self.layout.q is not None or self.layout.dp is not None:
            elem = self.element_fn(prim, geometry)
            prim = self._clamp_closures(prim, elem)

        logger.debug(f"Floors: {int(jnp.sum(use_floor))} cells floored, "
                     f"{int(jnp.sum(lorentz_capped))} Lorentz-capped")

        return FloorResult(prim=prim, use_floor=use_floor, lorentz_capped=lorentz_capped)

    def _density_energy_floors(self, prim, geometry):
        min_rho, min_u = floor_profiles(geometry.radius, self.floors)

        rho = prim[..., RHO]
        u = prim[..., U]
        rho_low = rho < min_rho
        u_low = u < min_u

        prim = prim.at[..., RHO].set(jnp.where(rho_low, min_rho, rho))
        prim = prim.at[..., U].set(jnp.where(u_low, min_u, u))
        return prim, rho_low | u_low

    def _magnetization_caps(self, prim, elem, use_floor):
        f = self.floors
        bsqr = elem.bsqr

        # Compare against the value that is written so a capped cell passes next time
        rho = prim[..., RHO]
        rho_min = bsqr / f.bsqr_over_rho_max
        cond = rho < rho_min
        use_floor = use_floor | cond
        prim = prim.at[..., RHO].set(jnp.where(cond, rho_min, rho))

        u = prim[..., U]
        u_min = bsqr / f.bsqr_over_u_max
        cond = u < u_min
        use_floor = use_floor | cond
        prim = prim.at[..., U].set(jnp.where(cond, u_min, u))

        return prim, use_floor

    def _repair_velocity(self, prim, elem, geometry, use_floor, rho_prefloor, u_prefloor):
        """Rebuild ũ^i in floored cells from the drift frame plus a field-aligned boost.

        The added mass moves with the E×B drift velocity; the velocity along
        the field is set so that the field-aligned momentum Q·B of the
        pre-floor state is retained with the new enthalpy.
        """
        f = self.floors
        gam = self.fluid.adiabatic_index
        gcov = geometry.gcov
        gcon = geometry.gcon
        max_v2 = 1.0 - 1.0 / (f.max_lorentz_factor * f.max_lorentz_factor)

        rho = prim[..., RHO]
        u = prim[..., U]
        bsqr = elem.bsqr
        ucon = elem.ucon
        bcon = elem.bcon

        # Blend weight: only strongly magnetized floored cells are repaired
        trans = jnp.clip((bsqr - 0.1 * rho) / rho, 0.0, 1.0)
        trans = jnp.where(use_floor, trans, 0.0)

        # Drift frame: remove the component of u along b
        betapar = -bcon[..., 0] / bsqr / ucon[..., 0]
        betasqr = jnp.minimum(betapar * betapar * bsqr, max_v2)
        gamma_drift = 1.0 / jnp.sqrt(1.0 - betasqr)
        ucon_drift = gamma_drift[..., None] * (ucon + betapar[..., None] * bcon)

        # Lab-frame field B^μ = (0, B^i)
        B = prim[..., B1:B3 + 1]
        Bcon = jnp.concatenate([jnp.zeros_like(rho)[..., None], B], axis=-1)
        Bcov = jnp.einsum('...mn,...n->...m', gcov, Bcon)
        udotB = jnp.einsum('...m,...m->...', Bcov, ucon)
        B_norm = jnp.sqrt(jnp.maximum(jnp.einsum('...m,...m->...', Bcov, Bcon), 0.0))
        B_norm = jnp.maximum(B_norm, jnp.sqrt(f.bsqr_floor))

        # Parallel velocity from the pre-floor Q·B
        w_old = rho_prefloor + gam * u_prefloor
        QdotB = udotB * w_old * ucon[..., 0]
        w_new = rho + gam * u
        x = 2.0 * QdotB / (B_norm * w_new * ucon_drift[..., 0])
        vpar = x / (ucon_drift[..., 0] * (1.0 + jnp.sqrt(1.0 + x * x)))

        # Coordinate 3-velocity v^i = u^i/u^0
        vcon_i = (vpar / B_norm)[..., None] * B + ucon_drift[..., 1:] / ucon_drift[..., 0:1]
        vcon = jnp.concatenate([jnp.ones_like(rho)[..., None], vcon_i], axis=-1)
        vsqr = jnp.einsum('...mn,...m,...n->...', gcov, vcon, vcon)

        # 1 - g^{00} vsqr is the squared speed seen by the normal observer;
        # clamping it rescales the normal-frame velocity so that u·u = -1
        # holds with γ = 1/sqrt(1 - v²) <= γ_max
        gcon00 = gcon[..., 0, 0]
        v2_raw = 1.0 - gcon00 * vsqr
        v2 = jnp.clip(v2_raw, _V2_MIN, max_v2)
        qcon = vcon_i - gcon[..., 0, 1:] / gcon00[..., None]
        qcon = qcon * jnp.sqrt(v2 / jnp.maximum(v2_raw, _V2_MIN))[..., None]
        ut = 1.0 / (geometry.alpha * jnp.sqrt(1.0 - v2))

        utilde_new = ut[..., None] * qcon

        utilde = prim[..., U1:U3 + 1]
        blended = (1.0 - trans)[..., None] * utilde + trans[..., None] * utilde_new
        utilde = jnp.where((trans > 0.0)[..., None], blended, utilde)
        return prim.at[..., U1:U3 + 1].set(utilde)

    def _cap_lorentz_factor(self, prim, elem):
        gamma_max_sqr = self.floors.max_lorentz_factor ** 2
        gamma_sqr = elem.gamma * elem.gamma

        capped = gamma_sqr > gamma_max_sqr * (1.0 + _GAMMA_SQR_RTOL)
        ratio = jnp.where(capped, (gamma_sqr - 1.0) / (gamma_max_sqr - 1.0), 1.0)
        mult = 1.0 / jnp.sqrt(jnp.maximum(ratio, 1.0))

        utilde = prim[..., U1:U3 + 1] * mult[..., None]
        return prim.at[..., U1:U3 + 1].set(utilde), capped

    def _clamp_closures(self, prim, elem):
        f = self.floors
        tiny = jnp.finfo(prim.dtype).tiny

        if self.layout.q is not None:
            q = elem.q
            q_max = 1.07 * f.conduction_closure_factor * prim[..., RHO] * elem.sound_speed ** 3
            lim = jnp.maximum(jnp.abs(q) / jnp.maximum(q_max, tiny), 1.0)
            prim = prim.at[..., self.layout.q].set(q / lim)

        if self.layout.dp is not None:
            pressure = elem.pressure
            delta_p = elem.delta_p
            bsqr = elem.bsqr

            dp_mod = (jnp.maximum(pressure - 2.0 / 3.0 * delta_p, 0.01 * f.bsqr_floor)
                      / jnp.maximum(pressure + 1.0 / 3.0 * delta_p, f.bsqr_floor))
            dp_max_plus = jnp.minimum(1.07 * f.viscosity_closure_factor * bsqr * 0.5 * dp_mod,
                                      1.49 * pressure)
            dp_max_minus = jnp.maximum(-1.07 * f.viscosity_closure_factor * bsqr,
                                       -2.99 * pressure)

            positive = delta_p > 0.0
            bound = jnp.where(positive, dp_max_plus, dp_max_minus)
            safe_bound = jnp.where(jnp.abs(bound) > tiny, bound, jnp.where(positive, tiny, -tiny))
            lim = jnp.maximum(delta_p / safe_bound, 1.0)
            prim = prim.at[..., self.layout.dp].set(delta_p / lim)

        return prim
