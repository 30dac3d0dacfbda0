"""
Derived fluid quantities for ideal and extended GRMHD primitives.

Given primitives P = [ρ, u, ũ^1, ũ^2, ũ^3, B^1, B^2, B^3, (q), (ΔP)]
and the metric, computes

    γ     = sqrt(1 + g_ij ũ^i ũ^j)
    u^0   = γ/α,           u^i = ũ^i - γ α g^{0i}
    b^0   = B^i u_i,       b^i = (B^i + b^0 u^i)/u^0
    b²    = b^μ b_μ (+ floor)
    p     = (Γ-1) u,       c_s² = Γ p / (ρ + Γ u)

All operations broadcast over the leading cell axes.
"""

from dataclasses import dataclass
from typing import Optional

from ..constants import RHO, U, U1, U3, B1, B3, VariableLayout
from .jax_config import jnp


@dataclass
class FluidElement:
    """Derived quantities per cell.

    Vectors carry a trailing spacetime axis of length 4.
    """
    rho: jnp.ndarray
    u: jnp.ndarray
    gamma: jnp.ndarray
    ucon: jnp.ndarray
    ucov: jnp.ndarray
    bcon: jnp.ndarray
    bcov: jnp.ndarray
    bsqr: jnp.ndarray
    pressure: jnp.ndarray
    temperature: jnp.ndarray
    sound_speed: jnp.ndarray
    q: Optional[jnp.ndarray] = None
    delta_p: Optional[jnp.ndarray] = None


def compute_fluid_element(prim, geometry, floors, fluid,
                          layout: Optional[VariableLayout] = None) -> FluidElement:
    """Evaluate derived quantities from primitives.

    Parameters
    ----------
    prim : jnp.ndarray
        Primitives, shape (N1, N2, N3, D).
    geometry : Geometry
        Metric at the same cells.
    floors : FloorConfig
        Supplies the element-level floors on ρ, u and b².
    fluid : FluidConfig
        Adiabatic index and closure switches.
    layout : VariableLayout, optional
        Closure variable indices; derived from `fluid` when omitted.
    """
    if layout is None:
        layout = VariableLayout.from_closures(fluid.conduction, fluid.viscosity)

    gcov = geometry.gcov
    gcon = geometry.gcon
    alpha = geometry.alpha

    rho = jnp.maximum(prim[..., RHO], floors.rho_floor_in_element)
    u = jnp.maximum(prim[..., U], floors.u_floor_in_element)
    utilde = prim[..., U1:U3 + 1]
    B = prim[..., B1:B3 + 1]

    gamma = jnp.sqrt(1.0 + jnp.einsum('...ij,...i,...j->...', gcov[..., 1:, 1:], utilde, utilde))

    ucon0 = gamma / alpha
    ucon_i = utilde - (gamma * alpha)[..., None] * gcon[..., 0, 1:]
    ucon = jnp.concatenate([ucon0[..., None], ucon_i], axis=-1)
    ucov = jnp.einsum('...mn,...n->...m', gcov, ucon)

    bcon0 = jnp.einsum('...i,...i->...', B, ucov[..., 1:])
    bcon_i = (B + bcon0[..., None] * ucon_i) / ucon0[..., None]
    bcon = jnp.concatenate([bcon0[..., None], bcon_i], axis=-1)
    bcov = jnp.einsum('...mn,...n->...m', gcov, bcon)
    bsqr = jnp.einsum('...m,...m->...', bcon, bcov) + floors.bsqr_floor

    pressure = (fluid.adiabatic_index - 1.0) * u
    temperature = pressure / rho
    sound_speed = jnp.sqrt(fluid.adiabatic_index * pressure / (rho + fluid.adiabatic_index * u))

    q = prim[..., layout.q] if layout.q is not None else None
    delta_p = prim[..., layout.dp] if layout.dp is not None else None

    return FluidElement(
        rho=rho, u=u, gamma=gamma,
        ucon=ucon, ucov=ucov, bcon=bcon, bcov=bcov, bsqr=bsqr,
        pressure=pressure, temperature=temperature, sound_speed=sound_speed,
        q=q, delta_p=delta_p,
    )
