"""
Physics collaborators for the cell solver: JAX setup, metric, derived fluid quantities.
"""

from .jax_config import jax, jnp, select_device, get_device_info
from .geometry import Geometry, cell_centers
from .fluid_element import FluidElement, compute_fluid_element

__all__ = [
    'jax',
    'jnp',
    'select_device',
    'get_device_info',
    'Geometry',
    'cell_centers',
    'FluidElement',
    'compute_fluid_element',
]
