"""
Configuration module for the implicit cell solver.

Provides YAML-based configuration with dataclass schema.
"""

from .schema import (
    SimulationConfig,
    NewtonConfig,
    FloorConfig,
    FluidConfig,
    GridConfig,
    LoggingConfig,
    DeviceConfig,
    fast_preset,
    production_preset,
)

from .loader import (
    load_yaml,
    from_dict,
    apply_cli_overrides,
    save_yaml,
)

__all__ = [
    # Schema classes
    'SimulationConfig',
    'NewtonConfig',
    'FloorConfig',
    'FluidConfig',
    'GridConfig',
    'LoggingConfig',
    'DeviceConfig',
    # Presets
    'fast_preset',
    'production_preset',
    # Loader functions
    'load_yaml',
    'from_dict',
    'apply_cli_overrides',
    'save_yaml',
]
