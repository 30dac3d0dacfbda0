"""
YAML configuration loader with validation.
"""

import yaml
from pathlib import Path
from typing import Dict, Any, Union
from dataclasses import fields, is_dataclass

from .schema import (
    SimulationConfig, NewtonConfig, FloorConfig, FluidConfig,
    GridConfig, LoggingConfig, DeviceConfig,
    fast_preset, production_preset,
)

_SECTIONS = {
    'newton': NewtonConfig,
    'floors': FloorConfig,
    'fluid': FluidConfig,
    'grid': GridConfig,
    'logging': LoggingConfig,
    'device': DeviceConfig,
}


def _merge_dict(base: dict, override: dict) -> dict:
    """Recursively merge override into base dict."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _merge_dict(result[key], value)
        else:
            result[key] = value
    return result


def _coerce_type(value, field_type):
    """Coerce value to the expected field type."""
    # YAML reads "1e-10" (no dot) as a string
    if field_type in (float, 'float') and isinstance(value, (str, int)) and not isinstance(value, bool):
        try:
            return float(value)
        except ValueError:
            return value
    if field_type in (int, 'int') and isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return value
    return value


def _dict_to_dataclass(cls, data: dict):
    """Convert a dictionary to a dataclass instance, ignoring unknown keys."""
    if not is_dataclass(cls):
        return data

    field_types = {f.name: f.type for f in fields(cls)}
    kwargs = {}

    for key, value in data.items():
        if key not in field_types:
            continue
        kwargs[key] = _coerce_type(value, field_types[key])

    return cls(**kwargs)


def load_yaml(path: Union[str, Path]) -> SimulationConfig:
    """
    Load solver configuration from a YAML file.

    Args:
        path: Path to YAML configuration file

    Returns:
        Validated SimulationConfig instance

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If a setting fails validation
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    with open(path) as f:
        data = yaml.safe_load(f)

    if data is None:
        data = {}

    return from_dict(data).validate()


def from_dict(data: Dict[str, Any]) -> SimulationConfig:
    """
    Create SimulationConfig from a dictionary.

    A top-level ``preset`` key ("fast" or "production") seeds the newton
    section; explicit newton values still win.
    """
    data = dict(data)
    preset = data.pop('preset', None)
    if preset:
        newton_preset = {
            'fast': fast_preset(),
            'production': production_preset(),
        }.get(preset)
        if newton_preset is None:
            raise ValueError(f"Unknown preset {preset!r}")
        preset_dict = {f.name: getattr(newton_preset, f.name) for f in fields(NewtonConfig)}
        data['newton'] = _merge_dict(preset_dict, data.get('newton') or {})

    config_dict = {}
    for section, cls in _SECTIONS.items():
        if data.get(section) is not None:
            config_dict[section] = _dict_to_dataclass(cls, data[section])

    return SimulationConfig(**config_dict)


def apply_cli_overrides(config: SimulationConfig, args) -> SimulationConfig:
    """
    Apply command-line argument overrides to a configuration.

    Only overrides values that were explicitly set (not None).

    Args:
        config: Base configuration
        args: argparse.Namespace with CLI arguments

    Returns:
        Updated SimulationConfig
    """
    config_dict = config.to_dict()

    cli_mapping = {
        # Newton
        'max_iter': ('newton', 'max_nonlinear_iter'),
        'max_line_search': ('newton', 'max_line_search_iters'),
        'tol': ('newton', 'nonlinear_atol'),
        'epsilon': ('newton', 'jacobian_epsilon'),
        'jacobian_mode': ('newton', 'jacobian_mode'),

        # Floors
        'max_lorentz': ('floors', 'max_lorentz_factor'),
        'bsqr_over_rho_max': ('floors', 'bsqr_over_rho_max'),
        'bsqr_over_u_max': ('floors', 'bsqr_over_u_max'),

        # Grid
        'n1': ('grid', 'n1'),
        'n2': ('grid', 'n2'),
        'n3': ('grid', 'n3'),
        'metric': ('grid', 'metric'),

        # Logging / device
        'log_level': ('logging', 'level'),
        'device': ('device', 'device'),
    }

    for cli_name, config_path in cli_mapping.items():
        value = getattr(args, cli_name, None)
        if value is not None:
            target = config_dict
            for key in config_path[:-1]:
                target = target[key]
            target[config_path[-1]] = value

    return from_dict(config_dict)


def save_yaml(config: SimulationConfig, path: Union[str, Path]) -> None:
    """Save configuration to a YAML file."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    with open(path, 'w') as f:
        yaml.dump(config.to_dict(), f, default_flow_style=False, sort_keys=False)
