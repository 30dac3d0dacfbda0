"""
Tests for configuration schema and YAML loading.

Tests cover:
1. Defaults validate
2. YAML round trip and partial files
3. Presets and their precedence
4. Validation errors
5. Command-line overrides
"""

import argparse

import pytest
import yaml

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from cellnewton.config import (
    SimulationConfig,
    NewtonConfig,
    FloorConfig,
    load_yaml,
    from_dict,
    save_yaml,
    apply_cli_overrides,
    fast_preset,
    production_preset,
)


# =============================================================================
# Defaults
# =============================================================================

class TestDefaults:

    def test_defaults_validate(self):
        config = SimulationConfig()
        assert config.validate() is config

    def test_newton_defaults(self):
        n = NewtonConfig()
        assert n.max_nonlinear_iter == 3
        assert n.max_line_search_iters == 3
        assert n.jacobian_epsilon == 4e-8
        assert n.linesearch_floor == 1e-30
        assert n.jacobian_mode == "fd"

    def test_floor_defaults(self):
        f = FloorConfig()
        assert f.bsqr_over_rho_max == 10.0
        assert f.bsqr_over_u_max == 500.0
        assert f.max_lorentz_factor == 10.0

    def test_to_dict(self):
        d = SimulationConfig().to_dict()
        assert set(d) == {'newton', 'floors', 'fluid', 'grid', 'logging', 'device'}
        assert d['newton']['max_nonlinear_iter'] == 3


# =============================================================================
# YAML loading
# =============================================================================

class TestYaml:

    def test_round_trip(self, tmp_path):
        config = SimulationConfig()
        config.newton.max_nonlinear_iter = 7
        config.floors.max_lorentz_factor = 25.0
        config.grid.metric = "modified_kerr_schild"

        path = tmp_path / "out" / "config.yaml"
        save_yaml(config, path)
        loaded = load_yaml(path)

        assert loaded == config

    def test_partial_file(self, tmp_path):
        path = tmp_path / "partial.yaml"
        path.write_text("newton:\n  max_nonlinear_iter: 12\nfluid:\n  conduction: true\n")
        config = load_yaml(path)

        assert config.newton.max_nonlinear_iter == 12
        assert config.newton.max_line_search_iters == 3
        assert config.fluid.conduction is True
        assert config.floors == FloorConfig()

    def test_exponent_without_dot(self, tmp_path):
        """YAML reads 1e-12 as a string; it must still become a float."""
        path = tmp_path / "tol.yaml"
        path.write_text("newton:\n  nonlinear_atol: 1e-12\n")
        config = load_yaml(path)
        assert isinstance(config.newton.nonlinear_atol, float)
        assert config.newton.nonlinear_atol == 1e-12

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_yaml(path) == SimulationConfig()

    def test_unknown_keys_ignored(self):
        config = from_dict({'newton': {'max_nonlinear_iter': 4, 'cfl': 3.0}, 'output': {}})
        assert config.newton.max_nonlinear_iter == 4

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_yaml(tmp_path / "nope.yaml")

    def test_invalid_value_in_file(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text(yaml.safe_dump({'newton': {'max_nonlinear_iter': 0}}))
        with pytest.raises(ValueError):
            load_yaml(path)


# =============================================================================
# Presets
# =============================================================================

class TestPresets:

    def test_fast_preset(self):
        config = from_dict({'preset': 'fast'})
        assert config.newton == fast_preset()

    def test_production_preset(self):
        config = from_dict({'preset': 'production'})
        assert config.newton == production_preset()
        assert config.newton.nonlinear_atol == 1e-12

    def test_explicit_values_win(self):
        config = from_dict({'preset': 'production', 'newton': {'max_nonlinear_iter': 2}})
        assert config.newton.max_nonlinear_iter == 2
        assert config.newton.max_line_search_iters == production_preset().max_line_search_iters

    def test_unknown_preset(self):
        with pytest.raises(ValueError):
            from_dict({'preset': 'turbo'})


# =============================================================================
# Validation
# =============================================================================

class TestValidation:

    @pytest.mark.parametrize("section, key, value", [
        ('newton', 'max_nonlinear_iter', 0),
        ('newton', 'max_line_search_iters', 0),
        ('newton', 'nonlinear_atol', 0.0),
        ('newton', 'jacobian_epsilon', -1e-8),
        ('newton', 'linesearch_alpha', 1.5),
        ('newton', 'jacobian_mode', 'complex_step'),
        ('floors', 'max_lorentz_factor', 1.0),
        ('floors', 'bsqr_over_rho_max', 0.0),
        ('floors', 'bsqr_floor', 0.0),
        ('fluid', 'adiabatic_index', 1.0),
        ('grid', 'dim', 4),
        ('grid', 'n1', 0),
        ('grid', 'metric', 'schwarzschild'),
    ])
    def test_rejects(self, section, key, value):
        config = SimulationConfig()
        setattr(getattr(config, section), key, value)
        with pytest.raises(ValueError):
            config.validate()


# =============================================================================
# CLI overrides
# =============================================================================

class TestCliOverrides:

    def test_only_set_values_applied(self):
        args = argparse.Namespace(max_iter=9, tol=None, jacobian_mode='ad',
                                  max_lorentz=50.0, n1=16, log_level='DEBUG')
        config = apply_cli_overrides(SimulationConfig(), args)

        assert config.newton.max_nonlinear_iter == 9
        assert config.newton.nonlinear_atol == NewtonConfig().nonlinear_atol
        assert config.newton.jacobian_mode == 'ad'
        assert config.floors.max_lorentz_factor == 50.0
        assert config.grid.n1 == 16
        assert config.logging.level == 'DEBUG'

    def test_base_config_unchanged(self):
        base = SimulationConfig()
        apply_cli_overrides(base, argparse.Namespace(max_iter=9))
        assert base.newton.max_nonlinear_iter == 3


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
