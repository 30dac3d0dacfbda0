"""
Tests for the StateGrid container.

Tests cover:
1. Ghost widths per active dimension
2. Allocation and interior views
3. Interior updates leave ghost layers alone
4. Edge padding from an interior array
5. Shape validation
"""

import pytest
import numpy as np
from numpy.testing import assert_allclose

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from cellnewton.physics.jax_config import jnp
from cellnewton.constants import NGHOST, N_IDEAL_VARS
from cellnewton.grid.state import StateGrid, ghost_widths


class TestGhostWidths:

    @pytest.mark.parametrize("dim, expected", [
        (1, (3, 0, 0)),
        (2, (3, 3, 0)),
        (3, (3, 3, 3)),
    ])
    def test_active_axes_only(self, dim, expected):
        assert ghost_widths(dim, 3) == expected

    def test_invalid_dim(self):
        with pytest.raises(ValueError):
            ghost_widths(4, 3)


class TestAllocation:

    def test_zeros_shape(self):
        state = StateGrid.zeros(8, 6, 1, N_IDEAL_VARS, dim=2)
        assert state.vars.shape == (8 + 2 * NGHOST, 6 + 2 * NGHOST, 1, N_IDEAL_VARS)
        assert state.interior_shape == (8, 6, 1, N_IDEAL_VARS)
        assert state.interior.shape == (8, 6, 1, N_IDEAL_VARS)
        assert state.dof == N_IDEAL_VARS
        assert state.n_cells == 48

    def test_three_dimensional(self):
        state = StateGrid.zeros(4, 4, 4, 2, dim=3, num_ghost=2)
        assert state.vars.shape == (8, 8, 8, 2)
        assert state.n_cells == 64

    def test_rejects_wrong_rank(self):
        with pytest.raises(ValueError):
            StateGrid(jnp.zeros((4, 4, 2)))

    def test_rejects_missing_ghosts(self):
        with pytest.raises(ValueError):
            StateGrid(jnp.zeros((6, 10, 1, 2)), dim=2, num_ghost=3)


class TestInterior:

    def test_set_interior_leaves_ghosts(self):
        state = StateGrid.zeros(4, 3, 1, 2, dim=2, num_ghost=2)
        values = jnp.arange(24.0).reshape(4, 3, 1, 2)
        state.set_interior(values)

        assert_allclose(np.asarray(state.interior), np.asarray(values))
        full = np.asarray(state.vars)
        assert full.sum() == float(np.asarray(values).sum())
        assert np.all(full[:2] == 0.0)
        assert np.all(full[:, -2:] == 0.0)

    def test_set_interior_shape_checked(self):
        state = StateGrid.zeros(4, 3, 1, 2, dim=2)
        with pytest.raises(ValueError):
            state.set_interior(jnp.zeros((4, 3, 1, 3)))

    def test_component(self):
        state = StateGrid.zeros(2, 2, 1, 3, dim=2)
        state.set_interior(jnp.ones((2, 2, 1, 3)) * jnp.array([1.0, 2.0, 3.0]))
        assert_allclose(np.asarray(state.component(1)), 2.0)
        assert state.component(1).shape == (2, 2, 1)

    def test_copy_is_independent(self):
        state = StateGrid.zeros(2, 2, 1, 1, dim=2)
        clone = state.copy()
        clone.set_interior(jnp.ones((2, 2, 1, 1)))
        assert float(jnp.sum(state.vars)) == 0.0
        assert clone.dim == state.dim


class TestFromInterior:

    def test_edge_padding(self):
        interior = jnp.arange(6.0).reshape(3, 2, 1, 1)
        state = StateGrid.from_interior(interior, dim=2, num_ghost=2)

        assert state.vars.shape == (7, 6, 1, 1)
        assert_allclose(np.asarray(state.interior), np.asarray(interior))
        # Corner ghost copies the corner interior cell
        assert float(state.vars[0, 0, 0, 0]) == 0.0
        assert float(state.vars[-1, -1, 0, 0]) == 5.0

    def test_rejects_wrong_rank(self):
        with pytest.raises(ValueError):
            StateGrid.from_interior(jnp.zeros((3, 2, 1)))


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
