import numpy as np
import pytest

from pylandice import constants
from pylandice.core.api import make_diagnostic_solver, make_velocity_solver
from pylandice.core.diagnostics import GeometryDiagnostics, budget_from_level, count_ice_cells
from pylandice.core.state import state_from_thickness
from pylandice.core.velocity import PrescribedVelocity, ShallowIceVelocity
from pylandice.decomposition import block_mesh, planar_quad_mesh
from pylandice.errors import ConfigError, ErrorKind
from pylandice.mesh import Mesh


def _line_mesh(n=3, dx=1000.0, bed=None):
    g = planar_quad_mesh(n, 1, dx)
    return block_mesh(g, np.zeros(n, dtype=np.int64), 0, 1, bed=bed)


def test_grounded_and_floating_surfaces():
    diag = GeometryDiagnostics()
    lower, upper, floating = diag.surfaces(np.array([100.0, 100.0]), np.array([0.0, -1000.0]))
    ratio = constants.RHO_ICE / constants.RHO_OCEAN
    np.testing.assert_array_equal(floating, [False, True])
    np.testing.assert_allclose(lower, [0.0, -ratio * 100.0])
    np.testing.assert_allclose(upper, lower + 100.0)


def test_compute_writes_requested_level_and_mask():
    mesh = Mesh(
        n_cells_solve=3,
        cell_ids=np.arange(3),
        layer_thickness_fractions=np.array([1.0]),
        cells_on_edge=np.empty((0, 2), dtype=np.int64),
        dc_edge=np.empty(0),
        dv_edge=np.empty(0),
        area_cell=np.ones(3),
        bed_topography=np.array([10.0, -1000.0, 0.0]),
    )
    st = state_from_thickness(mesh, [50.0, 100.0, 0.0])
    st.thickness.new[...] = st.thickness.old
    err = make_diagnostic_solver("geometry", velocity="none").compute(mesh, st, 2)
    assert err == ErrorKind.NONE
    np.testing.assert_array_equal(
        st.cell_mask.new, [constants.MASK_ICE, constants.MASK_ICE | constants.MASK_FLOATING, 0]
    )
    np.testing.assert_allclose(st.upper_surface.new[0], 60.0)
    # level 1 untouched
    np.testing.assert_allclose(st.upper_surface.old, 0.0)


def test_non_finite_thickness_is_a_diagnostic_error():
    mesh = _line_mesh()
    st = state_from_thickness(mesh, [1.0, np.nan, 1.0])
    assert GeometryDiagnostics().compute(mesh, st, 1) == ErrorKind.DIAGNOSTIC


def test_sia_flows_downslope():
    mesh = _line_mesh()
    st = state_from_thickness(mesh, [0.0, 500.0, 0.0])
    diag = GeometryDiagnostics(ShallowIceVelocity())
    assert diag.compute(mesh, st, 1) == ErrorKind.NONE
    u = st.normal_velocity.old[0]
    # edge 0 points 0 -> 1 (uphill), edge 1 points 1 -> 2 (downhill)
    assert u[0] < 0.0 < u[1]
    assert u[0] == pytest.approx(-u[1])


def test_sia_zero_on_flat_surface():
    mesh = _line_mesh()
    u = ShallowIceVelocity().edge_velocity(mesh, np.full(3, 300.0), np.full(3, 300.0))
    np.testing.assert_allclose(u, 0.0)


def test_prescribed_velocity_carries_level_one_forward():
    mesh = _line_mesh()
    st = state_from_thickness(mesh, 1.0, normal_velocity=3.0)
    st.normal_velocity.new[...] = 0.0
    assert PrescribedVelocity().solve(mesh, st, 2) == ErrorKind.NONE
    np.testing.assert_allclose(st.normal_velocity.new, 3.0)


def test_budget_counts_owned_cells_only():
    g = planar_quad_mesh(4, 1, 100.0)
    mesh = block_mesh(g, np.array([0, 0, 1, 1]), 0, 1)
    # owned gids 0, 1 plus ghost gid 2
    st = state_from_thickness(mesh, [2.0, 0.0, 7.0])
    assert count_ice_cells(mesh, st.thickness.old) == 1
    b = budget_from_level(mesh, st, 1)
    assert b.cells == 1
    assert b.area == pytest.approx(1.0e4)
    assert b.volume == pytest.approx(2.0e4)


def test_unknown_solver_kinds():
    with pytest.raises(ConfigError):
        make_velocity_solver("full-stokes")
    with pytest.raises(ConfigError):
        make_diagnostic_solver("thermal")
