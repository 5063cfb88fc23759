import numpy as np
import pytest

from pylandice.core.api import make_tendency_evaluator
from pylandice.core.state import state_from_thickness
from pylandice.core.tendency import FirstOrderUpwindThickness, SurfaceMassBalanceOnly, UpwindParams
from pylandice.decomposition import block_mesh, build_domain, planar_quad_mesh
from pylandice.dmpar import SerialCommunicator
from pylandice.errors import ConfigError, ErrorKind


def _line_mesh(n=3, dx=1000.0, n_levels=1):
    g = planar_quad_mesh(n, 1, dx)
    return block_mesh(g, np.zeros(n, dtype=np.int64), 0, n_levels)


def test_upwind_moves_mass_downstream():
    mesh = _line_mesh()
    st = state_from_thickness(mesh, [100.0, 0.0, 0.0], normal_velocity=1.0e-3)
    tend, dt_max, err = FirstOrderUpwindThickness().evaluate(mesh, st, 1.0)
    # flux 1e-3 m/s * 100 m * 1000 m over 1e6 m^2 cells
    np.testing.assert_allclose(tend[0], [-1.0e-4, 1.0e-4, 0.0])
    assert dt_max == pytest.approx(0.5 * 1000.0 / 1.0e-3)
    assert err == ErrorKind.NONE


def test_upwind_uses_downstream_cell_for_negative_velocity():
    mesh = _line_mesh()
    st = state_from_thickness(mesh, [0.0, 0.0, 50.0], normal_velocity=-2.0e-3)
    tend, _, _ = FirstOrderUpwindThickness().evaluate(mesh, st, 1.0)
    np.testing.assert_allclose(tend[0], [0.0, 1.0e-4, -1.0e-4])


def test_cfl_violation_is_reported_not_raised():
    mesh = _line_mesh()
    st = state_from_thickness(mesh, [100.0, 0.0, 0.0], normal_velocity=1.0e-3)
    _, dt_max, err = FirstOrderUpwindThickness().evaluate(mesh, st, 1.0e6)
    assert dt_max == pytest.approx(5.0e5)
    assert err == ErrorKind.CFL
    _, _, err = FirstOrderUpwindThickness(UpwindParams(check_cfl=False)).evaluate(mesh, st, 1.0e6)
    assert err == ErrorKind.NONE


def test_still_ice_has_unlimited_bound():
    mesh = _line_mesh()
    st = state_from_thickness(mesh, 10.0)
    _, dt_max, err = FirstOrderUpwindThickness().evaluate(mesh, st, 1.0e12)
    assert dt_max == float("inf")
    assert err == ErrorKind.NONE


def test_upwind_conserves_volume_on_closed_domain():
    domain = build_domain(6, 5, 1000.0, 2, SerialCommunicator(), sfc_mass_bal=lambda x, y: np.zeros_like(x))
    (part,) = domain.partitions
    rng = np.random.default_rng(0)
    part.state.normal_velocity.old[...] = rng.normal(0.0, 1.0e-4, part.state.normal_velocity.shape)
    tend, _, _ = FirstOrderUpwindThickness().evaluate(part.mesh, part.state, 1.0)
    volume_rate = np.sum(tend * part.mesh.area_cell[None, :])
    scale = np.sum(np.abs(tend) * part.mesh.area_cell[None, :])
    assert abs(volume_rate) <= 1.0e-12 * max(scale, 1.0)


def test_smb_is_distributed_by_layer_fraction():
    mesh = _line_mesh(n_levels=4)
    st = state_from_thickness(mesh, 0.0, sfc_mass_bal=np.array([4.0e-8, 0.0, -8.0e-8]))
    tend, dt_max, err = SurfaceMassBalanceOnly().evaluate(mesh, st, 1.0)
    np.testing.assert_allclose(tend, np.broadcast_to([1.0e-8, 0.0, -2.0e-8], (4, 3)))
    assert dt_max == float("inf")
    assert err == ErrorKind.NONE


def test_inactive_layers_get_no_tendency():
    mesh = _line_mesh(n_levels=2)
    mesh.max_level_cell[1] = 1
    st = state_from_thickness(mesh, 0.0, sfc_mass_bal=1.0e-8)
    tend, _, _ = SurfaceMassBalanceOnly().evaluate(mesh, st, 1.0)
    assert tend[1, 1] == 0.0
    assert tend[0, 1] == pytest.approx(0.5e-8)


def test_non_finite_tendency_is_an_error():
    mesh = _line_mesh()
    st = state_from_thickness(mesh, 0.0, sfc_mass_bal=np.array([np.nan, 0.0, 0.0]))
    _, _, err = make_tendency_evaluator("smb_only").evaluate(mesh, st, 1.0)
    assert err == ErrorKind.TENDENCY


def test_evaluators_do_not_write_state():
    mesh = _line_mesh()
    st = state_from_thickness(mesh, [100.0, 0.0, 0.0], normal_velocity=1.0e-3)
    with st.layer_thickness.old_frozen(), st.normal_velocity.old_frozen():
        FirstOrderUpwindThickness().evaluate(mesh, st, 1.0)
    np.testing.assert_allclose(st.layer_thickness.new[0], [100.0, 0.0, 0.0])


def test_unknown_evaluator_kind():
    with pytest.raises(ConfigError):
        make_tendency_evaluator("weno7")
