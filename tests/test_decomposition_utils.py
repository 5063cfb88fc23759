import numpy as np
import pytest

from pylandice import jax_compat
from pylandice.decomposition import (
    assign_blocks,
    block_mesh,
    build_domain,
    dome_thickness,
    planar_quad_mesh,
    strip_owners,
)
from pylandice.dmpar import SerialCommunicator
from pylandice.errors import ConfigError
from pylandice.timers import TimerRegistry


def test_planar_mesh_connectivity():
    g = planar_quad_mesh(3, 2, 5.0)
    assert g.n_cells == 6
    # 2 rows x 2 east edges + 1 row x 3 north edges
    assert g.edges.shape == (7, 2)
    np.testing.assert_allclose(g.x_cell[:3], [2.5, 7.5, 12.5])
    with pytest.raises(ConfigError):
        planar_quad_mesh(0, 2, 1.0)


def test_strip_owners_and_round_robin():
    np.testing.assert_array_equal(strip_owners(4, 2, 2), [0, 0, 1, 1, 0, 0, 1, 1])
    assert assign_blocks(5, 2) == [[0, 2, 4], [1, 3]]
    with pytest.raises(ConfigError):
        strip_owners(2, 2, 3)


def test_block_mesh_owned_first_with_one_cell_halo():
    g = planar_quad_mesh(4, 2, 1.0)
    owners = strip_owners(4, 2, 2)
    m = block_mesh(g, owners, 1, 2)
    assert m.n_cells_solve == 4
    np.testing.assert_array_equal(m.cell_ids[: m.n_cells_solve], [2, 3, 6, 7])
    np.testing.assert_array_equal(np.sort(m.cell_ids[m.n_cells_solve:]), [1, 5])
    # every edge touches an owned cell
    assert np.all(np.any(m.cells_on_edge < m.n_cells_solve, axis=1))


def test_build_domain_initial_state():
    domain = build_domain(10, 10, 1000.0, 4, SerialCommunicator(), blocks_per_rank=2)
    assert [p.block_id for p in domain] == [0, 1]
    for part in domain:
        st = part.state
        np.testing.assert_allclose(st.layer_thickness.old.sum(axis=0), st.thickness.old)
        assert np.all(st.thickness.old >= 0.0)
    assert max(p.state.thickness.old.max() for p in domain) > 0.0


def test_dome_is_zero_outside_radius():
    h = dome_thickness(np.array([0.0, 3.0, 10.0]), np.zeros(3), (0.0, 0.0), 5.0, h0=100.0)
    np.testing.assert_allclose(h, [100.0, 80.0, 0.0])


def test_jax_kernels_match_numpy_semantics():
    assert isinstance(jax_compat.is_enabled(), bool)
    old = np.array([[1.0, 2.0], [1.0, 2.0]])
    tend = np.array([[-3.0, 0.5], [0.0, 0.5]])
    new = jax_compat.forward_euler(old, tend, 1.0)
    layers, total, clamped = jax_compat.clamp_negative_columns(new)
    np.testing.assert_allclose(layers, [[0.0, 2.5], [0.0, 2.5]])
    np.testing.assert_allclose(total, [0.0, 5.0])
    np.testing.assert_array_equal(clamped, [True, False])
    # inputs are not modified
    np.testing.assert_allclose(new[:, 0], [-2.0, 1.0])


def test_timer_registry_nests_and_reports(capsys):
    timers = TimerRegistry()
    with timers.scope("outer"):
        with timers.scope("inner"):
            assert timers.active == ("outer", "inner")
    assert timers.stats["outer"].calls == 1
    assert timers.stats["inner"].total_s <= timers.stats["outer"].total_s
    timers.report()
    assert "[Timers] outer" in capsys.readouterr().out
    timers.reset()
    assert timers.stats == {}
