from __future__ import annotations

from contextlib import ExitStack, contextmanager
from dataclasses import dataclass, field
from typing import Any

import numpy as np

from pylandice.dmpar import Communicator, HaloExchanger, SerialCommunicator
from pylandice.mesh import Mesh
from pylandice.numerics.double_buffer import TimeLevelArray as TLA


@dataclass
class State:
    """Prognostic and diagnostic fields of one partition, two time levels each."""

    layer_thickness: TLA  # (n_vert_levels, n_cells) m
    thickness: TLA  # (n_cells,) m, always the column sum of layer_thickness
    upper_surface: TLA  # (n_cells,) m
    lower_surface: TLA  # (n_cells,) m
    cell_mask: TLA  # (n_cells,) int bit flags, see constants.MASK_*
    normal_velocity: TLA  # (n_vert_levels, n_edges) m/s, positive from cells_on_edge[:,0] to [:,1]
    sfc_mass_bal: np.ndarray  # (n_cells,) m of ice per second, forcing (single level)

    def time_level_arrays(self) -> list[TLA]:
        return [v for v in vars(self).values() if isinstance(v, TLA)]

    def swap_all(self) -> None:
        """Hand level 2 over to level 1 for every field."""
        for tla in self.time_level_arrays():
            tla.swap()


@dataclass
class Tendency:
    """Rate-of-change fields, recomputed every step."""

    layer_thickness: np.ndarray  # (n_vert_levels, n_cells) m/s


@dataclass
class Partition:
    """One mesh block owned by this process."""

    block_id: int
    mesh: Mesh
    state: State
    tendency: Tendency

    def field(self, identifier: str) -> np.ndarray:
        """
        Resolve "<group>.<name>" to a writable array.

        group is "tend" or "state"; state fields resolve to time level 2, since
        level 1 is never written during a step.
        """
        try:
            group, name = identifier.split(".", 1)
        except ValueError:
            raise KeyError(f"field identifier must look like 'tend.layer_thickness', got {identifier!r}") from None
        if group == "tend":
            container: Any = self.tendency
        elif group == "state":
            container = self.state
        else:
            raise KeyError(f"unknown field group {group!r} in {identifier!r}")
        value = getattr(container, name, None)
        if value is None:
            raise KeyError(f"unknown field {identifier!r}")
        if isinstance(value, TLA):
            return value.new
        return value


@dataclass
class Domain:
    """
    All partitions owned by this process plus the communicator.

    Partition order is the traversal order of every stage and never changes.
    Construction builds the halo-exchange plan and is therefore collective.
    """

    partitions: list[Partition]
    comm: Communicator = field(default_factory=SerialCommunicator)
    halo: HaloExchanger = field(init=False)

    def __post_init__(self) -> None:
        self.partitions = list(self.partitions)
        self.halo = HaloExchanger(self.partitions, self.comm)

    def __iter__(self):
        return iter(self.partitions)

    def __len__(self) -> int:
        return len(self.partitions)

    @contextmanager
    def freeze_old_levels(self):
        """Make every level-1 buffer read-only for the duration of the block."""
        with ExitStack() as stack:
            for part in self.partitions:
                for tla in part.state.time_level_arrays():
                    stack.enter_context(tla.old_frozen())
            yield self

    def advance_time_levels(self) -> None:
        """Level 2 becomes level 1 on every partition (end of a step)."""
        for part in self.partitions:
            part.state.swap_all()


# ---------- Helpers to construct state ----------


def zeros_state(mesh: Mesh) -> State:
    """Zero-initialized state sized for the given mesh."""
    nl, nc, ne = mesh.n_vert_levels, mesh.n_cells, mesh.n_edges
    return State(
        layer_thickness=TLA((nl, nc)),
        thickness=TLA((nc,)),
        upper_surface=TLA((nc,)),
        lower_surface=TLA((nc,)),
        cell_mask=TLA((nc,), dtype=np.int32, initial_value=0),
        normal_velocity=TLA((nl, ne)),
        sfc_mass_bal=np.zeros(nc),
    )


def state_from_thickness(mesh: Mesh, thickness, *, sfc_mass_bal=None, normal_velocity=None) -> State:
    """
    State whose layers split the given column thickness by the mesh fractions.
    Both time levels receive the same values.
    """
    thickness = np.broadcast_to(np.asarray(thickness, dtype=np.float64), (mesh.n_cells,))
    layers = mesh.layer_thickness_fractions[:, None] * thickness[None, :]
    st = zeros_state(mesh)
    st.layer_thickness = TLA.from_array(layers)
    st.thickness = TLA.from_array(layers.sum(axis=0))
    if sfc_mass_bal is not None:
        st.sfc_mass_bal[:] = sfc_mass_bal
    if normal_velocity is not None:
        nv = np.broadcast_to(np.asarray(normal_velocity, dtype=np.float64), (mesh.n_vert_levels, mesh.n_edges))
        st.normal_velocity = TLA.from_array(nv)
    return st


def zeros_tendency(mesh: Mesh) -> Tendency:
    return Tendency(layer_thickness=np.zeros((mesh.n_vert_levels, mesh.n_cells)))


def make_partition(block_id: int, mesh: Mesh, state: State | None = None) -> Partition:
    return Partition(
        block_id=block_id,
        mesh=mesh,
        state=state if state is not None else zeros_state(mesh),
        tendency=zeros_tendency(mesh),
    )
