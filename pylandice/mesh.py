# pylandice/mesh.py

"""
Unstructured mesh of one partition (block).

Cells are ordered owned-first: indices [0, n_cells_solve) are owned by the
partition, the remainder are halo (ghost) cells whose values are owned by a
neighbouring partition. Vertical structure is described by per-layer
thickness fractions and a per-cell count of active layers.
"""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np

from pylandice.errors import MeshError


@dataclass
class Mesh:
    """
    Read-only geometry/connectivity of a partition.

    Arrays
    ------
    cell_ids : (n_cells,) global cell ids
    max_level_cell : (n_cells,) number of active layers per cell
    layer_thickness_fractions : (n_vert_levels,) fractions summing to 1
    cells_on_edge : (n_edges, 2) local cell indices, -1 for a missing neighbour
    dc_edge : (n_edges,) distance between the two cell centers (m)
    dv_edge : (n_edges,) edge length (m)
    area_cell : (n_cells,) cell area (m^2)
    """

    n_cells_solve: int
    cell_ids: np.ndarray
    layer_thickness_fractions: np.ndarray
    cells_on_edge: np.ndarray
    dc_edge: np.ndarray
    dv_edge: np.ndarray
    area_cell: np.ndarray
    max_level_cell: np.ndarray | None = None
    x_cell: np.ndarray | None = None
    y_cell: np.ndarray | None = None
    bed_topography: np.ndarray | None = None
    # Derived
    n_cells: int = field(init=False)
    n_edges: int = field(init=False)
    n_vert_levels: int = field(init=False)

    def __post_init__(self) -> None:
        self.cell_ids = np.asarray(self.cell_ids, dtype=np.int64)
        self.layer_thickness_fractions = np.asarray(self.layer_thickness_fractions, dtype=np.float64)
        self.cells_on_edge = np.asarray(self.cells_on_edge, dtype=np.int64).reshape(-1, 2)
        self.dc_edge = np.asarray(self.dc_edge, dtype=np.float64)
        self.dv_edge = np.asarray(self.dv_edge, dtype=np.float64)
        self.area_cell = np.asarray(self.area_cell, dtype=np.float64)

        self.n_cells = int(self.cell_ids.size)
        self.n_edges = int(self.cells_on_edge.shape[0])
        self.n_vert_levels = int(self.layer_thickness_fractions.size)

        if self.max_level_cell is None:
            self.max_level_cell = np.full(self.n_cells, self.n_vert_levels, dtype=np.int64)
        else:
            self.max_level_cell = np.asarray(self.max_level_cell, dtype=np.int64)
        zeros = np.zeros(self.n_cells, dtype=np.float64)
        self.x_cell = zeros.copy() if self.x_cell is None else np.asarray(self.x_cell, dtype=np.float64)
        self.y_cell = zeros.copy() if self.y_cell is None else np.asarray(self.y_cell, dtype=np.float64)
        self.bed_topography = (
            zeros.copy() if self.bed_topography is None else np.asarray(self.bed_topography, dtype=np.float64)
        )
        self._validate()

    def _validate(self) -> None:
        if not 0 <= self.n_cells_solve <= self.n_cells:
            raise MeshError(f"n_cells_solve={self.n_cells_solve} outside [0, {self.n_cells}]")
        if self.n_vert_levels < 1:
            raise MeshError("mesh needs at least one vertical layer")
        if not np.isclose(self.layer_thickness_fractions.sum(), 1.0):
            raise MeshError(
                f"layer thickness fractions sum to {self.layer_thickness_fractions.sum():.6f}, expected 1"
            )
        for name in ("area_cell", "max_level_cell", "x_cell", "y_cell", "bed_topography"):
            arr = getattr(self, name)
            if arr.shape != (self.n_cells,):
                raise MeshError(f"{name} has shape {arr.shape}, expected ({self.n_cells},)")
        for name in ("dc_edge", "dv_edge"):
            arr = getattr(self, name)
            if arr.shape != (self.n_edges,):
                raise MeshError(f"{name} has shape {arr.shape}, expected ({self.n_edges},)")
        if np.any(self.max_level_cell < 0) or np.any(self.max_level_cell > self.n_vert_levels):
            raise MeshError("max_level_cell must lie in [0, n_vert_levels]")
        if np.any(self.cells_on_edge < -1) or np.any(self.cells_on_edge >= self.n_cells):
            raise MeshError("cells_on_edge references a cell outside this partition")
        if np.unique(self.cell_ids).size != self.n_cells:
            raise MeshError("cell_ids must be unique within a partition")

    # ---- derived views ----
    @property
    def owned(self) -> slice:
        return slice(0, self.n_cells_solve)

    def active_layers(self) -> np.ndarray:
        """(n_vert_levels, n_cells) boolean mask of layers below max_level_cell."""
        k = np.arange(self.n_vert_levels)[:, None]
        return k < self.max_level_cell[None, :]

    def interior_edges(self) -> np.ndarray:
        """Indices of edges with a cell on both sides."""
        return np.nonzero(np.all(self.cells_on_edge >= 0, axis=1))[0]

    def edges_touching_owned(self) -> np.ndarray:
        """Interior edges with at least one owned cell."""
        e = self.interior_edges()
        c = self.cells_on_edge[e]
        return e[np.any(c < self.n_cells_solve, axis=1)]


def uniform_layer_fractions(n_levels: int) -> np.ndarray:
    if n_levels < 1:
        raise MeshError("n_levels must be >= 1")
    return np.full(n_levels, 1.0 / n_levels)


def single_column_mesh(n_levels: int = 1, area: float = 1.0) -> Mesh:
    """A one-cell partition with no edges."""
    return Mesh(
        n_cells_solve=1,
        cell_ids=np.array([0]),
        layer_thickness_fractions=uniform_layer_fractions(n_levels),
        cells_on_edge=np.empty((0, 2), dtype=np.int64),
        dc_edge=np.empty(0),
        dv_edge=np.empty(0),
        area_cell=np.array([area]),
    )
