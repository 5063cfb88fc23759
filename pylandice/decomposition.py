# pylandice/decomposition.py

"""
Planar demo meshes and their decomposition into blocks.

- planar_quad_mesh(nx, ny, dx): regular grid of square cells described as an
  unstructured mesh (cells + edges), global cell id = j * nx + i.
- strip_owners(...): split the grid into vertical strips, one per block.
- block_mesh(...): the Mesh of one block: its owned cells followed by a one-cell
  halo of ghost cells, with every edge that touches an owned cell.
- build_domain(...): blocks assigned round-robin to ranks; the Domain of this rank.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

import numpy as np

from pylandice import constants
from pylandice.errors import ConfigError
from pylandice.mesh import Mesh, uniform_layer_fractions


@dataclass
class GlobalQuadMesh:
    nx: int
    ny: int
    dx: float
    x_cell: np.ndarray  # (n_cells,)
    y_cell: np.ndarray
    edges: np.ndarray  # (n_edges, 2) global cell ids, normal points from [:,0] to [:,1]

    @property
    def n_cells(self) -> int:
        return self.nx * self.ny


def planar_quad_mesh(nx: int, ny: int, dx: float) -> GlobalQuadMesh:
    if nx < 1 or ny < 1 or dx <= 0.0:
        raise ConfigError(f"invalid planar mesh nx={nx}, ny={ny}, dx={dx}")
    jj, ii = np.meshgrid(np.arange(ny), np.arange(nx), indexing="ij")
    gid = (jj * nx + ii).ravel()
    x = (ii.ravel() + 0.5) * dx
    y = (jj.ravel() + 0.5) * dx
    grid = gid.reshape(ny, nx)
    east = np.stack([grid[:, :-1].ravel(), grid[:, 1:].ravel()], axis=1)
    north = np.stack([grid[:-1, :].ravel(), grid[1:, :].ravel()], axis=1)
    edges = np.concatenate([east, north]).astype(np.int64).reshape(-1, 2)
    return GlobalQuadMesh(nx=nx, ny=ny, dx=float(dx), x_cell=x, y_cell=y, edges=edges)


def strip_owners(nx: int, ny: int, n_blocks: int) -> np.ndarray:
    """Block id of every global cell; blocks are contiguous column strips."""
    if not 1 <= n_blocks <= nx:
        raise ConfigError(f"cannot split {nx} columns into {n_blocks} strips")
    col_block = np.empty(nx, dtype=np.int64)
    for b, cols in enumerate(np.array_split(np.arange(nx), n_blocks)):
        col_block[cols] = b
    return np.tile(col_block, ny)


def block_mesh(g: GlobalQuadMesh, owners: np.ndarray, block_id: int, n_levels: int,
               bed: np.ndarray | None = None) -> Mesh:
    is_owned = owners == block_id
    owned = np.nonzero(is_owned)[0]

    e_mask = is_owned[g.edges[:, 0]] | is_owned[g.edges[:, 1]]
    local_edges = g.edges[e_mask]
    ends = np.unique(local_edges.ravel())
    ghosts = ends[~is_owned[ends]]
    gids = np.concatenate([owned, ghosts])

    g2l = np.full(g.n_cells, -1, dtype=np.int64)
    g2l[gids] = np.arange(gids.size)
    n_edges = local_edges.shape[0]

    return Mesh(
        n_cells_solve=int(owned.size),
        cell_ids=gids,
        layer_thickness_fractions=uniform_layer_fractions(n_levels),
        cells_on_edge=g2l[local_edges],
        dc_edge=np.full(n_edges, g.dx),
        dv_edge=np.full(n_edges, g.dx),
        area_cell=np.full(gids.size, g.dx * g.dx),
        x_cell=g.x_cell[gids],
        y_cell=g.y_cell[gids],
        bed_topography=None if bed is None else np.asarray(bed)[gids],
    )


def assign_blocks(n_blocks: int, size: int) -> list[list[int]]:
    """Round-robin block ids per rank."""
    return [list(range(r, n_blocks, size)) for r in range(size)]


# ---------- Initial conditions ----------


def dome_thickness(x: np.ndarray, y: np.ndarray, center: tuple[float, float], radius: float,
                   h0: float = 1000.0) -> np.ndarray:
    """Parabolic-profile ice dome: h0 * sqrt(1 - (r/R)^2) inside R, 0 outside."""
    r2 = ((x - center[0]) ** 2 + (y - center[1]) ** 2) / radius ** 2
    return h0 * np.sqrt(np.clip(1.0 - r2, 0.0, None))


def radial_smb(x: np.ndarray, y: np.ndarray, center: tuple[float, float], radius: float,
               smb_center_m_yr: float = 0.3, gradient_m_yr: float = 1.0) -> np.ndarray:
    """Mass balance decreasing linearly with distance (m of ice per second)."""
    r = np.hypot(x - center[0], y - center[1]) / radius
    return (smb_center_m_yr - gradient_m_yr * r) / constants.SECONDS_IN_YEAR


def build_domain(nx: int, ny: int, dx: float, n_levels: int, comm, *,
                 blocks_per_rank: int = 1,
                 owners: np.ndarray | None = None,
                 thickness: Callable[[np.ndarray, np.ndarray], np.ndarray] | None = None,
                 sfc_mass_bal: Callable[[np.ndarray, np.ndarray], np.ndarray] | None = None,
                 bed: Callable[[np.ndarray, np.ndarray], np.ndarray] | None = None):
    """
    Build this rank's Domain (collective: the halo plan is set up here).

    thickness / sfc_mass_bal / bed are functions of cell-center coordinates.
    Defaults: centered dome of radius 0.4 * domain width, radial SMB, flat bed at 0.
    """
    from pylandice.core.state import Domain, make_partition, state_from_thickness

    g = planar_quad_mesh(nx, ny, dx)
    n_blocks = blocks_per_rank * comm.size
    if owners is None:
        owners = strip_owners(nx, ny, n_blocks)
    else:
        owners = np.asarray(owners, dtype=np.int64)
        n_blocks = int(owners.max()) + 1

    center = (0.5 * nx * dx, 0.5 * ny * dx)
    radius = 0.4 * min(nx, ny) * dx
    if thickness is None:
        thickness = lambda x, y: dome_thickness(x, y, center, radius)  # noqa: E731
    if sfc_mass_bal is None:
        sfc_mass_bal = lambda x, y: radial_smb(x, y, center, radius)  # noqa: E731

    bed_global = None if bed is None else bed(g.x_cell, g.y_cell)
    partitions = []
    for b in assign_blocks(n_blocks, comm.size)[comm.rank]:
        mesh = block_mesh(g, owners, b, n_levels, bed=bed_global)
        st = state_from_thickness(
            mesh,
            thickness(mesh.x_cell, mesh.y_cell),
            sfc_mass_bal=sfc_mass_bal(mesh.x_cell, mesh.y_cell),
        )
        partitions.append(make_partition(b, mesh, st))
    return Domain(partitions, comm)
