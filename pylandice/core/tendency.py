"""
Thickness tendency evaluators (array-in/array-out).

Purpose
- Provide the TendencyEvaluator implementations used by the Forward Euler
  integrator (see pylandice/core/api.py).
- Evaluators read time level 1 only and return fresh arrays; they never write
  into the state or the partition's tendency container.

FirstOrderUpwindThickness
    d(h_k)/dt = -div(u_k h_k^upwind) + f_k * smb
  on an unstructured mesh: fluxes live on edges, the divergence is a sparse
  (cells x edges) incidence operator scaled by 1/area_cell. The scheme is
  subject to a CFL condition; the local stability bound is
    allowable_dt = cfl_fraction * min_e dc_edge / |u_e|
  over moving edges that touch an owned cell.

SurfaceMassBalanceOnly
    d(h_k)/dt = f_k * smb  (no flow, unlimited stability bound)
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from scipy import sparse

from pylandice.errors import ErrorKind
from pylandice.mesh import Mesh

from .state import State


def _smb_tendency(mesh: Mesh, state: State) -> np.ndarray:
    # Surface mass balance distributed over the column by layer fractions
    return mesh.layer_thickness_fractions[:, None] * state.sfc_mass_bal[None, :]


def _finite_or_error(tend: np.ndarray) -> ErrorKind:
    return ErrorKind.NONE if np.all(np.isfinite(tend)) else ErrorKind.TENDENCY


@dataclass
class UpwindParams:
    cfl_fraction: float = 0.5
    check_cfl: bool = True  # flag dt > allowable_dt as ErrorKind.CFL


class FirstOrderUpwindThickness:
    """First-order upwind advection of layer thickness by the edge-normal velocity."""

    def __init__(self, params: UpwindParams | None = None) -> None:
        self.p = params or UpwindParams()
        # id(mesh) -> (mesh, operator); the mesh reference keeps the id valid
        self._ops: dict[int, tuple[Mesh, sparse.csr_matrix]] = {}

    def divergence_operator(self, mesh: Mesh) -> sparse.csr_matrix:
        """(n_cells, n_edges) operator D so that -D @ flux is the flux convergence per unit area."""
        cached = self._ops.get(id(mesh))
        if cached is not None:
            return cached[1]
        e = mesh.interior_edges()
        c1 = mesh.cells_on_edge[e, 0]
        c2 = mesh.cells_on_edge[e, 1]
        rows = np.concatenate([c1, c2])
        cols = np.concatenate([e, e])
        vals = np.concatenate([1.0 / mesh.area_cell[c1], -1.0 / mesh.area_cell[c2]])
        op = sparse.csr_matrix((vals, (rows, cols)), shape=(mesh.n_cells, mesh.n_edges))
        self._ops[id(mesh)] = (mesh, op)
        return op

    def edge_fluxes(self, mesh: Mesh, layer_thickness: np.ndarray, normal_velocity: np.ndarray) -> np.ndarray:
        """Volume flux per layer on every edge (m^3/s); zero on boundary edges."""
        flux = np.zeros((mesh.n_vert_levels, mesh.n_edges))
        e = mesh.interior_edges()
        if e.size == 0:
            return flux
        c1 = mesh.cells_on_edge[e, 0]
        c2 = mesh.cells_on_edge[e, 1]
        u = normal_velocity[:, e]
        h_up = np.where(u > 0.0, layer_thickness[:, c1], layer_thickness[:, c2])
        flux[:, e] = u * h_up * mesh.dv_edge[e][None, :]
        return flux

    def allowable_dt(self, mesh: Mesh, normal_velocity: np.ndarray) -> float:
        e = mesh.edges_touching_owned()
        if e.size == 0:
            return float("inf")
        speed = np.max(np.abs(normal_velocity[:, e]), axis=0)
        moving = speed > 0.0
        if not np.any(moving):
            return float("inf")
        return float(self.p.cfl_fraction * np.min(mesh.dc_edge[e][moving] / speed[moving]))

    def evaluate(self, mesh: Mesh, state: State, deltat: float) -> tuple[np.ndarray, float, ErrorKind]:
        h = state.layer_thickness.old
        u = state.normal_velocity.old

        flux = self.edge_fluxes(mesh, h, u)
        tend = -np.asarray(self.divergence_operator(mesh) @ flux.T).T
        tend = tend + _smb_tendency(mesh, state)
        tend = np.where(mesh.active_layers(), tend, 0.0)

        dt_max = self.allowable_dt(mesh, u)
        err = _finite_or_error(tend)
        if self.p.check_cfl and float(deltat) > dt_max:
            err |= ErrorKind.CFL
        return tend, dt_max, err


class SurfaceMassBalanceOnly:
    """Thickness changes only through surface mass balance."""

    def evaluate(self, mesh: Mesh, state: State, deltat: float) -> tuple[np.ndarray, float, ErrorKind]:
        tend = np.where(mesh.active_layers(), _smb_tendency(mesh, state), 0.0)
        return tend, float("inf"), _finite_or_error(tend)
