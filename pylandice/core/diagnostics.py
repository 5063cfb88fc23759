"""
Diagnostic recomputation and per-partition ice budget helpers.

Purpose
- GeometryDiagnostics re-derives the diagnostic fields that depend on thickness
  (lower/upper surface, cell mask) at a given time level, then runs the
  velocity solver on that level.
- Budget helpers are pure functions over owned cells; callers decide where to
  print. They perform no communication.

Notes
- Flotation: ice floats where rho_ice * H < rho_ocean * (sea_level - bed). Floating
  ice has its base at sea_level - (rho_ice / rho_ocean) * H.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from pylandice import constants
from pylandice.errors import ErrorKind
from pylandice.mesh import Mesh

from .api import VelocitySolver
from .state import State


@dataclass
class GeometryParams:
    rho_ice: float = constants.RHO_ICE
    rho_ocean: float = constants.RHO_OCEAN
    sea_level: float = constants.SEA_LEVEL


class GeometryDiagnostics:
    def __init__(self, velocity_solver: VelocitySolver | None = None, params: GeometryParams | None = None) -> None:
        self.p = params or GeometryParams()
        self.velocity_solver = velocity_solver

    def surfaces(self, thickness: np.ndarray, bed: np.ndarray) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Return (lower_surface, upper_surface, floating) for the given thickness."""
        ratio = self.p.rho_ice / self.p.rho_ocean
        floating = ratio * thickness < (self.p.sea_level - bed)
        lower = np.where(floating, self.p.sea_level - ratio * thickness, bed)
        return lower, lower + thickness, floating

    def compute(self, mesh: Mesh, state: State, time_level: int, solve_velocity: bool = True) -> ErrorKind:
        thickness = state.thickness.level(time_level)
        if not np.all(np.isfinite(thickness)):
            return ErrorKind.DIAGNOSTIC

        lower, upper, floating = self.surfaces(thickness, mesh.bed_topography)
        has_ice = thickness > 0.0
        mask = np.where(has_ice, constants.MASK_ICE, 0) | np.where(has_ice & floating, constants.MASK_FLOATING, 0)

        state.lower_surface.level(time_level)[...] = lower
        state.upper_surface.level(time_level)[...] = upper
        state.cell_mask.level(time_level)[...] = mask

        err = ErrorKind.NONE
        if solve_velocity and self.velocity_solver is not None:
            err |= self.velocity_solver.solve(mesh, state, time_level)
        return err


# ---------------------------
# Budget helpers (owned cells only)
# ---------------------------


def count_ice_cells(mesh: Mesh, thickness: np.ndarray) -> int:
    """Number of owned cells with strictly positive thickness (ice extent)."""
    return int(np.count_nonzero(thickness[mesh.owned] > 0.0))


def ice_area(mesh: Mesh, thickness: np.ndarray) -> float:
    owned = mesh.owned
    return float(np.sum(mesh.area_cell[owned] * (thickness[owned] > 0.0)))


def ice_volume(mesh: Mesh, thickness: np.ndarray) -> float:
    owned = mesh.owned
    return float(np.sum(mesh.area_cell[owned] * thickness[owned]))


@dataclass
class IceBudget:
    cells: int
    area: float
    volume: float


def budget_from_level(mesh: Mesh, state: State, time_level: int) -> IceBudget:
    h = state.thickness.level(time_level)
    return IceBudget(cells=count_ice_cells(mesh, h), area=ice_area(mesh, h), volume=ice_volume(mesh, h))
