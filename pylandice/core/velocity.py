"""
Velocity solvers invoked by the diagnostic recomputation.

They write state.normal_velocity at the requested time level (never level 1
during a step; the integrator only asks for level 2).
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from pylandice import constants
from pylandice.errors import ErrorKind
from pylandice.mesh import Mesh

from .state import State


class PrescribedVelocity:
    """Velocity is an input: carry level 1 forward into level 2."""

    def solve(self, mesh: Mesh, state: State, time_level: int) -> ErrorKind:
        if time_level == 2:
            state.normal_velocity.copy_old_to_new()
        return ErrorKind.NONE


@dataclass
class SIAParams:
    flow_param_a: float = constants.FLOW_PARAM_A
    glen_n: float = constants.GLEN_N
    rho_ice: float = constants.RHO_ICE
    gravity: float = constants.GRAVITY


class ShallowIceVelocity:
    """
    Shallow-ice approximation, depth-averaged, evaluated on edges:

        u_e = -2 A (rho g)^n / (n + 2) * H_e^(n+1) * |ds/dx|^(n-1) * ds/dx

    with ds/dx = (s[c2] - s[c1]) / dc_edge and H_e the mean of the two cells.
    The same velocity is assigned to every layer.
    """

    def __init__(self, params: SIAParams | None = None) -> None:
        self.p = params or SIAParams()

    def edge_velocity(self, mesh: Mesh, thickness: np.ndarray, upper_surface: np.ndarray) -> np.ndarray:
        p = self.p
        u = np.zeros(mesh.n_edges)
        e = mesh.interior_edges()
        if e.size == 0:
            return u
        c1 = mesh.cells_on_edge[e, 0]
        c2 = mesh.cells_on_edge[e, 1]
        slope = (upper_surface[c2] - upper_surface[c1]) / mesh.dc_edge[e]
        h_edge = 0.5 * (thickness[c1] + thickness[c2])
        coef = 2.0 * p.flow_param_a * (p.rho_ice * p.gravity) ** p.glen_n / (p.glen_n + 2.0)
        u[e] = -coef * h_edge ** (p.glen_n + 1.0) * np.abs(slope) ** (p.glen_n - 1.0) * slope
        return u

    def solve(self, mesh: Mesh, state: State, time_level: int) -> ErrorKind:
        u = self.edge_velocity(mesh, state.thickness.level(time_level), state.upper_surface.level(time_level))
        if not np.all(np.isfinite(u)):
            return ErrorKind.VELOCITY
        state.normal_velocity.level(time_level)[...] = u[None, :]
        return ErrorKind.NONE
