"""
Collaborator API: interfaces for the components the time integrator drives.

Intent
- Keep the integrator (time_integration_fe.py) free of physics: it only sequences
  tendency evaluation, halo exchange, the prognostic update and the diagnostic solve.
- Evaluators/solvers read plain arrays from the mesh/state; the integrator owns
  the time levels and decides what gets written where.

Key concepts
- TendencyEvaluator: (mesh, state@level1, dt) -> (tendency, allowable_dt, err)
- VelocitySolver: writes normal_velocity at a time level
- DiagnosticSolver: recomputes diagnostic fields at a time level

Notes
- Evaluators must be pure with respect to mesh and state (no hidden mutation).
- Errors are returned as ErrorKind values, never raised, so the caller can keep
  every process in the same collective-call sequence.
"""

from __future__ import annotations

from typing import Any, Protocol

import numpy as np

from pylandice.errors import ConfigError, ErrorKind
from pylandice.mesh import Mesh

from .state import State


class TendencyEvaluator(Protocol):
    def evaluate(self, mesh: Mesh, state: State, deltat: float) -> tuple[np.ndarray, float, ErrorKind]:
        """Return (layer thickness tendency (n_levels, n_cells), allowable dt in s, error)."""
        ...


class VelocitySolver(Protocol):
    def solve(self, mesh: Mesh, state: State, time_level: int) -> ErrorKind:
        ...


class DiagnosticSolver(Protocol):
    def compute(self, mesh: Mesh, state: State, time_level: int, solve_velocity: bool = True) -> ErrorKind:
        ...


# --------------------------
# Factories
# --------------------------

def make_tendency_evaluator(kind: str = "fo_upwind", **kwargs: Any) -> TendencyEvaluator:
    """
    kind:
      - "fo_upwind": first-order upwind thickness advection + surface mass balance
      - "smb_only":  surface mass balance only (no flow)
    """
    if kind == "fo_upwind":
        from .tendency import FirstOrderUpwindThickness
        return FirstOrderUpwindThickness(**kwargs)
    if kind == "smb_only":
        from .tendency import SurfaceMassBalanceOnly
        return SurfaceMassBalanceOnly(**kwargs)
    raise ConfigError(f"Unknown TendencyEvaluator kind: {kind!r}")


def make_velocity_solver(kind: str = "none", **kwargs: Any) -> VelocitySolver:
    """
    kind:
      - "none": keep the level-1 velocity (prescribed flow)
      - "sia":  shallow-ice approximation on edges
    """
    if kind == "none":
        from .velocity import PrescribedVelocity
        return PrescribedVelocity(**kwargs)
    if kind == "sia":
        from .velocity import ShallowIceVelocity
        return ShallowIceVelocity(**kwargs)
    raise ConfigError(f"Unknown VelocitySolver kind: {kind!r}")


def make_diagnostic_solver(kind: str = "geometry", *, velocity: str | VelocitySolver = "none",
                           **kwargs: Any) -> DiagnosticSolver:
    """
    kind:
      - "geometry": surfaces + cell mask, then the velocity solver
    """
    if kind == "geometry":
        from .diagnostics import GeometryDiagnostics
        solver = make_velocity_solver(velocity) if isinstance(velocity, str) else velocity
        return GeometryDiagnostics(velocity_solver=solver, **kwargs)
    raise ConfigError(f"Unknown DiagnosticSolver kind: {kind!r}")
