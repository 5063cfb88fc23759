"""
Forward Euler time integration of ice thickness.

One step, strictly in this order:
  1) calculate_tendencies   per-partition tendency, then ONE halo exchange of the
                            tendency (and, if configured, the CFL report reductions)
  2) update_prognostics     level 2 = level 1 + tendency * dt, column totals,
                            clamp negative columns (no communication)
  3) diagnostic solve       recompute diagnostics + velocity on level 2

Time level 1 holds the state at the beginning of the step and is frozen
(read-only) for the whole step. Level 2 is handed over to level 1 by the caller
(Domain.advance_time_levels) once it has decided what to do with the result.

Error handling
- Stages never stop early. Every partition is processed and every collective call
  is issued on every process, whatever the local error state, so that no process
  is left waiting in a halo exchange or reduction.
- Errors are ErrorKind flags merged by union and returned; messages go to stderr.
"""

from __future__ import annotations

import math
import sys
from dataclasses import dataclass, field

import numpy as np

from pylandice import constants
from pylandice.dmpar import field_halo_exch, max_int, min_real
from pylandice.errors import ErrorKind, combine, describe
from pylandice.jax_compat import clamp_negative_columns, forward_euler
from pylandice.timers import TimerRegistry

from .api import DiagnosticSolver, TendencyEvaluator, make_diagnostic_solver, make_tendency_evaluator
from .config import RunConfig
from .diagnostics import count_ice_cells
from .state import Domain

TENDENCY_FIELD = "tend.layer_thickness"


def format_time_interval(seconds: float) -> str:
    """Format a duration as DDDD_hh:mm:ss, truncated to whole seconds so it never overstates."""
    if not math.isfinite(seconds) or seconds < 0.0:
        raise ValueError(f"cannot express {seconds!r} s as a time interval")
    days, rem = divmod(math.floor(seconds), int(constants.SECONDS_PER_DAY))
    hh, rem = divmod(rem, 3600)
    mm, ss = divmod(rem, 60)
    return f"{days:04d}_{hh:02d}:{mm:02d}:{ss:02d}"


@dataclass
class TendencyReport:
    err: ErrorKind
    allowable_dt: float  # minimum over this process's partitions (s)
    allowable_dt_min: float | None = None  # global minimum, only when reported
    limiting_rank: int | None = None
    interval: str | None = None


@dataclass
class PartitionUpdate:
    block_id: int
    clamped_cells: int
    ice_cells: int


@dataclass
class PrognosticReport:
    err: ErrorKind
    partitions: list[PartitionUpdate] = field(default_factory=list)

    @property
    def clamped_cells(self) -> int:
        return sum(p.clamped_cells for p in self.partitions)

    @property
    def ice_cells(self) -> int:
        return sum(p.ice_cells for p in self.partitions)


class ForwardEulerIntegrator:
    """
    Explicit time integrator for the partitions of one process.

    Collaborators are injected (or built from the configuration by factory):
    - tendency: TendencyEvaluator
    - diagnostics: DiagnosticSolver
    - timers: TimerRegistry
    """

    def __init__(self,
                 config: RunConfig | None = None,
                 *,
                 tendency: TendencyEvaluator | None = None,
                 diagnostics: DiagnosticSolver | None = None,
                 timers: TimerRegistry | None = None) -> None:
        self.config = config or RunConfig()
        self.tendency = tendency or make_tendency_evaluator(self.config.tendency)
        self.diagnostics = diagnostics or make_diagnostic_solver("geometry", velocity=self.config.velocity_solver)
        self.timers = timers or TimerRegistry()
        self.last_tendency: TendencyReport | None = None
        self.last_update: PrognosticReport | None = None

    @property
    def verbose(self) -> bool:
        return self.config.print_thickness_advection_info

    # ------------- orchestrator -------------

    def step(self, domain: Domain, deltat: float) -> ErrorKind:
        """Advance every partition by one explicit step; return the merged error."""
        deltat = float(deltat)
        with domain.freeze_old_levels():
            with self.timers.scope("calculate tendencies"):
                self.last_tendency = self.calculate_tendencies(domain, deltat)
            with self.timers.scope("calc. new prognostic vars"):
                self.last_update = self.update_prognostics(domain, deltat)
            # Some velocity solvers need an initial guess; it must already be in level 2.
            with self.timers.scope("diagnostic solve"):
                err_diag = self.calculate_diagnostic_vars(domain, time_level=2, solve_velocity=True)

        err = combine(self.last_tendency.err, self.last_update.err, err_diag)
        if err:
            print(f"[ForwardEuler] An error has occurred in the forward Euler time integrator: {describe(err)}",
                  file=sys.stderr)
        return err

    # ------------- tendency stage -------------

    def calculate_tendencies(self, domain: Domain, deltat: float) -> TendencyReport:
        err = ErrorKind.NONE
        allowable_dt = math.inf

        # Local work only: no collective call may appear inside this loop
        for part in domain.partitions:
            try:
                tend, dt_max, part_err = self.tendency.evaluate(part.mesh, part.state, deltat)
                part.tendency.layer_thickness[...] = tend
            except Exception as exc:
                print(f"[ThkAdv] block {part.block_id}: tendency evaluation raised {exc!r}", file=sys.stderr)
                part.tendency.layer_thickness[...] = 0.0
                dt_max, part_err = math.inf, ErrorKind.TENDENCY
            if math.isnan(dt_max):
                part_err |= ErrorKind.TENDENCY
            elif dt_max < allowable_dt:
                allowable_dt = dt_max
            err |= part_err

        # All partitions done: synchronize tendency halos (collective, unconditional)
        with self.timers.scope("halo updates"):
            field_halo_exch(domain, TENDENCY_FIELD)

        report = TendencyReport(err=err, allowable_dt=allowable_dt)
        # Costs two extra collectives per step, hence opt-in
        if self.verbose:
            self._report_stability_limit(domain, report)

        if report.err:
            print(f"[ThkAdv] Error in calculating thickness tendency (possibly CFL violation): "
                  f"{describe(report.err)}", file=sys.stderr)
        return report

    def _report_stability_limit(self, domain: Domain, report: TendencyReport) -> None:
        comm = domain.comm
        dt_min = min_real(comm, report.allowable_dt)
        proc = comm.rank if report.allowable_dt == dt_min else -1
        limiting = max_int(comm, proc)

        report.allowable_dt_min = dt_min
        report.limiting_rank = limiting
        if math.isinf(dt_min):
            report.interval = "unlimited"
        else:
            try:
                report.interval = format_time_interval(dt_min)
            except ValueError:
                report.err |= ErrorKind.INTERVAL

        if comm.rank == 0 and report.interval is not None:
            print(f"[ThkAdv] Maximum allowable time step for all processors is (Days_hh:mm:ss): "
                  f"{report.interval}  Time step is limited by processor number {limiting}")

    # ------------- prognostic stage -------------

    def update_prognostics(self, domain: Domain, deltat: float) -> PrognosticReport:
        report = PrognosticReport(err=ErrorKind.NONE)

        for part in domain.partitions:
            mesh, st = part.mesh, part.state

            try:
                layers = forward_euler(st.layer_thickness.old, part.tendency.layer_thickness, deltat)
                # Negative columns should not happen unless dt exceeds the CFL limit or
                # negative mass balance exceeds the whole column
                layers, thickness, clamped = clamp_negative_columns(layers)
                st.layer_thickness.new[...] = layers
                st.thickness.new[...] = thickness
            except Exception as exc:
                print(f"[Prognostic] block {part.block_id}: prognostic update raised {exc!r}", file=sys.stderr)
                report.err |= ErrorKind.PROGNOSTIC
                report.partitions.append(PartitionUpdate(block_id=part.block_id, clamped_cells=0, ice_cells=0))
                continue

            if not np.all(np.isfinite(thickness)):
                report.err |= ErrorKind.PROGNOSTIC

            upd = PartitionUpdate(
                block_id=part.block_id,
                clamped_cells=int(np.count_nonzero(clamped[mesh.owned])),
                ice_cells=count_ice_cells(mesh, thickness),
            )
            report.partitions.append(upd)

            if self.verbose:
                if upd.clamped_cells > 0:
                    print(f"[Prognostic] block {part.block_id}: Cells with negative thickness (set to 0): "
                          f"{upd.clamped_cells}")
                print(f"[Prognostic] block {part.block_id}: Cells with nonzero thickness: {upd.ice_cells}")

        if report.err:
            print(f"[Prognostic] An error has occurred in update_prognostics: {describe(report.err)}",
                  file=sys.stderr)
        return report

    # ------------- diagnostic stage -------------

    def calculate_diagnostic_vars(self, domain: Domain, time_level: int = 2, solve_velocity: bool = True) -> ErrorKind:
        err = ErrorKind.NONE
        for part in domain.partitions:
            try:
                err |= self.diagnostics.compute(part.mesh, part.state, time_level, solve_velocity)
            except Exception as exc:
                print(f"[Diagnostics] block {part.block_id}: diagnostic solve raised {exc!r}", file=sys.stderr)
                err |= ErrorKind.DIAGNOSTIC
        return err


def forward_euler_step(domain: Domain, deltat: float, config: RunConfig | None = None, **kwargs) -> ErrorKind:
    """One-shot convenience: build an integrator and advance one step."""
    return ForwardEulerIntegrator(config, **kwargs).step(domain, deltat)
