"""
Land-ice core: Forward Euler thickness evolution on a decomposed mesh.

This package exposes the per-run configuration, the state containers, the
time integrator and a small facade (LandIceModel) that wires them together
and owns the step loop (including the level-2 -> level-1 hand-over and the
abort/continue policy on failed steps).
"""

from __future__ import annotations

import sys
from typing import Callable

from pylandice.dmpar import Communicator, get_communicator, merge_errors
from pylandice.errors import ErrorKind, StepFailedError, describe

from .config import RunConfig
from .state import Domain, Partition, State, Tendency
from .time_integration_fe import ForwardEulerIntegrator, forward_euler_step


class LandIceModel:
    """
    Facade over a Domain and a ForwardEulerIntegrator.

    - Supports DI via constructor keyword args (integrator).
    - create_default() assembles config (env, broadcast), communicator and the demo domain.
    """

    def __init__(self, config: RunConfig, domain: Domain, *, integrator: ForwardEulerIntegrator | None = None) -> None:
        self.config = config
        self.domain = domain
        self.integrator = integrator or ForwardEulerIntegrator(config)
        self.t_seconds = 0.0
        self.n_steps_taken = 0
        self.failed_steps: list[tuple[int, ErrorKind]] = []

    @classmethod
    def create_default(cls, comm: Communicator | None = None) -> LandIceModel:
        cfg = RunConfig.from_env()
        comm = comm or get_communicator(cfg.comm)
        cfg = cfg.broadcast(comm)
        from pylandice.decomposition import build_domain

        domain = build_domain(cfg.nx, cfg.ny, cfg.dx_m, cfg.n_levels, comm, blocks_per_rank=cfg.blocks_per_rank)
        model = cls(cfg, domain)
        model.initialize()
        return model

    def initialize(self) -> ErrorKind:
        """Diagnostics (including velocity) of the initial state, mirrored into level 2."""
        err = self.integrator.calculate_diagnostic_vars(self.domain, time_level=1, solve_velocity=True)
        for part in self.domain:
            for tla in part.state.time_level_arrays():
                tla.copy_old_to_new()
        if err:
            print(f"[LandIce] initial diagnostic solve reported: {describe(err)}", file=sys.stderr)
        return err

    def step(self) -> ErrorKind:
        """
        Advance one step; continue on error unless abort_on_error is set.

        With abort_on_error the decision is taken on the error merged over all
        processes (collective), so every process raises at the same step.
        """
        err = self.integrator.step(self.domain, self.config.dt_seconds)
        self.n_steps_taken += 1
        if err:
            self.failed_steps.append((self.n_steps_taken, err))
        if self.config.abort_on_error:
            global_err = merge_errors(self.domain.comm, err)
            if global_err:
                raise StepFailedError(global_err, self.n_steps_taken)
        self.domain.advance_time_levels()
        self.t_seconds += self.config.dt_seconds
        return err

    def run(self, n_steps: int | None = None, on_step: Callable[[LandIceModel], None] | None = None) -> ErrorKind:
        merged = ErrorKind.NONE
        for _ in range(self.config.n_steps if n_steps is None else n_steps):
            merged |= self.step()
            if on_step is not None:
                on_step(self)
        return merged


__all__ = [
    "RunConfig",
    "State",
    "Tendency",
    "Partition",
    "Domain",
    "ForwardEulerIntegrator",
    "forward_euler_step",
    "LandIceModel",
]
