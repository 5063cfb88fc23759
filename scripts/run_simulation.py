# scripts/run_simulation.py

"""
Main simulation script for the land-ice Forward Euler core.

Serial:
  python3 -m scripts.run_simulation
MPI (requires the 'mpi' extra):
  LI_COMM=mpi mpiexec -n 4 python3 -m scripts.run_simulation

Everything is configured through LI_* environment variables (see RunConfig.from_env).
"""

import os
import sys

# Add the project root to the Python path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from pylandice import constants
from pylandice.core import LandIceModel
from pylandice.core.diagnostics import budget_from_level
from pylandice.errors import LandIceError, describe
from pylandice.jax_compat import is_enabled as JAX_IS_ENABLED


def _print_budget(model: LandIceModel) -> None:
    for part in model.domain:
        b = budget_from_level(part.mesh, part.state, time_level=1)
        print(f"  [rank {model.domain.comm.rank} block {part.block_id}] ice cells={b.cells:5d} "
              f"area={b.area * 1e-6:10.1f} km^2 volume={b.volume * 1e-9:10.3f} km^3")


def main():
    """
    Main function to run the simulation.
    """
    try:
        model = LandIceModel.create_default()
    except LandIceError as err:
        print(f"[Run] Setup failed: {err}", file=sys.stderr)
        raise SystemExit(2) from err

    cfg = model.config
    rank = model.domain.comm.rank
    if rank == 0:
        print("--- Initializing land-ice model ---")
        print(f"[JAX] Acceleration enabled: {JAX_IS_ENABLED()} (toggle via LI_USE_JAX=1)")
        print(f"[Run] grid {cfg.nx}x{cfg.ny} dx={cfg.dx_m / 1000.0:.1f} km, {cfg.n_levels} layers, "
              f"{cfg.blocks_per_rank} block(s) per rank on {model.domain.comm.size} process(es)")
        print(f"[Run] dt={cfg.dt_seconds / constants.SECONDS_IN_YEAR:.3f} yr, steps={cfg.n_steps}, "
              f"tendency={cfg.tendency}, velocity={cfg.velocity_solver}")
    _print_budget(model)

    def _after_step(m: LandIceModel) -> None:
        if cfg.plot_every > 0 and m.n_steps_taken % cfg.plot_every == 0:
            from pylandice.ploter import plot_thickness

            years = m.t_seconds / constants.SECONDS_IN_YEAR
            path = os.path.join(cfg.output_dir, f"thickness_rank{rank:03d}_step{m.n_steps_taken:05d}.png")
            plot_thickness(m.domain, path, title=f"Ice thickness, year {years:.1f} (rank {rank})")
            print(f"[Run] wrote {path}")

    merged = model.run(on_step=_after_step)

    if rank == 0:
        print("\n--- Simulation Finished ---")
        print(f"[Run] {model.n_steps_taken} step(s), {len(model.failed_steps)} with errors; merged: {describe(merged)}")
        model.integrator.timers.report()
    _print_budget(model)
    return merged


if __name__ == "__main__":
    main()
