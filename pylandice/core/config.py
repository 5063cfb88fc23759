from __future__ import annotations

import os
from dataclasses import asdict, dataclass, replace

from pylandice import constants
from pylandice.errors import ConfigError


def _ibool(name: str, default: str = "0") -> bool:
    try:
        return int(os.getenv(name, default)) == 1
    except ValueError:
        return default == "1"


def _int(name: str, default: str) -> int:
    try:
        return int(os.getenv(name, default))
    except ValueError:
        return int(default)


def _float(name: str, default: str) -> float:
    try:
        return float(os.getenv(name, default))
    except ValueError:
        return float(default)


def _str(name: str, default: str) -> str:
    return (os.getenv(name, default) or default).strip().lower()


@dataclass(frozen=True)
class RunConfig:
    """
    Per-run configuration (env-driven).

    Every field must hold the same value on every process: collective calls are
    gated on print_thickness_advection_info. Use broadcast() after reading the
    environment so rank 0's values win everywhere.
    """

    dt_seconds: float = constants.SECONDS_IN_YEAR
    n_steps: int = 10
    print_thickness_advection_info: bool = False
    tendency: str = "fo_upwind"
    velocity_solver: str = "sia"
    comm: str = "serial"
    # Demo mesh / decomposition
    nx: int = 30
    ny: int = 30
    dx_m: float = 10_000.0
    n_levels: int = 5
    blocks_per_rank: int = 1
    # Caller policy on failed steps
    abort_on_error: bool = False
    # Output
    plot_every: int = 0
    output_dir: str = "output"

    @classmethod
    def from_env(cls) -> RunConfig:
        cfg = cls(
            dt_seconds=_float("LI_DT_SECONDS", str(constants.SECONDS_IN_YEAR)),
            n_steps=_int("LI_N_STEPS", "10"),
            print_thickness_advection_info=_ibool("LI_PRINT_THICKNESS_ADVECTION_INFO", "0"),
            tendency=_str("LI_TENDENCY", "fo_upwind"),
            velocity_solver=_str("LI_VELOCITY_SOLVER", "sia"),
            comm=_str("LI_COMM", "serial"),
            nx=_int("LI_NX", "30"),
            ny=_int("LI_NY", "30"),
            dx_m=_float("LI_DX_M", "10000"),
            n_levels=_int("LI_N_LEVELS", "5"),
            blocks_per_rank=_int("LI_BLOCKS_PER_RANK", "1"),
            abort_on_error=_ibool("LI_ABORT_ON_ERROR", "0"),
            plot_every=_int("LI_PLOT_EVERY", "0"),
            output_dir=os.getenv("LI_OUTPUT_DIR", "output"),
        )
        cfg.validate()
        return cfg

    def validate(self) -> None:
        if not (self.dt_seconds > 0.0) or self.dt_seconds == float("inf"):
            raise ConfigError(f"dt_seconds must be positive and finite, got {self.dt_seconds}")
        if self.n_steps < 0:
            raise ConfigError(f"n_steps must be >= 0, got {self.n_steps}")
        for name in ("nx", "ny", "n_levels", "blocks_per_rank"):
            if getattr(self, name) < 1:
                raise ConfigError(f"{name} must be >= 1, got {getattr(self, name)}")
        if self.dx_m <= 0.0:
            raise ConfigError(f"dx_m must be positive, got {self.dx_m}")

    def with_overrides(self, **kwargs) -> RunConfig:
        cfg = replace(self, **kwargs)
        cfg.validate()
        return cfg

    def broadcast(self, comm) -> RunConfig:
        """Return rank 0's configuration on every process (collective)."""
        return RunConfig(**comm.bcast(asdict(self), root=0))
