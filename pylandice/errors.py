"""
Error kinds and exceptions for the land-ice core.

Two families:
- ErrorKind: recoverable step failures. They are accumulated (set union) across
  partitions and stages and returned to the caller, never raised mid-step, so
  every process keeps issuing the same collective calls.
- LandIceError and subclasses: misuse (bad mesh, bad configuration). Raised
  immediately; these are fatal for the run.
"""
from __future__ import annotations

import enum
import functools
import operator


class ErrorKind(enum.Flag):
    NONE = 0
    TENDENCY = enum.auto()  # tendency evaluator failed (non-finite output, ...)
    CFL = enum.auto()  # time step exceeds the local stability bound
    INTERVAL = enum.auto()  # stability bound could not be expressed as a time interval
    PROGNOSTIC = enum.auto()  # prognostic update produced non-finite thickness
    DIAGNOSTIC = enum.auto()  # diagnostic recomputation failed
    VELOCITY = enum.auto()  # velocity solve failed


# Which orchestrator stage each kind originates from (for user-facing messages)
STAGE_OF = {
    ErrorKind.TENDENCY: "calculate_tendencies",
    ErrorKind.CFL: "calculate_tendencies",
    ErrorKind.INTERVAL: "calculate_tendencies",
    ErrorKind.PROGNOSTIC: "update_prognostics",
    ErrorKind.DIAGNOSTIC: "diagnostic recomputation",
    ErrorKind.VELOCITY: "diagnostic recomputation",
}


def combine(*errors: ErrorKind) -> ErrorKind:
    """Union of fired error kinds. Order and grouping never change the result."""
    return functools.reduce(operator.or_, errors, ErrorKind.NONE)


def fired(err: ErrorKind) -> list[ErrorKind]:
    """Individual kinds contained in err, in declaration order."""
    return [k for k in ErrorKind if k is not ErrorKind.NONE and k in err]


def describe(err: ErrorKind) -> str:
    if not err:
        return "none"
    return ", ".join(f"{k.name} ({STAGE_OF[k]})" for k in fired(err))


class LandIceError(Exception):
    """Base exception for fatal land-ice errors."""


class MeshError(LandIceError, ValueError):
    """Mesh arrays are missing or mutually inconsistent."""


class ConfigError(LandIceError, ValueError):
    """Invalid configuration value or unknown component kind."""


class StepFailedError(LandIceError, RuntimeError):
    """Raised by callers that choose to abort on a failed step."""

    def __init__(self, err: ErrorKind, step: int | None = None) -> None:
        self.err = err
        self.step = step
        where = "" if step is None else f" at step {step}"
        super().__init__(f"time step failed{where}: {describe(err)}")


__all__ = [
    "ErrorKind",
    "combine",
    "fired",
    "describe",
    "LandIceError",
    "MeshError",
    "ConfigError",
    "StepFailedError",
]
