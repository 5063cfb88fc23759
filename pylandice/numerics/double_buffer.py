"""
TimeLevelArray (TLA): two time levels of one prognostic/diagnostic field.

Level 1 holds the state at the beginning of a step and level 2 the state
advanced by dt. During a step level 1 must not be modified; the integrator
enforces this by freezing the level-1 buffer (numpy writeable flag) for the
duration of the step.

Conventions:
- .old / .new (or level(1) / level(2)) are the only accessors; there is no
  indexing shortcut, so every read and write names its time level
- swap() hands level 2 over to level 1 in O(1) (pointer flip, no copy)

Tests: tests/test_double_buffering.py
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any

import numpy as _np


class TimeLevelArray:
    """
    Two-level ND array with explicit level access and O(1) swap.

    Construction:
      tla = TimeLevelArray((n_levels, n_cells), dtype=float, initial_value=0.0)

    Use:
      old = tla.level(1)            # beginning-of-step state (read only during a step)
      tla.level(2)[:] = old + tend * dt
      tla.swap()                    # caller-owned: new state becomes level 1
    """

    __slots__ = ("_a", "_b", "_old_idx", "__weakref__")

    def __init__(self, shape: tuple[int, ...], dtype: Any = _np.float64, initial_value: Any = 0.0):
        self._a = _np.full(shape, initial_value, dtype=dtype)
        self._b = _np.full(shape, initial_value, dtype=dtype)
        self._old_idx = 0  # 0 => _a is level 1, _b is level 2

    @classmethod
    def from_array(cls, arr) -> TimeLevelArray:
        """Both levels initialized from an existing array."""
        arr = _np.asarray(arr)
        tla = cls(arr.shape, dtype=arr.dtype)
        tla._a[...] = arr
        tla._b[...] = arr
        return tla

    # ---- levels ----
    @property
    def old(self) -> _np.ndarray:
        """Time level 1."""
        return self._a if self._old_idx == 0 else self._b

    @property
    def new(self) -> _np.ndarray:
        """Time level 2."""
        return self._b if self._old_idx == 0 else self._a

    def level(self, time_level: int) -> _np.ndarray:
        if time_level == 1:
            return self.old
        if time_level == 2:
            return self.new
        raise ValueError(f"TimeLevelArray: time level must be 1 or 2, got {time_level!r}")

    def swap(self) -> None:
        """Make level 2 the new level 1 (pointer flip)."""
        if not self.old.flags.writeable:
            raise RuntimeError("TimeLevelArray: cannot swap while level 1 is frozen.")
        self._old_idx ^= 1

    def copy_old_to_new(self) -> None:
        self.new[...] = self.old

    # ---- level-1 protection ----
    @property
    def frozen(self) -> bool:
        return not self.old.flags.writeable

    def freeze_old(self) -> None:
        self.old.flags.writeable = False

    def thaw_old(self) -> None:
        self.old.flags.writeable = True

    @contextmanager
    def old_frozen(self):
        """Context in which any write to level 1 raises ValueError."""
        already = self.frozen
        self.freeze_old()
        try:
            yield self
        finally:
            if not already:
                self.thaw_old()

    # ---- convenience ----
    @property
    def shape(self) -> tuple[int, ...]:
        return self.old.shape

    @property
    def dtype(self) -> _np.dtype:
        return self.old.dtype

    def __repr__(self) -> str:
        return (
            f"TimeLevelArray(shape={self.shape}, dtype={self.dtype}, "
            f"level1=buf{self._old_idx}, level2=buf{1 ^ self._old_idx}, frozen={self.frozen})"
        )
