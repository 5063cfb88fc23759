"""
Named timer scopes.

    timers = TimerRegistry()
    with timers.scope("calculate tendencies"):
        ...
    timers.report()

Scopes may nest; each name accumulates total wall time and call count.
"""
from __future__ import annotations

import time
from contextlib import contextmanager
from dataclasses import dataclass


@dataclass
class TimerStats:
    calls: int = 0
    total_s: float = 0.0

    @property
    def mean_ms(self) -> float:
        return 1000.0 * self.total_s / self.calls if self.calls else 0.0


class TimerRegistry:
    def __init__(self) -> None:
        self.stats: dict[str, TimerStats] = {}
        self._open: list[str] = []

    @contextmanager
    def scope(self, name: str):
        self._open.append(name)
        start = time.perf_counter()
        try:
            yield
        finally:
            elapsed = time.perf_counter() - start
            self._open.pop()
            st = self.stats.setdefault(name, TimerStats())
            st.calls += 1
            st.total_s += elapsed

    @property
    def active(self) -> tuple[str, ...]:
        return tuple(self._open)

    def reset(self) -> None:
        self.stats.clear()

    def report(self) -> None:
        for name, st in self.stats.items():
            print(f"[Timers] {name:<28s} calls={st.calls:5d} total={st.total_s * 1000.0:10.2f} ms "
                  f"mean={st.mean_ms:8.3f} ms")
