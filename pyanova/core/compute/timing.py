"""
Stage timing for the ANOVA pipeline.

Every solver times its stages (build, decompose, ems, evaluate, contrasts)
and stores the result in Result.timing.
"""

import time
from contextlib import contextmanager
from typing import Iterator


class Timer:
    """
    Wall-clock timer with named stages.

    Usage:
        timer = Timer()
        timer.start()
        with timer.section('decompose'):
            decomposition = decompose(design)
        timer.stop()
        timer.result()   # {'total_seconds': ..., 'decompose': ...}

    A stage entered more than once accumulates its time.
    """

    def __init__(self):
        self._stages: dict[str, float] = {}
        self._t0: float | None = None
        self._elapsed: float | None = None

    def start(self) -> None:
        self._t0 = time.perf_counter()

    def stop(self) -> None:
        if self._t0 is None:
            raise RuntimeError("Timer.stop() called before start()")
        self._elapsed = time.perf_counter() - self._t0

    @contextmanager
    def section(self, name: str) -> Iterator[None]:
        """Time the enclosed block as stage `name`."""
        t = time.perf_counter()
        try:
            yield
        finally:
            self._stages[name] = (
                self._stages.get(name, 0.0) + time.perf_counter() - t
            )

    def result(self) -> dict[str, float]:
        """
        Total and per-stage seconds.

        Raises:
            RuntimeError: If the timer hasn't been stopped
        """
        if self._elapsed is None:
            raise RuntimeError("Timer.result() called before stop()")
        return {'total_seconds': self._elapsed, **self._stages}
