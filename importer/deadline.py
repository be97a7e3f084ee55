"""Wall-clock budget for long-running import loops."""

from __future__ import annotations

import time
from typing import Callable, Optional


class Deadline:
    """Soft deadline checked between units of work; nothing is interrupted mid-video."""

    def __init__(self, seconds: Optional[float], clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._started = clock()
        self._seconds = seconds

    @classmethod
    def unlimited(cls) -> "Deadline":
        return cls(None)

    def elapsed(self) -> float:
        return self._clock() - self._started

    def elapsed_ms(self) -> int:
        return int(self.elapsed() * 1000)

    def remaining(self) -> Optional[float]:
        if self._seconds is None:
            return None
        return max(0.0, self._seconds - self.elapsed())

    def expired(self) -> bool:
        return self._seconds is not None and self.elapsed() >= self._seconds


__all__ = ["Deadline"]
