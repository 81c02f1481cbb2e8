from __future__ import annotations

import time
from typing import Callable


class Deadline:
    """A fixed point in monotonic time shared by every task of one run."""

    def __init__(
        self,
        seconds: float,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._clock = clock
        self.seconds = float(seconds)
        self._expires_at = clock() + self.seconds

    def remaining(self) -> float:
        return max(0.0, self._expires_at - self._clock())

    @property
    def expired(self) -> bool:
        return self.remaining() <= 0.0

    def timeout(self, cap: float) -> float:
        """Return a request timeout no longer than ``cap`` or the time left."""
        return max(0.001, min(float(cap), self.remaining()))

    def __repr__(self) -> str:
        return f"Deadline(remaining={self.remaining():.1f}s)"
