"""Wall-clock deadlines for long-running analysis stages."""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, field

from .errors import ComputationDeadlineExceeded

Clock = Callable[[], float]


@dataclass(frozen=True, slots=True)
class Deadline:
    """Absolute expiry on a monotonic clock; ``expires_at=None`` never expires."""

    expires_at: float | None = None
    clock: Clock = field(default=time.monotonic, compare=False, repr=False)

    @classmethod
    def after(cls, seconds: float, *, clock: Clock = time.monotonic) -> Deadline:
        return cls(expires_at=clock() + max(0.0, float(seconds)), clock=clock)

    @classmethod
    def none(cls) -> Deadline:
        return cls(expires_at=None)

    def expired(self) -> bool:
        if self.expires_at is None:
            return False
        return self.clock() >= self.expires_at

    def remaining(self) -> float | None:
        if self.expires_at is None:
            return None
        return max(0.0, self.expires_at - self.clock())

    def check(self, stage: str) -> None:
        if self.expired():
            raise ComputationDeadlineExceeded(stage)
