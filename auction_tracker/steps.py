# auction_tracker/steps.py
"""Small value types threaded through a pipeline run."""
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, List

from .utils import utcnow


@dataclass
class StepResult:
    """A step's output plus the per-item errors it tolerated."""
    value: Any = None
    errors: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


@dataclass(frozen=True)
class Deadline:
    expires_at: datetime
    clock: Callable[[], datetime] = utcnow

    @classmethod
    def after(cls, seconds, clock=utcnow) -> "Deadline":
        return cls(clock() + timedelta(seconds=seconds), clock)

    def remaining(self) -> float:
        return max(0.0, (self.expires_at - self.clock()).total_seconds())

    def has_at_least(self, seconds) -> bool:
        return self.remaining() >= seconds

    @property
    def expired(self) -> bool:
        return self.remaining() <= 0
