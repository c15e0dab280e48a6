"""
Time sources.

Every ``now`` in the engine comes from an injected zero-argument callable
returning an aware UTC datetime.
"""
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ManualClock:
    """
    Clock that only moves when told to.

    Usage:
        clock = ManualClock()
        clock.advance(days=3)
        engine = RetentionPolicyEngine(db, clock=clock)
    """

    def __init__(self, start: Optional[datetime] = None):
        self._now = start or utcnow()

    def __call__(self) -> datetime:
        return self._now

    def advance(self, **kwargs) -> datetime:
        """Move forward by a ``timedelta(**kwargs)`` and return the new time."""
        self._now = self._now + timedelta(**kwargs)
        return self._now

    def set(self, value: datetime) -> None:
        self._now = value
