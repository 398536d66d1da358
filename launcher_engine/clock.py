"""
Clock abstractions for deterministic timestamps.

Notes
-----
Engine code must not read wall-clock time directly. Repositories and the
lifecycle service receive a Clock, which keeps ``created_at``/``updated_at``
reproducible in tests.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Protocol


class Clock(Protocol):
    """A source of time for profile timestamps."""

    def now(self) -> datetime:
        """Return an aware datetime; repositories convert it to UTC text."""
        ...


@dataclass(frozen=True, slots=True)
class SystemClock:
    """Wall-clock time in UTC. Used outside tests."""

    def now(self) -> datetime:
        """Return the current system time as an aware UTC datetime."""
        return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class FixedClock:
    """Frozen clock; every call returns ``fixed_time``."""

    fixed_time: datetime

    def now(self) -> datetime:
        if self.fixed_time.tzinfo is None:
            return self.fixed_time.replace(tzinfo=timezone.utc)
        return self.fixed_time


@dataclass(slots=True)
class SteppingClock:
    """
    Clock that advances by a fixed step on every call.

    Useful when tests need strictly increasing ``created_at`` values without
    sleeping.
    """

    start: datetime
    step: timedelta = timedelta(seconds=1)
    _calls: int = field(default=0, init=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def now(self) -> datetime:
        """Return ``start + n * step`` for the n-th call."""
        with self._lock:
            value = self.start + self.step * self._calls
            self._calls += 1
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value
