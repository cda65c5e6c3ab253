"""Time unit conversion for durations expressed as amount plus unit."""

from __future__ import annotations

from datetime import timedelta
from enum import Enum


class TimeUnit(Enum):
    """Granularity of a duration, valued in nanoseconds per unit."""

    NANOSECONDS = 1
    MICROSECONDS = 1_000
    MILLISECONDS = 1_000_000
    SECONDS = 1_000_000_000
    MINUTES = 60 * 1_000_000_000
    HOURS = 60 * 60 * 1_000_000_000
    DAYS = 24 * 60 * 60 * 1_000_000_000

    def to_millis(self, amount: int) -> int:
        """Convert ``amount`` of this unit to whole milliseconds.

        Sub-millisecond remainders are truncated toward zero.
        """
        nanos = int(amount) * self.value
        millis = abs(nanos) // TimeUnit.MILLISECONDS.value
        return -millis if nanos < 0 else millis


def duration_to_millis(
    amount: int | timedelta, unit: TimeUnit | None = None
) -> int:
    """Normalize ``(amount, unit)`` or a bare ``timedelta`` to milliseconds."""
    if isinstance(amount, timedelta):
        if unit is not None:
            raise TypeError("unit must not be given with a timedelta")
        return amount // timedelta(milliseconds=1)
    if unit is None:
        raise TypeError("unit is required unless amount is a timedelta")
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise TypeError("amount must be an int or a timedelta")
    return unit.to_millis(amount)
