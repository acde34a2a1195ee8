"""
Common Value Objects

Value objects used across the scheduling domains:
- TimeInterval: a half-open range of instants [start, end)
"""

from dataclasses import dataclass
from datetime import datetime, timedelta

from shared.domain.base import ValueObject


@dataclass(frozen=True)
class TimeInterval(ValueObject):
    """
    Time interval value object

    Represents the range from ``start`` (inclusive) to ``end`` (exclusive).
    Used for booking periods, timetable occurrences and issue windows.
    """
    start: datetime
    end: datetime

    def __post_init__(self):
        if self.start >= self.end:
            raise ValueError(f"Start ({self.start}) must be before end ({self.end})")

    def overlaps_with(self, other: 'TimeInterval') -> bool:
        """
        Check if this interval overlaps with another

        End is exclusive, so touching intervals don't overlap.

        Examples:
            - [10:00, 11:00) overlaps with [10:30, 11:30) -> True
            - [10:00, 11:00) overlaps with [11:00, 12:00) -> False (adjacent)
        """
        if not isinstance(other, TimeInterval):
            raise TypeError("Can only check overlap with another TimeInterval")

        return self.start < other.end and other.start < self.end

    def contains(self, instant: datetime) -> bool:
        """Check if an instant is within this interval"""
        return self.start <= instant < self.end

    def contains_interval(self, other: 'TimeInterval') -> bool:
        """Check if ``other`` lies completely inside this interval"""
        return self.start <= other.start and other.end <= self.end

    def has_started(self, now: datetime) -> bool:
        return now >= self.start

    def has_ended(self, now: datetime) -> bool:
        return now >= self.end

    def shift(self, delta: timedelta) -> 'TimeInterval':
        """Same duration, moved by ``delta``"""
        return TimeInterval(self.start + delta, self.end + delta)

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    @property
    def minutes(self) -> int:
        return int(self.duration.total_seconds() // 60)

    def __str__(self):
        return f"{self.start.isoformat()} - {self.end.isoformat()}"

    def __repr__(self):
        return f"TimeInterval({self.start.isoformat()}, {self.end.isoformat()})"
