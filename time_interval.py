"""
time_interval.py
----------------
Time-of-day arithmetic for weekly routine activities.

All times are minutes since midnight in a single local frame (0-1439).
An interval whose end is numerically before its start wraps past midnight
into the next day label; only Sleep blocks are allowed to do that, but the
category decision lives with the caller.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Tuple

from errors import InvalidInterval

MINUTES_PER_DAY = 24 * 60


# ── time helpers ──────────────────────────────────────────────────────────────

def to_minutes(t: str) -> int:
    """'HH:MM' -> total minutes since midnight."""
    try:
        h, m = t.strip().split(":")
        hours, minutes = int(h), int(m)
    except (AttributeError, ValueError):
        raise InvalidInterval(f"Invalid time-of-day {t!r}, expected HH:MM") from None
    if not (0 <= hours < 24 and 0 <= minutes < 60):
        raise InvalidInterval(f"Time-of-day {t!r} is out of range")
    return hours * 60 + minutes


def to_hhmm(minutes: int) -> str:
    """Total minutes -> 'HH:MM', folded into a single day."""
    h, m = divmod(minutes % MINUTES_PER_DAY, 60)
    return f"{h:02d}:{m:02d}"


def format_12h(t: str) -> str:
    """'13:05' -> '1:05 PM' for display."""
    h, m = divmod(to_minutes(t), 60)
    suffix = "AM" if h < 12 else "PM"
    hour = h % 12 or 12
    return f"{hour}:{m:02d} {suffix}"


def _segments_overlap(s1: int, e1: int, s2: int, e2: int) -> bool:
    return s1 < e2 and s2 < e1


# ── value type ────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class TimeInterval:
    """Half-open ``[start, end)`` in minutes since midnight."""

    start: int
    end: int

    def __post_init__(self):
        for value in (self.start, self.end):
            if not 0 <= value < MINUTES_PER_DAY:
                raise InvalidInterval(f"Minute value {value} outside 0-{MINUTES_PER_DAY - 1}")
        if self.start == self.end:
            raise InvalidInterval(f"Empty interval at {to_hhmm(self.start)}")

    @classmethod
    def from_hhmm(cls, start: str, end: str) -> "TimeInterval":
        return cls(to_minutes(start), to_minutes(end))

    @property
    def wraps(self) -> bool:
        return self.end <= self.start

    def duration_minutes(self) -> int:
        if self.wraps:
            return (MINUTES_PER_DAY - self.start) + self.end
        return self.end - self.start

    def segments(self) -> List[Tuple[int, int]]:
        """Split into at most two non-wrapping ``(start, end)`` pairs."""
        if not self.wraps:
            return [(self.start, self.end)]
        pieces = [(self.start, MINUTES_PER_DAY)]
        if self.end > 0:
            pieces.append((0, self.end))
        return pieces

    def overlaps(self, other: "TimeInterval") -> bool:
        return any(
            _segments_overlap(s1, e1, s2, e2)
            for s1, e1 in self.segments()
            for s2, e2 in other.segments()
        )

    def __str__(self) -> str:
        return f"{to_hhmm(self.start)}-{to_hhmm(self.end)}"
