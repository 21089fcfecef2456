"""
schedule_fixer.py
-----------------
Pure-logic conflict detection and slot resolution for weekly routines.

Responsibilities:
  1. Find every existing activity that shares a weekday with a candidate
     and whose time interval overlaps it (wraparound aware).
  2. Push a candidate start forward until it neither overlaps an existing
     activity on that day nor pushes more than an hour's worth of
     scheduled minutes into the clock hour it starts in.
  3. Find one start time that is free on every requested weekday.

The detector is policy-free: exempt categories (Sleep / Rest) are filtered
out by the caller with `non_exempt` before activities are handed in.

No I/O -- deterministic logic only.
"""

from __future__ import annotations

from typing import Iterable, List, Optional, Sequence, Tuple

from errors import InvalidInterval, SchedulingExhausted
from models import EXEMPT_CATEGORIES, ActivityCreate, Weekday
from time_interval import MINUTES_PER_DAY, TimeInterval, to_hhmm

MAX_ITERATIONS = 48
HOUR_CAPACITY_MINUTES = 60


def non_exempt(activities: Iterable[ActivityCreate]) -> List[ActivityCreate]:
    """Drop Sleep / Rest activities, which never take part in conflict checks."""
    return [a for a in activities if a.category not in EXEMPT_CATEGORIES]


# ── overlap detection ─────────────────────────────────────────────────────────

def find_conflicts(
    days: Sequence[Weekday],
    interval: TimeInterval,
    existing: Iterable[ActivityCreate],
    exclude_id: Optional[str] = None,
) -> List[ActivityCreate]:
    """
    Return ALL activities in `existing` that share at least one weekday
    with `days` and whose interval overlaps `interval`.

    `exclude_id` skips the activity being edited so it does not collide
    with its own previous placement.
    """
    wanted = set(days)
    conflicts = []
    for activity in existing:
        if exclude_id is not None and getattr(activity, "id", None) == exclude_id:
            continue
        if not wanted.intersection(activity.days):
            continue
        if interval.overlaps(activity.interval):
            conflicts.append(activity)
    return conflicts


# ── slot resolution ───────────────────────────────────────────────────────────

def _busy_segments(day: Weekday, existing: Iterable[ActivityCreate]) -> List[Tuple[int, int]]:
    """Non-wrapping (start, end) pairs occupied on `day`, sorted by start."""
    busy: List[Tuple[int, int]] = []
    for activity in existing:
        if day in activity.days:
            busy.extend(activity.interval.segments())
    busy.sort()
    return busy


def _minutes_in_hour(hour_start: int, busy: List[Tuple[int, int]]) -> int:
    hour_end = hour_start + 60
    return sum(max(0, min(end, hour_end) - max(start, hour_start)) for start, end in busy)


def resolve_slot(
    day: Weekday,
    desired_start: int,
    duration_minutes: int,
    existing: Iterable[ActivityCreate],
) -> int:
    """
    Find the earliest start >= `desired_start` on `day` that

      * does not overlap any activity in `existing` on that day, and
      * keeps the clock hour containing the start at or under
        HOUR_CAPACITY_MINUTES of scheduled time.

    Every forward move counts against MAX_ITERATIONS. A candidate that would
    end at or past midnight is refused as well: plain activities never span
    two days.

    Returns the resolved start in minutes since midnight.
    """
    if duration_minutes <= 0:
        raise InvalidInterval(f"Duration must be positive, got {duration_minutes}")

    busy = _busy_segments(day, existing)
    start = desired_start

    for _ in range(MAX_ITERATIONS):
        end = start + duration_minutes
        if end >= MINUTES_PER_DAY:
            raise SchedulingExhausted(day, desired_start, f"{to_hhmm(start)} + {duration_minutes}min runs past midnight")

        # Earliest-starting busy segment that still overlaps the candidate
        blocking = next((seg for seg in busy if start < seg[1] and seg[0] < end), None)
        if blocking is not None:
            start = blocking[1]
            continue

        hour_start = start - start % 60
        candidate_in_hour = min(end, hour_start + 60) - start
        if _minutes_in_hour(hour_start, busy) + candidate_in_hour > HOUR_CAPACITY_MINUTES:
            start = hour_start + 60
            continue

        return start

    raise SchedulingExhausted(day, desired_start, f"no free slot after {MAX_ITERATIONS} moves")


def resolve_common_slot(
    days: Sequence[Weekday],
    desired_start: int,
    duration_minutes: int,
    existing: Iterable[ActivityCreate],
) -> int:
    """
    Resolve one start time that is free on every day in `days`.

    Each day is resolved from the current candidate and the latest answer
    becomes the next candidate, until all days agree.
    """
    existing = list(existing)
    start = desired_start
    for _ in range(MAX_ITERATIONS):
        latest = max(resolve_slot(day, start, duration_minutes, existing) for day in days)
        if latest == start:
            return start
        start = latest
    raise SchedulingExhausted(
        ", ".join(d.value for d in days), desired_start, "days never agreed on a common slot"
    )
