"""
sleep_planner.py
----------------
Turns a wake/sleep time pair into Sleep blocks on the weekly grid and
derives the companion exercises that hang off it.

  build_sleep_schedule      : SleepScheduleInput -> SleepSchedule (uniform or per-day)
  derive_sleep_blocks       : one Sleep activity per scheduled day, split across
                              two day labels when the block crosses midnight
  derive_companions         : a morning exercise N minutes after waking and an
                              evening exercise M minutes before sleeping
  reconstruct_sleep_schedule: read the aggregate back from stored activities

Everything returned here is marked `derived`; the controller replaces the
whole derived set whenever the schedule changes.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional

from errors import InvalidInterval
from models import (
    WEEKDAYS,
    ActivityCreate,
    Category,
    CompanionOffsets,
    SleepPair,
    SleepSchedule,
    SleepScheduleInput,
    Weekday,
)
from time_interval import MINUTES_PER_DAY, format_12h, to_hhmm, to_minutes

logger = logging.getLogger(__name__)

SLEEP_TITLE = "Sleep"


def _expand(value, label: str) -> Dict[Weekday, str]:
    if isinstance(value, str):
        normalized = to_hhmm(to_minutes(value))
        return {day: normalized for day in WEEKDAYS}
    if not value:
        raise InvalidInterval(f"Flexible {label} schedule needs at least one day")
    return {Weekday(day): to_hhmm(to_minutes(t)) for day, t in value.items()}


def build_sleep_schedule(data: SleepScheduleInput) -> SleepSchedule:
    wake = _expand(data.wake, "wake")
    sleep = _expand(data.sleep, "sleep")

    # A fixed time on one side applies to whichever days the other side lists
    if isinstance(data.wake, str) and not isinstance(data.sleep, str):
        wake = {day: wake[day] for day in sleep}
    elif isinstance(data.sleep, str) and not isinstance(data.wake, str):
        sleep = {day: sleep[day] for day in wake}

    if set(wake) != set(sleep):
        missing = sorted(set(wake) ^ set(sleep), key=WEEKDAYS.index)
        raise InvalidInterval(
            "Wake and sleep times must cover the same days; unmatched: "
            + ", ".join(d.value for d in missing)
        )

    pairs = {}
    for day in WEEKDAYS:
        if day not in wake:
            continue
        pair = SleepPair(wake=wake[day], sleep=sleep[day])
        if pair.wake == pair.sleep:
            raise InvalidInterval(f"Sleep and wake time are both {pair.wake} on {day.value}")
        pairs[day] = pair
    return SleepSchedule(pairs=pairs)


def derive_sleep_blocks(schedule: SleepSchedule) -> List[ActivityCreate]:
    """
    One Sleep activity per day in the schedule. A block whose bedtime is
    later than its wake time runs past midnight and is labelled with both
    the start day and the day the wake time falls on.
    """
    blocks = []
    for day in schedule.days:
        pair = schedule.pairs[day]
        if to_minutes(pair.sleep) > to_minutes(pair.wake):
            days = [day, day.next()]
        else:
            days = [day]
        blocks.append(ActivityCreate(
            title=SLEEP_TITLE,
            description=f"Sleep at {format_12h(pair.sleep)}, wake at {format_12h(pair.wake)}",
            category=Category.SLEEP,
            days=days,
            start_time=pair.sleep,
            end_time=pair.wake,
            derived=True,
        ))
    return blocks


def _companion(day: Weekday, start: int, duration: int, title: str, description: str) -> ActivityCreate:
    if start + duration >= MINUTES_PER_DAY:
        clamped = MINUTES_PER_DAY - 1 - duration
        logger.warning(
            "%s on %s would run past midnight (%s + %dmin); moved to %s",
            title, day.value, to_hhmm(start), duration, to_hhmm(clamped),
        )
        start = clamped
    return ActivityCreate(
        title=title,
        description=description,
        category=Category.EXERCISE,
        days=[day],
        start_time=to_hhmm(start),
        end_time=to_hhmm(start + duration),
        derived=True,
    )


def derive_companions(schedule: SleepSchedule, offsets: CompanionOffsets) -> List[ActivityCreate]:
    """
    Two exercises per scheduled day, at fixed offsets from that day's pair.

    A morning start that overflows midnight keeps the label of the day whose
    wake time it follows. An evening start that underflows midnight borrows
    the previous day's label.
    """
    companions = []
    for day in schedule.days:
        pair = schedule.pairs[day]

        morning_start = (to_minutes(pair.wake) + offsets.after_wake_minutes) % MINUTES_PER_DAY
        companions.append(_companion(
            day,
            morning_start,
            offsets.morning_duration_minutes,
            offsets.morning_title,
            f"{offsets.after_wake_minutes} minutes after waking",
        ))

        raw_evening = to_minutes(pair.sleep) - offsets.before_sleep_minutes
        evening_day = day if raw_evening >= 0 else day.previous()
        companions.append(_companion(
            evening_day,
            raw_evening % MINUTES_PER_DAY,
            offsets.evening_duration_minutes,
            offsets.evening_title,
            f"{offsets.before_sleep_minutes} minutes before sleep",
        ))
    return companions


def reconstruct_sleep_schedule(activities: Iterable[ActivityCreate]) -> Optional[SleepSchedule]:
    """Rebuild the aggregate from derived Sleep activities (start day = first label)."""
    pairs = {}
    for activity in activities:
        if not activity.derived or activity.category != Category.SLEEP:
            continue
        pairs[activity.days[0]] = SleepPair(wake=activity.end_time, sleep=activity.start_time)
    if not pairs:
        return None
    return SleepSchedule(pairs=pairs)
