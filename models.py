from pydantic import BaseModel, Field, field_validator
from typing import List, Dict, Optional, Union
from datetime import datetime
from enum import Enum

from time_interval import TimeInterval, to_minutes, to_hhmm


# ── Enumerations ─────────────────────────────────────────────────────

class Weekday(str, Enum):
    MONDAY = "Monday"
    TUESDAY = "Tuesday"
    WEDNESDAY = "Wednesday"
    THURSDAY = "Thursday"
    FRIDAY = "Friday"
    SATURDAY = "Saturday"
    SUNDAY = "Sunday"

    def next(self) -> "Weekday":
        return WEEKDAYS[(WEEKDAYS.index(self) + 1) % 7]

    def previous(self) -> "Weekday":
        return WEEKDAYS[(WEEKDAYS.index(self) - 1) % 7]


WEEKDAYS: List[Weekday] = list(Weekday)


class Category(str, Enum):
    JOURNAL = "Journal"
    EXERCISE = "Exercise"
    CHALLENGE = "Challenge"
    THERAPY = "Therapy"
    CUSTOM = "Custom"
    SLEEP = "Sleep"
    REST = "Rest"


# Sleep and rest may coexist with anything on the grid
EXEMPT_CATEGORIES = frozenset({Category.SLEEP, Category.REST})


def _normalize_time(value: str) -> str:
    return to_hhmm(to_minutes(value))


# ── Activities ───────────────────────────────────────────────────────

class ActivityCreate(BaseModel):
    """An activity before the store has assigned it an id."""
    title: str
    description: str = ""
    category: Category = Category.CUSTOM
    days: List[Weekday] = Field(
        ...,
        description="Weekdays the activity recurs on; a wrapping Sleep block lists its start day first",
    )
    start_time: str                 # "09:00"
    end_time: str                   # "10:00"
    derived: bool = False

    @field_validator("start_time", "end_time")
    @classmethod
    def _check_time(cls, v: str) -> str:
        return _normalize_time(v)

    @field_validator("days")
    @classmethod
    def _dedupe_days(cls, v: List[Weekday]) -> List[Weekday]:
        return list(dict.fromkeys(v))

    @property
    def interval(self) -> TimeInterval:
        return TimeInterval.from_hhmm(self.start_time, self.end_time)

    @property
    def is_exempt(self) -> bool:
        return self.category in EXEMPT_CATEGORIES


class Activity(ActivityCreate):
    id: str
    owner_id: str
    completed: bool = False
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: Optional[datetime] = None


class ActivityPatch(BaseModel):
    """Partial update; fields left as None are untouched."""
    title: Optional[str] = None
    description: Optional[str] = None
    category: Optional[Category] = None
    days: Optional[List[Weekday]] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    completed: Optional[bool] = None

    @field_validator("start_time", "end_time")
    @classmethod
    def _check_time(cls, v: Optional[str]) -> Optional[str]:
        return None if v is None else _normalize_time(v)


# ── Sleep schedule ───────────────────────────────────────────────────

class CompanionOffsets(BaseModel):
    """Where the derived morning/evening exercises sit relative to sleep."""
    after_wake_minutes: int = Field(30, ge=0, lt=24 * 60)
    morning_duration_minutes: int = Field(5, ge=1, le=12 * 60)
    before_sleep_minutes: int = Field(45, ge=0, lt=24 * 60)
    evening_duration_minutes: int = Field(12, ge=1, le=12 * 60)
    morning_title: str = "Morning Reflection"
    evening_title: str = "Evening Relaxation"


class SleepScheduleInput(BaseModel):
    """
    Either a single HH:MM applied to all seven days, or a per-weekday map
    (flexible schedule). Wake and sleep may be mixed, e.g. a fixed wake
    time with per-day bedtimes.
    """
    wake: Union[str, Dict[Weekday, str]]
    sleep: Union[str, Dict[Weekday, str]]
    companions: Optional[CompanionOffsets] = None


class SleepPair(BaseModel):
    wake: str
    sleep: str

    @field_validator("wake", "sleep")
    @classmethod
    def _check_time(cls, v: str) -> str:
        return _normalize_time(v)


class SleepSchedule(BaseModel):
    """Aggregate view of the derived Sleep activities, one pair per weekday."""
    pairs: Dict[Weekday, SleepPair]

    @property
    def days(self) -> List[Weekday]:
        return [d for d in WEEKDAYS if d in self.pairs]

    @property
    def uniform(self) -> bool:
        return len(self.pairs) == 7 and len({(p.wake, p.sleep) for p in self.pairs.values()}) == 1


# ── Response envelopes ───────────────────────────────────────────────

class ActivityListResponse(BaseModel):
    success: bool = True
    data: List[Activity]
    message: str = ""
    warnings: List[str] = Field(default_factory=list)


class SleepScheduleResponse(BaseModel):
    success: bool = True
    schedule: Optional[SleepSchedule] = None
    uniform: bool = False
    data: List[Activity] = Field(default_factory=list)
    message: str = ""


class ConflictDetail(BaseModel):
    message: str
    conflict_ids: List[str]
    conflicts: List[Activity]
