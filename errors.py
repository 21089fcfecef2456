from typing import List, Optional


class RoutineError(Exception):
    """Base class for every scheduling failure surfaced to callers."""


class InvalidInterval(RoutineError, ValueError):
    """Bad time ordering, malformed HH:MM, or an empty day set."""


class ConflictError(RoutineError):
    """The proposed activity overlaps one or more existing activities."""

    def __init__(self, conflicts: list, message: Optional[str] = None):
        self.conflicts = list(conflicts)
        super().__init__(
            message
            or f"Time slot conflicts with {len(self.conflicts)} existing activit"
            f"{'y' if len(self.conflicts) == 1 else 'ies'}"
        )

    @property
    def conflict_ids(self) -> List[str]:
        return [a.id for a in self.conflicts]


class SchedulingExhausted(RoutineError):
    """No free slot could be found on the requested day."""

    def __init__(self, day, desired_start: int, reason: str = "day is fully booked"):
        self.day = day
        self.desired_start = desired_start
        super().__init__(f"No free slot on {day} from minute {desired_start}: {reason}")


class ActivityNotFound(RoutineError, KeyError):
    def __init__(self, activity_id: str):
        self.activity_id = activity_id
        super().__init__(activity_id)

    def __str__(self) -> str:
        return f"Activity {self.activity_id} not found"


class ConfirmationRequired(RoutineError):
    """Bulk deletion was requested without explicit confirmation."""
