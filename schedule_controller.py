"""
schedule_controller.py
----------------------
Orchestrates one user's weekly routine:

  propose -> validate time ordering -> detect / resolve conflicts -> persist
  set sleep schedule -> derive sleep blocks + companions -> replace derived set

One controller instance works on exactly one owner's activities. It holds
no state of its own beyond the store handle; every operation reads a fresh
snapshot from the store, computes, then writes. Callers must not run two
mutating operations for the same owner concurrently.
"""

from __future__ import annotations

import logging
from typing import Callable, Iterable, List, Optional

from errors import ActivityNotFound, ConfirmationRequired, ConflictError, InvalidInterval
from models import (
    WEEKDAYS,
    Activity,
    ActivityCreate,
    ActivityPatch,
    Category,
    CompanionOffsets,
    SleepSchedule,
    SleepScheduleInput,
    Weekday,
)
from routine_store import RoutineStore
from schedule_fixer import find_conflicts, non_exempt, resolve_common_slot, resolve_slot
from sleep_planner import (
    build_sleep_schedule,
    derive_companions,
    derive_sleep_blocks,
    reconstruct_sleep_schedule,
)
from time_interval import MINUTES_PER_DAY, TimeInterval, to_hhmm, to_minutes

logger = logging.getLogger(__name__)

ALL = "All"


def _sort_key(activity: Activity):
    return (min(WEEKDAYS.index(d) for d in activity.days), activity.start_time)


class ScheduleController:

    REPLACE_ATTEMPTS = 2    # full derived-set replace is idempotent, so just redo it

    def __init__(self, store: RoutineStore, owner_id: str, offsets: Optional[CompanionOffsets] = None):
        self.store = store
        self.owner_id = owner_id
        self.offsets = offsets or CompanionOffsets()

    # ── queries ──────────────────────────────────────────────────────

    def list_activities(
        self,
        category: Optional[str] = None,
        day: Optional[str] = None,
    ) -> List[Activity]:
        """All of the owner's activities, optionally filtered; "All" means no filter."""
        activities = self.store.list(self.owner_id)
        if category and category != ALL:
            activities = [a for a in activities if a.category == Category(category)]
        if day and day != ALL:
            activities = [a for a in activities if Weekday(day) in a.days]
        return sorted(activities, key=_sort_key)

    def get_activity(self, activity_id: str) -> Activity:
        for activity in self.store.list(self.owner_id):
            if activity.id == activity_id:
                return activity
        raise ActivityNotFound(activity_id)

    @staticmethod
    def time_blocks(block_hours: int = 3) -> List[str]:
        """Start labels of the grid rows, e.g. 00:00, 03:00, ... 21:00."""
        return [to_hhmm(hour * 60) for hour in range(0, 24, block_hours)]

    def activities_in_block(self, day: Weekday, block_start: str, block_hours: int = 3) -> List[Activity]:
        """Activities on `day` that overlap the grid block starting at `block_start`."""
        start = to_minutes(block_start)
        block = TimeInterval(start, (start + block_hours * 60) % MINUTES_PER_DAY)
        return sorted(find_conflicts([Weekday(day)], block, self.store.list(self.owner_id)), key=_sort_key)

    def get_sleep_schedule(self) -> Optional[SleepSchedule]:
        return reconstruct_sleep_schedule(self.store.list(self.owner_id))

    # ── validation ───────────────────────────────────────────────────

    @staticmethod
    def validate(data: ActivityCreate) -> TimeInterval:
        """Reject empty day sets and backwards times; only Sleep may wrap midnight."""
        if not data.days:
            raise InvalidInterval("Pick at least one day for the activity")
        interval = data.interval
        if interval.wraps and data.category != Category.SLEEP:
            raise InvalidInterval(
                f"Start time must be before end time ({data.start_time} >= {data.end_time})"
            )
        return interval

    @staticmethod
    def _conflicts(
        data: ActivityCreate,
        interval: TimeInterval,
        existing: Iterable[Activity],
        exclude_id: Optional[str] = None,
    ) -> List[Activity]:
        if data.is_exempt:
            return []
        return find_conflicts(data.days, interval, non_exempt(existing), exclude_id=exclude_id)

    # ── user-authored activities ─────────────────────────────────────

    def propose_activity(self, data: ActivityCreate) -> Activity:
        """Persist `data` as-is, or raise ConflictError listing every clash."""
        data = data.model_copy(update={"derived": False})
        interval = self.validate(data)

        conflicts = self._conflicts(data, interval, self.store.list(self.owner_id))
        if conflicts:
            raise ConflictError(conflicts)

        activity = self.store.create(self.owner_id, data)
        logger.info("Created %s '%s' %s on %s", activity.category.value, activity.title,
                    interval, ", ".join(d.value for d in activity.days))
        return activity

    def propose_activity_with_auto_slot(self, data: ActivityCreate) -> Activity:
        """Like propose_activity, but a conflict moves the activity to the next free slot."""
        data = data.model_copy(update={"derived": False})
        interval = self.validate(data)
        existing = self.store.list(self.owner_id)

        if self._conflicts(data, interval, existing):
            duration = interval.duration_minutes()
            start = resolve_common_slot(data.days, interval.start, duration, non_exempt(existing))
            data = data.model_copy(update={
                "start_time": to_hhmm(start),
                "end_time": to_hhmm(start + duration),
            })
            logger.info("Auto-slotted '%s' from %s to %s", data.title, to_hhmm(interval.start), data.start_time)

        activity = self.store.create(self.owner_id, data)
        logger.info("Created %s '%s' %s-%s", activity.category.value, activity.title,
                    activity.start_time, activity.end_time)
        return activity

    def update_activity(self, activity_id: str, patch: ActivityPatch) -> Activity:
        """
        Apply `patch`, re-checking time ordering and overlaps against the
        rest of the schedule. Edits to derived activities are allowed but are
        lost the next time the sleep schedule is set.
        """
        current = self.get_activity(activity_id)
        fields = patch.model_dump(exclude_none=True)
        if not fields:
            return current

        candidate = ActivityCreate.model_validate({
            **current.model_dump(include=set(ActivityCreate.model_fields)),
            **fields,
        })
        interval = self.validate(candidate)
        conflicts = self._conflicts(candidate, interval, self.store.list(self.owner_id), exclude_id=activity_id)
        if conflicts:
            raise ConflictError(conflicts)

        if "days" in fields:
            fields["days"] = candidate.days
        self.store.update(activity_id, fields)
        return self.get_activity(activity_id)

    def toggle_completion(self, activity_id: str) -> Activity:
        current = self.get_activity(activity_id)
        self.store.update(activity_id, {"completed": not current.completed})
        return self.get_activity(activity_id)

    def delete_activity(self, activity_id: str) -> None:
        self.get_activity(activity_id)
        self.store.delete(activity_id)
        logger.info("Deleted activity %s for %s", activity_id, self.owner_id)

    def clear_all(self, confirm: bool = False) -> int:
        """Irreversibly delete every activity the owner has, derived or not."""
        if not confirm:
            raise ConfirmationRequired("Clearing the whole routine must be explicitly confirmed")
        ids = [a.id for a in self.store.list(self.owner_id)]
        self.store.delete_many(ids)
        logger.info("Cleared %d activities for %s", len(ids), self.owner_id)
        return len(ids)

    # ── sleep schedule + derived companions ──────────────────────────

    def set_sleep_schedule(self, data: SleepScheduleInput) -> List[Activity]:
        """
        Derive sleep blocks and companions for `data` and swap them in for the
        previous derived set. Returns the new derived activities.
        """
        schedule = build_sleep_schedule(data)
        offsets = data.companions or self.offsets

        existing = self.store.list(self.owner_id)
        old_ids = [a.id for a in existing if a.derived]
        authored = non_exempt(a for a in existing if not a.derived)

        derived = derive_sleep_blocks(schedule)
        derived += self._place_companions(derive_companions(schedule, offsets), authored)

        created = self._replace_derived(old_ids, derived)
        logger.info(
            "Sleep schedule set for %s (%s): %d derived activities replaced %d",
            self.owner_id, "uniform" if schedule.uniform else "flexible", len(created), len(old_ids),
        )
        return created

    def _place_companions(self, companions: List[ActivityCreate], authored: List[Activity]) -> List[ActivityCreate]:
        """Keep each companion at its offset unless that slot is taken, then push it forward."""
        placed: List[ActivityCreate] = []
        for companion in companions:
            interval = companion.interval
            busy = authored + placed
            if find_conflicts(companion.days, interval, busy):
                duration = interval.duration_minutes()
                start = resolve_slot(companion.days[0], interval.start, duration, busy)
                logger.warning("%s on %s moved from %s to %s to avoid a conflict",
                               companion.title, companion.days[0].value,
                               companion.start_time, to_hhmm(start))
                companion = companion.model_copy(update={
                    "start_time": to_hhmm(start),
                    "end_time": to_hhmm(start + duration),
                })
            placed.append(companion)
        return placed

    def _retry(self, half: str, action: Callable, on_failure: Optional[Callable] = None):
        for attempt in range(1, self.REPLACE_ATTEMPTS + 1):
            try:
                return action()
            except Exception:
                logger.error("Derived-set replace for %s failed during %s (attempt %d/%d)",
                             self.owner_id, half, attempt, self.REPLACE_ATTEMPTS)
                if on_failure is not None:
                    on_failure()
                if attempt == self.REPLACE_ATTEMPTS:
                    raise

    def _discard(self, ids: List[str], what: str) -> bool:
        if not ids:
            return True
        try:
            self.store.delete_many(ids)
        except Exception:
            logger.exception("Could not remove %d %s derived activities for %s", len(ids), what, self.owner_id)
            return False
        return True

    def _replace_derived(self, old_ids: List[str], items: List[ActivityCreate]) -> List[Activity]:
        """
        Insert the new derived set first, then delete the old one by id, so a
        failed insert leaves the previous set in place. Rows that could not
        be cleaned up along the way are tracked in `stale` and removed with
        the old set; if that final delete fails, the new set is rolled back.
        """
        stale: List[str] = list(old_ids)
        created: List[Activity] = []

        def insert():
            created.clear()
            for item in items:
                created.append(self.store.create(self.owner_id, item))
            return list(created)

        def discard_partial():
            ids = [a.id for a in created]
            if not self._discard(ids, "partially inserted"):
                stale.extend(ids)

        try:
            new = self._retry("insert", insert, on_failure=discard_partial)
        except Exception:
            self._discard(stale[len(old_ids):], "orphaned")
            raise

        try:
            self._retry("delete", lambda: self.store.delete_many(stale))
        except Exception:
            logger.error("Rolling back %d new derived activities for %s after delete failed",
                         len(new), self.owner_id)
            self._discard([a.id for a in new], "newly inserted")
            raise
        return new
