import json
import logging
import uuid
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List

from errors import ActivityNotFound
from models import Activity, ActivityCreate

logger = logging.getLogger(__name__)


class RoutineStore(ABC):
    """
    Persistence contract for activities. Any backend (document DB, SQL,
    a JSON file) can sit behind it; the scheduler only needs these five calls.
    """

    @abstractmethod
    def list(self, owner_id: str) -> List[Activity]:
        ...

    @abstractmethod
    def create(self, owner_id: str, data: ActivityCreate) -> Activity:
        """Persist `data`, assigning `id` and `created_at`."""

    @abstractmethod
    def update(self, activity_id: str, fields: Dict[str, Any]) -> None:
        ...

    @abstractmethod
    def delete(self, activity_id: str) -> None:
        ...

    @abstractmethod
    def delete_many(self, activity_ids: Iterable[str]) -> None:
        ...


class InMemoryRoutineStore(RoutineStore):
    """Dict-backed store; also the base for the JSON file store."""

    def __init__(self):
        self._activities: Dict[str, Activity] = {}

    # ── queries ──────────────────────────────────────────────────────

    def list(self, owner_id: str) -> List[Activity]:
        return [a.model_copy(deep=True) for a in self._activities.values() if a.owner_id == owner_id]

    # ── mutations ────────────────────────────────────────────────────

    def create(self, owner_id: str, data: ActivityCreate) -> Activity:
        activity = Activity(
            **data.model_dump(include=set(ActivityCreate.model_fields)),
            id=uuid.uuid4().hex,
            owner_id=owner_id,
            created_at=datetime.now(),
        )
        previous = dict(self._activities)
        self._activities[activity.id] = activity
        self._commit(previous)
        return activity.model_copy(deep=True)

    def update(self, activity_id: str, fields: Dict[str, Any]) -> None:
        current = self._activities.get(activity_id)
        if current is None:
            raise ActivityNotFound(activity_id)
        # id / owner_id / created_at are immutable once assigned
        fields = {k: v for k, v in fields.items() if k not in ("id", "owner_id", "created_at")}
        merged = {**current.model_dump(), **fields, "updated_at": datetime.now()}
        previous = dict(self._activities)
        self._activities[activity_id] = Activity.model_validate(merged)
        self._commit(previous)

    def delete(self, activity_id: str) -> None:
        previous = dict(self._activities)
        if self._activities.pop(activity_id, None) is None:
            raise ActivityNotFound(activity_id)
        self._commit(previous)

    def delete_many(self, activity_ids: Iterable[str]) -> None:
        previous = dict(self._activities)
        for activity_id in activity_ids:
            self._activities.pop(activity_id, None)
        self._commit(previous)

    def _commit(self, previous: Dict[str, Activity]) -> None:
        """Persist the current state; on failure put `previous` back and re-raise."""
        try:
            self._save()
        except Exception:
            self._activities = previous
            raise

    def _save(self) -> None:
        pass


class JsonRoutineStore(InMemoryRoutineStore):
    """
    Persistent store backed by a single JSON file holding every user's
    activities keyed by id. The whole file is rewritten on each mutation.
    """

    def __init__(self, path: str = "routines.json"):
        super().__init__()
        self.file_path = Path(path)
        self._activities = self._load()

    # ── persistence ──────────────────────────────────────────────────

    def _load(self) -> Dict[str, Activity]:
        if not self.file_path.exists():
            return {}
        with open(self.file_path, "r") as f:
            data = json.load(f)
        activities = {key: Activity.model_validate(value) for key, value in data.items()}
        logger.info("Loaded %d activities from %s", len(activities), self.file_path)
        return activities

    def _save(self) -> None:
        payload = {key: a.model_dump(mode="json") for key, a in self._activities.items()}
        with open(self.file_path, "w") as f:
            json.dump(payload, f, indent=2, default=str)
