import pytest

from models import ActivityCreate, Category, Weekday
from routine_store import InMemoryRoutineStore
from schedule_controller import ScheduleController


@pytest.fixture
def store():
    return InMemoryRoutineStore()


@pytest.fixture
def controller(store):
    return ScheduleController(store, "user_a")


@pytest.fixture
def make_activity():
    """Build an ActivityCreate with sensible defaults."""
    def _make(start="09:00", end="10:00", days=(Weekday.MONDAY,), category=Category.EXERCISE, title="Stretching"):
        return ActivityCreate(
            title=title,
            category=category,
            days=list(days),
            start_time=start,
            end_time=end,
        )
    return _make
