import os
import logging
from dotenv import load_dotenv
load_dotenv()  # Load .env before anything else

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from typing import Optional

from errors import (
    ActivityNotFound, ConfirmationRequired, ConflictError, InvalidInterval, SchedulingExhausted,
)
from models import (
    Activity, ActivityCreate, ActivityListResponse, ActivityPatch, CompanionOffsets,
    ConflictDetail, SleepScheduleInput, SleepScheduleResponse, Weekday,
)
from routine_store import JsonRoutineStore, RoutineStore
from schedule_controller import ScheduleController
from llm_engine import RoutineSuggester, SuggestionRequest

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)
logger = logging.getLogger(__name__)

app = FastAPI(title="Wellness Routine Scheduler")

store: RoutineStore = JsonRoutineStore(os.getenv("ROUTINE_STORE_PATH", "routines.json"))
default_offsets = CompanionOffsets(
    after_wake_minutes=int(os.getenv("MORNING_OFFSET_MIN", "30")),
    morning_duration_minutes=int(os.getenv("MORNING_DURATION_MIN", "5")),
    before_sleep_minutes=int(os.getenv("EVENING_OFFSET_MIN", "45")),
    evening_duration_minutes=int(os.getenv("EVENING_DURATION_MIN", "12")),
)
suggester: Optional[RoutineSuggester] = None


def get_controller(user_id: str) -> ScheduleController:
    # Handlers never await while holding a controller, so each operation
    # runs to completion on the event loop before the next one for the
    # same user starts.
    return ScheduleController(store, user_id, offsets=default_offsets)


def get_suggester() -> RoutineSuggester:
    global suggester
    if suggester is None:
        api_key = os.getenv("GEMINI_API_KEY")
        if not api_key:
            raise HTTPException(status_code=503, detail="Routine suggestions are not configured")
        suggester = RoutineSuggester(api_key=api_key, model=os.getenv("SUGGESTER_MODEL", "gemini-2.5-flash"))
    return suggester


# ── Error mapping ────────────────────────────────────────────────────

@app.exception_handler(ConflictError)
async def conflict_handler(request: Request, exc: ConflictError):
    detail = ConflictDetail(message=str(exc), conflict_ids=exc.conflict_ids, conflicts=exc.conflicts)
    return JSONResponse(status_code=409, content={"detail": detail.model_dump(mode="json")})


@app.exception_handler(SchedulingExhausted)
async def exhausted_handler(request: Request, exc: SchedulingExhausted):
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.exception_handler(InvalidInterval)
async def invalid_handler(request: Request, exc: InvalidInterval):
    return JSONResponse(status_code=422, content={"detail": str(exc)})


@app.exception_handler(ActivityNotFound)
async def not_found_handler(request: Request, exc: ActivityNotFound):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(ConfirmationRequired)
async def confirmation_handler(request: Request, exc: ConfirmationRequired):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


# ── Activities ───────────────────────────────────────────────────────

@app.get("/activities/{user_id}", response_model=ActivityListResponse)
async def list_activities(user_id: str, category: Optional[str] = None, day: Optional[str] = None):
    """List a user's weekly activities; `category` / `day` accept "All"."""
    try:
        activities = get_controller(user_id).list_activities(category=category, day=day)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return ActivityListResponse(data=activities, message=f"{len(activities)} activities")


@app.get("/activities/{user_id}/block", response_model=ActivityListResponse)
async def activities_in_block(user_id: str, day: Weekday, start: str, hours: int = 3):
    """Activities overlapping one cell of the weekly grid view."""
    activities = get_controller(user_id).activities_in_block(day, start, block_hours=hours)
    return ActivityListResponse(data=activities, message=f"{len(activities)} activities in block")


@app.post("/activities/{user_id}", response_model=Activity)
async def propose_activity(user_id: str, activity: ActivityCreate, auto_slot: bool = False):
    """
    Add an activity. Conflicts are rejected with 409 unless `auto_slot`
    is set, in which case the activity moves to the next free slot.
    """
    controller = get_controller(user_id)
    if auto_slot:
        return controller.propose_activity_with_auto_slot(activity)
    return controller.propose_activity(activity)


@app.patch("/activities/{user_id}/{activity_id}", response_model=Activity)
async def update_activity(user_id: str, activity_id: str, patch: ActivityPatch):
    return get_controller(user_id).update_activity(activity_id, patch)


@app.post("/activities/{user_id}/{activity_id}/toggle", response_model=Activity)
async def toggle_completion(user_id: str, activity_id: str):
    return get_controller(user_id).toggle_completion(activity_id)


@app.delete("/activities/{user_id}/{activity_id}")
async def delete_activity(user_id: str, activity_id: str):
    get_controller(user_id).delete_activity(activity_id)
    return {"status": "deleted", "id": activity_id}


@app.delete("/activities/{user_id}")
async def clear_all(user_id: str, confirm: bool = False):
    """Delete every activity for the user. Requires `confirm=true`."""
    removed = get_controller(user_id).clear_all(confirm=confirm)
    return {"status": "cleared", "deleted": removed}


# ── Sleep schedule ───────────────────────────────────────────────────

@app.put("/sleep_schedule/{user_id}", response_model=SleepScheduleResponse)
async def set_sleep_schedule(user_id: str, schedule_input: SleepScheduleInput):
    """Replace the user's sleep blocks and the companion exercises derived from them."""
    controller = get_controller(user_id)
    derived = controller.set_sleep_schedule(schedule_input)
    schedule = controller.get_sleep_schedule()
    return SleepScheduleResponse(
        schedule=schedule,
        uniform=bool(schedule and schedule.uniform),
        data=derived,
        message=f"{len(derived)} derived activities scheduled",
    )


@app.get("/sleep_schedule/{user_id}", response_model=SleepScheduleResponse)
async def get_sleep_schedule(user_id: str):
    schedule = get_controller(user_id).get_sleep_schedule()
    if schedule is None:
        raise HTTPException(status_code=404, detail=f"No sleep schedule set for {user_id}")
    return SleepScheduleResponse(schedule=schedule, uniform=schedule.uniform, message="Sleep schedule")


# ── AI routine suggestions ───────────────────────────────────────────

@app.post("/suggest_routine/{user_id}", response_model=ActivityListResponse)
async def suggest_routine(user_id: str, request: SuggestionRequest):
    """
    Ask the suggester for activities and place each one with auto-slotting.
    Suggestions that cannot be placed are reported as warnings.
    """
    controller = get_controller(user_id)
    suggestions = get_suggester().suggest(request, controller.list_activities())

    placed, warnings = [], []
    for suggestion in suggestions:
        try:
            placed.append(controller.propose_activity_with_auto_slot(suggestion))
        except (InvalidInterval, SchedulingExhausted) as e:
            warnings.append(f"Skipped '{suggestion.title}': {e}")

    logger.info("Placed %d of %d suggestions for %s", len(placed), len(suggestions), user_id)
    return ActivityListResponse(
        success=bool(placed) or not suggestions,
        data=placed,
        message=f"Placed {len(placed)} of {len(suggestions)} suggested activities",
        warnings=warnings,
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=int(os.getenv("PORT", "8022")), reload=True)
