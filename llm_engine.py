import json
import logging
from typing import List, Optional
from google import genai
from google.genai import types
from pydantic import BaseModel, Field

from models import Activity, ActivityCreate

logger = logging.getLogger(__name__)


# ── Internal LLM output schema (what the LLM actually generates) ─────

class _LLMOutput(BaseModel):
    """Schema the LLM must return — each entry becomes an ActivityCreate."""
    activities: List[ActivityCreate] = Field(default_factory=list)
    message: str = "Routine suggestions generated"


class SuggestionRequest(BaseModel):
    goals: List[str]
    notes: Optional[str] = None
    max_activities: int = Field(7, ge=1, le=21)


class RoutineSuggester:
    """
    Opaque AI collaborator that proposes wellness activities for a week.
    Suggestions are never persisted here: the caller places each one through
    the scheduler so overlaps get resolved like any user submission.
    """

    def __init__(self, api_key: Optional[str] = None, model: str = "gemini-2.5-flash", client=None):
        self.client = client or genai.Client(api_key=api_key)
        self.model = model

    def suggest(self, request: SuggestionRequest, existing: List[Activity]) -> List[ActivityCreate]:
        system_prompt = f"""You are a gentle wellness coach building a weekly self-care routine.
Propose at most {request.max_activities} recurring activities that support the user's goals:
- Categories: Journal, Exercise, Challenge, Therapy, Custom, Rest.
- Never propose Sleep blocks; sleep is managed separately.
- Use 24h HH:MM times, start_time strictly before end_time, no activity crossing midnight.
- Prefer short, realistic sessions (5-60 minutes) and avoid the user's existing activities.
- `days` lists weekday names (Monday..Sunday) the activity recurs on.

Output ONLY valid JSON matching the _LLMOutput schema."""

        existing_context = json.dumps(
            [
                {"title": a.title, "category": a.category.value, "days": [d.value for d in a.days],
                 "start_time": a.start_time, "end_time": a.end_time}
                for a in existing
            ],
            indent=2,
        )

        user_prompt = f"""
Goals: {json.dumps(request.goals)}
Notes: {request.notes or "none"}

Existing weekly activities:
{existing_context if existing else "No activities yet."}

Suggest the routine now."""

        response = self.client.models.generate_content(
            model=self.model,
            contents=user_prompt,
            config=types.GenerateContentConfig(
                system_instruction=system_prompt,
                response_mime_type="application/json",
                response_schema=_LLMOutput,
                temperature=0.4,
            ),
        )

        if response.parsed is not None:
            raw: _LLMOutput = response.parsed
        elif response.text:
            raw = _LLMOutput.model_validate_json(response.text)
        else:
            raise ValueError(
                "LLM returned an empty or unparseable response. "
                f"Finish reason: {response.candidates[0].finish_reason if response.candidates else 'no candidates'}"
            )

        suggestions = [a.model_copy(update={"derived": False}) for a in raw.activities[: request.max_activities]]
        logger.info("Suggester proposed %d activities", len(suggestions))
        return suggestions
