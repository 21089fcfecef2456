"""Tests for RoutineSuggester with a stubbed genai client."""

from types import SimpleNamespace

import pytest

from llm_engine import RoutineSuggester, SuggestionRequest, _LLMOutput
from models import ActivityCreate, Category, Weekday


class _StubModels:
    def __init__(self, response):
        self.response = response
        self.calls = []

    def generate_content(self, **kwargs):
        self.calls.append(kwargs)
        return self.response


def _client(parsed=None, text=None, candidates=None):
    response = SimpleNamespace(parsed=parsed, text=text, candidates=candidates or [])
    return SimpleNamespace(models=_StubModels(response))


def _suggestion(title, start, end):
    return ActivityCreate(title=title, category=Category.JOURNAL, days=[Weekday.MONDAY], start_time=start, end_time=end)


def test_parsed_response_is_capped_and_never_derived():
    output = _LLMOutput(activities=[
        _suggestion("Gratitude log", "08:00", "08:10").model_copy(update={"derived": True}),
        _suggestion("Breathing", "12:00", "12:05"),
    ])
    client = _client(parsed=output)
    suggester = RoutineSuggester(client=client)

    result = suggester.suggest(SuggestionRequest(goals=["less stress"], max_activities=1), existing=[])

    assert [a.title for a in result] == ["Gratitude log"]
    assert result[0].derived is False
    assert "less stress" in client.models.calls[0]["contents"]


def test_falls_back_to_text():
    text = _LLMOutput(activities=[_suggestion("Walk", "18:00", "18:30")]).model_dump_json()
    suggester = RoutineSuggester(client=_client(text=text))
    result = suggester.suggest(SuggestionRequest(goals=["move more"]), existing=[])
    assert result[0].start_time == "18:00"


def test_empty_response_raises():
    suggester = RoutineSuggester(client=_client())
    with pytest.raises(ValueError):
        suggester.suggest(SuggestionRequest(goals=["sleep better"]), existing=[])
