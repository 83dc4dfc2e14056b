"""
Smart suggestion tests - event filtering, AI validation, fallbacks and endpoints.
"""
from datetime import datetime, timezone
from unittest.mock import AsyncMock, patch

from doit.core.config import settings
from doit.services.suggestion_service import (
    FALLBACK_SUGGESTIONS,
    SuggestionWindow,
    is_relevant_event,
    suggestions_for_event,
    validate_ai_suggestions,
)

NOW = datetime(2026, 10, 19, 10, 0, tzinfo=timezone.utc)


def event(title: str, start: str = "2026-10-20T09:00:00+02:00", end: str = "2026-10-20T10:00:00+02:00", **extra) -> dict:
    return {"id": "evt1", "title": title, "start": start, "end": end, **extra}


# ===================== EVENT FILTER =====================


def test_meeting_is_relevant():
    assert is_relevant_event(event("Sprint Planning")) is True


def test_breaks_and_blockers_are_ignored():
    assert is_relevant_event(event("Lunch with the team")) is False
    assert is_relevant_event(event("Fokuszeit")) is False
    assert is_relevant_event(event("OOO - dentist")) is False


def test_short_and_untitled_events_are_ignored():
    assert is_relevant_event(event("Standup", end="2026-10-20T09:10:00+02:00")) is False
    assert is_relevant_event(event("")) is False
    assert is_relevant_event({"title": "No times"}) is False


# ===================== AI RESULT VALIDATION =====================


def test_validate_caps_and_normalises():
    result = validate_ai_suggestions({
        "suggestions": ["Prepare agenda", " ", "Send invite", "Book room", "Order coffee"],
        "priority": "urgent",
        "estimatedHours": 1.5,
        "reasoning": "Workshop needs preparation",
    })
    assert result["suggestions"] == ["Prepare agenda", "Send invite", "Book room"]
    assert result["priority"] == "medium"
    assert result["estimated_hours"] == 1.5


def test_validate_rejects_unusable_results():
    assert validate_ai_suggestions(None) is None
    assert validate_ai_suggestions({"suggestions": "not a list"}) is None
    assert validate_ai_suggestions({"suggestions": ["", "  "]}) is None


def test_validate_ignores_boolean_estimate():
    assert validate_ai_suggestions({"suggestions": ["x"], "estimatedHours": True})["estimated_hours"] is None


# ===================== SUGGESTIONS =====================


async def test_fallback_without_openai():
    suggestion = await suggestions_for_event(event("Customer call"), now=NOW)
    assert suggestion["id"] == f"suggestion_evt1_{int(NOW.timestamp() * 1000)}"
    assert suggestion["event_title"] == "Customer call"
    assert suggestion["suggestions"] == FALLBACK_SUGGESTIONS["suggestions"]
    assert suggestion["priority"] == "medium"


async def test_ai_suggestions_for_future_event(monkeypatch):
    monkeypatch.setattr(settings, "openai_api_key", "sk-test")
    ai_result = {"suggestions": ["Prepare slides"], "priority": "high", "estimatedHours": 2}
    with patch("doit.integrations.openai_client.suggest_todos_for_event", new_callable=AsyncMock,
               return_value=ai_result) as suggest:
        suggestion = await suggestions_for_event(event("Board review"), now=NOW)

    assert suggestion["suggestions"] == ["Prepare slides"]
    assert suggestion["priority"] == "high"
    assert suggest.await_args.kwargs["is_past"] is False


async def test_invalid_ai_result_falls_back(monkeypatch):
    monkeypatch.setattr(settings, "openai_api_key", "sk-test")
    with patch("doit.integrations.openai_client.suggest_todos_for_event", new_callable=AsyncMock,
               return_value={"unexpected": True}):
        suggestion = await suggestions_for_event(event("Board review"), now=NOW)
    assert suggestion["reasoning"] == FALLBACK_SUGGESTIONS["reasoning"]


def test_window_bounds():
    # Berlin is UTC+2 until 25 October
    start, end = SuggestionWindow(lookback_days=1, future_days=2).bounds(NOW)
    assert start == datetime(2026, 10, 17, 22, 0, tzinfo=timezone.utc)
    assert end == datetime(2026, 10, 21, 22, 0, tzinfo=timezone.utc)


def test_window_today_only():
    start, end = SuggestionWindow(include_future=False).bounds(NOW)
    assert start == datetime(2026, 10, 18, 22, 0, tzinfo=timezone.utc)
    assert end == datetime(2026, 10, 19, 22, 0, tzinfo=timezone.utc)


# ===================== ENDPOINTS =====================


async def test_get_without_calendar_returns_warning(client):
    r = await client.get("/api/smart-suggestions")
    assert r.status_code == 200
    data = r.json()
    assert data["success"] is True
    assert data["suggestions"] == []
    assert "warning" in data


async def test_get_with_calendar_events(client):
    events = [event("Sprint Planning"), event("Lunch")]
    with patch("doit.services.suggestion_service.get_events_for_range", new_callable=AsyncMock, return_value=events):
        r = await client.get("/api/smart-suggestions", params={"lookback_days": 1})
    assert r.json()["count"] == 1


async def test_post_events(client):
    r = await client.post("/api/smart-suggestions", json={"events": [event("Retro")]})
    assert r.status_code == 200
    assert r.json()["suggestions"][0]["event_title"] == "Retro"


async def test_create_todo_from_suggestion(client):
    r = await client.post("/api/smart-suggestions/create-todo", json={
        "suggestion_id": "suggestion_evt1_1",
        "event_id": "evt1",
        "event_title": "Retro",
        "title": "Share retro notes",
        "priority": "high",
        "estimated_hours": 0.5,
        "reasoning": "Team asked for notes",
    })
    assert r.status_code == 200
    todo = r.json()["todo"]
    assert todo["tags"] == ["smart-suggestion", "meeting-followup"]
    assert 'Based on event: "Retro"' in todo["description"]
    assert "Reasoning: Team asked for notes" in todo["description"]


async def test_create_todo_requires_title(client):
    r = await client.post("/api/smart-suggestions/create-todo", json={
        "suggestion_id": "s", "event_id": "e", "event_title": "Retro", "title": "",
    })
    assert r.status_code == 422


async def test_create_todo_rejects_unknown_priority(client):
    r = await client.post("/api/smart-suggestions/create-todo", json={
        "suggestion_id": "s", "event_id": "e", "event_title": "Retro", "title": "x", "priority": "asap",
    })
    assert r.status_code == 422
