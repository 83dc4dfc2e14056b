"""
Scheduler tests - block splitting, slot search and calendar event creation.
All times are Europe/Berlin; the week of 2026-10-19 (Monday) is in CEST.
"""
from datetime import date, datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch
from zoneinfo import ZoneInfo

import httpx
import pytest

from doit.services.calendar_service import CalendarServiceError
from doit.services.scheduling_service import (
    CalendarAuthError,
    SchedulingOptions,
    create_calendar_events,
    determine_planning_start,
    find_available_time_slot,
    find_slot_in_day,
    schedule_task,
    split_into_blocks,
    TimeBlock,
)

BERLIN = ZoneInfo("Europe/Berlin")
MONDAY = date(2026, 10, 19)


def local(day: date, hour: int, minute: int = 0) -> datetime:
    return datetime(day.year, day.month, day.day, hour, minute, tzinfo=BERLIN)


def status_error(code: int) -> httpx.HTTPStatusError:
    request = httpx.Request("GET", "https://www.googleapis.com/calendar/v3/calendars/primary")
    return httpx.HTTPStatusError("error", request=request, response=httpx.Response(code, request=request))


# ===================== BLOCK SPLITTING =====================


def test_split_exact_and_remainder():
    assert split_into_blocks(10, 4, 0.5) == [4, 4, 2]
    assert split_into_blocks(8, 4, 0.5) == [4, 4]


def test_split_merges_small_remainder_into_previous_block():
    blocks = split_into_blocks(8.2, 4, 0.5)
    assert len(blocks) == 2
    assert blocks[1] == pytest.approx(4.2)


def test_split_small_total_is_single_block():
    assert split_into_blocks(0.25, 4, 0.5) == [0.25]


def test_split_zero_yields_nothing():
    assert split_into_blocks(0, 4, 0.5) == []
    assert split_into_blocks(-1, 4, 0.5) == []


# ===================== PLANNING START =====================


def test_planning_start_without_deadline_is_tomorrow():
    now = local(MONDAY, 9)
    assert determine_planning_start(None, 2, now) == now + timedelta(days=1)


def test_planning_start_goes_back_one_day_per_block():
    now = local(MONDAY, 9)
    due = local(MONDAY + timedelta(days=10), 17)
    assert determine_planning_start(due, 3, now) == due - timedelta(days=3)


def test_planning_start_never_before_now():
    now = local(MONDAY, 9)
    due = local(MONDAY + timedelta(days=1), 17)
    assert determine_planning_start(due, 4, now) == now


# ===================== SLOT IN DAY =====================


def test_empty_day_starts_at_work_start():
    slot = find_slot_in_day(MONDAY, 2, [])
    assert slot == (local(MONDAY, 8, 45), local(MONDAY, 10, 45))


def test_slot_must_end_strictly_before_next_event():
    # 10:00-12:00 would touch the lunch break, so the slot moves to the afternoon
    meeting = (local(MONDAY, 8, 45), local(MONDAY, 10))
    slot = find_slot_in_day(MONDAY, 2, [meeting])
    assert slot == (local(MONDAY, 13, 15), local(MONDAY, 15, 15))


def test_slot_may_end_exactly_at_work_end():
    slot = find_slot_in_day(MONDAY, 3.75, [])
    assert slot == (local(MONDAY, 13, 15), local(MONDAY, 17))


def test_block_longer_than_any_gap_does_not_fit():
    assert find_slot_in_day(MONDAY, 4, []) is None


def test_events_on_other_days_are_ignored():
    tuesday_meeting = (local(MONDAY + timedelta(days=1), 8), local(MONDAY + timedelta(days=1), 17))
    slot = find_slot_in_day(MONDAY, 1, [tuesday_meeting])
    assert slot[0] == local(MONDAY, 8, 45)


def test_slot_never_starts_before_not_before():
    now = local(MONDAY, 14)
    slot = find_slot_in_day(MONDAY, 1, [], not_before=now)
    assert slot == (local(MONDAY, 14), local(MONDAY, 15))


def test_all_day_event_blocks_the_day():
    all_day = (local(MONDAY, 0), local(MONDAY + timedelta(days=1), 0))
    assert find_slot_in_day(MONDAY, 1, [all_day]) is None


# ===================== MULTI-DAY SEARCH =====================


def test_search_skips_friday_to_sunday():
    friday = local(date(2026, 10, 23), 8)
    slot = find_available_time_slot(friday, 2, [])
    assert slot[0].astimezone(BERLIN).date() == date(2026, 10, 26)
    assert slot[0].astimezone(BERLIN).hour == 8


def test_search_stops_after_deadline():
    monday = local(MONDAY, 8)
    busy = [(local(MONDAY, 8), local(MONDAY, 18))]
    deadline = local(MONDAY, 18)
    assert find_available_time_slot(monday, 2, busy, deadline=deadline) is None


def test_search_gives_up_after_thirty_days():
    monday = local(MONDAY, 8)
    days = [MONDAY + timedelta(days=i) for i in range(40)]
    busy = [(local(d, 0), local(d, 23)) for d in days]
    assert find_available_time_slot(monday, 1, busy) is None


# ===================== SCHEDULE TASK =====================


async def test_schedule_task_places_blocks_on_consecutive_days():
    now = local(MONDAY, 7)
    options = SchedulingOptions(todo_title="Write report", estimated_hours=6, max_block_size=3)
    fetch = AsyncMock(return_value=[])

    blocks = await schedule_task(options, fetch, now=now)

    assert len(blocks) == 2
    assert blocks[0].title == "🟡 Write report (Part 1/2)"
    assert blocks[1].title == "🟡 Write report (Part 2/2)"
    assert blocks[0].start == local(MONDAY + timedelta(days=1), 8, 45)
    assert blocks[1].start == local(MONDAY + timedelta(days=2), 8, 45)
    assert "Priority: medium" in blocks[0].description
    fetch.assert_awaited_once()


async def test_schedule_task_single_block_has_no_part_suffix():
    now = local(MONDAY, 7)
    options = SchedulingOptions(todo_title="Call bank", estimated_hours=1, priority="high")
    blocks = await schedule_task(options, AsyncMock(return_value=[]), now=now)
    assert [b.title for b in blocks] == ["🔴 Call bank"]


async def test_schedule_task_avoids_existing_events():
    now = local(MONDAY, 7)
    tuesday = MONDAY + timedelta(days=1)
    events = [{
        "id": "e1",
        "title": "Workshop",
        "start": local(tuesday, 8, 30).isoformat(),
        "end": local(tuesday, 11).isoformat(),
    }]
    options = SchedulingOptions(todo_title="Review", estimated_hours=0.5)
    blocks = await schedule_task(options, AsyncMock(return_value=events), now=now)
    assert blocks[0].start == local(tuesday, 11)


async def test_schedule_task_survives_calendar_failure():
    now = local(MONDAY, 7)
    fetch = AsyncMock(side_effect=CalendarServiceError("down"))
    options = SchedulingOptions(todo_title="Plan", estimated_hours=2)
    blocks = await schedule_task(options, fetch, now=now)
    assert len(blocks) == 1


# ===================== CALENDAR EVENTS =====================


def _blocks(n: int) -> list[TimeBlock]:
    start = local(MONDAY, 9).astimezone(timezone.utc)
    return [
        TimeBlock(start=start + timedelta(days=i), end=start + timedelta(days=i, hours=1), duration=1, title=f"Block {i}")
        for i in range(n)
    ]


async def test_create_events_uses_work_block_markers():
    client = MagicMock()
    client.get_calendar = AsyncMock(return_value={"id": "primary"})
    client.create_event = AsyncMock(return_value={"id": "new"})

    assert await create_calendar_events(_blocks(2), client) is True
    assert client.create_event.await_count == 2
    body = client.create_event.await_args_list[0].args[0]
    assert body["colorId"] == "4"
    assert body["extendedProperties"]["private"] == {"source": "doit", "type": "work-block"}


async def test_create_events_partial_success_counts():
    client = MagicMock()
    client.get_calendar = AsyncMock(return_value={})
    client.create_event = AsyncMock(side_effect=[{"id": "ok"}, httpx.ConnectError("boom")])
    assert await create_calendar_events(_blocks(2), client) is True


async def test_create_events_all_failed():
    client = MagicMock()
    client.get_calendar = AsyncMock(return_value={})
    client.create_event = AsyncMock(side_effect=httpx.ConnectError("boom"))
    assert await create_calendar_events(_blocks(2), client) is False


async def test_create_events_empty_is_success():
    client = MagicMock()
    assert await create_calendar_events([], client) is True


async def test_create_events_insufficient_scope():
    client = MagicMock()
    client.get_calendar = AsyncMock(side_effect=status_error(403))
    with pytest.raises(CalendarAuthError) as exc:
        await create_calendar_events(_blocks(1), client)
    assert exc.value.reason == "insufficient_scope"
    assert exc.value.status_code == 403


async def test_create_events_invalid_token():
    client = MagicMock()
    client.get_calendar = AsyncMock(side_effect=status_error(401))
    with pytest.raises(CalendarAuthError) as exc:
        await create_calendar_events(_blocks(1), client)
    assert exc.value.reason == "token_invalid"


# ===================== SCHEDULE ENDPOINT =====================


async def test_schedule_endpoint_requires_estimate(client):
    r = await client.post("/api/todos", json={"title": "No estimate"})
    todo_id = r.json()["id"]

    r = await client.post(f"/api/todos/{todo_id}/schedule")
    assert r.status_code == 400


async def test_schedule_endpoint_links_todo(client):
    r = await client.post("/api/todos", json={"title": "Estimate me", "estimated_hours": 2})
    todo_id = r.json()["id"]

    with patch("doit.services.scheduling_service.get_calendar_client", new_callable=AsyncMock) as get_client, \
         patch("doit.services.scheduling_service.fetch_events", new_callable=AsyncMock, return_value=[]), \
         patch("doit.services.scheduling_service.create_calendar_events", new_callable=AsyncMock, return_value=True):
        get_client.return_value = MagicMock()
        r = await client.post(f"/api/todos/{todo_id}/schedule")

    assert r.status_code == 200
    data = r.json()
    assert data["scheduled"] is True
    assert len(data["blocks"]) == 1
    assert data["todo"]["calendar_linked"] is True


async def test_schedule_endpoint_without_google_token(client):
    r = await client.post("/api/todos", json={"title": "Estimate me", "estimated_hours": 2})
    r = await client.post(f"/api/todos/{r.json()['id']}/schedule")
    assert r.status_code == 401
    assert r.json()["detail"]["reason"] == "no_token"
