"""Google Calendar API integration using httpx."""

from typing import Any

import httpx

GCAL_API_BASE = "https://www.googleapis.com/calendar/v3"


class GoogleCalendarClient:
    """Client for interacting with Google Calendar API."""

    def __init__(self, access_token: str, timeout: float | None = 15.0):
        self.access_token = access_token
        self.headers = {"Authorization": f"Bearer {access_token}"}
        self.timeout = timeout

    async def _request(self, method: str, path: str, **kwargs) -> dict:
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.request(
                method,
                f"{GCAL_API_BASE}{path}",
                headers=self.headers,
                **kwargs,
            )
            response.raise_for_status()
            if response.status_code == 204 or not response.content:
                return {}
            return response.json()

    async def list_events(
        self,
        calendar_id: str = "primary",
        time_min: str | None = None,
        time_max: str | None = None,
        max_results: int = 250,
        page_token: str | None = None,
    ) -> dict:
        """List single (expanded) events within a time range ordered by start."""
        params: dict[str, Any] = {
            "maxResults": max_results,
            "singleEvents": True,
            "orderBy": "startTime",
        }
        if time_min:
            params["timeMin"] = time_min
        if time_max:
            params["timeMax"] = time_max
        if page_token:
            params["pageToken"] = page_token

        return await self._request("GET", f"/calendars/{calendar_id}/events", params=params)

    async def create_event(self, event_body: dict, calendar_id: str = "primary") -> dict:
        return await self._request(
            "POST",
            f"/calendars/{calendar_id}/events",
            json=event_body,
        )

    async def delete_event(self, event_id: str, calendar_id: str = "primary") -> dict:
        return await self._request("DELETE", f"/calendars/{calendar_id}/events/{event_id}")

    async def get_calendar(self, calendar_id: str = "primary") -> dict:
        """Metadata of a calendar; a cheap probe for token validity and scope."""
        return await self._request("GET", f"/calendars/{calendar_id}")


def build_event_body(
    summary: str,
    start: str,
    end: str,
    description: str = "",
    location: str = "",
    timezone: str = "UTC",
    color_id: str | None = None,
    private_properties: dict | None = None,
) -> dict:
    event_body: dict[str, Any] = {
        "summary": summary,
        "start": {"dateTime": start, "timeZone": timezone},
        "end": {"dateTime": end, "timeZone": timezone},
    }
    if description:
        event_body["description"] = description
    if location:
        event_body["location"] = location
    if color_id:
        event_body["colorId"] = color_id
    if private_properties:
        event_body["extendedProperties"] = {"private": private_properties}
    return event_body


def parse_google_event(raw_event: dict) -> dict:
    """Parse a raw Google Calendar event into a normalized dict."""
    start = raw_event.get("start", {})
    end = raw_event.get("end", {})

    # Google uses dateTime for timed events, date for all-day
    start_dt = start.get("dateTime", start.get("date", ""))
    end_dt = end.get("dateTime", end.get("date", ""))
    is_all_day = "date" in start and "dateTime" not in start

    return {
        "id": raw_event["id"],
        "title": raw_event.get("summary", "(No title)"),
        "description": raw_event.get("description", ""),
        "location": raw_event.get("location", ""),
        "start": start_dt,
        "end": end_dt,
        "is_all_day": is_all_day,
        "html_link": raw_event.get("htmlLink", ""),
        "conference_data": raw_event.get("conferenceData"),
    }
