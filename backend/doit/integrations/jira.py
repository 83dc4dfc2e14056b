"""Jira REST API v2 integration using httpx with Basic (email:API token) auth."""

import base64
import re
from typing import Any

import httpx

from doit.core.dates import parse_datetime
from doit.core.logger import get_logger

logger = get_logger(__name__)

SPRINT_FIELDS = ("sprint", "customfield_10020", "customfield_10010", "customfield_10016")
SPRINT_NAME_PATTERN = re.compile(r"name=([^,\]]+)")


class JiraClient:
    """Client for a single Jira Cloud/Server site."""

    def __init__(self, url: str, email: str, token: str):
        self.base_url = f"{url.rstrip('/')}/rest/api/2"
        auth = base64.b64encode(f"{email}:{token}".encode()).decode()
        self.headers = {
            "Authorization": f"Basic {auth}",
            "Accept": "application/json",
            "Content-Type": "application/json",
        }

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        async with httpx.AsyncClient(timeout=30.0) as client:
            response = await client.request(
                method,
                f"{self.base_url}{path}",
                headers=self.headers,
                **kwargs,
            )
            if response.status_code >= 400:
                raise httpx.HTTPStatusError(
                    f"Jira API {response.status_code}: {response.text[:500]}",
                    request=response.request,
                    response=response,
                )
            return response.json()

    async def search(self, jql: str, max_results: int = 50, fields: str = "*all") -> dict:
        return await self._request(
            "GET",
            "/search",
            params={"jql": jql, "maxResults": max_results, "fields": fields},
        )

    async def get_issues_by_projects(self, projects: list[str]) -> list[dict]:
        """Unresolved issues assigned to the current user in the given projects."""
        if not projects:
            return []
        result = await self.search(build_assigned_jql(projects))
        return [parse_jira_issue(issue) for issue in result.get("issues", [])]

    async def get_projects(self) -> list[dict]:
        projects = await self._request("GET", "/project")
        return [{"key": p["key"], "name": p.get("name", p["key"])} for p in projects]

    async def get_myself(self) -> dict:
        return await self._request("GET", "/myself")

    async def test_connection(self) -> bool:
        try:
            await self.get_myself()
            return True
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Jira connection test failed: {e}")
            return False


def build_assigned_jql(projects: list[str]) -> str:
    project_list = ",".join(f'"{p}"' for p in projects)
    return (
        f"project IN ({project_list}) AND assignee = currentUser() "
        "AND resolution = Unresolved ORDER BY updated DESC"
    )


def extract_sprint(fields: dict) -> tuple[str | None, str | None]:
    """Return (name, state) of the active sprint, else the first one listed.

    Sprint data lives in different custom fields depending on the Jira site and
    may be a list of objects or a legacy serialized string.
    """
    for field_id in SPRINT_FIELDS:
        value = fields.get(field_id)
        if not value:
            continue
        if isinstance(value, list):
            sprints = [s for s in value if isinstance(s, dict) and s.get("name")]
            if sprints:
                active = next((s for s in sprints if s.get("state") == "active"), sprints[0])
                return active["name"], active.get("state")
            strings = [s for s in value if isinstance(s, str)]
            if strings:
                value = strings[-1]
        if isinstance(value, str):
            match = SPRINT_NAME_PATTERN.search(value)
            if match:
                return match.group(1), "active"
    return None, None


def parse_jira_issue(issue: dict) -> dict:
    """Normalize a Jira issue into the cached row shape."""
    fields = issue.get("fields", {})
    sprint, sprint_state = extract_sprint(fields)
    return {
        "jira_id": str(issue["id"]),
        "key": issue["key"],
        "summary": fields.get("summary", ""),
        "description": fields.get("description"),
        "status": (fields.get("status") or {}).get("name", ""),
        "priority": (fields.get("priority") or {}).get("name"),
        "assignee": (fields.get("assignee") or {}).get("displayName"),
        "project": (fields.get("project") or {}).get("key", ""),
        "issue_type": (fields.get("issuetype") or {}).get("name", ""),
        "due_date": parse_datetime(fields.get("duedate")),
        "sprint": sprint,
        "sprint_state": sprint_state,
    }
