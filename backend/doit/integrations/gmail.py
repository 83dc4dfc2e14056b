"""Google OAuth and Gmail API integration using httpx (no Google SDK dependency)."""

import base64
import html
import re
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any
from urllib.parse import urlencode

import httpx

from doit.core.config import settings

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URL = "https://openidconnect.googleapis.com/v1/userinfo"
GMAIL_API_BASE = "https://gmail.googleapis.com/gmail/v1"

GOOGLE_SCOPES = [
    "openid",
    "email",
    "profile",
    "https://www.googleapis.com/auth/calendar",
    "https://www.googleapis.com/auth/gmail.modify",
    "https://www.googleapis.com/auth/gmail.labels",
]

MAX_BODY_LENGTH = 5000


def get_google_auth_url(redirect_uri: str, state: str) -> str:
    """Generate Google OAuth2 authorization URL."""
    params = {
        "client_id": settings.google_client_id,
        "redirect_uri": redirect_uri,
        "response_type": "code",
        "scope": " ".join(GOOGLE_SCOPES),
        "access_type": "offline",
        "prompt": "consent",
        "state": state,
    }
    return f"{GOOGLE_AUTH_URL}?{urlencode(params)}"


async def exchange_google_code(code: str, redirect_uri: str) -> dict:
    """Exchange authorization code for tokens."""
    async with httpx.AsyncClient() as client:
        response = await client.post(
            GOOGLE_TOKEN_URL,
            data={
                "client_id": settings.google_client_id,
                "client_secret": settings.google_client_secret,
                "code": code,
                "grant_type": "authorization_code",
                "redirect_uri": redirect_uri,
            },
        )
        response.raise_for_status()
        return response.json()


async def refresh_google_token(refresh_token: str) -> dict:
    """Refresh an expired access token."""
    async with httpx.AsyncClient() as client:
        response = await client.post(
            GOOGLE_TOKEN_URL,
            data={
                "client_id": settings.google_client_id,
                "client_secret": settings.google_client_secret,
                "refresh_token": refresh_token,
                "grant_type": "refresh_token",
            },
        )
        response.raise_for_status()
        return response.json()


async def fetch_google_userinfo(access_token: str) -> dict:
    """Return the OpenID profile (email, name, picture) of the signed-in user."""
    async with httpx.AsyncClient() as client:
        response = await client.get(
            GOOGLE_USERINFO_URL,
            headers={"Authorization": f"Bearer {access_token}"},
        )
        response.raise_for_status()
        return response.json()


class GmailClient:
    """Client for the parts of the Gmail API used for label-driven ingestion."""

    def __init__(self, access_token: str):
        self.access_token = access_token
        self.headers = {"Authorization": f"Bearer {access_token}"}

    async def _request(self, method: str, path: str, **kwargs) -> dict:
        async with httpx.AsyncClient() as client:
            response = await client.request(
                method,
                f"{GMAIL_API_BASE}{path}",
                headers=self.headers,
                **kwargs,
            )
            if response.status_code >= 400:
                # Include Google's error details for better debugging
                try:
                    error_msg = response.json().get("error", {}).get("message", response.text)
                except ValueError:
                    error_msg = response.text
                raise httpx.HTTPStatusError(
                    f"Gmail API {response.status_code}: {error_msg}",
                    request=response.request,
                    response=response,
                )
            if response.status_code == 204 or not response.content:
                return {}
            return response.json()

    async def list_labels(self) -> list[dict]:
        result = await self._request("GET", "/users/me/labels")
        return result.get("labels", [])

    async def find_label(self, name: str) -> dict | None:
        """Find a label by name, case-insensitively."""
        wanted = name.lower()
        for label in await self.list_labels():
            if label.get("name", "").lower() == wanted:
                return label
        return None

    async def list_messages(
        self,
        query: str = "",
        max_results: int = 50,
        page_token: str | None = None,
        label_ids: list[str] | None = None,
    ) -> dict:
        params: dict[str, Any] = {"maxResults": max_results}
        if query:
            params["q"] = query
        if page_token:
            params["pageToken"] = page_token
        if label_ids:
            params["labelIds"] = label_ids

        return await self._request("GET", "/users/me/messages", params=params)

    async def get_message(self, message_id: str, format: str = "full") -> dict:
        return await self._request(
            "GET",
            f"/users/me/messages/{message_id}",
            params={"format": format},
        )

    async def modify_message(
        self,
        message_id: str,
        add_labels: list[str] | None = None,
        remove_labels: list[str] | None = None,
    ) -> dict:
        body: dict[str, list[str]] = {}
        if add_labels:
            body["addLabelIds"] = add_labels
        if remove_labels:
            body["removeLabelIds"] = remove_labels

        return await self._request(
            "POST", f"/users/me/messages/{message_id}/modify", json=body
        )

    async def remove_label(self, message_id: str, label_id: str) -> dict:
        return await self.modify_message(message_id, remove_labels=[label_id])


def _decode_body(data: str) -> str:
    padded = data + "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(padded).decode("utf-8", errors="replace")


def strip_html(text: str) -> str:
    text = re.sub(r"(?is)<(script|style).*?</\1>", " ", text)
    text = re.sub(r"(?i)<br\s*/?>|</p>|</div>", "\n", text)
    text = re.sub(r"<[^>]+>", " ", text)
    text = html.unescape(text)
    text = re.sub(r"[ \t\r\f\v]+", " ", text)
    text = re.sub(r"\n\s*\n+", "\n\n", text)
    return text.strip()


def _find_part(payload: dict, mime_type: str) -> str:
    """Depth-first search for the first part with the given MIME type."""
    if payload.get("mimeType") == mime_type and payload.get("body", {}).get("data"):
        return _decode_body(payload["body"]["data"])
    for part in payload.get("parts", []) or []:
        found = _find_part(part, mime_type)
        if found:
            return found
    return ""


def extract_body(payload: dict) -> str:
    """Plain text body of a message, preferring text/plain over stripped HTML."""
    body = _find_part(payload, "text/plain")
    if not body:
        html_body = _find_part(payload, "text/html")
        body = strip_html(html_body) if html_body else ""
    if not body and payload.get("body", {}).get("data"):
        body = _decode_body(payload["body"]["data"])
    return body.strip()[:MAX_BODY_LENGTH]


def parse_gmail_message(raw_message: dict) -> dict:
    """Parse a raw Gmail API message into a clean dict."""
    payload = raw_message.get("payload", {})
    headers = {h["name"].lower(): h["value"] for h in payload.get("headers", [])}

    received_at = None
    if headers.get("date"):
        try:
            received_at = parsedate_to_datetime(headers["date"])
        except (TypeError, ValueError):
            received_at = None
    if received_at is None and raw_message.get("internalDate"):
        received_at = datetime.fromtimestamp(int(raw_message["internalDate"]) / 1000, tz=timezone.utc)

    return {
        "id": raw_message["id"],
        "thread_id": raw_message.get("threadId", raw_message["id"]),
        "from": headers.get("from", ""),
        "to": headers.get("to", ""),
        "subject": headers.get("subject", "(no subject)"),
        "snippet": raw_message.get("snippet", ""),
        "body": extract_body(payload),
        "date": received_at,
        "labels": raw_message.get("labelIds", []),
    }
