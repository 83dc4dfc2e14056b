"""
Gmail tests - message parsing, summaries and DOIT-label ingestion.
"""
import base64
from unittest.mock import AsyncMock, patch

import httpx
import pytest
from sqlalchemy import select

from doit.integrations.gmail import GmailClient, extract_body, parse_gmail_message, strip_html
from doit.models.todo import Todo
from doit.services.gmail_service import (
    FALLBACK_TITLE,
    GmailServiceError,
    fallback_summary,
    normalize_summary,
    process_emails,
)

TEST_EMAIL = "test@example.com"

LABEL = {"id": "Label_1", "name": "doit"}


def b64(text: str) -> str:
    return base64.urlsafe_b64encode(text.encode()).decode().rstrip("=")


def raw_message(message_id: str, thread_id: str, subject: str, body: str = "Please review the draft.") -> dict:
    return {
        "id": message_id,
        "threadId": thread_id,
        "snippet": body[:20],
        "labelIds": ["INBOX", LABEL["id"]],
        "payload": {
            "mimeType": "multipart/alternative",
            "headers": [
                {"name": "From", "value": "Bob <bob@example.com>"},
                {"name": "Subject", "value": subject},
                {"name": "Date", "value": "Mon, 19 Oct 2026 09:30:00 +0200"},
            ],
            "parts": [
                {"mimeType": "text/plain", "body": {"data": b64(body)}},
                {"mimeType": "text/html", "body": {"data": b64(f"<p>{body}</p>")}},
            ],
        },
    }


def status_error(code: int) -> httpx.HTTPStatusError:
    request = httpx.Request("GET", "https://gmail.googleapis.com/gmail/v1/users/me/labels")
    return httpx.HTTPStatusError("error", request=request, response=httpx.Response(code, request=request))


@pytest.fixture()
def gmail_token():
    with patch("doit.services.gmail_service.get_valid_access_token", new_callable=AsyncMock, return_value="token"):
        yield


# ===================== PARSING =====================


def test_parse_message_prefers_plain_text():
    message = parse_gmail_message(raw_message("m1", "t1", "Review draft"))
    assert message["thread_id"] == "t1"
    assert message["subject"] == "Review draft"
    assert message["body"] == "Please review the draft."
    assert message["date"].isoformat() == "2026-10-19T09:30:00+02:00"


def test_html_only_body_is_stripped():
    payload = {"mimeType": "text/html", "body": {"data": b64("<div>Hello <b>team</b></div><script>x()</script>")}}
    assert extract_body(payload) == "Hello team"


def test_strip_html_keeps_paragraph_breaks():
    text = strip_html("<p>One</p><p>Two</p>")
    assert text.startswith("One\n")
    assert text.endswith("Two")


def test_body_is_truncated():
    payload = {"mimeType": "text/plain", "body": {"data": b64("x" * 6000)}}
    assert len(extract_body(payload)) == 5000


def test_missing_subject():
    raw = raw_message("m1", "t1", "x")
    raw["payload"]["headers"] = [h for h in raw["payload"]["headers"] if h["name"] != "Subject"]
    assert parse_gmail_message(raw)["subject"] == "(no subject)"


# ===================== SUMMARIES =====================


def test_fallback_summary_truncates_long_subject():
    summary = fallback_summary({"subject": "A" * 100, "from": "bob", "body": "text"})
    assert summary["title"] == "A" * 77 + "..."
    assert summary["priority"] == "medium"


def test_fallback_summary_without_subject():
    assert fallback_summary({"subject": ""})["title"] == FALLBACK_TITLE


def test_normalize_ai_summary():
    summary = normalize_summary({
        "title": "Reply to Bob",
        "priority": "critical",
        "estimatedHours": 0.5,
        "suggestedDueDate": "2026-10-21",
    })
    assert summary["priority"] == "medium"
    assert summary["estimated_hours"] == 0.5
    assert summary["due_date"] is not None
    assert normalize_summary({"title": "  "})["title"] == FALLBACK_TITLE


# ===================== INGESTION =====================


async def test_process_creates_todos_and_skips_known_threads(db_session, seed_user, gmail_token):
    db_session.add(Todo(title="Earlier", user_email=TEST_EMAIL, email_source="t2"))
    await db_session.commit()

    messages = {"m1": raw_message("m1", "t1", "Review draft"), "m2": raw_message("m2", "t2", "Old thread")}
    with patch.object(GmailClient, "find_label", new_callable=AsyncMock, return_value=LABEL), \
         patch.object(GmailClient, "list_messages", new_callable=AsyncMock,
                      return_value={"messages": [{"id": "m1"}, {"id": "m2"}]}), \
         patch.object(GmailClient, "get_message", new_callable=AsyncMock,
                      side_effect=lambda message_id: messages[message_id]), \
         patch.object(GmailClient, "remove_label", new_callable=AsyncMock) as remove_label:
        result = await process_emails(db_session, TEST_EMAIL)

    assert result["success"] is True
    assert result["processed"] == 1
    assert result["skipped"] == 1
    assert result["errors"] == []
    assert result["details"][0]["todo_title"] == "Review draft"
    assert remove_label.await_count == 2

    result = await db_session.execute(select(Todo).where(Todo.email_source == "t1"))
    todo = result.scalar_one()
    assert todo.tags == '["email"]'
    assert "Subject: Review draft" in todo.description


async def test_process_collects_message_errors(db_session, seed_user, gmail_token):
    with patch.object(GmailClient, "find_label", new_callable=AsyncMock, return_value=LABEL), \
         patch.object(GmailClient, "list_messages", new_callable=AsyncMock,
                      return_value={"messages": [{"id": "m1"}]}), \
         patch.object(GmailClient, "get_message", new_callable=AsyncMock, side_effect=httpx.ConnectError("down")):
        result = await process_emails(db_session, TEST_EMAIL)

    assert result["processed"] == 0
    assert result["errors"][0]["message_id"] == "m1"


async def test_process_without_label(db_session, seed_user, gmail_token):
    with patch.object(GmailClient, "find_label", new_callable=AsyncMock, return_value=None):
        result = await process_emails(db_session, TEST_EMAIL)
    assert result["success"] is True
    assert result["processed"] == 0
    assert "not found" in result["message"]


async def test_process_with_insufficient_scope(db_session, seed_user, gmail_token):
    with patch.object(GmailClient, "find_label", new_callable=AsyncMock, side_effect=status_error(403)):
        with pytest.raises(GmailServiceError) as exc:
            await process_emails(db_session, TEST_EMAIL)
    assert exc.value.status_code == 403
    assert exc.value.reason == "insufficient_scope"


# ===================== ENDPOINTS =====================


async def test_process_endpoint_without_google_token(client):
    r = await client.post("/api/gmail/process-emails")
    assert r.status_code == 401
    assert r.json()["detail"]["reason"] == "no_token"


async def test_cron_request_uses_cron_user(unauth_client):
    with patch("doit.api.gmail.process_emails", new_callable=AsyncMock,
               return_value={"success": True, "processed": 0}) as process:
        r = await unauth_client.post("/api/gmail/process-emails", headers={"X-API-Key": "cron-secret"})
    assert r.status_code == 200
    assert process.await_args.args[1] == TEST_EMAIL


async def test_wrong_cron_key_needs_session(unauth_client):
    r = await unauth_client.post("/api/gmail/process-emails", headers={"X-API-Key": "wrong"})
    assert r.status_code == 401


async def test_status_and_save_refresh_token(client):
    r = await client.get("/api/gmail/status")
    assert r.json() == {"configured": False, "has_refresh_token": False, "label": "DOIT"}

    r = await client.post("/api/gmail/save-refresh-token")
    assert r.status_code == 400
    assert r.json()["detail"]["reason"] == "no_token"

    r = await client.post("/api/gmail/save-refresh-token", json={"refresh_token": "1//refresh"})
    assert r.json()["success"] is True

    r = await client.get("/api/gmail/status")
    assert r.json()["configured"] is True
    assert r.json()["has_refresh_token"] is True


async def test_auth_check_without_token(client):
    r = await client.get("/api/gmail/auth-check")
    assert r.json() == {"authenticated": False, "reason": "no_token"}
