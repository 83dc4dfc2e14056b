"""
Slack tests - date parsing, request signing, allow-lists and the /todo endpoint.
"""
import time
from datetime import datetime, timezone
from unittest.mock import AsyncMock, patch
from urllib.parse import urlencode
from zoneinfo import ZoneInfo

from doit.core.config import settings
from doit.integrations.slack import compute_signature, verify_slack_signature
from doit.services.slack_service import is_authorized, parse_task_with_date

BERLIN = ZoneInfo("Europe/Berlin")
NOW = datetime(2026, 10, 19, 10, 0, tzinfo=timezone.utc)

FORM_HEADERS = {"Content-Type": "application/x-www-form-urlencoded"}


def slack_form(text: str, channel: str = "general", user: str = "alice") -> str:
    return urlencode({
        "command": "/todo",
        "text": text,
        "user_name": user,
        "channel_name": channel,
        "user_id": "U123",
        "channel_id": "C123",
    })


# ===================== DATE PARSING =====================


def test_parse_full_date_with_time():
    parsed = parse_task_with_date("Presentation 15.12.2024 14:30", NOW)
    assert parsed["title"] == "Presentation"
    assert parsed["due_date"] == datetime(2024, 12, 15, 14, 30, tzinfo=BERLIN)
    assert parsed["has_time"] is True


def test_parse_full_date():
    parsed = parse_task_with_date("Write report 08.07.2025", NOW)
    assert parsed["title"] == "Write report"
    assert parsed["due_date"] == datetime(2025, 7, 8, tzinfo=BERLIN)
    assert parsed["has_time"] is False


def test_parse_short_date_uses_current_year():
    parsed = parse_task_with_date("Call the bank 25.03", NOW)
    assert parsed["due_date"] == datetime(2026, 3, 25, tzinfo=BERLIN)


def test_parse_short_date_with_time():
    parsed = parse_task_with_date("Standup 10.05 09:00", NOW)
    assert parsed["due_date"] == datetime(2026, 5, 10, 9, 0, tzinfo=BERLIN)
    assert parsed["has_time"] is True


def test_date_in_the_middle_is_removed():
    parsed = parse_task_with_date("Send 01.11 invoice", NOW)
    assert parsed["title"] == "Send invoice"


def test_impossible_date_is_dropped():
    parsed = parse_task_with_date("Party 31.02", NOW)
    assert parsed["title"] == "Party"
    assert parsed["due_date"] is None


def test_text_without_date():
    parsed = parse_task_with_date("  Buy milk ", NOW)
    assert parsed == {"title": "Buy milk", "due_date": None, "has_time": False}


# ===================== SIGNATURES / ALLOW-LISTS =====================


def test_signature_roundtrip():
    ts = str(int(time.time()))
    body = "text=hello"
    signature = compute_signature("secret", ts, body)
    assert verify_slack_signature("secret", ts, signature, body) is True
    assert verify_slack_signature("other", ts, signature, body) is False


def test_stale_signature_is_rejected():
    ts = "1000"
    signature = compute_signature("secret", ts, "x")
    assert verify_slack_signature("secret", ts, signature, "x", now=1000 + 301) is False
    assert verify_slack_signature("secret", "not-a-number", signature, "x") is False


def test_everyone_allowed_without_lists():
    assert is_authorized("random", "bob") == (True, None)


def test_allow_lists(monkeypatch):
    monkeypatch.setattr(settings, "slack_allowed_channels", "#dev, ops")
    monkeypatch.setattr(settings, "slack_allowed_users", "@alice")
    assert is_authorized("dev", "bob")[0] is True
    assert is_authorized("ops", "bob")[0] is True
    assert is_authorized("general", "alice")[0] is True
    allowed, reason = is_authorized("general", "bob")
    assert allowed is False
    assert "#general" in reason


# ===================== ENDPOINT =====================


async def test_slash_command_creates_todo(client):
    r = await client.post("/api/slack/todo", content=slack_form("Prepare demo 20.11.2026 10:00"), headers=FORM_HEADERS)
    assert r.status_code == 200
    data = r.json()
    assert data["response_type"] == "ephemeral"
    assert "Todo created" in data["text"]
    assert data["blocks"][1]["elements"][0]["url"] == settings.frontend_url

    r = await client.get("/api/todos")
    todo = r.json()["todos"][0]
    assert todo["title"] == "Prepare demo"
    assert todo["description"] == "Created via Slack by alice in #general"
    assert todo["due_date"] == "2026-11-20T09:00:00+00:00"


async def test_slash_command_without_text_shows_usage(client):
    r = await client.post("/api/slack/todo", content=slack_form(""), headers=FORM_HEADERS)
    assert "Please enter a task" in r.json()["text"]


async def test_slash_command_unauthorized_channel(client, monkeypatch):
    monkeypatch.setattr(settings, "slack_allowed_channels", "dev")
    r = await client.post("/api/slack/todo", content=slack_form("Hack", channel="random"), headers=FORM_HEADERS)
    assert "Not authorized" in r.json()["text"]

    r = await client.get("/api/todos")
    assert r.json()["total"] == 0


async def test_slash_command_without_owner(client, monkeypatch):
    monkeypatch.setattr(settings, "slack_user_email", "")
    r = await client.post("/api/slack/todo", content=slack_form("Task"), headers=FORM_HEADERS)
    assert "not linked" in r.json()["text"]


async def test_signed_request(unauth_client, seed_user, monkeypatch):
    monkeypatch.setattr(settings, "slack_signing_secret", "shh")
    body = slack_form("Signed task")
    ts = str(int(time.time()))
    headers = {
        **FORM_HEADERS,
        "X-Slack-Request-Timestamp": ts,
        "X-Slack-Signature": compute_signature("shh", ts, body),
    }
    r = await unauth_client.post("/api/slack/todo", content=body, headers=headers)
    assert r.status_code == 200
    assert "Todo created" in r.json()["text"]


async def test_bad_signature_is_rejected(unauth_client, monkeypatch):
    monkeypatch.setattr(settings, "slack_signing_secret", "shh")
    headers = {**FORM_HEADERS, "X-Slack-Request-Timestamp": str(int(time.time())), "X-Slack-Signature": "v0=bad"}
    r = await unauth_client.post("/api/slack/todo", content=slack_form("x"), headers=headers)
    assert r.status_code == 401


async def test_invalid_utf8_body_is_rejected(unauth_client):
    r = await unauth_client.post("/api/slack/todo", content=b"text=\xff\xfe&user_name=a", headers=FORM_HEADERS)
    assert r.status_code == 400


async def test_usage_info(unauth_client):
    r = await unauth_client.get("/api/slack/todo")
    assert r.json()["security"]["allowed_channels"] == "All channels allowed"


async def test_oauth_callback(unauth_client):
    with patch("doit.api.slack.exchange_slack_code", new_callable=AsyncMock,
               return_value={"ok": True, "team": {"name": "Acme"}}):
        r = await unauth_client.get("/api/slack/oauth/callback", params={"code": "abc"})
    assert r.status_code == 307
    assert r.headers["location"].endswith("?slack=connected")


async def test_oauth_callback_errors(unauth_client):
    r = await unauth_client.get("/api/slack/oauth/callback")
    assert r.status_code == 400

    r = await unauth_client.get("/api/slack/oauth/callback", params={"error": "access_denied"})
    assert r.headers["location"].endswith("?slack=error")
