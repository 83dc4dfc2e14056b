"""Slack request verification and OAuth helpers."""

import hashlib
import hmac
import time

import httpx

from doit.core.config import settings

SLACK_OAUTH_ACCESS_URL = "https://slack.com/api/oauth.v2.access"
MAX_REQUEST_AGE_SECONDS = 300


def compute_signature(secret: str, timestamp: str, body: str) -> str:
    base_string = f"v0:{timestamp}:{body}"
    digest = hmac.new(secret.encode(), base_string.encode(), hashlib.sha256).hexdigest()
    return f"v0={digest}"


def verify_slack_signature(
    secret: str,
    timestamp: str | None,
    signature: str | None,
    body: str,
    now: float | None = None,
) -> bool:
    """Check ``X-Slack-Signature`` against the signing secret and request age."""
    if not secret or not timestamp or not signature:
        return False
    try:
        request_time = int(timestamp)
    except ValueError:
        return False
    current = now if now is not None else time.time()
    if abs(current - request_time) > MAX_REQUEST_AGE_SECONDS:
        return False
    expected = compute_signature(secret, timestamp, body)
    return hmac.compare_digest(expected, signature)


async def exchange_slack_code(code: str, redirect_uri: str | None = None) -> dict:
    """Exchange an OAuth code for a bot token at oauth.v2.access."""
    data = {
        "client_id": settings.slack_client_id,
        "client_secret": settings.slack_client_secret,
        "code": code,
    }
    if redirect_uri:
        data["redirect_uri"] = redirect_uri
    async with httpx.AsyncClient() as client:
        response = await client.post(SLACK_OAUTH_ACCESS_URL, data=data)
        response.raise_for_status()
        return response.json()
