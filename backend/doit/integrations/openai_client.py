"""OpenAI integration for workload analysis, email triage and meeting follow-ups."""

import json
from datetime import datetime

from openai import AsyncOpenAI

from doit.core.config import settings

_client: AsyncOpenAI | None = None


class OpenAINotConfigured(RuntimeError):
    pass


def is_available() -> bool:
    return bool(settings.openai_api_key)


def get_openai_client() -> AsyncOpenAI:
    global _client
    if not is_available():
        raise OpenAINotConfigured("OPENAI_API_KEY is not configured")
    if _client is None:
        _client = AsyncOpenAI(api_key=settings.openai_api_key)
    return _client


def _parse_json_response(text: str) -> dict | None:
    """Extract JSON from a model response, handling markdown code blocks."""
    try:
        if "```json" in text:
            json_str = text.split("```json")[1].split("```")[0].strip()
        elif "```" in text:
            json_str = text.split("```")[1].split("```")[0].strip()
        elif "{" in text:
            start = text.index("{")
            end = text.rindex("}") + 1
            json_str = text[start:end]
        else:
            json_str = text
        parsed = json.loads(json_str)
    except (json.JSONDecodeError, ValueError, IndexError):
        return None
    return parsed if isinstance(parsed, dict) else None


async def complete_json(
    system_prompt: str,
    prompt: str,
    temperature: float = 0.7,
    max_tokens: int = 500,
) -> dict | None:
    """Run a chat completion and return its JSON object, or None if unparsable."""
    client = get_openai_client()
    response = await client.chat.completions.create(
        model=settings.openai_model,
        response_format={"type": "json_object"},
        messages=[
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": prompt},
        ],
        temperature=temperature,
        max_tokens=max_tokens,
    )
    content = response.choices[0].message.content if response.choices else None
    if not content:
        return None
    return _parse_json_response(content)


WORKLOAD_SYSTEM_PROMPT = """You are an assistant for productivity and time management.
Assess whether a person's weekly task load fits into their available working hours
and give concrete, actionable advice.
Respond with a JSON object with the fields: status ("optimal" | "busy" | "overloaded"),
workloadPercentage (number), recommendations (list of strings), priorities (list of strings),
reschedulesSuggestions (list of strings), risksIdentified (list of strings)."""


async def analyze_workload(
    todos: list[dict],
    events: list[dict],
    week_start: datetime,
    week_end: datetime,
    available_hours: float,
    estimated_hours: float,
) -> dict | None:
    percentage = round(estimated_hours / available_hours * 100) if available_hours > 0 else 0

    todo_lines = "\n".join(
        f'- "{t["title"]}" | priority: {t.get("priority", "medium")} '
        f'| estimate: {t.get("estimated_hours") or "not set"}h '
        f'| deadline: {t.get("due_date") or "none"}'
        for t in todos
    ) or "- none"
    event_lines = "\n".join(
        f'- "{e.get("title", "")}" | {e.get("start", "unknown time")}' for e in events
    ) or "- none"
    high_priority = sum(1 for t in todos if t.get("priority") == "high")

    prompt = f"""Analyse the workload for the week {week_start.date()} to {week_end.date()}.

CAPACITY:
- Available working time: {available_hours}h (Mon-Thu, 08:45-12:00 and 13:15-17:00, minus meetings)
- Estimated time needed: {estimated_hours}h
- Utilisation: {percentage}%

OPEN TASKS ({len(todos)}):
{todo_lines}

CALENDAR EVENTS ({len(events)}):
{event_lines}

FACTS:
- High priority tasks: {high_priority}

Return ONLY the JSON object."""

    return await complete_json(WORKLOAD_SYSTEM_PROMPT, prompt, temperature=0.7, max_tokens=1500)


EMAIL_SYSTEM_PROMPT = """You are an assistant for email triage and task management.
Turn emails into concise, actionable todo items. Always answer with valid JSON.

Rules:
1. title: short (max 80 characters), starting with an active verb ("Reply to...", "Review:", "Prepare:")
2. description: context from the email, sender, important details, next steps
3. priority: "high" only for urgent/important, "medium" is the default, "low" for nice-to-have
4. estimatedHours: realistic estimate based on complexity (may be null)
5. suggestedDueDate: only when a date is explicitly mentioned (ISO YYYY-MM-DD, may be null)"""


async def summarize_email(subject: str, sender: str, date: str, body: str) -> dict | None:
    prompt = f"""Create a todo from this email:

SUBJECT: {subject}
FROM: {sender}
DATE: {date}

CONTENT:
{body[:2000]}

Answer ONLY with a JSON object in this format:
{{
  "title": "string (max 80 characters, active verb)",
  "description": "string (context, sender, next steps)",
  "priority": "low" | "medium" | "high",
  "estimatedHours": number | null,
  "suggestedDueDate": "YYYY-MM-DD" | null
}}"""

    return await complete_json(EMAIL_SYSTEM_PROMPT, prompt, temperature=0.3, max_tokens=500)


SUGGESTION_SYSTEM_PROMPT = """You are an assistant that derives useful todos from calendar events.
For upcoming events suggest preparation tasks, for past events suggest follow-ups.
Answer with a JSON object only."""


async def suggest_todos_for_event(event: dict, is_past: bool) -> dict | None:
    timing = "already took place" if is_past else "is coming up"
    prompt = f"""The following calendar event {timing}:

TITLE: {event.get("title", "")}
START: {event.get("start", "")}
END: {event.get("end", "")}
LOCATION: {event.get("location") or "-"}
DESCRIPTION: {(event.get("description") or "-")[:1000]}

Suggest at most 3 concrete todos. Answer ONLY with JSON in this format:
{{
  "suggestions": ["string", "string"],
  "reasoning": "string (one sentence)",
  "priority": "low" | "medium" | "high",
  "estimatedHours": number
}}"""

    return await complete_json(SUGGESTION_SYSTEM_PROMPT, prompt, temperature=0.7, max_tokens=500)
