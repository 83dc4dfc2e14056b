"""Timezone helpers. Datetimes are stored in UTC and bucketed by local day."""

from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

from doit.core.config import settings


def local_tz() -> ZoneInfo:
    return ZoneInfo(settings.timezone)


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive values (SQLite drops tzinfo) and convert aware ones."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_local(value: datetime) -> datetime:
    return ensure_utc(value).astimezone(local_tz())


def isoformat(value: datetime | None) -> str | None:
    value = ensure_utc(value)
    return value.isoformat() if value else None


def parse_datetime(value) -> datetime | None:
    """Parse an ISO date or datetime into an aware UTC datetime.

    Date-only strings mean local midnight. Naive datetimes are local time.
    Anything unparsable yields None.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime.combine(value, time.min)
    elif isinstance(value, str):
        raw = value.strip()
        try:
            if len(raw) == 10:
                parsed = datetime.combine(date.fromisoformat(raw), time.min)
            else:
                parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=local_tz())
    return parsed.astimezone(timezone.utc)


def local_day_bounds(day: date) -> tuple[datetime, datetime]:
    """UTC start (inclusive) and end (exclusive) of a local calendar day."""
    tz = local_tz()
    start = datetime.combine(day, time.min, tzinfo=tz)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def local_week_bounds(reference: datetime | None = None, weeks_back: int = 0) -> tuple[datetime, datetime]:
    """UTC start and end of the Monday-based local week containing ``reference``."""
    local_now = to_local(reference or now_utc())
    monday = local_now.date() - timedelta(days=local_now.weekday()) - timedelta(weeks=weeks_back)
    start, _ = local_day_bounds(monday)
    end, _ = local_day_bounds(monday + timedelta(days=7))
    return start, end
