from datetime import date, datetime, time, timezone
from typing import Any, Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_aware(value: datetime) -> datetime:
    # naive timestamps are taken to be UTC; an explicit offset is kept
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def as_utc(value: datetime) -> datetime:
    return as_aware(value).astimezone(timezone.utc)


def parse_when(value: Any) -> Optional[datetime]:
    """Parse a timestamp or date into an aware datetime.

    The offset the value was written with is kept, so ``.date()`` and
    ``.month`` give the calendar date the user entered. Returns None for
    anything that is not a valid date, so callers can treat "no usable
    date" as its own state instead of comparing garbage.
    """
    if isinstance(value, datetime):
        return as_aware(value)
    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        return as_aware(datetime.fromisoformat(text))
    except ValueError:
        return None


def isoformat(value: datetime) -> str:
    return as_utc(value).isoformat()


def month_key(value: datetime) -> str:
    return f"{value.year:04d}-{value.month:02d}"


def month_label(value: datetime) -> str:
    return value.strftime("%b %Y")


def day_label(value: datetime) -> str:
    return value.strftime("%b %d, %Y")
