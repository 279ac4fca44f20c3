from datetime import datetime, timezone
import pytz


def utcnow() -> datetime:
    return datetime.now(pytz.UTC)


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes and convert aware ones to UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_datetime(value) -> datetime:
    """Parse an ISO-8601 string (or pass through a datetime) into an aware UTC datetime.

    Raises:
        ValueError: if the value is not a valid ISO-8601 date.
    """
    if isinstance(value, datetime):
        return as_utc(value)
    if not isinstance(value, str) or not value:
        raise ValueError(f"Invalid date value: {value!r}")
    return as_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))


def get_timezone(name: str | None):
    try:
        return pytz.timezone(name or "UTC")
    except pytz.UnknownTimeZoneError:
        return pytz.UTC


def isoformat(value: datetime | None) -> str | None:
    return as_utc(value).isoformat() if value else None
