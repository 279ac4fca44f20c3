import re

from eventhub.exceptions import MissingFieldsError, ValidationError
from eventhub.models.enums import (
    EventFormat,
    EventStatus,
    EventType,
    Visibility,
    parse_enum,
)
from eventhub.utils.dates import parse_datetime

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

EVENT_REQUIRED_FIELDS = ["title", "type", "format", "summary", "description", "schedule"]
SCHEDULE_REQUIRED_FIELDS = ["start_date", "end_date"]
GUEST_CONTACT_FIELDS = ["first_name", "last_name", "email"]
CONTACT_FIELDS = GUEST_CONTACT_FIELDS + ["phone_number", "company", "job_title"]

MAX_PAGE_SIZE = 100


def require_fields(data: dict, fields: list[str]):
    missing = [f for f in fields if data.get(f) in (None, "")]
    if missing:
        raise MissingFieldsError(missing)


def require_object(data, name="Request body"):
    if not isinstance(data, dict):
        raise ValidationError(f"{name} must be a JSON object")
    return data


def parse_date_field(value, field_name: str):
    try:
        return parse_datetime(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid date for {field_name}: {value}")


def parse_int(value, field_name: str, default=None, minimum=None, maximum=None):
    if value in (None, ""):
        return default
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field_name} must be an integer")
    if minimum is not None and number < minimum:
        raise ValidationError(f"{field_name} must be at least {minimum}")
    if maximum is not None and number > maximum:
        raise ValidationError(f"{field_name} must be at most {maximum}")
    return number


def parse_bool(value) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).lower() in ("true", "1", "yes")


def parse_pagination(args, default_limit=10):
    page = parse_int(args.get("page"), "page", default=1, minimum=1)
    limit = parse_int(
        args.get("limit"), "limit", default=default_limit, minimum=1, maximum=MAX_PAGE_SIZE
    )
    return page, limit


def validate_schedule(schedule: dict, current_start=None, current_end=None):
    """Parse the schedule bounds and check that the event ends after it starts.

    Bounds missing from ``schedule`` fall back to the current values. Returns
    the resulting ``(start, end)`` pair.
    """
    require_object(schedule, "schedule")
    start = (
        parse_date_field(schedule["start_date"], "start_date")
        if "start_date" in schedule
        else current_start
    )
    end = (
        parse_date_field(schedule["end_date"], "end_date")
        if "end_date" in schedule
        else current_end
    )
    if start and end and end <= start:
        raise ValidationError("End date must be after start date")
    return start, end


def validate_event_payload(data: dict):
    require_object(data)
    require_fields(data, EVENT_REQUIRED_FIELDS)
    schedule = require_object(data["schedule"], "schedule")
    require_fields(schedule, SCHEDULE_REQUIRED_FIELDS)

    parse_enum(EventType, data["type"], "type")
    parse_enum(EventFormat, data["format"], "format")
    if "visibility" in data:
        parse_enum(Visibility, data["visibility"], "visibility")
    if "status" in data:
        parse_enum(EventStatus, data["status"], "status")
    return validate_schedule(schedule)


def validate_contact_info(contact_info, require_all=True) -> dict:
    contact_info = dict(require_object(contact_info or {}, "contact_info"))
    if require_all:
        require_fields(contact_info, GUEST_CONTACT_FIELDS)
    email = contact_info.get("email")
    if email:
        email = email.strip().lower()
        if not EMAIL_RE.match(email):
            raise ValidationError(f"Invalid email address: {email}")
        contact_info["email"] = email
    return {key: contact_info[key] for key in CONTACT_FIELDS if key in contact_info}


def validate_feedback(data: dict) -> dict:
    require_object(data)
    require_fields(data, ["overall_rating"])
    rating = parse_int(data["overall_rating"], "overall_rating", minimum=1, maximum=5)
    return {**data, "overall_rating": rating}
