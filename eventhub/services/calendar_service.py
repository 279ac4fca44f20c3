import calendar as month_calendar
import logging
from datetime import datetime, timedelta
from urllib.parse import urlencode, urlparse

from icalendar import Calendar, Event as ICalEvent, vCalAddress, vText

from eventhub.exceptions import ValidationError
from eventhub.models.enums import (
    EventFormat,
    EventStatus,
    EventType,
    RegistrationStatus,
    Visibility,
    parse_enum,
)
from eventhub.utils.dates import as_utc, get_timezone, utcnow
from eventhub.utils.text import sanitize_description
from eventhub.validators import parse_date_field

logger = logging.getLogger(__name__)

DEFAULT_CALENDAR_NAME = "EventHub Events"
DEFAULT_PRODID = "-//EventHub//Events//EN"
DEFAULT_BASE_URL = "http://localhost:3000"
DEFAULT_ORGANIZER_EMAIL = "events@example.com"

GOOGLE_CALENDAR_URL = "https://calendar.google.com/calendar/render"
OUTLOOK_CALENDAR_URL = "https://outlook.live.com/calendar/0/deeplink/compose"

DEFAULT_REMINDERS = [
    {"value": 1, "unit": "days"},
    {"value": 1, "unit": "hours"},
]
REMINDER_UNITS = {"minutes", "hours", "days", "weeks"}

CALENDAR_STATUSES = [EventStatus.PUBLISHED, EventStatus.COMPLETED]


def _time(value: datetime) -> str:
    return value.strftime("%I:%M %p").lstrip("0")


def _long_date(value: datetime) -> str:
    return f"{value:%B} {value.day}, {value.year}"


def _short_date(value: datetime) -> str:
    return f"{value:%b} {value.day}, {value.year}"


def format_location(location: dict | None) -> str:
    """Render an event location as a single line for calendar files."""
    if not location:
        return ""

    online = location.get("online") or {}
    if online.get("platform"):
        return f"Online ({online['platform']})"

    physical = location.get("physical") or {}
    if not physical.get("venue"):
        return ""

    parts = [physical["venue"]]
    address = physical.get("address") or {}
    if address.get("street"):
        parts.append(address["street"])
    city_parts = [
        address[key] for key in ("city", "state", "zip_code") if address.get(key)
    ]
    if city_parts:
        parts.append(", ".join(city_parts))
    if address.get("country"):
        parts.append(address["country"])
    return ", ".join(parts)


def describe_location(event) -> str:
    """Human-readable location used in notification emails."""
    location = event.location or {}
    if not location:
        return "Location not specified"

    if event.format == EventFormat.ONLINE:
        platform = (location.get("online") or {}).get("platform")
        return f"Online via {platform}" if platform else "Online event"

    physical = location.get("physical") or {}
    if physical.get("venue"):
        address = physical.get("address")
        if not address:
            return physical["venue"]
        parts = [physical["venue"]] + [
            address[key] for key in ("street", "city", "state") if address.get(key)
        ]
        return ", ".join(parts)

    if event.format == EventFormat.HYBRID:
        return "Hybrid event (both online and in-person)"
    return "Location details will be provided soon"


class CalendarService:
    def __init__(
        self,
        event_repository,
        registration_repository,
        base_url=DEFAULT_BASE_URL,
        organizer_email=DEFAULT_ORGANIZER_EMAIL,
        prodid=DEFAULT_PRODID,
        calendar_name=DEFAULT_CALENDAR_NAME,
    ):
        self.events = event_repository
        self.registrations = registration_repository
        self.base_url = (base_url or DEFAULT_BASE_URL).rstrip("/")
        self.organizer_email = organizer_email or DEFAULT_ORGANIZER_EMAIL
        self.prodid = prodid or DEFAULT_PRODID
        self.calendar_name = calendar_name or DEFAULT_CALENDAR_NAME

    @classmethod
    def from_config(cls, config, event_repository, registration_repository):
        return cls(
            event_repository,
            registration_repository,
            base_url=config.get("SITE_BASE_URL"),
            organizer_email=config.get("EVENTS_ORGANIZER_EMAIL"),
            prodid=config.get("CALENDAR_PRODID"),
            calendar_name=config.get("CALENDAR_NAME"),
        )

    def event_url(self, event) -> str:
        return f"{self.base_url}{event.url}"

    # Queries

    def check_schedule_conflicts(self, start, end, exclude_event_id=None):
        """Return every other event whose interval overlaps ``[start, end]``.

        Advisory only: nothing stops a conflicting event being saved between
        this check and the caller's commit.
        """
        return self.events.find_overlapping(
            as_utc(start), as_utc(end), exclude_id=exclude_event_id
        )

    def _listing_filters(self, options: dict) -> dict:
        filters = {}
        if not options.get("include_private"):
            filters["visibility"] = Visibility.PUBLIC
        if not options.get("include_all_statuses"):
            filters["statuses"] = CALENDAR_STATUSES
        elif options.get("status"):
            filters["statuses"] = [parse_enum(EventStatus, options["status"], "status")]
        if options.get("type"):
            filters["type"] = parse_enum(EventType, options["type"], "type")
        return filters

    def get_month_events(self, year: int, month: int, options: dict | None = None):
        """Bucket events by day of month.

        A multi-day event is listed under every calendar day it covers inside
        the month, in the ``timezone`` option (UTC by default).
        """
        options = options or {}
        if not 1 <= month <= 12:
            raise ValidationError("Month must be between 1 and 12")

        tz = get_timezone(options.get("timezone"))
        last_day = month_calendar.monthrange(year, month)[1]
        month_start = tz.localize(datetime(year, month, 1))
        month_end = tz.localize(datetime(year, month, last_day, 23, 59, 59))

        events = self.events.find_overlapping(
            as_utc(month_start),
            as_utc(month_end),
            strict_enclosure=True,
            **self._listing_filters(options),
        )

        by_day = {}
        for event in events:
            first = as_utc(event.start_date).astimezone(tz).date()
            last = as_utc(event.end_date).astimezone(tz).date()
            day = first
            while day <= last:
                if day.year == year and day.month == month:
                    entry = event.to_summary_dict()
                    entry.update(
                        is_first_day=day == first,
                        is_last_day=day == last,
                        is_multi_day=first != last,
                    )
                    by_day.setdefault(day.day, []).append(entry)
                day += timedelta(days=1)
        return by_day

    def get_date_range_events(self, start, end, options: dict | None = None):
        options = options or {}
        start = parse_date_field(start, "start_date")
        end = parse_date_field(end, "end_date")
        if end < start:
            raise ValidationError("End date must be after start date")

        filters = self._listing_filters(options)
        if options.get("format"):
            filters["format"] = parse_enum(EventFormat, options["format"], "format")
        filters["industry"] = options.get("industry")
        filters["topic"] = options.get("topic")
        return self.events.find_overlapping(start, end, strict_enclosure=True, **filters)

    def get_user_calendar(self, user_id: int, options: dict | None = None):
        options = options or {}
        event_ids = self.registrations.find_event_ids_for_user(
            user_id, [RegistrationStatus.CONFIRMED, RegistrationStatus.ATTENDED]
        )
        if not event_ids:
            return []

        start = end = None
        if options.get("start_date") and options.get("end_date"):
            start = parse_date_field(options["start_date"], "start_date")
            end = parse_date_field(options["end_date"], "end_date")
        return self.events.find_by_ids(
            event_ids,
            upcoming=bool(options.get("upcoming")),
            past=bool(options.get("past")),
            start=start,
            end=end,
        )

    # iCalendar

    def _new_calendar(self) -> Calendar:
        cal = Calendar()
        cal.add("prodid", self.prodid)
        cal.add("version", "2.0")
        cal.add("method", "PUBLISH")
        cal.add("x-wr-calname", self.calendar_name)
        return cal

    def _organizer(self, name: str) -> vCalAddress:
        organizer = vCalAddress(f"MAILTO:{self.organizer_email}")
        organizer.params["cn"] = vText(name)
        return organizer

    def _vevent(self, event, default_organizer: str | None) -> ICalEvent:
        host = urlparse(self.base_url).netloc or "eventhub"
        vevent = ICalEvent()
        vevent.add("uid", f"event-{event.id}@{host}")
        vevent.add("dtstamp", utcnow())
        vevent.add("dtstart", as_utc(event.start_date))
        vevent.add("dtend", as_utc(event.end_date))
        vevent.add("summary", event.title)
        vevent.add("description", sanitize_description(event.description))
        location = format_location(event.location)
        if location:
            vevent.add("location", location)
        vevent.add("url", self.event_url(event))

        presenters = event.presenters or []
        if presenters and presenters[0].get("name"):
            vevent.add("organizer", self._organizer(presenters[0]["name"]))
        elif default_organizer:
            vevent.add("organizer", self._organizer(default_organizer))
        return vevent

    def generate_event_icalendar(self, event) -> bytes:
        cal = self._new_calendar()
        cal.add_component(self._vevent(event, default_organizer=self.calendar_name))
        return cal.to_ical()

    def generate_events_icalendar(self, events) -> bytes:
        cal = self._new_calendar()
        for event in events:
            cal.add_component(self._vevent(event, default_organizer=None))
        return cal.to_ical()

    # External calendar links

    def generate_google_calendar_link(self, event) -> str:
        start = as_utc(event.start_date).strftime("%Y%m%dT%H%M%SZ")
        end = as_utc(event.end_date).strftime("%Y%m%dT%H%M%SZ")
        params = {
            "action": "TEMPLATE",
            "text": event.title,
            "dates": f"{start}/{end}",
            "details": sanitize_description(event.description),
        }
        location = format_location(event.location)
        if location:
            params["location"] = location
        return f"{GOOGLE_CALENDAR_URL}?{urlencode(params)}"

    def generate_outlook_link(self, event) -> str:
        params = {
            "subject": event.title,
            "startdt": as_utc(event.start_date).strftime("%Y-%m-%dT%H:%M:%SZ"),
            "enddt": as_utc(event.end_date).strftime("%Y-%m-%dT%H:%M:%SZ"),
            "body": sanitize_description(event.description),
        }
        location = format_location(event.location)
        if location:
            params["location"] = location
        return f"{OUTLOOK_CALENDAR_URL}?{urlencode(params)}"

    # Display helpers

    def format_event_date(self, event, style: str = "default"):
        tz_name = event.timezone or "UTC"
        tz = get_timezone(tz_name)
        start = as_utc(event.start_date).astimezone(tz)
        end = as_utc(event.end_date).astimezone(tz)
        same_day = start.date() == end.date()
        times = f"{_time(start)} - {_time(end)}"

        if style == "calendar":
            if same_day:
                return {"date": _long_date(start), "time": f"{times} {tz_name}"}
            return {
                "start_date": _long_date(start),
                "end_date": _long_date(end),
                "time": f"{times} {tz_name}",
            }

        if style == "compact":
            if same_day:
                return {"date": _short_date(start), "time": times}
            return {
                "date": f"{start:%b} {start.day} - {_short_date(end)}",
                "time": times,
            }

        if style == "full":
            if same_day:
                return (
                    f"{start:%A}, {_long_date(start)} from "
                    f"{_time(start)} to {_time(end)} {tz_name}"
                )
            return (
                f"{start:%A}, {_long_date(start)} at {_time(start)} to "
                f"{end:%A}, {_long_date(end)} at {_time(end)} {tz_name}"
            )

        if same_day:
            return f"{_short_date(start)} · {times}"
        return f"{start:%b} {start.day} - {_short_date(end)}"

    def generate_reminder_timing(self, event):
        reminders = (event.notifications or {}).get("reminder_timing") or DEFAULT_REMINDERS
        tz = get_timezone(event.timezone)
        start = as_utc(event.start_date)

        timings = []
        for reminder in reminders:
            unit = reminder.get("unit")
            if unit not in REMINDER_UNITS:
                logger.warning(f"Ignoring reminder with unsupported unit: {unit}")
                continue
            at = start - timedelta(**{unit: reminder.get("value", 0)})
            local = at.astimezone(tz)
            timings.append(
                {
                    "label": f"{reminder.get('value', 0)} {unit} before",
                    "time": at,
                    "formatted_time": f"{_long_date(local)} {_time(local)}",
                }
            )
        return timings
