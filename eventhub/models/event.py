from decimal import Decimal, InvalidOperation
from sqlalchemy import event as orm_event, inspect
from sqlalchemy.orm import attributes

from eventhub.extensions import db
from eventhub.utils.dates import as_utc, isoformat, parse_datetime, utcnow
from eventhub.utils.text import slugify
from .enums import EventFormat, EventStatus, EventType, Visibility
from .types import UTCDateTime

# API key -> column name, per nested section. Seat and waitlist counters are
# owned by the registration flow and cannot be patched.
SCHEDULE_FIELDS = {
    "start_date": "start_date",
    "end_date": "end_date",
    "timezone": "timezone",
    "recurrence": "recurrence",
}
REGISTRATION_FIELDS = {
    "is_required": "registration_required",
    "max_attendees": "max_attendees",
    "registration_open": "registration_open",
    "registration_close": "registration_close",
}
WAITLIST_FIELDS = {
    "enabled": "waitlist_enabled",
    "max_size": "waitlist_max_size",
}
PRICING_FIELDS = {
    "is_free": "is_free",
    "price": "price",
    "currency": "currency",
    "early_bird_available": "early_bird_available",
    "early_bird_price": "early_bird_price",
    "early_bird_deadline": "early_bird_deadline",
}
DATE_COLUMNS = {
    "start_date",
    "end_date",
    "registration_open",
    "registration_close",
    "early_bird_deadline",
}
DECIMAL_COLUMNS = {"price", "early_bird_price"}
JSON_SECTIONS = ("location", "content", "engagement", "notifications")
NESTED_SECTIONS = ("schedule", "registration") + JSON_SECTIONS


class Event(db.Model):
    __tablename__ = "events"

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(200), nullable=False)
    slug = db.Column(db.String(120), unique=True, nullable=False, index=True)
    type = db.Column(db.Enum(EventType), nullable=False)
    format = db.Column(db.Enum(EventFormat), nullable=False)
    summary = db.Column(db.String(500), nullable=False)
    description = db.Column(db.Text, nullable=False)

    # schedule
    start_date = db.Column(UTCDateTime, nullable=False, index=True)
    end_date = db.Column(UTCDateTime, nullable=False)
    timezone = db.Column(db.String(64), nullable=False, default="UTC")
    duration = db.Column(db.Integer, nullable=True)  # minutes
    recurrence = db.Column(db.JSON, nullable=True)

    location = db.Column(db.JSON, nullable=False, default=dict)
    presenters = db.Column(db.JSON, nullable=False, default=list)
    industries = db.Column(db.JSON, nullable=False, default=list)
    topics = db.Column(db.JSON, nullable=False, default=list)
    target_audience = db.Column(db.JSON, nullable=False, default=list)
    featured_image = db.Column(db.JSON, nullable=True)
    media = db.Column(db.JSON, nullable=False, default=dict)

    # registration policy
    registration_required = db.Column(db.Boolean, nullable=False, default=True)
    max_attendees = db.Column(db.Integer, nullable=True)
    registered_attendees = db.Column(db.Integer, nullable=False, default=0)
    waitlist_enabled = db.Column(db.Boolean, nullable=False, default=False)
    waitlist_max_size = db.Column(db.Integer, nullable=True)
    waitlist_current_size = db.Column(db.Integer, nullable=False, default=0)
    is_free = db.Column(db.Boolean, nullable=False, default=True)
    price = db.Column(db.Numeric(10, 2), nullable=True)
    currency = db.Column(db.String(3), nullable=False, default="USD")
    early_bird_available = db.Column(db.Boolean, nullable=False, default=False)
    early_bird_price = db.Column(db.Numeric(10, 2), nullable=True)
    early_bird_deadline = db.Column(UTCDateTime, nullable=True)
    registration_open = db.Column(UTCDateTime, nullable=True)
    registration_close = db.Column(UTCDateTime, nullable=True)

    content = db.Column(db.JSON, nullable=False, default=dict)
    engagement = db.Column(db.JSON, nullable=False, default=dict)
    notifications = db.Column(db.JSON, nullable=False, default=dict)
    custom_fields = db.Column(db.JSON, nullable=False, default=list)
    seo = db.Column(db.JSON, nullable=False, default=dict)

    status = db.Column(
        db.Enum(EventStatus), nullable=False, default=EventStatus.DRAFT, index=True
    )
    visibility = db.Column(
        db.Enum(Visibility), nullable=False, default=Visibility.PUBLIC
    )
    featured = db.Column(db.Boolean, nullable=False, default=False)
    cancellation_reason = db.Column(db.String(500), nullable=True)

    # analytics
    views = db.Column(db.Integer, nullable=False, default=0)
    registrations_count = db.Column(db.Integer, nullable=False, default=0)
    attendees_count = db.Column(db.Integer, nullable=False, default=0)
    average_rating = db.Column(db.Float, nullable=False, default=0)
    reviews_count = db.Column(db.Integer, nullable=False, default=0)

    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    updated_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(UTCDateTime, nullable=False, default=utcnow)
    updated_at = db.Column(UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow)

    @property
    def url(self):
        return f"/events/{self.slug}"

    def is_past_at(self, now):
        return as_utc(self.end_date) < now

    @property
    def is_past(self):
        return self.is_past_at(utcnow())

    @property
    def is_ongoing(self):
        now = utcnow()
        return as_utc(self.start_date) <= now <= as_utc(self.end_date)

    @property
    def is_registration_open(self):
        now = utcnow()
        if self.registration_open and self.registration_close:
            return as_utc(self.registration_open) <= now <= as_utc(self.registration_close)
        return now < as_utc(self.start_date)

    @property
    def is_at_capacity(self):
        if not self.max_attendees:
            return False
        return self.registered_attendees >= self.max_attendees

    @property
    def available_spots(self):
        if not self.max_attendees:
            return None  # unlimited
        return max(0, self.max_attendees - self.registered_attendees)

    @property
    def waitlist_has_room(self):
        if not self.waitlist_max_size:
            return True
        return (self.waitlist_current_size or 0) < self.waitlist_max_size

    def can_be_cancelled(self, now=None):
        now = now or utcnow()
        if self.status in (
            EventStatus.CANCELLED,
            EventStatus.COMPLETED,
            EventStatus.ARCHIVED,
        ):
            return False
        # Cannot cancel once the event has started
        return as_utc(self.start_date) > now

    def recompute_duration(self):
        if self.start_date and self.end_date:
            delta = as_utc(self.end_date) - as_utc(self.start_date)
            self.duration = round(delta.total_seconds() / 60)

    def apply_section_patch(self, section: str, patch: dict) -> list[str]:
        """Merge ``patch`` into a nested section, touching only the keys present.

        Returns the names of the columns that were written.
        """
        if section not in NESTED_SECTIONS:
            raise ValueError(f"Unknown section: {section}")
        if not isinstance(patch, dict):
            raise ValueError(f"Section {section} must be an object")

        if section == "schedule":
            return self._assign_mapped(SCHEDULE_FIELDS, patch)

        if section == "registration":
            changed = self._assign_mapped(REGISTRATION_FIELDS, patch)
            if isinstance(patch.get("waitlist"), dict):
                changed += self._assign_mapped(WAITLIST_FIELDS, patch["waitlist"])
            if isinstance(patch.get("pricing"), dict):
                changed += self._assign_mapped(PRICING_FIELDS, patch["pricing"])
            return changed

        current = dict(getattr(self, section) or {})
        current.update(patch)
        setattr(self, section, current)
        attributes.flag_modified(self, section)
        return [section]

    def _assign_mapped(self, mapping: dict, patch: dict) -> list[str]:
        changed = []
        for key, column in mapping.items():
            if key not in patch:
                continue
            value = patch[key]
            if column in DATE_COLUMNS and value is not None:
                value = parse_datetime(value)
            elif column in DECIMAL_COLUMNS and value is not None:
                try:
                    value = Decimal(str(value))
                except InvalidOperation:
                    raise ValueError(f"Invalid amount for {key}: {value}")
            setattr(self, column, value)
            changed.append(column)
        return changed

    def to_summary_dict(self):
        return {
            "id": self.id,
            "title": self.title,
            "slug": self.slug,
            "type": self.type.value if self.type else None,
            "format": self.format.value if self.format else None,
            "status": self.status.value if self.status else None,
            "schedule": {
                "start_date": isoformat(self.start_date),
                "end_date": isoformat(self.end_date),
                "timezone": self.timezone,
            },
            "location": self.location or {},
            "featured_image": self.featured_image,
        }

    def to_dict(self):
        return {
            "id": self.id,
            "title": self.title,
            "slug": self.slug,
            "url": self.url,
            "type": self.type.value if self.type else None,
            "format": self.format.value if self.format else None,
            "summary": self.summary,
            "description": self.description,
            "schedule": {
                "start_date": isoformat(self.start_date),
                "end_date": isoformat(self.end_date),
                "timezone": self.timezone,
                "duration": self.duration,
                "recurrence": self.recurrence,
            },
            "location": self.location or {},
            "presenters": self.presenters or [],
            "industries": self.industries or [],
            "topics": self.topics or [],
            "target_audience": self.target_audience or [],
            "featured_image": self.featured_image,
            "media": self.media or {},
            "registration": {
                "is_required": self.registration_required,
                "max_attendees": self.max_attendees,
                "registered_attendees": self.registered_attendees,
                "waitlist": {
                    "enabled": self.waitlist_enabled,
                    "max_size": self.waitlist_max_size,
                    "current_size": self.waitlist_current_size,
                },
                "pricing": {
                    "is_free": self.is_free,
                    "price": str(self.price) if self.price is not None else None,
                    "currency": self.currency,
                    "early_bird_available": self.early_bird_available,
                    "early_bird_price": (
                        str(self.early_bird_price)
                        if self.early_bird_price is not None
                        else None
                    ),
                    "early_bird_deadline": isoformat(self.early_bird_deadline),
                },
                "registration_open": isoformat(self.registration_open),
                "registration_close": isoformat(self.registration_close),
            },
            "content": self.content or {},
            "engagement": self.engagement or {},
            "notifications": self.notifications or {},
            "custom_fields": self.custom_fields or [],
            "seo": self.seo or {},
            "status": self.status.value if self.status else None,
            "visibility": self.visibility.value if self.visibility else None,
            "featured": self.featured,
            "cancellation_reason": self.cancellation_reason,
            "analytics": {
                "views": self.views,
                "registrations": self.registrations_count,
                "attendees": self.attendees_count,
                "average_rating": self.average_rating,
                "reviews_count": self.reviews_count,
            },
            "is_past": self.is_past,
            "is_ongoing": self.is_ongoing,
            "is_registration_open": self.is_registration_open,
            "is_at_capacity": self.is_at_capacity,
            "available_spots": self.available_spots,
            "created_by": self.created_by,
            "updated_by": self.updated_by,
            "created_at": isoformat(self.created_at),
            "updated_at": isoformat(self.updated_at),
        }

    def __repr__(self):
        return (
            f"Event("
            f"id={self.id}, "
            f"slug='{self.slug}', "
            f"status={self.status}, "
            f"start_date={self.start_date}, "
            f"registered_attendees={self.registered_attendees}, "
            f"max_attendees={self.max_attendees}"
            f")"
        )


@orm_event.listens_for(Event, "before_insert")
def _fill_derived_fields(mapper, connection, target):
    if not target.slug and target.title:
        target.slug = slugify(target.title)
    target.recompute_duration()


@orm_event.listens_for(Event, "before_update")
def _refresh_duration(mapper, connection, target):
    state = inspect(target)
    if (
        state.attrs.start_date.history.has_changes()
        or state.attrs.end_date.history.has_changes()
    ):
        target.recompute_duration()
