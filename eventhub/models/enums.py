from enum import Enum


class EventStatus(Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    ARCHIVED = "archived"


class EventType(Enum):
    WEBINAR = "webinar"
    WORKSHOP = "workshop"
    CONFERENCE = "conference"
    MEETUP = "meetup"
    TRAINING = "training"
    OTHER = "other"


class EventFormat(Enum):
    ONLINE = "online"
    IN_PERSON = "in-person"
    HYBRID = "hybrid"


class Visibility(Enum):
    PUBLIC = "public"
    PRIVATE = "private"
    UNLISTED = "unlisted"


class RegistrationStatus(Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    ATTENDED = "attended"
    NO_SHOW = "no-show"


class RegistrationType(Enum):
    STANDARD = "standard"
    VIP = "vip"
    EARLY_BIRD = "earlyBird"
    SPEAKER = "speaker"
    SPONSOR = "sponsor"
    WAITLIST = "waitlist"


class UserRole(Enum):
    USER = "user"
    ADMIN = "admin"


ACTIVE_REGISTRATION_STATUSES = [
    RegistrationStatus.PENDING,
    RegistrationStatus.CONFIRMED,
    RegistrationStatus.ATTENDED,
]

# Registrations that still hold a seat and receive event notifications
HOLDING_REGISTRATION_STATUSES = [
    RegistrationStatus.CONFIRMED,
    RegistrationStatus.PENDING,
]


def parse_enum(enum_cls, value, field_name=None):
    """Look up an enum member by value, raising ValidationError for unknown values."""
    from eventhub.exceptions import ValidationError

    if isinstance(value, enum_cls):
        return value
    for member in enum_cls:
        if member.value == value:
            return member
    label = field_name or enum_cls.__name__
    raise ValidationError(f"Invalid {label} value: {value}")
