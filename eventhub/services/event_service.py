import base64
import logging
from collections import Counter
from decimal import Decimal

from flask import current_app
from sqlalchemy.orm import attributes

from eventhub.exceptions import (
    CapacityError,
    DuplicateRegistrationError,
    InvalidStateError,
    NotFoundError,
    PermissionDeniedError,
    ScheduleConflictError,
    ValidationError,
)
from eventhub.models import Event, Registration
from eventhub.models.enums import (
    HOLDING_REGISTRATION_STATUSES,
    EventFormat,
    EventStatus,
    EventType,
    RegistrationStatus,
    RegistrationType,
    Visibility,
    parse_enum,
)
from eventhub.models.event import NESTED_SECTIONS
from eventhub.models.lifecycle import (
    evaluate_event_transition,
    evaluate_registration_transition,
)
from eventhub.repositories.event_repository import EventRepository
from eventhub.repositories.registration_repository import RegistrationRepository
from eventhub.repositories.user_repository import UserRepository
from eventhub.services.calendar_service import CalendarService, describe_location
from eventhub.services.notifications import EmailNotifier
from eventhub.services.storage import LocalFileStorage
from eventhub.utils.dates import as_utc, utcnow
from eventhub.utils.text import slugify
from eventhub import validators

logger = logging.getLogger(__name__)

ALLOWED_IMAGE_TYPES = {"image/jpeg", "image/png", "image/webp"}
IMAGE_KINDS = ("featured", "gallery")

# Top-level event fields an update may overwrite as a whole
UPDATABLE_FIELDS = [
    "title",
    "slug",
    "summary",
    "description",
    "presenters",
    "industries",
    "topics",
    "target_audience",
    "featured_image",
    "media",
    "custom_fields",
    "seo",
    "featured",
]
ENUM_FIELDS = {"type": EventType, "format": EventFormat, "visibility": Visibility}


def _pagination(page):
    return {
        "total": page.total,
        "page": page.page,
        "limit": page.per_page,
        "pages": page.pages,
    }


class EventService:
    def __init__(
        self,
        event_repository,
        registration_repository,
        user_repository,
        notifier,
        calendar_service,
        storage=None,
    ):
        self.events = event_repository
        self.registrations = registration_repository
        self.users = user_repository
        self.notifier = notifier
        self.calendar = calendar_service
        self.storage = storage

    # ------------------------------------------------------------------
    # Catalogue
    # ------------------------------------------------------------------

    def get_events(self, filters: dict | None = None, options: dict | None = None):
        filters = filters or {}
        options = options or {}
        page, limit = validators.parse_pagination(options)

        query = {
            "status": parse_enum(EventStatus, filters.get("status") or "published", "status"),
            "visibility": parse_enum(
                Visibility, filters.get("visibility") or "public", "visibility"
            ),
            "industry": filters.get("industry"),
            "topic": filters.get("topic"),
            "search": filters.get("search"),
            "featured": validators.parse_bool(filters.get("featured", False)),
            "upcoming": validators.parse_bool(filters.get("upcoming", False)),
            "past": validators.parse_bool(filters.get("past", False)),
        }
        if filters.get("type"):
            query["type"] = parse_enum(EventType, filters["type"], "type")
        if filters.get("format"):
            query["format"] = parse_enum(EventFormat, filters["format"], "format")
        if filters.get("start_date") and filters.get("end_date"):
            query["start_date"] = validators.parse_date_field(filters["start_date"], "start_date")
            query["end_date"] = validators.parse_date_field(filters["end_date"], "end_date")

        result = self.events.find(
            query,
            page=page,
            per_page=limit,
            sort_field=options.get("sort_field"),
            sort_order=options.get("sort_order", "desc"),
        )
        return {"events": result.items, "pagination": _pagination(result)}

    def get_event_by_id(self, identifier, options: dict | None = None) -> Event:
        """Fetch an event by numeric id or slug.

        Admins see every event, signed-in users see public and unlisted ones,
        anonymous callers only public ones.
        """
        options = options or {}
        if options.get("is_admin"):
            visibilities = None
        elif options.get("is_authenticated"):
            visibilities = [Visibility.PUBLIC, Visibility.UNLISTED]
        else:
            visibilities = [Visibility.PUBLIC]

        event = self.events.get_by_identifier(identifier, visibilities)
        if not event:
            raise NotFoundError("Event not found")

        if options.get("track_view"):
            self.events.increment_views(event.id)
            self.events.commit()
        return event

    def is_user_registered(self, event_id: int, user_id: int) -> bool:
        return self.registrations.find_active_for_user(event_id, user_id) is not None

    def get_featured_events(self, limit=3):
        return self.events.find_featured(limit=limit)

    def get_upcoming_events(self, options: dict | None = None):
        options = options or {}
        event_type = options.get("type")
        return self.events.find_upcoming(
            type=parse_enum(EventType, event_type, "type") if event_type else None,
            industry=options.get("industry"),
            topic=options.get("topic"),
            limit=validators.parse_int(options.get("limit"), "limit", default=10, minimum=1),
        )

    def get_event(self, event_id: int) -> Event:
        event = self.events.get(event_id)
        if not event:
            raise NotFoundError("Event not found")
        return event

    # ------------------------------------------------------------------
    # Event lifecycle
    # ------------------------------------------------------------------

    def create_event(self, data: dict, user_id: int) -> Event:
        start, end = validators.validate_event_payload(data)

        slug = data.get("slug") or slugify(data["title"])
        if self.events.slug_exists(slug):
            raise ValidationError("An event with this slug already exists")

        if data.get("check_conflicts"):
            conflicts = self.calendar.check_schedule_conflicts(start, end)
            if conflicts:
                logger.warning(
                    f"Event '{data['title']}' rejected: {len(conflicts)} schedule conflicts"
                )
                raise ScheduleConflictError(conflicts)

        event = Event(
            title=data["title"],
            slug=slug,
            type=parse_enum(EventType, data["type"], "type"),
            format=parse_enum(EventFormat, data["format"], "format"),
            summary=data["summary"],
            description=data["description"],
            status=parse_enum(EventStatus, data.get("status") or "draft", "status"),
            visibility=parse_enum(Visibility, data.get("visibility") or "public", "visibility"),
            created_by=user_id,
            updated_by=user_id,
        )
        self._apply_sections(event, data)
        for key in UPDATABLE_FIELDS:
            if key in data and key not in ("title", "slug", "summary", "description"):
                setattr(event, key, data[key])

        self.events.create(event)
        self.events.commit()
        logger.info(f"Event {event.id} '{event.title}' created by user {user_id}")
        return event

    def update_event(self, event_id: int, patch: dict, user_id: int) -> Event:
        """Apply a partial update.

        Nested sections only overwrite the keys present in ``patch``. Status is
        not changed here; use ``change_event_status``.
        """
        validators.require_object(patch)
        event = self.get_event(event_id)

        if "status" in patch:
            logger.warning(f"Ignoring status in update for event {event_id}")

        if patch.get("slug") and patch["slug"] != event.slug:
            if self.events.slug_exists(patch["slug"], exclude_id=event.id):
                raise ValidationError("An event with this slug already exists")

        old_start, old_end = as_utc(event.start_date), as_utc(event.end_date)
        schedule = patch.get("schedule") or {}
        schedule_touched = "start_date" in schedule or "end_date" in schedule
        new_start, new_end = old_start, old_end
        if schedule_touched:
            new_start, new_end = validators.validate_schedule(schedule, old_start, old_end)

        if patch.get("check_conflicts") and schedule_touched:
            conflicts = self.calendar.check_schedule_conflicts(
                new_start, new_end, exclude_event_id=event.id
            )
            if conflicts:
                logger.warning(
                    f"Update of event {event_id} rejected: {len(conflicts)} schedule conflicts"
                )
                raise ScheduleConflictError(conflicts)

        self._apply_sections(event, patch)
        for key, enum_cls in ENUM_FIELDS.items():
            if key in patch:
                setattr(event, key, parse_enum(enum_cls, patch[key], key))
        for key in UPDATABLE_FIELDS:
            if key in patch:
                setattr(event, key, patch[key])

        event.updated_by = user_id
        self.events.commit()
        logger.info(f"Event {event_id} updated by user {user_id}")

        if schedule_touched and (new_start != old_start or new_end != old_end):
            self._notify_schedule_change(event)
        return event

    def _apply_sections(self, event: Event, data: dict):
        for section in NESTED_SECTIONS:
            if section in data and data[section] is not None:
                try:
                    event.apply_section_patch(section, data[section])
                except ValueError as e:
                    raise ValidationError(str(e))

    def delete_event(self, event_id: int):
        event = self.get_event(event_id)
        count = self.registrations.count_by_event(event.id)
        if count > 0:
            raise InvalidStateError(
                f"Cannot delete event with {count} registrations. Cancel the event instead."
            )
        self.events.delete(event)
        self.events.commit()
        logger.info(f"Event {event_id} deleted")
        return True

    def change_event_status(
        self, event_id: int, new_status, status_data: dict | None = None, user_id=None
    ) -> Event:
        status = parse_enum(EventStatus, new_status, "status")
        event = self.get_event(event_id)

        result = evaluate_event_transition(event, status, utcnow())
        if not result.allowed:
            logger.warning(
                f"Event {event_id} status change {event.status.value} -> {status.value} "
                f"rejected: {result.reason}"
            )
            raise InvalidStateError(result.reason)

        if status == EventStatus.CANCELLED:
            reason = (status_data or {}).get("reason") or "No reason provided"
            recipients = [
                self._recipient(registration)
                for registration in self.registrations.find_for_notification(
                    event.id, HOLDING_REGISTRATION_STATUSES
                )
            ]
            event.status = EventStatus.CANCELLED
            event.cancellation_reason = reason
            event.updated_by = user_id
            cancelled = self.registrations.bulk_cancel(event.id, HOLDING_REGISTRATION_STATUSES)
            self.events.commit()
            logger.info(f"Event {event_id} cancelled; {cancelled} registrations cancelled")
            self._notify_cancellation(event, recipients, reason)
            return event

        previous = event.status
        event.status = status
        event.updated_by = user_id
        self.events.commit()
        logger.info(f"Event {event_id} status changed {previous.value} -> {status.value}")
        return event

    def upload_event_image(self, event_id: int, file, image_type: str, user_id: int) -> Event:
        event = self.get_event(event_id)
        if not file:
            raise ValidationError("No file provided")
        if file.mimetype not in ALLOWED_IMAGE_TYPES:
            raise ValidationError("Invalid file type. Only JPEG, PNG and WebP images are allowed.")
        if image_type not in IMAGE_KINDS:
            raise ValidationError("Invalid image type specified")

        upload = self.storage.upload_file(file, "events")
        if image_type == "featured":
            event.featured_image = {"url": upload["url"], "alt": event.title}
        else:
            media = dict(event.media or {})
            media["gallery"] = list(media.get("gallery") or []) + [upload["url"]]
            event.media = media
            attributes.flag_modified(event, "media")

        event.updated_by = user_id
        self.events.commit()
        logger.info(f"Uploaded {image_type} image for event {event_id}")
        return event

    # ------------------------------------------------------------------
    # Registration and waitlist
    # ------------------------------------------------------------------

    def calculate_registration_fee(self, event: Event, registration_type, now=None) -> Decimal:
        if event.is_free:
            return Decimal("0")
        now = now or utcnow()
        if (
            registration_type != RegistrationType.WAITLIST
            and event.early_bird_available
            and event.early_bird_deadline
            and now < as_utc(event.early_bird_deadline)
        ):
            return event.early_bird_price
        return event.price

    def register_for_event(self, event_id: int, registration_data: dict, user_id=None):
        """Admit a registration, falling back to the waitlist when the event is full.

        Checks run in a fixed order: event exists, is published, requires
        registration, has an open window, has capacity (or waitlist room), and
        the registrant is not already registered.
        """
        validators.require_object(registration_data)
        event = self.get_event(event_id)
        if event.status != EventStatus.PUBLISHED:
            raise InvalidStateError("Registration is not available for this event")
        if not event.registration_required:
            raise InvalidStateError("Registration is not required for this event")
        if not event.is_registration_open:
            raise InvalidStateError("Registration is closed for this event")

        waitlisted = False
        if event.is_at_capacity:
            if not event.waitlist_enabled:
                raise CapacityError("This event is at capacity")
            if not event.waitlist_has_room:
                raise CapacityError("The waitlist for this event is full")
            waitlisted = True

        user = None
        if user_id is not None:
            user = self.users.find_by_id(user_id)
            if not user:
                raise NotFoundError("User not found")
        contact_info = self._contact_info(registration_data.get("contact_info"), user)
        if user:
            if self.registrations.find_active_for_user(event.id, user.id):
                raise DuplicateRegistrationError("You are already registered for this event")
        elif self.registrations.find_active_for_email(event.id, contact_info["email"]):
            raise DuplicateRegistrationError(
                "This email address is already registered for this event"
            )

        requested = registration_data.get("registration_type") or "standard"
        registration_type = parse_enum(RegistrationType, requested, "registration_type")
        if registration_type == RegistrationType.WAITLIST:
            # waitlist placement is decided by capacity, never by the client
            registration_type = RegistrationType.STANDARD

        waitlisted = self._reserve_place(event, waitlisted)
        if waitlisted:
            registration_type = RegistrationType.WAITLIST

        registration = Registration(
            event_id=event.id,
            user_id=user.id if user else None,
            contact_info=contact_info,
            contact_email=contact_info["email"],
            demographics=registration_data.get("demographics") or {},
            marketing=registration_data.get("marketing") or {},
            preferences=registration_data.get("preferences") or {},
            custom_fields=registration_data.get("custom_fields") or {},
            registration_type=registration_type,
            status=RegistrationStatus.CONFIRMED if user else RegistrationStatus.PENDING,
            ip_address=registration_data.get("ip_address"),
            device_info=registration_data.get("device_info"),
            referral_code=registration_data.get("referral_code"),
            created_by=user.id if user else None,
        )
        if not event.is_free:
            registration.amount = self.calculate_registration_fee(event, registration_type)
            registration.currency = event.currency
            registration.is_paid = False

        self.registrations.create(registration)
        self.registrations.commit()
        logger.info(
            f"Registration {registration.id} ({registration_type.value}) created for "
            f"event {event.id}"
        )

        self._send_registration_confirmation(registration, event)
        return registration

    def _reserve_place(self, event: Event, waitlisted: bool) -> bool:
        """Take a seat or a waitlist slot atomically; returns True when waitlisted."""
        if not waitlisted:
            if self.events.reserve_seat(event.id):
                return False
            # Another request took the last seat after the capacity check.
            if not event.waitlist_enabled:
                self.events.rollback()
                raise CapacityError("This event is at capacity")

        if not self.events.reserve_waitlist_slot(event.id):
            self.events.rollback()
            raise CapacityError("The waitlist for this event is full")
        return True

    def _contact_info(self, contact_info, user) -> dict:
        if not user:
            return validators.validate_contact_info(contact_info)

        contact_info = validators.validate_contact_info(contact_info, require_all=False)
        contact_info.setdefault("first_name", user.first_name)
        contact_info.setdefault("last_name", user.last_name)
        contact_info.setdefault("email", user.email.lower())
        return contact_info

    def _release_place(self, registration: Registration, previous_status):
        if registration.registration_type == RegistrationType.WAITLIST:
            self.events.release_waitlist_slot(registration.event_id)
        elif previous_status in HOLDING_REGISTRATION_STATUSES:
            self.events.release_seat(registration.event_id)

    def _promote_after_release(self, event_id: int):
        event = self.events.get(event_id)
        if event and event.waitlist_enabled and (event.waitlist_current_size or 0) > 0:
            return self.process_waitlist(event_id)
        return []

    def cancel_registration(self, registration_id: int, acting_user_id) -> Registration:
        registration = self.registrations.get(registration_id)
        if not registration:
            raise NotFoundError("Registration not found")

        # Owner only; there is no admin override on this path.
        if registration.user_id is None or registration.user_id != int(acting_user_id):
            logger.warning(
                f"User {acting_user_id} attempted to cancel registration {registration_id}"
            )
            raise PermissionDeniedError("You do not have permission to cancel this registration")

        event = self.get_event(registration.event_id)
        if event.is_past:
            raise InvalidStateError("Cannot cancel registration for a past event")

        result = evaluate_registration_transition(registration, RegistrationStatus.CANCELLED)
        if not result.allowed:
            raise InvalidStateError(result.reason)

        previous = registration.status
        registration.cancel()
        self._release_place(registration, previous)
        self.registrations.commit()
        logger.info(f"Registration {registration_id} cancelled by user {acting_user_id}")

        self._promote_after_release(event.id)
        return registration

    def process_waitlist(self, event_id: int) -> list[Registration]:
        """Promote the oldest waitlisted registrations into free seats."""
        event = self.get_event(event_id)
        if not event.waitlist_enabled or not event.waitlist_current_size:
            return []
        spots = event.available_spots
        if not spots:
            return []

        promoted = []
        for registration in self.registrations.find_waitlisted(event.id, limit=spots):
            if not self.events.promote_waitlist_slot(event.id):
                break
            registration.registration_type = RegistrationType.STANDARD
            registration.status = RegistrationStatus.CONFIRMED
            promoted.append(registration)
        self.registrations.commit()

        for registration in promoted:
            logger.info(f"Registration {registration.id} promoted from waitlist of event {event_id}")
            self._send_waitlist_promotion(registration, event)
        return promoted

    def update_registration_status(self, registration_id: int, new_status) -> Registration:
        status = parse_enum(RegistrationStatus, new_status, "status")
        registration = self.registrations.get(registration_id)
        if not registration:
            raise NotFoundError("Registration not found")

        if status == RegistrationStatus.ATTENDED and registration.status == status:
            return registration
        if (
            status == RegistrationStatus.ATTENDED
            and registration.registration_type == RegistrationType.WAITLIST
        ):
            raise InvalidStateError("Waitlisted registrations cannot check in")

        result = evaluate_registration_transition(registration, status)
        if not result.allowed:
            raise InvalidStateError(result.reason)

        previous = registration.status
        if status == RegistrationStatus.CANCELLED:
            registration.cancel()
            self._release_place(registration, previous)
        elif status == RegistrationStatus.CONFIRMED:
            registration.confirm()
        elif status == RegistrationStatus.ATTENDED:
            registration.check_in()
            self.events.record_attendee(registration.event_id)
        else:
            registration.status = status
        self.registrations.commit()
        logger.info(
            f"Registration {registration_id} status changed {previous.value} -> {status.value}"
        )

        if status == RegistrationStatus.CANCELLED:
            self._promote_after_release(registration.event_id)
        return registration

    def check_in_attendee(self, identifier) -> Registration:
        registration = self.registrations.get_by_identifier(identifier)
        if not registration:
            raise NotFoundError("Registration not found")
        event = self.get_event(registration.event_id)

        if not event.is_ongoing and not event.is_past:
            raise InvalidStateError("Check-in is only available when an event is ongoing")
        if registration.status == RegistrationStatus.ATTENDED and registration.check_in_time:
            return registration
        if registration.registration_type == RegistrationType.WAITLIST:
            raise InvalidStateError("Waitlisted registrations cannot check in")

        result = evaluate_registration_transition(registration, RegistrationStatus.ATTENDED)
        if not result.allowed:
            raise InvalidStateError(result.reason)

        registration.check_in()
        self.events.record_attendee(event.id)
        self.registrations.commit()
        logger.info(f"Registration {registration.id} checked in to event {event.id}")
        return registration

    def check_out_attendee(self, identifier) -> Registration:
        registration = self.registrations.get_by_identifier(identifier)
        if not registration:
            raise NotFoundError("Registration not found")
        if registration.status != RegistrationStatus.ATTENDED or not registration.check_in_time:
            raise InvalidStateError("Attendee has not checked in")
        if registration.check_out_time:
            return registration

        registration.check_out()
        self.registrations.commit()
        return registration

    def submit_event_feedback(self, event_id: int, feedback_data: dict, user_id) -> Registration:
        feedback = validators.validate_feedback(feedback_data)
        registration = self.registrations.find_for_user_feedback(event_id, user_id)
        if not registration:
            raise NotFoundError("No active registration found for this event")
        if registration.feedback_submitted:
            raise InvalidStateError("Feedback has already been submitted for this registration")

        registration.submit_feedback(feedback)

        event = self.events.get(event_id)
        rated = self.registrations.find_rated(event_id)
        if event and rated:
            total = sum(r.feedback_rating for r in rated)
            event.average_rating = round(total / len(rated), 1)
            event.reviews_count = len(rated)
        self.registrations.commit()
        logger.info(f"Feedback recorded for registration {registration.id}")
        return registration

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def get_event_registrations(self, event_id: int, options: dict | None = None):
        options = options or {}
        event = self.get_event(event_id)
        page, limit = validators.parse_pagination(options, default_limit=50)

        status = options.get("status")
        registration_type = options.get("registration_type")
        result = self.registrations.find_by_event(
            event.id,
            status=parse_enum(RegistrationStatus, status, "status") if status else None,
            registration_type=(
                parse_enum(RegistrationType, registration_type, "registration_type")
                if registration_type
                else None
            ),
            page=page,
            per_page=limit,
            sort=options.get("sort", "desc"),
        )
        return {"registrations": result.items, "pagination": _pagination(result)}

    def get_user_registrations(self, user_id: int, options: dict | None = None):
        options = options or {}
        page, limit = validators.parse_pagination(options)
        upcoming = validators.parse_bool(options.get("upcoming", False))
        past = validators.parse_bool(options.get("past", False))

        event_ids = None
        if upcoming or past:
            timeframe = {"upcoming": True} if upcoming else {"past": True}
            event_ids = [
                e.id
                for e in self.events.find_all(
                    {"status": [EventStatus.PUBLISHED, EventStatus.COMPLETED], **timeframe}
                )
            ]

        status = options.get("status")
        result = self.registrations.find_by_user(
            user_id,
            status=parse_enum(RegistrationStatus, status, "status") if status else None,
            event_ids=event_ids,
            page=page,
            per_page=limit,
            ascending=upcoming,
        )
        return {"registrations": result.items, "pagination": _pagination(result)}

    def get_registration_calendar_links(
        self, registration_id: int, acting_user_id=None, is_admin=False
    ):
        registration = self.registrations.get(registration_id)
        if not registration:
            raise NotFoundError("Registration not found")
        if not is_admin and (
            acting_user_id is None or registration.user_id != int(acting_user_id)
        ):
            raise PermissionDeniedError("You do not have permission to view this registration")

        event = registration.event
        if not event:
            raise NotFoundError("Event not found")

        ical = self.calendar.generate_event_icalendar(event)
        return {
            "google_calendar_link": self.calendar.generate_google_calendar_link(event),
            "outlook_link": self.calendar.generate_outlook_link(event),
            "ical_data": base64.b64encode(ical).decode("ascii"),
            "event": {
                "title": event.title,
                "start_date": as_utc(event.start_date).isoformat(),
                "end_date": as_utc(event.end_date).isoformat(),
            },
        }

    def get_event_statistics(self, event_id: int) -> dict:
        event = self.get_event(event_id)
        registrations = self.registrations.find_all_for_event(event.id)
        by_status = Counter(r.status for r in registrations)

        stats = {
            "total_registrations": len(registrations),
            "pending": by_status[RegistrationStatus.PENDING],
            "confirmed": by_status[RegistrationStatus.CONFIRMED],
            "attended": by_status[RegistrationStatus.ATTENDED],
            "cancelled": by_status[RegistrationStatus.CANCELLED],
            "no_show": by_status[RegistrationStatus.NO_SHOW],
            "waitlist": sum(
                1 for r in registrations if r.registration_type == RegistrationType.WAITLIST
            ),
            "average_rating": event.average_rating or 0,
            "reviews_count": event.reviews_count or 0,
        }
        stats["attendance_rate"] = (
            round(stats["attended"] / stats["confirmed"] * 100) if stats["confirmed"] else 0
        )

        sources = Counter(
            (r.marketing or {}).get("referral_source")
            for r in registrations
            if (r.marketing or {}).get("referral_source")
        )
        stats["top_sources"] = [
            {"source": source, "count": count} for source, count in sources.most_common(5)
        ]
        return stats

    # ------------------------------------------------------------------
    # Notifications (best effort: failures are logged, never raised)
    # ------------------------------------------------------------------

    def _recipient(self, registration: Registration) -> dict:
        return {
            "registration_id": registration.id,
            "name": registration.first_name,
            "email": registration.contact_email,
        }

    def _event_email_data(self, event: Event, recipient: dict) -> dict:
        return {
            "recipient_name": recipient["name"],
            "recipient_email": recipient["email"],
            "event_title": event.title,
            "event_date": self.calendar.format_event_date(event, "full"),
            "event_location": describe_location(event),
            "registration_id": recipient["registration_id"],
        }

    def _with_calendar(self, event: Event, data: dict, filename: str) -> dict:
        data["google_calendar_link"] = self.calendar.generate_google_calendar_link(event)
        data["outlook_link"] = self.calendar.generate_outlook_link(event)
        data["attachments"] = [
            {
                "filename": filename,
                "content_type": "text/calendar",
                "content": self.calendar.generate_event_icalendar(event),
            }
        ]
        return data

    def _send_registration_confirmation(self, registration: Registration, event: Event):
        try:
            is_waitlist = registration.registration_type == RegistrationType.WAITLIST
            if is_waitlist:
                template = "event-waitlist"
                subject = f"You're on the waitlist: {event.title}"
            else:
                template = "event-registration"
                subject = f"Registration Confirmed: {event.title}"

            data = self._event_email_data(event, self._recipient(registration))
            data["confirmation_code"] = registration.confirmation_code
            data["is_waitlist"] = is_waitlist
            if not is_waitlist:
                self._with_calendar(event, data, "event.ics")

            self.notifier.send_templated_email(
                registration.contact_email, subject, template, data
            )
            registration.confirmation_sent = True
            registration.confirmation_date = utcnow()
            self.registrations.commit()
        except Exception as e:
            logger.error(f"Error sending registration confirmation email: {e}", exc_info=True)
            self.registrations.rollback()

    def _send_waitlist_promotion(self, registration: Registration, event: Event):
        try:
            data = self._event_email_data(event, self._recipient(registration))
            data["confirmation_code"] = registration.confirmation_code
            self._with_calendar(event, data, "event.ics")
            self.notifier.send_templated_email(
                registration.contact_email,
                f"Good news! You're registered for: {event.title}",
                "event-waitlist-confirmed",
                data,
            )
        except Exception as e:
            logger.error(f"Error sending waitlist confirmation email: {e}", exc_info=True)

    def _notify_cancellation(self, event: Event, recipients: list[dict], reason: str):
        subject = f"Event Cancelled: {event.title}"
        for recipient in recipients:
            try:
                data = self._event_email_data(event, recipient)
                data["cancellation_reason"] = reason
                self.notifier.send_templated_email(
                    recipient["email"], subject, "event-cancellation", data
                )
            except Exception as e:
                logger.error(
                    f"Error notifying {recipient['email']} of cancellation: {e}", exc_info=True
                )

    def _notify_schedule_change(self, event: Event):
        subject = f"Event Update: {event.title} - Schedule Changed"
        try:
            registrations = self.registrations.find_for_notification(
                event.id, HOLDING_REGISTRATION_STATUSES
            )
        except Exception as e:
            logger.error(f"Error loading registrants of event {event.id}: {e}", exc_info=True)
            return

        for registration in registrations:
            try:
                data = self._event_email_data(event, self._recipient(registration))
                # each recipient gets a freshly generated calendar file
                self._with_calendar(event, data, "event_updated.ics")
                self.notifier.send_templated_email(
                    registration.contact_email, subject, "event-schedule-change", data
                )
            except Exception as e:
                logger.error(
                    f"Error notifying {registration.contact_email} of schedule change: {e}",
                    exc_info=True,
                )


def build_event_service(notifier=None, storage=None) -> EventService:
    """Wire an EventService with the default repositories for the current app."""
    config = current_app.config
    events = EventRepository()
    registrations = RegistrationRepository()
    calendar = CalendarService.from_config(config, events, registrations)
    return EventService(
        events,
        registrations,
        UserRepository(),
        notifier or current_app.extensions.get("eventhub.notifier") or EmailNotifier(),
        calendar,
        storage or LocalFileStorage(config.get("UPLOAD_FOLDER", "uploads")),
    )

