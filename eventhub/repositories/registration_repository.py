from sqlalchemy import update

from eventhub.extensions import db
from eventhub.models import Event, Registration
from eventhub.models.enums import (
    ACTIVE_REGISTRATION_STATUSES,
    HOLDING_REGISTRATION_STATUSES,
    RegistrationStatus,
    RegistrationType,
)
from .base_repository import BaseRepository


class RegistrationRepository(BaseRepository):
    def get(self, registration_id: int) -> Registration | None:
        return db.session.get(Registration, registration_id)

    def get_by_confirmation_code(self, code: str) -> Registration | None:
        return Registration.query.filter_by(confirmation_code=code.upper()).first()

    def get_by_identifier(self, identifier) -> Registration | None:
        """Look a registration up by primary key or confirmation code."""
        if isinstance(identifier, int) or str(identifier).isdigit():
            registration = self.get(int(identifier))
            if registration:
                return registration
        return self.get_by_confirmation_code(str(identifier))

    def create(self, registration: Registration) -> Registration:
        return self.add(registration)

    def find_active_for_user(self, event_id: int, user_id: int) -> Registration | None:
        return Registration.query.filter(
            Registration.event_id == event_id,
            Registration.user_id == user_id,
            Registration.status.in_(ACTIVE_REGISTRATION_STATUSES),
        ).first()

    def find_active_for_email(self, event_id: int, email: str) -> Registration | None:
        return Registration.query.filter(
            Registration.event_id == event_id,
            Registration.contact_email == email.strip().lower(),
            Registration.status.in_(ACTIVE_REGISTRATION_STATUSES),
        ).first()

    def find_for_user_feedback(self, event_id: int, user_id: int) -> Registration | None:
        return Registration.query.filter(
            Registration.event_id == event_id,
            Registration.user_id == user_id,
            Registration.status.in_(
                [RegistrationStatus.CONFIRMED, RegistrationStatus.ATTENDED]
            ),
        ).first()

    def _event_query(self, event_id, status=None, registration_type=None):
        query = Registration.query.filter(Registration.event_id == event_id)
        if status:
            query = query.filter(Registration.status == status)
        if registration_type:
            query = query.filter(Registration.registration_type == registration_type)
        return query

    def find_by_event(
        self, event_id, status=None, registration_type=None, page=1, per_page=50, sort="desc"
    ):
        ordering = (
            Registration.created_at.asc() if sort == "asc" else Registration.created_at.desc()
        )
        return (
            self._event_query(event_id, status, registration_type)
            .order_by(ordering, Registration.id.asc())
            .paginate(page=page, per_page=per_page, error_out=False)
        )

    def find_all_for_event(self, event_id: int) -> list[Registration]:
        return self._event_query(event_id).order_by(Registration.created_at.asc()).all()

    def count_by_event(self, event_id, status=None, registration_type=None) -> int:
        return self._event_query(event_id, status, registration_type).count()

    def find_by_user(
        self, user_id, status=None, event_ids=None, page=1, per_page=10, ascending=False
    ):
        query = Registration.query.join(Event, Registration.event_id == Event.id).filter(
            Registration.user_id == user_id
        )
        if status:
            query = query.filter(Registration.status == status)
        if event_ids is not None:
            query = query.filter(Registration.event_id.in_(event_ids))
        ordering = Event.start_date.asc() if ascending else Event.start_date.desc()
        return query.order_by(ordering, Registration.id.asc()).paginate(
            page=page, per_page=per_page, error_out=False
        )

    def find_event_ids_for_user(self, user_id: int, statuses) -> list[int]:
        rows = (
            db.session.query(Registration.event_id)
            .filter(Registration.user_id == user_id, Registration.status.in_(statuses))
            .distinct()
            .all()
        )
        return [row.event_id for row in rows]

    def find_waitlisted(self, event_id: int, limit: int | None = None) -> list[Registration]:
        """Waitlist registrations still queued for a seat, oldest first."""
        query = Registration.query.filter(
            Registration.event_id == event_id,
            Registration.registration_type == RegistrationType.WAITLIST,
            Registration.status.in_(HOLDING_REGISTRATION_STATUSES),
        ).order_by(Registration.created_at.asc(), Registration.id.asc())
        if limit is not None:
            query = query.limit(limit)
        return query.all()

    def find_for_notification(self, event_id: int, statuses) -> list[Registration]:
        return (
            Registration.query.filter(
                Registration.event_id == event_id, Registration.status.in_(statuses)
            )
            .order_by(Registration.created_at.asc())
            .all()
        )

    def bulk_cancel(self, event_id: int, statuses) -> int:
        result = db.session.execute(
            update(Registration)
            .where(Registration.event_id == event_id, Registration.status.in_(statuses))
            .values(status=RegistrationStatus.CANCELLED)
            .execution_options(synchronize_session=False)
        )
        db.session.expire_all()
        return result.rowcount

    def find_rated(self, event_id: int) -> list[Registration]:
        return Registration.query.filter(
            Registration.event_id == event_id,
            Registration.feedback_submitted.is_(True),
            Registration.feedback_rating > 0,
        ).all()
