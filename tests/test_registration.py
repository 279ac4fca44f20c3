"""Tests for event registration and capacity handling."""

from datetime import timedelta
from decimal import Decimal

import pytest

from eventhub.exceptions import (
    CapacityError,
    DuplicateRegistrationError,
    InvalidStateError,
    MissingFieldsError,
    NotFoundError,
    ValidationError,
)
from eventhub.extensions import db
from eventhub.models import Event, Registration
from eventhub.models.enums import (
    EventStatus,
    RegistrationStatus,
    RegistrationType,
)
from eventhub.services.event_service import build_event_service
from eventhub.utils.dates import utcnow


def test_user_registration_is_confirmed(event_service, make_event, make_user, notifier):
    """A signed-in user takes a seat and is confirmed straight away."""
    event = make_event()
    user = make_user(first_name="Lin", last_name="Lee")

    registration = event_service.register_for_event(event.id, {}, user.id)

    assert registration.status == RegistrationStatus.CONFIRMED
    assert registration.registration_type == RegistrationType.STANDARD
    assert registration.contact_info["first_name"] == "Lin"
    assert registration.contact_email == user.email
    assert len(registration.confirmation_code) == 8
    assert registration.confirmation_code == registration.confirmation_code.upper()
    assert event.registered_attendees == 1
    assert event.registrations_count == 1

    assert notifier.recipients("event-registration") == [user.email]
    attachments = notifier.sent[0]["data"]["attachments"]
    assert attachments[0]["filename"] == "event.ics"
    assert registration.confirmation_sent is True


def test_guest_registration_is_pending(event_service, make_event, guest):
    event = make_event()

    registration = event_service.register_for_event(
        event.id, guest(email="Grace@Example.COM")
    )

    assert registration.user_id is None
    assert registration.status == RegistrationStatus.PENDING
    assert registration.contact_email == "grace@example.com"
    assert event.registered_attendees == 1


def test_full_event_without_waitlist_is_rejected(event_service, make_event, guest):
    event = make_event(max_attendees=1)
    event_service.register_for_event(event.id, guest(email="a@example.com"))

    with pytest.raises(CapacityError, match="This event is at capacity"):
        event_service.register_for_event(event.id, guest(email="b@example.com"))

    assert event.registered_attendees == 1
    assert event_service.registrations.count_by_event(event.id) == 1


def test_full_event_falls_back_to_waitlist(event_service, make_event, guest, notifier):
    event = make_event(max_attendees=1, waitlist_enabled=True)
    event_service.register_for_event(event.id, guest(email="a@example.com"))

    waitlisted = event_service.register_for_event(event.id, guest(email="b@example.com"))

    assert waitlisted.registration_type == RegistrationType.WAITLIST
    assert waitlisted.is_waitlisted
    assert event.registered_attendees == 1
    assert event.waitlist_current_size == 1
    assert event.registrations_count == 2

    assert notifier.recipients("event-waitlist") == ["b@example.com"]
    assert "attachments" not in notifier.sent[-1]["data"]


def test_waitlist_max_size_is_enforced(event_service, make_event, guest):
    event = make_event(max_attendees=1, waitlist_enabled=True, waitlist_max_size=1)
    event_service.register_for_event(event.id, guest(email="a@example.com"))
    event_service.register_for_event(event.id, guest(email="b@example.com"))

    with pytest.raises(CapacityError, match="The waitlist for this event is full"):
        event_service.register_for_event(event.id, guest(email="c@example.com"))

    assert event.waitlist_current_size == 1


def test_unlimited_event_never_fills(event_service, make_event, guest):
    event = make_event(max_attendees=None)

    for n in range(5):
        event_service.register_for_event(event.id, guest(email=f"g{n}@example.com"))

    assert event.registered_attendees == 5
    assert event.available_spots is None
    assert not event.is_at_capacity


def test_duplicate_user_registration(event_service, make_event, make_user):
    event = make_event()
    user = make_user()
    event_service.register_for_event(event.id, {}, user.id)

    with pytest.raises(DuplicateRegistrationError, match="already registered"):
        event_service.register_for_event(event.id, {}, user.id)

    assert event.registered_attendees == 1


def test_duplicate_guest_email_is_case_insensitive(event_service, make_event, guest):
    event = make_event()
    event_service.register_for_event(event.id, guest(email="Grace@Example.com"))

    with pytest.raises(
        DuplicateRegistrationError, match="email address is already registered"
    ):
        event_service.register_for_event(event.id, guest(email="grace@example.com"))


def test_user_can_register_again_after_cancelling(event_service, make_event, make_user):
    event = make_event()
    user = make_user()
    first = event_service.register_for_event(event.id, {}, user.id)
    event_service.cancel_registration(first.id, user.id)

    second = event_service.register_for_event(event.id, {}, user.id)

    assert second.id != first.id
    assert second.status == RegistrationStatus.CONFIRMED
    assert event.registered_attendees == 1


def test_requested_waitlist_type_is_ignored_when_seats_are_free(
    event_service, make_event, guest
):
    event = make_event(waitlist_enabled=True)

    registration = event_service.register_for_event(
        event.id, guest(registration_type="waitlist")
    )

    assert registration.registration_type == RegistrationType.STANDARD
    assert event.waitlist_current_size == 0


def test_vip_registration_type_is_kept(event_service, make_event, guest):
    event = make_event()

    registration = event_service.register_for_event(event.id, guest(registration_type="vip"))

    assert registration.registration_type == RegistrationType.VIP


def test_invalid_registration_type(event_service, make_event, guest):
    event = make_event()

    with pytest.raises(ValidationError, match="registration_type"):
        event_service.register_for_event(event.id, guest(registration_type="gold"))


class TestFees:
    def paid_event(self, make_event, deadline):
        return make_event(
            is_free=False,
            price=Decimal("50.00"),
            currency="EUR",
            early_bird_available=True,
            early_bird_price=Decimal("30.00"),
            early_bird_deadline=deadline,
        )

    def test_early_bird_price_before_deadline(self, event_service, make_event, guest):
        event = self.paid_event(make_event, utcnow() + timedelta(days=1))

        registration = event_service.register_for_event(event.id, guest())

        assert registration.amount == Decimal("30.00")
        assert registration.currency == "EUR"
        assert registration.is_paid is False

    def test_standard_price_after_deadline(self, event_service, make_event, guest):
        event = self.paid_event(make_event, utcnow() - timedelta(days=1))

        registration = event_service.register_for_event(event.id, guest())

        assert registration.amount == Decimal("50.00")

    def test_waitlist_pays_standard_price(self, event_service, make_event):
        event = self.paid_event(make_event, utcnow() + timedelta(days=1))

        fee = event_service.calculate_registration_fee(event, RegistrationType.WAITLIST)

        assert fee == Decimal("50.00")

    def test_free_event_costs_nothing(self, event_service, make_event, guest):
        event = make_event(is_free=True, price=Decimal("50.00"))

        assert event_service.calculate_registration_fee(
            event, RegistrationType.STANDARD
        ) == Decimal("0")
        registration = event_service.register_for_event(event.id, guest())
        assert registration.amount is None


class TestPreconditions:
    def test_unknown_event(self, event_service, guest):
        with pytest.raises(NotFoundError):
            event_service.register_for_event(999, guest())

    def test_unpublished_event(self, event_service, make_event, guest):
        event = make_event(status=EventStatus.DRAFT)

        with pytest.raises(InvalidStateError, match="not available"):
            event_service.register_for_event(event.id, guest())

    def test_registration_not_required(self, event_service, make_event, guest):
        event = make_event(registration_required=False)

        with pytest.raises(InvalidStateError, match="not required"):
            event_service.register_for_event(event.id, guest())

    def test_registration_window_closed(self, event_service, make_event, guest):
        now = utcnow()
        event = make_event(
            registration_open=now - timedelta(days=2),
            registration_close=now - timedelta(days=1),
        )

        with pytest.raises(InvalidStateError, match="closed"):
            event_service.register_for_event(event.id, guest())

    def test_event_already_started(self, event_service, make_event, guest):
        now = utcnow()
        event = make_event(start_date=now - timedelta(hours=1), end_date=now + timedelta(hours=1))

        with pytest.raises(InvalidStateError, match="closed"):
            event_service.register_for_event(event.id, guest())

    def test_capacity_is_checked_before_contact_details(self, event_service, make_event, guest):
        event = make_event(max_attendees=1)
        event_service.register_for_event(event.id, guest(email="a@example.com"))

        with pytest.raises(CapacityError):
            event_service.register_for_event(event.id, {"contact_info": {}})

    def test_guest_must_provide_contact_details(self, event_service, make_event):
        event = make_event()

        with pytest.raises(MissingFieldsError) as excinfo:
            event_service.register_for_event(
                event.id, {"contact_info": {"email": "x@example.com"}}
            )

        assert excinfo.value.fields == ["first_name", "last_name"]
        assert event.registered_attendees == 0

    def test_guest_email_must_be_valid(self, event_service, make_event, guest):
        event = make_event()

        with pytest.raises(ValidationError, match="Invalid email"):
            event_service.register_for_event(event.id, guest(email="not-an-email"))

    def test_unknown_user(self, event_service, make_event):
        event = make_event()

        with pytest.raises(NotFoundError, match="User not found"):
            event_service.register_for_event(event.id, {}, 424242)


class TestLostCapacityRace:
    """The capacity check passed on a stale read; the guarded update decides."""

    @pytest.fixture
    def stale_capacity(self, monkeypatch):
        monkeypatch.setattr(Event, "is_at_capacity", property(lambda self: False))

    def test_rejected_without_waitlist(self, event_service, make_event, guest, stale_capacity):
        event = make_event(max_attendees=1)
        event_service.register_for_event(event.id, guest(email="a@example.com"))

        with pytest.raises(CapacityError, match="This event is at capacity"):
            event_service.register_for_event(event.id, guest(email="b@example.com"))

        assert event.registered_attendees == 1
        assert event.registrations_count == 1
        assert event_service.registrations.count_by_event(event.id) == 1

    def test_falls_back_to_waitlist(self, event_service, make_event, guest, stale_capacity):
        event = make_event(max_attendees=1, waitlist_enabled=True)
        event_service.register_for_event(event.id, guest(email="a@example.com"))

        late = event_service.register_for_event(event.id, guest(email="b@example.com"))

        assert late.registration_type == RegistrationType.WAITLIST
        assert event.registered_attendees == 1
        assert event.waitlist_current_size == 1

    def test_full_waitlist_after_lost_race(
        self, event_service, make_event, guest, stale_capacity
    ):
        event = make_event(max_attendees=1, waitlist_enabled=True, waitlist_max_size=1)
        event_service.register_for_event(event.id, guest(email="a@example.com"))
        event_service.register_for_event(event.id, guest(email="b@example.com"))

        with pytest.raises(CapacityError, match="The waitlist for this event is full"):
            event_service.register_for_event(event.id, guest(email="c@example.com"))

        assert event.registered_attendees == 1
        assert event.waitlist_current_size == 1
        assert event_service.registrations.count_by_event(event.id) == 2


class BrokenNotifier:
    def send_templated_email(self, to_address, subject, template_name, data):
        raise RuntimeError("smtp down")


class TestNotificationFailures:
    @pytest.fixture
    def service(self, app):
        return build_event_service(notifier=BrokenNotifier())

    def test_registration_is_kept(self, service, make_event, guest):
        event = make_event()

        registration = service.register_for_event(event.id, guest())
        registration_id = registration.id
        db.session.expire_all()

        stored = db.session.get(Registration, registration_id)
        assert stored.status == RegistrationStatus.PENDING
        assert stored.confirmation_sent is False
        assert event.registered_attendees == 1

    def test_promotion_is_kept(self, service, make_event, guest):
        event = make_event(max_attendees=1, waitlist_enabled=True)
        first = service.register_for_event(event.id, guest(email="a@example.com"))
        queued = service.register_for_event(event.id, guest(email="b@example.com"))

        service.update_registration_status(first.id, "cancelled")
        db.session.expire_all()

        assert queued.registration_type == RegistrationType.STANDARD
        assert queued.status == RegistrationStatus.CONFIRMED
        assert event.registered_attendees == 1
        assert event.waitlist_current_size == 0

    def test_event_cancellation_is_kept(self, service, make_event, make_user, admin):
        event = make_event()
        registration = service.register_for_event(event.id, {}, make_user().id)

        service.change_event_status(event.id, "cancelled", {"reason": "Storm"}, admin.id)
        db.session.expire_all()

        assert event.status == EventStatus.CANCELLED
        assert registration.status == RegistrationStatus.CANCELLED
