"""Pytest configuration and fixtures."""

import itertools
from datetime import timedelta

import pytest
from flask_jwt_extended import create_access_token
from werkzeug.security import generate_password_hash

from eventhub import create_app
from eventhub.extensions import db
from eventhub.models import Event, User
from eventhub.models.enums import (
    EventFormat,
    EventStatus,
    EventType,
    UserRole,
    Visibility,
)
from eventhub.services.event_service import build_event_service
from eventhub.utils.dates import utcnow


class FakeNotifier:
    """Records outgoing emails instead of sending them."""

    def __init__(self):
        self.sent = []

    def send_templated_email(self, to_address, subject, template_name, data):
        self.sent.append(
            {"to": to_address, "subject": subject, "template": template_name, "data": data}
        )

    def recipients(self, template_name):
        return [m["to"] for m in self.sent if m["template"] == template_name]


@pytest.fixture
def app(tmp_path):
    app = create_app(
        {
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": "sqlite://",
            "RATELIMIT_ENABLED": False,
            "JWT_SECRET_KEY": "test-secret-key-that-is-long-enough-for-hs256",
            "UPLOAD_FOLDER": str(tmp_path),
            "SITE_BASE_URL": "https://events.example.com",
        }
    )
    app.extensions["eventhub.notifier"] = FakeNotifier()

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def notifier(app):
    return app.extensions["eventhub.notifier"]


@pytest.fixture
def event_service(app):
    return build_event_service()


@pytest.fixture
def calendar(event_service):
    return event_service.calendar


@pytest.fixture
def make_user(app):
    counter = itertools.count(1)

    def factory(role=UserRole.USER, email=None, first_name="Test", last_name="User"):
        n = next(counter)
        user = User(
            email=email or f"user{n}@example.com",
            password=generate_password_hash("password123"),
            first_name=first_name,
            last_name=last_name,
            role=role,
        )
        db.session.add(user)
        db.session.commit()
        return user

    return factory


@pytest.fixture
def admin(make_user):
    return make_user(
        role=UserRole.ADMIN, email="admin@example.com", first_name="Ada", last_name="Admin"
    )


@pytest.fixture
def make_event(app, admin):
    counter = itertools.count(1)

    def factory(**overrides):
        n = next(counter)
        start = overrides.pop("start_date", utcnow() + timedelta(days=7))
        end = overrides.pop("end_date", start + timedelta(hours=2))
        values = {
            "title": f"Test Event {n}",
            "slug": f"test-event-{n}",
            "type": EventType.WORKSHOP,
            "format": EventFormat.ONLINE,
            "summary": "A test event",
            "description": "<p>Hands-on session</p>",
            "start_date": start,
            "end_date": end,
            "timezone": "UTC",
            "location": {"online": {"platform": "Zoom"}},
            "status": EventStatus.PUBLISHED,
            "visibility": Visibility.PUBLIC,
            "registration_required": True,
            "max_attendees": 10,
            "waitlist_enabled": False,
            "created_by": admin.id,
        }
        values.update(overrides)
        event = Event(**values)
        db.session.add(event)
        db.session.commit()
        return event

    return factory


@pytest.fixture
def auth_headers(app):
    def headers(user):
        token = create_access_token(identity=str(user.id))
        return {"Authorization": f"Bearer {token}"}

    return headers


@pytest.fixture
def guest():
    def payload(email="guest@example.com", first_name="Grace", last_name="Guest", **extra):
        return {
            "contact_info": {"first_name": first_name, "last_name": last_name, "email": email},
            **extra,
        }

    return payload
