"""HTTP-level tests for the events and user blueprints."""

from eventhub.extensions import db
from eventhub.models import Registration
from eventhub.models.enums import EventStatus, Visibility
from eventhub.utils.dates import parse_datetime


def create_payload(**overrides):
    payload = {
        "title": "Route Summit",
        "type": "meetup",
        "format": "online",
        "summary": "Meet the team",
        "description": "Evening meetup",
        "schedule": {"start_date": "2031-09-01T18:00:00Z", "end_date": "2031-09-01T20:00:00Z"},
    }
    payload.update(overrides)
    return payload


class TestAdminGate:
    def test_requires_token(self, client):
        response = client.post("/api/events", json=create_payload())

        assert response.status_code == 401

    def test_rejects_regular_user(self, client, make_user, auth_headers):
        response = client.post(
            "/api/events", json=create_payload(), headers=auth_headers(make_user())
        )

        assert response.status_code == 403
        assert response.get_json()["error"] == "Admin privileges required"

    def test_admin_creates_event(self, client, admin, auth_headers):
        response = client.post("/api/events", json=create_payload(), headers=auth_headers(admin))

        assert response.status_code == 201
        body = response.get_json()
        assert body["slug"] == "route-summit"
        assert body["status"] == "draft"
        assert body["schedule"]["duration"] == 120

    def test_missing_fields(self, client, admin, auth_headers):
        response = client.post(
            "/api/events", json={"title": "Half an event"}, headers=auth_headers(admin)
        )

        assert response.status_code == 400
        body = response.get_json()
        assert body["error"] == "Missing required fields"
        assert body["missing_fields"] == ["type", "format", "summary", "description", "schedule"]

    def test_schedule_conflict(self, client, admin, auth_headers, make_event):
        make_event(
            start_date=parse_datetime("2031-09-01T19:00:00Z"),
            end_date=parse_datetime("2031-09-01T21:00:00Z"),
        )

        response = client.post(
            "/api/events",
            json=create_payload(check_conflicts=True),
            headers=auth_headers(admin),
        )

        assert response.status_code == 409
        assert len(response.get_json()["conflicts"]) == 1


class TestPublicEndpoints:
    def test_unknown_event(self, client):
        response = client.get("/api/events/999")

        assert response.status_code == 404
        assert response.get_json() == {"error": "Event not found"}

    def test_listing_hides_private_events_from_visitors(self, client, make_event):
        public = make_event()
        make_event(visibility=Visibility.PRIVATE)
        make_event(status=EventStatus.DRAFT)

        response = client.get("/api/events?visibility=private&status=draft")

        body = response.get_json()
        assert [e["id"] for e in body["events"]] == [public.id]
        assert body["pagination"]["total"] == 1

    def test_event_by_slug_counts_views(self, client, make_event):
        event = make_event(slug="open-day")
        event_id = event.id

        response = client.get("/api/events/open-day")

        assert response.status_code == 200
        assert response.get_json()["id"] == event_id
        assert "is_user_registered" not in response.get_json()
        db.session.expire_all()
        assert event.views == 1

    def test_download_calendar(self, client, make_event):
        event = make_event(slug="ics-night")

        response = client.get(f"/api/events/{event.id}/calendar")

        assert response.status_code == 200
        assert response.mimetype == "text/calendar"
        assert 'filename="ics-night.ics"' in response.headers["Content-Disposition"]
        assert b"METHOD:PUBLISH" in response.data

    def test_month_calendar(self, client, make_event):
        event = make_event(
            start_date=parse_datetime("2031-10-05T10:00:00Z"),
            end_date=parse_datetime("2031-10-05T12:00:00Z"),
        )

        response = client.get("/api/events/calendar/2031/10")

        body = response.get_json()
        assert body["month"] == 10
        assert [e["id"] for e in body["events"]["5"]] == [event.id]

    def test_check_conflicts(self, client, make_event):
        event = make_event()

        response = client.post(
            "/api/events/check-conflicts",
            json={
                "start_date": event.start_date.isoformat(),
                "end_date": event.end_date.isoformat(),
            },
        )

        body = response.get_json()
        assert body["has_conflicts"] is True
        assert body["conflicts"][0]["id"] == event.id

    def test_check_conflicts_rejects_bad_dates(self, client):
        response = client.post(
            "/api/events/check-conflicts",
            json={"start_date": "2031-01-02T00:00:00Z", "end_date": "2031-01-01T00:00:00Z"},
        )

        assert response.status_code == 400


class TestRegistrationEndpoints:
    def guest_body(self, email="guest@example.com"):
        return {"contact_info": {"first_name": "Grace", "last_name": "Guest", "email": email}}

    def test_guest_registration(self, client, make_event):
        event = make_event()

        response = client.post(f"/api/events/{event.id}/register", json=self.guest_body())

        assert response.status_code == 201
        body = response.get_json()
        assert body["message"] == "Registration successful"
        assert body["registration"]["status"] == "pending"
        assert body["registration"]["confirmation_details"]["confirmation_code"]

    def test_duplicate_registration_conflict(self, client, make_event):
        event = make_event()
        client.post(f"/api/events/{event.id}/register", json=self.guest_body())

        response = client.post(f"/api/events/{event.id}/register", json=self.guest_body())

        assert response.status_code == 409

    def test_full_event(self, client, make_event):
        event = make_event(max_attendees=1)
        client.post(f"/api/events/{event.id}/register", json=self.guest_body("a@example.com"))

        response = client.post(
            f"/api/events/{event.id}/register", json=self.guest_body("b@example.com")
        )

        assert response.status_code == 409
        assert response.get_json() == {"error": "This event is at capacity"}

    def test_waitlisted_registration_message(self, client, make_event):
        event = make_event(max_attendees=1, waitlist_enabled=True)
        client.post(f"/api/events/{event.id}/register", json=self.guest_body("a@example.com"))

        response = client.post(
            f"/api/events/{event.id}/register", json=self.guest_body("b@example.com")
        )

        assert response.status_code == 201
        assert response.get_json()["message"] == "Added to the waitlist"

    def test_signed_in_user_registration(self, client, make_event, make_user, auth_headers):
        event = make_event()
        user = make_user()

        response = client.post(
            f"/api/events/{event.id}/register-user", json={}, headers=auth_headers(user)
        )

        assert response.status_code == 201
        assert response.get_json()["registration"]["status"] == "confirmed"

        mine = client.get("/api/events/my-registrations", headers=auth_headers(user))
        registrations = mine.get_json()["registrations"]
        assert [r["event"]["id"] for r in registrations] == [event.id]

    def test_register_user_requires_token(self, client, make_event):
        event = make_event()

        response = client.post(f"/api/events/{event.id}/register-user", json={})

        assert response.status_code == 401

    def test_cancel_someone_elses_registration(
        self, client, make_event, make_user, auth_headers
    ):
        event = make_event()
        owner = make_user()
        registered = client.post(
            f"/api/events/{event.id}/register-user", json={}, headers=auth_headers(owner)
        )
        registration_id = registered.get_json()["registration"]["id"]

        response = client.post(
            f"/api/events/registrations/{registration_id}/cancel",
            headers=auth_headers(make_user()),
        )

        assert response.status_code == 403
        db.session.expire_all()
        assert db.session.get(Registration, registration_id).status.value == "confirmed"

    def test_feedback(self, client, make_event, make_user, auth_headers):
        event = make_event()
        user = make_user()
        client.post(f"/api/events/{event.id}/register-user", json={}, headers=auth_headers(user))

        response = client.post(
            f"/api/events/{event.id}/feedback",
            json={"overall_rating": 5},
            headers=auth_headers(user),
        )

        assert response.status_code == 200
        assert response.get_json()["registration"]["feedback"]["overall_rating"] == 5


class TestAdminEndpoints:
    def test_invalid_status(self, client, admin, auth_headers, make_event):
        event = make_event()

        response = client.patch(
            f"/api/events/{event.id}/status",
            json={"status": "finished"},
            headers=auth_headers(admin),
        )

        assert response.status_code == 400
        assert "Invalid status" in response.get_json()["error"]

    def test_cancel_event(self, client, admin, auth_headers, make_event):
        event = make_event()

        response = client.patch(
            f"/api/events/{event.id}/status",
            json={"status": "cancelled", "reason": "Speaker ill"},
            headers=auth_headers(admin),
        )

        assert response.status_code == 200
        assert response.get_json()["status"] == "cancelled"
        assert response.get_json()["cancellation_reason"] == "Speaker ill"

    def test_delete_with_registrations(self, client, admin, auth_headers, make_event):
        event = make_event()
        client.post(
            f"/api/events/{event.id}/register",
            json={"contact_info": {"first_name": "A", "last_name": "B", "email": "a@b.io"}},
        )

        response = client.delete(f"/api/events/{event.id}", headers=auth_headers(admin))

        assert response.status_code == 400
        assert "Cancel the event instead" in response.get_json()["error"]

    def test_statistics_and_registrations(self, client, admin, auth_headers, make_event):
        event = make_event()
        client.post(
            f"/api/events/{event.id}/register",
            json={"contact_info": {"first_name": "A", "last_name": "B", "email": "a@b.io"}},
        )

        stats = client.get(f"/api/events/{event.id}/statistics", headers=auth_headers(admin))
        listing = client.get(
            f"/api/events/{event.id}/registrations", headers=auth_headers(admin)
        )

        assert stats.get_json()["total_registrations"] == 1
        assert listing.get_json()["pagination"]["total"] == 1

    def test_process_waitlist(self, client, admin, auth_headers, make_event):
        event = make_event()

        response = client.post(
            f"/api/events/{event.id}/process-waitlist", headers=auth_headers(admin)
        )

        assert response.get_json() == {"promoted": [], "count": 0}


class TestUserEndpoints:
    def test_sign_up_and_sign_in(self, client):
        signup = client.post(
            "/api/user/signup",
            json={
                "email": "New.Person@Example.com",
                "password": "s3cret-pass",
                "first_name": "New",
                "last_name": "Person",
            },
        )
        assert signup.status_code == 201
        assert signup.get_json()["user"]["email"] == "new.person@example.com"

        signin = client.post(
            "/api/user/signin",
            json={"email": "new.person@example.com", "password": "s3cret-pass"},
        )
        assert signin.status_code == 200
        token = signin.get_json()["token"]

        validated = client.get(
            "/api/user/validate-token", headers={"Authorization": f"Bearer {token}"}
        )
        assert validated.get_json()["valid"] is True

    def test_sign_in_with_wrong_password(self, client, make_user):
        user = make_user()

        response = client.post(
            "/api/user/signin", json={"email": user.email, "password": "wrong"}
        )

        assert response.status_code == 401
        assert response.get_json()["error"] == "Invalid email or password"

    def test_sign_up_missing_fields(self, client):
        response = client.post("/api/user/signup", json={"email": "x@example.com"})

        assert response.status_code == 400
        assert response.get_json()["missing_fields"] == ["password", "first_name", "last_name"]
