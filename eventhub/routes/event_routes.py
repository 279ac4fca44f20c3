from functools import wraps

from flask import Blueprint, Response, current_app, jsonify, request
from flask_jwt_extended import get_jwt_identity, jwt_required, verify_jwt_in_request
from sqlalchemy.exc import SQLAlchemyError

from eventhub.exceptions import (
    EventHubError,
    MissingFieldsError,
    ScheduleConflictError,
    UnauthorizedError,
)
from eventhub.extensions import db, limiter
from eventhub.models.enums import EventStatus
from eventhub.repositories.user_repository import UserRepository
from eventhub.services.event_service import build_event_service
from eventhub import validators

event_bp = Blueprint("event", __name__)

PUBLIC_STATUSES = {EventStatus.PUBLISHED.value, EventStatus.COMPLETED.value}


# ----------------------------------------------------------------------
# Error handling
# ----------------------------------------------------------------------


@event_bp.errorhandler(MissingFieldsError)
def handle_missing_fields(error):
    return jsonify({"error": error.message, "missing_fields": error.fields}), error.status_code


@event_bp.errorhandler(ScheduleConflictError)
def handle_schedule_conflict(error):
    return (
        jsonify(
            {
                "error": error.message,
                "conflicts": [event.to_summary_dict() for event in error.conflicts],
            }
        ),
        error.status_code,
    )


@event_bp.errorhandler(EventHubError)
def handle_service_error(error):
    db.session.rollback()
    if error.status_code >= 403:
        current_app.logger.warning(f"{request.method} {request.path}: {error.message}")
    return jsonify({"error": error.message}), error.status_code


@event_bp.errorhandler(SQLAlchemyError)
def handle_database_error(error):
    db.session.rollback()
    current_app.logger.error(f"Database error on {request.path}: {error}", exc_info=True)
    return jsonify({"error": "An unexpected error occurred"}), 500


# ----------------------------------------------------------------------
# Helpers
# ----------------------------------------------------------------------


def current_user_id():
    identity = get_jwt_identity()
    return int(identity) if identity is not None else None


def current_user():
    user_id = current_user_id()
    return UserRepository().find_by_id(user_id) if user_id is not None else None


def optional_user():
    verify_jwt_in_request(optional=True)
    return current_user()


def admin_required(fn):
    @wraps(fn)
    @jwt_required()
    def wrapper(*args, **kwargs):
        user = current_user()
        if not user or not user.is_admin:
            raise UnauthorizedError("Admin privileges required")
        return fn(*args, **kwargs)

    return wrapper


def json_body():
    return validators.require_object(request.get_json(silent=True))


def service():
    return build_event_service()


def registration_payload():
    data = dict(json_body())
    data["ip_address"] = request.remote_addr
    data["device_info"] = request.user_agent.string[:255] if request.user_agent else None
    return data


def registration_response(registration):
    message = (
        "Added to the waitlist"
        if registration.is_waitlisted
        else "Registration successful"
    )
    return jsonify({"message": message, "registration": registration.to_dict()}), 201


# ----------------------------------------------------------------------
# Public catalogue
# ----------------------------------------------------------------------


@event_bp.route("", methods=["GET"])
def get_events():
    user = optional_user()
    filters = request.args.to_dict()
    if not (user and user.is_admin):
        filters["visibility"] = "public"
        if filters.get("status") not in PUBLIC_STATUSES:
            filters.pop("status", None)

    result = service().get_events(filters, request.args.to_dict())
    return jsonify(
        {
            "events": [event.to_dict() for event in result["events"]],
            "pagination": result["pagination"],
        }
    )


@event_bp.route("/featured/list", methods=["GET"])
def get_featured_events():
    limit = validators.parse_int(request.args.get("limit"), "limit", default=3, minimum=1)
    events = service().get_featured_events(limit)
    return jsonify({"events": [event.to_dict() for event in events]})


@event_bp.route("/upcoming/list", methods=["GET"])
def get_upcoming_events():
    events = service().get_upcoming_events(request.args.to_dict())
    return jsonify({"events": [event.to_dict() for event in events]})


@event_bp.route("/calendar/<int:year>/<int:month>", methods=["GET"])
def get_month_events(year, month):
    user = optional_user()
    options = {
        "timezone": request.args.get("timezone"),
        "type": request.args.get("type"),
    }
    if user and user.is_admin:
        options["include_private"] = validators.parse_bool(
            request.args.get("include_private", False)
        )
        options["include_all_statuses"] = validators.parse_bool(
            request.args.get("include_all_statuses", False)
        )
        options["status"] = request.args.get("status")

    events_by_day = service().calendar.get_month_events(year, month, options)
    return jsonify({"year": year, "month": month, "events": events_by_day})


@event_bp.route("/check-conflicts", methods=["POST"])
@limiter.limit("30 per minute")
def check_conflicts():
    data = json_body()
    validators.require_fields(data, ["start_date", "end_date"])
    start, end = validators.validate_schedule(
        {"start_date": data["start_date"], "end_date": data["end_date"]}
    )
    exclude_id = validators.parse_int(data.get("exclude_event_id"), "exclude_event_id")

    conflicts = service().calendar.check_schedule_conflicts(start, end, exclude_id)
    return jsonify(
        {
            "has_conflicts": bool(conflicts),
            "conflicts": [event.to_summary_dict() for event in conflicts],
        }
    )


@event_bp.route("/<identifier>", methods=["GET"])
def get_event(identifier):
    user = optional_user()
    event_service = service()
    is_admin = bool(user and user.is_admin)
    event = event_service.get_event_by_id(
        identifier,
        {
            "is_admin": is_admin,
            "is_authenticated": user is not None,
            "track_view": not is_admin,
        },
    )

    payload = event.to_dict()
    if user:
        payload["is_user_registered"] = event_service.is_user_registered(event.id, user.id)
    return jsonify(payload)


@event_bp.route("/<int:event_id>/calendar", methods=["GET"])
def download_event_calendar(event_id):
    event_service = service()
    event = event_service.get_event_by_id(event_id)
    ical = event_service.calendar.generate_event_icalendar(event)
    return Response(
        ical,
        mimetype="text/calendar",
        headers={"Content-Disposition": f'attachment; filename="{event.slug}.ics"'},
    )


# ----------------------------------------------------------------------
# Registration
# ----------------------------------------------------------------------


@event_bp.route("/<int:event_id>/register", methods=["POST"])
@limiter.limit("10 per minute")
def register_for_event(event_id):
    verify_jwt_in_request(optional=True)
    registration = service().register_for_event(
        event_id, registration_payload(), current_user_id()
    )
    return registration_response(registration)


@event_bp.route("/<int:event_id>/register-user", methods=["POST"])
@jwt_required()
@limiter.limit("10 per minute")
def register_user_for_event(event_id):
    registration = service().register_for_event(
        event_id, registration_payload(), current_user_id()
    )
    return registration_response(registration)


@event_bp.route("/my-registrations", methods=["GET"])
@jwt_required()
def get_my_registrations():
    result = service().get_user_registrations(current_user_id(), request.args.to_dict())
    return jsonify(
        {
            "registrations": [
                {**registration.to_dict(), "event": registration.event.to_summary_dict()}
                for registration in result["registrations"]
            ],
            "pagination": result["pagination"],
        }
    )


@event_bp.route("/registrations/<int:registration_id>/cancel", methods=["POST"])
@jwt_required()
def cancel_registration(registration_id):
    registration = service().cancel_registration(registration_id, current_user_id())
    return jsonify(
        {"message": "Registration cancelled", "registration": registration.to_dict()}
    )


@event_bp.route("/registrations/<int:registration_id>/calendar-links", methods=["GET"])
@jwt_required()
def get_registration_calendar_links(registration_id):
    user = current_user()
    links = service().get_registration_calendar_links(
        registration_id,
        acting_user_id=current_user_id(),
        is_admin=bool(user and user.is_admin),
    )
    return jsonify(links)


@event_bp.route("/<int:event_id>/feedback", methods=["POST"])
@jwt_required()
@limiter.limit("10 per minute")
def submit_feedback(event_id):
    registration = service().submit_event_feedback(event_id, json_body(), current_user_id())
    return jsonify(
        {"message": "Thank you for your feedback", "registration": registration.to_dict()}
    )


# ----------------------------------------------------------------------
# Administration
# ----------------------------------------------------------------------


@event_bp.route("", methods=["POST"])
@admin_required
def create_event():
    event = service().create_event(json_body(), current_user_id())
    return jsonify(event.to_dict()), 201


@event_bp.route("/<int:event_id>", methods=["PUT"])
@admin_required
def update_event(event_id):
    event = service().update_event(event_id, json_body(), current_user_id())
    return jsonify(event.to_dict())


@event_bp.route("/<int:event_id>", methods=["DELETE"])
@admin_required
def delete_event(event_id):
    service().delete_event(event_id)
    return jsonify({"message": "Event deleted"})


@event_bp.route("/<int:event_id>/status", methods=["PATCH"])
@admin_required
def change_event_status(event_id):
    data = json_body()
    validators.require_fields(data, ["status"])
    event = service().change_event_status(
        event_id, data["status"], {"reason": data.get("reason")}, current_user_id()
    )
    return jsonify(event.to_dict())


@event_bp.route("/<int:event_id>/image", methods=["POST"])
@admin_required
def upload_event_image(event_id):
    event = service().upload_event_image(
        event_id,
        request.files.get("image"),
        request.form.get("type", "featured"),
        current_user_id(),
    )
    return jsonify(event.to_dict())


@event_bp.route("/<int:event_id>/registrations", methods=["GET"])
@admin_required
def get_event_registrations(event_id):
    result = service().get_event_registrations(event_id, request.args.to_dict())
    return jsonify(
        {
            "registrations": [r.to_dict() for r in result["registrations"]],
            "pagination": result["pagination"],
        }
    )


@event_bp.route("/registrations/<int:registration_id>/status", methods=["PATCH"])
@admin_required
def update_registration_status(registration_id):
    data = json_body()
    validators.require_fields(data, ["status"])
    registration = service().update_registration_status(registration_id, data["status"])
    return jsonify(registration.to_dict())


@event_bp.route("/registrations/<identifier>/check-in", methods=["POST"])
@admin_required
def check_in_attendee(identifier):
    registration = service().check_in_attendee(identifier)
    return jsonify(registration.to_dict())


@event_bp.route("/registrations/<identifier>/check-out", methods=["POST"])
@admin_required
def check_out_attendee(identifier):
    registration = service().check_out_attendee(identifier)
    return jsonify(registration.to_dict())


@event_bp.route("/<int:event_id>/process-waitlist", methods=["POST"])
@admin_required
def process_waitlist(event_id):
    promoted = service().process_waitlist(event_id)
    return jsonify(
        {"promoted": [r.to_dict() for r in promoted], "count": len(promoted)}
    )


@event_bp.route("/<int:event_id>/statistics", methods=["GET"])
@admin_required
def get_event_statistics(event_id):
    return jsonify(service().get_event_statistics(event_id))
