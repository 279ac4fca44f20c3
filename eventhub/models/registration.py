import random
import string

from eventhub.extensions import db
from eventhub.utils.dates import as_utc, isoformat, utcnow
from .enums import RegistrationStatus, RegistrationType
from .types import UTCDateTime

CONFIRMATION_CODE_LENGTH = 8


def generate_confirmation_code():
    return "".join(
        random.choices(string.ascii_uppercase + string.digits, k=CONFIRMATION_CODE_LENGTH)
    )


class Registration(db.Model):
    __tablename__ = "event_registrations"

    id = db.Column(db.Integer, primary_key=True)
    event_id = db.Column(
        db.Integer, db.ForeignKey("events.id"), nullable=False, index=True
    )
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    registration_type = db.Column(
        db.Enum(RegistrationType), nullable=False, default=RegistrationType.STANDARD
    )
    status = db.Column(
        db.Enum(RegistrationStatus),
        nullable=False,
        default=RegistrationStatus.PENDING,
        index=True,
    )

    contact_info = db.Column(db.JSON, nullable=False, default=dict)
    contact_email = db.Column(db.String(255), nullable=False, index=True)
    demographics = db.Column(db.JSON, nullable=False, default=dict)
    marketing = db.Column(db.JSON, nullable=False, default=dict)
    preferences = db.Column(db.JSON, nullable=False, default=dict)
    custom_fields = db.Column(db.JSON, nullable=False, default=dict)

    # payment
    is_paid = db.Column(db.Boolean, nullable=False, default=False)
    amount = db.Column(db.Numeric(10, 2), nullable=True)
    currency = db.Column(db.String(3), nullable=False, default="USD")
    transaction_id = db.Column(db.String(255), nullable=True)
    payment_method = db.Column(db.String(50), nullable=True)
    payment_date = db.Column(UTCDateTime, nullable=True)

    confirmation_code = db.Column(
        db.String(CONFIRMATION_CODE_LENGTH),
        unique=True,
        nullable=False,
        default=generate_confirmation_code,
    )
    confirmation_sent = db.Column(db.Boolean, nullable=False, default=False)
    confirmation_date = db.Column(UTCDateTime, nullable=True)

    check_in_time = db.Column(UTCDateTime, nullable=True)
    check_out_time = db.Column(UTCDateTime, nullable=True)
    attendance_duration = db.Column(db.Integer, nullable=True)  # minutes
    attendance_confirmed = db.Column(db.Boolean, nullable=False, default=False)

    feedback_submitted = db.Column(db.Boolean, nullable=False, default=False)
    feedback_submission_date = db.Column(UTCDateTime, nullable=True)
    feedback_rating = db.Column(db.Integer, nullable=True)
    feedback_comments = db.Column(db.Text, nullable=True)
    feedback_survey_responses = db.Column(db.JSON, nullable=True)

    notes = db.Column(db.Text, nullable=True)
    ip_address = db.Column(db.String(45), nullable=True)
    device_info = db.Column(db.String(255), nullable=True)
    referral_code = db.Column(db.String(64), nullable=True)
    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(UTCDateTime, nullable=False, default=utcnow, index=True)
    updated_at = db.Column(UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow)

    event = db.relationship(
        "Event", backref=db.backref("registrations", lazy="dynamic")
    )
    user = db.relationship("User", foreign_keys=[user_id])

    @property
    def full_name(self):
        info = self.contact_info or {}
        return f"{info.get('first_name', '')} {info.get('last_name', '')}".strip()

    @property
    def first_name(self):
        return (self.contact_info or {}).get("first_name")

    @property
    def is_waitlisted(self):
        return self.registration_type == RegistrationType.WAITLIST

    def confirm(self):
        self.status = RegistrationStatus.CONFIRMED
        self.confirmation_sent = True
        self.confirmation_date = utcnow()

    def cancel(self):
        self.status = RegistrationStatus.CANCELLED

    def check_in(self):
        self.status = RegistrationStatus.ATTENDED
        self.check_in_time = utcnow()
        self.attendance_confirmed = True

    def check_out(self):
        self.check_out_time = utcnow()
        if self.check_in_time:
            delta = self.check_out_time - as_utc(self.check_in_time)
            self.attendance_duration = round(delta.total_seconds() / 60)

    def submit_feedback(self, feedback_data: dict):
        self.feedback_submitted = True
        self.feedback_submission_date = utcnow()
        self.feedback_rating = feedback_data.get("overall_rating")
        self.feedback_comments = feedback_data.get("comments")
        if feedback_data.get("survey_responses"):
            self.feedback_survey_responses = dict(feedback_data["survey_responses"])

    def to_dict(self):
        return {
            "id": self.id,
            "event_id": self.event_id,
            "user_id": self.user_id,
            "registration_type": self.registration_type.value,
            "status": self.status.value,
            "full_name": self.full_name,
            "contact_info": self.contact_info or {},
            "demographics": self.demographics or {},
            "marketing": self.marketing or {},
            "preferences": self.preferences or {},
            "custom_fields": self.custom_fields or {},
            "payment": {
                "is_paid": self.is_paid,
                "amount": str(self.amount) if self.amount is not None else None,
                "currency": self.currency,
                "transaction_id": self.transaction_id,
                "payment_method": self.payment_method,
                "payment_date": isoformat(self.payment_date),
            },
            "confirmation_details": {
                "confirmation_code": self.confirmation_code,
                "confirmation_sent": self.confirmation_sent,
                "confirmation_date": isoformat(self.confirmation_date),
            },
            "attendance": {
                "check_in_time": isoformat(self.check_in_time),
                "check_out_time": isoformat(self.check_out_time),
                "duration": self.attendance_duration,
                "attendance_confirmed": self.attendance_confirmed,
            },
            "feedback": {
                "submitted": self.feedback_submitted,
                "submission_date": isoformat(self.feedback_submission_date),
                "overall_rating": self.feedback_rating,
                "comments": self.feedback_comments,
            },
            "referral_code": self.referral_code,
            "created_at": isoformat(self.created_at),
            "updated_at": isoformat(self.updated_at),
        }

    def __repr__(self):
        return (
            f"Registration("
            f"id={self.id}, "
            f"event_id={self.event_id}, "
            f"user_id={self.user_id}, "
            f"type={self.registration_type}, "
            f"status={self.status}, "
            f"code={self.confirmation_code}"
            f")"
        )
