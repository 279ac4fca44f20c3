from flask_mail import Message, Mail

mail = Mail()

# Opening line per notification kind; the rest of the body lists the payload.
TEMPLATE_INTROS = {
    "event-registration": "Your registration is confirmed.",
    "event-waitlist": "You have been added to the waitlist.",
    "event-waitlist-confirmed": "A spot opened up and your registration is now confirmed.",
    "event-cancellation": "We are sorry to let you know that this event has been cancelled.",
    "event-schedule-change": "The schedule for this event has changed.",
}

BODY_FIELDS = [
    ("event_title", "Event"),
    ("event_date", "When"),
    ("event_location", "Where"),
    ("confirmation_code", "Confirmation code"),
    ("cancellation_reason", "Reason"),
    ("google_calendar_link", "Add to Google Calendar"),
    ("outlook_link", "Add to Outlook"),
]


def send_async_email(app, msg):
    with app.app_context():
        try:
            mail.send(msg)
        except Exception as e:
            app.logger.error(f"Failed to send email: {e}")


def render_text_body(template_name: str, data: dict) -> str:
    lines = []
    if data.get("recipient_name"):
        lines += [f"Hi {data['recipient_name']},", ""]
    lines.append(TEMPLATE_INTROS.get(template_name, ""))
    lines.append("")
    for key, label in BODY_FIELDS:
        if data.get(key):
            lines.append(f"{label}: {data[key]}")
    return "\n".join(lines).strip() + "\n"


def build_message(sender, to_address, subject, template_name, data) -> Message:
    msg = Message(subject, sender=sender, recipients=[to_address])
    msg.body = render_text_body(template_name, data)
    for attachment in data.get("attachments") or []:
        msg.attach(
            attachment["filename"],
            attachment.get("content_type", "text/calendar"),
            attachment["content"],
        )
    return msg
