import logging
from threading import Thread

from flask import current_app

from eventhub.utils.email import build_message, send_async_email

logger = logging.getLogger(__name__)


class EmailNotifier:
    """Fire-and-forget email delivery through Flask-Mail."""

    def send_templated_email(self, to_address, subject, template_name, data):
        try:
            app = current_app._get_current_object()

            # If in testing mode, log the email instead of sending it
            if app.testing:
                app.logger.info("--- MOCK EMAIL ---")
                app.logger.info(f"To: {to_address}")
                app.logger.info(f"Subject: {subject}")
                app.logger.info(f"Template: {template_name}")
                app.logger.info("--- END MOCK EMAIL ---")
                return

            sender = app.config.get("MAIL_DEFAULT_SENDER") or app.config.get("MAIL_USERNAME")
            msg = build_message(sender, to_address, subject, template_name, data)
            Thread(target=send_async_email, args=(app, msg)).start()
        except Exception as e:
            logger.error(f"Failed to dispatch '{template_name}' email to {to_address}: {e}")
