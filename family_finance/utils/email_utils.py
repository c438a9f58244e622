# family_finance/utils/email_utils.py
import logging

from flask import current_app, render_template
from flask_mail import Message

from ..extensions import mail

logger = logging.getLogger(__name__)


def send_mail(to_email: str, subject: str, html_body: str, text_body: str | None = None) -> bool:
    """Send one message. Failures are logged and reported as False."""
    msg = Message(
        subject=subject,
        recipients=[to_email],
        body=text_body or "See HTML version.",
        html=html_body,
    )
    try:
        mail.send(msg)
    except Exception as e:  # SMTP errors must not fail the request that triggered the mail
        logger.error(f"[mail] Sending '{subject}' to {to_email} failed: {e}")
        return False
    logger.info(f"[mail] Sent '{subject}' to {to_email}")
    return True


def send_template(to_email: str, subject: str, template: str, **context) -> bool:
    """Render emails/<template>.html and .txt and send them."""
    context.setdefault("app_name", current_app.config["APP_NAME"])
    context.setdefault("app_url", current_app.config["APP_URL"])
    html = render_template(f"emails/{template}.html", **context)
    text = render_template(f"emails/{template}.txt", **context)
    return send_mail(to_email, subject, html, text)
