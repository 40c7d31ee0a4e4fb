"""Email service - transactional email via Resend"""
import html
import logging

import resend

from revshare.core.config import settings

logger = logging.getLogger(__name__)


def validate_email_config() -> tuple[bool, str]:
    """
    Validate email service configuration.

    Returns:
        tuple: (is_valid, error_message)
    """
    if not settings.RESEND_API_KEY:
        return False, "RESEND_API_KEY is not set in environment variables"

    if not settings.FRONTEND_URL:
        return False, "FRONTEND_URL is not set in environment variables"

    return True, ""


def _send_email(to: str, subject: str, body_html: str) -> bool:
    """
    Internal helper function to send email via Resend API.

    Args:
        to: Recipient email address
        subject: Email subject
        body_html: HTML email content

    Returns:
        bool: True on success, False on failure
    """
    if not settings.RESEND_API_KEY:
        logger.warning("RESEND_API_KEY is not set; skipping email")
        return False

    try:
        resend.api_key = settings.RESEND_API_KEY

        response = resend.Emails.send(
            {
                "from": settings.RESEND_FROM_EMAIL,
                "to": to,
                "subject": subject,
                "html": body_html,
            }
        )

        # Resend returns a dict with 'id' on success (older clients return an object)
        email_id = None
        if isinstance(response, dict):
            email_id = response.get('id')
        elif hasattr(response, 'id'):
            email_id = response.id

        if email_id:
            logger.info(f"Email sent successfully to {to} (id: {email_id})")
            return True
        logger.error(f"Email send returned invalid response: {response} (type: {type(response)})")
        return False

    except Exception as exc:
        logger.error(f"Failed to send email to {to}: {exc}", exc_info=True)
        return False


def send_notification_email(to: str, title: str, message: str) -> bool:
    """Mirror an in-app notification by email, linking back to the dashboard."""
    dashboard_link = f"{settings.FRONTEND_URL}/dashboard"
    body_html = f"""
    <p style="font-size: 18px; font-weight: bold;">{html.escape(title)}</p>
    <p>{html.escape(message)}</p>
    <p style="margin: 20px 0;">
      <a href="{dashboard_link}" target="_blank" rel="noopener noreferrer">Open your dashboard</a>
    </p>
    """
    return _send_email(to, title, body_html)
