"""SendGrid email service for match notifications.

Uses asyncio.to_thread to wrap the synchronous SendGrid client.
"""

import asyncio
import html
import logging

import sendgrid
from sendgrid.helpers.mail import Content, Email, HtmlContent, Mail, To

logger = logging.getLogger(__name__)


def _get_config():
    """Get email config from app settings (lazy to avoid import-time issues)."""
    from spacematch.app.config import get_settings
    s = get_settings()
    return s.sendgrid_api_key, s.notification_from_email, s.notification_from_name, s.frontend_url


def _get_client() -> sendgrid.SendGridAPIClient:
    """Return a configured SendGrid API client."""
    api_key, _, _, _ = _get_config()
    return sendgrid.SendGridAPIClient(api_key=api_key)


def _plural(count: int) -> str:
    return "es" if count > 1 else ""


def _score_color(score: int) -> str:
    if score >= 80:
        return "#10b981"
    if score >= 60:
        return "#3b82f6"
    return "#f59e0b"


def build_new_match_subject(match_count: int) -> str:
    return f"{match_count} New Property Match{_plural(match_count)} Found!"


def build_new_match_text(
    recipient_name: str,
    match_count: int,
    top_title: str,
    top_score: int,
    top_location: str,
    dashboard_link: str,
) -> str:
    """Plain-text body of the new-matches email."""
    return (
        "New Property Matches Found!\n\n"
        f"Hi {recipient_name},\n\n"
        f"Great news! We found {match_count} new property match{_plural(match_count)} "
        "that align with your requirements.\n\n"
        "Top Match:\n"
        f"{top_title}\n"
        f"{top_location}\n"
        f"{top_score}% Match\n\n"
        f"View all matches: {dashboard_link}\n\n"
        "Don't miss out - properties go fast!"
    )


def build_new_match_html(
    recipient_name: str,
    match_count: int,
    top_title: str,
    top_score: int,
    top_location: str,
    dashboard_link: str,
) -> str:
    """HTML body of the new-matches email."""
    name = html.escape(recipient_name)
    title = html.escape(top_title)
    location = html.escape(top_location)
    color = _score_color(top_score)

    return f"""
<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
</head>
<body style="margin: 0; padding: 24px; background-color: #f3f4f6; font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, Arial, sans-serif;">
    <table width="100%" cellpadding="0" cellspacing="0" style="max-width: 600px; margin: 0 auto; background: #ffffff; border-radius: 8px; padding: 32px;">
        <tr><td>
            <h1 style="color: #000; margin-bottom: 16px; font-size: 20px;">New Property Matches Found!</h1>
            <p>Hi {name},</p>
            <p>Great news! We found <strong>{match_count} new property match{_plural(match_count)}</strong> that align with your requirements.</p>
            <div style="background-color: #f9fafb; border-radius: 8px; padding: 20px; margin: 24px 0; border: 1px solid #e5e7eb;">
                <p style="margin: 0 0 8px; font-weight: 600; color: #000;">Top Match:</p>
                <p style="margin: 0 0 4px; font-size: 16px; color: #000;">{title}</p>
                <p style="margin: 0 0 12px; font-size: 14px; color: #666;">{location}</p>
                <span style="background-color: {color}; color: white; padding: 4px 12px; border-radius: 16px; font-size: 14px; font-weight: 500;">
                    {top_score}% Match
                </span>
            </div>
            <p style="text-align: center;">
                <a href="{dashboard_link}" style="display: inline-block; background-color: #000; color: #fff; padding: 12px 24px; border-radius: 6px; text-decoration: none;">View All Matches</a>
            </p>
            <p style="color: #666; font-size: 14px; text-align: center;">Don't miss out - properties go fast!</p>
        </td></tr>
    </table>
</body>
</html>
"""


def _send_mail(mail: Mail) -> bool:
    """Synchronous send via SendGrid. Returns True on success."""
    client = _get_client()
    response = client.send(mail)
    if response.status_code in (200, 201, 202):
        return True
    logger.error(
        "SendGrid returned status %s: %s",
        response.status_code,
        response.body,
    )
    return False


# ---------------------------------------------------------------------------
# Public async API
# ---------------------------------------------------------------------------


async def send_new_match_email(
    email: str,
    recipient_name: str,
    match_count: int,
    top_title: str,
    top_score: int,
    top_location: str,
) -> bool:
    """Send the "new property matches" email to a tenant.

    Returns:
        True on success, False on failure or when email is not configured.
    """
    api_key, from_email, from_name, frontend_url = _get_config()
    if not api_key:
        logger.warning("SENDGRID_API_KEY not set — skipping new match email")
        return False

    dashboard_link = f"{frontend_url.rstrip('/')}/dashboard"
    try:
        mail = Mail(
            from_email=Email(from_email, from_name),
            to_emails=To(email),
            subject=build_new_match_subject(match_count),
            plain_text_content=Content(
                "text/plain",
                build_new_match_text(
                    recipient_name, match_count, top_title, top_score, top_location, dashboard_link,
                ),
            ),
            html_content=HtmlContent(
                build_new_match_html(
                    recipient_name, match_count, top_title, top_score, top_location, dashboard_link,
                )
            ),
        )
        result = await asyncio.to_thread(_send_mail, mail)
        if result:
            logger.info("New match email sent to %s (%d matches)", email, match_count)
        return result
    except Exception:
        logger.exception("Failed to send new match email to %s", email)
        return False
