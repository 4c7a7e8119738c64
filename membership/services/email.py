"""Email service using Resend for the welcome message."""

from __future__ import annotations

import asyncio
import html
import logging

import resend

from membership.config import settings

logger = logging.getLogger(__name__)

# Initialize Resend with API key
resend.api_key = settings.RESEND_API_KEY


async def send_welcome_email(email: str, full_name: str, membership_id: str, referral_code: str) -> None:
    """
    Send the post-registration welcome email via Resend.

    Args:
        email: Recipient email address
        full_name: Member's name for the greeting
        membership_id: Member number to include
        referral_code: The member's own code to share

    Raises:
        Exception: If email sending fails
    """
    if not settings.RESEND_API_KEY:
        logger.warning("Resend not configured, welcome email for %s not sent", membership_id)
        return

    # full_name is user input
    safe_name = html.escape(full_name)

    html_content = f"""
    <!DOCTYPE html>
    <html>
    <head>
        <meta charset="utf-8">
        <title>Welcome</title>
    </head>
    <body style="font-family: -apple-system, 'Segoe UI', Roboto, Arial, sans-serif; color: #333;">
        <h1>Welcome, {safe_name}!</h1>
        <p>Your registration is complete. Your membership ID is <strong>{membership_id}</strong>.</p>
        <p>Invite others with your referral code: <strong>{referral_code}</strong></p>
    </body>
    </html>
    """

    # Plain text fallback
    text_content = f"""
    Welcome, {full_name}!

    Your registration is complete. Your membership ID is {membership_id}.
    Invite others with your referral code: {referral_code}
    """

    params = {
        "from": settings.EMAIL_FROM,
        "to": [email],
        "subject": "Welcome to the membership",
        "html": html_content,
        "text": text_content,
    }

    # The Resend SDK is synchronous
    await asyncio.to_thread(resend.Emails.send, params)
    logger.info("Welcome email sent for %s", membership_id)
