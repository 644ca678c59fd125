"""
Giveaway confirmation email over SMTP. Disabled unless host, user and password
are configured; send failures are logged and reported as False.
"""
import logging
import smtplib
import ssl
from datetime import datetime, timezone
from email.message import EmailMessage

import settings

logger = logging.getLogger("giveaway_email")

SUBJECT = "Giveaway Entry Confirmation"
TEXT_BODY = "Thank you for entering our giveaway! We've received your entry and will review it shortly."
HTML_BODY = """
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
  <h1 style="color: #0097FB; text-align: center;">Thanks for Entering Our Giveaway!</h1>
  <p>Dear Valued Customer,</p>
  <p>We're excited to confirm that you've been entered into our monthly giveaway drawing!</p>
  <div style="background-color: #f5f5f5; padding: 15px; border-radius: 5px; margin: 20px 0;">
    <p><strong>Your Entry Details:</strong></p>
    <p>Order ID: {order_id}</p>
    <p>Entry Date: {entry_date}</p>
  </div>
  <p>Winners will be notified via email, so keep an eye on your inbox!</p>
  <hr style="margin: 30px 0;">
  <p style="font-size: 12px; color: #666; text-align: center;">
    This is an automated message. Please do not reply to this email.
  </p>
</div>
"""


def email_configured() -> bool:
    return bool(settings.EMAIL_HOST and settings.EMAIL_USER and settings.EMAIL_PASS)


def build_confirmation(email: str, order_id: str) -> EmailMessage:
    msg = EmailMessage()
    msg["Subject"] = SUBJECT
    msg["From"] = settings.EMAIL_FROM
    msg["To"] = email
    msg.set_content(TEXT_BODY)
    entry_date = datetime.now(timezone.utc).strftime("%Y-%m-%d")
    msg.add_alternative(HTML_BODY.format(order_id=order_id, entry_date=entry_date), subtype="html")
    return msg


def _connect() -> smtplib.SMTP:
    if settings.EMAIL_SECURE:
        return smtplib.SMTP_SSL(settings.EMAIL_HOST, settings.EMAIL_PORT, context=ssl.create_default_context(), timeout=20)
    conn = smtplib.SMTP(settings.EMAIL_HOST, settings.EMAIL_PORT, timeout=20)
    conn.starttls(context=ssl.create_default_context())
    return conn


def send_giveaway_confirmation(email: str, order_id: str) -> bool:
    if not email_configured():
        logger.info("Email transport not configured; skipping confirmation to %s", email)
        return False
    msg = build_confirmation(email, order_id)
    try:
        with _connect() as conn:
            conn.login(settings.EMAIL_USER, settings.EMAIL_PASS)
            conn.send_message(msg)
    except (smtplib.SMTPException, OSError) as e:
        logger.error("Failed to send giveaway confirmation to %s: %s", email, e)
        return False
    logger.info("Giveaway confirmation email sent to %s", email)
    return True
