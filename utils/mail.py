"""
Email utility functions
"""
from flask_mail import Mail, Message
from flask import current_app

from models.otp import PURPOSE_PASSWORD_RESET
from utils.logger import mask_email

mail = Mail()

_SUBJECTS = {
    PURPOSE_PASSWORD_RESET: "Reset Your Password",
}
_DEFAULT_SUBJECT = "Verify Your Email Address"


def send_email(subject, recipients, body, html=None):
    """
    Send an email

    Args:
        subject: Email subject
        recipients: List of recipient email addresses
        body: Plain text body
        html: HTML body (optional)
    """
    if 'mail' not in current_app.extensions:
        raise RuntimeError("Mail extension not initialized. Check app configuration.")
    if not current_app.config.get('MAIL_SERVER'):
        raise RuntimeError("MAIL_SERVER not configured. Please set MAIL_SERVER environment variable.")

    msg = Message(
        subject=subject,
        recipients=recipients,
        body=body,
        html=html,
    )
    mail.send(msg)


def send_otp_email(email: str, otp: str, purpose: str, ttl_seconds: int) -> None:
    """
    Send an OTP email for signup verification or password reset.
    Uses clean HTML template; fallback plain body. Raises on SMTP failure.
    """
    subject = _SUBJECTS.get(purpose, _DEFAULT_SUBJECT)
    minutes = max(1, ttl_seconds // 60)
    body = f"Your verification code is: {otp}. It expires in {minutes} minutes. Do not share this code."
    try:
        send_email(subject, [email], body, html=_otp_email_html(subject, otp, minutes))
    except Exception as e:
        current_app.logger.error(f"SMTP error sending email to {mask_email(email)}: {str(e)}", exc_info=True)
        raise


def _otp_email_html(title: str, otp: str, minutes: int) -> str:
    """Clean HTML template for OTP email."""
    return f"""
    <!DOCTYPE html>
    <html>
    <head><meta charset="utf-8"><title>{title}</title></head>
    <body style="font-family: system-ui, sans-serif; max-width: 480px; margin: 0 auto; padding: 24px;">
        <h2 style="color: #1a1a2e;">{title}</h2>
        <p>Use the code below to continue:</p>
        <p style="font-size: 28px; font-weight: bold; letter-spacing: 6px; color: #16213e;">{otp}</p>
        <p style="color: #666;">This code expires in {minutes} minutes. Do not share it with anyone.</p>
        <hr style="border: none; border-top: 1px solid #eee; margin: 24px 0;">
        <p style="font-size: 12px; color: #999;">If you did not request this, you can ignore this email.</p>
    </body>
    </html>
    """
