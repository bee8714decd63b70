"""
OTP screen state: countdown + code input + the message shown to the user.
Server error payloads are turned into distinct messages; a wrong code, an
expired code and a locked code never share the same text.
"""
from dataclasses import dataclass, field, replace
from typing import Optional

from client import countdown as cd
from client import otp_input as oi

MESSAGES = {
    'otp_expired': 'Code expired. Please request a new one.',
    'too_many_attempts': 'Too many tries. Please request a new code.',
    'otp_already_used': 'This code has already been used.',
    'otp_not_found': 'No code found for this email. Please request a new one.',
    'no_pending_registration': 'Nothing to resend. Please start the signup again.',
    'email_delivery_failed': 'We could not send the email. Please try resending.',
    'infrastructure_error': 'Service temporarily unavailable. Please try again.',
    'invalid_code_format': 'Please enter the complete 6-digit code',
}

# Errors a resend can recover from.
NEEDS_NEW_CODE = {'otp_expired', 'too_many_attempts'}


def message_for(payload):
    code = payload.get('error')
    if code == 'invalid_otp':
        remaining = payload.get('attemptsRemaining')
        if remaining is None:
            return 'Wrong code. Please try again.'
        return f"Wrong code. {remaining} attempt{'s' if remaining != 1 else ''} left."
    if code == 'rate_limited':
        return f"Too many requests. Please try again in {payload.get('retryAfter', 60)} seconds."
    return MESSAGES.get(code) or payload.get('message') or 'Something went wrong. Please try again.'


@dataclass(frozen=True)
class OtpSession:
    contact: str
    countdown: cd.Countdown = field(default_factory=cd.Countdown)
    code_input: oi.OtpInput = field(default_factory=oi.OtpInput)
    error: Optional[str] = None
    attempts_remaining: Optional[int] = None
    verified: bool = False

    @property
    def can_resend(self):
        return self.countdown.resend_enabled and not self.verified


def code_sent(session, expires_in, now_ms):
    """After request-otp or resend-otp succeeded: restart the countdown with empty cells."""
    return replace(
        session,
        countdown=cd.start(session.countdown, expires_in, now_ms),
        code_input=oi.clear(),
        error=None,
        attempts_remaining=None,
    )


def submit(session):
    """Returns (session, code). code is None when the input is incomplete."""
    try:
        code = oi.submit(session.code_input)
    except oi.IncompleteCode as e:
        return replace(session, error=str(e)), None
    return replace(session, error=None), code


def verify_failed(session, payload):
    updated = replace(session, error=message_for(payload))
    if payload.get('error') == 'invalid_otp':
        return replace(updated, attempts_remaining=payload.get('attemptsRemaining'))
    if payload.get('error') in NEEDS_NEW_CODE:
        return replace(updated, countdown=cd.expire_now(session.countdown), attempts_remaining=0)
    return updated


def verify_succeeded(session):
    return replace(session, verified=True, error=None, countdown=cd.cancel(session.countdown))
