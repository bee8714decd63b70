"""
Error types for the OTP engine and auth routes.
Each error carries the wire code and HTTP status the JSON layer reports,
so callers can tell "wrong code" apart from "expired" or "locked".
"""


class OtpError(Exception):
    """Base class. Subclasses set code, status_code and a default message."""
    code = 'otp_error'
    status_code = 400
    message = 'Request failed.'

    def __init__(self, message=None):
        super().__init__(message or self.message)
        self.message = message or self.message

    def to_dict(self):
        return {'success': False, 'error': self.code, 'message': self.message}


# ---------- input errors ----------

class InvalidEmail(OtpError):
    code = 'invalid_email'
    message = 'Please provide a valid email address.'


class InvalidCodeFormat(OtpError):
    code = 'invalid_code_format'
    message = 'Code must be exactly 6 digits.'


class ValidationError(OtpError):
    code = 'validation_error'
    message = 'Invalid input data.'

    def __init__(self, message=None, details=None):
        super().__init__(message)
        self.details = details or []

    def to_dict(self):
        data = super().to_dict()
        if self.details:
            data['details'] = self.details
        return data


# ---------- verification state errors ----------

class OtpNotFound(OtpError):
    code = 'otp_not_found'
    status_code = 404
    message = 'No verification code found for this email. Please request one.'


class OtpAlreadyUsed(OtpError):
    code = 'otp_already_used'
    status_code = 409
    message = 'This code has already been used.'


class OtpExpired(OtpError):
    code = 'otp_expired'
    status_code = 410
    message = 'Code expired. Please request a new one.'


class TooManyAttempts(OtpError):
    code = 'too_many_attempts'
    status_code = 429
    message = 'Too many attempts. Please request a new code.'


class InvalidOtp(OtpError):
    code = 'invalid_otp'
    message = 'Invalid code.'

    def __init__(self, attempts_remaining, message=None):
        super().__init__(message)
        self.attempts_remaining = attempts_remaining

    def to_dict(self):
        data = super().to_dict()
        data['attemptsRemaining'] = self.attempts_remaining
        return data


# ---------- issuance errors ----------

class NoPendingRegistration(OtpError):
    code = 'no_pending_registration'
    status_code = 404
    message = 'Nothing to resend. Please start again.'


class RateLimited(OtpError):
    code = 'rate_limited'
    status_code = 429
    message = 'Too many requests. Please try again later.'

    def __init__(self, retry_after, message=None):
        super().__init__(message)
        self.retry_after = max(1, int(retry_after))

    def to_dict(self):
        data = super().to_dict()
        data['retryAfter'] = self.retry_after
        return data


class EmailDeliveryFailed(OtpError):
    """The record was stored; only the email failed. Resend can recover."""
    code = 'email_delivery_failed'
    status_code = 502
    message = 'Unable to send verification code. Please try again later.'

    def __init__(self, expires_in=None, message=None, record_id=None):
        super().__init__(message)
        self.expires_in = expires_in
        self.record_id = record_id

    def to_dict(self):
        data = super().to_dict()
        if self.expires_in is not None:
            data['expiresIn'] = self.expires_in
        return data


class InfrastructureError(OtpError):
    """Store unreachable or failed mid-write. Safe to retry."""
    code = 'infrastructure_error'
    status_code = 503
    message = 'Service temporarily unavailable. Please try again.'


# ---------- account errors ----------

class UserExists(OtpError):
    code = 'user_exists'
    status_code = 409
    message = 'An account with this email already exists.'


class InvalidCredentials(OtpError):
    code = 'invalid_credentials'
    status_code = 401
    message = 'Invalid email or password.'


class AccountInactive(OtpError):
    code = 'account_inactive'
    status_code = 403
    message = 'Your account is inactive. Please contact support.'


class InvalidVerificationToken(OtpError):
    code = 'invalid_verification_token'
    message = 'Email verification expired. Please verify your email again.'
