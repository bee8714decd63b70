"""
Short-lived token proving an email was just verified by OTP.
Issued by verify-otp when no complete signup form is pending, accepted by /auth/signup.
"""
import hmac
import base64
import time
from flask import current_app


def _sign(payload):
    key = current_app.config.get("SECRET_KEY", "").encode("utf-8")
    return hmac.new(key, payload.encode("utf-8"), "sha256").hexdigest()


def create_registration_verification_token(email, now=None):
    """Create a signed token for verified email. Used after OTP verify success."""
    lifetime = current_app.config.get("REGISTRATION_TOKEN_LIFETIME_SECONDS", 15 * 60)
    expiry = int(now if now is not None else time.time()) + lifetime
    payload = f"{email.strip().lower()}|{expiry}"
    raw = f"{payload}|{_sign(payload)}"
    return base64.urlsafe_b64encode(raw.encode("utf-8")).decode("utf-8").rstrip("=")


def verify_registration_verification_token(token, now=None):
    """
    Verify token and return email if valid, else None.
    Checks signature and expiry.
    """
    if not token or not isinstance(token, str):
        return None
    try:
        raw = base64.urlsafe_b64decode(token + "==").decode("utf-8")
        payload, sig = raw.rsplit("|", 1)
        email, expiry_str = payload.split("|", 1)
        expiry = int(expiry_str)
    except ValueError:
        return None
    if not hmac.compare_digest(sig, _sign(payload)):
        return None
    if expiry < int(now if now is not None else time.time()):
        return None
    return email.strip().lower()
