"""
Input validation helpers shared by the auth and profile routes.
"""
import re

EMAIL_RE = re.compile(r"^[A-Za-z0-9._%+\-]+@[A-Za-z0-9.\-]+\.[A-Za-z]{2,}$")
OTP_RE = re.compile(r"[0-9]{6}")
PHONE_RE = re.compile(r"^\+?[\d\s\-()]{7,20}$")

MIN_PASSWORD_LENGTH = 8


def normalize_email(email):
    """Trim and lowercase. Returns '' for None."""
    return str(email or '').strip().lower()


def validate_email(email):
    """True if email looks like a deliverable address."""
    if not email or len(email) > 255:
        return False
    return EMAIL_RE.match(email) is not None


def validate_otp_code(code):
    """Exactly six ASCII digits; '000123' is valid."""
    return isinstance(code, str) and OTP_RE.fullmatch(code) is not None


def validate_password(password):
    """
    Returns (is_valid, error_message).
    At least 8 characters with upper, lower and a digit.
    """
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        return False, f'Password must be at least {MIN_PASSWORD_LENGTH} characters long.'
    if not re.search(r'[a-z]', password) or not re.search(r'[A-Z]', password):
        return False, 'Password must contain both upper and lower case letters.'
    if not re.search(r'\d', password):
        return False, 'Password must contain at least one digit.'
    return True, None


def validate_name(name):
    return bool(name) and 2 <= len(name.strip()) <= 100


def validate_phone(phone):
    return PHONE_RE.match(phone) is not None


def validate_age(age):
    """Returns the age as int, or None if it is not in 1..150."""
    try:
        value = int(age)
    except (TypeError, ValueError):
        return None
    return value if 1 <= value <= 150 else None
