"""
OTP generation and hashing.
OTPs are HMAC'd with a per-record salt before storage; never store plain OTP in DB.
"""
import hashlib
import hmac
import secrets
from datetime import datetime, timedelta

OTP_LENGTH = 6
SALT_BYTES = 16


def generate_otp() -> str:
    """Uniform 6-digit numeric OTP, zero-padded ('000123' is a valid code)."""
    return f"{secrets.randbelow(10 ** OTP_LENGTH):0{OTP_LENGTH}d}"


def generate_salt() -> str:
    """Fresh per-record nonce, hex encoded."""
    return secrets.token_hex(SALT_BYTES)


def hash_otp(otp: str, salt: str, secret: str) -> str:
    """HMAC-SHA256(secret, otp + salt) as hex."""
    return hmac.new(secret.encode('utf-8'), (otp + salt).encode('utf-8'), hashlib.sha256).hexdigest()


def verify_otp(plain_otp: str, salt: str, otp_hash: str, secret: str) -> bool:
    """Constant-time check of a candidate OTP against the stored hash."""
    return hmac.compare_digest(hash_otp(plain_otp, salt, secret), otp_hash)


def otp_expires_at(ttl_seconds: int, now: datetime = None) -> datetime:
    """Return expiry datetime for a new OTP."""
    return (now or datetime.utcnow()) + timedelta(seconds=ttl_seconds)
