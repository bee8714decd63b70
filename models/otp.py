"""
OTP records and send log (PostgreSQL-compatible).
Codes are stored as salted HMAC digests; the newest record per
(contact, purpose) is the only one that can verify.
"""
import uuid
from datetime import datetime

from models import db

PURPOSE_REGISTRATION = 'registration'
PURPOSE_PASSWORD_RESET = 'password_reset'
PURPOSES = (PURPOSE_REGISTRATION, PURPOSE_PASSWORD_RESET)

SEND_KIND_ISSUE = 'issue'
SEND_KIND_RESEND = 'resend'


def _new_id():
    return uuid.uuid4().hex


class OtpRecord(db.Model):
    """
    One issued code. Never updated except for attempts and consumed,
    both through conditional UPDATEs in the store.
    """
    __tablename__ = 'otp_records'
    __table_args__ = (
        db.Index('ix_otp_records_contact_purpose_created', 'contact', 'purpose', 'created_at'),
    )

    id = db.Column(db.String(32), primary_key=True, default=_new_id)
    contact = db.Column(db.String(255), nullable=False)
    purpose = db.Column(db.String(32), nullable=False, default=PURPOSE_REGISTRATION)
    code_hash = db.Column(db.String(64), nullable=False)
    salt = db.Column(db.String(64), nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    expires_at = db.Column(db.DateTime, nullable=False, index=True)
    consumed = db.Column(db.Boolean, nullable=False, default=False)
    attempts = db.Column(db.Integer, nullable=False, default=0)

    def is_expired(self, now=None):
        return (now or datetime.utcnow()) >= self.expires_at

    def attempts_exceeded(self, cap):
        return self.attempts >= cap

    def __repr__(self):
        return f'<OtpRecord {self.purpose} {self.contact} {self.id[:8]}>'


class OtpSendLog(db.Model):
    """Log of OTP sends per contact for windowed rate limiting."""
    __tablename__ = 'otp_send_log'

    id = db.Column(db.Integer, primary_key=True)
    contact = db.Column(db.String(255), nullable=False, index=True)
    purpose = db.Column(db.String(32), nullable=False, default=PURPOSE_REGISTRATION)
    kind = db.Column(db.String(16), nullable=False, default=SEND_KIND_ISSUE)
    sent_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
