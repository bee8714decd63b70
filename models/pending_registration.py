"""
Profile data held between OTP issue and verify.
"""
from datetime import datetime

from models import db
from models.user import PROFILE_FIELDS


class PendingRegistration(db.Model):
    """Signup form data waiting for its email to be verified. One row per email."""
    __tablename__ = 'pending_registrations'

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), unique=True, nullable=False)
    name = db.Column(db.String(100), nullable=True)
    phone = db.Column(db.String(20), nullable=True)
    age = db.Column(db.Integer, nullable=True)
    gender = db.Column(db.String(20), nullable=True)
    blood_type = db.Column(db.String(10), nullable=True)
    address = db.Column(db.Text, nullable=True)
    emergency_contact = db.Column(db.String(255), nullable=True)
    allergies = db.Column(db.Text, nullable=True)
    medical_conditions = db.Column(db.Text, nullable=True)
    password_hash = db.Column(db.String(255), nullable=True)
    # The OtpRecord this form was submitted (or last resent) with.
    otp_record_id = db.Column(db.String(32), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def is_complete(self):
        """True when an account can be created from this row alone."""
        return bool(self.name and self.password_hash)

    def clear(self):
        """Forget the held form, keeping the row."""
        for field in PROFILE_FIELDS:
            setattr(self, field, None)
        self.password_hash = None

    def __repr__(self):
        return f'<PendingRegistration {self.email}>'
