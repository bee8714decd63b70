"""
User model definition
"""
from models import db
from datetime import datetime
from flask_login import UserMixin

# Optional profile columns shared with PendingRegistration.
PROFILE_FIELDS = (
    'name',
    'phone',
    'age',
    'gender',
    'blood_type',
    'address',
    'emergency_contact',
    'allergies',
    'medical_conditions',
)


class User(UserMixin, db.Model):
    """User model for patient accounts"""
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    name = db.Column(db.String(100), nullable=False)
    phone = db.Column(db.String(20), nullable=True)
    age = db.Column(db.Integer, nullable=True)
    gender = db.Column(db.String(20), nullable=True)
    blood_type = db.Column(db.String(10), nullable=True)
    address = db.Column(db.Text, nullable=True)
    emergency_contact = db.Column(db.String(255), nullable=True)
    allergies = db.Column(db.Text, nullable=True)
    medical_conditions = db.Column(db.Text, nullable=True)
    password_hash = db.Column(db.String(255), nullable=False)
    is_active = db.Column(db.Boolean, default=True)
    email_verified = db.Column(db.Boolean, default=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self):
        data = {'id': self.id, 'email': self.email}
        for field in PROFILE_FIELDS:
            data[field] = getattr(self, field)
        data['email_verified'] = bool(self.email_verified)
        data['created_at'] = self.created_at.isoformat() if self.created_at else None
        return data

    def __repr__(self):
        return f'<User {self.email}>'
