"""
Models package for the OTP registration service
"""
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()

# Import all models here to ensure they're registered
from models.user import User
from models.otp import OtpRecord, OtpSendLog
from models.pending_registration import PendingRegistration

__all__ = [
    'db',
    'User',
    'OtpRecord',
    'OtpSendLog',
    'PendingRegistration',
]
