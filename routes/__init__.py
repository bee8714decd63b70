"""
Routes package for the OTP registration service
"""
from routes.auth import auth_bp
from routes.profile import profile_bp

__all__ = [
    'auth_bp',
    'profile_bp',
]
