"""
Main Flask application entry point for the OTP registration service
"""
import logging
from datetime import datetime

from flask import Flask, jsonify, request
from flask_login import LoginManager
from config import Config
from models import db
from models.user import User
from utils.errors import OtpError, RateLimited
from utils.logger import configure_logging
from utils.mail import mail, send_otp_email
from utils.otp_service import init_otp_service
from utils.otp_store import OtpStore

# Initialize login manager (no DB access at import time)
login_manager = LoginManager()


@login_manager.user_loader
def load_user(user_id):
    """Load user for Flask-Login (runs in request context)."""
    return db.session.get(User, int(user_id))


@login_manager.unauthorized_handler
def unauthorized():
    return jsonify({"success": False, "error": "unauthorized", "message": "Please log in."}), 401


def handle_otp_error(err):
    response = jsonify(err.to_dict())
    response.status_code = err.status_code
    if isinstance(err, RateLimited):
        response.headers['Retry-After'] = str(err.retry_after)
    return response


def create_app(config_class=Config):
    """Application factory pattern. DB init runs inside app_context; non-fatal on failure."""
    app = Flask(__name__)
    app.config.from_object(config_class)
    configure_logging(app)

    db.init_app(app)
    login_manager.init_app(app)
    mail.init_app(app)

    # The OTP store is owned by this app; every request shares it through app.extensions.
    init_otp_service(app, store=OtpStore(db.session), send_code=send_otp_email)

    app.register_error_handler(OtpError, handle_otp_error)

    @app.errorhandler(500)
    def handle_500_error(e):
        if request.path.startswith("/auth/") or request.path.startswith("/profile"):
            return jsonify({"success": False, "error": "internal_error", "message": "Internal server error. Please try again later."}), 500
        return e

    # Create tables only inside app context; do not crash if DB temporarily unavailable
    with app.app_context():
        try:
            db.create_all()
        except Exception as e:
            logging.getLogger(__name__).warning("Database init skipped (non-fatal): %s", e)

    from routes import auth_bp, profile_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(profile_bp)

    @app.route('/health')
    def health():
        return jsonify({
            "status": "healthy",
            "timestamp": datetime.utcnow().isoformat(),
            "testing": app.testing,
        })

    return app
